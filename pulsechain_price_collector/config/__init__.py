"""
Configuration management for the PulseChain price collector.
"""

from .models import (
    APIConfig,
    CollectorConfig,
    ErrorConfig,
    LoggingConfig,
    ReconstructionConfig,
)
from .manager import ConfigManager
from .validation import (
    CollectorConfigValidator,
    validate_config_dict,
    get_env_var_mappings,
)

__all__ = [
    'APIConfig',
    'CollectorConfig',
    'ErrorConfig',
    'LoggingConfig',
    'ReconstructionConfig',
    'ConfigManager',
    'CollectorConfigValidator',
    'validate_config_dict',
    'get_env_var_mappings',
]
