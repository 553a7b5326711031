"""
Configuration validation using Pydantic.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from pulsechain_price_collector.config.models import LOG_LEVELS, TIME_RANGES


def _validate_url(v: str) -> str:
    if not v.startswith(('http://', 'https://')):
        raise ValueError("URL must start with http:// or https://")
    return v.rstrip('/')


class APIConfigValidator(BaseModel):
    """Pydantic model for API configuration validation."""
    explorer_base_url: str = Field(
        default="https://api.scan.pulsechain.com/api/v2",
        description="Blockscout-compatible explorer API base URL"
    )
    rpc_url: str = Field(default="https://rpc.pulsechain.com", description="JSON-RPC endpoint")
    timeout: int = Field(default=30, ge=1, le=300, description="Request timeout in seconds")
    max_concurrent: int = Field(default=50, ge=1, le=200, description="Maximum concurrent requests")
    rate_limit_delay: float = Field(default=0.0, ge=0.0, le=10.0, description="Minimum delay between requests")
    
    @field_validator('explorer_base_url', 'rpc_url')
    @classmethod
    def validate_urls(cls, v):
        return _validate_url(v)


class ErrorConfigValidator(BaseModel):
    """Pydantic model for error handling configuration validation."""
    max_retries: int = Field(default=3, ge=0, le=10, description="Maximum retry attempts")
    backoff_factor: float = Field(default=2.0, ge=1.0, le=10.0, description="Exponential backoff factor")
    circuit_breaker_threshold: int = Field(default=5, ge=1, le=100)
    circuit_breaker_timeout: int = Field(default=300, ge=1, le=3600)


class ReconstructionConfigValidator(BaseModel):
    """Pydantic model for reconstruction tuning validation."""
    page_size: int = Field(default=1000, ge=1, le=10000, description="Logs requested per page")
    max_pages: int = Field(default=10, ge=1, le=1000, description="Page ceiling per reconstruction")
    block_batch_size: int = Field(default=50, ge=1, le=500, description="Concurrent block lookups")
    spike_threshold: float = Field(default=10.0, gt=0, description="Max relative single-step change")
    default_decimals: int = Field(default=18, ge=0, le=77)
    default_time_range: str = Field(default="1D")
    max_duration_seconds: Optional[float] = Field(default=None, gt=0)
    
    @field_validator('default_time_range')
    @classmethod
    def validate_time_range(cls, v):
        v = v.upper()
        if v not in TIME_RANGES:
            raise ValueError(f"Invalid time range: {v}. Expected one of {TIME_RANGES}")
        return v


class LoggingConfigValidator(BaseModel):
    """Pydantic model for logging configuration validation."""
    level: str = Field(default="INFO")
    file: Optional[str] = Field(default=None)
    structured: bool = Field(default=True)
    
    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        v = v.upper()
        if v not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}")
        return v


class CollectorConfigValidator(BaseModel):
    """Main configuration validator."""
    api: APIConfigValidator = Field(default_factory=APIConfigValidator)
    error_handling: ErrorConfigValidator = Field(default_factory=ErrorConfigValidator)
    reconstruction: ReconstructionConfigValidator = Field(default_factory=ReconstructionConfigValidator)
    logging: LoggingConfigValidator = Field(default_factory=LoggingConfigValidator)
    
    model_config = {
        "validate_assignment": True,
        "extra": "forbid",
    }
    
    def to_legacy_config(self) -> 'CollectorConfig':
        """Convert to the dataclass CollectorConfig used throughout the package."""
        from pulsechain_price_collector.config.models import (
            APIConfig, CollectorConfig, ErrorConfig, LoggingConfig, ReconstructionConfig
        )
        
        return CollectorConfig(
            api=APIConfig(**self.api.model_dump()),
            error_handling=ErrorConfig(**self.error_handling.model_dump()),
            reconstruction=ReconstructionConfig(**self.reconstruction.model_dump()),
            logging=LoggingConfig(**self.logging.model_dump()),
        )


def validate_config_dict(config_data: Dict[str, Any]) -> CollectorConfigValidator:
    """
    Validate configuration dictionary using Pydantic.
    
    Raises:
        ValueError: If validation fails
    """
    try:
        return CollectorConfigValidator(**config_data)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")


def get_env_var_mappings() -> Dict[str, str]:
    """
    Get mapping of environment variables to configuration paths.
    """
    return {
        'PULSE_EXPLORER_URL': 'api.explorer_base_url',
        'PULSE_RPC_URL': 'api.rpc_url',
        'PULSE_API_TIMEOUT': 'api.timeout',
        'PULSE_API_MAX_CONCURRENT': 'api.max_concurrent',
        'PULSE_API_RATE_LIMIT_DELAY': 'api.rate_limit_delay',
        
        'PULSE_MAX_RETRIES': 'error_handling.max_retries',
        'PULSE_BACKOFF_FACTOR': 'error_handling.backoff_factor',
        'PULSE_CIRCUIT_BREAKER_THRESHOLD': 'error_handling.circuit_breaker_threshold',
        'PULSE_CIRCUIT_BREAKER_TIMEOUT': 'error_handling.circuit_breaker_timeout',
        
        'PULSE_PAGE_SIZE': 'reconstruction.page_size',
        'PULSE_MAX_PAGES': 'reconstruction.max_pages',
        'PULSE_BLOCK_BATCH_SIZE': 'reconstruction.block_batch_size',
        'PULSE_SPIKE_THRESHOLD': 'reconstruction.spike_threshold',
        'PULSE_DEFAULT_DECIMALS': 'reconstruction.default_decimals',
        'PULSE_DEFAULT_TIME_RANGE': 'reconstruction.default_time_range',
        'PULSE_MAX_DURATION': 'reconstruction.max_duration_seconds',
        
        'PULSE_LOG_LEVEL': 'logging.level',
        'PULSE_LOG_FILE': 'logging.file',
        'PULSE_LOG_STRUCTURED': 'logging.structured',
    }
