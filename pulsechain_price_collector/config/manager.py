"""
Configuration manager with environment overrides and hot-reloading support.
"""

import hashlib
import json
import logging
import os
import threading
import time
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from pulsechain_price_collector.config.models import CollectorConfig
from pulsechain_price_collector.config.validation import get_env_var_mappings, validate_config_dict

logger = logging.getLogger(__name__)

_INT_ENV_VARS = {
    'PULSE_API_TIMEOUT', 'PULSE_API_MAX_CONCURRENT', 'PULSE_MAX_RETRIES',
    'PULSE_CIRCUIT_BREAKER_THRESHOLD', 'PULSE_CIRCUIT_BREAKER_TIMEOUT',
    'PULSE_PAGE_SIZE', 'PULSE_MAX_PAGES', 'PULSE_BLOCK_BATCH_SIZE',
    'PULSE_DEFAULT_DECIMALS',
}
_FLOAT_ENV_VARS = {
    'PULSE_API_RATE_LIMIT_DELAY', 'PULSE_BACKOFF_FACTOR',
    'PULSE_SPIKE_THRESHOLD', 'PULSE_MAX_DURATION',
}
_BOOL_ENV_VARS = {'PULSE_LOG_STRUCTURED'}


class ConfigFileHandler(FileSystemEventHandler):
    """File system event handler for configuration file changes."""
    
    def __init__(self, config_manager: 'ConfigManager'):
        self.config_manager = config_manager
        self._last_reload_time = 0.0
        self._reload_debounce = 1.0
    
    def _maybe_reload(self, path: str) -> None:
        if os.path.abspath(path) != self.config_manager.config_file_path:
            return
        current_time = time.time()
        if current_time - self._last_reload_time > self._reload_debounce:
            self._last_reload_time = current_time
            # Give the writer a moment to finish
            threading.Timer(0.1, self.config_manager._reload_config).start()
    
    def on_modified(self, event):
        if not event.is_directory:
            self._maybe_reload(event.src_path)
    
    def on_moved(self, event):
        # Editors that save atomically rename a temp file over the original
        if not event.is_directory:
            self._maybe_reload(event.dest_path)


class ConfigManager:
    """
    Configuration manager with hot-reloading capabilities.
    
    Supports YAML and JSON configuration files with ``PULSE_*`` environment
    variable overrides and automatic reloading when the file changes.
    """
    
    def __init__(self, config_file_path: str = "config.yaml"):
        self.config_file_path = os.path.abspath(config_file_path)
        self._config: Optional[CollectorConfig] = None
        self._observer: Optional[Observer] = None
        self._change_callbacks: List[Callable[[CollectorConfig], None]] = []
        self._config_hash: Optional[str] = None
        self._reload_lock = threading.Lock()
        self._validation_errors: List[str] = []
        self._last_successful_config: Optional[CollectorConfig] = None
    
    def load_config(self) -> CollectorConfig:
        """
        Load configuration from file with environment variable overrides.
        
        A missing file is created with defaults. When validation fails and a
        previous configuration loaded successfully, that one is returned.
        
        Raises:
            ValueError: If configuration is invalid and nothing loaded before
        """
        with self._reload_lock:
            if not os.path.exists(self.config_file_path):
                self._create_default_config()
            
            current_hash = self._calculate_config_hash()
            if self._config_hash == current_hash and self._config is not None:
                return self._config
            
            try:
                config_data = self._load_config_file()
                config_data = self._apply_env_overrides(config_data)
                validated_config = validate_config_dict(config_data)
                
                self._config = validated_config.to_legacy_config()
                self._config_hash = current_hash
                self._validation_errors = []
                self._last_successful_config = self._config
                
                return self._config
                
            except Exception as e:
                self._validation_errors = [str(e)]
                
                if self._last_successful_config is not None:
                    logger.warning(f"Config validation failed, using last known good config: {e}")
                    return self._last_successful_config
                
                raise ValueError(f"Configuration validation failed: {e}")
    
    def get_config(self) -> CollectorConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            return self.load_config()
        return self._config
    
    def get_validation_errors(self) -> List[str]:
        return self._validation_errors.copy()
    
    def validate_config_file(self) -> Tuple[bool, List[str]]:
        """
        Validate configuration file without loading it.
        
        Returns:
            Tuple of (is_valid, error_messages)
        """
        if not os.path.exists(self.config_file_path):
            return False, ["Configuration file does not exist"]
        
        try:
            config_data = self._load_config_file()
            config_data = self._apply_env_overrides(config_data)
            config = validate_config_dict(config_data).to_legacy_config()
        except Exception as e:
            return False, [str(e)]
        
        errors = config.validate()
        return not errors, errors
    
    def start_hot_reload(self) -> None:
        """Start watching configuration file for changes."""
        if self._observer is not None:
            return
        
        config_dir = os.path.dirname(self.config_file_path) or "."
        os.makedirs(config_dir, exist_ok=True)
        
        self._observer = Observer()
        self._observer.schedule(ConfigFileHandler(self), config_dir, recursive=False)
        self._observer.start()
        
        logger.info(f"Started watching configuration file: {self.config_file_path}")
    
    def stop_hot_reload(self) -> None:
        """Stop watching configuration file for changes."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
            logger.info(f"Stopped watching configuration file: {self.config_file_path}")
    
    def is_hot_reload_active(self) -> bool:
        return self._observer is not None and self._observer.is_alive()
    
    def add_change_callback(self, callback: Callable[[CollectorConfig], None]) -> None:
        """Register a callback called with the new configuration after a reload."""
        self._change_callbacks.append(callback)
    
    def remove_change_callback(self, callback: Callable[[CollectorConfig], None]) -> None:
        if callback in self._change_callbacks:
            self._change_callbacks.remove(callback)
    
    def _reload_config(self) -> None:
        """Reload configuration from file and notify callbacks."""
        old_config = self._config
        if self._calculate_config_hash() == self._config_hash:
            return
        
        logger.info(f"Configuration file changed, reloading: {self.config_file_path}")
        
        try:
            new_config = self.load_config()
        except ValueError as e:
            logger.error(f"Error reloading configuration: {e}")
            return
        
        if old_config is not None and asdict(old_config) == asdict(new_config):
            logger.debug("Configuration content unchanged after reload")
            return
        
        for callback in self._change_callbacks:
            try:
                callback(new_config)
            except Exception as e:
                logger.error(f"Error in config change callback: {e}")
    
    def _load_config_file(self) -> Dict[str, Any]:
        """Load configuration data from file."""
        with open(self.config_file_path, 'r') as f:
            if self.config_file_path.endswith(('.yaml', '.yml')):
                return yaml.safe_load(f) or {}
            elif self.config_file_path.endswith('.json'):
                return json.load(f)
            else:
                raise ValueError(f"Unsupported config file format: {self.config_file_path}")
    
    def _apply_env_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration."""
        for env_var, config_path_str in get_env_var_mappings().items():
            env_value = os.getenv(env_var)
            if env_value is None:
                continue
            
            config_path = config_path_str.split('.')
            current = config_data
            for key in config_path[:-1]:
                current = current.setdefault(key, {})
            
            current[config_path[-1]] = self._convert_env_value(env_var, env_value)
        
        return config_data
    
    def _convert_env_value(self, env_var: str, env_value: str) -> Any:
        """Convert environment variable value to appropriate type."""
        if env_var in _INT_ENV_VARS:
            return int(env_value)
        elif env_var in _FLOAT_ENV_VARS:
            return float(env_value)
        elif env_var in _BOOL_ENV_VARS:
            return env_value.lower() in ('true', '1', 'yes', 'on')
        return env_value
    
    def _create_default_config(self) -> None:
        """Write a default configuration file."""
        default_config = asdict(CollectorConfig())
        
        config_dir = os.path.dirname(self.config_file_path)
        if config_dir:
            os.makedirs(config_dir, exist_ok=True)
        
        with open(self.config_file_path, 'w') as f:
            if self.config_file_path.endswith('.json'):
                json.dump(default_config, f, indent=2)
            else:
                yaml.safe_dump(default_config, f, default_flow_style=False, indent=2)
    
    def _calculate_config_hash(self) -> str:
        """Hash of the configuration file content plus any env overrides."""
        if not os.path.exists(self.config_file_path):
            return ""
        
        with open(self.config_file_path, 'rb') as f:
            content = f.read()
        
        env_vars = [
            f"{env_var}={os.getenv(env_var)}"
            for env_var in get_env_var_mappings()
            if os.getenv(env_var) is not None
        ]
        combined_content = content + "|".join(sorted(env_vars)).encode()
        
        return hashlib.sha256(combined_content).hexdigest()
