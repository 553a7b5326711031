"""
Configuration data models.
"""

from dataclasses import dataclass, field
from typing import List, Optional

TIME_RANGES = ["1H", "1D", "1W", "1M", "1Y", "ALL"]
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass
class APIConfig:
    """Explorer API and JSON-RPC endpoint configuration."""
    explorer_base_url: str = "https://api.scan.pulsechain.com/api/v2"
    rpc_url: str = "https://rpc.pulsechain.com"
    timeout: int = 30
    max_concurrent: int = 50
    rate_limit_delay: float = 0.0


@dataclass
class ErrorConfig:
    """Error handling configuration."""
    max_retries: int = 3
    backoff_factor: float = 2.0
    circuit_breaker_threshold: int = 5
    circuit_breaker_timeout: int = 300  # seconds


@dataclass
class ReconstructionConfig:
    """Price reconstruction tuning."""
    page_size: int = 1000
    max_pages: int = 10
    block_batch_size: int = 50
    spike_threshold: float = 10.0
    default_decimals: int = 18
    default_time_range: str = "1D"
    max_duration_seconds: Optional[float] = None


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None
    structured: bool = True


@dataclass
class CollectorConfig:
    """Main configuration container."""
    api: APIConfig = field(default_factory=APIConfig)
    error_handling: ErrorConfig = field(default_factory=ErrorConfig)
    reconstruction: ReconstructionConfig = field(default_factory=ReconstructionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    
    def validate(self) -> List[str]:
        """
        Validate configuration settings.
        
        Returns:
            List of validation errors, empty if valid
        """
        errors = []
        
        for name, url in (("explorer_base_url", self.api.explorer_base_url), ("rpc_url", self.api.rpc_url)):
            if not url.startswith(("http://", "https://")):
                errors.append(f"API {name} must start with http:// or https://")
        
        if self.api.max_concurrent < 1:
            errors.append("API max_concurrent must be at least 1")
        
        if self.error_handling.max_retries < 0:
            errors.append("Max retries must be non-negative")
        
        recon = self.reconstruction
        if recon.page_size < 1:
            errors.append("Page size must be at least 1")
        if recon.max_pages < 1:
            errors.append("Max pages must be at least 1")
        if recon.block_batch_size < 1:
            errors.append("Block batch size must be at least 1")
        if recon.spike_threshold <= 0:
            errors.append("Spike threshold must be positive")
        if recon.default_time_range not in TIME_RANGES:
            errors.append(
                f"Default time range '{recon.default_time_range}' "
                f"not in supported time ranges: {TIME_RANGES}"
            )
        if recon.max_duration_seconds is not None and recon.max_duration_seconds <= 0:
            errors.append("Max duration must be positive when set")
        
        if self.logging.level.upper() not in LOG_LEVELS:
            errors.append(f"Invalid log level: {self.logging.level}")
        
        return errors
