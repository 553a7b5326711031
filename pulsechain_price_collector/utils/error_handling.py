"""
Error handling utilities with exponential backoff and circuit breaker patterns.
"""

import inspect
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Optional, Type

logger = logging.getLogger(__name__)


class PulseChainCollectorError(Exception):
    """Base class for all collector errors."""
    pass


class GatewayError(PulseChainCollectorError):
    """Raised when the explorer API or RPC endpoint returns an unusable response."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RPCError(GatewayError):
    """Raised when a JSON-RPC response carries an error member."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class PairMetadataError(PulseChainCollectorError):
    """Raised when token addresses for a pair cannot be resolved."""

    def __init__(self, pair_address: str, cause: Exception):
        super().__init__(f"Failed to resolve pair metadata for {pair_address}: {cause}")
        self.pair_address = pair_address
        self.cause = cause


class CircuitBreakerOpenError(PulseChainCollectorError):
    """Raised when circuit breaker is open."""
    pass


class CircuitBreakerState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing, rejecting calls
    HALF_OPEN = "half_open"  # Testing if service recovered


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    backoff_factor: float = 2.0
    jitter: bool = True
    
    def get_delay(self, attempt: int) -> float:
        """Calculate delay for given attempt number."""
        delay = min(self.base_delay * (self.backoff_factor ** attempt), self.max_delay)
        
        if self.jitter:
            # Spread simultaneous retries from one batch
            delay *= (0.5 + random.random() * 0.5)
        
        return delay


class CircuitBreaker:
    """
    Circuit breaker implementation to prevent cascading failures.
    
    Tracks consecutive failures and opens the circuit when the threshold is
    exceeded, rejecting further calls until the recovery timeout has passed.
    """
    
    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 300,
        expected_exception: Type[Exception] = Exception
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        
        self._failure_count = 0
        self._last_failure_time: Optional[datetime] = None
        self._state = CircuitBreakerState.CLOSED
    
    @property
    def state(self) -> CircuitBreakerState:
        """Get current circuit breaker state."""
        return self._state
    
    @property
    def failure_count(self) -> int:
        return self._failure_count
    
    def _should_attempt_reset(self) -> bool:
        """Check if we should attempt to reset the circuit."""
        if self._state != CircuitBreakerState.OPEN:
            return False
        
        if self._last_failure_time is None:
            return True
        
        return datetime.now() - self._last_failure_time > timedelta(seconds=self.recovery_timeout)
    
    def can_execute(self) -> bool:
        """Check if a call may go through, moving OPEN to HALF_OPEN once the timeout passed."""
        if self._state == CircuitBreakerState.OPEN:
            if self._should_attempt_reset():
                self._state = CircuitBreakerState.HALF_OPEN
                logger.info("Circuit breaker transitioning to HALF_OPEN state")
                return True
            return False
        return True
    
    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Execute function with circuit breaker protection.
        
        Raises:
            CircuitBreakerOpenError: When circuit is open
            Original exception: When function fails
        """
        if not self.can_execute():
            raise CircuitBreakerOpenError("Circuit breaker is OPEN")
        
        try:
            if inspect.iscoroutinefunction(func):
                result = await func(*args, **kwargs)
            else:
                result = func(*args, **kwargs)
        except self.expected_exception:
            self.record_failure()
            raise
        
        self.record_success()
        return result
    
    def record_success(self) -> None:
        """Record a successful call and close the circuit."""
        if self._state == CircuitBreakerState.HALF_OPEN:
            logger.info("Circuit breaker reset to CLOSED state")
        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
    
    def record_failure(self) -> None:
        """Record a failure and update circuit state."""
        self._failure_count += 1
        self._last_failure_time = datetime.now()
        
        if self._failure_count >= self.failure_threshold and self._state != CircuitBreakerState.OPEN:
            self._state = CircuitBreakerState.OPEN
            logger.warning(
                f"Circuit breaker OPENED after {self._failure_count} failures. "
                f"Will retry after {self.recovery_timeout} seconds."
            )
