"""
Utility modules for the PulseChain price collector.
"""

from .error_handling import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    CircuitBreakerState,
    GatewayError,
    PairMetadataError,
    PulseChainCollectorError,
    RetryConfig,
    RPCError,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerOpenError",
    "CircuitBreakerState",
    "GatewayError",
    "PairMetadataError",
    "PulseChainCollectorError",
    "RetryConfig",
    "RPCError",
]
