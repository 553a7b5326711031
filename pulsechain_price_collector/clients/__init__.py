"""
Clients for PulseChain explorer and RPC data.
"""

from .pulsechain_client import (
    BasePulseChainClient,
    MockPulseChainClient,
    PulseChainClient,
    RateLimiter,
)
from .factory import create_pulsechain_client, create_async_pulsechain_client

__all__ = [
    "BasePulseChainClient",
    "MockPulseChainClient",
    "PulseChainClient",
    "RateLimiter",
    "create_pulsechain_client",
    "create_async_pulsechain_client",
]
