"""
Factory for creating PulseChain data clients.
"""

from ..config.models import APIConfig, ErrorConfig
from .pulsechain_client import BasePulseChainClient, MockPulseChainClient, PulseChainClient


def create_pulsechain_client(
    api_config: APIConfig,
    error_config: ErrorConfig,
    use_mock: bool = False,
    fixtures_path: str = "fixtures"
) -> BasePulseChainClient:
    """
    Create a PulseChain data client.
    
    Args:
        api_config: API configuration settings
        error_config: Error handling configuration
        use_mock: Whether to use the CSV fixture-backed client
        fixtures_path: Path to CSV fixtures for mock client
        
    Returns:
        Configured client instance
    """
    if use_mock:
        return MockPulseChainClient(fixtures_path)
    return PulseChainClient(api_config, error_config)


async def create_async_pulsechain_client(
    api_config: APIConfig,
    error_config: ErrorConfig,
    use_mock: bool = False,
    fixtures_path: str = "fixtures"
) -> BasePulseChainClient:
    """Create a client and enter its async context."""
    client = create_pulsechain_client(api_config, error_config, use_mock, fixtures_path)
    await client.__aenter__()
    return client
