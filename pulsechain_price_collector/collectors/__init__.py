"""
Collectors that assemble chain data into price series.
"""

from .onchain_price import OnChainPriceCollector

__all__ = ["OnChainPriceCollector"]
