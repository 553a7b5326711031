"""
Pytest configuration and shared fixtures.
"""

import pytest

from pulsechain_price_collector.clients.pulsechain_client import (
    DECIMALS_SELECTOR,
    GET_RESERVES_SELECTOR,
    TOKEN0_SELECTOR,
    TOKEN1_SELECTOR,
    MockPulseChainClient,
)
from pulsechain_price_collector.pricing.decoder import SYNC_EVENT_TOPIC

PAIR_ADDRESS = "0x6753560538eca67617a9ce605178f788be7e524e"
TOKEN0_ADDRESS = "0xa1077a294dde1b09bb078844df40758a5d0f9a27"
TOKEN1_ADDRESS = "0x15d38573d2feeb82e7ad5187ab8c1d52810b1f07"
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

# 2024-01-01T00:00:00Z
NOW_SECONDS = 1704067200
NOW_MS = NOW_SECONDS * 1000


def word(value: int) -> str:
    """Encode an integer as a 32-byte hex word without prefix."""
    return format(value, "064x")


def address_word(address: str) -> str:
    return "0x" + address[2:].rjust(64, "0")


def sync_data(reserve0: int, reserve1: int) -> str:
    return "0x" + word(reserve0) + word(reserve1)


def sync_log(block_number: int, reserve0: int, reserve1: int, tx_hash: str = None) -> dict:
    """Explorer-style Sync log item."""
    return {
        "address": PAIR_ADDRESS,
        "block_number": block_number,
        "transaction_hash": tx_hash or f"0x{block_number:064x}",
        "topics": [SYNC_EVENT_TOPIC, None, None, None],
        "data": sync_data(reserve0, reserve1),
    }


def other_log(block_number: int) -> dict:
    """Explorer-style non-Sync log item."""
    return {
        "address": PAIR_ADDRESS,
        "block_number": block_number,
        "transaction_hash": f"0x{block_number:064x}",
        "topics": [TRANSFER_TOPIC, None, None],
        "data": "0x" + word(1),
    }


def pair_eth_calls(token0_decimals: int = 18, token1_decimals: int = 18) -> dict:
    return {
        (PAIR_ADDRESS, TOKEN0_SELECTOR): address_word(TOKEN0_ADDRESS),
        (PAIR_ADDRESS, TOKEN1_SELECTOR): address_word(TOKEN1_ADDRESS),
        (TOKEN0_ADDRESS, DECIMALS_SELECTOR): "0x" + word(token0_decimals),
        (TOKEN1_ADDRESS, DECIMALS_SELECTOR): "0x" + word(token1_decimals),
        (PAIR_ADDRESS, GET_RESERVES_SELECTOR): "0x" + word(2 * 10 ** 18) + word(6 * 10 ** 18) + word(NOW_SECONDS),
    }


@pytest.fixture
def empty_fixtures_dir(tmp_path):
    """Directory without fixture files, so mock clients start empty."""
    return str(tmp_path / "no-fixtures")


@pytest.fixture
def make_mock_client(empty_fixtures_dir):
    """Factory for mock clients with in-memory chain data."""
    def _make(logs=None, blocks=None, eth_calls=None):
        return MockPulseChainClient(
            fixtures_path=empty_fixtures_dir,
            logs=logs if logs is not None else [],
            blocks=blocks if blocks is not None else {},
            eth_calls=eth_calls if eth_calls is not None else pair_eth_calls(),
        )
    return _make
