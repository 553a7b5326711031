"""
Tests for the PulseChain explorer/RPC client wrapper.
"""

import asyncio
from datetime import datetime, timedelta

import aiohttp
import pytest
from unittest.mock import AsyncMock, MagicMock

from pulsechain_price_collector.clients.factory import (
    create_async_pulsechain_client,
    create_pulsechain_client,
)
from pulsechain_price_collector.clients.pulsechain_client import (
    DECIMALS_SELECTOR,
    GET_RESERVES_SELECTOR,
    TOKEN0_SELECTOR,
    MockPulseChainClient,
    PulseChainClient,
    RateLimiter,
)
from pulsechain_price_collector.config.models import APIConfig, ErrorConfig
from pulsechain_price_collector.pricing.decoder import SYNC_EVENT_TOPIC
from pulsechain_price_collector.utils.error_handling import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    CircuitBreakerState,
    GatewayError,
    RetryConfig,
    RPCError,
)

from conftest import PAIR_ADDRESS, TOKEN0_ADDRESS, address_word, sync_data, sync_log, word


class FakeResponse:
    """Minimal stand-in for an aiohttp response used as an async context manager."""

    def __init__(self, payload, status=200, reason="OK"):
        self.payload = payload
        self.status = status
        self.reason = reason

    async def json(self, content_type=None):
        return self.payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


def fake_session(*responses, method="post"):
    session = MagicMock()
    session.closed = False
    getattr(session, method).side_effect = list(responses)
    return session


class TestRateLimiter:
    """Test rate limiter functionality."""

    @pytest.mark.asyncio
    async def test_rate_limiter_enforces_delay(self):
        """Test that rate limiter enforces minimum delay between calls."""
        limiter = RateLimiter(delay=0.1)
        loop = asyncio.get_running_loop()

        start_time = loop.time()
        await limiter.wait()
        mid_time = loop.time()
        await limiter.wait()
        end_time = loop.time()

        assert mid_time - start_time < 0.05
        assert end_time - mid_time >= 0.09

    @pytest.mark.asyncio
    async def test_zero_delay_is_noop(self):
        limiter = RateLimiter(delay=0)

        await limiter.wait()

        assert limiter.last_call == 0.0


class TestCircuitBreaker:
    """Test circuit breaker functionality."""

    def test_circuit_breaker_initial_state(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        assert cb.can_execute() is True
        assert cb.state == CircuitBreakerState.CLOSED

    def test_circuit_breaker_opens_after_failures(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=60)

        for _ in range(3):
            cb.record_failure()

        assert cb.state == CircuitBreakerState.OPEN
        assert cb.can_execute() is False

    def test_circuit_breaker_resets_on_success(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=60)

        cb.record_failure()
        cb.record_failure()
        cb.record_success()

        assert cb.failure_count == 0
        assert cb.state == CircuitBreakerState.CLOSED

    def test_half_open_after_timeout(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=60)

        cb.record_failure()
        assert cb.state == CircuitBreakerState.OPEN
        assert cb.can_execute() is False

        cb._last_failure_time = datetime.now() - timedelta(seconds=61)

        assert cb.can_execute() is True
        assert cb.state == CircuitBreakerState.HALF_OPEN

    @pytest.mark.asyncio
    async def test_call_records_failures(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=60)

        async def failing():
            raise RuntimeError("boom")

        async def succeeding():
            return 1

        with pytest.raises(RuntimeError):
            await cb.call(failing)

        with pytest.raises(CircuitBreakerOpenError):
            await cb.call(succeeding)


class TestRetryConfig:

    def test_delay_grows_and_caps(self):
        config = RetryConfig(base_delay=1.0, backoff_factor=2.0, max_delay=5.0, jitter=False)

        assert [config.get_delay(i) for i in range(4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_stays_within_half(self):
        config = RetryConfig(base_delay=2.0, jitter=True)

        for _ in range(20):
            assert 1.0 <= config.get_delay(0) <= 2.0


class TestPulseChainClient:
    """Test the network client with stubbed transport."""

    def setup_method(self):
        """Set up test fixtures."""
        self.api_config = APIConfig(
            explorer_base_url="https://explorer.test/api/v2",
            rpc_url="https://rpc.test",
            timeout=30,
            max_concurrent=5,
            rate_limit_delay=0.0
        )
        self.error_config = ErrorConfig(
            max_retries=2,
            backoff_factor=1.5,
            circuit_breaker_threshold=3,
            circuit_breaker_timeout=60
        )

    def make_client(self):
        client = PulseChainClient(self.api_config, self.error_config)
        client.retry_config = RetryConfig(max_retries=2, base_delay=0.001, jitter=False)
        return client

    @pytest.mark.asyncio
    async def test_context_manager(self):
        """Test client works as async context manager."""
        async with PulseChainClient(self.api_config, self.error_config) as client:
            assert client._session is not None

        assert client._session.closed

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self):
        client = self.make_client()
        operation = AsyncMock(side_effect=[GatewayError("unavailable", status=503), {"ok": True}])

        result = await client._execute_with_retry(operation, "test op")

        assert result == {"ok": True}
        assert operation.await_count == 2
        assert client.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_rate_limited_requests_are_retried(self):
        client = self.make_client()
        operation = AsyncMock(side_effect=[GatewayError("slow down", status=429), "done"])

        assert await client._execute_with_retry(operation, "test op") == "done"

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        client = self.make_client()
        operation = AsyncMock(side_effect=asyncio.TimeoutError())

        with pytest.raises(GatewayError) as exc_info:
            await client._execute_with_retry(operation, "test op")

        assert operation.await_count == 3
        assert isinstance(exc_info.value.__cause__, asyncio.TimeoutError)

    @pytest.mark.asyncio
    async def test_transport_errors_surface_as_gateway_errors(self):
        client = self.make_client()
        operation = AsyncMock(side_effect=aiohttp.ClientConnectionError("connection reset"))

        with pytest.raises(GatewayError, match="connection reset"):
            await client._execute_with_retry(operation, "test op")

        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self):
        client = self.make_client()
        operation = AsyncMock(side_effect=GatewayError("not found", status=404))

        with pytest.raises(GatewayError):
            await client._execute_with_retry(operation, "test op")

        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_rpc_errors_not_retried(self):
        client = self.make_client()
        operation = AsyncMock(side_effect=RPCError("execution reverted", code=3))

        with pytest.raises(RPCError):
            await client._execute_with_retry(operation, "test op")

        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_open_circuit_rejects_calls(self):
        client = self.make_client()
        for _ in range(self.error_config.circuit_breaker_threshold):
            client.circuit_breaker.record_failure()
        operation = AsyncMock()

        with pytest.raises(CircuitBreakerOpenError):
            await client._execute_with_retry(operation, "test op")

        operation.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_logs_paged_response(self):
        client = self.make_client()
        cursor = {"block_number": 99, "index": 3, "items_count": 2}
        client._get_json = AsyncMock(side_effect=[
            {"items": [sync_log(100, 1, 2), sync_log(101, 3, 4)], "next_page_params": cursor},
            {"items": [sync_log(99, 5, 6)], "next_page_params": None},
        ])

        first = await client.get_logs(PAIR_ADDRESS, page=1, page_size=2)
        second = await client.get_logs(PAIR_ADDRESS, page=2, page_size=2, cursor=first.next_page_params)

        assert [log.block_number for log in first.items] == [100, 101]
        assert first.has_next_page is True
        assert first.next_page_params == cursor
        assert second.has_next_page is False
        assert second.next_page_params is None

        endpoint, params = client._get_json.await_args_list[1].args
        assert endpoint == f"/addresses/{PAIR_ADDRESS}/logs"
        assert params["page"] == 2
        assert params["limit"] == 2
        assert params["index"] == 3

    @pytest.mark.asyncio
    async def test_get_logs_keeps_no_cursor_state(self):
        client = self.make_client()
        client._get_json = AsyncMock(return_value={
            "items": [sync_log(100, 1, 2)],
            "next_page_params": {"block_number": 99, "index": 0},
        })
        before = dict(vars(client))

        for i in range(50):
            await client.get_logs(f"0x{i:040x}", page=1, page_size=1)
        await client.get_logs(PAIR_ADDRESS, page=2, page_size=1)

        assert vars(client).keys() == before.keys()
        endpoint, params = client._get_json.await_args.args
        assert params == {"page": 2, "limit": 1}

    @pytest.mark.asyncio
    async def test_get_logs_rejects_malformed_cursor(self):
        client = self.make_client()
        client._get_json = AsyncMock(return_value={"items": [], "next_page_params": "page=2"})

        with pytest.raises(GatewayError):
            await client.get_logs(PAIR_ADDRESS)

    @pytest.mark.asyncio
    async def test_get_logs_list_response(self):
        client = self.make_client()
        client._get_json = AsyncMock(return_value=[sync_log(1, 1, 1), "junk"])

        page = await client.get_logs(PAIR_ADDRESS, page=1, page_size=1000)

        assert len(page.items) == 1
        assert page.items[0].topics[0] == SYNC_EVENT_TOPIC
        assert page.has_next_page is False

    @pytest.mark.asyncio
    async def test_get_logs_unexpected_payload(self):
        client = self.make_client()
        client._get_json = AsyncMock(return_value="oops")

        with pytest.raises(GatewayError):
            await client.get_logs(PAIR_ADDRESS)

    @pytest.mark.asyncio
    async def test_get_json_raises_on_http_error(self):
        client = self.make_client()
        client._session = fake_session(FakeResponse({}, status=404, reason="Not Found"), method="get")

        with pytest.raises(GatewayError) as exc_info:
            await client.get_block("123")

        assert exc_info.value.status == 404

    @pytest.mark.asyncio
    async def test_get_block(self):
        client = self.make_client()
        client._session = fake_session(
            FakeResponse({"height": 123, "timestamp": "2024-01-01T00:00:00.000000Z"}),
            method="get",
        )

        block = await client.get_block("123")

        assert block["timestamp"] == "2024-01-01T00:00:00.000000Z"
        url = client._session.get.call_args.args[0]
        assert url == "https://explorer.test/api/v2/blocks/123"

    @pytest.mark.asyncio
    async def test_eth_call_returns_result(self):
        client = self.make_client()
        client._session = fake_session(FakeResponse({"jsonrpc": "2.0", "id": 1, "result": "0x" + word(18)}))

        result = await client.eth_call(TOKEN0_ADDRESS, DECIMALS_SELECTOR)

        assert result == "0x" + word(18)
        payload = client._session.post.call_args.kwargs["json"]
        assert payload["method"] == "eth_call"
        assert payload["params"] == [{"to": TOKEN0_ADDRESS, "data": DECIMALS_SELECTOR}, "latest"]

    @pytest.mark.asyncio
    async def test_eth_call_error_member(self):
        client = self.make_client()
        client._session = fake_session(
            FakeResponse({"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "execution reverted"}})
        )

        with pytest.raises(RPCError) as exc_info:
            await client.eth_call(PAIR_ADDRESS, TOKEN0_SELECTOR)

        assert exc_info.value.code == -32000
        assert client._session.post.call_count == 1

    @pytest.mark.asyncio
    async def test_token_decimals_default_on_failure(self):
        client = self.make_client()
        client.eth_call = AsyncMock(side_effect=RPCError("execution reverted"))

        assert await client.get_token_decimals(TOKEN0_ADDRESS) == 18
        assert await client.get_token_decimals(TOKEN0_ADDRESS, default=9) == 9

    @pytest.mark.asyncio
    async def test_token_decimals_default_on_garbage(self):
        client = self.make_client()
        client.eth_call = AsyncMock(return_value="0xnothex")

        assert await client.get_token_decimals(TOKEN0_ADDRESS) == 18

    @pytest.mark.asyncio
    @pytest.mark.parametrize("decimals, expected", [(0, 0), (77, 77), (78, 18), (2 ** 100, 18)])
    async def test_token_decimals_bounded(self, decimals, expected):
        client = self.make_client()
        client.eth_call = AsyncMock(return_value="0x" + word(decimals))

        assert await client.get_token_decimals(TOKEN0_ADDRESS) == expected

    @pytest.mark.asyncio
    async def test_token_address_from_word(self):
        client = self.make_client()
        client.eth_call = AsyncMock(return_value=address_word(TOKEN0_ADDRESS.upper().replace("0X", "0x")))

        assert await client.get_token0_from_pair(PAIR_ADDRESS) == TOKEN0_ADDRESS

    @pytest.mark.asyncio
    async def test_get_reserves_from_pair(self):
        client = self.make_client()
        client.eth_call = AsyncMock(return_value="0x" + word(5) + word(7) + word(1704067200))

        reserves = await client.get_reserves_from_pair(PAIR_ADDRESS)

        assert (reserves.reserve0, reserves.reserve1, reserves.block_timestamp_last) == (5, 7, 1704067200)
        client.eth_call.assert_awaited_once_with(PAIR_ADDRESS, GET_RESERVES_SELECTOR)


class TestMockPulseChainClient:
    """Test CSV fixture-backed client."""

    @pytest.fixture
    def fixtures_dir(self, tmp_path):
        (tmp_path / "logs.csv").write_text(
            "address,block_number,transaction_hash,topic0,data\n"
            f"{PAIR_ADDRESS},100,0xaa,{SYNC_EVENT_TOPIC},{sync_data(1, 2)}\n"
            f"{PAIR_ADDRESS},101,0xbb,{SYNC_EVENT_TOPIC},{sync_data(3, 4)}\n"
            f"0x0000000000000000000000000000000000000001,102,0xcc,{SYNC_EVENT_TOPIC},{sync_data(5, 6)}\n"
        )
        (tmp_path / "blocks.csv").write_text(
            "block_number,timestamp\n"
            "100,2024-01-01T00:00:00Z\n"
            "101,2024-01-01T00:00:10Z\n"
        )
        (tmp_path / "eth_calls.csv").write_text(
            "address,selector,result\n"
            f"{PAIR_ADDRESS.upper().replace('0X', '0x')},{TOKEN0_SELECTOR},{address_word(TOKEN0_ADDRESS)}\n"
        )
        return str(tmp_path)

    @pytest.mark.asyncio
    async def test_loads_logs_for_address(self, fixtures_dir):
        client = MockPulseChainClient(fixtures_dir)

        page = await client.get_logs(PAIR_ADDRESS)

        assert [log.block_number for log in page.items] == [100, 101]
        assert page.items[0].transaction_hash == "0xaa"
        assert page.has_next_page is False

    @pytest.mark.asyncio
    async def test_pages_are_sliced(self, fixtures_dir):
        client = MockPulseChainClient(fixtures_dir)

        first = await client.get_logs(PAIR_ADDRESS, page=1, page_size=1)
        second = await client.get_logs(PAIR_ADDRESS, page=2, page_size=1)

        assert [log.block_number for log in first.items] == [100]
        assert first.has_next_page is True
        assert [log.block_number for log in second.items] == [101]
        assert second.has_next_page is False

    @pytest.mark.asyncio
    async def test_blocks_and_missing_block(self, fixtures_dir):
        client = MockPulseChainClient(fixtures_dir)

        block = await client.get_block("100")
        assert block == {"height": 100, "timestamp": "2024-01-01T00:00:00Z"}

        with pytest.raises(GatewayError) as exc_info:
            await client.get_block("999")
        assert exc_info.value.status == 404

    @pytest.mark.asyncio
    async def test_eth_calls_match_case_insensitively(self, fixtures_dir):
        client = MockPulseChainClient(fixtures_dir)

        assert await client.get_token0_from_pair(PAIR_ADDRESS) == TOKEN0_ADDRESS
        with pytest.raises(RPCError):
            await client.eth_call(PAIR_ADDRESS, DECIMALS_SELECTOR)

    @pytest.mark.asyncio
    async def test_missing_fixtures_directory(self, tmp_path):
        client = MockPulseChainClient(str(tmp_path / "missing"))

        page = await client.get_logs(PAIR_ADDRESS)

        assert page.items == []

    @pytest.mark.asyncio
    async def test_records_calls(self, fixtures_dir):
        client = MockPulseChainClient(fixtures_dir)

        await client.get_logs(PAIR_ADDRESS, page=1, page_size=10)
        await client.get_block("100")

        assert client.calls == [("get_logs", (PAIR_ADDRESS, 1, 10)), ("get_block", "100")]


class TestClientFactory:

    def test_creates_mock_client(self, tmp_path):
        client = create_pulsechain_client(APIConfig(), ErrorConfig(), use_mock=True, fixtures_path=str(tmp_path))

        assert isinstance(client, MockPulseChainClient)

    def test_creates_network_client(self):
        client = create_pulsechain_client(APIConfig(), ErrorConfig())

        assert isinstance(client, PulseChainClient)
        assert client.circuit_breaker.failure_threshold == 5

    @pytest.mark.asyncio
    async def test_async_factory_enters_context(self):
        client = await create_async_pulsechain_client(APIConfig(), ErrorConfig())
        try:
            assert client._session is not None
            assert not client._session.closed
        finally:
            await client.close()
