"""
PulseChain explorer/RPC client wrapper with rate limiting, retry logic, and error handling.
"""

import asyncio
import csv
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from ..config.models import APIConfig, ErrorConfig
from ..models.core import LogPage, LogRecord, PairReserves
from ..utils.error_handling import (
    CircuitBreaker, CircuitBreakerOpenError, GatewayError, RetryConfig, RPCError
)
from ..utils.parsing import address_from_word, parse_hex_word, parse_int


logger = logging.getLogger(__name__)

# Function selectors
TOKEN0_SELECTOR = "0x0dfe1681"
TOKEN1_SELECTOR = "0xd21220a7"
DECIMALS_SELECTOR = "0x313ce567"
GET_RESERVES_SELECTOR = "0x0902f1ac"

DEFAULT_TOKEN_DECIMALS = 18
# 10**77 is the largest power of ten below 2**256
MAX_TOKEN_DECIMALS = 77


class RateLimiter:
    """Rate limiter for API calls with configurable delay."""

    def __init__(self, delay: float = 1.0):
        self.delay = delay
        self.last_call = 0.0

    async def wait(self):
        """Wait if necessary to respect rate limits."""
        if self.delay <= 0:
            return

        loop = asyncio.get_running_loop()
        time_since_last = loop.time() - self.last_call

        if time_since_last < self.delay:
            await asyncio.sleep(self.delay - time_since_last)

        self.last_call = loop.time()


class BasePulseChainClient(ABC):
    """
    Abstract base class for PulseChain data clients.

    Subclasses provide the three raw capabilities; the contract helpers
    built on ``eth_call`` are shared.
    """

    @abstractmethod
    async def get_logs(
        self,
        address: str,
        page: int = 1,
        page_size: int = 1000,
        cursor: Optional[Dict[str, Any]] = None,
    ) -> LogPage:
        """
        Get one page of event logs emitted by an address.

        ``cursor`` is the ``next_page_params`` of the previous page, if any.
        """
        pass

    @abstractmethod
    async def get_block(self, block_number_or_hash: str) -> Dict[str, Any]:
        """Get a block; the result carries an ISO-8601 ``timestamp``."""
        pass

    @abstractmethod
    async def eth_call(self, contract_address: str, call_data: str, block_tag: str = "latest") -> str:
        """Execute a read-only contract call and return the hex result."""
        pass

    async def get_token0_from_pair(self, pair_address: str) -> str:
        """Read token0 address from a Uniswap V2 pair."""
        result = await self.eth_call(pair_address, TOKEN0_SELECTOR)
        return address_from_word(result)

    async def get_token1_from_pair(self, pair_address: str) -> str:
        """Read token1 address from a Uniswap V2 pair."""
        result = await self.eth_call(pair_address, TOKEN1_SELECTOR)
        return address_from_word(result)

    async def get_token_decimals(self, token_address: str, default: int = DEFAULT_TOKEN_DECIMALS) -> int:
        """Read decimals from an ERC20 token, falling back to ``default`` on any failure."""
        try:
            result = await self.eth_call(token_address, DECIMALS_SELECTOR)
            decimals = parse_int(result)
            if decimals is None:
                raise ValueError(f"Unparseable decimals result: {result!r}")
            if not 0 <= decimals <= MAX_TOKEN_DECIMALS:
                raise ValueError(f"Decimals out of range: {decimals}")
            return decimals
        except Exception as e:
            logger.warning(f"Failed to get decimals for {token_address}, defaulting to {default}: {e}")
            return default

    async def get_reserves_from_pair(self, pair_address: str) -> PairReserves:
        """Read current reserves and the last update timestamp from a pair."""
        result = await self.eth_call(pair_address, GET_RESERVES_SELECTOR)
        return PairReserves(
            reserve0=parse_hex_word(result, 0),
            reserve1=parse_hex_word(result, 1),
            block_timestamp_last=parse_hex_word(result, 2),
        )

    async def close(self) -> None:
        """Release any network resources."""
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class PulseChainClient(BasePulseChainClient):
    """
    Async client for a Blockscout-compatible explorer API and a JSON-RPC node.

    Every request goes through a shared rate limiter, a concurrency
    semaphore and a circuit breaker, and is retried with exponential
    backoff unless the failure is a client error.
    """

    def __init__(self, api_config: APIConfig, error_config: ErrorConfig):
        """
        Initialize the client with configuration.

        Args:
            api_config: API configuration settings
            error_config: Error handling configuration
        """
        self.api_config = api_config
        self.error_config = error_config

        self.rate_limiter = RateLimiter(api_config.rate_limit_delay)
        self.circuit_breaker = CircuitBreaker(
            error_config.circuit_breaker_threshold,
            error_config.circuit_breaker_timeout
        )
        self.retry_config = RetryConfig(
            max_retries=error_config.max_retries,
            backoff_factor=error_config.backoff_factor,
        )

        self._semaphore = asyncio.Semaphore(api_config.max_concurrent)
        self._session: Optional[aiohttp.ClientSession] = None
        self._rpc_id = 0

    async def __aenter__(self):
        self._get_session()
        return self

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.api_config.timeout),
                headers={"Accept": "application/json"},
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    @staticmethod
    def _is_retryable(error: Exception) -> bool:
        if isinstance(error, RPCError):
            return False
        if isinstance(error, GatewayError) and error.status is not None:
            return error.status == 429 or error.status >= 500
        return True

    async def _execute_with_retry(self, operation, description: str) -> Any:
        """
        Execute an operation with retry logic and circuit breaker.

        Raises:
            CircuitBreakerOpenError: If the circuit is open
            GatewayError: Once retries are exhausted on transport errors
            Exception: The last failure once retries are exhausted, or the
                first non-retryable failure
        """
        last_exception = None

        for attempt in range(self.retry_config.max_retries + 1):
            if not self.circuit_breaker.can_execute():
                raise CircuitBreakerOpenError(
                    f"Circuit breaker is open - too many recent failures ({description})"
                )

            try:
                await self.rate_limiter.wait()
                async with self._semaphore:
                    result = await operation()
                self.circuit_breaker.record_success()
                return result

            except Exception as e:
                last_exception = e

                if not self._is_retryable(e):
                    raise

                self.circuit_breaker.record_failure()
                logger.warning(
                    f"{description} failed (attempt {attempt + 1}/{self.retry_config.max_retries + 1}): {e}"
                )

                if attempt == self.retry_config.max_retries:
                    break

                await asyncio.sleep(self.retry_config.get_delay(attempt))

        logger.error(f"All retries exhausted for {description}: {last_exception}")
        if isinstance(last_exception, (aiohttp.ClientError, asyncio.TimeoutError)):
            raise GatewayError(f"{description} failed: {last_exception}") from last_exception
        raise last_exception

    async def _get_json(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.api_config.explorer_base_url.rstrip('/')}/{endpoint.lstrip('/')}"

        async def _request():
            session = self._get_session()
            async with session.get(url, params=params) as response:
                if response.status >= 400:
                    raise GatewayError(
                        f"API call failed: {response.status} {response.reason}",
                        status=response.status
                    )
                data = await response.json(content_type=None)

            if isinstance(data, dict) and data.get("error"):
                raise GatewayError(str(data["error"]), status=response.status)
            return data

        return await self._execute_with_retry(_request, f"GET {endpoint}")

    async def get_logs(
        self,
        address: str,
        page: int = 1,
        page_size: int = 1000,
        cursor: Optional[Dict[str, Any]] = None,
    ) -> LogPage:
        """
        Get one page of logs for an address.

        The explorer may answer with a bare list or with ``{"items": [...],
        "next_page_params": {...}}``; in the latter case the cursor is
        returned on the page for the caller to pass back as ``cursor``.
        """
        params: Dict[str, Any] = {"page": page, "limit": page_size}
        if cursor:
            params.update(cursor)

        data = await self._get_json(f"/addresses/{address}/logs", params)

        next_params = None
        if isinstance(data, list):
            raw_items = data
            has_next_page = len(raw_items) >= page_size
        elif isinstance(data, dict):
            raw_items = data.get("items") or []
            if "next_page_params" in data:
                next_params = data.get("next_page_params") or None
                has_next_page = next_params is not None
            else:
                has_next_page = len(raw_items) >= page_size
        else:
            raise GatewayError(f"Unexpected logs response type: {type(data).__name__}")

        if next_params is not None and not isinstance(next_params, dict):
            raise GatewayError(f"Unexpected next_page_params type: {type(next_params).__name__}")

        items = [LogRecord.from_api(item) for item in raw_items if isinstance(item, dict)]
        return LogPage(items=items, has_next_page=has_next_page, next_page_params=next_params)

    async def get_block(self, block_number_or_hash: str) -> Dict[str, Any]:
        """Get block details."""
        data = await self._get_json(f"/blocks/{block_number_or_hash}")
        if not isinstance(data, dict):
            raise GatewayError(f"Unexpected block response for {block_number_or_hash}")
        return data

    async def eth_call(self, contract_address: str, call_data: str, block_tag: str = "latest") -> str:
        """
        Make a JSON-RPC ``eth_call``.

        Raises:
            RPCError: If the node answers with an error member
            GatewayError: On HTTP failures
        """
        self._rpc_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": "eth_call",
            "params": [{"to": contract_address, "data": call_data}, block_tag],
            "id": self._rpc_id,
        }

        async def _call():
            session = self._get_session()
            async with session.post(self.api_config.rpc_url, json=payload) as response:
                if response.status >= 400:
                    raise GatewayError(
                        f"RPC call failed: {response.status} {response.reason}",
                        status=response.status
                    )
                result = await response.json(content_type=None)

            error = result.get("error")
            if error:
                message = error.get("message") if isinstance(error, dict) else str(error)
                code = error.get("code") if isinstance(error, dict) else None
                raise RPCError(f"RPC error: {message}", code=code)
            return result.get("result")

        return await self._execute_with_retry(_call, f"eth_call {call_data} on {contract_address}")


class MockPulseChainClient(BasePulseChainClient):
    """
    Mock client for testing and offline runs using CSV fixture data.

    Fixture files in ``fixtures_path``:

    - ``logs.csv``: address (optional), block_number, transaction_hash, topic0, data
    - ``blocks.csv``: block_number, timestamp
    - ``eth_calls.csv``: address, selector, result

    Data may also be passed in directly, which takes precedence over files.
    """

    def __init__(
        self,
        fixtures_path: str = "fixtures",
        logs: Optional[List[Dict[str, Any]]] = None,
        blocks: Optional[Dict[int, Any]] = None,
        eth_calls: Optional[Dict[Tuple[str, str], str]] = None,
    ):
        self.fixtures_path = Path(fixtures_path)
        self._load_fixtures()

        if logs is not None:
            self.logs = logs
        if blocks is not None:
            self.blocks = blocks
        if eth_calls is not None:
            self.eth_calls = {(address.lower(), selector): result for (address, selector), result in eth_calls.items()}

        self.calls: List[Tuple[str, Any]] = []

    def _load_fixtures(self) -> None:
        self.logs: List[Dict[str, Any]] = []
        self.blocks: Dict[int, Any] = {}
        self.eth_calls: Dict[Tuple[str, str], str] = {}

        for row in self._load_csv(self.fixtures_path / "logs.csv"):
            self.logs.append({
                "address": (row.get("address") or "").lower() or None,
                "block_number": row.get("block_number"),
                "transaction_hash": row.get("transaction_hash") or "",
                "topics": [row.get("topic0")] if row.get("topic0") else [],
                "data": row.get("data"),
            })

        for row in self._load_csv(self.fixtures_path / "blocks.csv"):
            block_number = parse_int(row.get("block_number"))
            if block_number is not None:
                self.blocks[block_number] = row.get("timestamp")

        for row in self._load_csv(self.fixtures_path / "eth_calls.csv"):
            self.eth_calls[(row["address"].lower(), row["selector"])] = row["result"]

    def _load_csv(self, file_path: Path) -> List[Dict[str, str]]:
        """Load CSV file and return as list of dictionaries."""
        if not file_path.exists():
            return []

        try:
            with open(file_path, 'r', encoding='utf-8', newline='') as f:
                return [
                    {key: (value.strip() if value else value) for key, value in row.items()}
                    for row in csv.DictReader(f)
                ]
        except (OSError, csv.Error) as e:
            logger.warning(f"Failed to load fixture {file_path}: {e}")
            return []

    async def get_logs(
        self,
        address: str,
        page: int = 1,
        page_size: int = 1000,
        cursor: Optional[Dict[str, Any]] = None,
    ) -> LogPage:
        """Get one page of logs (mock); pages are sliced by number, so ``cursor`` is ignored."""
        self.calls.append(("get_logs", (address, page, page_size)))

        matching = [
            log for log in self.logs
            if not log.get("address") or log["address"] == address.lower()
        ]
        start = (page - 1) * page_size
        chunk = matching[start:start + page_size]

        return LogPage(
            items=[LogRecord.from_api(item) for item in chunk],
            has_next_page=start + page_size < len(matching),
        )

    async def get_block(self, block_number_or_hash: str) -> Dict[str, Any]:
        """Get block details (mock)."""
        self.calls.append(("get_block", block_number_or_hash))

        block_number = parse_int(block_number_or_hash)
        if block_number not in self.blocks:
            raise GatewayError(f"Block not found: {block_number_or_hash}", status=404)

        return {"height": block_number, "timestamp": self.blocks[block_number]}

    async def eth_call(self, contract_address: str, call_data: str, block_tag: str = "latest") -> str:
        """Execute a contract call (mock)."""
        self.calls.append(("eth_call", (contract_address, call_data)))

        key = (contract_address.lower(), call_data)
        if key not in self.eth_calls:
            raise RPCError(f"RPC error: execution reverted ({call_data} on {contract_address})")

        return self.eth_calls[key]
