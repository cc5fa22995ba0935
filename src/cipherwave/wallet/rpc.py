"""JSON-RPC clients.

Two ways of reaching a chain:
- JsonRpcClient: direct HTTP to a node (local dev node, remote RPC)
- TransportRpcClient: routed through the injected wallet transport

Both expose the same request() call plus typed helpers for the handful of
eth_* methods the signing contexts need.
"""

import itertools
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from cipherwave.chains import parse_chain_id
from cipherwave.wallet.base import RpcError, WalletTransport

logger = logging.getLogger(__name__)

_request_ids = itertools.count(1)


def to_quantity(value: int) -> str:
    """Encode an integer as a JSON-RPC hex quantity."""
    return hex(value)


def from_quantity(value: Any) -> int:
    """Decode a JSON-RPC hex quantity."""
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    raise RpcError(f"Invalid quantity: {value!r}")


class RpcClient(ABC):
    """Minimal Ethereum JSON-RPC client."""

    @abstractmethod
    async def request(self, method: str, params: Optional[list] = None) -> Any:
        """Send a JSON-RPC request and return its result."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Where requests go (for logs)."""
        pass

    async def chain_id(self) -> int:
        return parse_chain_id(await self.request("eth_chainId", []))

    async def call(self, tx: dict, block: str = "latest") -> str:
        return await self.request("eth_call", [tx, block])

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return from_quantity(await self.request("eth_getTransactionCount", [address, block]))

    async def estimate_gas(self, tx: dict) -> int:
        return from_quantity(await self.request("eth_estimateGas", [tx]))

    async def gas_price(self) -> int:
        return from_quantity(await self.request("eth_gasPrice", []))

    async def send_raw_transaction(self, raw_tx_hex: str) -> str:
        if not raw_tx_hex.startswith("0x"):
            raw_tx_hex = f"0x{raw_tx_hex}"
        return await self.request("eth_sendRawTransaction", [raw_tx_hex])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict]:
        return await self.request("eth_getTransactionReceipt", [tx_hash])


class JsonRpcClient(RpcClient):
    """JSON-RPC over HTTP using httpx."""

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            url: Node endpoint (e.g. http://localhost:8545)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (mock transports in tests)
        """
        self.url = url
        self.timeout = timeout
        self._transport = transport

    @property
    def description(self) -> str:
        return self.url

    async def request(self, method: str, params: Optional[list] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": next(_request_ids),
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.warning(f"RPC {method} to {self.url} failed: {e}")
            raise RpcError(f"{method} failed: {e}") from e
        except ValueError as e:
            raise RpcError(f"{method} returned invalid JSON") from e

        if not isinstance(data, dict):
            raise RpcError(f"{method} returned an unexpected response: {type(data).__name__}")

        error = data.get("error")
        if error:
            logger.debug(f"RPC {method} error: {error}")
            if not isinstance(error, dict):
                raise RpcError(str(error))
            raise RpcError(
                error.get("message", "JSON-RPC error"),
                code=error.get("code"),
                data=error.get("data"),
            )

        return data.get("result")

    def __repr__(self) -> str:
        return f"JsonRpcClient(url={self.url!r})"


class TransportRpcClient(RpcClient):
    """JSON-RPC routed through the wallet transport.

    Read-only use of the wallet: this client never issues connection
    lifecycle calls (those belong to the SessionManager).
    """

    def __init__(self, transport: WalletTransport):
        self.transport = transport

    @property
    def description(self) -> str:
        return f"wallet:{self.transport.__class__.__name__}"

    async def request(self, method: str, params: Optional[list] = None) -> Any:
        return await self.transport.request(method, params or [])

    def __repr__(self) -> str:
        return f"TransportRpcClient(transport={self.transport.__class__.__name__})"
