"""Concrete wallet transports.

JsonRpcWalletTransport fronts a development node's unlocked accounts with
the same request/notify surface as a browser wallet, so the session stack
can run headless (CLI, scripts, integration tests against Hardhat).
"""

import logging
from typing import Any, Optional

import httpx

from cipherwave.chains import parse_chain_id
from cipherwave.wallet.base import (
    ETH_ACCOUNTS,
    ETH_CHAIN_ID,
    ETH_REQUEST_ACCOUNTS,
    EVENT_ACCOUNTS_CHANGED,
    EVENT_CHAIN_CHANGED,
    EventEmitterTransport,
    RpcError,
    WalletRequestError,
)
from cipherwave.wallet.rpc import JsonRpcClient

logger = logging.getLogger(__name__)


class JsonRpcWalletTransport(EventEmitterTransport):
    """Wallet transport backed by a node's JSON-RPC endpoint.

    eth_requestAccounts is answered with the node's unlocked accounts
    (eth_accounts), optionally narrowed to an explicit account list.
    Account and chain switches are simulated with select_account() and
    switch_endpoint(), which emit the matching wallet events.
    """

    def __init__(
        self,
        rpc_url: str,
        accounts: Optional[list[str]] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__()
        self._timeout = timeout
        self._http_transport = transport
        self._rpc = JsonRpcClient(rpc_url, timeout=timeout, transport=transport)
        self._accounts = list(accounts) if accounts is not None else None

    @property
    def rpc_url(self) -> str:
        return self._rpc.url

    async def request(self, method: str, params: Optional[list] = None) -> Any:
        try:
            if method in (ETH_REQUEST_ACCOUNTS, ETH_ACCOUNTS):
                if self._accounts is not None:
                    return list(self._accounts)
                return await self._rpc.request(ETH_ACCOUNTS, [])
            return await self._rpc.request(method, params)
        except RpcError as e:
            raise WalletRequestError(str(e), code=e.code) from e

    def select_account(self, address: Optional[str]) -> None:
        """Make one account active (None disconnects all accounts)."""
        self._accounts = [address] if address else []
        self.emit(EVENT_ACCOUNTS_CHANGED, list(self._accounts))

    async def switch_endpoint(self, rpc_url: str) -> int:
        """Point the transport at another node and announce its chain."""
        self._rpc = JsonRpcClient(rpc_url, timeout=self._timeout, transport=self._http_transport)
        chain_hex = await self.request(ETH_CHAIN_ID, [])
        chain_id = parse_chain_id(chain_hex)
        logger.info(f"Wallet transport switched to {rpc_url} (chain {chain_id})")
        self.emit(EVENT_CHAIN_CHANGED, chain_hex)
        return chain_id

    def __repr__(self) -> str:
        return f"JsonRpcWalletTransport(rpc_url={self.rpc_url!r})"
