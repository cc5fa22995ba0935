"""Pytest configuration and fixtures."""

import os
from typing import Any, Optional

import pytest

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "true"
os.environ["ENABLE_LOCAL_ACCOUNTS"] = "true"

from cipherwave.config import Settings, get_settings
from cipherwave.signing.local import reset_local_account_registry
from cipherwave.wallet.base import EventEmitterTransport, WalletRequestError
from cipherwave.wallet.rpc import RpcClient

HARDHAT_ACCOUNT_0 = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
HARDHAT_ACCOUNT_1 = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
STRANGER = "0x1111111111111111111111111111111111111111"
CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
SEPOLIA = 11155111


class FakeWalletTransport(EventEmitterTransport):
    """Scripted wallet: answers from a method -> result table and records calls."""

    def __init__(
        self,
        accounts: Optional[list[str]] = None,
        chain_id: str = "0x7a69",
        responses: Optional[dict[str, Any]] = None,
    ):
        super().__init__()
        self.responses: dict[str, Any] = {
            "eth_requestAccounts": list(accounts if accounts is not None else [HARDHAT_ACCOUNT_0]),
            "eth_accounts": list(accounts if accounts is not None else [HARDHAT_ACCOUNT_0]),
            "eth_chainId": chain_id,
        }
        self.responses.update(responses or {})
        self.calls: list[tuple[str, list]] = []

    async def request(self, method: str, params: Optional[list] = None) -> Any:
        self.calls.append((method, params or []))
        if method not in self.responses:
            raise WalletRequestError(f"Unsupported method {method}", code=4200)
        result = self.responses[method]
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return result(params or [])
        return result

    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]


class FakeRpc(RpcClient):
    """In-memory RpcClient answering from a method -> result table."""

    def __init__(self, responses: Optional[dict[str, Any]] = None):
        self.responses = dict(responses or {})
        self.calls: list[tuple[str, list]] = []

    @property
    def description(self) -> str:
        return "fake"

    async def request(self, method: str, params: Optional[list] = None) -> Any:
        self.calls.append((method, params or []))
        result = self.responses.get(method)
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return result(params or [])
        return result


@pytest.fixture(autouse=True)
def clean_state():
    """Reset cached settings and the local account registry around each test."""
    get_settings.cache_clear()
    reset_local_account_registry()
    yield
    get_settings.cache_clear()
    reset_local_account_registry()


@pytest.fixture
def settings() -> Settings:
    """Development settings with a message contract on the local and Sepolia chains."""
    return Settings(
        environment="test",
        local_rpc_urls={31337: "http://localhost:8545"},
        rpc_urls={SEPOLIA: "https://sepolia.example/rpc"},
        contract_addresses={31337: CONTRACT, SEPOLIA: CONTRACT},
        enable_local_accounts=True,
    )


@pytest.fixture
def wallet() -> FakeWalletTransport:
    return FakeWalletTransport()
