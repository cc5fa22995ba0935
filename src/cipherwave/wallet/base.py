"""Base interfaces for the injected wallet connection.

The wallet is reached through an EIP-1193 style transport:
1. request(method, params) for RPC calls (eth_requestAccounts, personal_sign, ...)
2. on(event, listener) for accountsChanged / chainChanged / connect / disconnect

SECURITY: The session model NEVER holds private keys or seed phrases. It
only tracks public addresses, the active chain and the transport handle.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

# Wallet RPC methods
ETH_REQUEST_ACCOUNTS = "eth_requestAccounts"
ETH_ACCOUNTS = "eth_accounts"
ETH_CHAIN_ID = "eth_chainId"

# Wallet events
EVENT_ACCOUNTS_CHANGED = "accountsChanged"
EVENT_CHAIN_CHANGED = "chainChanged"
EVENT_CONNECT = "connect"
EVENT_DISCONNECT = "disconnect"

WALLET_EVENTS = (
    EVENT_ACCOUNTS_CHANGED,
    EVENT_CHAIN_CHANGED,
    EVENT_CONNECT,
    EVENT_DISCONNECT,
)

EventListener = Callable[[Any], None]


class WalletTransport(ABC):
    """EIP-1193 style provider interface (window.ethereum equivalent)."""

    @abstractmethod
    async def request(self, method: str, params: Optional[list] = None) -> Any:
        """Send an RPC request through the wallet.

        Args:
            method: JSON-RPC method name
            params: Positional parameters

        Returns:
            The RPC result

        Raises:
            WalletRequestError: If the wallet rejects or fails the request
        """
        pass

    @abstractmethod
    def on(self, event: str, listener: EventListener) -> None:
        """Subscribe to a wallet event."""
        pass

    @abstractmethod
    def remove_listener(self, event: str, listener: EventListener) -> None:
        """Unsubscribe from a wallet event."""
        pass


class EventEmitterTransport(WalletTransport):
    """Transport base class with an in-process listener registry.

    Subclasses implement request(); events are delivered with emit().
    """

    def __init__(self):
        self._listeners: dict[str, list[EventListener]] = {}

    def on(self, event: str, listener: EventListener) -> None:
        self._listeners.setdefault(event, []).append(listener)

    def remove_listener(self, event: str, listener: EventListener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, event: str, payload: Any = None) -> None:
        """Deliver an event to every listener, in subscription order."""
        for listener in list(self._listeners.get(event, [])):
            listener(payload)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))


@dataclass(frozen=True)
class WalletSession:
    """Snapshot of the live wallet connection.

    Attributes:
        transport: Injected provider handle (None = wallet not installed)
        chain_id: Active chain ID, once known
        accounts: Connected addresses in wallet order (None = never queried)
        connected: Whether the wallet exposes at least one account
        last_error: Last connection error, if any
    """

    transport: Optional[WalletTransport] = None
    chain_id: Optional[int] = None
    accounts: Optional[tuple[str, ...]] = None
    connected: bool = False
    last_error: Optional[Exception] = None

    @property
    def is_installed(self) -> bool:
        return self.transport is not None

    @property
    def address(self) -> Optional[str]:
        """First connected account (the active one)."""
        if self.accounts:
            return self.accounts[0]
        return None

    @property
    def identity(self) -> tuple:
        """Fields that signing contexts are derived from."""
        return (self.transport, self.chain_id, self.accounts, self.connected)

    @property
    def is_usable(self) -> bool:
        """Connected with a chain and at least one account."""
        return bool(
            self.transport is not None
            and self.connected
            and self.chain_id is not None
            and self.accounts
        )


def short_address(address: Optional[str]) -> str:
    """Truncate an address for logs."""
    if not address:
        return "(none)"
    return address[:10] + "..." if len(address) > 10 else address


class WalletError(Exception):
    """Base exception for wallet and transport failures."""

    pass


class ProviderAbsentError(WalletError):
    """No wallet transport is installed; connect() cannot proceed."""

    pass


class WalletRequestError(WalletError):
    """The wallet rejected or failed a request."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code

    @property
    def user_rejected(self) -> bool:
        # EIP-1193 code for "User Rejected Request"
        return self.code == 4001


class RpcError(WalletError):
    """A JSON-RPC endpoint returned an error or could not be reached."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.code = code
        self.data = data
