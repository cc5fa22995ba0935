"""Wallet session manager.

Tracks the single active injected-wallet connection: chain ID, accounts,
connected flag and the transport handle. It is a pure state holder and
notification source; it knows nothing about the components derived from it.

Session lifecycle:
1. SessionManager(transport) attaches to transport events
2. connect() asks the wallet for accounts (prompts the user once)
3. accountsChanged / chainChanged / connect / disconnect replace fields
4. close() detaches from the transport
"""

import asyncio
import logging
from dataclasses import replace
from typing import Any, Callable, Iterable, Optional

from cipherwave.chains import parse_chain_id
from cipherwave.utils.observable import Observable, Subscription
from cipherwave.wallet.base import (
    ETH_ACCOUNTS,
    ETH_CHAIN_ID,
    ETH_REQUEST_ACCOUNTS,
    EVENT_ACCOUNTS_CHANGED,
    EVENT_CHAIN_CHANGED,
    EVENT_CONNECT,
    EVENT_DISCONNECT,
    ProviderAbsentError,
    WalletError,
    WalletRequestError,
    WalletSession,
    WalletTransport,
    short_address,
)

logger = logging.getLogger(__name__)

SessionListener = Callable[[WalletSession, WalletSession], None]


def _normalize_accounts(accounts: Any) -> tuple[str, ...]:
    if not accounts:
        return ()
    return tuple(str(a) for a in accounts)


class SessionManager:
    """Owns the WalletSession.

    Only this class issues connection lifecycle calls against the
    transport. Consumers read `session` or subscribe to changes.
    """

    def __init__(self, transport: Optional[WalletTransport] = None):
        self._state: Observable[WalletSession] = Observable(
            WalletSession(transport=transport),
            name="wallet_session",
        )
        self._connecting: Optional[asyncio.Future] = None
        self._handlers = {
            EVENT_ACCOUNTS_CHANGED: self._on_accounts_changed,
            EVENT_CHAIN_CHANGED: self._on_chain_changed,
            EVENT_CONNECT: self._on_connect,
            EVENT_DISCONNECT: self._on_disconnect,
        }
        if transport is not None:
            for event, handler in self._handlers.items():
                transport.on(event, handler)
        else:
            logger.info("No wallet transport installed")

    @property
    def session(self) -> WalletSession:
        return self._state.value

    @property
    def transport(self) -> Optional[WalletTransport]:
        return self.session.transport

    def subscribe(
        self,
        listener: SessionListener,
        fields: Optional[Iterable[str]] = None,
    ) -> Subscription[WalletSession]:
        """Subscribe to session changes.

        Args:
            listener: Called with (old, new) session after a change
            fields: Only notify when one of these WalletSession fields changes

        Returns:
            Subscription handle
        """
        key = None
        if fields is not None:
            names = tuple(fields)
            key = lambda s: tuple(getattr(s, name) for name in names)  # noqa: E731
        return self._state.subscribe(listener, key=key)

    def _update(self, **changes) -> WalletSession:
        session = replace(self.session, **changes)
        self._state.set(session)
        return session

    async def connect(self) -> WalletSession:
        """Ask the wallet to establish (or confirm) a connection.

        No-op if already connected. Concurrent calls share a single wallet
        request so the user is prompted once.

        Returns:
            The session after the attempt. If no wallet is installed the
            session carries ProviderAbsentError in last_error.

        Raises:
            WalletRequestError: If the wallet rejects the request
        """
        session = self.session
        if session.connected:
            return session

        if session.transport is None:
            logger.warning("connect() called but no wallet transport is installed")
            return self._update(last_error=ProviderAbsentError("No wallet provider installed"))

        if self._connecting is not None:
            return await self._connecting

        loop = asyncio.get_running_loop()
        self._connecting = loop.create_future()
        try:
            result = await self._request_connection(session.transport)
        except asyncio.CancelledError:
            self._connecting.cancel()
            raise
        except Exception as e:
            self._connecting.set_exception(e)
            # Retrieve so the shared future never logs "exception never retrieved"
            self._connecting.exception()
            raise
        else:
            self._connecting.set_result(result)
            return result
        finally:
            self._connecting = None

    async def _request_connection(self, transport: WalletTransport) -> WalletSession:
        logger.info("Requesting wallet connection")
        try:
            accounts = _normalize_accounts(await transport.request(ETH_REQUEST_ACCOUNTS, []))
            chain_id = parse_chain_id(await transport.request(ETH_CHAIN_ID, []))
        except WalletError as e:
            logger.warning(f"Wallet connection failed: {e}")
            self._update(last_error=e)
            raise
        except ValueError as e:
            error = WalletRequestError(f"Wallet returned an invalid chain ID: {e}")
            self._update(last_error=error)
            raise error from e

        session = self._update(
            accounts=accounts,
            chain_id=chain_id,
            connected=bool(accounts),
            last_error=None,
        )
        logger.info(f"Wallet connected: {short_address(session.address)} (chain={chain_id}, accounts={len(accounts)})")
        return session

    async def refresh(self) -> WalletSession:
        """Re-read accounts and chain without prompting the user.

        Used at startup to restore a connection the wallet already approved.
        """
        transport = self.session.transport
        if transport is None:
            return self.session

        accounts = _normalize_accounts(await transport.request(ETH_ACCOUNTS, []))
        chain_id = parse_chain_id(await transport.request(ETH_CHAIN_ID, []))
        return self._update(accounts=accounts, chain_id=chain_id, connected=bool(accounts))

    def _on_accounts_changed(self, accounts: Any) -> None:
        normalized = _normalize_accounts(accounts)
        previous = self.session.address
        self._update(accounts=normalized, connected=bool(normalized))
        if normalized:
            logger.info(f"Wallet accounts changed: {short_address(previous)} -> {short_address(normalized[0])}")
        else:
            logger.info("Wallet reported no accounts - disconnected")

    def _on_chain_changed(self, chain_id: Any) -> None:
        try:
            parsed = parse_chain_id(chain_id)
        except ValueError:
            logger.warning(f"Ignoring chainChanged with invalid chain ID {chain_id!r}")
            return
        logger.info(f"Wallet chain changed: {self.session.chain_id} -> {parsed}")
        self._update(chain_id=parsed)

    def _on_connect(self, info: Any) -> None:
        chain_id = info.get("chainId") if isinstance(info, dict) else None
        if chain_id is None:
            return
        try:
            self._update(chain_id=parse_chain_id(chain_id))
        except ValueError:
            logger.warning(f"Ignoring connect event with invalid chain ID {chain_id!r}")

    def _on_disconnect(self, error: Any) -> None:
        logger.info(f"Wallet transport disconnected: {error}")
        last_error = error if isinstance(error, Exception) else None
        self._update(accounts=(), connected=False, last_error=last_error)

    def close(self) -> None:
        """Detach from the transport's events."""
        transport = self.session.transport
        if transport is None:
            return
        for event, handler in self._handlers.items():
            transport.remove_listener(event, handler)
