"""Signer resolver.

Derives read/write execution contexts from the wallet session. The bundle
is rebuilt only when the (transport, chain_id, accounts, connected) tuple
changes, never on unrelated session updates such as last_error.
"""

import logging
from typing import Callable, Optional

from cipherwave.chains import ChainBindings, is_local_chain
from cipherwave.config import Settings, get_settings
from cipherwave.signing.base import ReadContext, ReadSource, SignerBundle
from cipherwave.signing.local import (
    DirectWriteContext,
    LocalAccountRegistry,
    get_local_account_registry,
)
from cipherwave.signing.wallet import WalletWriteContext
from cipherwave.utils.observable import Observable, Subscription
from cipherwave.wallet.base import WalletSession, short_address
from cipherwave.wallet.rpc import JsonRpcClient, TransportRpcClient
from cipherwave.wallet.session import SessionManager

logger = logging.getLogger(__name__)

SESSION_IDENTITY_FIELDS = ("transport", "chain_id", "accounts", "connected")

_DEFAULT = object()

BundleListener = Callable[[SignerBundle], None]


class SignerResolver:
    """Keeps a SignerBundle in sync with the wallet session."""

    def __init__(
        self,
        session_manager: SessionManager,
        bindings: Optional[ChainBindings] = None,
        registry=_DEFAULT,
        settings: Optional[Settings] = None,
        rpc_factory: Optional[Callable[[str], JsonRpcClient]] = None,
    ):
        """Initialize resolver.

        Args:
            session_manager: Source of wallet session state
            bindings: Local chain bindings (defaults to settings.local_rpc_urls)
            registry: Local test account registry (None disables direct writes)
            settings: Application settings
            rpc_factory: Builds JSON-RPC clients for local endpoints
        """
        settings = settings or get_settings()
        self._bindings = bindings if bindings is not None else ChainBindings.from_settings(settings)
        self._registry: Optional[LocalAccountRegistry] = (
            get_local_account_registry(settings) if registry is _DEFAULT else registry
        )
        self._rpc_factory = rpc_factory or (
            lambda url: JsonRpcClient(url, timeout=settings.rpc_timeout)
        )

        self._bundle: Observable[SignerBundle] = Observable(
            self.resolve(session_manager.session),
            name="signer_bundle",
        )
        self._subscription: Optional[Subscription] = session_manager.subscribe(
            self._on_session_change,
            fields=SESSION_IDENTITY_FIELDS,
        )

    @property
    def bundle(self) -> SignerBundle:
        return self._bundle.value

    def subscribe(self, listener: BundleListener) -> Subscription:
        """Get notified with the new bundle after every rebuild."""
        return self._bundle.subscribe(lambda old, new: listener(new))

    def _on_session_change(self, old: WalletSession, new: WalletSession) -> None:
        self._bundle.set(self.resolve(new))

    def resolve(self, session: WalletSession) -> SignerBundle:
        """Build the bundle for a session snapshot.

        Returns:
            Empty bundle when the session is not connected or lacks a chain
            or accounts; otherwise read + write contexts, plus a direct write
            context for known accounts on chains with a local RPC endpoint.
        """
        if not session.is_usable:
            logger.debug("No usable wallet session - signer bundle cleared")
            return SignerBundle()

        chain_id = session.chain_id
        address = session.address
        local_rpc_url = self._bindings.local_rpc_url(chain_id)
        wallet_rpc = TransportRpcClient(session.transport)

        if local_rpc_url:
            # Wallets cache view-call results; on dev nodes that returns stale state
            read_context = ReadContext(
                rpc=self._rpc_factory(local_rpc_url),
                source=ReadSource.LOCAL_RPC,
                chain_id=chain_id,
            )
        else:
            read_context = ReadContext(rpc=wallet_rpc, source=ReadSource.WALLET, chain_id=chain_id)

        write_context = WalletWriteContext(wallet_rpc, address=address, chain_id=chain_id)

        direct_write_context = None
        if local_rpc_url and is_local_chain(chain_id) and self._registry is not None:
            account = self._registry.account_for(address)
            if account is not None:
                direct_write_context = DirectWriteContext(
                    account,
                    chain_id=chain_id,
                    rpc=self._rpc_factory(local_rpc_url),
                )
                logger.info(f"Direct signer enabled for local account {short_address(address)} on chain {chain_id}")
            else:
                logger.debug(f"{short_address(address)} is not a local test account - direct signer unavailable")

        return SignerBundle(
            read_context=read_context,
            write_context=write_context,
            direct_write_context=direct_write_context,
        )

    def close(self) -> None:
        """Stop following the session."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
