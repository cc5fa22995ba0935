"""Encryption engine lifecycle for the active chain.

State machine:
    idle --local chain--------------------------------> ready
    idle --remote chain + endpoint--> initializing --> ready | error
    any  --chain change / reinitialize()--> idle --> (rerun)

A remote provisioning call carries a CancellationToken. When the call is
superseded its token is cancelled and any result it still produces is
dropped: each cycle has a generation number and only the current generation
may write state.
"""

import asyncio
import logging
from typing import Callable, Optional

from cipherwave.chains import is_local_chain
from cipherwave.config import Settings, get_settings
from cipherwave.fhe.base import (
    EncryptionEngine,
    EncryptionEngineState,
    EngineNotReadyError,
    EngineStatus,
    ProvisioningFailedError,
)
from cipherwave.fhe.builder import EncryptedInputBuilder
from cipherwave.fhe.local import LocalEngine
from cipherwave.fhe.remote import Provisioner
from cipherwave.utils.cancellation import CancellationToken
from cipherwave.utils.observable import Observable, Subscription
from cipherwave.wallet.base import WalletSession
from cipherwave.wallet.session import SessionManager

logger = logging.getLogger(__name__)

StatusListener = Callable[[EngineStatus, EncryptionEngineState], None]


class EncryptionInstanceManager:
    """Owns the engine handle bound to the active chain."""

    def __init__(
        self,
        provisioner: Optional[Provisioner] = None,
        settings: Optional[Settings] = None,
        endpoint_resolver: Optional[Callable[[int], Optional[str]]] = None,
    ):
        """Initialize manager.

        Args:
            provisioner: Async factory for remote engines (None = remote chains fail)
            settings: Application settings
            endpoint_resolver: Maps a chain ID to the RPC endpoint used for
                provisioning (defaults to settings.get_rpc_url)
        """
        settings = settings or get_settings()
        self._provisioner = provisioner
        self._endpoint_resolver = endpoint_resolver or settings.get_rpc_url

        self._state: Observable[EncryptionEngineState] = Observable(
            EncryptionEngineState(),
            name="engine_state",
        )
        self._requested_chain: Optional[int] = None
        self._endpoint_url: Optional[str] = None
        self._generation = 0
        self._token: Optional[CancellationToken] = None
        self._task: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()
        self._subscription: Optional[Subscription] = None

    # ======================
    # State
    # ======================

    @property
    def state(self) -> EncryptionEngineState:
        return self._state.value

    @property
    def status(self) -> EngineStatus:
        return self.state.status

    @property
    def engine(self) -> Optional[EncryptionEngine]:
        return self.state.engine

    @property
    def error(self) -> Optional[Exception]:
        return self.state.error

    @property
    def is_loading(self) -> bool:
        """True until the engine is ready or has failed."""
        return self.status in (EngineStatus.IDLE, EngineStatus.INITIALIZING)

    def on_status_change(self, listener: StatusListener) -> Subscription:
        """Get notified of every status transition (progress display)."""
        return self._state.subscribe(
            lambda old, new: listener(new.status, new),
            key=lambda s: s.status,
        )

    def _set_state(self, state: EncryptionEngineState) -> None:
        previous = self.state
        if self._state.set(state) and previous.status != state.status:
            logger.info(f"FHE engine status: {previous.status.value} -> {state.status.value} (chain {state.chain_id})")

    # ======================
    # Lifecycle
    # ======================

    def attach(self, session_manager: SessionManager) -> None:
        """Follow the wallet session's chain ID.

        Only chain changes matter: engines are chain-scoped, so account
        switches and reconnects do not trigger reinitialization.
        """
        if self._subscription is not None:
            self._subscription.unsubscribe()
        self._subscription = session_manager.subscribe(self._on_session_change, fields=("chain_id",))
        self.update(session_manager.session.chain_id)

    def _on_session_change(self, old: WalletSession, new: WalletSession) -> None:
        self.update(new.chain_id)

    def update(self, chain_id: Optional[int], endpoint_url: Optional[str] = None) -> EncryptionEngineState:
        """Request an engine for a chain.

        Idempotent for a chain that is already ready, initializing or
        failed. A different chain discards the current engine first.

        Args:
            chain_id: Active chain (None clears the engine)
            endpoint_url: RPC endpoint for provisioning (resolved from
                settings when omitted)

        Returns:
            The state after the request
        """
        if endpoint_url is None and chain_id is not None:
            endpoint_url = self._endpoint_resolver(chain_id)

        self._requested_chain = chain_id
        self._endpoint_url = endpoint_url
        state = self.state

        if chain_id is None:
            if state.chain_id is not None or state.status != EngineStatus.IDLE:
                self._discard()
            return self.state

        if state.chain_id == chain_id and state.status != EngineStatus.IDLE:
            return state

        if state.chain_id is not None:
            self._discard()

        self._start(chain_id, endpoint_url)
        return self.state

    def set_endpoint(self, endpoint_url: str) -> EncryptionEngineState:
        """Supply the provisioning endpoint once an RPC transport appears."""
        if self._requested_chain is None:
            self._endpoint_url = endpoint_url
            return self.state
        return self.update(self._requested_chain, endpoint_url)

    def reinitialize(self) -> EncryptionEngineState:
        """Discard the current engine and run a fresh cycle for the same chain."""
        chain_id = self._requested_chain
        logger.info(f"Reinitializing FHE engine (chain {chain_id})")
        self._discard()
        if chain_id is not None:
            self._start(chain_id, self._endpoint_url or self._endpoint_resolver(chain_id))
        return self.state

    def _discard(self) -> None:
        """Cancel in-flight provisioning, retire the engine, drop to idle."""
        self._generation += 1
        if self._token is not None:
            self._token.cancel()
            self._token = None
        self._task = None

        engine = self.state.engine
        if engine is not None:
            engine.retire()
        self._set_state(EncryptionEngineState())

    def _start(self, chain_id: int, endpoint_url: Optional[str]) -> None:
        if is_local_chain(chain_id):
            self._set_state(
                EncryptionEngineState(
                    chain_id=chain_id,
                    engine=LocalEngine(chain_id),
                    status=EngineStatus.READY,
                )
            )
            return

        if not endpoint_url:
            logger.debug(f"No RPC endpoint for chain {chain_id} yet - engine stays idle")
            return

        if self._provisioner is None:
            self._set_state(
                EncryptionEngineState(
                    chain_id=chain_id,
                    status=EngineStatus.ERROR,
                    error=ProvisioningFailedError(
                        "No FHE provisioner configured for remote chains",
                        chain_id=chain_id,
                    ),
                )
            )
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._set_state(
                EncryptionEngineState(
                    chain_id=chain_id,
                    status=EngineStatus.ERROR,
                    error=ProvisioningFailedError(
                        "Remote engine provisioning needs a running event loop",
                        chain_id=chain_id,
                    ),
                )
            )
            return

        self._generation += 1
        generation = self._generation
        token = CancellationToken(label=f"engine provisioning (chain {chain_id})")
        self._token = token
        self._set_state(EncryptionEngineState(chain_id=chain_id, status=EngineStatus.INITIALIZING))

        task = loop.create_task(
            self._provision(generation, token, chain_id, endpoint_url)
        )
        self._task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _is_stale(self, generation: int, token: CancellationToken) -> bool:
        return token.cancelled or generation != self._generation

    async def _provision(
        self,
        generation: int,
        token: CancellationToken,
        chain_id: int,
        endpoint_url: str,
    ) -> None:
        try:
            engine = await self._provisioner(endpoint_url, chain_id, token)
        except Exception as e:
            if self._is_stale(generation, token):
                logger.debug(f"Ignoring late provisioning failure for chain {chain_id}: {e}")
                return

            if isinstance(e, ProvisioningFailedError):
                error = e
            else:
                error = ProvisioningFailedError(f"FHE engine setup failed: {e}", chain_id=chain_id)
                error.__cause__ = e
            logger.error(f"FHE engine provisioning failed for chain {chain_id}: {error}")
            self._token = None
            self._set_state(
                EncryptionEngineState(chain_id=chain_id, status=EngineStatus.ERROR, error=error)
            )
            return

        if self._is_stale(generation, token):
            logger.debug(f"Discarding late engine for chain {chain_id}")
            engine.retire()
            return

        self._token = None
        if engine.chain_id != chain_id:
            engine.retire()
            self._set_state(
                EncryptionEngineState(
                    chain_id=chain_id,
                    status=EngineStatus.ERROR,
                    error=ProvisioningFailedError(
                        f"Provisioned engine is bound to chain {engine.chain_id}, expected {chain_id}",
                        chain_id=chain_id,
                    ),
                )
            )
            return

        self._set_state(EncryptionEngineState(chain_id=chain_id, engine=engine, status=EngineStatus.READY))

    # ======================
    # Consumers
    # ======================

    async def wait_ready(self) -> EncryptionEngine:
        """Wait for the current cycle to settle.

        Returns:
            The ready engine

        Raises:
            ProvisioningFailedError: If the cycle failed
            EngineNotReadyError: If no cycle is running (idle)
        """
        while self.status == EngineStatus.INITIALIZING and self._task is not None:
            task = self._task
            await asyncio.shield(task)
            if task is self._task:
                break

        state = self.state
        if state.is_ready:
            return state.engine
        if state.status == EngineStatus.ERROR and state.error is not None:
            raise state.error
        raise EngineNotReadyError(f"FHE engine is {state.status.value}")

    def create_encrypted_input(self, contract_address: str, user_address: str) -> EncryptedInputBuilder:
        """Start an encrypted input with the ready engine.

        Raises:
            EngineNotReadyError: If the engine is not ready
        """
        state = self.state
        if not state.is_ready:
            raise EngineNotReadyError(f"FHE engine is {state.status.value} (chain {state.chain_id})")
        return state.engine.create_encrypted_input(contract_address, user_address)

    def close(self) -> None:
        """Stop following the session and discard the engine."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._requested_chain = None
        self._discard()
