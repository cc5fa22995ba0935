"""Base interfaces for FHE encryption engines.

Encryption flow:
1. EncryptionInstanceManager provides an engine bound to the active chain
2. engine.create_encrypted_input(contract, user) returns a fresh builder
3. Caller adds typed plaintext values in order
4. await builder.finalize() returns ciphertext handles + one input proof
5. Handles and proof are passed as arguments to the contract's write method

Engines are a tagged variant: LOCAL (simulation for dev chains) or
REMOTE (real engine provisioned from the FHE gateway).
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from cipherwave.fhe.builder import EncryptedInputBuilder

logger = logging.getLogger(__name__)

# Unsigned integer widths the engines accept (euint8 ... euint256)
SUPPORTED_WIDTHS: tuple[int, ...] = (8, 16, 32, 64, 128, 256)


class EngineKind(str, Enum):
    """Which backend produced an engine."""
    LOCAL = "local"     # Simulation, no cryptography (dev chains)
    REMOTE = "remote"   # Real FHE engine from the gateway


class EngineStatus(str, Enum):
    """Lifecycle status of the engine for the active chain."""
    IDLE = "idle"
    INITIALIZING = "initializing"
    READY = "ready"
    ERROR = "error"


@dataclass
class EncryptedInputDraft:
    """Plaintext values waiting to be encrypted for one submission.

    Attributes:
        contract_address: Contract that will receive the ciphertexts
        user_address: Account the input is bound to
        values: (width, magnitude) pairs in insertion order
    """
    contract_address: str
    user_address: str
    values: list[tuple[int, int]] = field(default_factory=list)


@dataclass(frozen=True)
class EncryptedInputResult:
    """Ciphertext handles (one per value, same order) and their joint proof."""
    handles: tuple[str, ...]
    proof: str

    def __len__(self) -> int:
        return len(self.handles)


@dataclass(frozen=True)
class EncryptionEngineState:
    """Snapshot of the engine lifecycle.

    Invariant: engine is not None only when status is READY, and then
    engine.chain_id == chain_id.
    """
    chain_id: Optional[int] = None
    engine: Optional["EncryptionEngine"] = None
    status: EngineStatus = EngineStatus.IDLE
    error: Optional[Exception] = None

    @property
    def is_ready(self) -> bool:
        return self.status == EngineStatus.READY and self.engine is not None


def to_hex(data: Union[bytes, bytearray, str]) -> str:
    """Normalize a handle or proof to 0x-prefixed hex."""
    if isinstance(data, (bytes, bytearray)):
        return "0x" + bytes(data).hex()
    if isinstance(data, str):
        return data if data.startswith("0x") else f"0x{data}"
    raise TypeError(f"Cannot convert {type(data).__name__} to hex")


class EncryptionEngine(ABC):
    """Capability interface shared by local and remote engines."""

    def __init__(self, kind: EngineKind, chain_id: int):
        self.kind = kind
        self.chain_id = chain_id
        self._active = True

    @property
    def is_active(self) -> bool:
        """False once the manager has discarded this engine."""
        return self._active

    def retire(self) -> None:
        """Invalidate the engine; builders created from it fail fast."""
        if self._active:
            self._active = False
            logger.debug(f"Retired {self.kind.value} engine for chain {self.chain_id}")

    def ensure_active(self) -> None:
        if not self._active:
            raise EngineSupersededError(
                f"{self.kind.value} engine for chain {self.chain_id} was superseded by a reinitialization"
            )

    def create_encrypted_input(self, contract_address: str, user_address: str) -> "EncryptedInputBuilder":
        """Start a new encrypted input for a contract/user pair.

        Raises:
            EngineSupersededError: If the engine has been retired
        """
        from cipherwave.fhe.builder import EncryptedInputBuilder

        self.ensure_active()
        return EncryptedInputBuilder(self, contract_address, user_address)

    @abstractmethod
    async def encrypt(self, draft: EncryptedInputDraft) -> EncryptedInputResult:
        """Encrypt all draft values.

        Returns:
            Result with one handle per value, in order, plus a joint proof
        """
        pass

    def describe(self) -> dict:
        """Status summary for diagnostics."""
        return {
            "kind": self.kind.value,
            "chain_id": self.chain_id,
            "active": self._active,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(chain={self.chain_id}, active={self._active})"


class EncryptionError(Exception):
    """Base exception for encryption failures."""
    pass


class UnsupportedWidthError(EncryptionError):
    """Value width is not one of SUPPORTED_WIDTHS."""
    pass


class ValueOutOfRangeError(EncryptionError):
    """Magnitude does not fit the declared unsigned width."""
    pass


class DraftReusedError(EncryptionError):
    """Builder used after finalize()."""
    pass


class EngineNotReadyError(EncryptionError):
    """No ready engine for the active chain."""
    pass


class EngineSupersededError(EncryptionError):
    """Engine was discarded by a chain change or reinitialization."""
    pass


class ProvisioningFailedError(EncryptionError):
    """Real engine setup failed; recoverable with reinitialize()."""

    def __init__(self, message: str, chain_id: Optional[int] = None):
        super().__init__(message)
        self.chain_id = chain_id
