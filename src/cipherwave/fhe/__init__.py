"""FHE encryption engines and the per-chain engine lifecycle."""

from cipherwave.fhe.base import (
    SUPPORTED_WIDTHS,
    DraftReusedError,
    EncryptedInputResult,
    EncryptionEngine,
    EncryptionEngineState,
    EncryptionError,
    EngineKind,
    EngineNotReadyError,
    EngineStatus,
    EngineSupersededError,
    ProvisioningFailedError,
    UnsupportedWidthError,
    ValueOutOfRangeError,
)
from cipherwave.fhe.builder import EncryptedInputBuilder
from cipherwave.fhe.local import LocalEngine
from cipherwave.fhe.manager import EncryptionInstanceManager
from cipherwave.fhe.remote import GatewayProvisioner, InputEncryptor, RemoteEngine

__all__ = [
    "SUPPORTED_WIDTHS",
    "DraftReusedError",
    "EncryptedInputBuilder",
    "EncryptedInputResult",
    "EncryptionEngine",
    "EncryptionEngineState",
    "EncryptionError",
    "EncryptionInstanceManager",
    "EngineKind",
    "EngineNotReadyError",
    "EngineStatus",
    "EngineSupersededError",
    "GatewayProvisioner",
    "InputEncryptor",
    "LocalEngine",
    "ProvisioningFailedError",
    "RemoteEngine",
    "UnsupportedWidthError",
    "ValueOutOfRangeError",
]
