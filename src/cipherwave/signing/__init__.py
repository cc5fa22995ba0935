"""Read and write execution contexts.

Provides:
- WalletWriteContext: wallet-mediated signing (every chain)
- DirectWriteContext: local test key signing (local dev chains only)
- SignerResolver: keeps a SignerBundle in sync with the wallet session
"""

from cipherwave.signing.base import (
    ReadContext,
    ReadSource,
    SignerBundle,
    SignerType,
    SignerUnavailableError,
    SigningError,
    TransactingContext,
    TransactionFailedError,
)
from cipherwave.signing.local import DirectWriteContext, LocalAccountRegistry, get_local_account_registry
from cipherwave.signing.resolver import SignerResolver
from cipherwave.signing.wallet import WalletWriteContext

__all__ = [
    "DirectWriteContext",
    "LocalAccountRegistry",
    "ReadContext",
    "ReadSource",
    "SignerBundle",
    "SignerResolver",
    "SignerType",
    "SignerUnavailableError",
    "SigningError",
    "TransactingContext",
    "TransactionFailedError",
    "WalletWriteContext",
    "get_local_account_registry",
]
