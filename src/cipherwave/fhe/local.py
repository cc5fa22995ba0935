"""Local simulation engine for dev chains.

No cryptography happens here. Handles are unique 32-byte counters issued
in insertion order and the proof is an empty placeholder, which is what the
mock FHE contracts on Hardhat/Ganache accept.
"""

import itertools
import logging

from cipherwave.fhe.base import (
    EncryptedInputDraft,
    EncryptedInputResult,
    EncryptionEngine,
    EngineKind,
)

logger = logging.getLogger(__name__)

# Process-wide so handles never repeat across engines or chain switches
_handle_counter = itertools.count(1)

PLACEHOLDER_PROOF = "0x"


def next_handle() -> str:
    """Issue the next simulated ciphertext handle (bytes32 hex)."""
    return "0x" + format(next(_handle_counter), "064x")


class LocalEngine(EncryptionEngine):
    """Simulated engine bound to a local chain."""

    def __init__(self, chain_id: int):
        super().__init__(EngineKind.LOCAL, chain_id)

    async def encrypt(self, draft: EncryptedInputDraft) -> EncryptedInputResult:
        self.ensure_active()
        handles = tuple(next_handle() for _ in draft.values)
        logger.debug(f"Simulated {len(handles)} handle(s) on chain {self.chain_id}")
        return EncryptedInputResult(handles=handles, proof=PLACEHOLDER_PROOF)
