"""Encrypted input builder.

A short-lived, single-use object: values are appended in call order and
finalize() turns them into ciphertext handles plus one proof, exactly once.

Example:
    builder = engine.create_encrypted_input(contract, user)
    result = await builder.add64(content).add32(timestamp).finalize()
    await contract_write(result.handles[0], result.handles[1], result.proof)
"""

import logging
from typing import TYPE_CHECKING

from web3 import Web3

from cipherwave.fhe.base import (
    SUPPORTED_WIDTHS,
    DraftReusedError,
    EncryptedInputDraft,
    EncryptedInputResult,
    EncryptionError,
    UnsupportedWidthError,
    ValueOutOfRangeError,
)
from cipherwave.wallet.base import short_address

if TYPE_CHECKING:
    from cipherwave.fhe.base import EncryptionEngine

logger = logging.getLogger(__name__)


def _checksum(address: str, label: str) -> str:
    if not Web3.is_address(address):
        raise ValueError(f"Invalid {label} address: {address!r}")
    return Web3.to_checksum_address(address)


class EncryptedInputBuilder:
    """Accumulates typed plaintext values for one submission."""

    def __init__(self, engine: "EncryptionEngine", contract_address: str, user_address: str):
        self._engine = engine
        self._draft = EncryptedInputDraft(
            contract_address=_checksum(contract_address, "contract"),
            user_address=_checksum(user_address, "user"),
        )
        self._finalized = False

    @property
    def contract_address(self) -> str:
        return self._draft.contract_address

    @property
    def user_address(self) -> str:
        return self._draft.user_address

    @property
    def values(self) -> tuple[tuple[int, int], ...]:
        return tuple(self._draft.values)

    @property
    def finalized(self) -> bool:
        return self._finalized

    def __len__(self) -> int:
        return len(self._draft.values)

    def add_value(self, width: int, magnitude: int) -> "EncryptedInputBuilder":
        """Append an unsigned integer of the given bit width.

        Raises:
            DraftReusedError: If the builder was already finalized
            EngineSupersededError: If the engine was reinitialized
            UnsupportedWidthError: If width is not supported
            ValueOutOfRangeError: If magnitude does not fit in width bits
        """
        if self._finalized:
            raise DraftReusedError("Cannot add values to an encrypted input after finalize()")
        self._engine.ensure_active()

        if width not in SUPPORTED_WIDTHS:
            raise UnsupportedWidthError(
                f"Unsupported width {width}; expected one of {', '.join(map(str, SUPPORTED_WIDTHS))}"
            )
        if isinstance(magnitude, bool) or not isinstance(magnitude, int):
            raise TypeError(f"Magnitude must be an int, got {type(magnitude).__name__}")
        if magnitude < 0 or magnitude >= (1 << width):
            raise ValueOutOfRangeError(f"{magnitude} does not fit in an unsigned {width}-bit value")

        self._draft.values.append((width, magnitude))
        return self

    def add8(self, value: int) -> "EncryptedInputBuilder":
        return self.add_value(8, value)

    def add16(self, value: int) -> "EncryptedInputBuilder":
        return self.add_value(16, value)

    def add32(self, value: int) -> "EncryptedInputBuilder":
        return self.add_value(32, value)

    def add64(self, value: int) -> "EncryptedInputBuilder":
        return self.add_value(64, value)

    def add128(self, value: int) -> "EncryptedInputBuilder":
        return self.add_value(128, value)

    def add256(self, value: int) -> "EncryptedInputBuilder":
        return self.add_value(256, value)

    async def finalize(self) -> EncryptedInputResult:
        """Encrypt the accumulated values.

        The draft is consumed even if encryption fails; build a new input
        to retry.

        Raises:
            DraftReusedError: If called more than once
            EngineSupersededError: If the engine was reinitialized
        """
        if self._finalized:
            raise DraftReusedError("Encrypted input was already finalized")
        self._engine.ensure_active()
        self._finalized = True

        logger.debug(
            f"Encrypting {len(self._draft.values)} value(s) for "
            f"{short_address(self._draft.contract_address)} / {short_address(self._draft.user_address)}"
        )
        result = await self._engine.encrypt(self._draft)

        if len(result.handles) != len(self._draft.values):
            raise EncryptionError(
                f"Engine returned {len(result.handles)} handles for {len(self._draft.values)} values"
            )
        return result
