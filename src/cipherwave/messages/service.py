"""Encrypted message service.

Submission flow:
1. Pick a writer from the current signer bundle (wallet or direct signer)
2. Local chain: send the plaintext to submitMessageMock and remember it by
   message ID, since there is no gateway to decrypt against
3. Remote chain: encrypt (content: u64, timestamp: u32) with the ready
   engine and send both handles plus the proof to submitMessage
4. Wait for the receipt through the same writer
"""

import logging
import time
from typing import Callable, Optional

from web3 import Web3

from cipherwave.chains import is_local_chain
from cipherwave.config import Settings, get_settings
from cipherwave.fhe.base import EngineNotReadyError
from cipherwave.fhe.manager import EncryptionInstanceManager
from cipherwave.messages.abi import (
    GET_MESSAGE_METADATA,
    GET_USER_MESSAGES,
    MESSAGE_METADATA_OUTPUT,
    SUBMIT_MESSAGE,
    SUBMIT_MESSAGE_MOCK,
    USER_MESSAGES_OUTPUT,
    decode_result,
    encode_call,
    find_message_id,
    hex_to_bytes,
)
from cipherwave.messages.models import MessageRecord, SubmissionReceipt
from cipherwave.signing.base import SignerBundle, SignerUnavailableError, TransactingContext
from cipherwave.signing.resolver import SignerResolver
from cipherwave.wallet.base import short_address

logger = logging.getLogger(__name__)

MAX_CONTENT = 2**64 - 1
DECRYPT_MESSAGE_TEMPLATE = "Decrypt message #{message_id} from CipherWaveSync\nTimestamp: {timestamp_ms}"


class MessageService:
    """Submits, lists and reveals encrypted messages for the connected account."""

    def __init__(
        self,
        resolver: SignerResolver,
        engine_manager: EncryptionInstanceManager,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
        receipt_timeout: float = 120.0,
    ):
        self._resolver = resolver
        self._engine_manager = engine_manager
        self._settings = settings or get_settings()
        self._clock = clock
        self._receipt_timeout = receipt_timeout
        # (chain_id, contract, message_id) -> plaintext, local chains only
        self._plaintexts: dict[tuple[int, str, int], int] = {}

    def _contract_for(self, chain_id: int) -> Optional[str]:
        address = self._settings.get_contract_address(chain_id)
        return Web3.to_checksum_address(address) if address else None

    def _require_contract(self, chain_id: int) -> str:
        contract = self._contract_for(chain_id)
        if contract is None:
            raise SubmissionError(f"No message contract configured for chain {chain_id}")
        return contract

    @property
    def is_ready(self) -> bool:
        """True when a submission could be sent right now."""
        bundle = self._resolver.bundle
        if not bundle.can_write:
            return False
        chain_id = bundle.write_context.chain_id
        state = self._engine_manager.state
        return (
            self._contract_for(chain_id) is not None
            and state.is_ready
            and state.chain_id == chain_id
        )

    async def submit_message(self, value: int, prefer_direct: bool = False) -> SubmissionReceipt:
        """Submit a numeric message.

        Args:
            value: Message content (unsigned 64-bit)
            prefer_direct: Sign with the local test key when available

        Returns:
            Receipt summary for the confirmed transaction

        Raises:
            SubmissionError: Invalid content, no contract, or reverted tx
            SignerUnavailableError: No wallet session
            EngineNotReadyError: Remote chain without a ready engine
        """
        if isinstance(value, bool) or not isinstance(value, int):
            raise SubmissionError(f"Message content must be an integer, got {type(value).__name__}")
        if value < 0 or value > MAX_CONTENT:
            raise SubmissionError("Message content must be an unsigned 64-bit integer")

        writer = self._resolver.bundle.select_writer(prefer_direct)
        chain_id = writer.chain_id
        contract = self._require_contract(chain_id)
        timestamp = int(self._clock())

        if is_local_chain(chain_id):
            return await self._submit_plaintext(writer, contract, value, timestamp)
        return await self._submit_encrypted(writer, contract, value, timestamp)

    async def _submit_plaintext(
        self,
        writer: TransactingContext,
        contract: str,
        value: int,
        timestamp: int,
    ) -> SubmissionReceipt:
        data = encode_call(SUBMIT_MESSAGE_MOCK, [value, timestamp])
        logger.info(f"Submitting plaintext message on local chain {writer.chain_id} via {writer.signer_type.value}")

        tx_hash = await writer.send_transaction(contract, data)
        receipt = await self._confirm(writer, tx_hash)

        message_id = find_message_id(receipt, contract)
        if message_id is not None:
            self._plaintexts[(writer.chain_id, contract, message_id)] = value
        else:
            logger.warning(f"No MessageSubmitted log in receipt for {tx_hash}; content not cached")

        return SubmissionReceipt(
            tx_hash=tx_hash,
            chain_id=writer.chain_id,
            message_id=message_id,
            encrypted=False,
        )

    async def _submit_encrypted(
        self,
        writer: TransactingContext,
        contract: str,
        value: int,
        timestamp: int,
    ) -> SubmissionReceipt:
        state = self._engine_manager.state
        if not state.is_ready or state.chain_id != writer.chain_id:
            raise EngineNotReadyError(
                f"FHE engine is {state.status.value} for chain {state.chain_id}, "
                f"cannot encrypt for chain {writer.chain_id}"
            )

        builder = self._engine_manager.create_encrypted_input(contract, writer.address)
        result = await builder.add64(value).add32(timestamp).finalize()

        data = encode_call(
            SUBMIT_MESSAGE,
            [
                hex_to_bytes(result.handles[0]),
                hex_to_bytes(result.handles[1]),
                hex_to_bytes(result.proof),
            ],
        )
        logger.info(
            f"Submitting encrypted message from {short_address(writer.address)} on chain {writer.chain_id}"
        )

        tx_hash = await writer.send_transaction(contract, data)
        receipt = await self._confirm(writer, tx_hash)

        return SubmissionReceipt(
            tx_hash=tx_hash,
            chain_id=writer.chain_id,
            message_id=find_message_id(receipt, contract),
            encrypted=True,
            handles=list(result.handles),
        )

    async def _confirm(self, writer: TransactingContext, tx_hash: str) -> dict:
        try:
            return await writer.wait_for_receipt(tx_hash, timeout=self._receipt_timeout)
        except TimeoutError as e:
            raise SubmissionError(f"Transaction {tx_hash} was not confirmed: {e}") from e

    async def load_messages(self) -> list[MessageRecord]:
        """List the connected account's messages.

        getUserMessages() keys on msg.sender, so calls carry the account as
        `from`.

        Raises:
            SignerUnavailableError: No wallet session
            MessageError: No contract or an undecodable response
        """
        bundle = self._resolver.bundle
        if bundle.read_context is None or bundle.write_context is None:
            raise SignerUnavailableError("No wallet session - connect a wallet first")

        read = bundle.read_context
        account = bundle.write_context.address
        contract = self._contract_for(read.chain_id)
        if contract is None:
            raise MessageError(f"No message contract configured for chain {read.chain_id}")

        try:
            raw_ids = await read.call(contract, encode_call(GET_USER_MESSAGES), from_address=account)
            (message_ids,) = decode_result(USER_MESSAGES_OUTPUT, raw_ids)

            records = []
            for message_id in message_ids:
                raw = await read.call(
                    contract,
                    encode_call(GET_MESSAGE_METADATA, [message_id]),
                    from_address=account,
                )
                sender, timestamp, exists = decode_result(MESSAGE_METADATA_OUTPUT, raw)
                records.append(
                    MessageRecord(
                        message_id=message_id,
                        sender=Web3.to_checksum_address(sender),
                        timestamp=timestamp,
                        exists=exists,
                        content=self._plaintexts.get((read.chain_id, contract, message_id)),
                    )
                )
        except ValueError as e:
            raise MessageError(f"Unable to read messages: {e}") from e

        logger.debug(f"Loaded {len(records)} message(s) for {short_address(account)}")
        return records

    async def decrypt_message(self, message_id: int, prefer_direct: bool = False) -> Optional[int]:
        """Reveal a message after the wallet signs a decryption request.

        Returns:
            The plaintext, or None on a local chain when it was not
            submitted through this service

        Raises:
            SignerUnavailableError: No wallet session
            DecryptionUnavailableError: Remote chain (no gateway decryption)
        """
        bundle: SignerBundle = self._resolver.bundle
        writer = bundle.select_writer(prefer_direct)

        request = DECRYPT_MESSAGE_TEMPLATE.format(
            message_id=message_id,
            timestamp_ms=int(self._clock() * 1000),
        )
        await writer.sign_message(request)

        if not is_local_chain(writer.chain_id):
            raise DecryptionUnavailableError(
                f"Decryption of message #{message_id} is not available on chain {writer.chain_id}"
            )

        contract = self._require_contract(writer.chain_id)
        content = self._plaintexts.get((writer.chain_id, contract, message_id))
        if content is None:
            logger.info(f"Message #{message_id} content not cached")
        return content


class MessageError(Exception):
    """Base exception for message operations."""
    pass


class SubmissionError(MessageError):
    """Message could not be submitted or confirmed."""
    pass


class DecryptionUnavailableError(MessageError):
    """No decryption path for the active chain."""
    pass
