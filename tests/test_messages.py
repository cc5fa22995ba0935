"""Tests for the encrypted message service."""

import pytest
from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from web3 import Web3

from cipherwave.config import Settings
from cipherwave.fhe.base import EngineNotReadyError
from cipherwave.fhe.manager import EncryptionInstanceManager
from cipherwave.fhe.remote import InputEncryptor, RemoteEngine
from cipherwave.messages.abi import (
    GET_MESSAGE_METADATA,
    GET_USER_MESSAGES,
    MESSAGE_SUBMITTED_TOPIC,
    SUBMIT_MESSAGE,
    SUBMIT_MESSAGE_MOCK,
    decode_result,
    encode_call,
    find_message_id,
    function_selector,
)
from cipherwave.messages.service import (
    DecryptionUnavailableError,
    MessageError,
    MessageService,
    SubmissionError,
)
from cipherwave.signing.base import SignerUnavailableError, TransactionFailedError
from cipherwave.signing.resolver import SignerResolver
from cipherwave.wallet.session import SessionManager

from tests.conftest import CONTRACT, HARDHAT_ACCOUNT_0, STRANGER, FakeRpc, FakeWalletTransport

NOW = 1700000000.25


def receipt(message_id=7, status="0x1", address=CONTRACT):
    return {
        "status": status,
        "logs": [
            {
                "address": address.lower(),
                "topics": [
                    MESSAGE_SUBMITTED_TOPIC,
                    "0x" + format(message_id, "064x"),
                    "0x" + "00" * 12 + HARDHAT_ACCOUNT_0[2:].lower(),
                ],
                "data": "0x",
            }
        ],
    }


def contract_calls(params):
    """eth_call handler emulating the message contract."""
    tx = params[0]
    data = tx["data"]
    if data == encode_call(GET_USER_MESSAGES):
        return Web3.to_hex(abi_encode(["uint256[]"], [[7, 9]]))
    if data.startswith(Web3.to_hex(function_selector(GET_MESSAGE_METADATA))):
        (message_id,) = abi_decode(["uint256"], Web3.to_bytes(hexstr=data)[4:])
        timestamp = 0 if message_id == 9 else 1700000000
        return Web3.to_hex(abi_encode(["address", "uint256", "bool"], [tx["from"], timestamp, True]))
    return "0x"


class Encryptor(InputEncryptor):
    async def encrypt(self, contract_address, user_address, values):
        return [bytes([i + 1]) * 32 for i in range(len(values))], b"\xde\xad"


class Stack:
    """Session, resolver, engine manager and service wired over fakes."""

    def __init__(self, settings, chain_id="0x7a69", accounts=None, provisioner=None):
        self.sent = []
        self.wallet = FakeWalletTransport(
            accounts=accounts,
            chain_id=chain_id,
            responses={
                "eth_sendTransaction": lambda params: self.sent.append(params[0]) or "0xwallettx",
                "eth_getTransactionReceipt": receipt(),
                "eth_call": contract_calls,
                "personal_sign": lambda params: "0xsignature",
            },
        )
        self.node = FakeRpc(
            {
                "eth_call": contract_calls,
                "eth_getTransactionCount": "0x0",
                "eth_gasPrice": "0x1",
                "eth_estimateGas": "0x30000",
                "eth_sendRawTransaction": "0xdirecttx",
                "eth_getTransactionReceipt": receipt(),
            }
        )
        self.session = SessionManager(self.wallet)
        self.resolver = SignerResolver(self.session, settings=settings, rpc_factory=lambda url: self.node)
        self.engines = EncryptionInstanceManager(provisioner, settings=settings)
        self.engines.attach(self.session)
        self.service = MessageService(self.resolver, self.engines, settings=settings, clock=lambda: NOW)

    def signed_messages(self):
        return [params[0] for method, params in self.wallet.calls if method == "personal_sign"]


async def remote_provisioner(endpoint_url, chain_id, token):
    return RemoteEngine(chain_id, Encryptor())


class TestAbi:
    """Tests for calldata helpers."""

    def test_selector_is_keccak_prefix(self):
        """Test function selectors are the first 4 keccak bytes."""
        assert function_selector("transfer(address,uint256)").hex() == "a9059cbb"

    def test_encode_call_checks_arity(self):
        """Test argument count must match the signature."""
        with pytest.raises(ValueError):
            encode_call(SUBMIT_MESSAGE_MOCK, [1])

    def test_decode_empty_result(self):
        """Test an empty eth_call result is reported."""
        with pytest.raises(ValueError):
            decode_result(["uint256"], "0x")

    def test_decode_truncated_result(self):
        """Test a short result is reported as a ValueError."""
        with pytest.raises(ValueError):
            decode_result(["uint256"], "0x" + "00" * 5)

    def test_find_message_id_ignores_other_contracts(self):
        """Test logs from other addresses are skipped."""
        assert find_message_id(receipt(5), CONTRACT) == 5
        assert find_message_id(receipt(5, address=STRANGER), CONTRACT) is None
        assert find_message_id({"logs": []}, CONTRACT) is None


class TestLocalSubmission:
    """Tests for plaintext submission on dev chains."""

    @pytest.mark.asyncio
    async def test_submit_and_decrypt(self, settings):
        """Test a mock submission is cached and revealed after signing."""
        stack = Stack(settings)
        await stack.session.connect()
        assert stack.service.is_ready

        result = await stack.service.submit_message(42)

        assert result.tx_hash == "0xwallettx"
        assert result.message_id == 7
        assert not result.encrypted
        tx = stack.sent[0]
        assert tx["to"] == CONTRACT
        assert tx["data"].startswith(Web3.to_hex(function_selector(SUBMIT_MESSAGE_MOCK)))
        assert abi_decode(["uint64", "uint32"], Web3.to_bytes(hexstr=tx["data"])[4:]) == (42, 1700000000)

        assert await stack.service.decrypt_message(7) == 42
        signed = stack.signed_messages()[0]
        assert Web3.to_bytes(hexstr=signed).decode() == (
            "Decrypt message #7 from CipherWaveSync\nTimestamp: 1700000000250"
        )

    @pytest.mark.asyncio
    async def test_direct_submission_bypasses_wallet(self, settings):
        """Test prefer_direct signs with the local key and skips the wallet."""
        stack = Stack(settings)
        await stack.session.connect()

        result = await stack.service.submit_message(1, prefer_direct=True)

        assert result.tx_hash == "0xdirecttx"
        assert stack.sent == []
        assert "eth_sendTransaction" not in stack.wallet.methods()

    @pytest.mark.asyncio
    async def test_uncached_message_decrypts_to_none(self, settings):
        """Test messages not submitted here have no local plaintext."""
        stack = Stack(settings)
        await stack.session.connect()

        assert await stack.service.decrypt_message(99) is None
        assert len(stack.signed_messages()) == 1

    @pytest.mark.asyncio
    async def test_missing_event_is_not_cached(self, settings):
        """Test a receipt without MessageSubmitted still succeeds."""
        stack = Stack(settings)
        stack.wallet.responses["eth_getTransactionReceipt"] = {"status": "0x1", "logs": []}
        await stack.session.connect()

        result = await stack.service.submit_message(3)

        assert result.message_id is None

    @pytest.mark.asyncio
    async def test_reverted_submission(self, settings):
        """Test a reverted transaction raises."""
        stack = Stack(settings)
        stack.wallet.responses["eth_getTransactionReceipt"] = receipt(status="0x0")
        await stack.session.connect()

        with pytest.raises(TransactionFailedError):
            await stack.service.submit_message(3)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [-1, 2**64, True, "12"])
    async def test_invalid_content_rejected(self, settings, value):
        """Test content must be an unsigned 64-bit integer."""
        stack = Stack(settings)
        await stack.session.connect()

        with pytest.raises(SubmissionError):
            await stack.service.submit_message(value)
        assert stack.sent == []

    @pytest.mark.asyncio
    async def test_no_contract_for_chain(self):
        """Test submission needs a configured contract."""
        stack = Stack(Settings(environment="test", contract_addresses={}))
        await stack.session.connect()

        assert not stack.service.is_ready
        with pytest.raises(SubmissionError):
            await stack.service.submit_message(1)

    @pytest.mark.asyncio
    async def test_no_session(self, settings):
        """Test operations need a connected wallet."""
        stack = Stack(settings)

        assert not stack.service.is_ready
        with pytest.raises(SignerUnavailableError):
            await stack.service.submit_message(1)
        with pytest.raises(SignerUnavailableError):
            await stack.service.load_messages()


class TestLoadMessages:
    """Tests for listing messages."""

    @pytest.mark.asyncio
    async def test_lists_metadata_with_cached_content(self, settings):
        """Test records carry metadata and locally cached plaintext."""
        stack = Stack(settings)
        await stack.session.connect()
        await stack.service.submit_message(42)

        records = await stack.service.load_messages()

        assert [r.message_id for r in records] == [7, 9]
        assert records[0].sender == HARDHAT_ACCOUNT_0
        assert records[0].content == 42
        assert records[0].decrypted
        assert records[0].submitted_at.year == 2023
        assert records[1].submitted_at is None
        assert not records[1].decrypted

        calls = [params for method, params in stack.node.calls if method == "eth_call"]
        assert all(params[0]["from"] == HARDHAT_ACCOUNT_0 for params in calls)

    @pytest.mark.asyncio
    async def test_undeployed_contract(self, settings):
        """Test an empty call result is reported as a message error."""
        stack = Stack(settings)
        stack.node.responses["eth_call"] = "0x"
        await stack.session.connect()

        with pytest.raises(MessageError):
            await stack.service.load_messages()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("result", ["0x" + "00" * 5, "0x" + "00" * 31 + "20"])
    async def test_garbage_result(self, settings, result):
        """Test truncated or malformed call results are reported as message errors."""
        stack = Stack(settings)
        stack.node.responses["eth_call"] = result
        await stack.session.connect()

        with pytest.raises(MessageError):
            await stack.service.load_messages()


class TestRemoteSubmission:
    """Tests for encrypted submission on remote chains."""

    @pytest.mark.asyncio
    async def test_submit_encrypted(self, settings):
        """Test handles and proof are sent to submitMessage."""
        stack = Stack(settings, chain_id="0xaa36a7", provisioner=remote_provisioner)
        await stack.session.connect()
        await stack.engines.wait_ready()
        assert stack.service.is_ready

        result = await stack.service.submit_message(42)

        assert result.encrypted
        assert result.handles == ["0x" + "01" * 32, "0x" + "02" * 32]
        data = Web3.to_bytes(hexstr=stack.sent[0]["data"])
        assert data[:4] == function_selector(SUBMIT_MESSAGE)
        handle0, handle1, proof = abi_decode(["bytes32", "bytes32", "bytes"], data[4:])
        assert handle0 == b"\x01" * 32
        assert handle1 == b"\x02" * 32
        assert proof == b"\xde\xad"

    @pytest.mark.asyncio
    async def test_engine_not_ready(self, settings):
        """Test remote submission needs a ready engine."""

        async def never(endpoint_url, chain_id, token):
            await token.wait()
            token.raise_if_cancelled()

        stack = Stack(settings, chain_id="0xaa36a7", provisioner=never)
        await stack.session.connect()

        assert not stack.service.is_ready
        with pytest.raises(EngineNotReadyError):
            await stack.service.submit_message(42)
        stack.engines.close()

    @pytest.mark.asyncio
    async def test_decrypt_unavailable(self, settings):
        """Test remote decryption is refused after the signature request."""
        stack = Stack(settings, chain_id="0xaa36a7", provisioner=remote_provisioner)
        await stack.session.connect()

        with pytest.raises(DecryptionUnavailableError):
            await stack.service.decrypt_message(1)
        assert len(stack.signed_messages()) == 1
