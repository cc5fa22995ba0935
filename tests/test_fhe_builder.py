"""Tests for encrypted input builders and the local engine."""

import pytest

from cipherwave.fhe.base import (
    DraftReusedError,
    EncryptedInputResult,
    EncryptionError,
    EngineKind,
    EngineSupersededError,
    UnsupportedWidthError,
    ValueOutOfRangeError,
    to_hex,
)
from cipherwave.fhe.local import PLACEHOLDER_PROOF, LocalEngine
from cipherwave.fhe.remote import InputEncryptor, RemoteEngine

from tests.conftest import CONTRACT, HARDHAT_ACCOUNT_0


class RecordingEncryptor(InputEncryptor):
    """Returns raw-byte handles and records what it was asked to encrypt."""

    def __init__(self, handle_count=None):
        self.requests = []
        self.handle_count = handle_count

    async def encrypt(self, contract_address, user_address, values):
        self.requests.append((contract_address, user_address, list(values)))
        count = len(values) if self.handle_count is None else self.handle_count
        return [bytes([i + 1]) * 32 for i in range(count)], b"\xaa\xbb"


class TestEncryptedInputBuilder:
    """Tests for the builder contract."""

    @pytest.mark.asyncio
    async def test_handles_match_values_in_order(self):
        """Test one handle per value and a single proof."""
        engine = LocalEngine(31337)
        builder = engine.create_encrypted_input(CONTRACT, HARDHAT_ACCOUNT_0)

        result = await builder.add64(42).add32(1700000000).add8(7).finalize()

        assert isinstance(result, EncryptedInputResult)
        assert len(result) == 3
        assert result.proof == PLACEHOLDER_PROOF
        assert all(h.startswith("0x") and len(h) == 66 for h in result.handles)
        assert len(set(result.handles)) == 3
        issued = [int(h, 16) for h in result.handles]
        assert issued == sorted(issued)

    @pytest.mark.asyncio
    async def test_local_handles_never_repeat(self):
        """Test handles are unique across builders and engines."""
        first = await LocalEngine(31337).create_encrypted_input(CONTRACT, HARDHAT_ACCOUNT_0).add64(1).finalize()
        second = await LocalEngine(1337).create_encrypted_input(CONTRACT, HARDHAT_ACCOUNT_0).add64(1).finalize()

        assert first.handles[0] != second.handles[0]

    def test_addresses_are_checksummed(self):
        """Test lowercase addresses are normalized."""
        builder = LocalEngine(31337).create_encrypted_input(CONTRACT.lower(), HARDHAT_ACCOUNT_0.lower())

        assert builder.contract_address == CONTRACT
        assert builder.user_address == HARDHAT_ACCOUNT_0

    def test_invalid_address_rejected(self):
        """Test a malformed address raises ValueError."""
        with pytest.raises(ValueError):
            LocalEngine(31337).create_encrypted_input("0x1234", HARDHAT_ACCOUNT_0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("width", [8, 16, 32, 64, 128, 256])
    async def test_width_bounds(self, width):
        """Test the largest value of each width fits and the next does not."""
        builder = LocalEngine(31337).create_encrypted_input(CONTRACT, HARDHAT_ACCOUNT_0)

        builder.add_value(width, 2**width - 1)
        with pytest.raises(ValueOutOfRangeError):
            builder.add_value(width, 2**width)

        # The rejected value is not recorded and the draft stays usable
        assert len(builder) == 1
        assert builder.values == ((width, 2**width - 1),)
        result = await builder.finalize()
        assert len(result.handles) == 1

    def test_negative_value_rejected(self):
        """Test negative magnitudes are out of range."""
        builder = LocalEngine(31337).create_encrypted_input(CONTRACT, HARDHAT_ACCOUNT_0)

        with pytest.raises(ValueOutOfRangeError):
            builder.add64(-1)

    @pytest.mark.parametrize("width", [1, 4, 24, 512])
    def test_unsupported_width(self, width):
        """Test widths outside the supported set."""
        builder = LocalEngine(31337).create_encrypted_input(CONTRACT, HARDHAT_ACCOUNT_0)

        with pytest.raises(UnsupportedWidthError):
            builder.add_value(width, 1)

    def test_non_integer_rejected(self):
        """Test bools and floats are not accepted as magnitudes."""
        builder = LocalEngine(31337).create_encrypted_input(CONTRACT, HARDHAT_ACCOUNT_0)

        with pytest.raises(TypeError):
            builder.add8(True)
        with pytest.raises(TypeError):
            builder.add8(1.5)
        assert len(builder) == 0

    @pytest.mark.asyncio
    async def test_single_use(self):
        """Test a finalized builder cannot be extended or finalized again."""
        builder = LocalEngine(31337).create_encrypted_input(CONTRACT, HARDHAT_ACCOUNT_0)
        await builder.add64(1).finalize()

        assert builder.finalized
        with pytest.raises(DraftReusedError):
            builder.add64(2)
        with pytest.raises(DraftReusedError):
            await builder.finalize()

    @pytest.mark.asyncio
    async def test_retired_engine_fails_fast(self):
        """Test builders from a discarded engine refuse to continue."""
        engine = LocalEngine(31337)
        builder = engine.create_encrypted_input(CONTRACT, HARDHAT_ACCOUNT_0).add64(1)

        engine.retire()

        assert not engine.is_active
        with pytest.raises(EngineSupersededError):
            builder.add32(2)
        with pytest.raises(EngineSupersededError):
            await builder.finalize()
        with pytest.raises(EngineSupersededError):
            engine.create_encrypted_input(CONTRACT, HARDHAT_ACCOUNT_0)


class TestRemoteEngine:
    """Tests for the provisioned engine wrapper."""

    @pytest.mark.asyncio
    async def test_outputs_normalized_to_hex(self):
        """Test raw byte handles and proof come back as 0x-hex."""
        encryptor = RecordingEncryptor()
        engine = RemoteEngine(11155111, encryptor)

        result = await engine.create_encrypted_input(CONTRACT, HARDHAT_ACCOUNT_0).add64(5).add32(9).finalize()

        assert engine.kind == EngineKind.REMOTE
        assert result.handles == ("0x" + "01" * 32, "0x" + "02" * 32)
        assert result.proof == "0xaabb"
        assert encryptor.requests == [(CONTRACT, HARDHAT_ACCOUNT_0, [(64, 5), (32, 9)])]

    @pytest.mark.asyncio
    async def test_handle_count_mismatch(self):
        """Test an encryptor returning the wrong number of handles is an error."""
        engine = RemoteEngine(11155111, RecordingEncryptor(handle_count=1))

        with pytest.raises(EncryptionError):
            await engine.create_encrypted_input(CONTRACT, HARDHAT_ACCOUNT_0).add64(5).add32(9).finalize()

    def test_to_hex(self):
        """Test hex normalization of bytes and strings."""
        assert to_hex(b"\x01\x02") == "0x0102"
        assert to_hex("abcd") == "0xabcd"
        assert to_hex("0xabcd") == "0xabcd"
        with pytest.raises(TypeError):
            to_hex(5)
