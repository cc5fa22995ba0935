"""Calldata and log helpers for the encrypted message contract."""

from typing import Optional, Sequence

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError
from web3 import Web3

SUBMIT_MESSAGE = "submitMessage(bytes32,bytes32,bytes)"
SUBMIT_MESSAGE_MOCK = "submitMessageMock(uint64,uint32)"  # local chains, plaintext
GET_USER_MESSAGES = "getUserMessages()"
GET_MESSAGE_METADATA = "getMessageMetadata(uint256)"

MESSAGE_SUBMITTED_EVENT = "MessageSubmitted(uint256,address,uint256)"

USER_MESSAGES_OUTPUT = ("uint256[]",)
MESSAGE_METADATA_OUTPUT = ("address", "uint256", "bool")


def _arg_types(signature: str) -> list[str]:
    inner = signature[signature.index("(") + 1 : signature.rindex(")")]
    return [t for t in inner.split(",") if t]


def function_selector(signature: str) -> bytes:
    """First 4 bytes of keccak256 of the function signature."""
    return bytes(Web3.keccak(text=signature)[:4])


def event_topic(signature: str) -> str:
    return Web3.to_hex(Web3.keccak(text=signature))


MESSAGE_SUBMITTED_TOPIC = event_topic(MESSAGE_SUBMITTED_EVENT)


def encode_call(signature: str, args: Sequence = ()) -> str:
    """Build 0x-hex calldata for a function call.

    Args:
        signature: Canonical signature, e.g. "submitMessageMock(uint64,uint32)"
        args: Arguments in declaration order

    Returns:
        Selector followed by the ABI-encoded arguments
    """
    types = _arg_types(signature)
    if len(types) != len(args):
        raise ValueError(f"{signature} takes {len(types)} argument(s), got {len(args)}")
    encoded = abi_encode(types, list(args)) if types else b""
    return Web3.to_hex(function_selector(signature) + encoded)


def decode_result(types: Sequence[str], data: str) -> tuple:
    """Decode an eth_call result.

    Raises:
        ValueError: If the result is empty (no contract at the address) or
            does not decode as the expected types
    """
    raw = Web3.to_bytes(hexstr=data) if data else b""
    if not raw:
        raise ValueError("Empty call result - is the contract deployed on this chain?")
    try:
        return tuple(abi_decode(list(types), raw))
    except DecodingError as e:
        raise ValueError(f"Undecodable call result for {list(types)}: {e}") from e


def hex_to_bytes(value: str) -> bytes:
    return Web3.to_bytes(hexstr=value)


def find_message_id(receipt: dict, contract_address: str) -> Optional[int]:
    """Extract the message ID from a MessageSubmitted log in a receipt."""
    contract = contract_address.lower()
    for log in receipt.get("logs") or []:
        topics = log.get("topics") or []
        if len(topics) < 2 or str(topics[0]).lower() != MESSAGE_SUBMITTED_TOPIC:
            continue
        address = log.get("address")
        if address and address.lower() != contract:
            continue
        return int(topics[1], 16)
    return None
