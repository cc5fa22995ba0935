"""Base interfaces for read and write execution contexts.

Signing flow:
1. SignerResolver derives a SignerBundle from the wallet session
2. Reads go through read_context (local node or wallet transport)
3. Writes go through write_context (wallet confirms every transaction)
4. On local dev chains, direct_write_context signs with a known test key
5. Caller waits for the receipt through the same context
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from cipherwave.wallet.base import short_address
from cipherwave.wallet.rpc import RpcClient, from_quantity, to_quantity

logger = logging.getLogger(__name__)


class SignerType(str, Enum):
    """Who produces signatures for a transacting context."""
    WALLET = "wallet"   # Injected wallet, user confirms each request
    LOCAL = "local"     # Private key in memory (local test accounts only)


class ReadSource(str, Enum):
    """Where read-only calls are sent."""
    LOCAL_RPC = "local_rpc"
    WALLET = "wallet"


@dataclass(frozen=True)
class ReadContext:
    """Contract-call capable handle bound to the best read transport.

    Attributes:
        rpc: JSON-RPC client the calls go through
        source: Whether reads bypass the wallet
        chain_id: Chain the context was derived for
    """
    rpc: RpcClient
    source: ReadSource
    chain_id: int

    async def call(self, to: str, data: str, from_address: Optional[str] = None) -> str:
        """Execute eth_call and return the raw hex result."""
        tx = {"to": to, "data": data}
        if from_address:
            tx["from"] = from_address
        return await self.rpc.call(tx)


class TransactingContext(ABC):
    """Abstract base class for contexts that can send transactions.

    Implementations NEVER expose raw private keys.
    """

    def __init__(self, signer_type: SignerType, address: str, chain_id: int, rpc: RpcClient):
        self.signer_type = signer_type
        self.address = address
        self.chain_id = chain_id
        self.rpc = rpc

    @abstractmethod
    async def send_transaction(
        self,
        to: str,
        data: str = "0x",
        value: int = 0,
        gas: Optional[int] = None,
    ) -> str:
        """Send a transaction from this context's account.

        Args:
            to: Destination (contract) address
            data: ABI-encoded calldata
            value: Wei to transfer
            gas: Optional gas limit (estimated when omitted)

        Returns:
            Transaction hash
        """
        pass

    @abstractmethod
    async def sign_message(self, message: str) -> str:
        """Sign a human-readable message (EIP-191 personal_sign).

        Returns:
            Signature as 0x-prefixed hex
        """
        pass

    async def call(self, to: str, data: str) -> str:
        """eth_call with this account as msg.sender."""
        return await self.rpc.call({"from": self.address, "to": to, "data": data})

    async def wait_for_receipt(
        self,
        tx_hash: str,
        timeout: float = 120.0,
        poll_interval: float = 1.0,
    ) -> dict:
        """Wait for a transaction to be mined.

        Args:
            tx_hash: Transaction hash to wait for
            timeout: Maximum seconds to wait
            poll_interval: Seconds between receipt polls

        Returns:
            Transaction receipt dict

        Raises:
            TimeoutError: If not mined within timeout
            TransactionFailedError: If the transaction reverted
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            receipt = await self.rpc.get_transaction_receipt(tx_hash)
            if receipt is not None:
                status = receipt.get("status")
                if status is not None and from_quantity(status) == 0:
                    raise TransactionFailedError(f"Transaction {tx_hash} reverted")
                return receipt

            if loop.time() >= deadline:
                raise TimeoutError(f"Transaction {tx_hash} not mined after {timeout}s")
            await asyncio.sleep(poll_interval)

    def _base_tx(self, to: str, data: str, value: int) -> dict:
        return {
            "from": self.address,
            "to": to,
            "data": data,
            "value": to_quantity(value),
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(type={self.signer_type.value}, "
            f"address={short_address(self.address)}, chain={self.chain_id})"
        )


@dataclass(frozen=True)
class SignerBundle:
    """Execution contexts derived from the wallet session.

    An empty bundle (all None) means "no session", which is different from
    a session without write capability.
    """
    read_context: Optional[ReadContext] = None
    write_context: Optional[TransactingContext] = None
    direct_write_context: Optional[TransactingContext] = None

    @property
    def is_empty(self) -> bool:
        return (
            self.read_context is None
            and self.write_context is None
            and self.direct_write_context is None
        )

    @property
    def can_write(self) -> bool:
        return self.write_context is not None

    @property
    def has_direct_write(self) -> bool:
        return self.direct_write_context is not None

    def select_writer(self, prefer_direct: bool = False) -> TransactingContext:
        """Pick the context a submission is sent through.

        Args:
            prefer_direct: Use the local test key signer when available

        Raises:
            SignerUnavailableError: If there is no write context at all
        """
        if prefer_direct and self.direct_write_context is not None:
            return self.direct_write_context
        if self.write_context is None:
            raise SignerUnavailableError("No wallet session - connect a wallet first")
        return self.write_context


class SigningError(Exception):
    """Exception raised when signing or sending fails."""
    pass


class SignerUnavailableError(SigningError):
    """Exception raised when no write context is available."""
    pass


class TransactionFailedError(SigningError):
    """Exception raised when a transaction reverts."""
    pass
