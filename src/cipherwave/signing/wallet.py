"""Wallet-mediated write context.

Every transaction and signature is forwarded to the injected wallet, which
asks the user to confirm it. This is the only write path on remote chains.
"""

import logging
from typing import Optional

from cipherwave.signing.base import SignerType, TransactingContext
from cipherwave.wallet.base import short_address
from cipherwave.wallet.rpc import TransportRpcClient, to_quantity

logger = logging.getLogger(__name__)


class WalletWriteContext(TransactingContext):
    """Transacting handle bound to the wallet's active account."""

    def __init__(self, rpc: TransportRpcClient, address: str, chain_id: int):
        super().__init__(SignerType.WALLET, address, chain_id, rpc)

    async def send_transaction(
        self,
        to: str,
        data: str = "0x",
        value: int = 0,
        gas: Optional[int] = None,
    ) -> str:
        tx = self._base_tx(to, data, value)
        if gas is not None:
            tx["gas"] = to_quantity(gas)

        logger.info(f"Requesting wallet transaction from {short_address(self.address)} to {short_address(to)}")
        return await self.rpc.request("eth_sendTransaction", [tx])

    async def sign_message(self, message: str) -> str:
        payload = "0x" + message.encode("utf-8").hex()
        logger.info(f"Requesting personal_sign from {short_address(self.address)}")
        return await self.rpc.request("personal_sign", [payload, self.address])
