"""Local test account signing.

Uses in-memory private keys of the well-known local development accounts
(Hardhat/Anvil mnemonic "test test test test test test test test test test
test junk"). Suitable ONLY for local dev chains:
- Bypasses wallet request-rate limits for read-heavy test flows
- Never built for a chain without a configured local RPC endpoint
- Never available in production (see get_local_account_registry)
"""

import logging
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import Web3

from cipherwave.config import Settings, get_settings
from cipherwave.signing.base import SignerType, TransactingContext
from cipherwave.wallet.base import short_address
from cipherwave.wallet.rpc import JsonRpcClient, to_quantity

logger = logging.getLogger(__name__)


# Publicly documented development keys - worthless on any real network
LOCAL_TEST_ACCOUNTS: dict[str, str] = {
    "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266": "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80",
    "0x70997970c51812dc3a010c7d01b50e0d17dc79c8": "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d",
    "0x3c44cdddb6a900fa2b585dd299e03d12fa4293bc": "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a",
    "0x90f79bf6eb2c4f870365e785982e1f101e93b906": "0x7c852118294e51e653712a81e05800f419141751be58f605c371e15141b007a6",
    "0x15d34aaf54267db7d7c367839aaf71a00a2c6a65": "0x47e179ec197488593b187f80a00eb0da91f1b9d0b13f8733639f19c30a34926a",
    "0x9965507d1a55bcc2695c58ba16fb37d819b0a4dc": "0x8b3a350cf5c34c9194ca85829a2df0ec3153be0318b5e2d3348e872092edffba",
    "0x976ea74026e726554db657fa54763abd0c3a0aa9": "0x92db14e403b83dfe3df233f83dfa3a0d7096f21ca9b0d6d6b8d88b2b4ec1564e",
    "0x14dc79964da2c08b23698b3d3cc7ca32193d9955": "0x4bbbf85ce3377467afe5d46f804f221813b2bb87f24d81f60f1fcdbf7cbf4356",
    "0x23618e81e3f5cdf7f54c3d65f7fbc0abf5b21e8f": "0xdbda1821b80551c9d65939329250298aa3472ba22feea921c0cf5d620ea67b97",
    "0xa0ee7a142d267c1f36714e4a8f75612f20a79720": "0x2a871d0798f97d79848a013d4936a73bf4cc922c825d33c1cf7073dff6d409c6",
    "0xbcd4042de499d14e55001ccbb24a551f3b954096": "0xf214f2b2cd398c806f84e317254e0f0b801d0643303237d97a22a48e01628897",
    "0x71be63f3384f5fb98995898a86b02fb2426c5788": "0x701b615bbdfb9de65240bc28bd21bbc0d996645a3dd57e7b12bc2bdf6f192c82",
    "0xfabb0ac9d68b0b445fb7357272ff202c5651694a": "0xa267530f49f8280200edf313ee7af6b827f2a8bce2897751d06a843f644967b1",
    "0x1cbd3b2770909d4e10f157cabc84c7264073c9ec": "0x47c99abed3324a2707c28affff1267e45918ec8c3f20b8aa892e8b065d2942dd",
    "0xdf3e18d64bc6a983f673ab319ccae4f1a57c7097": "0xc526ee95bf44d8fc405a158bb884d9d1238d99f0612e9f33d006bb0789009aaa",
    "0xcd3b766ccdd6ae721141f452c550ca635964ce71": "0x8166f546bab6da521a8369cab06c5d2b9e46670292d85c875ee9ec20e84ffb61",
    "0x2546bcd3c84621e976d8185a91a922ae77ecec30": "0xea6c44ac03bff858b476bba40716402b03e41b8e97e276d1baec7c37d42484a0",
    "0xbda5747bfd65f08deb54cb465eb87d40e51b197e": "0x689af8efa8c651a91ad287602527f3af2fe9f6501a7ac4b061667b5a93e037fd",
    "0xdd2fd4581271e230360230f9337d5c0430bf44c0": "0xde9be858da4a475276426320d5e9262ecfc3ba460bfac56360bfa6c4c28b4ee0",
    "0x8626f6940e2eb28930efb4cef49b2d1f2c9c1199": "0xdf57089febbacf7ba0bc227dafbffa9fc08a93fdc68e1e42411a14efcf23656e",
}


class LocalAccountRegistry:
    """Known local development accounts, keyed by lowercase address."""

    def __init__(self, keys: Optional[dict[str, str]] = None):
        source = LOCAL_TEST_ACCOUNTS if keys is None else keys
        self._keys = {address.lower(): key for address, key in source.items()}

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and address.lower() in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def addresses(self) -> list[str]:
        """Checksummed addresses of all known accounts."""
        return [Web3.to_checksum_address(address) for address in self._keys]

    def account_for(self, address: str) -> Optional[LocalAccount]:
        """Get a signing account for an address, or None if unknown."""
        key = self._keys.get(address.lower())
        if key is None:
            return None
        return Account.from_key(key)


_registry_instance: Optional[LocalAccountRegistry] = None


def get_local_account_registry(settings: Optional[Settings] = None) -> Optional[LocalAccountRegistry]:
    """Get the local test account registry.

    Returns None in production or when ENABLE_LOCAL_ACCOUNTS is false, so
    no production code path can reach the test keys.
    """
    settings = settings or get_settings()
    if not settings.local_accounts_allowed:
        logger.debug("Local test accounts disabled")
        return None

    global _registry_instance
    if _registry_instance is None:
        _registry_instance = LocalAccountRegistry()
        logger.info(f"Local test account registry loaded ({len(_registry_instance)} accounts)")
    return _registry_instance


def reset_local_account_registry() -> None:
    """Reset the registry instance (for testing)."""
    global _registry_instance
    _registry_instance = None


class DirectWriteContext(TransactingContext):
    """Private-key backed transacting handle talking to a local node.

    Transactions are signed in-process and broadcast with
    eth_sendRawTransaction, bypassing the wallet transport entirely.
    """

    def __init__(self, account: LocalAccount, chain_id: int, rpc: JsonRpcClient):
        super().__init__(SignerType.LOCAL, account.address, chain_id, rpc)
        self._account = account

    async def send_transaction(
        self,
        to: str,
        data: str = "0x",
        value: int = 0,
        gas: Optional[int] = None,
    ) -> str:
        nonce = await self.rpc.get_transaction_count(self.address, "pending")
        gas_price = await self.rpc.gas_price()
        if gas is None:
            gas = await self.rpc.estimate_gas(self._base_tx(to, data, value))

        tx = {
            "nonce": nonce,
            "gasPrice": gas_price,
            "gas": gas,
            "to": Web3.to_checksum_address(to),
            "value": value,
            "data": data,
            "chainId": self.chain_id,
        }
        signed_tx = self._account.sign_transaction(tx)
        # eth-account >= 0.13 uses raw_transaction, older versions rawTransaction
        raw_tx = getattr(signed_tx, "raw_transaction", None) or signed_tx.rawTransaction

        logger.debug(f"Direct transaction from {short_address(self.address)} nonce={nonce}")
        return await self.rpc.send_raw_transaction(Web3.to_hex(raw_tx))

    async def sign_message(self, message: str) -> str:
        signed = self._account.sign_message(encode_defunct(text=message))
        return Web3.to_hex(signed.signature)
