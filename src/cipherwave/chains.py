"""Chain identities and local development bindings.

Two chain IDs are treated as local development networks:
- 31337 (Hardhat)
- 1337 (Ganache / geth --dev)

Every other chain ID is a remote chain that needs a real FHE engine.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from cipherwave.config import Settings, get_settings

logger = logging.getLogger(__name__)

HARDHAT_CHAIN_ID = 31337
GANACHE_CHAIN_ID = 1337

LOCAL_CHAIN_IDS: frozenset[int] = frozenset({HARDHAT_CHAIN_ID, GANACHE_CHAIN_ID})

CHAIN_NAMES: dict[int, str] = {
    1: "Ethereum",
    11155111: "Sepolia",
    HARDHAT_CHAIN_ID: "Hardhat",
    GANACHE_CHAIN_ID: "Ganache",
}


@dataclass(frozen=True)
class ChainBinding:
    """Configured binding of a chain ID to its local RPC endpoint."""

    chain_id: int
    local_rpc_url: Optional[str] = None

    @property
    def is_local(self) -> bool:
        return self.chain_id in LOCAL_CHAIN_IDS

    @property
    def has_local_rpc(self) -> bool:
        return self.local_rpc_url is not None


class ChainBindings:
    """Lookup table of chain bindings.

    Chains without an entry resolve to a binding with no local endpoint.
    Only recognized local chain IDs can be bound; other entries are dropped
    so the local test keys never reach a real network.
    """

    def __init__(self, local_rpc_urls: Optional[dict[int, str]] = None):
        self._bindings: dict[int, ChainBinding] = {}
        for chain_id, url in (local_rpc_urls or {}).items():
            if chain_id not in LOCAL_CHAIN_IDS:
                logger.warning(f"Ignoring local RPC binding for non-local chain {chain_id}")
                continue
            self._bindings[chain_id] = ChainBinding(chain_id=chain_id, local_rpc_url=url)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ChainBindings":
        settings = settings or get_settings()
        return cls(settings.local_rpc_urls)

    def get(self, chain_id: int) -> ChainBinding:
        """Get the binding for a chain ID."""
        return self._bindings.get(chain_id) or ChainBinding(chain_id=chain_id)

    def local_rpc_url(self, chain_id: int) -> Optional[str]:
        return self.get(chain_id).local_rpc_url

    def __iter__(self):
        return iter(self._bindings.values())

    def __len__(self) -> int:
        return len(self._bindings)


def is_local_chain(chain_id: Optional[int]) -> bool:
    """Check if a chain ID is a recognized local development network."""
    return chain_id in LOCAL_CHAIN_IDS


def parse_chain_id(value: Union[str, int, None]) -> Optional[int]:
    """Parse a chain ID delivered by a wallet.

    Wallets report chain IDs as hex quantities ("0x7a69"); some report
    decimal strings or plain integers.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid chain ID: {value!r}")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    if text.lower().startswith("0x"):
        return int(text, 16)
    return int(text)


def get_chain_name(chain_id: int) -> str:
    """Human readable chain name."""
    return CHAIN_NAMES.get(chain_id, f"Chain {chain_id}")
