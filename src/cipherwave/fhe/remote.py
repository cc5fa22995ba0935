"""Remote FHE engine and gateway provisioning.

Provisioning a real engine:
1. Confirm the RPC endpoint serves the requested chain (eth_chainId)
2. Fetch the network's public key material from the FHE gateway
3. Hand the key material to an InputEncryptor implementation
4. Wrap it in a RemoteEngine bound to the chain

Every network step is abandoned as soon as the cancellation token fires.
"""

import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, Sequence, Union

import httpx

from cipherwave.fhe.base import (
    EncryptedInputDraft,
    EncryptedInputResult,
    EncryptionEngine,
    EncryptionError,
    EngineKind,
    ProvisioningFailedError,
    to_hex,
)
from cipherwave.utils.cancellation import CancellationToken
from cipherwave.wallet.base import RpcError
from cipherwave.wallet.rpc import JsonRpcClient

logger = logging.getLogger(__name__)

KEY_URL_PATH = "/v1/keyurl"

HexOrBytes = Union[bytes, str]

# provision(endpoint_url, chain_id, token) -> engine
Provisioner = Callable[[str, int, CancellationToken], Awaitable[EncryptionEngine]]


class InputEncryptor(ABC):
    """Real encryption backend (e.g. a TFHE binding) for one network key."""

    @abstractmethod
    async def encrypt(
        self,
        contract_address: str,
        user_address: str,
        values: Sequence[tuple[int, int]],
    ) -> tuple[Sequence[HexOrBytes], HexOrBytes]:
        """Encrypt values and prove them for a contract/user pair.

        Args:
            contract_address: Target contract (checksummed)
            user_address: Submitting account (checksummed)
            values: (width, magnitude) pairs in order

        Returns:
            (handles, proof) with one handle per value
        """
        pass


class RemoteEngine(EncryptionEngine):
    """Engine backed by a provisioned InputEncryptor."""

    def __init__(self, chain_id: int, encryptor: InputEncryptor, key_info: Optional[dict] = None):
        super().__init__(EngineKind.REMOTE, chain_id)
        self._encryptor = encryptor
        self.key_info = key_info or {}

    async def encrypt(self, draft: EncryptedInputDraft) -> EncryptedInputResult:
        self.ensure_active()
        handles, proof = await self._encryptor.encrypt(
            draft.contract_address,
            draft.user_address,
            list(draft.values),
        )
        # The engine may have been discarded while the encryptor was running
        self.ensure_active()

        return EncryptedInputResult(
            handles=tuple(to_hex(h) for h in handles),
            proof=to_hex(proof),
        )

    def describe(self) -> dict:
        info = super().describe()
        info["encryptor"] = self._encryptor.__class__.__name__
        return info


class GatewayProvisioner:
    """Provisions RemoteEngines using key material from the FHE gateway."""

    def __init__(
        self,
        gateway_url: str,
        encryptor_factory: Callable[[dict], InputEncryptor],
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize provisioner.

        Args:
            gateway_url: Gateway base URL
            encryptor_factory: Builds an encryptor from the gateway key info
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport (mock transports in tests)
        """
        self.gateway_url = gateway_url.rstrip("/")
        self.encryptor_factory = encryptor_factory
        self.timeout = timeout
        self._transport = transport

    async def __call__(self, endpoint_url: str, chain_id: int, token: CancellationToken) -> RemoteEngine:
        logger.info(f"Provisioning FHE engine for chain {chain_id} via {endpoint_url}")

        rpc = JsonRpcClient(endpoint_url, timeout=self.timeout, transport=self._transport)
        try:
            remote_chain_id = await token.guard(rpc.chain_id())
        except RpcError as e:
            raise ProvisioningFailedError(f"RPC endpoint unreachable: {e}", chain_id=chain_id) from e

        if remote_chain_id != chain_id:
            raise ProvisioningFailedError(
                f"RPC endpoint serves chain {remote_chain_id}, expected {chain_id}",
                chain_id=chain_id,
            )

        key_info = await token.guard(self._fetch_key_info(chain_id))
        token.raise_if_cancelled()

        try:
            encryptor = self.encryptor_factory(key_info)
        except EncryptionError:
            raise
        except Exception as e:
            raise ProvisioningFailedError(f"Encryptor setup failed: {e}", chain_id=chain_id) from e

        logger.info(f"FHE engine ready for chain {chain_id}")
        return RemoteEngine(chain_id, encryptor, key_info)

    async def _fetch_key_info(self, chain_id: int) -> dict:
        url = f"{self.gateway_url}{KEY_URL_PATH}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            raise ProvisioningFailedError(f"Gateway request failed: {e}", chain_id=chain_id) from e
        except ValueError as e:
            raise ProvisioningFailedError("Gateway returned invalid JSON", chain_id=chain_id) from e

        key_info = data.get("response", data) if isinstance(data, dict) else None
        if not isinstance(key_info, dict) or "fhe_key_info" not in key_info:
            raise ProvisioningFailedError("Gateway response has no fhe_key_info", chain_id=chain_id)
        return key_info
