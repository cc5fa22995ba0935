"""Application configuration using pydantic-settings.

Local development chains, remote RPC endpoints for engine provisioning,
the FHE gateway and deployed message contracts are all configured here.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")

    # ======================
    # Local Development Chains
    # ======================
    local_rpc_urls: dict[int, str] = Field(
        default_factory=lambda: {31337: "http://localhost:8545"},
        description="Local chain ID -> JSON-RPC endpoint used for direct reads and writes",
    )
    enable_local_accounts: bool = Field(
        default=True,
        description="Allow the well-known local test account keys (never honoured in production)",
    )

    # ======================
    # Remote Chains / FHE Gateway
    # ======================
    rpc_urls: dict[int, str] = Field(
        default_factory=lambda: {11155111: "https://ethereum-sepolia-rpc.publicnode.com"},
        description="Remote chain ID -> JSON-RPC endpoint used for engine provisioning",
    )
    gateway_url: str = Field(
        default="https://relayer.testnet.zama.cloud",
        description="FHE gateway base URL serving public key material",
    )
    rpc_timeout: float = Field(default=30.0, description="JSON-RPC HTTP timeout in seconds")

    # ======================
    # Contracts
    # ======================
    contract_addresses: dict[int, str] = Field(
        default_factory=dict,
        description="Chain ID -> deployed encrypted message contract address",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def local_accounts_allowed(self) -> bool:
        """Local test keys are only usable outside production and when enabled."""
        return self.enable_local_accounts and not self.is_production

    def get_local_rpc_url(self, chain_id: int) -> Optional[str]:
        """Get the local RPC endpoint for a chain, if it is a configured dev chain."""
        return self.local_rpc_urls.get(chain_id)

    def get_rpc_url(self, chain_id: int) -> Optional[str]:
        """Get the RPC endpoint for a chain (local endpoints take priority)."""
        return self.local_rpc_urls.get(chain_id) or self.rpc_urls.get(chain_id)

    def get_contract_address(self, chain_id: int) -> Optional[str]:
        """Get the message contract address deployed on a chain."""
        return self.contract_addresses.get(chain_id)

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "local_chains": {
                str(chain_id): url for chain_id, url in self.local_rpc_urls.items()
            },
            "remote_chains": {
                str(chain_id): self._redact_url(url) for chain_id, url in self.rpc_urls.items()
            },
            "gateway": self._redact_url(self.gateway_url),
            "local_accounts": "enabled" if self.local_accounts_allowed else "disabled",
            "contracts": {
                str(chain_id): address for chain_id, address in self.contract_addresses.items()
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact credentials and API-key path segments of an RPC URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        # Infura/Alchemy style keys live in the last path segment
        for marker in ("/v3/", "/v2/"):
            if marker in url:
                base, _ = url.split(marker, 1)
                return f"{base}{marker}***"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
