"""Application configuration using pydantic-settings.

All orchestration policy constants (relay wallet minimum balance, funding
verification retries, settle delays, per-call deadlines) live here so they
can be tuned per environment.
"""

from decimal import Decimal
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
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")
    dry_run: bool = Field(
        default=True, description="Simulate all external services (no real transactions)"
    )

    # ======================
    # Chains
    # ======================
    vault_chain_id: int = Field(default=84532, description="Chain where the vault is deployed")
    eth_sepolia_rpc_url: str = Field(
        default="https://ethereum-sepolia.publicnode.com", description="Ethereum Sepolia RPC URL"
    )
    base_sepolia_rpc_url: str = Field(
        default="https://sepolia.base.org", description="Base Sepolia RPC URL"
    )
    arbitrum_sepolia_rpc_url: str = Field(
        default="https://sepolia-rollup.arbitrum.io/rpc", description="Arbitrum Sepolia RPC URL"
    )
    optimism_sepolia_rpc_url: str = Field(
        default="https://sepolia.optimism.io", description="Optimism Sepolia RPC URL"
    )

    # ======================
    # Relay wallet funding
    # ======================
    relay_minimum_balance: Decimal = Field(
        default=Decimal("0.001"), description="Minimum native balance the relay wallet needs"
    )
    funding_attempts_same_chain: int = Field(default=10, description="Verification attempts (same-chain)")
    funding_interval_same_chain: float = Field(default=2.0, description="Seconds between checks (same-chain)")
    funding_attempts_cross_chain: int = Field(default=5, description="Verification attempts (cross-chain)")
    funding_interval_cross_chain: float = Field(default=3.0, description="Seconds between checks (cross-chain)")
    funding_lenient_after: int = Field(
        default=3, description="Cross-chain attempts after which an unverified funding is accepted"
    )

    # ======================
    # Execution
    # ======================
    transfer_settle_seconds: float = Field(
        default=3.0, description="Wait after moving funds into the relay wallet"
    )
    bridge_settle_seconds: float = Field(
        default=5.0, description="Wait after a bridge before the dependent step"
    )
    bridge_status_polling: bool = Field(
        default=False, description="Poll bridge order status before continuing"
    )
    bridge_status_attempts: int = Field(default=20, description="Bridge status polls")
    bridge_status_interval: float = Field(default=15.0, description="Seconds between status polls")
    operation_timeout_seconds: float = Field(
        default=600.0, description="Deadline for a single precheck or execute call"
    )
    relay_lock_timeout_seconds: float = Field(
        default=0.0, description="How long a second flow waits for a busy relay wallet (0 = reject)"
    )

    # ======================
    # Delegated abilities
    # ======================
    ability_service_url: str = Field(
        default="http://localhost:3000", description="Delegated ability execution service URL"
    )
    app_id: str = Field(default="vaultflow", description="Delegated app identifier")
    credential_verification_key: Optional[str] = Field(
        default=None,
        description="Key that verifies delegation credentials (PEM, JWK or JWK set JSON, or HMAC secret)",
    )
    credential_algorithm: str = Field(
        default="ES256K", description="Only JWS algorithm accepted for delegation credentials"
    )
    debridge_api_url: str = Field(
        default="https://api.debridge.finance/v1", description="deBridge order status API"
    )
    swap_slippage_bps: int = Field(default=50, description="Swap slippage (0.5%)")
    bridge_slippage_bps: int = Field(default=100, description="Bridge slippage (1%)")
    swap_deadline_seconds: int = Field(default=1200, description="Swap deadline (20 minutes)")

    # ======================
    # Primary wallet
    # ======================
    primary_wallet_private_key: Optional[str] = Field(
        default=None, description="Private key of the user's primary wallet (non-dry-run only)"
    )

    @property
    def has_primary_wallet(self) -> bool:
        return bool(self.primary_wallet_private_key)

    def get_rpc_url(self, chain_id: int) -> str:
        """Get RPC URL for a chain id."""
        rpc_map = {
            11155111: self.eth_sepolia_rpc_url,
            84532: self.base_sepolia_rpc_url,
            421614: self.arbitrum_sepolia_rpc_url,
            11155420: self.optimism_sepolia_rpc_url,
        }
        if chain_id not in rpc_map:
            raise ValueError(f"No RPC URL configured for chain {chain_id}")
        return rpc_map[chain_id]

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "dry_run": self.dry_run,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "vault_chain_id": self.vault_chain_id,
            "rpc": {
                "11155111": self.eth_sepolia_rpc_url,
                "84532": self.base_sepolia_rpc_url,
                "421614": self.arbitrum_sepolia_rpc_url,
                "11155420": self.optimism_sepolia_rpc_url,
            },
            "funding": {
                "minimum_balance": str(self.relay_minimum_balance),
                "same_chain": f"{self.funding_attempts_same_chain} x {self.funding_interval_same_chain}s",
                "cross_chain": f"{self.funding_attempts_cross_chain} x {self.funding_interval_cross_chain}s",
                "lenient_after": self.funding_lenient_after,
            },
            "execution": {
                "bridge_settle_seconds": self.bridge_settle_seconds,
                "bridge_status_polling": self.bridge_status_polling,
                "operation_timeout_seconds": self.operation_timeout_seconds,
            },
            "abilities": {
                "service_url": self.ability_service_url,
                "app_id": self.app_id,
                "credential_algorithm": self.credential_algorithm,
                "credential_key": "***" if self.credential_verification_key else "(not set)",
            },
            "primary_wallet": "***" if self.has_primary_wallet else "(not set)",
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
