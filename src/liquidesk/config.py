"""Application configuration using pydantic-settings.

Covers the liquidity desk API, the two settlement networks (Base and Solana)
and the external collaborators: custody wallet service, gasless relay and
the Lenco bank API.
"""

from decimal import Decimal
from functools import lru_cache

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
    # Database
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/liquidesk.db",
        description="Database connection URL",
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
        default=True, description="Use simulated wallets, transfers and banks"
    )

    # ======================
    # Limits
    # ======================
    min_withdrawal_amount: Decimal = Field(
        default=Decimal("0.5"), description="Minimum withdrawal in USDC"
    )
    min_deposit_amount: Decimal = Field(
        default=Decimal("0.01"), description="Minimum deposit shown to users"
    )
    transfer_timeout_seconds: float = Field(
        default=60.0, description="Local bound on a single transfer call"
    )
    withdrawal_lock_timeout_seconds: float = Field(
        default=30.0, description="Max wait for the per-user withdrawal lock"
    )
    reconcile_after_seconds: int = Field(
        default=300, description="Age before a pending transfer is reconciled"
    )
    reconcile_interval_seconds: int = Field(
        default=60, description="Pause between reconciler passes (0 disables)"
    )

    # ======================
    # Chain RPC Endpoints
    # ======================
    base_rpc_url: str = Field(default="https://mainnet.base.org", description="Base RPC URL")
    solana_rpc_url: str = Field(
        default="https://api.mainnet-beta.solana.com", description="Solana RPC URL"
    )
    base_usdc_contract: str = Field(
        default="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        description="USDC contract on Base",
    )
    solana_usdc_mint: str = Field(
        default="EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
        description="USDC mint on Solana",
    )

    # ======================
    # Collaborators
    # ======================
    wallet_service_url: str = Field(default="", description="Custody wallet service URL")
    wallet_service_api_key: str = Field(default="", description="Custody wallet service key")
    gasless_relay_url: str = Field(default="", description="Gasless relay API URL")
    gasless_relay_api_key: str = Field(default="", description="Gasless relay API key")
    lenco_api_url: str = Field(
        default="https://api.lenco.co/access/v1", description="Lenco API URL"
    )
    lenco_api_key: str = Field(default="", description="Lenco API key")

    # ======================
    # Settlements
    # ======================
    settlement_api_key: str = Field(
        default="", description="API key required by settlement endpoints"
    )
    settlement_webhook_secret: str = Field(
        default="", description="HMAC secret for settlement webhooks"
    )
    settlement_source_user_id: str = Field(
        default="liquidity-provider",
        description="Custody account that funds business settlements",
    )
    supported_settlement_tokens: str = Field(
        default="USDC", description="Comma-separated settlement tokens"
    )

    @property
    def settlement_tokens(self) -> set[str]:
        """Parse supported settlement tokens into a set."""
        return {
            token.strip().upper()
            for token in self.supported_settlement_tokens.split(",")
            if token.strip()
        }

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def get_rpc_url(self, network: str) -> str:
        """Get RPC URL for a settlement network."""
        rpc_map = {
            "base": self.base_rpc_url,
            "solana": self.solana_rpc_url,
        }
        return rpc_map.get(network.lower(), "")

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "dry_run": self.dry_run,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "database_url": self._redact_url(self.database_url),
            "limits": {
                "min_withdrawal_amount": str(self.min_withdrawal_amount),
                "transfer_timeout_seconds": self.transfer_timeout_seconds,
            },
            "networks": {
                "base": {"rpc": self.base_rpc_url, "usdc": self.base_usdc_contract},
                "solana": {"rpc": self.solana_rpc_url, "usdc": self.solana_usdc_mint},
            },
            "collaborators": {
                "wallet_service": self.wallet_service_url or "(not set)",
                "wallet_service_api_key": "***" if self.wallet_service_api_key else "(not set)",
                "gasless_relay": self.gasless_relay_url or "(not set)",
                "gasless_relay_api_key": "***" if self.gasless_relay_api_key else "(not set)",
                "lenco_api_key": "***" if self.lenco_api_key else "(not set)",
            },
            "settlements": {
                "api_key": "***" if self.settlement_api_key else "(not set)",
                "webhook_secret": "***" if self.settlement_webhook_secret else "(not set)",
                "tokens": sorted(self.settlement_tokens),
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact sensitive parts of database URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
