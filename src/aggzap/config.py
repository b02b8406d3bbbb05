"""Application configuration using pydantic-settings.

Protocol limits (fee cap, basis point denominator) are code constants; only
deployment choices live here.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BPS_DENOMINATOR = 10_000
MAX_FEE_BPS = 100  # 1%


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
    log_level: str = Field(default="INFO", description="Root log level")

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")
    admin_token: str = Field(default="", description="Admin API token for protected endpoints")

    # ======================
    # Chain state
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///:memory:",
        description="Per-network database URL; '{network}' is replaced by the network name",
    )
    sql_echo: bool = Field(default=False, description="Log every SQL statement")
    lock_timeout_seconds: float = Field(
        default=30.0, description="Maximum wait for a chain's execution lock"
    )

    # ======================
    # Networks (AggLayer network ids, not EVM chain ids)
    # ======================
    source_network_id: int = Field(default=2, description="Source network id (Amoy)")
    source_network_name: str = Field(default="amoy", description="Source network name")
    destination_network_id: int = Field(default=1, description="Destination network id (Cardona)")
    destination_network_name: str = Field(
        default="cardona", description="Destination network name"
    )

    # ======================
    # Bridge
    # ======================
    bridge_address: str = Field(
        default="0x528e26b25a34a4A5d0dbDa1d57D318153d2ED582",
        description="Unified bridge address (same on every network)",
    )

    # ======================
    # Protocol defaults
    # ======================
    default_fee_bps: int = Field(default=10, ge=0, le=MAX_FEE_BPS, description="Zap fee (0.1%)")
    default_apy_bps: int = Field(default=500, ge=0, description="Displayed pool APY (5%)")
    fee_recipient: Optional[str] = Field(default=None, description="Protocol fee recipient")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def database_url_for(self, network: str) -> str:
        """Database URL for a single network."""
        return self.database_url.replace("{network}", network.lower())

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "admin_token": "***" if self.admin_token else "(not set)",
            "database_url": self._redact_url(self.database_url),
            "networks": {
                "source": {"id": self.source_network_id, "name": self.source_network_name},
                "destination": {
                    "id": self.destination_network_id,
                    "name": self.destination_network_name,
                },
            },
            "bridge": {"address": self.bridge_address},
            "protocol": {
                "default_fee_bps": self.default_fee_bps,
                "max_fee_bps": MAX_FEE_BPS,
                "default_apy_bps": self.default_apy_bps,
                "fee_recipient": self.fee_recipient or "(deployer)",
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
