"""
Application configuration and settings management.

This module loads configuration from environment variables and provides
a cached settings object for the payment client, wallet store and API.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from agentpay.core.constants import (
    DEFAULT_APP_PORT,
    DEFAULT_ENCRYPTION_SALT,
    LEDGER_REQUEST_TIMEOUT_SECONDS,
    MAINNET_CHAIN_ID,
    MAINNET_RPC_URL,
    MIN_ENCRYPTION_SECRET_LENGTH,
    NATIVE_ASSET,
    TESTNET_CHAIN_ID,
    TESTNET_FAUCET_URL,
    TESTNET_RPC_URL,
    TRANSFER_GAS_LIMIT,
    X402_CONFIRMATION_WAIT_MS,
    X402_DEADLINE_SECONDS,
    X402_MAX_RETRIES,
    X402_PAYMENT_HEADER,
    X402_REQUEST_TIMEOUT_SECONDS,
    X402_RETRY_DELAY_MS,
    X402_SETTLEMENT_WAIT_MS,
)
from agentpay.core.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "AgentPay"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = Field(default="development", description="deployment environment")

    # API Server
    host: str = "0.0.0.0"
    port: int = DEFAULT_APP_PORT
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000", "http://localhost:8000"])

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from string or list.

        Args:
            v: CORS origins as string (comma-separated) or list

        Returns:
            list[str]: List of CORS origin URLs
        """
        if isinstance(v, str):
            if not v.strip():
                return ["http://localhost:3000", "http://localhost:8000"]
            return [origin.strip() for origin in v.split(",")]
        return v

    # Ledger network
    network: Literal["mainnet", "testnet"] = Field(
        default="testnet",
        description="Ledger network wallets are created on and payments are sent to"
    )
    mainnet_rpc_url: str = MAINNET_RPC_URL
    mainnet_chain_id: int = MAINNET_CHAIN_ID
    testnet_rpc_url: str = TESTNET_RPC_URL
    testnet_chain_id: int = TESTNET_CHAIN_ID
    testnet_faucet_url: str = TESTNET_FAUCET_URL
    ledger_request_timeout_seconds: float = LEDGER_REQUEST_TIMEOUT_SECONDS
    transfer_gas_limit: int = TRANSFER_GAS_LIMIT

    # Wallet storage
    database_url: str = Field(
        default="sqlite:///./wallets.db",
        description="Database connection URL (PostgreSQL or SQLite)"
    )

    # Key vault
    wallet_encryption_secret: str | None = Field(
        default=None,
        description="Long-term secret the wallet encryption key is derived from"
    )
    wallet_encryption_salt: str = DEFAULT_ENCRYPTION_SALT

    @field_validator("wallet_encryption_secret")
    @classmethod
    def check_secret_length(cls, v: str | None) -> str | None:
        """Reject encryption secrets shorter than the minimum length."""
        if not v:
            return None
        if len(v) < MIN_ENCRYPTION_SECRET_LENGTH:
            raise ValueError(
                f"wallet_encryption_secret must be at least {MIN_ENCRYPTION_SECRET_LENGTH} characters long"
            )
        return v

    # x402 Configuration
    x402_supported_asset: str = NATIVE_ASSET
    x402_payment_header: str = X402_PAYMENT_HEADER
    x402_max_retries: int = Field(default=X402_MAX_RETRIES, ge=1)
    x402_settlement_wait_ms: int = Field(default=X402_SETTLEMENT_WAIT_MS, ge=0)
    x402_confirmation_wait_ms: int = Field(default=X402_CONFIRMATION_WAIT_MS, ge=0)
    x402_retry_delay_ms: int = Field(default=X402_RETRY_DELAY_MS, ge=0)
    x402_wait_for_confirmation: bool = False
    x402_request_timeout_seconds: float = X402_REQUEST_TIMEOUT_SECONDS
    x402_deadline_seconds: float | None = X402_DEADLINE_SECONDS

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @property
    def rpc_url(self) -> str:
        """RPC endpoint of the configured network."""
        return self.mainnet_rpc_url if self.network == "mainnet" else self.testnet_rpc_url

    @property
    def chain_id(self) -> int:
        """Chain id of the configured network."""
        return self.mainnet_chain_id if self.network == "mainnet" else self.testnet_chain_id

    @property
    def faucet_url(self) -> str | None:
        """Faucet for topping up test wallets; there is none on mainnet."""
        return self.testnet_faucet_url if self.network == "testnet" else None

    @property
    def async_database_url(self) -> str:
        """Database URL rewritten for the async driver."""
        url = self.database_url
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("sqlite://"):
            return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    def require_encryption_secret(self) -> str:
        """
        Return the wallet encryption secret or fail startup.

        Raises:
            ConfigurationError: If no secret is configured
        """
        if not self.wallet_encryption_secret:
            raise ConfigurationError(
                "WALLET_ENCRYPTION_SECRET is not set",
                details={"min_length": MIN_ENCRYPTION_SECRET_LENGTH},
            )
        return self.wallet_encryption_secret

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
