"""
Configuration Module for the SolForge agent executor.

All settings are loaded from environment variables (and an optional ``.env``
file) using Pydantic v2 BaseSettings, grouped into sections with their own
environment prefix.

The agent wallet secret is special: it is never cached on the aggregate
settings object used by the request path. ``AgentWallet`` reads it through a
``SecretSource`` on every call so that configuration changes are observed
without restarting the process.

Usage:
    from solforge.config import get_settings
    settings = get_settings()
    print(settings.solana.default_network)
"""

from __future__ import annotations

import os
import sys
from abc import ABC, abstractmethod
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import (
    AliasChoices,
    Field,
    SecretStr,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


AGENT_WALLET_ENV_VAR = "AGENT_WALLET_SECRET_KEY"


# =============================================================================
# ENUMS
# =============================================================================

class LogLevel(str, Enum):
    """Logging level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Commitment(str, Enum):
    """Commitment levels accepted by the Solana RPC."""
    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"


# =============================================================================
# BASE CONFIGURATION
# =============================================================================

class BaseConfig(BaseSettings):
    """Base configuration with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )


# =============================================================================
# AGENT WALLET CONFIGURATION
# =============================================================================

class AgentWalletSettings(BaseConfig):
    """Agent wallet secret (JSON array of 64 numbers)."""

    model_config = SettingsConfigDict(
        env_prefix="AGENT_WALLET_",
        env_file=".env",
        extra="ignore",
    )

    secret_key: Optional[SecretStr] = Field(
        default=None,
        description="JSON array of the 64 keypair bytes",
    )


# =============================================================================
# SOLANA RPC CONFIGURATION
# =============================================================================

class SolanaRPCSettings(BaseConfig):
    """Solana RPC endpoints per network."""

    model_config = SettingsConfigDict(
        env_prefix="SOLANA_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    mainnet_rpc: str = Field(
        default="https://api.mainnet-beta.solana.com",
        description="Mainnet RPC endpoint, used when no Helius key is set",
    )

    devnet_rpc: str = Field(
        default="https://api.devnet.solana.com",
        description="Devnet RPC endpoint",
    )

    testnet_rpc: str = Field(
        default="https://api.testnet.solana.com",
        description="Testnet RPC endpoint",
    )

    localnet_rpc: str = Field(
        default="http://127.0.0.1:8899",
        description="Local validator RPC endpoint",
    )

    helius_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("SOLANA_HELIUS_API_KEY", "HELIUS_API_KEY"),
        description="Helius API key, takes precedence for mainnet",
    )

    default_network: str = Field(
        default="devnet",
        validation_alias=AliasChoices("SOLANA_DEFAULT_NETWORK", "DEFAULT_NETWORK"),
        description="Network used when a request does not name one",
    )

    commitment: Commitment = Field(
        default=Commitment.CONFIRMED,
        description="Commitment used for blockhash, simulation and preflight",
    )

    request_timeout: float = Field(
        default=30.0,
        ge=1.0,
        le=120.0,
        description="Per-call RPC timeout in seconds",
    )

    max_connections: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Concurrent in-flight calls per RPC endpoint",
    )

    @field_validator("default_network", mode="before")
    @classmethod
    def normalize_network(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("helius_api_key", mode="before")
    @classmethod
    def empty_key_is_none(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return v


# =============================================================================
# EXECUTION CONFIGURATION
# =============================================================================

class ExecutionSettings(BaseConfig):
    """Transaction building, simulation and submission parameters."""

    model_config = SettingsConfigDict(
        env_prefix="EXECUTION_",
        env_file=".env",
        extra="ignore",
    )

    compute_unit_limit: int = Field(
        default=200_000,
        ge=1_000,
        le=1_400_000,
        description="Compute unit limit set on every transaction",
    )

    high_priority_fee: int = Field(
        default=100_000,
        ge=0,
        description="Compute unit price (micro-lamports) for high priority prompts",
    )

    mainnet_priority_fee: int = Field(
        default=1_000,
        ge=0,
        description="Default compute unit price on mainnet (micro-lamports)",
    )

    max_transfer_sol: float = Field(
        default=10.0,
        gt=0,
        description="Largest SOL transfer the agent will build",
    )

    confirm_transactions: bool = Field(
        default=False,
        description="Wait for confirmation after submission",
    )

    simulation_timeout: float = Field(
        default=20.0,
        ge=1.0,
        le=120.0,
        description="Simulation timeout in seconds",
    )

    submit_timeout: float = Field(
        default=30.0,
        ge=1.0,
        le=120.0,
        description="Submission timeout in seconds",
    )

    confirm_timeout: float = Field(
        default=45.0,
        ge=1.0,
        le=300.0,
        description="Confirmation polling timeout in seconds",
    )

    confirm_poll_interval: float = Field(
        default=1.0,
        ge=0.1,
        le=10.0,
        description="Delay between signature status polls",
    )


# =============================================================================
# SERVER CONFIGURATION
# =============================================================================

class ServerSettings(BaseConfig):
    """HTTP server configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SERVER_",
        env_file=".env",
        extra="ignore",
    )

    service_name: str = Field(
        default="solforge-agent",
        description="Service name reported by /health",
    )

    host: str = Field(
        default="0.0.0.0",
        description="Bind address",
    )

    port: int = Field(
        default=3000,
        ge=1,
        le=65535,
        description="Bind port",
    )

    rate_limit_max_requests: int = Field(
        default=30,
        ge=1,
        description="Max execute requests per client per window",
    )

    rate_limit_window_seconds: int = Field(
        default=60,
        ge=1,
        le=3600,
        description="Rate limit window in seconds",
    )


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

class LoggingSettings(BaseConfig):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore",
    )

    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )

    format: str = Field(
        default="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        description="Log message format",
    )

    date_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        description="Log date format",
    )

    file_enabled: bool = Field(
        default=False,
        description="Enable file logging",
    )

    file_path: Path = Field(
        default=Path("logs/solforge.log"),
        description="Log file path",
    )

    file_max_bytes: int = Field(
        default=10 * 1024 * 1024,  # 10 MB
        ge=1024,
        description="Max log file size in bytes",
    )

    file_backup_count: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Number of backup log files",
    )


# =============================================================================
# APPLICATION SETTINGS (MAIN)
# =============================================================================

class Settings(BaseConfig):
    """
    Main application settings aggregating all configuration sections.

    Usage:
        settings = get_settings()
        settings.execution.compute_unit_limit
    """

    app_name: str = Field(
        default="SolForge Agent",
        description="Application name",
    )

    solana: SolanaRPCSettings = Field(default_factory=SolanaRPCSettings)
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def to_safe_dict(self) -> dict[str, Any]:
        """Export settings without any secret values."""
        def remove_secrets(d: dict) -> dict:
            result = {}
            for k, v in d.items():
                if isinstance(v, dict):
                    result[k] = remove_secrets(v)
                elif not any(secret in k.lower() for secret in
                             ["key", "token", "secret", "password"]):
                    result[k] = v
                else:
                    result[k] = "[REDACTED]"
            return result

        return remove_secrets(self.model_dump(mode="json"))


# =============================================================================
# SECRET SOURCES
# =============================================================================

class SecretSource(ABC):
    """Provider of secret configuration values, queried on every call."""

    @abstractmethod
    def get(self, name: str) -> Optional[str]:
        """Return the current value of ``name`` or None when unset."""


class EnvironmentSecretSource(SecretSource):
    """Reads secrets straight from the process environment."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = environ if environ is not None else os.environ

    def get(self, name: str) -> Optional[str]:
        return self._environ.get(name)


class SettingsSecretSource(SecretSource):
    """
    Reads the agent wallet secret through ``AgentWalletSettings``.

    A fresh settings object is built per call, so both the environment and
    the ``.env`` file are re-read.
    """

    def get(self, name: str) -> Optional[str]:
        if name != AGENT_WALLET_ENV_VAR:
            return os.environ.get(name)
        secret = AgentWalletSettings().secret_key
        return secret.get_secret_value() if secret is not None else None


class StaticSecretSource(SecretSource):
    """In-memory secret values; ``set`` changes what later calls observe."""

    def __init__(self, values: Optional[Mapping[str, Optional[str]]] = None):
        self._values: dict[str, Optional[str]] = dict(values or {})

    def set(self, name: str, value: Optional[str]) -> None:
        self._values[name] = value

    def get(self, name: str) -> Optional[str]:
        return self._values.get(name)


# =============================================================================
# SINGLETON & CACHING
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Returns:
        Settings: Cached settings singleton
    """
    return Settings()


def reload_settings() -> Settings:
    """
    Clear settings cache and reload from environment.

    Returns:
        Settings: Fresh settings instance
    """
    get_settings.cache_clear()
    return get_settings()


def print_settings_summary() -> None:
    """Print a summary of current settings with secrets redacted."""
    settings = get_settings()
    safe = settings.to_safe_dict()

    print("=" * 60)
    print(f"  {settings.app_name}")
    print("=" * 60)
    for section, values in safe.items():
        if not isinstance(values, dict):
            continue
        print(f"\n[{section}]")
        for key, value in values.items():
            print(f"  {key}: {value}")
    wallet_set = SettingsSecretSource().get(AGENT_WALLET_ENV_VAR) is not None
    print(f"\n[agent_wallet]\n  configured: {wallet_set}")


if __name__ == "__main__":
    try:
        print_settings_summary()
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
