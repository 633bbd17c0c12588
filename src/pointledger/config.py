"""
Process settings.

Loads configuration from environment variables (and an optional `.env`)
using pydantic-settings.
"""

from __future__ import annotations

from eth_utils import is_address
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, SettingsError

from .application.planning import ScanPolicy
from .domain.errors import ConfigError
from .domain.value_types import Address

DEFAULT_CONTRACTS = {
    "USD0++": "0x35D8949372D46B7a3D5A56006AE77B215fc69bC0",
}


class Settings(BaseSettings):
    """Settings loaded from the environment."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Chain
    rpc_url: str
    start_block: int = Field(default=0, ge=0)
    contracts: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_CONTRACTS))

    # Storage
    database_url: str = "sqlite+aiosqlite:///./user_balances.db"
    pools_path: str = "data/pool.json"

    # Query API
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Scanner
    chunk_size: int = Field(default=10_000, gt=0)
    poll_interval_s: float = Field(default=13.0, ge=0)
    retry_delay_s: float = Field(default=10.0, ge=0)
    max_retry_delay_s: float = Field(default=300.0, ge=0)
    breaker_threshold: int = Field(default=5, ge=0)

    # Logging
    log_level: str = "INFO"
    log_file: str | None = None

    @field_validator("contracts")
    @classmethod
    def _check_contracts(cls, v: dict[str, str]) -> dict[str, str]:
        if not v:
            raise ValueError("at least one contract must be watched")
        for name, addr in v.items():
            if not is_address(addr.lower()):
                raise ValueError(f"contract {name!r} has an invalid address {addr!r}")
        return {name: addr.lower() for name, addr in v.items()}

    def watched(self) -> dict[str, Address]:
        return {name: Address(addr) for name, addr in self.contracts.items()}

    def scan_policy(self) -> ScanPolicy:
        return ScanPolicy(
            chunk_size=self.chunk_size,
            poll_interval_s=self.poll_interval_s,
            retry_delay_s=self.retry_delay_s,
            max_retry_delay_s=self.max_retry_delay_s,
            breaker_threshold=self.breaker_threshold,
        )


def load_settings(**overrides: object) -> Settings:
    try:
        return Settings(**overrides)
    except (ValidationError, SettingsError) as e:
        raise ConfigError(f"invalid configuration: {e}") from e
