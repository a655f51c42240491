"""Typed configuration objects for relational database connectivity."""

from __future__ import annotations

from pathlib import Path
from typing import Dict

from pydantic import BaseModel, Field, PositiveFloat, PositiveInt, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError
from .retry import RetryPolicy

__all__ = [
    "DatabasePoolConfig",
    "DatabaseSettings",
    "PostgresTLSConfig",
]


class PostgresTLSConfig(BaseModel):
    """TLS material used for PostgreSQL client authentication."""

    ca_file: Path
    cert_file: Path
    key_file: Path


class DatabasePoolConfig(BaseModel):
    """Connection pool tuning knobs for the pooled SQLAlchemy driver."""

    size: PositiveInt = Field(5, description="Base amount of connections to keep open.")
    max_overflow: int = Field(
        5,
        ge=0,
        description="Transient connections allowed in addition to the base pool size.",
    )
    timeout: float | None = Field(
        30.0,
        ge=0.0,
        description="Seconds to wait when acquiring a pooled connection. Use null for unlimited wait.",
    )
    recycle: PositiveFloat = Field(
        1_800.0,
        description="Seconds after which idle connections are recycled.",
    )
    use_lifo: bool = Field(
        True,
        description="Prefer returning the most recently used connection.",
    )


class DatabaseSettings(BaseSettings):
    """Named connection strings plus the policies applied to every handle.

    Values are read from ``SQLMARSHAL_*`` environment variables, for example
    ``SQLMARSHAL_CONNECTION_STRINGS='{"main": "sqlite:///app.db"}'`` or
    ``SQLMARSHAL_RETRY__RETRIES=3``.
    """

    connection_strings: Dict[str, str] = Field(
        default_factory=dict,
        description="Connection strings keyed by the name handles are created with.",
    )
    retry: RetryPolicy = Field(
        default_factory=RetryPolicy,
        description="Statement level retry applied to transient failures outside transactions.",
    )
    transaction_retry: RetryPolicy = Field(
        default_factory=lambda: RetryPolicy(retries=3, initial_backoff=0.05, max_jitter=0.05),
        description="Retry applied by Repository.try_transaction to whole transactions.",
    )
    use_pool: bool = Field(
        False,
        description="Route connections through a pooled SQLAlchemy engine instead of the native driver.",
    )
    pool: DatabasePoolConfig = Field(default_factory=DatabasePoolConfig)
    postgres_tls: PostgresTLSConfig | None = Field(
        default=None,
        description="Client certificates passed to psycopg when connecting to PostgreSQL.",
    )
    bracket_literals: bool = Field(
        True,
        description="Inline string values written as [[expression]] instead of binding them.",
    )
    key_column: str = Field(
        "id",
        min_length=1,
        description="Column used when a scalar is supplied as the key of an update or delete.",
    )

    model_config = SettingsConfigDict(
        env_prefix="SQLMARSHAL_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @field_validator("connection_strings")
    @classmethod
    def _reject_blank_connection_strings(cls, value: Dict[str, str]) -> Dict[str, str]:
        blank = sorted(name for name, conn_str in value.items() if not conn_str.strip())
        if blank:
            raise ValueError(f"connection strings must not be empty: {', '.join(blank)}")
        return value

    def connection_string(self, name: str) -> str:
        """Return the connection string registered under *name*."""

        try:
            return self.connection_strings[name]
        except KeyError:
            raise ConfigurationError(f"The connection string setting for '{name}' was not found.") from None
