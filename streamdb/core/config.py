"""
Configuration Management for the Datastream Store

Provides validated configuration with sensible defaults.
Supports environment variable overrides.

Design:
- Immutable after validation
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from streamdb.core.types import Result, Ok, Err
from streamdb.core import constants as C


BACKENDS = ("postgres", "sqlite")


@dataclass(frozen=True)
class PostgresConfig:
    """PostgreSQL backend configuration."""

    host: str = "localhost"
    port: int = 5432
    database: str = "streamdb"
    user: str = "streamdb"
    password: str = ""
    pool_min: int = C.PG_POOL_MIN
    pool_max: int = C.PG_POOL_MAX
    command_timeout_ms: int = C.PG_COMMAND_TIMEOUT_MS
    ssl_mode: str = "prefer"

    @property
    def dsn(self) -> str:
        """PostgreSQL connection string, credentials percent-encoded."""
        user = quote(self.user, safe="")
        password = quote(self.password, safe="")
        return (
            f"postgresql://{user}:{password}@"
            f"{self.host}:{self.port}/{self.database}"
            f"?sslmode={self.ssl_mode}"
        )


@dataclass(frozen=True)
class SQLiteConfig:
    """SQLite backend configuration."""

    path: Path = field(default_factory=lambda: Path("./data/streamdb.db"))
    busy_timeout_ms: int = C.SQLITE_BUSY_TIMEOUT_MS
    wal_enabled: bool = True

    @property
    def in_memory(self) -> bool:
        return str(self.path) == C.SQLITE_MEMORY_PATH


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    json: bool = True


@dataclass(frozen=True)
class StoreConfig:
    """Store behaviour independent of the backend."""

    insert_version: int = C.DEFAULT_INSERT_VERSION
    prefetch_rows: int = C.DEFAULT_PREFETCH_ROWS


@dataclass(frozen=True)
class StreamDBConfig:
    """Root configuration."""

    backend: str = "sqlite"
    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    sqlite: SQLiteConfig = field(default_factory=SQLiteConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> Result[StreamDBConfig, str]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with STREAMDB_.
        Example: STREAMDB_BACKEND=postgres, STREAMDB_PG_HOST=db.internal
        """
        env = os.environ if environ is None else environ
        try:
            postgres = PostgresConfig(
                host=env.get("STREAMDB_PG_HOST", "localhost"),
                port=int(env.get("STREAMDB_PG_PORT", "5432")),
                database=env.get("STREAMDB_PG_DATABASE", "streamdb"),
                user=env.get("STREAMDB_PG_USER", "streamdb"),
                password=env.get("STREAMDB_PG_PASSWORD", ""),
                pool_min=int(env.get("STREAMDB_PG_POOL_MIN", str(C.PG_POOL_MIN))),
                pool_max=int(env.get("STREAMDB_PG_POOL_MAX", str(C.PG_POOL_MAX))),
                ssl_mode=env.get("STREAMDB_PG_SSLMODE", "prefer"),
            )

            sqlite = SQLiteConfig(
                path=Path(env.get("STREAMDB_SQLITE_PATH", "./data/streamdb.db")),
            )

            store = StoreConfig(
                insert_version=int(
                    env.get("STREAMDB_INSERT_VERSION", str(C.DEFAULT_INSERT_VERSION))
                ),
                prefetch_rows=int(
                    env.get("STREAMDB_PREFETCH_ROWS", str(C.DEFAULT_PREFETCH_ROWS))
                ),
            )

            logging = LoggingConfig(
                level=env.get("STREAMDB_LOG_LEVEL", "INFO").upper(),
                json=env.get("STREAMDB_LOG_JSON", "true").lower() in ("1", "true", "yes"),
            )

            return Ok(cls(
                backend=env.get("STREAMDB_BACKEND", "sqlite").lower(),
                postgres=postgres,
                sqlite=sqlite,
                store=store,
                logging=logging,
            ))
        except (ValueError, TypeError) as e:
            return Err(f"Configuration error: {e}")

    def validate(self) -> Result[None, str]:
        """Validate configuration invariants."""
        if self.backend not in BACKENDS:
            return Err(f"Unknown backend '{self.backend}', expected one of {BACKENDS}")
        if self.postgres.pool_min > self.postgres.pool_max:
            return Err("Postgres pool_min cannot exceed pool_max")
        if self.store.prefetch_rows < 1:
            return Err("prefetch_rows must be >= 1")
        if self.logging.level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            return Err(f"Unknown log level '{self.logging.level}'")
        return Ok(None)
