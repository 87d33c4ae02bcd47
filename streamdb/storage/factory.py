"""
Backend Factory: runtime backend selection from configuration.
"""

from __future__ import annotations

import logging

from streamdb.core.config import StreamDBConfig
from streamdb.core.errors import ConnectivityError
from streamdb.core.types import Result, Ok, Err
from streamdb.storage.backends import Backend
from streamdb.storage.sqlite import SQLiteBackend

logger = logging.getLogger(__name__)


async def connect_backend(config: StreamDBConfig) -> Result[Backend, ConnectivityError]:
    """
    Connect the configured backend.

    The PostgreSQL module is imported only when selected.
    """
    if config.backend == "postgres":
        from streamdb.storage.postgres import PostgresBackend

        try:
            backend: Backend = await PostgresBackend.connect(
                config.postgres, prefetch=config.store.prefetch_rows,
            )
        except PostgresBackend.errors as e:
            return Err(ConnectivityError.unreachable(
                f"postgres://{config.postgres.host}:{config.postgres.port}", cause=e,
            ))
        return Ok(backend)

    try:
        backend = await SQLiteBackend.connect(config.sqlite)
    except (SQLiteBackend.errors + (OSError,)) as e:
        return Err(ConnectivityError.unreachable(f"sqlite://{config.sqlite.path}", cause=e))
    return Ok(backend)
