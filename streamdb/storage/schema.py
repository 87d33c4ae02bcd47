"""
Datastream Schema: DDL for the datastream Table

One table, keyed by (StreamId, Substream, EndIndex). The primary key
is the only serialization mechanism for concurrent appends: two
writers racing to the same EndIndex cannot both commit.

Migrations are not managed here; create_all() is idempotent and
intended for bootstrapping empty databases.
"""

from __future__ import annotations

import logging

from streamdb.core.constants import TABLE_NAME
from streamdb.core.errors import ConnectivityError
from streamdb.core.types import Result, Ok, Err
from streamdb.storage.backends import Backend
from streamdb.storage.statements import Dialect

logger = logging.getLogger(__name__)


class DatastreamSchema:
    """Idempotent schema creation per dialect."""

    POSTGRES_DDL = [
        f"""
        CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
            StreamId BIGINT NOT NULL,
            Substream VARCHAR NOT NULL DEFAULT '',
            EndTime DOUBLE PRECISION,
            EndIndex BIGINT,
            Version INTEGER,
            Data BYTEA,
            PRIMARY KEY (StreamId, Substream, EndIndex)
        );
        """,
        # Time-addressed reads
        f"""CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_endtime
            ON {TABLE_NAME}(StreamId, Substream, EndTime);""",
    ]

    SQLITE_DDL = [
        f"""
        CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
            StreamId INTEGER NOT NULL,
            Substream TEXT NOT NULL DEFAULT '',
            EndTime REAL,
            EndIndex INTEGER,
            Version INTEGER,
            Data BLOB,
            PRIMARY KEY (StreamId, Substream, EndIndex)
        )
        """,
        f"""CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_endtime
            ON {TABLE_NAME}(StreamId, Substream, EndTime)""",
    ]

    def __init__(self, backend: Backend) -> None:
        self._backend = backend

    @property
    def statements(self) -> list[str]:
        if self._backend.dialect == Dialect.POSTGRES:
            return self.POSTGRES_DDL
        return self.SQLITE_DDL

    async def create_all(self) -> Result[None, ConnectivityError]:
        """Create the table and its indexes if missing."""
        for ddl in self.statements:
            try:
                await self._backend.execute_ddl(ddl)
            except self._backend.errors as e:
                return Err(ConnectivityError.prepare_failed("schema", cause=e))
        logger.info(
            "Datastream schema ready",
            extra={"backend": self._backend.name, "table": TABLE_NAME},
        )
        return Ok(None)

    async def drop_all(self) -> Result[None, ConnectivityError]:
        """Drop the table. Irreversible."""
        try:
            await self._backend.execute_ddl(f"DROP TABLE IF EXISTS {TABLE_NAME}")
        except self._backend.errors as e:
            return Err(ConnectivityError.prepare_failed("schema", cause=e))
        logger.warning("Datastream schema dropped", extra={"backend": self._backend.name})
        return Ok(None)
