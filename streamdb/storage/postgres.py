"""
PostgreSQL Backend: asyncpg Connection Pool

Provides:
- Server-side validation of every statement at prepare time
- Per-connection prepared statement caching (asyncpg statement cache)
- Range cursors held in a read-only transaction on a dedicated
  pooled connection until drained or closed

Design:
- Writes and single-row reads borrow a pooled connection per call
- Cursors keep theirs; a slow consumer therefore pins one connection
- Timeouts pass straight through to asyncpg
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import asyncpg

from streamdb.core.config import PostgresConfig
from streamdb.core import constants as C
from streamdb.storage.backends import Backend, PreparedStatement, Row, RowCursor
from streamdb.storage.statements import Dialect

logger = logging.getLogger(__name__)


class PostgresRowCursor(RowCursor):
    """Iterates an asyncpg server-side cursor inside its transaction."""

    __slots__ = ("_pool", "_conn", "_transaction", "_iterator")

    def __init__(
        self,
        pool: asyncpg.Pool,
        conn: asyncpg.Connection,
        transaction: Any,
        iterator: Any,
    ) -> None:
        self._pool = pool
        self._conn: Optional[asyncpg.Connection] = conn
        self._transaction = transaction
        self._iterator = iterator

    async def fetchone(self) -> Optional[Row]:
        if self._conn is None:
            return None
        try:
            record = await self._iterator.__anext__()
        except StopAsyncIteration:
            await self.close()
            return None
        return tuple(record)

    async def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        self._iterator = None
        try:
            await self._transaction.rollback()
        finally:
            await self._pool.release(conn)


class PostgresStatement(PreparedStatement):
    """Statement executed through the pool by its SQL text."""

    __slots__ = ("_pool", "_prefetch")

    def __init__(self, name: str, sql: str, pool: asyncpg.Pool, prefetch: int) -> None:
        super().__init__(name, sql)
        self._pool = pool
        self._prefetch = prefetch

    def _check_open(self) -> None:
        if self._closed:
            raise asyncpg.InterfaceError(f"Statement '{self._name}' is closed")

    async def execute(self, *args: Any, timeout: Optional[float] = None) -> None:
        self._check_open()
        async with self._pool.acquire(timeout=timeout) as conn:
            await conn.execute(self._sql, *args, timeout=timeout)

    async def fetchrow(self, *args: Any, timeout: Optional[float] = None) -> Optional[Row]:
        self._check_open()
        async with self._pool.acquire(timeout=timeout) as conn:
            record = await conn.fetchrow(self._sql, *args, timeout=timeout)
        return tuple(record) if record is not None else None

    async def cursor(self, *args: Any, timeout: Optional[float] = None) -> RowCursor:
        self._check_open()
        conn = await self._pool.acquire(timeout=timeout)
        transaction = conn.transaction(readonly=True)
        started = False
        try:
            await transaction.start()
            started = True
            iterator = conn.cursor(
                self._sql, *args, prefetch=self._prefetch, timeout=timeout
            ).__aiter__()
        except BaseException:
            try:
                if started:
                    await transaction.rollback()
            finally:
                await self._pool.release(conn)
            raise
        return PostgresRowCursor(self._pool, conn, transaction, iterator)


class PostgresBackend(Backend):
    """
    PostgreSQL pool holding the datastream table.

    Usage:
        backend = await PostgresBackend.connect(config.postgres)
        async with backend:
            store = (await SqlStore.open(backend)).unwrap()
    """

    name = "postgres"
    dialect = Dialect.POSTGRES
    errors = (
        asyncpg.PostgresError,
        asyncpg.InterfaceError,
        OSError,
        asyncio.TimeoutError,
    )
    integrity_errors = (asyncpg.UniqueViolationError,)

    __slots__ = ("_pool", "_owns_pool", "_prefetch", "_label")

    def __init__(
        self,
        pool: asyncpg.Pool,
        owns_pool: bool = False,
        prefetch: int = C.DEFAULT_PREFETCH_ROWS,
        label: str = "postgres",
    ) -> None:
        self._pool = pool
        self._owns_pool = owns_pool
        self._prefetch = prefetch
        self._label = label

    @classmethod
    async def connect(
        cls,
        config: PostgresConfig,
        prefetch: int = C.DEFAULT_PREFETCH_ROWS,
    ) -> PostgresBackend:
        """Create a pool from configuration. Raises on connection failure."""
        pool = await asyncpg.create_pool(
            dsn=config.dsn,
            min_size=config.pool_min,
            max_size=config.pool_max,
            command_timeout=config.command_timeout_ms / 1000,
            statement_cache_size=C.PG_STATEMENT_CACHE_SIZE,
        )
        logger.info(
            "PostgreSQL backend connected",
            extra={
                "host": config.host,
                "port": config.port,
                "pool_size": f"{config.pool_min}-{config.pool_max}",
            },
        )
        return cls(pool, owns_pool=True, prefetch=prefetch, label=f"{config.host}:{config.port}")

    @property
    def pool(self) -> asyncpg.Pool:
        return self._pool

    async def ping(self) -> None:
        async with self._pool.acquire() as conn:
            await conn.fetchval("SELECT 1")

    async def prepare(self, name: str, sql: str) -> PostgresStatement:
        async with self._pool.acquire() as conn:
            await conn.prepare(sql)
        return PostgresStatement(name, sql, self._pool, self._prefetch)

    async def execute_ddl(self, sql: str) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(sql)

    async def close(self) -> None:
        if self._owns_pool:
            self._owns_pool = False
            await self._pool.close()
            logger.info("PostgreSQL backend closed", extra={"host": self._label})

    def __repr__(self) -> str:
        return f"PostgresBackend({self._label!r})"
