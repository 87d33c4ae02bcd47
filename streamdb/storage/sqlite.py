"""
SQLite Backend: Embedded Datastream Storage

Single connection in autocommit mode; every statement commits on its
own, matching the non-transactional contract of the store. Statements
are validated at prepare time by compiling them under EXPLAIN, so a
missing table fails store construction instead of the first write.

Timeouts:
- timeout= bounds the statement's execution with a progress handler;
  an overrun aborts it with sqlite3.OperationalError ("interrupted").
  Rows a cursor fetches later are not bounded.

Thread Safety:
- Writes are serialized through a lock
- Open cursors may interleave with writes on the same connection
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from streamdb.core import constants as C
from streamdb.core.config import SQLiteConfig
from streamdb.storage.backends import Backend, PreparedStatement, Row, RowCursor
from streamdb.storage.statements import Dialect

logger = logging.getLogger(__name__)


class SQLiteRowCursor(RowCursor):
    """Steps a sqlite3 cursor one row at a time."""

    __slots__ = ("_cursor",)

    def __init__(self, cursor: sqlite3.Cursor) -> None:
        self._cursor: Optional[sqlite3.Cursor] = cursor

    async def fetchone(self) -> Optional[Row]:
        if self._cursor is None:
            return None
        row = self._cursor.fetchone()
        if row is None:
            await self.close()
            return None
        return tuple(row)

    async def close(self) -> None:
        if self._cursor is not None:
            cursor, self._cursor = self._cursor, None
            cursor.close()


class SQLiteStatement(PreparedStatement):
    """Statement bound to a shared sqlite3 connection."""

    __slots__ = ("_conn", "_write_lock")

    def __init__(
        self,
        name: str,
        sql: str,
        conn: sqlite3.Connection,
        write_lock: threading.Lock,
    ) -> None:
        super().__init__(name, sql)
        self._conn = conn
        self._write_lock = write_lock

    def _check_open(self) -> None:
        if self._closed:
            raise sqlite3.ProgrammingError(f"Statement '{self._name}' is closed")

    @contextmanager
    def _deadline(self, timeout: Optional[float]) -> Iterator[None]:
        if timeout is None:
            yield
            return
        deadline = time.monotonic() + timeout
        # A truthy return from the handler interrupts the running statement
        self._conn.set_progress_handler(
            lambda: time.monotonic() >= deadline, C.SQLITE_PROGRESS_STEPS,
        )
        try:
            yield
        finally:
            self._conn.set_progress_handler(None, 0)

    async def execute(self, *args: Any, timeout: Optional[float] = None) -> None:
        self._check_open()
        with self._write_lock, self._deadline(timeout):
            self._conn.execute(self._sql, args).close()

    async def fetchrow(self, *args: Any, timeout: Optional[float] = None) -> Optional[Row]:
        self._check_open()
        with self._deadline(timeout):
            cursor = self._conn.execute(self._sql, args)
            try:
                row = cursor.fetchone()
            finally:
                cursor.close()
        return tuple(row) if row is not None else None

    async def cursor(self, *args: Any, timeout: Optional[float] = None) -> RowCursor:
        self._check_open()
        with self._deadline(timeout):
            return SQLiteRowCursor(self._conn.execute(self._sql, args))


class SQLiteBackend(Backend):
    """
    SQLite connection holding the datastream table.

    Usage:
        backend = await SQLiteBackend.connect(SQLiteConfig(path=Path(":memory:")))
        await DatastreamSchema(backend).create_all()
        store = (await SqlStore.open(backend)).unwrap()
    """

    name = "sqlite"
    dialect = Dialect.SQLITE
    errors = (sqlite3.Error,)
    integrity_errors = (sqlite3.IntegrityError,)

    __slots__ = ("_conn", "_write_lock", "_owns_connection", "_label")

    def __init__(
        self,
        conn: sqlite3.Connection,
        owns_connection: bool = False,
        label: str = "sqlite",
    ) -> None:
        self._conn = conn
        self._write_lock = threading.Lock()
        self._owns_connection = owns_connection
        self._label = label

    @classmethod
    async def connect(cls, config: SQLiteConfig) -> SQLiteBackend:
        """Open a connection with the configured pragmas applied."""
        if not config.in_memory:
            config.path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(config.path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit; each statement is its own transaction
        )
        try:
            conn.execute(f"PRAGMA busy_timeout = {int(config.busy_timeout_ms)}")
            if config.wal_enabled and not config.in_memory:
                conn.execute("PRAGMA journal_mode = WAL")
                conn.execute("PRAGMA synchronous = NORMAL")
        except sqlite3.Error:
            conn.close()
            raise

        logger.info("SQLite backend connected", extra={"db_path": str(config.path)})
        return cls(conn, owns_connection=True, label=str(config.path))

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    async def ping(self) -> None:
        self._conn.execute("SELECT 1").close()

    async def prepare(self, name: str, sql: str) -> SQLiteStatement:
        # Compiles the statement without running it
        placeholders = (None,) * sql.count("?")
        self._conn.execute(f"EXPLAIN {sql}", placeholders).close()
        return SQLiteStatement(name, sql, self._conn, self._write_lock)

    async def execute_ddl(self, sql: str) -> None:
        with self._write_lock:
            self._conn.execute(sql).close()

    async def close(self) -> None:
        if self._owns_connection:
            self._conn.close()
            self._owns_connection = False
            logger.info("SQLite backend closed", extra={"db_path": self._label})

    def __repr__(self) -> str:
        return f"SQLiteBackend({self._label!r})"
