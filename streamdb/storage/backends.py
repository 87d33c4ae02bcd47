"""
Backends: Live Connection Seam for the Store

Provides:
- Backend: connection check, statement preparation, DDL
- PreparedStatement: one handle of the fixed statement set
- RowCursor: forward-only row source held open by a Range

Implementations raise their driver's native exceptions and publish
them in ``errors``; the store classifies them into WriteError or
QueryError depending on the operation. Uniqueness rejections are
published separately in ``integrity_errors``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from streamdb.storage.statements import Dialect, StatementSet, statements_for


Row = tuple[Any, ...]


class RowCursor(ABC):
    """Forward-only source of rows; closing it frees the driver cursor."""

    @abstractmethod
    async def fetchone(self) -> Optional[Row]:
        """Next row, or None once exhausted."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the cursor. Idempotent."""
        ...


class PreparedStatement(ABC):
    """A prepared member of the statement set."""

    __slots__ = ("_name", "_sql", "_closed")

    def __init__(self, name: str, sql: str) -> None:
        self._name = name
        self._sql = sql
        self._closed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def sql(self) -> str:
        return self._sql

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    async def execute(self, *args: Any, timeout: Optional[float] = None) -> None:
        """Run a write/delete statement."""
        ...

    @abstractmethod
    async def fetchrow(self, *args: Any, timeout: Optional[float] = None) -> Optional[Row]:
        """Run a query and return its first row, or None."""
        ...

    @abstractmethod
    async def cursor(self, *args: Any, timeout: Optional[float] = None) -> RowCursor:
        """Run a query and return a cursor over its rows."""
        ...

    async def close(self) -> None:
        """Release the statement. Idempotent."""
        self._closed = True

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"{self.__class__.__name__}({self._name!r}, {state})"


class Backend(ABC):
    """
    A live connection to a relational store holding the datastream table.

    The store does not own its backend: closing the store releases the
    prepared statements, closing the backend releases the connection.
    """

    name: str = "backend"
    dialect: Dialect = Dialect.SQLITE

    # Driver exception types raised by this backend
    errors: tuple[type[BaseException], ...] = ()
    # Subset of errors raised for uniqueness rejections
    integrity_errors: tuple[type[BaseException], ...] = ()

    @property
    def statements(self) -> StatementSet:
        return statements_for(self.dialect)

    @abstractmethod
    async def ping(self) -> None:
        """Verify the connection is reachable. Raises on failure."""
        ...

    @abstractmethod
    async def prepare(self, name: str, sql: str) -> PreparedStatement:
        """Prepare one statement. Raises on failure."""
        ...

    @abstractmethod
    async def execute_ddl(self, sql: str) -> None:
        """Run a schema statement without parameters."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the connection if this backend owns it."""
        ...

    async def __aenter__(self) -> Backend:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
