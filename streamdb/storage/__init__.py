"""
Storage module: statement set, backends, store and ranges.

The PostgreSQL backend lives in streamdb.storage.postgres and is
imported from there so SQLite-only deployments never load asyncpg.
"""

from streamdb.storage.backends import Backend, PreparedStatement, RowCursor
from streamdb.storage.range import CursorRange, DataRange, EmptyRange, RangeState
from streamdb.storage.schema import DatastreamSchema
from streamdb.storage.sqlite import SQLiteBackend
from streamdb.storage.statements import (
    Dialect,
    StatementSet,
    POSTGRES_STATEMENTS,
    SQLITE_STATEMENTS,
)
from streamdb.storage.store import SqlStore, StoreStats

__all__ = [
    "Backend",
    "PreparedStatement",
    "RowCursor",
    "CursorRange",
    "DataRange",
    "EmptyRange",
    "RangeState",
    "DatastreamSchema",
    "SQLiteBackend",
    "Dialect",
    "StatementSet",
    "POSTGRES_STATEMENTS",
    "SQLITE_STATEMENTS",
    "SqlStore",
    "StoreStats",
]
