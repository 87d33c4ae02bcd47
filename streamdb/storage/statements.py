"""
Statement Set: The Fixed Parameterized Operations

Seven statements, rendered once per SQL dialect:
- inserter: one row with all six columns
- time_query: rows with EndTime > $3, ascending EndTime
- index_query: rows with EndIndex > $3, ascending EndIndex
- end_index: COALESCE(MAX(EndIndex), 0), always exactly one row
- delete_substream / delete_stream / clear_all

Query statements return (Version, EndIndex, Data).
"""

from __future__ import annotations

from dataclasses import astuple, dataclass, fields
from enum import Enum
from typing import Iterator

from streamdb.core.constants import TABLE_NAME


class Dialect(Enum):
    """SQL dialects with a rendered statement set."""

    POSTGRES = "postgres"
    SQLITE = "sqlite"


@dataclass(frozen=True)
class StatementSet:
    """SQL text for each operation, in preparation order."""

    inserter: str
    time_query: str
    index_query: str
    end_index: str
    delete_substream: str
    delete_stream: str
    clear_all: str

    @classmethod
    def names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def items(self) -> Iterator[tuple[str, str]]:
        return zip(self.names(), astuple(self))


POSTGRES_STATEMENTS = StatementSet(
    inserter=f"INSERT INTO {TABLE_NAME} VALUES ($1,$2,$3,$4,$5,$6);",
    time_query=(
        f"SELECT Version,EndIndex,Data FROM {TABLE_NAME} "
        "WHERE StreamId=$1 AND Substream=$2 AND EndTime > $3 "
        "ORDER BY EndTime ASC, EndIndex ASC;"
    ),
    index_query=(
        f"SELECT Version,EndIndex,Data FROM {TABLE_NAME} "
        "WHERE StreamId=$1 AND Substream=$2 AND EndIndex > $3 "
        "ORDER BY EndIndex ASC;"
    ),
    end_index=(
        f"SELECT COALESCE(MAX(EndIndex),0) FROM {TABLE_NAME} "
        "WHERE StreamId=$1 AND Substream=$2;"
    ),
    delete_substream=f"DELETE FROM {TABLE_NAME} WHERE StreamId=$1 AND Substream=$2;",
    delete_stream=f"DELETE FROM {TABLE_NAME} WHERE StreamId=$1;",
    clear_all=f"DELETE FROM {TABLE_NAME};",
)

SQLITE_STATEMENTS = StatementSet(
    inserter=f"INSERT INTO {TABLE_NAME} VALUES (?,?,?,?,?,?)",
    time_query=(
        f"SELECT Version,EndIndex,Data FROM {TABLE_NAME} "
        "WHERE StreamId=? AND Substream=? AND EndTime > ? "
        "ORDER BY EndTime ASC, EndIndex ASC"
    ),
    index_query=(
        f"SELECT Version,EndIndex,Data FROM {TABLE_NAME} "
        "WHERE StreamId=? AND Substream=? AND EndIndex > ? "
        "ORDER BY EndIndex ASC"
    ),
    end_index=(
        f"SELECT COALESCE(MAX(EndIndex),0) FROM {TABLE_NAME} "
        "WHERE StreamId=? AND Substream=?"
    ),
    delete_substream=f"DELETE FROM {TABLE_NAME} WHERE StreamId=? AND Substream=?",
    delete_stream=f"DELETE FROM {TABLE_NAME} WHERE StreamId=?",
    clear_all=f"DELETE FROM {TABLE_NAME}",
)


def statements_for(dialect: Dialect) -> StatementSet:
    return {
        Dialect.POSTGRES: POSTGRES_STATEMENTS,
        Dialect.SQLITE: SQLITE_STATEMENTS,
    }[dialect]
