"""
Shared fixtures: an in-memory SQLite backend with the schema applied,
and a store opened on it.

Store coroutines are driven with asyncio.run; the SQLite backend holds
no event-loop state, so one backend serves many run() calls.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Coroutine, TypeVar

import pytest

from streamdb.core.config import SQLiteConfig
from streamdb.core.types import DatapointArray
from streamdb.storage.schema import DatastreamSchema
from streamdb.storage.sqlite import SQLiteBackend
from streamdb.storage.store import SqlStore

T = TypeVar("T")


def run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


def points(*timestamps: float) -> DatapointArray:
    """Array whose data values are the timestamps as ints."""
    return DatapointArray.from_pairs((t, int(t)) for t in timestamps)


@pytest.fixture
def backend():
    async def connect() -> SQLiteBackend:
        b = await SQLiteBackend.connect(SQLiteConfig(path=Path(":memory:")))
        (await DatastreamSchema(b).create_all()).unwrap()
        return b

    b = run(connect())
    yield b
    run(b.close())


@pytest.fixture
def store(backend):
    s = run(SqlStore.open(backend)).unwrap()
    yield s
    run(s.close())
