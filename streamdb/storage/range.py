"""
Data Ranges: Lazily-Decoding Read Cursors

Provides:
- DataRange: abstract cursor over datapoints with absolute indices
- EmptyRange: variant returned when a query matched no rows
- CursorRange: variant wrapping an open row cursor plus one decoded
  (and possibly trimmed) array

Lifecycle:
    OPEN ──first read──▶ DRAINING ──end reached / close()──▶ CLOSED

Reaching the end releases the row cursor and reports None once. Any
read after CLOSED raises QueryError rather than returning stale data.
Only the first matched row is trimmed; every later row is decoded
whole and checked against the EndIndex delta from the row before it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum, auto
from typing import Any, Optional

from streamdb.codec.base import CodecRegistry
from streamdb.core.errors import CorruptionError, DatastreamError, QueryError
from streamdb.core.types import Datapoint, DatapointArray, Result, Ok, Err, StreamKey
from streamdb.storage.backends import Row, RowCursor

logger = logging.getLogger(__name__)


class RangeState(Enum):
    """Cursor lifecycle."""
    OPEN = auto()      # Nothing consumed yet
    DRAINING = auto()  # At least one read performed
    CLOSED = auto()    # Exhausted or released; reads fail


def decode_row(
    codecs: CodecRegistry,
    key: StreamKey,
    row: Row,
) -> Result[tuple[int, DatapointArray], DatastreamError]:
    """
    Decode a (Version, EndIndex, Data) row.

    Returns (end_index, array). Empty payloads are corruption: a stored
    batch always holds at least one datapoint.
    """
    version, end_index, payload = row
    end_index = int(end_index)
    decoded = codecs.decode(payload, int(version))
    if decoded.is_err():
        return Err(decoded.error.with_context(key=str(key), end_index=end_index))
    array = decoded.unwrap()
    if len(array) == 0:
        return Err(CorruptionError.empty_batch(str(key), end_index))
    return Ok((end_index, array))


class DataRange(ABC):
    """
    Cursor over the datapoints of one key from a starting position.

    Usage:
        async with rng:
            async for dp in rng:
                handle(dp)
    """

    def __init__(self, start_index: int) -> None:
        self._index = start_index
        self._state = RangeState.OPEN

    @property
    def state(self) -> RangeState:
        return self._state

    @property
    def index(self) -> int:
        """Absolute sequence index of the next datapoint."""
        return self._index

    @property
    def closed(self) -> bool:
        return self._state is RangeState.CLOSED

    def _begin_read(self) -> None:
        if self._state is RangeState.CLOSED:
            raise QueryError.range_closed()
        self._state = RangeState.DRAINING

    @abstractmethod
    async def next_array(self) -> Optional[DatapointArray]:
        """
        The rest of the current batch, or the next decoded batch.

        Returns None once, when the range is exhausted.
        """
        ...

    @abstractmethod
    async def next(self) -> Optional[Datapoint]:
        """The next datapoint, or None once when exhausted."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release underlying resources. Idempotent."""
        ...

    async def read_all(self) -> DatapointArray:
        """Drain every remaining datapoint into one array."""
        points: list[Datapoint] = []
        while True:
            array = await self.next_array()
            if array is None:
                return DatapointArray(points)
            points.extend(array)

    def __aiter__(self) -> DataRange:
        return self

    async def __anext__(self) -> Datapoint:
        dp = await self.next()
        if dp is None:
            raise StopAsyncIteration
        return dp

    async def __aenter__(self) -> DataRange:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(index={self._index}, state={self._state.name})"


class EmptyRange(DataRange):
    """A range with no data. The first read reports exhaustion."""

    def __init__(self, start_index: int = 0) -> None:
        super().__init__(start_index)

    async def next_array(self) -> Optional[DatapointArray]:
        self._begin_read()
        self._state = RangeState.CLOSED
        return None

    async def next(self) -> Optional[Datapoint]:
        self._begin_read()
        self._state = RangeState.CLOSED
        return None

    async def close(self) -> None:
        self._state = RangeState.CLOSED


class CursorRange(DataRange):
    """
    Range backed by an open query cursor.

    Holds one decoded array and the position inside it; the next row is
    fetched and decoded only when that array is used up.
    """

    def __init__(
        self,
        cursor: RowCursor,
        first: DatapointArray,
        end_index: int,
        codecs: CodecRegistry,
        key: StreamKey,
        driver_errors: tuple[type[BaseException], ...] = (),
    ) -> None:
        super().__init__(end_index - len(first))
        self._cursor: Optional[RowCursor] = cursor
        self._codecs = codecs
        self._key = key
        self._current = first
        self._offset = 0
        self._end_index = end_index
        self._driver_errors = driver_errors

    async def _advance(self) -> bool:
        """Load the next row. False when the cursor is exhausted."""
        if self._cursor is None:
            return False
        try:
            row = await self._cursor.fetchone()
        except self._driver_errors as e:
            await self._fail()
            raise QueryError.execution_failed("range_fetch", cause=e, key=str(self._key)) from e
        if row is None:
            await self.close()
            return False

        decoded = decode_row(self._codecs, self._key, row)
        if decoded.is_err():
            await self._fail()
            raise decoded.error
        end_index, array = decoded.unwrap()

        capacity = end_index - self._end_index
        if len(array) > capacity:
            await self._fail()
            logger.error(
                "Corrupt batch while draining range",
                extra={"key": str(self._key), "end_index": end_index,
                       "length": len(array), "capacity": capacity},
            )
            raise CorruptionError.length_mismatch(str(self._key), end_index, len(array), capacity)

        self._current = array
        self._offset = 0
        self._end_index = end_index
        self._index = end_index - len(array)
        return True

    async def _fail(self) -> None:
        """Release the cursor after an error, keeping the first error."""
        try:
            await self.close()
        except QueryError:
            logger.warning("Failed to release range cursor", exc_info=True)

    async def next_array(self) -> Optional[DatapointArray]:
        self._begin_read()
        if self._offset >= len(self._current) and not await self._advance():
            return None
        rest = self._current[self._offset:]
        self._offset = len(self._current)
        self._index += len(rest)
        return rest

    async def next(self) -> Optional[Datapoint]:
        self._begin_read()
        if self._offset >= len(self._current) and not await self._advance():
            return None
        dp = self._current[self._offset]
        self._offset += 1
        self._index += 1
        return dp

    async def close(self) -> None:
        self._state = RangeState.CLOSED
        if self._cursor is None:
            return
        cursor, self._cursor = self._cursor, None
        try:
            await cursor.close()
        except self._driver_errors as e:
            raise QueryError.execution_failed("range_close", cause=e, key=str(self._key)) from e
