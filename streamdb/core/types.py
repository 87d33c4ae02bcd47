"""
Core Type Definitions for the Datastream Store

Implements Result/Either monads for store operations plus the
datapoint value types that flow through the codec and the cursor.

Design Principles:
- Never use null for absence (use Optional or Result)
- Datapoint arrays are immutable; every trim returns a new array
- Keys are hashable and orderable so callers can lock per key

Complexity: O(1) for Result operations, O(log n) for time trimming
"""

from __future__ import annotations

import bisect
import time
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Generic,
    Iterable,
    Iterator,
    Literal,
    Optional,
    Sequence,
    TypeVar,
    Union,
    overload,
)

# =============================================================================
# TYPE VARIABLES FOR GENERIC CONTAINERS
# =============================================================================
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type
U = TypeVar("U")  # Transform result type


# =============================================================================
# RESULT MONAD
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Success variant of Result monad.

    Immutable container for successful computation results.
    """

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        """Extract value. Safe to call after is_ok() check."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Return value, ignoring default."""
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Apply transformation to success value."""
        return Ok(fn(self.value))

    def flat_map(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Monadic bind for chaining fallible operations."""
        return fn(self.value)

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Failure variant of Result monad.

    Carries the error untouched so callers can match on its type.
    """

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        """
        Attempting to unwrap an error is a programming error.

        Raises:
            The wrapped error if it is an exception, RuntimeError otherwise
        """
        if isinstance(self.error, BaseException):
            raise self.error
        raise RuntimeError(f"Called unwrap() on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, fn: Callable[[Any], U]) -> Err[E]:
        """No-op on error variant - propagates error unchanged."""
        return self

    def flat_map(self, fn: Callable[[Any], Result[U, E]]) -> Err[E]:
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Union type for pattern matching
Result = Union[Ok[T], Err[E]]


# =============================================================================
# TIMESTAMP WITH NANOSECOND PRECISION
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class Timestamp:
    """
    Wall-clock timestamp in nanoseconds since Unix epoch.

    Used for error correlation and latency accounting, not for
    datapoint times (those are float seconds, as stored in EndTime).
    """

    nanos: int

    @classmethod
    def now(cls) -> Timestamp:
        return cls(nanos=time.time_ns())

    def __sub__(self, other: Timestamp) -> int:
        """Subtract timestamps, returning difference in nanos."""
        return self.nanos - other.nanos

    def __repr__(self) -> str:
        return f"Timestamp({self.nanos}ns)"


# =============================================================================
# STREAM ADDRESSING
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class StreamKey:
    """
    (stream, substream) pair identifying one append-only sequence.

    The substream name is scoped to its stream; the empty string is
    the stream's default substream.
    """

    stream_id: int
    substream: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.stream_id, int) or isinstance(self.stream_id, bool):
            raise TypeError(f"stream_id must be an int, got {type(self.stream_id).__name__}")
        if not isinstance(self.substream, str):
            raise TypeError(f"substream must be a str, got {type(self.substream).__name__}")

    def __str__(self) -> str:
        if self.substream:
            return f"{self.stream_id}/{self.substream}"
        return str(self.stream_id)


# =============================================================================
# DATAPOINTS
# =============================================================================
@dataclass(frozen=True, slots=True)
class Datapoint:
    """A single timestamped value. Timestamps are float seconds."""

    timestamp: float
    data: Any = None
    sender: str = ""

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {"t": self.timestamp, "d": self.data}
        if self.sender:
            record["s"] = self.sender
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Datapoint:
        return cls(
            timestamp=record["t"],
            data=record.get("d"),
            sender=record.get("s", ""),
        )


class DatapointArray(Sequence[Datapoint]):
    """
    Immutable ordered sequence of datapoints.

    Timestamps are assumed non-decreasing; time trimming relies on it
    for binary search. Slicing and trimming return new arrays that
    share no mutable state with the source.

    Usage:
        arr = DatapointArray.from_pairs([(1.0, "a"), (5.0, "b")])
        arr.t_start(5.0)   # -> [(5.0, "b")]
        arr.tail(1)        # -> [(5.0, "b")]
    """

    __slots__ = ("_points", "_timestamps")

    def __init__(self, points: Iterable[Datapoint] = ()) -> None:
        self._points: tuple[Datapoint, ...] = tuple(points)
        self._timestamps: Optional[list[float]] = None

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[float, Any]]) -> DatapointArray:
        return cls(Datapoint(timestamp=t, data=d) for t, d in pairs)

    @classmethod
    def from_records(cls, records: Iterable[dict[str, Any]]) -> DatapointArray:
        return cls(Datapoint.from_record(r) for r in records)

    def to_records(self) -> list[dict[str, Any]]:
        return [dp.to_record() for dp in self._points]

    @overload
    def __getitem__(self, index: int) -> Datapoint: ...

    @overload
    def __getitem__(self, index: slice) -> DatapointArray: ...

    def __getitem__(self, index: int | slice) -> Datapoint | DatapointArray:
        if isinstance(index, slice):
            return DatapointArray(self._points[index])
        return self._points[index]

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[Datapoint]:
        return iter(self._points)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, DatapointArray):
            return self._points == other._points
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._points)

    def __repr__(self) -> str:
        return f"DatapointArray(len={len(self._points)})"

    @property
    def timestamps(self) -> list[float]:
        """Timestamps in order, computed once per array."""
        if self._timestamps is None:
            self._timestamps = [dp.timestamp for dp in self._points]
        return self._timestamps

    @property
    def start_time(self) -> float:
        """Timestamp of the first datapoint. IndexError if empty."""
        return self._points[0].timestamp

    @property
    def end_time(self) -> float:
        """Timestamp of the last datapoint. IndexError if empty."""
        return self._points[-1].timestamp

    def t_start(self, start_time: float) -> DatapointArray:
        """
        Keep the datapoints with timestamp >= start_time.

        The boundary is inclusive: a datapoint stamped exactly at
        start_time is kept.

        Complexity: O(log n) search + O(k) copy
        """
        i = bisect.bisect_left(self.timestamps, start_time)
        return DatapointArray(self._points[i:])

    def i_range(self, start: int, end: int) -> DatapointArray:
        """Positional slice [start, end)."""
        return DatapointArray(self._points[start:end])

    def tail(self, count: int) -> DatapointArray:
        """The last ``count`` datapoints (empty when count <= 0)."""
        if count <= 0:
            return DatapointArray()
        return DatapointArray(self._points[-count:])


# =============================================================================
# WRITE UNITS
# =============================================================================
@dataclass(frozen=True, slots=True)
class Batch:
    """
    Pre-addressed batch: a datapoint array bound to its key and the
    absolute sequence index of its first datapoint.
    """

    key: StreamKey
    start_index: int
    data: DatapointArray = field(default_factory=DatapointArray)

    @property
    def end_index(self) -> int:
        """Exclusive upper bound of the positions this batch covers."""
        return self.start_index + len(self.data)
