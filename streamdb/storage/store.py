"""
SqlStore: Append-Only Datapoint Batches over a Relational Table

Provides:
- Batch writes with strict per-key EndIndex ordering
- Resumable reads by sequence index or by wall-clock time
- Corruption detection between index metadata and payloads

Design:
- Seven statements prepared once at open(), released once at close()
- No internal locking: the (StreamId, Substream, EndIndex) primary key
  is the only serialization point. append() reads the end index and
  then inserts; two concurrent appends to one key may read the same
  end index, and the loser's insert fails with a WriteError. Callers
  needing serialized appends hold a per-key lock or retry.
- write_batches() is not transactional across its list: batches
  written before a failure stay committed.
- Reads decode only the first matching row up front; the returned
  Range decodes the rest on demand.

Usage:
    result = await SqlStore.open(backend)
    async with result.unwrap() as store:
        await store.append(StreamKey(1, ""), array)
        rng, start = (await store.get_by_index(StreamKey(1, ""), 0)).unwrap()
        async with rng:
            async for dp in rng:
                ...
"""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Iterable, Optional

from streamdb.codec.base import CodecRegistry
from streamdb.codec.versions import default_registry
from streamdb.core.config import StoreConfig
from streamdb.core.errors import (
    ConnectivityError,
    CorruptionError,
    DatastreamError,
    EncodingError,
    InvariantViolation,
    QueryError,
    WriteError,
)
from streamdb.core.types import (
    Batch,
    DatapointArray,
    Err,
    Ok,
    Result,
    StreamKey,
    Timestamp,
)
from streamdb.storage.backends import Backend, PreparedStatement, RowCursor
from streamdb.storage.range import CursorRange, DataRange, EmptyRange, decode_row

logger = logging.getLogger(__name__)


@dataclass
class StoreStats:
    """Store operation counters for observability."""

    inserts: int = 0
    datapoints_written: int = 0
    queries: int = 0
    deletes: int = 0
    corruption_detected: int = 0
    failed_operations: int = 0
    avg_operation_time_ns: float = 0.0

    def record_latency(self, elapsed_ns: int) -> None:
        # Exponential moving average
        alpha = 0.1
        self.avg_operation_time_ns = (
            alpha * elapsed_ns + (1 - alpha) * self.avg_operation_time_ns
        )


class SqlStore:
    """
    Stores and queries datapoint arrays in the datastream table.

    The table and its indexes are assumed to exist (see DatastreamSchema).
    """

    __slots__ = (
        "_backend", "_statements", "_codecs", "_config", "_stats", "_closed",
    )

    def __init__(
        self,
        backend: Backend,
        statements: dict[str, PreparedStatement],
        codecs: CodecRegistry,
        config: StoreConfig,
    ) -> None:
        self._backend = backend
        self._statements = statements
        self._codecs = codecs
        self._config = config
        self._stats = StoreStats()
        self._closed = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================
    @classmethod
    async def open(
        cls,
        backend: Backend,
        config: Optional[StoreConfig] = None,
        codecs: Optional[CodecRegistry] = None,
    ) -> Result[SqlStore, DatastreamError]:
        """
        Verify the connection and prepare every statement.

        On any failure the statements already prepared are released
        before the error is returned.
        """
        config = config or StoreConfig()
        codecs = codecs or default_registry()
        if not codecs.supports(config.insert_version):
            return Err(EncodingError.unsupported_version(config.insert_version))

        try:
            await backend.ping()
        except backend.errors as e:
            logger.error("Backing store unreachable", extra={"backend": backend.name})
            return Err(ConnectivityError.unreachable(backend.name, cause=e))

        prepared: dict[str, PreparedStatement] = {}
        async with AsyncExitStack() as stack:
            for name, sql in backend.statements.items():
                try:
                    statement = await backend.prepare(name, sql)
                except backend.errors as e:
                    logger.error(
                        "Statement preparation failed",
                        extra={"backend": backend.name, "statement": name,
                               "prepared": len(prepared)},
                    )
                    return Err(ConnectivityError.prepare_failed(name, cause=e))
                stack.push_async_callback(statement.close)
                prepared[name] = statement
            stack.pop_all()

        logger.info(
            "Datastream store opened",
            extra={"backend": backend.name, "insert_version": config.insert_version},
        )
        return Ok(cls(backend, prepared, codecs, config))

    async def close(self) -> None:
        """
        Release every prepared statement that exists.

        Safe on a partially built store and safe to call twice.
        """
        if self._closed:
            return
        self._closed = True
        for statement in self._statements.values():
            await statement.close()
        logger.info("Datastream store closed", extra={"backend": self._backend.name})

    async def __aenter__(self) -> SqlStore:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def stats(self) -> StoreStats:
        return self._stats

    @property
    def insert_version(self) -> int:
        return self._config.insert_version

    @property
    def backend(self) -> Backend:
        return self._backend

    def _statement(self, name: str, operation: str) -> Result[PreparedStatement, ConnectivityError]:
        if self._closed:
            return Err(ConnectivityError.store_closed(operation))
        return Ok(self._statements[name])

    # =========================================================================
    # WRITES
    # =========================================================================
    async def _execute_write(
        self,
        name: str,
        operation: str,
        *args: object,
        timeout: Optional[float] = None,
    ) -> Result[None, DatastreamError]:
        stmt = self._statement(name, operation)
        if stmt.is_err():
            return stmt

        start = Timestamp.now()
        try:
            await stmt.unwrap().execute(*args, timeout=timeout)
        except self._backend.errors as e:
            self._stats.failed_operations += 1
            return Err(WriteError.execution_failed(operation, cause=e))
        finally:
            self._stats.record_latency(Timestamp.now() - start)
        return Ok(None)

    async def clear(self, *, timeout: Optional[float] = None) -> Result[None, DatastreamError]:
        """Delete every row of every stream. Irreversible."""
        result = await self._execute_write("clear_all", "clear", timeout=timeout)
        if result.is_ok():
            self._stats.deletes += 1
            logger.warning("Datastream table cleared", extra={"backend": self._backend.name})
        return result

    async def insert(
        self,
        key: StreamKey,
        start_index: int,
        array: DatapointArray,
        *,
        timeout: Optional[float] = None,
    ) -> Result[int, DatastreamError]:
        """
        Write one batch whose first datapoint sits at start_index.

        No read-before-write: the caller owns the correctness of
        start_index. Returns the new end index.
        """
        if len(array) == 0:
            return Err(EncodingError.invalid_array(self.insert_version, "array is empty"))

        stmt = self._statement("inserter", "insert")
        if stmt.is_err():
            return stmt

        encoded = self._codecs.encode(array, self.insert_version)
        if encoded.is_err():
            self._stats.failed_operations += 1
            return Err(encoded.error.with_context(key=str(key)))

        end_index = start_index + len(array)
        start = Timestamp.now()
        try:
            await stmt.unwrap().execute(
                key.stream_id,
                key.substream,
                float(array.end_time),
                end_index,
                self.insert_version,
                encoded.unwrap(),
                timeout=timeout,
            )
        except self._backend.integrity_errors as e:
            self._stats.failed_operations += 1
            logger.debug(
                "Insert rejected by uniqueness constraint",
                extra={"key": str(key), "end_index": end_index},
            )
            return Err(WriteError.constraint_violation(str(key), end_index, cause=e))
        except self._backend.errors as e:
            self._stats.failed_operations += 1
            return Err(WriteError.execution_failed(
                "insert", cause=e, key=str(key), end_index=end_index,
            ))
        finally:
            self._stats.record_latency(Timestamp.now() - start)

        self._stats.inserts += 1
        self._stats.datapoints_written += len(array)
        logger.debug(
            "Batch inserted",
            extra={"key": str(key), "start_index": start_index,
                   "end_index": end_index, "count": len(array)},
        )
        return Ok(end_index)

    async def write_batches(
        self,
        batches: Iterable[Batch],
        *,
        timeout: Optional[float] = None,
    ) -> Result[int, DatastreamError]:
        """
        Insert pre-addressed batches in order.

        Stops at the first failure; earlier batches stay committed.
        Returns the number of batches written.
        """
        written = 0
        for batch in batches:
            result = await self.insert(batch.key, batch.start_index, batch.data, timeout=timeout)
            if result.is_err():
                return Err(result.error.with_context(batches_written=written))
            written += 1
        return Ok(written)

    async def append(
        self,
        key: StreamKey,
        array: DatapointArray,
        *,
        timeout: Optional[float] = None,
    ) -> Result[int, DatastreamError]:
        """
        Insert array at the key's current end index.

        Two steps with no atomicity between them; a concurrent append
        to the same key can make this fail with a WriteError whose
        is_conflict is True. Returns the new end index.
        """
        end_index = await self.get_end_index(key, timeout=timeout)
        if end_index.is_err():
            return end_index
        return await self.insert(key, end_index.unwrap(), array, timeout=timeout)

    async def delete_stream(
        self,
        stream_id: int,
        *,
        timeout: Optional[float] = None,
    ) -> Result[None, DatastreamError]:
        """Delete every batch of every substream of the stream."""
        result = await self._execute_write(
            "delete_stream", "delete_stream", stream_id, timeout=timeout,
        )
        if result.is_ok():
            self._stats.deletes += 1
            logger.debug("Stream deleted", extra={"stream_id": stream_id})
        return result

    async def delete_substream(
        self,
        key: StreamKey,
        *,
        timeout: Optional[float] = None,
    ) -> Result[None, DatastreamError]:
        """Delete every batch of one key."""
        result = await self._execute_write(
            "delete_substream", "delete_substream",
            key.stream_id, key.substream, timeout=timeout,
        )
        if result.is_ok():
            self._stats.deletes += 1
            logger.debug("Substream deleted", extra={"key": str(key)})
        return result

    # =========================================================================
    # READS
    # =========================================================================
    async def get_end_index(
        self,
        key: StreamKey,
        *,
        timeout: Optional[float] = None,
    ) -> Result[int, DatastreamError]:
        """
        First index past the key's stored datapoints; 0 for an unknown key.

        If the datapoints of a key were one array, this is its length.
        """
        stmt = self._statement("end_index", "get_end_index")
        if stmt.is_err():
            return stmt

        start = Timestamp.now()
        try:
            row = await stmt.unwrap().fetchrow(key.stream_id, key.substream, timeout=timeout)
        except self._backend.errors as e:
            self._stats.failed_operations += 1
            return Err(QueryError.execution_failed("get_end_index", cause=e, key=str(key)))
        finally:
            self._stats.record_latency(Timestamp.now() - start)
        self._stats.queries += 1

        if row is None:
            logger.critical(
                "Aggregate query returned no row",
                extra={"key": str(key), "statement": "end_index"},
            )
            return Err(InvariantViolation.missing_aggregate_row("end_index", str(key)))
        return Ok(int(row[0]))

    async def get_by_time(
        self,
        key: StreamKey,
        start_time: float,
        *,
        timeout: Optional[float] = None,
    ) -> Result[tuple[DataRange, int], DatastreamError]:
        """
        Datapoints with timestamp >= start_time, and the absolute index
        of the first one.

        With no batch ending after start_time, returns an EmptyRange at
        the key's end index.
        """
        opened = await self._open_query("time_query", "get_by_time", key, start_time, timeout)
        if opened.is_err():
            return opened
        cursor, row = opened.unwrap()
        if row is None:
            return await self._empty_range(key, timeout)

        try:
            first = await self._decode_first(cursor, key, row)
            if first.is_err():
                return first
            end_index, array = first.unwrap()

            array = array.t_start(start_time)
            checked = await self._check_first(cursor, key, end_index, array)
            if checked.is_err():
                return checked
            return self._cursor_range(cursor, key, end_index, array)
        except BaseException:
            await self._release(cursor)
            raise

    async def get_by_index(
        self,
        key: StreamKey,
        start_index: int,
        *,
        timeout: Optional[float] = None,
    ) -> Result[tuple[DataRange, int], DatastreamError]:
        """
        Datapoints from start_index onward, and the absolute index of
        the first one returned.

        An index before the first stored batch starts at that batch.
        With no batch ending after start_index, returns an EmptyRange at
        the key's end index.
        """
        start_index = max(start_index, 0)
        opened = await self._open_query("index_query", "get_by_index", key, start_index, timeout)
        if opened.is_err():
            return opened
        cursor, row = opened.unwrap()
        if row is None:
            return await self._empty_range(key, timeout)

        try:
            first = await self._decode_first(cursor, key, row)
            if first.is_err():
                return first
            end_index, array = first.unwrap()

            checked = await self._check_first(cursor, key, end_index, array)
            if checked.is_err():
                return checked

            # EndIndex > start_index is guaranteed by the query, so tail >= 1
            tail = end_index - start_index
            if tail < len(array):
                array = array.tail(tail)
            return self._cursor_range(cursor, key, end_index, array)
        except BaseException:
            await self._release(cursor)
            raise

    # =========================================================================
    # READ HELPERS
    # =========================================================================
    async def _open_query(
        self,
        name: str,
        operation: str,
        key: StreamKey,
        bound: float,
        timeout: Optional[float],
    ) -> Result[tuple[RowCursor, Optional[tuple]], DatastreamError]:
        """
        Run a range query and fetch its first row.

        The cursor is released on every failure, cancellation included.
        """
        stmt = self._statement(name, operation)
        if stmt.is_err():
            return stmt

        start = Timestamp.now()
        try:
            cursor = await stmt.unwrap().cursor(
                key.stream_id, key.substream, bound, timeout=timeout,
            )
        except self._backend.errors as e:
            self._stats.failed_operations += 1
            self._stats.record_latency(Timestamp.now() - start)
            return Err(QueryError.execution_failed(operation, cause=e, key=str(key)))

        try:
            row = await cursor.fetchone()
        except self._backend.errors as e:
            self._stats.failed_operations += 1
            await self._release(cursor)
            return Err(QueryError.execution_failed(operation, cause=e, key=str(key)))
        except BaseException:
            await self._release(cursor)
            raise
        finally:
            self._stats.record_latency(Timestamp.now() - start)
        self._stats.queries += 1

        if row is None:
            await self._release(cursor)
        return Ok((cursor, row))

    async def _empty_range(
        self,
        key: StreamKey,
        timeout: Optional[float],
    ) -> Result[tuple[DataRange, int], DatastreamError]:
        end_index = await self.get_end_index(key, timeout=timeout)
        if end_index.is_err():
            return end_index
        return Ok((EmptyRange(end_index.unwrap()), end_index.unwrap()))

    async def _decode_first(
        self,
        cursor: RowCursor,
        key: StreamKey,
        row: tuple,
    ) -> Result[tuple[int, DatapointArray], DatastreamError]:
        decoded = decode_row(self._codecs, key, row)
        if decoded.is_err():
            await self._release(cursor)
            if isinstance(decoded.error, CorruptionError):
                self._report_corruption(decoded.error)
            else:
                self._stats.failed_operations += 1
        return decoded

    async def _check_first(
        self,
        cursor: RowCursor,
        key: StreamKey,
        end_index: int,
        array: DatapointArray,
    ) -> Result[None, CorruptionError]:
        """
        The first row has no predecessor in hand, so its array may not
        exceed EndIndex itself; after a time trim it may not be empty.
        """
        error: Optional[CorruptionError] = None
        if len(array) == 0:
            error = CorruptionError.empty_batch(str(key), end_index)
        elif len(array) > end_index:
            error = CorruptionError.length_mismatch(str(key), end_index, len(array), end_index)
        if error is None:
            return Ok(None)
        await self._release(cursor)
        self._report_corruption(error)
        return Err(error)

    def _cursor_range(
        self,
        cursor: RowCursor,
        key: StreamKey,
        end_index: int,
        array: DatapointArray,
    ) -> Result[tuple[DataRange, int], DatastreamError]:
        rng = CursorRange(
            cursor, array, end_index, self._codecs, key,
            driver_errors=self._backend.errors,
        )
        return Ok((rng, end_index - len(array)))

    async def _release(self, cursor: RowCursor) -> None:
        """Close a cursor on an error path without masking the first error."""
        try:
            await cursor.close()
        except self._backend.errors:
            logger.warning("Failed to release query cursor", exc_info=True)

    def _report_corruption(self, error: CorruptionError) -> None:
        self._stats.corruption_detected += 1
        logger.error("Datastream corruption detected", extra={"error": error.to_dict()})
