"""
Error Hierarchy for the Datastream Store

Design Principles:
- Store operations return Result types; errors are values first
- Range iteration raises these same classes (iterators cannot return Err)
- Decode failures, corruption and "no data" are never conflated
- Carry full error context for debugging and audit trails

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause chain for root cause analysis
- Timestamp for correlation with logs

Usage:
    result = await store.get_by_index(key, 0)
    match result:
        case Ok((rng, start)):
            ...
        case Err(CorruptionError() as e):
            alert(e)
        case Err(e):
            raise e
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from streamdb.core.types import Timestamp


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by kind:
    - 1xxx: Connectivity
    - 2xxx: Write path
    - 3xxx: Read path
    - 4xxx: Codec
    - 5xxx: Corruption
    - 9xxx: Internal invariants
    """

    # Connectivity (1xxx)
    CONNECTIVITY_UNREACHABLE = 1001
    CONNECTIVITY_PREPARE_FAILED = 1002
    CONNECTIVITY_STORE_CLOSED = 1003

    # Write path (2xxx)
    WRITE_FAILED = 2001
    WRITE_CONSTRAINT_VIOLATION = 2002

    # Read path (3xxx)
    QUERY_FAILED = 3001
    QUERY_RANGE_CLOSED = 3002

    # Codec (4xxx)
    ENCODING_UNSUPPORTED_VERSION = 4001
    ENCODING_MALFORMED_PAYLOAD = 4002
    ENCODING_INVALID_ARRAY = 4003

    # Corruption (5xxx)
    CORRUPTION_LENGTH_MISMATCH = 5001
    CORRUPTION_EMPTY_BATCH = 5002

    # Internal (9xxx)
    INVARIANT_MISSING_AGGREGATE_ROW = 9001


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class DatastreamError(Exception):
    """
    Base class for all datastream store errors.

    Provides common infrastructure for error handling:
    - Unique error ID for log correlation
    - Error code for programmatic handling
    - Timestamp of creation
    - Cause chain for root cause analysis
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    cause: Optional[BaseException] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)
        if self.cause is not None:
            self.__cause__ = self.cause

    def with_context(self, **kwargs: Any) -> DatastreamError:
        """
        Add context to error (returns new instance of the same class).

        Context is useful for debugging but should not
        contain payload data.
        """
        return type(self)(
            code=self.code,
            message=self.message,
            error_id=self.error_id,
            timestamp=self.timestamp,
            cause=self.cause,
            context={**self.context, **kwargs},
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize error to dictionary for logging."""
        data = {
            "error_id": self.error_id,
            "kind": type(self).__name__,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp_nanos": self.timestamp.nanos,
            "context": self.context,
        }
        if self.cause is not None:
            data["cause"] = repr(self.cause)
        return data

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# CONNECTIVITY
# =============================================================================
@dataclass
class ConnectivityError(DatastreamError):
    """Backing store unreachable, or statement preparation failed."""

    @classmethod
    def unreachable(
        cls,
        backend: str,
        cause: Optional[BaseException] = None,
    ) -> ConnectivityError:
        """Connection check failed at construction."""
        return cls(
            code=ErrorCode.CONNECTIVITY_UNREACHABLE,
            message=f"Backing store '{backend}' is unreachable",
            cause=cause,
            context={"backend": backend},
        )

    @classmethod
    def prepare_failed(
        cls,
        statement: str,
        cause: Optional[BaseException] = None,
    ) -> ConnectivityError:
        """A statement of the fixed set could not be prepared."""
        return cls(
            code=ErrorCode.CONNECTIVITY_PREPARE_FAILED,
            message=f"Failed to prepare statement '{statement}'",
            cause=cause,
            context={"statement": statement},
        )

    @classmethod
    def store_closed(cls, operation: str) -> ConnectivityError:
        """Operation attempted after close()."""
        return cls(
            code=ErrorCode.CONNECTIVITY_STORE_CLOSED,
            message=f"Cannot run '{operation}' on a closed store",
            context={"operation": operation},
        )


# =============================================================================
# WRITE PATH
# =============================================================================
@dataclass
class WriteError(DatastreamError):
    """
    Insert or delete execution failure.

    A losing concurrent append surfaces as constraint_violation:
    re-read the end index and retry if desired.
    """

    @classmethod
    def execution_failed(
        cls,
        operation: str,
        cause: Optional[BaseException] = None,
        **context: Any,
    ) -> WriteError:
        return cls(
            code=ErrorCode.WRITE_FAILED,
            message=f"Write operation '{operation}' failed",
            cause=cause,
            context={"operation": operation, **context},
        )

    @classmethod
    def constraint_violation(
        cls,
        key: str,
        end_index: int,
        cause: Optional[BaseException] = None,
    ) -> WriteError:
        """Uniqueness of (StreamId, Substream, EndIndex) rejected the row."""
        return cls(
            code=ErrorCode.WRITE_CONSTRAINT_VIOLATION,
            message=f"A batch ending at index {end_index} already exists for key {key}",
            cause=cause,
            context={"key": key, "end_index": end_index},
        )

    @property
    def is_conflict(self) -> bool:
        return self.code == ErrorCode.WRITE_CONSTRAINT_VIOLATION


# =============================================================================
# READ PATH
# =============================================================================
@dataclass
class QueryError(DatastreamError):
    """Failure reading or iterating query results."""

    @classmethod
    def execution_failed(
        cls,
        operation: str,
        cause: Optional[BaseException] = None,
        **context: Any,
    ) -> QueryError:
        return cls(
            code=ErrorCode.QUERY_FAILED,
            message=f"Query '{operation}' failed",
            cause=cause,
            context={"operation": operation, **context},
        )

    @classmethod
    def range_closed(cls) -> QueryError:
        """Range used after it was drained or closed."""
        return cls(
            code=ErrorCode.QUERY_RANGE_CLOSED,
            message="Range is closed",
        )


# =============================================================================
# CODEC
# =============================================================================
@dataclass
class EncodingError(DatastreamError):
    """Payload malformed, array invalid, or codec version unsupported."""

    @classmethod
    def unsupported_version(cls, version: int) -> EncodingError:
        return cls(
            code=ErrorCode.ENCODING_UNSUPPORTED_VERSION,
            message=f"No codec registered for version {version}",
            context={"version": version},
        )

    @classmethod
    def malformed_payload(
        cls,
        version: int,
        reason: str,
        cause: Optional[BaseException] = None,
    ) -> EncodingError:
        return cls(
            code=ErrorCode.ENCODING_MALFORMED_PAYLOAD,
            message=f"Malformed version {version} payload: {reason}",
            cause=cause,
            context={"version": version},
        )

    @classmethod
    def invalid_array(
        cls,
        version: int,
        reason: str,
        cause: Optional[BaseException] = None,
    ) -> EncodingError:
        return cls(
            code=ErrorCode.ENCODING_INVALID_ARRAY,
            message=f"Array cannot be encoded as version {version}: {reason}",
            cause=cause,
            context={"version": version},
        )


# =============================================================================
# CORRUPTION
# =============================================================================
@dataclass
class CorruptionError(DatastreamError):
    """
    Stored index metadata disagrees with the decoded payload.

    Signals data or metadata loss, not a malformed write.
    """

    @classmethod
    def length_mismatch(
        cls,
        key: str,
        end_index: int,
        length: int,
        capacity: int,
    ) -> CorruptionError:
        return cls(
            code=ErrorCode.CORRUPTION_LENGTH_MISMATCH,
            message=(
                f"Batch ending at {end_index} for key {key} decodes to "
                f"{length} datapoints but metadata allows at most {capacity}"
            ),
            context={
                "key": key,
                "end_index": end_index,
                "length": length,
                "capacity": capacity,
            },
        )

    @classmethod
    def empty_batch(cls, key: str, end_index: int) -> CorruptionError:
        return cls(
            code=ErrorCode.CORRUPTION_EMPTY_BATCH,
            message=f"Batch ending at {end_index} for key {key} holds no matching datapoints",
            context={"key": key, "end_index": end_index},
        )


# =============================================================================
# INTERNAL INVARIANTS
# =============================================================================
@dataclass
class InvariantViolation(DatastreamError):
    """
    A structurally impossible condition occurred.

    Unrecoverable; never defaulted to "no data".
    """

    @classmethod
    def missing_aggregate_row(cls, statement: str, key: str) -> InvariantViolation:
        return cls(
            code=ErrorCode.INVARIANT_MISSING_AGGREGATE_ROW,
            message=f"Aggregate statement '{statement}' returned no row for key {key}",
            context={"statement": statement, "key": key},
        )
