"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions for the store:
- Result/Either monads for store operations
- Datapoint, DatapointArray, StreamKey and Batch value types
- Error hierarchy keeping codec, corruption and I/O failures apart
- Configuration management with validation
"""

from streamdb.core.types import (
    Result,
    Ok,
    Err,
    Timestamp,
    StreamKey,
    Datapoint,
    DatapointArray,
    Batch,
)
from streamdb.core.errors import (
    ErrorCode,
    DatastreamError,
    ConnectivityError,
    WriteError,
    QueryError,
    EncodingError,
    CorruptionError,
    InvariantViolation,
)
from streamdb.core.config import StreamDBConfig

__all__ = [
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    "StreamKey",
    "Datapoint",
    "DatapointArray",
    "Batch",
    "ErrorCode",
    "DatastreamError",
    "ConnectivityError",
    "WriteError",
    "QueryError",
    "EncodingError",
    "CorruptionError",
    "InvariantViolation",
    "StreamDBConfig",
]
