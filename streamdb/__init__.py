"""
streamdb: Append-Only Time-Series Batches on a Relational Store

Persists ordered batches of datapoints for many streams, each split
into named substreams, and reads them back from any sequence index or
any wall-clock time through lazily-decoding cursors.

- Store: batch writes, end-index bookkeeping, corruption detection
- Ranges: cursors that decode one stored batch at a time
- Codecs: versioned payload encodings (JSON, LZ4-compressed JSON)
- Backends: PostgreSQL (asyncpg) and SQLite

License: MIT
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from streamdb.core.types import (
    Result,
    Ok,
    Err,
    StreamKey,
    Datapoint,
    DatapointArray,
    Batch,
)
from streamdb.core.errors import (
    DatastreamError,
    ConnectivityError,
    WriteError,
    QueryError,
    EncodingError,
    CorruptionError,
    InvariantViolation,
)
from streamdb.core.config import StreamDBConfig, StoreConfig
from streamdb.codec import CodecRegistry, DatapointCodec, default_registry
from streamdb.storage import (
    Backend,
    DataRange,
    EmptyRange,
    CursorRange,
    RangeState,
    DatastreamSchema,
    SQLiteBackend,
    SqlStore,
)

__all__ = [
    "__version__",
    # Result monad
    "Result",
    "Ok",
    "Err",
    # Values
    "StreamKey",
    "Datapoint",
    "DatapointArray",
    "Batch",
    # Errors
    "DatastreamError",
    "ConnectivityError",
    "WriteError",
    "QueryError",
    "EncodingError",
    "CorruptionError",
    "InvariantViolation",
    # Config
    "StreamDBConfig",
    "StoreConfig",
    # Codecs
    "CodecRegistry",
    "DatapointCodec",
    "default_registry",
    # Storage
    "Backend",
    "DataRange",
    "EmptyRange",
    "CursorRange",
    "RangeState",
    "DatastreamSchema",
    "SQLiteBackend",
    "SqlStore",
]
