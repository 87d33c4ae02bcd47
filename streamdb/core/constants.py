"""
System-Wide Constants for the Datastream Store

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# TIME UNITS
# =============================================================================
SECOND_MS: Final[int] = 1000

# =============================================================================
# SCHEMA
# =============================================================================
TABLE_NAME: Final[str] = "datastream"

# =============================================================================
# CODEC
# =============================================================================
CODEC_VERSION_JSON: Final[int] = 1
CODEC_VERSION_LZ4_JSON: Final[int] = 2
DEFAULT_INSERT_VERSION: Final[int] = CODEC_VERSION_LZ4_JSON

# =============================================================================
# POSTGRESQL BACKEND
# =============================================================================
PG_POOL_MIN: Final[int] = 1
PG_POOL_MAX: Final[int] = 10
PG_COMMAND_TIMEOUT_MS: Final[int] = 30 * SECOND_MS
PG_STATEMENT_CACHE_SIZE: Final[int] = 100

# =============================================================================
# SQLITE BACKEND
# =============================================================================
SQLITE_BUSY_TIMEOUT_MS: Final[int] = 5 * SECOND_MS
SQLITE_MEMORY_PATH: Final[str] = ":memory:"
# VM instructions between timeout checks
SQLITE_PROGRESS_STEPS: Final[int] = 100

# =============================================================================
# RANGE CURSORS
# =============================================================================
# Rows fetched per round trip while a Range drains a PostgreSQL cursor
DEFAULT_PREFETCH_ROWS: Final[int] = 16
