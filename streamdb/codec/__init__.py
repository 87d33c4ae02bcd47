"""
Codec module: versioned datapoint-array payloads.
"""

from streamdb.codec.base import CodecRegistry, DatapointCodec
from streamdb.codec.versions import JsonCodec, LZ4JsonCodec, default_registry

__all__ = [
    "CodecRegistry",
    "DatapointCodec",
    "JsonCodec",
    "LZ4JsonCodec",
    "default_registry",
]
