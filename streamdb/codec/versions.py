"""
Payload Versions

Version 1: UTF-8 JSON list of datapoint records
Version 2: LZ4-frame-compressed version 1 payload (default for inserts)

Record format:
    {"t": <float seconds>, "d": <json value>, "s": <sender, omitted if empty>}
"""

from __future__ import annotations

import json
import math
from typing import Any

import lz4.frame

from streamdb.codec.base import CodecRegistry, DatapointCodec
from streamdb.core import constants as C
from streamdb.core.errors import EncodingError
from streamdb.core.types import Datapoint, DatapointArray


class JsonCodec(DatapointCodec):
    """Plain JSON records. Readable, and the base of version 2."""

    version = C.CODEC_VERSION_JSON

    def encode(self, array: DatapointArray) -> bytes:
        if len(array) == 0:
            raise EncodingError.invalid_array(self.version, "array is empty")
        for dp in array:
            if not _is_finite_number(dp.timestamp):
                raise EncodingError.invalid_array(
                    self.version, f"timestamp {dp.timestamp!r} is not a finite number"
                )
        try:
            text = json.dumps(array.to_records(), separators=(",", ":"), allow_nan=False)
        except (TypeError, ValueError) as e:
            raise EncodingError.invalid_array(self.version, str(e), cause=e) from e
        return text.encode("utf-8")

    def decode(self, payload: bytes) -> DatapointArray:
        try:
            records = json.loads(bytes(payload).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise EncodingError.malformed_payload(self.version, str(e), cause=e) from e

        if not isinstance(records, list):
            raise EncodingError.malformed_payload(
                self.version, f"expected a list, got {type(records).__name__}"
            )

        points = []
        for i, record in enumerate(records):
            if not isinstance(record, dict) or not _is_finite_number(record.get("t")):
                raise EncodingError.malformed_payload(
                    self.version, f"record {i} has no numeric timestamp"
                )
            points.append(Datapoint.from_record(record))
        return DatapointArray(points)


class LZ4JsonCodec(JsonCodec):
    """JSON records compressed with an LZ4 frame."""

    version = C.CODEC_VERSION_LZ4_JSON

    def encode(self, array: DatapointArray) -> bytes:
        return lz4.frame.compress(super().encode(array))

    def decode(self, payload: bytes) -> DatapointArray:
        try:
            raw = lz4.frame.decompress(bytes(payload))
        except RuntimeError as e:
            # lz4.frame reports corrupt frames as RuntimeError
            raise EncodingError.malformed_payload(self.version, str(e), cause=e) from e
        return super().decode(raw)


def _is_finite_number(value: Any) -> bool:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # Ints beyond float range cannot be stored as EndTime
        return False


def default_registry() -> CodecRegistry:
    """Registry holding every shipped payload version."""
    return CodecRegistry([JsonCodec(), LZ4JsonCodec()])
