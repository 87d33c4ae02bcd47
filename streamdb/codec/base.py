"""
Codec Base: Versioned Payload Interface and Registry

Provides:
    - DatapointCodec: Abstract base for one payload version
    - CodecRegistry: Version-keyed dispatch returning Result types

The store never inspects payload bytes to guess a format; the
Version column selects the codec explicitly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable

from streamdb.core.errors import EncodingError
from streamdb.core.types import Result, Ok, Err, DatapointArray


# =============================================================================
# CODEC BASE
# =============================================================================
class DatapointCodec(ABC):
    """
    Encoder/decoder for a single payload version.

    Implementations raise EncodingError for invalid arrays and
    malformed payloads; the registry turns those into Err values.
    """

    version: int = 0

    @abstractmethod
    def encode(self, array: DatapointArray) -> bytes:
        """Encode a non-empty array - must be implemented."""
        ...

    @abstractmethod
    def decode(self, payload: bytes) -> DatapointArray:
        """Decode a payload produced by encode() - must be implemented."""
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(version={self.version})"


# =============================================================================
# REGISTRY
# =============================================================================
class CodecRegistry:
    """
    Dispatches encode/decode by payload version.

    Usage:
        codecs = CodecRegistry([JsonCodec(), LZ4JsonCodec()])
        payload = codecs.encode(array, 2).unwrap()
        array = codecs.decode(payload, 2).unwrap()
    """

    __slots__ = ("_codecs",)

    def __init__(self, codecs: Iterable[DatapointCodec] = ()) -> None:
        self._codecs: dict[int, DatapointCodec] = {}
        for codec in codecs:
            self.register(codec)

    def register(self, codec: DatapointCodec) -> None:
        """Register a codec, replacing any previous one for its version."""
        self._codecs[codec.version] = codec

    def supports(self, version: int) -> bool:
        return version in self._codecs

    @property
    def versions(self) -> list[int]:
        return sorted(self._codecs)

    def encode(self, array: DatapointArray, version: int) -> Result[bytes, EncodingError]:
        codec = self._codecs.get(version)
        if codec is None:
            return Err(EncodingError.unsupported_version(version))
        try:
            return Ok(codec.encode(array))
        except EncodingError as e:
            return Err(e)

    def decode(self, payload: bytes, version: int) -> Result[DatapointArray, EncodingError]:
        codec = self._codecs.get(version)
        if codec is None:
            return Err(EncodingError.unsupported_version(version))
        try:
            return Ok(codec.decode(payload))
        except EncodingError as e:
            return Err(e)
