"""
Unit Tests: Payload Codecs

Tests:
    - Version 1 (JSON) and version 2 (LZ4 JSON) payloads
    - Rejection of invalid arrays and malformed payloads
    - Registry dispatch by version
"""

import math

import lz4.frame
import pytest

from streamdb.codec import CodecRegistry, JsonCodec, LZ4JsonCodec, default_registry
from streamdb.core.errors import EncodingError, ErrorCode
from streamdb.core.types import Datapoint, DatapointArray


@pytest.fixture
def array():
    return DatapointArray([
        Datapoint(1.0, 12.5),
        Datapoint(2.5, {"temp": 20}, sender="sensor-3"),
        Datapoint(4.0, None),
    ])


class TestJsonCodec:
    """Tests for version 1."""

    def test_encode_decode(self, array):
        codec = JsonCodec()
        payload = codec.encode(array)
        assert isinstance(payload, bytes)
        assert codec.decode(payload) == array

    def test_payload_is_json_records(self, array):
        payload = JsonCodec().encode(array)
        assert payload.startswith(b'[{"t":1.0')

    def test_rejects_empty_array(self):
        with pytest.raises(EncodingError) as exc:
            JsonCodec().encode(DatapointArray())
        assert exc.value.code == ErrorCode.ENCODING_INVALID_ARRAY

    def test_rejects_non_finite_timestamp(self):
        with pytest.raises(EncodingError):
            JsonCodec().encode(DatapointArray([Datapoint(math.nan, 1)]))

    def test_rejects_timestamp_beyond_float_range(self):
        with pytest.raises(EncodingError) as exc:
            JsonCodec().encode(DatapointArray([Datapoint(10**400, 1)]))
        assert exc.value.code == ErrorCode.ENCODING_INVALID_ARRAY

    def test_rejects_decoded_timestamp_beyond_float_range(self):
        payload = b'[{"t":1' + b"0" * 400 + b',"d":1}]'
        with pytest.raises(EncodingError) as exc:
            JsonCodec().decode(payload)
        assert exc.value.code == ErrorCode.ENCODING_MALFORMED_PAYLOAD

    def test_rejects_unserializable_data(self):
        with pytest.raises(EncodingError) as exc:
            JsonCodec().encode(DatapointArray([Datapoint(1.0, object())]))
        assert exc.value.code == ErrorCode.ENCODING_INVALID_ARRAY

    @pytest.mark.parametrize("payload", [
        b"not json",
        b'{"t": 1}',
        b'[{"d": 1}]',
        b'[{"t": "soon"}]',
        b"\xff\xfe",
    ])
    def test_rejects_malformed(self, payload):
        with pytest.raises(EncodingError) as exc:
            JsonCodec().decode(payload)
        assert exc.value.code == ErrorCode.ENCODING_MALFORMED_PAYLOAD

    def test_empty_list_decodes_empty(self):
        # Emptiness is judged by the store, not the codec
        assert len(JsonCodec().decode(b"[]")) == 0


class TestLZ4JsonCodec:
    """Tests for version 2."""

    def test_encode_decode(self, array):
        codec = LZ4JsonCodec()
        assert codec.decode(codec.encode(array)) == array

    def test_payload_is_lz4_frame(self, array):
        payload = LZ4JsonCodec().encode(array)
        assert lz4.frame.decompress(payload) == JsonCodec().encode(array)

    def test_rejects_corrupt_frame(self):
        with pytest.raises(EncodingError) as exc:
            LZ4JsonCodec().decode(b"definitely not lz4")
        assert exc.value.code == ErrorCode.ENCODING_MALFORMED_PAYLOAD

    def test_accepts_memoryview(self, array):
        codec = LZ4JsonCodec()
        assert codec.decode(memoryview(codec.encode(array))) == array


class TestCodecRegistry:
    """Tests for version dispatch."""

    def test_default_versions(self):
        assert default_registry().versions == [1, 2]

    def test_dispatch(self, array):
        codecs = default_registry()
        v1 = codecs.encode(array, 1).unwrap()
        v2 = codecs.encode(array, 2).unwrap()
        assert v1 != v2
        assert codecs.decode(v1, 1).unwrap() == array
        assert codecs.decode(v2, 2).unwrap() == array

    def test_version_mismatch_is_error(self, array):
        codecs = default_registry()
        v1 = codecs.encode(array, 1).unwrap()
        assert codecs.decode(v1, 2).is_err()

    def test_unsupported_version(self, array):
        codecs = CodecRegistry([JsonCodec()])
        assert not codecs.supports(2)
        result = codecs.encode(array, 2)
        assert result.is_err()
        assert result.error.code == ErrorCode.ENCODING_UNSUPPORTED_VERSION
        assert codecs.decode(b"[]", 9).error.code == ErrorCode.ENCODING_UNSUPPORTED_VERSION

    def test_errors_become_values(self):
        result = default_registry().decode(b"garbage", 1)
        assert result.is_err()
        assert isinstance(result.error, EncodingError)
