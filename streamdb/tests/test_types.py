"""
Unit Tests: Core Types

Tests:
    - Result variants
    - StreamKey validation and ordering
    - Datapoint record conversion
    - DatapointArray trimming and slicing
    - Batch index arithmetic
"""

import pytest

from streamdb.core.errors import QueryError
from streamdb.core.types import (
    Batch,
    Datapoint,
    DatapointArray,
    Err,
    Ok,
    StreamKey,
    Timestamp,
)


class TestResult:
    """Tests for Ok / Err."""

    def test_ok(self):
        result = Ok(5)
        assert result.is_ok()
        assert not result.is_err()
        assert result.unwrap() == 5
        assert result.map(lambda v: v * 2).unwrap() == 10

    def test_err_unwrap_raises_wrapped_exception(self):
        error = QueryError.range_closed()
        result = Err(error)
        assert result.is_err()
        with pytest.raises(QueryError):
            result.unwrap()

    def test_err_unwrap_non_exception(self):
        with pytest.raises(RuntimeError):
            Err("boom").unwrap()

    def test_err_passthrough(self):
        result = Err("boom")
        assert result.map(lambda v: v + 1) is result
        assert result.unwrap_or(3) == 3


class TestTimestamp:
    """Tests for Timestamp."""

    def test_subtract(self):
        assert Timestamp(300) - Timestamp(100) == 200

    def test_now_is_ordered(self):
        first = Timestamp.now()
        assert Timestamp.now() >= first


class TestStreamKey:
    """Tests for StreamKey."""

    def test_default_substream(self):
        key = StreamKey(7)
        assert key.substream == ""
        assert str(key) == "7"

    def test_named_substream(self):
        assert str(StreamKey(7, "downlink")) == "7/downlink"

    def test_hash_equality(self):
        assert StreamKey(1, "a") == StreamKey(1, "a")
        assert hash(StreamKey(1, "a")) == hash(StreamKey(1, "a"))
        assert StreamKey(1, "a") != StreamKey(1, "b")

    def test_ordering(self):
        keys = sorted([StreamKey(2), StreamKey(1, "b"), StreamKey(1, "a")])
        assert keys == [StreamKey(1, "a"), StreamKey(1, "b"), StreamKey(2)]

    def test_rejects_bad_types(self):
        with pytest.raises(TypeError):
            StreamKey("1")
        with pytest.raises(TypeError):
            StreamKey(True)
        with pytest.raises(TypeError):
            StreamKey(1, None)


class TestDatapoint:
    """Tests for Datapoint records."""

    def test_record_omits_empty_sender(self):
        assert Datapoint(1.0, 3).to_record() == {"t": 1.0, "d": 3}

    def test_record_with_sender(self):
        dp = Datapoint(1.0, {"x": 1}, sender="dev-1")
        assert Datapoint.from_record(dp.to_record()) == dp


class TestDatapointArray:
    """Tests for DatapointArray."""

    @pytest.fixture
    def array(self):
        return DatapointArray.from_pairs([(1.0, "a"), (2.0, "b"), (2.0, "c"), (5.0, "d")])

    def test_sequence_protocol(self, array):
        assert len(array) == 4
        assert array[0].data == "a"
        assert [dp.data for dp in array] == ["a", "b", "c", "d"]

    def test_slice_returns_array(self, array):
        part = array[1:3]
        assert isinstance(part, DatapointArray)
        assert [dp.data for dp in part] == ["b", "c"]

    def test_times(self, array):
        assert array.start_time == 1.0
        assert array.end_time == 5.0
        assert array.timestamps == [1.0, 2.0, 2.0, 5.0]

    def test_t_start_inclusive(self, array):
        trimmed = array.t_start(2.0)
        assert [dp.data for dp in trimmed] == ["b", "c", "d"]

    def test_t_start_between(self, array):
        assert [dp.data for dp in array.t_start(3.0)] == ["d"]

    def test_t_start_bounds(self, array):
        assert array.t_start(0.0) == array
        assert len(array.t_start(6.0)) == 0

    def test_tail(self, array):
        assert [dp.data for dp in array.tail(2)] == ["c", "d"]
        assert array.tail(10) == array
        assert len(array.tail(0)) == 0
        assert len(array.tail(-1)) == 0

    def test_i_range(self, array):
        assert [dp.data for dp in array.i_range(1, 2)] == ["b"]

    def test_records_round_trip(self, array):
        assert DatapointArray.from_records(array.to_records()) == array

    def test_empty_has_no_end_time(self):
        with pytest.raises(IndexError):
            DatapointArray().end_time


class TestBatch:
    """Tests for Batch."""

    def test_end_index(self):
        batch = Batch(StreamKey(1), 10, DatapointArray.from_pairs([(1.0, 1), (2.0, 2)]))
        assert batch.end_index == 12

    def test_empty_default(self):
        assert Batch(StreamKey(1), 3).end_index == 3
