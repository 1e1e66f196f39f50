"""Tests for chunkloop.loop.chunks — chunk planning."""

import math

import pytest

from chunkloop.core.errors import InvalidLoopError
from chunkloop.loop.chunks import chunk_ranges, count_chunks, plan_chunks, validate_chunk_size


class TestValidateChunkSize:
    """Tests for validate_chunk_size."""

    @pytest.mark.parametrize("value", [1, 3, 1000])
    def test_accepts_positive_int(self, value):
        assert validate_chunk_size(value) == value

    @pytest.mark.parametrize("value", [0, -1, 1.5, "2", None, True])
    def test_rejects(self, value):
        with pytest.raises(InvalidLoopError) as exc_info:
            validate_chunk_size(value)
        assert exc_info.value.field == "chunk_size"


class TestPlanChunks:
    """Tests for the chunk partition."""

    @pytest.mark.parametrize("total", [0, 1, 2, 5, 7, 16])
    @pytest.mark.parametrize("chunk_size", [1, 2, 3, 8, 20])
    def test_partition_covers_range_exactly_once(self, total, chunk_size):
        spans = list(chunk_ranges(total, chunk_size))
        assert len(spans) == math.ceil(total / chunk_size) == count_chunks(total, chunk_size)
        covered = [i for span in spans for i in span]
        assert covered == list(range(total))
        assert all(1 <= len(span) <= chunk_size for span in spans)

    def test_chunks_carry_their_bindings(self):
        bindings = [{"x": i} for i in range(5)]
        chunks = list(plan_chunks(bindings, 2))
        assert [(c.index, c.start, c.stop) for c in chunks] == [(0, 0, 2), (1, 2, 4), (2, 4, 5)]
        assert chunks[2].bindings == ({"x": 4},)
        assert len(chunks[1]) == 2
        assert chunks[1].indices == range(2, 4)

    def test_chunk_size_one_is_one_iteration_per_chunk(self):
        chunks = list(plan_chunks([{"x": i} for i in range(3)], 1))
        assert [len(c) for c in chunks] == [1, 1, 1]

    def test_empty(self):
        assert list(plan_chunks([], 4)) == []

    def test_lazy(self):
        planner = plan_chunks([{"x": i} for i in range(100)], 10)
        assert next(planner).stop == 10

    def test_invalid_chunk_size(self):
        with pytest.raises(InvalidLoopError):
            list(plan_chunks([{}], 0))
