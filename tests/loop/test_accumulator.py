"""Tests for chunkloop.loop.accumulator — incremental, ordered reduction."""

import itertools
import operator

import pytest

from chunkloop.core.errors import AccumulatorError, InvalidLoopError
from chunkloop.loop.accumulator import COMBINERS, Accumulator, resolve_combine
from chunkloop.loop.spec import LoopSpec

VALUES = ["a", "b", "c", "d", "e"]
CHUNKS = [(range(0, 2), ["a", "b"]), (range(2, 4), ["c", "d"]), (range(4, 5), ["e"])]


def fold_in_order(acc, order):
    for position in order:
        indices, values = CHUNKS[position]
        acc.fold(values, indices)
    return acc.result()


class TestCollect:
    """Tests for the default collect policy."""

    @pytest.mark.parametrize("order", list(itertools.permutations(range(3))))
    def test_any_completion_order_gives_iteration_order(self, order):
        assert fold_in_order(Accumulator(5), order) == VALUES

    def test_named_list_is_collect(self):
        assert fold_in_order(Accumulator(5, combine="list"), (2, 0, 1)) == VALUES

    def test_empty_loop(self):
        assert Accumulator(0).result() == []

    def test_final(self):
        acc = Accumulator(5, final=len)
        assert fold_in_order(acc, (1, 2, 0)) == 5


class TestCombine:
    """Tests for pairwise and multi-argument combine."""

    @pytest.mark.parametrize("order", list(itertools.permutations(range(3))))
    def test_order_sensitive_combine_matches_sequential(self, order):
        acc = Accumulator(5, combine=operator.add, init="")
        assert fold_in_order(acc, order) == "abcde"

    def test_without_init_starts_from_first_result(self):
        acc = Accumulator(5, combine=operator.add)
        assert fold_in_order(acc, (2, 1, 0)) == "abcde"

    def test_init_used_for_empty_loop(self):
        assert Accumulator(0, combine="sum", init=0).result() == 0

    def test_empty_loop_without_init(self):
        assert Accumulator(0, combine="sum").result() is None

    def test_unordered_applies_in_completion_order(self):
        acc = Accumulator(5, combine=operator.add, init="", inorder=False)
        assert fold_in_order(acc, (2, 0, 1)) == "eabcd"

    def test_multicombine_batches(self):
        calls = []

        def combine(acc, *values):
            calls.append(len(values))
            return acc + "".join(values)

        acc = Accumulator(5, combine=combine, init="", multicombine=True, maxcombine=3)
        acc.fold(["a", "b", "c", "d", "e"], range(5))
        assert acc.result() == "abcde"
        assert calls == [2, 2, 1]

    def test_final_applied_after_combine(self):
        acc = Accumulator(3, combine="sum", init=0, final=lambda total: total * 10)
        acc.fold([1, 2, 3], range(3))
        assert acc.result() == 60

    def test_buffering_waits_for_gap(self):
        seen = []

        def combine(acc, value):
            seen.append(value)
            return acc + value

        acc = Accumulator(4, combine=combine, init=0)
        acc.fold([3], [3])
        acc.fold([2], [2])
        assert seen == []
        acc.fold([0, 1], [0, 1])
        assert seen == [0, 1, 2, 3]


class TestNamedCombiners:
    """Tests for the built-in combiner names."""

    @pytest.mark.parametrize(
        "name, values, expected",
        [
            ("sum", [1, 2, 3], 6),
            ("+", [1, 2, 3], 6),
            ("*", [2, 3, 4], 24),
            ("append", [[1], 2, [3, 4]], [1, 2, 3, 4]),
            ("c", [1, 2], [1, 2]),
            ("max", [3, 9, 1], 9),
            ("min", [3, 9, 1], 1),
            ("and", [True, True, False], False),
            ("or", [False, 0, True], True),
            ("dict", [{"a": 1}, {"b": 2}, {"a": 3}], {"a": 3, "b": 2}),
        ],
    )
    def test_named(self, name, values, expected):
        acc = Accumulator(len(values), combine=name)
        acc.fold(values, range(len(values)))
        assert acc.result() == expected

    def test_resolve(self):
        assert resolve_combine(None) is None
        assert resolve_combine("sum") is operator.add
        assert resolve_combine(max) is max
        assert COMBINERS["list"] is None

    def test_unknown_name(self):
        with pytest.raises(InvalidLoopError):
            resolve_combine("concat")


class TestFoldErrors:
    """Tests for inconsistent folding."""

    def test_result_before_complete(self):
        acc = Accumulator(3)
        acc.fold([1], [0])
        with pytest.raises(AccumulatorError, match="1 of 3"):
            acc.result()

    def test_index_folded_twice(self):
        acc = Accumulator(3)
        acc.fold([1], [0])
        with pytest.raises(AccumulatorError, match="twice"):
            acc.fold([1], [0])

    def test_index_out_of_range(self):
        with pytest.raises(AccumulatorError, match="outside"):
            Accumulator(2).fold([1], [5])

    def test_length_mismatch(self):
        with pytest.raises(AccumulatorError, match="2 results for 1"):
            Accumulator(2).fold([1, 2], [0])

    def test_duplicate_indices(self):
        with pytest.raises(AccumulatorError, match="duplicates"):
            Accumulator(2).fold([1, 2], [0, 0])

    def test_progress(self):
        acc = Accumulator(3)
        acc.fold([1, 2], [1, 2])
        assert acc.folded == 2
        assert not acc.complete

    def test_failed_combine_leaves_no_result(self):
        def explode(left, right):
            raise ValueError("bad combine")

        acc = Accumulator(2, combine=explode)
        with pytest.raises(ValueError, match="bad combine"):
            acc.fold([1, 2], [0, 1])
        assert acc.folded == 0
        assert not acc.complete
        with pytest.raises(AccumulatorError, match="combine failed") as exc_info:
            acc.result()
        assert isinstance(exc_info.value.cause, ValueError)

    def test_no_fold_after_failed_combine(self):
        calls = []

        def explode_once(left, right):
            calls.append(right)
            raise ValueError("bad combine")

        acc = Accumulator(3, combine=explode_once, inorder=False)
        with pytest.raises(ValueError):
            acc.fold([1, 2], [0, 1])
        with pytest.raises(AccumulatorError):
            acc.fold([3], [2])
        assert calls == [2]


def test_from_loop():
    loop = LoopSpec(iterables={"x": [1, 2]}, expr="x", combine="sum", init=100, inorder=False)
    acc = Accumulator.from_loop(loop, 2)
    acc.fold([2], [1])
    acc.fold([1], [0])
    assert acc.result() == 103
    assert acc.inorder is False
