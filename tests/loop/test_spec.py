"""Tests for chunkloop.loop.spec and chunkloop.loop.bindings."""

import pytest

from chunkloop.core.errors import InvalidLoopError
from chunkloop.core.serialization import dumps, loads
from chunkloop.loop.bindings import enumerate_bindings, iter_bindings
from chunkloop.loop.spec import MISSING, LoopSpec


class TestLoopSpec:
    """Tests for LoopSpec validation and normalization."""

    def test_minimal(self):
        loop = LoopSpec(iterables={"x": [1, 2]}, expr="x + 1")
        assert loop.argnames == ("x",)
        assert loop.combine is None
        assert loop.init is MISSING
        assert loop.inorder is True
        assert loop.maxcombine == 100

    def test_argnames_keep_declaration_order(self):
        loop = LoopSpec(iterables={"b": [1], "a": [2]}, expr="a + b")
        assert loop.argnames == ("b", "a")

    def test_string_overrides_become_tuples(self):
        loop = LoopSpec(iterables={"x": [1]}, expr="x", export="helper", noexport=["big"], packages="json")
        assert loop.export == ("helper",)
        assert loop.noexport == ("big",)
        assert loop.packages == ("json",)

    def test_frozen(self):
        loop = LoopSpec(iterables={"x": [1]}, expr="x")
        with pytest.raises(AttributeError):
            loop.expr = "y"

    @pytest.mark.parametrize(
        "kwargs, field",
        [
            ({"iterables": {}, "expr": "1"}, "iterables"),
            ({"iterables": [("x", [1])], "expr": "x"}, "iterables"),
            ({"iterables": {"not valid": [1]}, "expr": "1"}, "iterables"),
            ({"iterables": {"x": [1]}, "expr": "x +"}, "expr"),
            ({"iterables": {"x": [1]}, "expr": "x", "combine": "concat"}, "combine"),
            ({"iterables": {"x": [1]}, "expr": "x", "combine": 3}, "combine"),
            ({"iterables": {"x": [1]}, "expr": "x", "final": "len"}, "final"),
            ({"iterables": {"x": [1]}, "expr": "x", "maxcombine": 1}, "maxcombine"),
        ],
    )
    def test_invalid(self, kwargs, field):
        with pytest.raises(InvalidLoopError) as exc_info:
            LoopSpec(**kwargs)
        assert exc_info.value.field == field

    def test_missing_sentinel_survives_serialization(self):
        assert loads(dumps(MISSING)) is MISSING
        assert repr(MISSING) == "MISSING"


class TestBindings:
    """Tests for binding enumeration."""

    def test_lock_step(self):
        bindings = enumerate_bindings({"x": [1, 2, 3], "y": "abc"})
        assert bindings == [{"x": 1, "y": "a"}, {"x": 2, "y": "b"}, {"x": 3, "y": "c"}]

    def test_stops_at_shortest_source(self):
        assert len(enumerate_bindings({"x": range(10), "y": [0, 1]})) == 2

    def test_empty_source(self):
        assert enumerate_bindings({"x": []}) == []

    def test_generators_are_consumed_once(self):
        source = (i * i for i in range(3))
        assert [b["x"] for b in iter_bindings({"x": source})] == [0, 1, 4]

    def test_non_iterable_source(self):
        with pytest.raises(InvalidLoopError, match="iterable"):
            enumerate_bindings({"x": 5})
