"""Tests for chunkloop.core.serialization — the payload boundary."""

import pytest

from chunkloop.core.errors import PayloadError
from chunkloop.core.serialization import dumps, loads
from chunkloop.loop.scope import Closure, Scope


class TestPayloads:
    """Tests for dumps / loads."""

    def test_payload_is_bytes(self):
        assert isinstance(dumps({"a": [1, 2]}), bytes)

    def test_lambda_survives(self):
        square = loads(dumps(lambda v: v * v))
        assert square(7) == 49

    def test_closure_keeps_its_scope(self):
        env = Scope({"k": 3})
        triple = loads(dumps(Closure(("x",), "k * x", env)))
        assert triple(5) == 15
        assert triple.scope is not env

    def test_self_referencing_scope(self):
        env = Scope(name="captured")
        env["f"] = Closure(("x",), "x + 1", env, name="f")
        copy = loads(dumps(env))
        assert copy["f"].scope is copy
        assert copy["f"](1) == 2

    def test_unserializable_raises_payload_error(self):
        with pytest.raises(PayloadError, match="cannot serialize"):
            dumps(i for i in range(3))

    def test_empty_payload(self):
        with pytest.raises(PayloadError, match="empty payload"):
            loads(b"")

    def test_garbage_payload(self):
        with pytest.raises(PayloadError, match="cannot deserialize"):
            loads(b"\x00not a pickle")
