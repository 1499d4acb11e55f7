import datetime as dt

import pytest

from lysine.builtins.functions import DEFAULT_FUNCTIONS
from lysine.errors import BuiltinError


def call(name, /, **kwargs):
    return DEFAULT_FUNCTIONS[name](kwargs)


class TestRange:

    def test_defaults(self):
        assert list(call("range", end=4)) == [0, 1, 2, 3]

    def test_start_and_step(self):
        assert list(call("range", start=2, end=9, step_by=3)) == [2, 5, 8]

    def test_integral_floats_accepted(self):
        assert list(call("range", end=2.0)) == [0, 1]

    def test_result_is_lazy(self):
        assert len(call("range", end=10 ** 12)) == 10 ** 12

    @pytest.mark.parametrize("kwargs,message", [
        ({}, "without a 'end' argument"),
        ({"end": 1.5}, "can only be an integer"),
        ({"end": 3, "step_by": 0}, "positive 'step_by'"),
        ({"start": 5, "end": 1}, "'start' greater than 'end'"),
    ])
    def test_invalid(self, kwargs, message):
        with pytest.raises(BuiltinError, match=message):
            call("range", **kwargs)


def test_now():
    stamp = call("now", timestamp=True, utc=True)
    assert isinstance(stamp, int)

    text = call("now", utc=True)
    assert dt.datetime.fromisoformat(text).tzinfo is not None


def test_throw():
    with pytest.raises(BuiltinError, match="boom"):
        call("throw", message="boom")


def test_get_env(monkeypatch):
    monkeypatch.setenv("LYSINE_TEST_VAR", "on")
    monkeypatch.delenv("LYSINE_TEST_MISSING", raising=False)

    assert call("get_env", name="LYSINE_TEST_VAR") == "on"
    assert call("get_env", name="LYSINE_TEST_MISSING", default="off") == "off"
    with pytest.raises(BuiltinError, match="not found"):
        call("get_env", name="LYSINE_TEST_MISSING")


def test_random_helpers():
    assert call("pick_random", array=[7]) == 7
    assert 3 <= call("random_int", start=3, end=5) < 5
    with pytest.raises(BuiltinError, match="empty array"):
        call("pick_random", array=[])


def test_hex_to_rgb():
    assert call("hex_to_rgb", hex="#ff8000") == {"r": 255, "g": 128, "b": 0, "a": 1.0}
    assert call("hex_to_rgb", hex="0f0") == {"r": 0, "g": 255, "b": 0, "a": 1.0}
    assert call("hex_to_rgb", hex="#00000000")["a"] == 0.0
    with pytest.raises(BuiltinError, match="is not a hex color"):
        call("hex_to_rgb", hex="#12")
