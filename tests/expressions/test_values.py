"""
Tests for the value model helpers.
"""

import pytest

from lysine.errors import TypeMismatchError
from lysine.expressions.values import (
    UNDEFINED,
    compare_order,
    format_number,
    is_truthy,
    kind_of,
    normalize,
    stringify,
    structurally_equal,
    values_equal,
)


class TestKindsAndTruthiness:

    def test_kinds(self):
        assert kind_of(None) == "null"
        assert kind_of(True) == "bool"
        assert kind_of(1) == "number"
        assert kind_of(1.5) == "number"
        assert kind_of("s") == "string"
        assert kind_of([1]) == "array"
        assert kind_of({"a": 1}) == "object"

    @pytest.mark.parametrize("value,expected", [
        (None, False),
        (UNDEFINED, False),
        (False, False),
        (0, False),
        (0.0, False),
        ("", False),
        ([], False),
        ({}, False),
        (True, True),
        (-1, True),
        ("0", True),
        ([0], True),
        ({"a": None}, True),
    ])
    def test_truthiness(self, value, expected):
        assert is_truthy(value) is expected


class TestEquality:

    def test_structural_equality(self):
        assert structurally_equal([1, {"a": "x"}], [1, {"a": "x"}])
        assert not structurally_equal([1, 2], [2, 1])
        assert not structurally_equal(1, "1")
        assert not structurally_equal(True, 1)

    def test_int_and_float_are_the_same_kind(self):
        assert values_equal(1, 1.0)

    def test_null_compares_with_anything(self):
        assert values_equal(None, None)
        assert not values_equal(None, 0)

    def test_different_kinds_mismatch(self):
        with pytest.raises(TypeMismatchError, match="Cannot compare number with string"):
            values_equal(1, "1")

    def test_ordering(self):
        assert compare_order("<", 1, 2.5)
        assert compare_order(">=", "b", "a")
        with pytest.raises(TypeMismatchError, match="not defined for array and array"):
            compare_order("<", [1], [2])


class TestStringify:

    @pytest.mark.parametrize("value,expected", [
        (None, ""),
        (True, "true"),
        (3, "3"),
        (3.0, "3"),
        (0.5, "0.5"),
        ("s", "s"),
        ([1, "a", None], '[1,"a",null]'),
        ({"b": 1, "a": [True]}, '{"b":1,"a":[true]}'),
    ])
    def test_canonical_text(self, value, expected):
        assert stringify(value) == expected

    def test_format_number_keeps_big_ints(self):
        assert format_number(2 ** 70) == str(2 ** 70)

    def test_normalize(self):
        assert normalize({"t": (1, (2,))}) == {"t": [1, [2]]}
        with pytest.raises(TypeError):
            normalize({1, 2})
