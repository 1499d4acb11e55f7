"""
Value model of the template language.

Values are plain Python data mirroring JSON: None, bool, int, float,
str, list and dict. These helpers define kinds, truthiness, structural
equality, ordering and the canonical text form used for output.
"""

from __future__ import annotations

import json
from typing import Any, Mapping

from ..errors import TypeMismatchError

NULL = "null"
BOOL = "bool"
NUMBER = "number"
STRING = "string"
ARRAY = "array"
OBJECT = "object"


class _Undefined:
    """
    Marker for a lookup that missed.

    Only the default filter and the defined/undefined testers ever see it;
    everywhere else a miss is an UndefinedVariableError.
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()


def kind_of(value: Any) -> str:
    """Returns the value kind name used in error messages and type checks."""
    if value is None:
        return NULL
    if isinstance(value, bool):
        return BOOL
    if isinstance(value, (int, float)):
        return NUMBER
    if isinstance(value, str):
        return STRING
    if isinstance(value, (list, tuple)):
        return ARRAY
    if isinstance(value, Mapping):
        return OBJECT
    raise TypeError(f"Unsupported template value of type {type(value).__name__}")


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_truthy(value: Any) -> bool:
    """Empty strings, arrays and objects, zero, false and null are falsy."""
    if value is None or value is UNDEFINED:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0
    if isinstance(value, (str, list, tuple, Mapping)):
        return len(value) > 0
    return True


def structurally_equal(left: Any, right: Any) -> bool:
    """
    Deep equality; values of different kinds are simply not equal.

    Used for array membership and nested comparisons.
    """
    left_kind, right_kind = kind_of(left), kind_of(right)
    if left_kind != right_kind:
        return False
    if left_kind == ARRAY:
        return len(left) == len(right) and all(
            structurally_equal(a, b) for a, b in zip(left, right)
        )
    if left_kind == OBJECT:
        return left.keys() == right.keys() and all(
            structurally_equal(left[k], right[k]) for k in left
        )
    return left == right


def values_equal(left: Any, right: Any) -> bool:
    """
    Equality for == and !=.

    Null compares to anything (equal only to null); any other pair of
    different kinds is a type mismatch.
    """
    left_kind, right_kind = kind_of(left), kind_of(right)
    if left_kind != right_kind and NULL not in (left_kind, right_kind):
        raise TypeMismatchError(f"Cannot compare {left_kind} with {right_kind}")
    return structurally_equal(left, right)


def compare_order(operator: str, left: Any, right: Any) -> bool:
    """
    Ordering for < <= > >=; defined for number/number and string/string.
    """
    left_kind, right_kind = kind_of(left), kind_of(right)
    if left_kind != right_kind or left_kind not in (NUMBER, STRING):
        raise TypeMismatchError(
            f"Operator '{operator}' is not defined for {left_kind} and {right_kind}"
        )
    if operator == "<":
        return left < right
    if operator == "<=":
        return left <= right
    if operator == ">":
        return left > right
    if operator == ">=":
        return left >= right
    raise ValueError(f"Unknown ordering operator: {operator}")


def format_number(value: Any) -> str:
    """Minimal decimal form: integral floats drop their fractional part."""
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def stringify(value: Any) -> str:
    """
    Canonical Value-to-text conversion for output.

    Composite values use compact JSON, which is deterministic because
    object key order is preserved.
    """
    if value is None or value is UNDEFINED:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return format_number(value)
    if isinstance(value, str):
        return value
    return to_json(value)


def to_json(value: Any, pretty: bool = False) -> str:
    if pretty:
        return json.dumps(value, ensure_ascii=False, indent=2)
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def normalize(value: Any) -> Any:
    """
    Converts caller data into the value model.

    Tuples become lists and mappings become plain dicts; anything else that
    has no JSON counterpart is rejected up front rather than mid-render.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (list, tuple)):
        return [normalize(v) for v in value]
    if isinstance(value, Mapping):
        return {str(k): normalize(v) for k, v in value.items()}
    raise TypeError(f"Unsupported template value of type {type(value).__name__}")


__all__ = [
    "UNDEFINED",
    "NULL",
    "BOOL",
    "NUMBER",
    "STRING",
    "ARRAY",
    "OBJECT",
    "kind_of",
    "is_number",
    "is_truthy",
    "structurally_equal",
    "values_equal",
    "compare_order",
    "format_number",
    "stringify",
    "to_json",
    "normalize",
]
