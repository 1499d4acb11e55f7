"""
Default tester catalogue.

Testers have the signature fn(value, args) -> bool, where value is the
UNDEFINED marker when the subject lookup missed and args are positional.
"""

from __future__ import annotations

import re
from typing import Any, List

from ..errors import BuiltinError
from ..expressions.values import UNDEFINED, is_number, structurally_equal


def _check_args(name: str, args: List[Any], allowed: int) -> None:
    if len(args) > allowed:
        if allowed == 0:
            raise BuiltinError(f"tester '{name}' does not take arguments")
        raise BuiltinError(f"tester '{name}' takes at most {allowed} argument(s), got {len(args)}")


def _check_defined(name: str, value: Any) -> None:
    if value is UNDEFINED:
        raise BuiltinError(f"tester '{name}' was called on an undefined variable")


def _string(name: str, what: str, value: Any) -> str:
    if not isinstance(value, str):
        raise BuiltinError(f"tester '{name}' was called {what} that isn't a string")
    return value


def _first_arg(name: str, args: List[Any]) -> Any:
    _check_args(name, args, 1)
    if not args:
        raise BuiltinError(f"tester '{name}' requires an argument")
    return args[0]


def _number(name: str, value: Any) -> Any:
    _check_defined(name, value)
    if not is_number(value):
        raise BuiltinError(f"tester '{name}' was called on a variable that isn't a number")
    return value


def defined(value: Any, args: List[Any]) -> bool:
    _check_args("defined", args, 0)
    return value is not UNDEFINED


def undefined(value: Any, args: List[Any]) -> bool:
    _check_args("undefined", args, 0)
    return value is UNDEFINED


def string(value: Any, args: List[Any]) -> bool:
    _check_args("string", args, 0)
    _check_defined("string", value)
    return isinstance(value, str)


def number(value: Any, args: List[Any]) -> bool:
    _check_args("number", args, 0)
    _check_defined("number", value)
    return is_number(value)


def odd(value: Any, args: List[Any]) -> bool:
    _check_args("odd", args, 0)
    return _number("odd", value) % 2 != 0


def even(value: Any, args: List[Any]) -> bool:
    _check_args("even", args, 0)
    return _number("even", value) % 2 == 0


def divisible_by(value: Any, args: List[Any]) -> bool:
    divisor = _first_arg("divisibleby", args)
    subject = _number("divisibleby", value)
    if not is_number(divisor):
        raise BuiltinError("tester 'divisibleby' was called with a parameter that isn't a number")
    if divisor == 0:
        raise BuiltinError("tester 'divisibleby' was called with zero")
    return subject % divisor == 0


def iterable(value: Any, args: List[Any]) -> bool:
    _check_args("iterable", args, 0)
    _check_defined("iterable", value)
    return isinstance(value, (list, dict))


def object_(value: Any, args: List[Any]) -> bool:
    _check_args("object", args, 0)
    _check_defined("object", value)
    return isinstance(value, dict)


def starting_with(value: Any, args: List[Any]) -> bool:
    needle = _first_arg("starting_with", args)
    _check_defined("starting_with", value)
    subject = _string("starting_with", "on a variable", value)
    return subject.startswith(_string("starting_with", "with a parameter", needle))


def ending_with(value: Any, args: List[Any]) -> bool:
    needle = _first_arg("ending_with", args)
    _check_defined("ending_with", value)
    subject = _string("ending_with", "on a variable", value)
    return subject.endswith(_string("ending_with", "with a parameter", needle))


def containing(value: Any, args: List[Any]) -> bool:
    """Substring for strings, element for arrays, key for objects."""
    needle = _first_arg("containing", args)
    _check_defined("containing", value)
    if isinstance(value, str):
        return _string("containing", "with a parameter", needle) in value
    if isinstance(value, list):
        return any(structurally_equal(item, needle) for item in value)
    if isinstance(value, dict):
        return _string("containing", "with a parameter", needle) in value
    raise BuiltinError("tester 'containing' can only be used on string, array or object")


def matching(value: Any, args: List[Any]) -> bool:
    pattern = _first_arg("matching", args)
    _check_defined("matching", value)
    subject = _string("matching", "on a variable", value)
    try:
        regex = re.compile(_string("matching", "with a parameter", pattern))
    except re.error as e:
        raise BuiltinError(f"invalid regular expression: {e}") from None
    return regex.search(subject) is not None


DEFAULT_TESTERS = {
    "defined": defined,
    "undefined": undefined,
    "string": string,
    "number": number,
    "odd": odd,
    "even": even,
    "divisibleby": divisible_by,
    "iterable": iterable,
    "object": object_,
    "starting_with": starting_with,
    "ending_with": ending_with,
    "containing": containing,
    "matching": matching,
}


__all__ = ["DEFAULT_TESTERS"]
