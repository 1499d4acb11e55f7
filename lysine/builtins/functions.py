"""
Default global functions.

Functions have the signature fn(args) with keyword arguments only.
"""

from __future__ import annotations

import datetime as dt
import os
import random
import re
from typing import Any, Dict

from ..errors import BuiltinError
from ..expressions.values import is_number

Args = Dict[str, Any]

_HEX_COLOR_RE = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


def _int_arg(name: str, args: Args, key: str, default: Any = None) -> int:
    if key not in args:
        if default is None:
            raise BuiltinError(f"function '{name}' was called without a '{key}' argument")
        return default
    value = args[key]
    if not is_number(value) or (isinstance(value, float) and not value.is_integer()):
        raise BuiltinError(f"function '{name}' received {key}={value!r} but '{key}' can only be an integer")
    return int(value)


def _bool_arg(name: str, args: Args, key: str) -> bool:
    value = args.get(key, False)
    if not isinstance(value, bool):
        raise BuiltinError(f"function '{name}' received {key}={value!r} but '{key}' can only be a boolean")
    return value


def _string_arg(name: str, args: Args, key: str) -> str:
    if key not in args:
        raise BuiltinError(f"function '{name}' was called without a '{key}' argument")
    value = args[key]
    if not isinstance(value, str):
        raise BuiltinError(f"function '{name}' received {key}={value!r} but '{key}' can only be a string")
    return value


def range_(args: Args) -> range:
    """
    Integers from `start` (0) up to `end` (exclusive) by `step_by` (1).

    The result stays lazy; the evaluator charges its length to the render
    budget before building the list.
    """
    start = _int_arg("range", args, "start", 0)
    end = _int_arg("range", args, "end")
    step_by = _int_arg("range", args, "step_by", 1)
    if step_by <= 0:
        raise BuiltinError("function 'range' requires a positive 'step_by'")
    if start > end:
        raise BuiltinError("function 'range' was called with 'start' greater than 'end'")
    return range(start, end, step_by)


def now(args: Args) -> Any:
    """Current time as RFC 3339 text, or a unix timestamp with timestamp=true."""
    utc = _bool_arg("now", args, "utc")
    timestamp = _bool_arg("now", args, "timestamp")
    moment = dt.datetime.now(dt.timezone.utc) if utc else dt.datetime.now().astimezone()
    if timestamp:
        return int(moment.timestamp())
    return moment.isoformat()


def throw(args: Args) -> Any:
    raise BuiltinError(_string_arg("throw", args, "message"))


def get_env(args: Args) -> Any:
    name = _string_arg("get_env", args, "name")
    if name in os.environ:
        return os.environ[name]
    if "default" in args:
        return args["default"]
    raise BuiltinError(f"environment variable '{name}' not found")


def pick_random(args: Args) -> Any:
    items = args.get("array")
    if "array" not in args:
        raise BuiltinError("function 'pick_random' was called without an 'array' argument")
    if not isinstance(items, list):
        raise BuiltinError("function 'pick_random' can only pick from an array")
    if not items:
        raise BuiltinError("function 'pick_random' was called with an empty array")
    return random.choice(items)


def random_int(args: Args) -> int:
    """Random integer in [start, end)."""
    start = _int_arg("random_int", args, "start", 0)
    end = _int_arg("random_int", args, "end")
    if start >= end:
        raise BuiltinError("function 'random_int' needs 'start' lower than 'end'")
    return random.randrange(start, end)


def hex_to_rgb(args: Args) -> Dict[str, Any]:
    """
    Parses #rgb, #rrggbb or #rrggbbaa into {"r", "g", "b", "a"}.

    Alpha is a float in [0, 1], 1.0 when the color has no alpha channel.
    """
    text = _string_arg("hex_to_rgb", args, "hex")
    m = _HEX_COLOR_RE.match(text.strip())
    if not m:
        raise BuiltinError(f"'{text}' is not a hex color")

    digits = m.group(1)
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    alpha = int(digits[6:8], 16) / 255 if len(digits) == 8 else 1.0
    return {
        "r": int(digits[0:2], 16),
        "g": int(digits[2:4], 16),
        "b": int(digits[4:6], 16),
        "a": alpha,
    }


DEFAULT_FUNCTIONS = {
    "range": range_,
    "now": now,
    "throw": throw,
    "get_env": get_env,
    "pick_random": pick_random,
    "random_int": random_int,
    "hex_to_rgb": hex_to_rgb,
}


__all__ = ["DEFAULT_FUNCTIONS"]
