"""
Default filter catalogue.

Every filter has the signature fn(value, args) where args is the dict of
evaluated keyword arguments. Bad input is reported with BuiltinError; the
renderer attaches the filter name.
"""

from __future__ import annotations

import datetime as dt
import math
import re
import unicodedata
from typing import Any, Dict, List, Optional
from urllib.parse import quote
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..errors import BuiltinError
from ..expressions.values import (
    ARRAY,
    NULL,
    NUMBER,
    OBJECT,
    STRING,
    UNDEFINED,
    is_number,
    kind_of,
    structurally_equal,
    stringify,
    to_json,
)

Args = Dict[str, Any]

_STRIPTAGS_RE = re.compile(r"(<!--.*?-->|<[^>]*>)", re.DOTALL)
_WORDS_RE = re.compile(r"\b([\w'])([\w']*)\b")
_SPACELESS_RE = re.compile(r">\s+<")
_SLUG_WS = re.compile(r"\s+")
_SLUG_KEEP = re.compile(r"[^a-z0-9\-]+")

# Characters urlencode leaves untouched
_URL_SAFE = "/"

_HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
    "/": "&#x2F;",
}

_XML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&apos;",
}


# ----------------------------- argument helpers ----------------------------- #

def _expect(value: Any, kind: str, what: str) -> Any:
    if value is UNDEFINED or kind_of(value) != kind:
        got = "undefined" if value is UNDEFINED else kind_of(value)
        raise BuiltinError(f"expected {what} to be {kind}, got {got}")
    return value


def _required(args: Args, key: str, kind: Optional[str] = None) -> Any:
    if key not in args:
        raise BuiltinError(f"expected an argument called '{key}'")
    value = args[key]
    return _expect(value, kind, f"argument '{key}'") if kind else value


def _optional(args: Args, key: str, default: Any, kind: Optional[str] = None) -> Any:
    if key not in args:
        return default
    value = args[key]
    return _expect(value, kind, f"argument '{key}'") if kind else value


def _int_arg(args: Args, key: str, default: Optional[int] = None) -> int:
    value = _required(args, key, NUMBER) if default is None else _optional(args, key, default, NUMBER)
    if isinstance(value, float) and not value.is_integer():
        raise BuiltinError(f"expected argument '{key}' to be an integer, got {value}")
    return int(value)


def _bool_arg(args: Args, key: str, default: bool) -> bool:
    value = _optional(args, key, default)
    if not isinstance(value, bool):
        raise BuiltinError(f"expected argument '{key}' to be bool, got {kind_of(value)}")
    return value


def _unescape_pattern(pattern: str) -> str:
    # Patterns read from files arrive with literal backslash sequences
    return pattern.replace("\\n", "\n").replace("\\t", "\t")


def dotted_get(value: Any, path: str) -> Any:
    """Follows a dotted attribute path ("" is the value itself); UNDEFINED on a miss."""
    if not path:
        return value
    current = value
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return UNDEFINED
    return current


def escape_html(text: str) -> str:
    """HTML-escapes the OWASP set: & < > " ' /"""
    return "".join(_HTML_ESCAPES.get(c, c) for c in text)


# ----------------------------- string filters ----------------------------- #

def upper(value: Any, args: Args) -> str:
    return _expect(value, STRING, "value").upper()


def lower(value: Any, args: Args) -> str:
    return _expect(value, STRING, "value").lower()


def trim(value: Any, args: Args) -> str:
    return _expect(value, STRING, "value").strip()


def trim_start(value: Any, args: Args) -> str:
    return _expect(value, STRING, "value").lstrip()


def trim_end(value: Any, args: Args) -> str:
    return _expect(value, STRING, "value").rstrip()


def trim_start_matches(value: Any, args: Args) -> str:
    """Removes every leading repetition of `pat`."""
    text = _expect(value, STRING, "value")
    pattern = _unescape_pattern(_required(args, "pat", STRING))
    if pattern:
        while text.startswith(pattern):
            text = text[len(pattern):]
    return text


def trim_end_matches(value: Any, args: Args) -> str:
    """Removes every trailing repetition of `pat`."""
    text = _expect(value, STRING, "value")
    pattern = _unescape_pattern(_required(args, "pat", STRING))
    if pattern:
        while text.endswith(pattern):
            text = text[:-len(pattern)]
    return text


def truncate(value: Any, args: Args) -> str:
    """
    Cuts the string to `length` characters and appends `end`.

    The result can be longer than `length`: `end` is added after cutting.
    """
    text = _expect(value, STRING, "value")
    length = _int_arg(args, "length", 255)
    end = _optional(args, "end", "…", STRING)
    if length >= len(text):
        return text
    return text[:length] + end


def wordcount(value: Any, args: Args) -> int:
    return len(_expect(value, STRING, "value").split())


def replace(value: Any, args: Args) -> str:
    text = _expect(value, STRING, "value")
    return text.replace(_required(args, "from", STRING), _required(args, "to", STRING))


def capitalize(value: Any, args: Args) -> str:
    text = _expect(value, STRING, "value")
    return text[:1].upper() + text[1:].lower()


def title(value: Any, args: Args) -> str:
    text = _expect(value, STRING, "value")
    return _WORDS_RE.sub(lambda m: m.group(1).upper() + m.group(2).lower(), text)


def linebreaksbr(value: Any, args: Args) -> str:
    return _expect(value, STRING, "value").replace("\r\n", "<br>").replace("\n", "<br>")


def indent(value: Any, args: Args) -> str:
    """
    Indents every line after the first with `prefix`.

    Args (template keyword arguments):
        prefix: Indentation string, four spaces by default
        first: Also indent the first line
        blank: Also indent blank lines
    """
    text = _expect(value, STRING, "value")
    prefix = _optional(args, "prefix", "    ", STRING)
    first = _bool_arg(args, "first", False)
    blank = _bool_arg(args, "blank", False)

    out: List[str] = []
    for i, line in enumerate(text.splitlines()):
        if i == 0:
            out.append(prefix + line if first else line)
        elif blank or line.strip():
            out.append(prefix + line)
        else:
            out.append(line)
    return "\n".join(out)


def striptags(value: Any, args: Args) -> str:
    return _STRIPTAGS_RE.sub("", _expect(value, STRING, "value"))


def spaceless(value: Any, args: Args) -> str:
    return _SPACELESS_RE.sub("><", _expect(value, STRING, "value"))


def urlencode(value: Any, args: Args) -> str:
    return quote(_expect(value, STRING, "value"), safe=_URL_SAFE)


def urlencode_strict(value: Any, args: Args) -> str:
    text = _expect(value, STRING, "value")
    return "".join(c if c.isascii() and c.isalnum() else quote(c, safe="") for c in text)


def escape(value: Any, args: Args) -> str:
    return escape_html(_expect(value, STRING, "value"))


def escape_xml(value: Any, args: Args) -> str:
    return "".join(_XML_ESCAPES.get(c, c) for c in _expect(value, STRING, "value"))


def slugify(value: Any, args: Args) -> str:
    """
    Lowercase ASCII slug: NFKD normalization, whitespace to '-',
    punctuation dropped, repeated '-' collapsed and trimmed.
    """
    text = unicodedata.normalize("NFKD", _expect(value, STRING, "value"))
    text = text.encode("ascii", "ignore").decode("ascii").lower()
    text = _SLUG_WS.sub("-", text.strip())
    text = _SLUG_KEEP.sub("", text)
    return re.sub(r"-{2,}", "-", text).strip("-")


def addslashes(value: Any, args: Args) -> str:
    text = _expect(value, STRING, "value")
    return text.replace("\\", "\\\\").replace('"', '\\"').replace("'", "\\'")


def split(value: Any, args: Args) -> List[str]:
    text = _expect(value, STRING, "value")
    pattern = _unescape_pattern(_required(args, "pat", STRING))
    if not pattern:
        raise BuiltinError("argument 'pat' cannot be empty")
    return text.split(pattern)


def to_int(value: Any, args: Args) -> int:
    """
    Converts a string or number to int; unparseable input yields `default`.

    Strings may carry a 0b/0o/0x prefix matching `base`.
    """
    default = _int_arg(args, "default", 0)
    base = _int_arg(args, "base", 10)

    if isinstance(value, bool):
        raise BuiltinError("expected value to be string or number, got bool")
    if is_number(value):
        return int(value)
    if not isinstance(value, str):
        raise BuiltinError("expected value to be string or number")

    text = value.strip()
    prefix = {2: "0b", 8: "0o", 16: "0x"}.get(base)
    if prefix and text.lower().startswith(prefix):
        text = text[2:]
    try:
        return int(text, base)
    except ValueError:
        pass
    if "." in text:
        try:
            return int(float(text))
        except ValueError:
            return default
    return default


def to_float(value: Any, args: Args) -> float:
    default = _optional(args, "default", 0.0, NUMBER)
    if isinstance(value, bool):
        raise BuiltinError("expected value to be string or number, got bool")
    if is_number(value):
        return float(value)
    if not isinstance(value, str):
        raise BuiltinError("expected value to be string or number")
    try:
        return float(value.strip())
    except ValueError:
        return float(default)


# ----------------------------- array filters ----------------------------- #

def first(value: Any, args: Args) -> Any:
    items = _expect(value, ARRAY, "value")
    return items[0] if items else ""


def last(value: Any, args: Args) -> Any:
    items = _expect(value, ARRAY, "value")
    return items[-1] if items else ""


def nth(value: Any, args: Args) -> Any:
    items = _expect(value, ARRAY, "value")
    if not items:
        return ""
    index = _int_arg(args, "n")
    return items[index] if 0 <= index < len(items) else ""


def join(value: Any, args: Args) -> str:
    items = _expect(value, ARRAY, "value")
    separator = _unescape_pattern(_optional(args, "sep", "", STRING))
    return separator.join(stringify(item) for item in items)


def _attribute_key(item: Any, attribute: str) -> Any:
    key = dotted_get(item, attribute)
    if key is UNDEFINED:
        raise BuiltinError(f"attribute '{attribute}' does not reference a field")
    return key


def sort(value: Any, args: Args) -> List[Any]:
    """Ascending sort; every key must be of the same orderable kind."""
    items = _expect(value, ARRAY, "value")
    if not items:
        return []
    attribute = _optional(args, "attribute", "", STRING)
    keys = [_attribute_key(item, attribute) for item in items]

    kinds = {kind_of(k) for k in keys}
    if len(kinds) != 1:
        raise BuiltinError("cannot sort values of different kinds")
    kind = kinds.pop()
    if kind in (NULL, OBJECT):
        raise BuiltinError(f"cannot sort {kind} values")
    if kind == ARRAY:
        keys = [len(k) for k in keys]

    order = sorted(range(len(items)), key=lambda i: keys[i])
    return [items[i] for i in order]


def unique(value: Any, args: Args) -> List[Any]:
    """
    Drops duplicates, keeping first occurrences.

    String keys compare case-insensitively unless case_sensitive=true.
    """
    items = _expect(value, ARRAY, "value")
    if not items:
        return []
    attribute = _optional(args, "attribute", "", STRING)
    case_sensitive = _bool_arg(args, "case_sensitive", False)

    first_key = _attribute_key(items[0], attribute)
    expected_kind = kind_of(first_key)
    if expected_kind in (ARRAY, OBJECT):
        raise BuiltinError(f"cannot deduplicate {expected_kind} values")

    seen = set()
    result = []
    for item in items:
        key = dotted_get(item, attribute)
        if key is UNDEFINED:
            continue
        if kind_of(key) != expected_kind:
            raise BuiltinError("cannot compare values of different kinds")
        if isinstance(key, str) and not case_sensitive:
            key = key.lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(item)
    return result


def slice_(value: Any, args: Args) -> List[Any]:
    """Negative `start`/`end` count from the end."""
    items = _expect(value, ARRAY, "value")
    start = _int_arg(args, "start", 0)
    end = _int_arg(args, "end", len(items))
    if start < 0:
        start = max(len(items) + start, 0)
    if end < 0:
        end = max(len(items) + end, 0)
    if start >= end:
        return []
    return items[start:end]


def group_by(value: Any, args: Args) -> Dict[str, List[Any]]:
    """
    Groups items by a (dotted) attribute; keys are stringified.

    Items whose attribute is missing or null are left out.
    """
    items = _expect(value, ARRAY, "value")
    attribute = _required(args, "attribute", STRING)

    groups: Dict[str, List[Any]] = {}
    for item in items:
        key = dotted_get(item, attribute)
        if key is UNDEFINED or key is None:
            continue
        groups.setdefault(stringify(key), []).append(item)
    return groups


def filter_(value: Any, args: Args) -> List[Any]:
    """Keeps items whose attribute equals `value` (null when omitted)."""
    items = _expect(value, ARRAY, "value")
    attribute = _required(args, "attribute", STRING)
    expected = args.get("value")
    result = []
    for item in items:
        key = dotted_get(item, attribute)
        if key is not UNDEFINED and structurally_equal(key, expected):
            result.append(item)
    return result


def map_(value: Any, args: Args) -> List[Any]:
    items = _expect(value, ARRAY, "value")
    attribute = _required(args, "attribute", STRING)
    result = []
    for item in items:
        key = dotted_get(item, attribute)
        if key is not UNDEFINED and key is not None:
            result.append(key)
    return result


def concat(value: Any, args: Args) -> List[Any]:
    items = list(_expect(value, ARRAY, "value"))
    other = _required(args, "with")
    if isinstance(other, list):
        items.extend(other)
    else:
        items.append(other)
    return items


# ----------------------------- number filters ----------------------------- #

def abs_(value: Any, args: Args) -> Any:
    return abs(_expect(value, NUMBER, "value"))


def pluralize(value: Any, args: Args) -> str:
    number = _expect(value, NUMBER, "value")
    singular = _optional(args, "singular", "", STRING)
    plural = _optional(args, "plural", "s", STRING)
    return singular if abs(number) == 1 else plural


def round_(value: Any, args: Args) -> float:
    """method: common (half away from zero), ceil or floor"""
    number = float(_expect(value, NUMBER, "value"))
    method = _optional(args, "method", "common", STRING)
    precision = _int_arg(args, "precision", 0)
    multiplier = 10.0 ** precision

    scaled = number * multiplier
    if method == "common":
        rounded = math.floor(abs(scaled) + 0.5) * (1 if scaled >= 0 else -1)
    elif method == "ceil":
        rounded = math.ceil(scaled)
    elif method == "floor":
        rounded = math.floor(scaled)
    else:
        raise BuiltinError(
            f"incorrect value for argument 'method': {method!r}, only common, ceil and floor are allowed"
        )
    return rounded / multiplier


_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB", "PB", "EB")
_BINARY_UNITS = ("B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB")


def filesizeformat(value: Any, args: Args) -> str:
    """Human readable size, e.g. 1.50 MB; binary=true uses KiB units."""
    size = _expect(value, NUMBER, "value")
    if size < 0:
        raise BuiltinError("expected value to be a non-negative number")
    binary = _bool_arg(args, "binary", False)
    units = _BINARY_UNITS if binary else _SIZE_UNITS

    amount = float(size)
    unit = 0
    while amount >= 1024 and unit < len(units) - 1:
        amount /= 1024
        unit += 1
    if unit == 0:
        return f"{int(amount)} {units[0]}"
    return f"{amount:.2f} {units[unit]}"


# ----------------------------- common filters ----------------------------- #

def length(value: Any, args: Args) -> int:
    if value is not UNDEFINED and kind_of(value) in (ARRAY, OBJECT, STRING):
        return len(value)
    raise BuiltinError("expected value to be array, object or string")


def reverse(value: Any, args: Args) -> Any:
    if isinstance(value, str):
        return value[::-1]
    if isinstance(value, list):
        return value[::-1]
    raise BuiltinError("expected value to be array or string")


def json_encode(value: Any, args: Args) -> str:
    return to_json(value, pretty=_bool_arg(args, "pretty", False))


def as_str(value: Any, args: Args) -> str:
    return stringify(value)


def date(value: Any, args: Args) -> str:
    """
    Formats a timestamp (seconds, UTC) or an ISO 8601 date/datetime string.

    `timezone` is an IANA zone name such as "Europe/Berlin", "UTC" or a
    fixed offset such as "+02:00".
    """
    fmt = _optional(args, "format", "%Y-%m-%d", STRING)
    timezone = _parse_timezone(args.get("timezone"))

    if is_number(value):
        moment = dt.datetime.fromtimestamp(value, tz=dt.timezone.utc)
    elif isinstance(value, str):
        try:
            moment = dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise BuiltinError(f"cannot parse {value!r} as a date") from None
    else:
        raise BuiltinError("expected value to be a timestamp or a date string")

    if timezone is not None:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=dt.timezone.utc)
        moment = moment.astimezone(timezone)

    try:
        return moment.strftime(fmt)
    except ValueError as e:
        raise BuiltinError(f"invalid date format {fmt!r}: {e}") from None


_OFFSET_RE = re.compile(r"^([+-])(\d{2}):?(\d{2})$")


def _parse_timezone(value: Any) -> Optional[dt.tzinfo]:
    """IANA zone name ("Europe/Berlin"), "UTC" or a fixed offset ("+02:00")."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise BuiltinError("expected argument 'timezone' to be string")
    if value.upper() in ("UTC", "Z"):
        return dt.timezone.utc
    m = _OFFSET_RE.match(value)
    if m:
        sign = 1 if m.group(1) == "+" else -1
        return dt.timezone(sign * dt.timedelta(hours=int(m.group(2)), minutes=int(m.group(3))))
    try:
        return ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        raise BuiltinError(f"cannot parse {value!r} as a timezone") from None


def default(value: Any, args: Args) -> Any:
    """Replaces an undefined value; defined values pass through, null included."""
    if value is UNDEFINED:
        return _required(args, "value")
    return value


def safe(value: Any, args: Args) -> Any:
    """Marks output as pre-escaped; the renderer skips autoescape after it."""
    return value


# ----------------------------- object filters ----------------------------- #

def get(value: Any, args: Args) -> Any:
    obj = _expect(value, OBJECT, "value")
    key = _required(args, "key", STRING)
    if key in obj:
        return obj[key]
    if "default" in args:
        return args["default"]
    raise BuiltinError(f"key '{key}' not found in object")


DEFAULT_FILTERS = {
    # string
    "upper": upper,
    "lower": lower,
    "trim": trim,
    "trim_start": trim_start,
    "trim_end": trim_end,
    "trim_start_matches": trim_start_matches,
    "trim_end_matches": trim_end_matches,
    "truncate": truncate,
    "wordcount": wordcount,
    "replace": replace,
    "capitalize": capitalize,
    "title": title,
    "linebreaksbr": linebreaksbr,
    "indent": indent,
    "striptags": striptags,
    "spaceless": spaceless,
    "urlencode": urlencode,
    "urlencode_strict": urlencode_strict,
    "escape": escape,
    "escape_xml": escape_xml,
    "slugify": slugify,
    "addslashes": addslashes,
    "split": split,
    "int": to_int,
    "float": to_float,
    # array
    "first": first,
    "last": last,
    "nth": nth,
    "join": join,
    "sort": sort,
    "unique": unique,
    "slice": slice_,
    "group_by": group_by,
    "filter": filter_,
    "map": map_,
    "concat": concat,
    # number
    "abs": abs_,
    "pluralize": pluralize,
    "round": round_,
    "filesizeformat": filesizeformat,
    # common
    "length": length,
    "reverse": reverse,
    "date": date,
    "json_encode": json_encode,
    "as_str": as_str,
    "default": default,
    "safe": safe,
    # object
    "get": get,
}


__all__ = ["DEFAULT_FILTERS", "escape_html", "dotted_get"]
