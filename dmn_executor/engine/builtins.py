"""
FEEL built-in functions.

Each function takes FEEL values positionally and returns a FEEL value. A required
argument that is null yields null. Python errors raised inside a built-in are turned
into FeelError by BuiltinFunction.invoke.
"""

import functools
import re
import statistics
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Any, Callable, Optional

from dmn_executor.engine.handles import BuiltinFunction, CallableHandle
from dmn_executor.engine.values import (
    FEEL_CONTEXT,
    FeelError,
    Scope,
    feel_compare,
    feel_equals,
    is_number,
    parse_date_time,
    parse_duration,
    parse_time,
    to_decimal,
    to_text,
)

BUILTINS: dict[str, BuiltinFunction] = {}


def builtin(name: str, *parameters: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def register(fn: Callable[..., Any]) -> Callable[..., Any]:
        BUILTINS[name] = BuiltinFunction(name, list(parameters), fn)
        return fn

    return register


def root_scope() -> Scope:
    """Scope holding the built-ins; evaluation scopes are children of it."""
    return Scope(dict(BUILTINS))


def parameter_names() -> set[str]:
    return {p for fn in BUILTINS.values() for p in fn.parameters}


def _items(args: tuple) -> list[Any]:
    if len(args) == 1 and isinstance(args[0], list):
        return args[0]
    return list(args)


def _position(items: list, position: Any) -> int:
    """Zero-based index for a FEEL 1-based (or negative, from the end) position."""
    p = int(position)
    if p > 0 and p <= len(items):
        return p - 1
    if p < 0 and -p <= len(items):
        return len(items) + p
    raise FeelError(f"position {p} out of range for length {len(items)}")


def _sort_key(a: Any, b: Any) -> int:
    c = feel_compare(a, b)
    if c is None:
        raise FeelError(f"values {to_text(a)} and {to_text(b)} are not comparable")
    return c


# -----------------------------------------------------------------------------
# Conversion
# -----------------------------------------------------------------------------


@builtin("not", "negand")
def _not(negand):
    return (not negand) if isinstance(negand, bool) else None


@builtin("string", "from")
def _string(value):
    return to_text(value)


@builtin("number", "from", "grouping separator", "decimal separator")
def _number(value, grouping=None, decimal_sep=None):
    if value is None:
        return None
    if is_number(value):
        return to_decimal(value)
    text = str(value)
    if grouping:
        text = text.replace(grouping, "")
    if decimal_sep:
        text = text.replace(decimal_sep, ".")
    try:
        return Decimal(text.strip())
    except InvalidOperation:
        return None


@builtin("date", "from")
def _date(*args):
    if len(args) == 3:
        if any(a is None for a in args):
            return None
        return date(int(args[0]), int(args[1]), int(args[2]))
    value = args[0] if args else None
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        return None


@builtin("date and time", "from")
def _date_and_time(*args):
    if len(args) == 2:
        d, t = args
        if d is None or t is None:
            return None
        if isinstance(d, datetime):
            d = d.date()
        return datetime.combine(d, t)
    value = args[0] if args else None
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    try:
        return parse_date_time(str(value))
    except ValueError:
        return None


@builtin("time", "from")
def _time(*args):
    if len(args) >= 3:
        if any(a is None for a in args[:3]):
            return None
        seconds = to_decimal(args[2])
        whole = int(seconds)
        micro = int((seconds - whole) * 1_000_000)
        return time(int(args[0]), int(args[1]), whole, micro)
    value = args[0] if args else None
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.timetz()
    if isinstance(value, time):
        return value
    try:
        return parse_time(str(value))
    except ValueError:
        return None


@builtin("duration", "from")
def _duration(value):
    if value is None:
        return None
    return parse_duration(str(value))


# -----------------------------------------------------------------------------
# Strings
# -----------------------------------------------------------------------------


@builtin("substring", "string", "start position", "length")
def _substring(string, start, length=None):
    if string is None or start is None:
        return None
    chars = list(string)
    idx = _position(chars, start) if chars else 0
    if length is None:
        return "".join(chars[idx:])
    return "".join(chars[idx: idx + int(length)])


@builtin("string length", "string")
def _string_length(string):
    return None if string is None else Decimal(len(string))


@builtin("upper case", "string")
def _upper(string):
    return None if string is None else string.upper()


@builtin("lower case", "string")
def _lower(string):
    return None if string is None else string.lower()


@builtin("substring before", "string", "match")
def _substring_before(string, match):
    if string is None or match is None:
        return None
    i = string.find(match)
    return string[:i] if i >= 0 else ""


@builtin("substring after", "string", "match")
def _substring_after(string, match):
    if string is None or match is None:
        return None
    i = string.find(match)
    return string[i + len(match):] if i >= 0 else ""


_FLAG_MAP = {"i": re.IGNORECASE, "s": re.DOTALL, "m": re.MULTILINE, "x": re.VERBOSE}


def _regex_flags(flags: Optional[str]) -> int:
    out = 0
    for ch in flags or "":
        if ch not in _FLAG_MAP:
            raise FeelError(f"unsupported regular expression flag '{ch}'")
        out |= _FLAG_MAP[ch]
    return out


@builtin("replace", "input", "pattern", "replacement", "flags")
def _replace(string, pattern, replacement, flags=None):
    if string is None or pattern is None or replacement is None:
        return None
    replacement = re.sub(r"\$(\d)", r"\\\1", replacement)
    return re.sub(pattern, replacement, string, flags=_regex_flags(flags))


@builtin("contains", "string", "match")
def _contains(string, match):
    if string is None or match is None:
        return None
    return match in string


@builtin("starts with", "string", "match")
def _starts_with(string, match):
    if string is None or match is None:
        return None
    return string.startswith(match)


@builtin("ends with", "string", "match")
def _ends_with(string, match):
    if string is None or match is None:
        return None
    return string.endswith(match)


@builtin("matches", "input", "pattern", "flags")
def _matches(string, pattern, flags=None):
    if string is None or pattern is None:
        return None
    return re.search(pattern, string, flags=_regex_flags(flags)) is not None


@builtin("split", "string", "delimiter")
def _split(string, delimiter):
    if string is None or delimiter is None:
        return None
    return re.split(delimiter, string)


@builtin("string join", "list", "delimiter")
def _string_join(items, delimiter=None):
    if items is None:
        return None
    return (delimiter or "").join(s for s in items if s is not None)


# -----------------------------------------------------------------------------
# Lists
# -----------------------------------------------------------------------------


@builtin("list contains", "list", "element")
def _list_contains(items, element):
    if items is None:
        return None
    return any(feel_equals(x, element) is True for x in items)


@builtin("count", "list")
def _count(*args):
    return Decimal(len(_items(args)))


@builtin("min", "list")
def _min(*args):
    items = _items(args)
    if not items or any(x is None for x in items):
        return None
    return min(items, key=functools.cmp_to_key(_sort_key))


@builtin("max", "list")
def _max(*args):
    items = _items(args)
    if not items or any(x is None for x in items):
        return None
    return max(items, key=functools.cmp_to_key(_sort_key))


@builtin("sum", "list")
def _sum(*args):
    items = _items(args)
    if not items:
        return None
    total = Decimal(0)
    for x in items:
        if not is_number(x):
            return None
        total = FEEL_CONTEXT.add(total, to_decimal(x))
    return total


@builtin("mean", "list")
def _mean(*args):
    items = _items(args)
    total = _sum(items)
    if total is None:
        return None
    return FEEL_CONTEXT.divide(total, Decimal(len(items)))


@builtin("product", "list")
def _product(*args):
    items = _items(args)
    if not items or not all(is_number(x) for x in items):
        return None
    out = Decimal(1)
    for x in items:
        out = FEEL_CONTEXT.multiply(out, to_decimal(x))
    return out


@builtin("median", "list")
def _median(*args):
    items = _items(args)
    if not items or not all(is_number(x) for x in items):
        return None
    return statistics.median(to_decimal(x) for x in items)


@builtin("all", "list")
def _all(*args):
    items = _items(args)
    if any(x is False for x in items):
        return False
    if all(x is True for x in items):
        return True
    return None


@builtin("any", "list")
def _any(*args):
    items = _items(args)
    if any(x is True for x in items):
        return True
    if all(x is False for x in items):
        return False
    return None


@builtin("sublist", "list", "start position", "length")
def _sublist(items, start, length=None):
    if items is None or start is None:
        return None
    idx = _position(items, start)
    if length is None:
        return items[idx:]
    return items[idx: idx + int(length)]


@builtin("append", "list", "item")
def _append(items, *values):
    if items is None:
        return None
    return list(items) + list(values)


@builtin("concatenate", "list")
def _concatenate(*lists):
    out: list[Any] = []
    for items in lists:
        if items is None:
            return None
        out.extend(items)
    return out


@builtin("insert before", "list", "position", "newItem")
def _insert_before(items, position, new_item):
    if items is None or position is None:
        return None
    out = list(items)
    out.insert(_position(out, position), new_item)
    return out


@builtin("remove", "list", "position")
def _remove(items, position):
    if items is None or position is None:
        return None
    out = list(items)
    del out[_position(out, position)]
    return out


@builtin("reverse", "list")
def _reverse(items):
    return None if items is None else list(reversed(items))


@builtin("index of", "list", "match")
def _index_of(items, match):
    if items is None:
        return None
    return [Decimal(i + 1) for i, x in enumerate(items) if feel_equals(x, match) is True]


def _distinct(items: list) -> list:
    out: list[Any] = []
    for x in items:
        if not any(feel_equals(x, y) is True for y in out):
            out.append(x)
    return out


@builtin("union", "list")
def _union(*lists):
    if any(items is None for items in lists):
        return None
    return _distinct([x for items in lists for x in items])


@builtin("distinct values", "list")
def _distinct_values(items):
    return None if items is None else _distinct(items)


@builtin("flatten", "list")
def _flatten(items):
    if items is None:
        return None
    out: list[Any] = []
    for x in items:
        if isinstance(x, list):
            out.extend(_flatten(x))
        else:
            out.append(x)
    return out


@builtin("sort", "list", "precedes")
def _sort(items, precedes=None):
    if items is None:
        return None
    if precedes is None:
        return sorted(items, key=functools.cmp_to_key(_sort_key))
    if not isinstance(precedes, CallableHandle):
        raise FeelError("sort: 'precedes' must be a function")

    def compare(a, b):
        if precedes.invoke([a, b]) is True:
            return -1
        if precedes.invoke([b, a]) is True:
            return 1
        return 0

    return sorted(items, key=functools.cmp_to_key(compare))


# -----------------------------------------------------------------------------
# Numbers
# -----------------------------------------------------------------------------


def _quantize(n, scale, rounding) -> Optional[Decimal]:
    if n is None or scale is None:
        return None
    return to_decimal(n).quantize(Decimal(1).scaleb(-int(scale)), rounding=rounding, context=FEEL_CONTEXT)


@builtin("decimal", "n", "scale")
def _decimal(n, scale):
    return _quantize(n, scale, ROUND_HALF_EVEN)


@builtin("floor", "n", "scale")
def _floor(n, scale=0):
    return _quantize(n, scale, ROUND_FLOOR)


@builtin("ceiling", "n", "scale")
def _ceiling(n, scale=0):
    return _quantize(n, scale, ROUND_CEILING)


@builtin("abs", "n")
def _abs(n):
    if n is None:
        return None
    if isinstance(n, timedelta):
        return abs(n)
    return abs(to_decimal(n))


@builtin("modulo", "dividend", "divisor")
def _modulo(dividend, divisor):
    if dividend is None or divisor is None:
        return None
    a, b = to_decimal(dividend), to_decimal(divisor)
    if b == 0:
        return None
    quotient = FEEL_CONTEXT.divide(a, b).to_integral_value(rounding=ROUND_FLOOR)
    return FEEL_CONTEXT.subtract(a, FEEL_CONTEXT.multiply(b, quotient))


@builtin("sqrt", "number")
def _sqrt(n):
    if n is None or to_decimal(n) < 0:
        return None
    return to_decimal(n).sqrt(FEEL_CONTEXT)


@builtin("log", "number")
def _log(n):
    if n is None or to_decimal(n) <= 0:
        return None
    return to_decimal(n).ln(FEEL_CONTEXT)


@builtin("exp", "number")
def _exp(n):
    return None if n is None else to_decimal(n).exp(FEEL_CONTEXT)


@builtin("odd", "number")
def _odd(n):
    if n is None:
        return None
    d = to_decimal(n)
    return d == d.to_integral_value() and int(d) % 2 == 1


@builtin("even", "number")
def _even(n):
    if n is None:
        return None
    d = to_decimal(n)
    return d == d.to_integral_value() and int(d) % 2 == 0


# -----------------------------------------------------------------------------
# Contexts
# -----------------------------------------------------------------------------


@builtin("get value", "m", "key")
def _get_value(m, key):
    if not isinstance(m, dict) or key is None:
        return None
    return m.get(key)


@builtin("get entries", "m")
def _get_entries(m):
    if not isinstance(m, dict):
        return None
    return [{"key": k, "value": v} for k, v in m.items()]


# -----------------------------------------------------------------------------
# Temporal
# -----------------------------------------------------------------------------


@builtin("today")
def _today():
    return date.today()


@builtin("now")
def _now():
    return datetime.now(timezone.utc)


@builtin("day of week", "date")
def _day_of_week(value):
    return None if value is None else value.strftime("%A")


@builtin("month of year", "date")
def _month_of_year(value):
    return None if value is None else value.strftime("%B")


@builtin("day of year", "date")
def _day_of_year(value):
    return None if value is None else Decimal(value.timetuple().tm_yday)
