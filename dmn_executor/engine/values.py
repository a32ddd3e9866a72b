"""
FEEL value semantics shared by the expression evaluator, built-in functions and type checks.

Numbers are ``Decimal`` (34 significant digits, like DECIMAL128); JSON input numbers are
converted on the way in with ``to_feel``. Comparisons that FEEL leaves undefined (mixed
types, nulls) return ``None`` instead of raising.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from decimal import Context, Decimal, InvalidOperation, Overflow
from typing import Any, Optional

FEEL_CONTEXT = Context(prec=34)

MISSING = object()


class FeelError(Exception):
    """Raised when a FEEL expression cannot be evaluated."""


class FeelSyntaxError(FeelError):
    """Raised when a FEEL expression or unary test cannot be parsed."""


# -----------------------------------------------------------------------------
# Scope
# -----------------------------------------------------------------------------


class Scope:
    """Chained name -> value bindings; lookups walk towards the root."""

    __slots__ = ("values", "parent")

    def __init__(self, values: Optional[dict[str, Any]] = None, parent: Optional["Scope"] = None):
        self.values = values if values is not None else {}
        self.parent = parent

    def lookup(self, name: str) -> Any:
        scope: Optional[Scope] = self
        while scope is not None:
            if name in scope.values:
                return scope.values[name]
            scope = scope.parent
        return MISSING

    def child(self, values: Optional[dict[str, Any]] = None) -> "Scope":
        return Scope(values, self)


# -----------------------------------------------------------------------------
# Ranges
# -----------------------------------------------------------------------------


class Range:
    """An interval such as ``[1..10]`` or ``]0..1[``; open ends are ``None``."""

    __slots__ = ("start", "end", "start_included", "end_included")

    def __init__(self, start: Any, end: Any, start_included: bool = True, end_included: bool = True):
        self.start = start
        self.end = end
        self.start_included = start_included
        self.end_included = end_included

    def includes(self, value: Any) -> Optional[bool]:
        if value is None:
            return None
        if self.start is not None:
            c = feel_compare(value, self.start)
            if c is None:
                return None
            if c < 0 or (c == 0 and not self.start_included):
                return False
        if self.end is not None:
            c = feel_compare(value, self.end)
            if c is None:
                return None
            if c > 0 or (c == 0 and not self.end_included):
                return False
        return True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Range):
            return NotImplemented
        return (
            self.start_included == other.start_included
            and self.end_included == other.end_included
            and feel_equals(self.start, other.start) is True
            and feel_equals(self.end, other.end) is True
        )

    def __hash__(self) -> int:
        return hash((str(self.start), str(self.end), self.start_included, self.end_included))

    def __str__(self) -> str:
        left = "[" if self.start_included else "("
        right = "]" if self.end_included else ")"
        start = "" if self.start is None else to_text(self.start)
        end = "" if self.end is None else to_text(self.end)
        return f"{left}{start}..{end}{right}"

    __repr__ = __str__


# -----------------------------------------------------------------------------
# Conversions
# -----------------------------------------------------------------------------


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(repr(value))
    raise FeelError(f"Expected a number, got {type_name(value)}")


def to_feel(value: Any) -> Any:
    """Convert a JSON-decoded value into FEEL values (numbers become Decimal)."""
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, (int, float)):
        return to_decimal(value)
    if isinstance(value, dict):
        return {str(k): to_feel(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_feel(v) for v in value]
    return value


def type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, datetime):
        return "date and time"
    if isinstance(value, date):
        return "date"
    if isinstance(value, time):
        return "time"
    if isinstance(value, timedelta):
        return "days and time duration"
    if isinstance(value, list):
        return "list"
    if isinstance(value, dict):
        return "context"
    if isinstance(value, Range):
        return "range"
    return type(value).__name__


def format_number(value: Decimal) -> str:
    if value == value.to_integral_value():
        return str(value.quantize(Decimal(1)))
    return format(value.normalize(), "f")


def format_duration(value: timedelta) -> str:
    """ISO 8601 form of a days-and-time duration, e.g. ``P1DT2H`` or ``-PT30M``."""
    total = value.days * 86400 + value.seconds
    micro = value.microseconds
    sign = ""
    if total < 0 or (total == 0 and micro < 0):
        sign = "-"
        total, micro = -total, -micro
        if micro < 0:
            total -= 1
            micro += 1_000_000
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    out = f"{sign}P"
    if days:
        out += f"{days}D"
    clock = ""
    if hours:
        clock += f"{hours}H"
    if minutes:
        clock += f"{minutes}M"
    if seconds or micro:
        clock += f"{seconds}.{micro:06d}".rstrip("0").rstrip(".") + "S"
    if clock:
        out += "T" + clock
    if out in ("P", "-P"):
        out = "PT0S"
    return out


_DURATION = re.compile(
    r"^(-)?P(?:(\d+)Y)?(?:(\d+)M)?(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?$"
)


def parse_duration(text: str) -> timedelta:
    m = _DURATION.match(text.strip())
    if not m or text.strip() in ("P", "-P", "PT", "-PT"):
        raise FeelError(f"Invalid duration '{text}'")
    negative, years, months, days, hours, minutes, seconds = m.groups()
    if years or months:
        raise FeelError(f"Years and months durations are not supported: '{text}'")
    td = timedelta(
        days=int(days or 0),
        hours=int(hours or 0),
        minutes=int(minutes or 0),
        seconds=float(seconds or 0),
    )
    return -td if negative else td


def parse_date_time(text: str) -> datetime:
    text = text.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    if "T" not in text:
        return datetime.combine(date.fromisoformat(text), time())
    return datetime.fromisoformat(text)


def parse_time(text: str) -> time:
    text = text.strip()
    if text.endswith("Z"):
        return time.fromisoformat(text[:-1]).replace(tzinfo=timezone.utc)
    return time.fromisoformat(text)


def to_text(value: Any) -> Optional[str]:
    """FEEL ``string()`` conversion."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return format_number(to_decimal(value))
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, timedelta):
        return format_duration(value)
    if isinstance(value, list):
        return "[" + ", ".join(_quoted(v) for v in value) + "]"
    if isinstance(value, dict):
        return "{" + ", ".join(f"{k}: {_quoted(v)}" for k, v in value.items()) + "}"
    return str(value)


def _quoted(value: Any) -> str:
    if isinstance(value, str):
        return '"' + value + '"'
    text = to_text(value)
    return "null" if text is None else text


# -----------------------------------------------------------------------------
# Equality and ordering
# -----------------------------------------------------------------------------


def _temporal_kind(value: Any) -> Optional[str]:
    if isinstance(value, datetime):
        return "datetime"
    if isinstance(value, date):
        return "date"
    if isinstance(value, time):
        return "time"
    if isinstance(value, timedelta):
        return "duration"
    return None


def feel_equals(a: Any, b: Any) -> Optional[bool]:
    """FEEL ``=``: null equals only null, mismatched types give null."""
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, bool) or isinstance(b, bool):
        if isinstance(a, bool) and isinstance(b, bool):
            return a == b
        return None
    if is_number(a) and is_number(b):
        return to_decimal(a) == to_decimal(b)
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    ka, kb = _temporal_kind(a), _temporal_kind(b)
    if ka or kb:
        if ka != kb:
            return None
        try:
            return a == b
        except TypeError:
            return None
    if isinstance(a, list) and isinstance(b, list):
        if len(a) != len(b):
            return False
        for x, y in zip(a, b):
            r = feel_equals(x, y)
            if r is not True:
                return r
        return True
    if isinstance(a, dict) and isinstance(b, dict):
        if set(a) != set(b):
            return False
        for key in a:
            r = feel_equals(a[key], b[key])
            if r is not True:
                return r
        return True
    if isinstance(a, Range) and isinstance(b, Range):
        return a == b
    if type(a) is type(b):
        return a == b
    return None


def feel_compare(a: Any, b: Any) -> Optional[int]:
    """Return -1, 0 or 1, or None when the values are not ordered against each other."""
    if a is None or b is None or isinstance(a, bool) or isinstance(b, bool):
        return None
    if is_number(a) and is_number(b):
        x, y = to_decimal(a), to_decimal(b)
    elif isinstance(a, str) and isinstance(b, str):
        x, y = a, b
    else:
        ka, kb = _temporal_kind(a), _temporal_kind(b)
        if ka is None or ka != kb:
            return None
        x, y = a, b
    try:
        return (x > y) - (x < y)
    except TypeError:
        return None


# -----------------------------------------------------------------------------
# Arithmetic
# -----------------------------------------------------------------------------


def _arith_error(op: str, a: Any, b: Any) -> FeelError:
    return FeelError(f"Cannot apply '{op}' to {type_name(a)} and {type_name(b)}")


def add(a: Any, b: Any) -> Any:
    if a is None or b is None:
        return None
    if is_number(a) and is_number(b):
        return FEEL_CONTEXT.add(to_decimal(a), to_decimal(b))
    if isinstance(a, str) and isinstance(b, str):
        return a + b
    if isinstance(a, timedelta) and _temporal_kind(b) in ("date", "datetime", "duration"):
        a, b = b, a
    if _temporal_kind(a) in ("date", "datetime", "duration") and isinstance(b, timedelta):
        return a + b
    raise _arith_error("+", a, b)


def subtract(a: Any, b: Any) -> Any:
    if a is None or b is None:
        return None
    if is_number(a) and is_number(b):
        return FEEL_CONTEXT.subtract(to_decimal(a), to_decimal(b))
    ka, kb = _temporal_kind(a), _temporal_kind(b)
    if ka in ("date", "datetime", "duration") and kb == "duration":
        return a - b
    if ka in ("date", "datetime") and ka == kb:
        try:
            return a - b
        except TypeError as e:
            raise FeelError(str(e)) from e
    raise _arith_error("-", a, b)


def multiply(a: Any, b: Any) -> Any:
    if a is None or b is None:
        return None
    if is_number(a) and is_number(b):
        return FEEL_CONTEXT.multiply(to_decimal(a), to_decimal(b))
    if isinstance(a, timedelta) and is_number(b):
        return a * float(b)
    if is_number(a) and isinstance(b, timedelta):
        return b * float(a)
    raise _arith_error("*", a, b)


def divide(a: Any, b: Any) -> Any:
    if a is None or b is None:
        return None
    if is_number(a) and is_number(b):
        divisor = to_decimal(b)
        if divisor == 0:
            return None
        return FEEL_CONTEXT.divide(to_decimal(a), divisor)
    if isinstance(a, timedelta) and is_number(b):
        if to_decimal(b) == 0:
            return None
        return a / float(b)
    if isinstance(a, timedelta) and isinstance(b, timedelta):
        if not b:
            return None
        return FEEL_CONTEXT.divide(Decimal(repr(a.total_seconds())), Decimal(repr(b.total_seconds())))
    raise _arith_error("/", a, b)


def power(a: Any, b: Any) -> Any:
    if a is None or b is None:
        return None
    if is_number(a) and is_number(b):
        try:
            return FEEL_CONTEXT.power(to_decimal(a), to_decimal(b))
        except InvalidOperation as e:
            raise FeelError(f"Invalid exponentiation {to_text(a)} ** {to_text(b)}") from e
        except Overflow as e:
            raise FeelError(f"Numeric overflow in {to_text(a)} ** {to_text(b)}") from e
    raise _arith_error("**", a, b)


def negate(a: Any) -> Any:
    if a is None:
        return None
    if is_number(a):
        return -to_decimal(a)
    if isinstance(a, timedelta):
        return -a
    raise FeelError(f"Cannot negate {type_name(a)}")


# -----------------------------------------------------------------------------
# Built-in types
# -----------------------------------------------------------------------------

BUILTIN_TYPES = {
    "Any": lambda v: True,
    "number": is_number,
    "string": lambda v: isinstance(v, str),
    "boolean": lambda v: isinstance(v, bool),
    "date": lambda v: isinstance(v, date) and not isinstance(v, datetime),
    "time": lambda v: isinstance(v, time),
    "date and time": lambda v: isinstance(v, datetime),
    "dateTime": lambda v: isinstance(v, datetime),
    "days and time duration": lambda v: isinstance(v, timedelta),
    "dayTimeDuration": lambda v: isinstance(v, timedelta),
    "duration": lambda v: isinstance(v, timedelta),
    "list": lambda v: isinstance(v, list),
    "context": lambda v: isinstance(v, dict),
    "range": lambda v: isinstance(v, Range),
}


def normalize_type_ref(type_ref: str) -> str:
    """Strip a ``feel:`` style prefix used by DMN 1.1 documents."""
    type_ref = type_ref.strip()
    if ":" in type_ref:
        prefix, local = type_ref.split(":", 1)
        if prefix.lower() == "feel":
            return local
    return type_ref


def is_builtin_instance(value: Any, type_ref: str) -> Optional[bool]:
    """Return whether value is an instance of a built-in type, or None for unknown types."""
    check = BUILTIN_TYPES.get(normalize_type_ref(type_ref))
    if check is None:
        return None
    return bool(check(value))
