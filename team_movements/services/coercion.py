"""Tolerant conversion of loosely typed JSON scalars.

Source documents carry the same field as a number in one file, a string
with a currency symbol in another, and ``"N/A"`` in a third. Every function
here returns a ``CoercionResult`` instead of raising: on failure the value
is a safe default, ``ok`` is False and a human-readable message is appended
to the supplied ``WarningSink``.
"""

import math
import re
import threading
from datetime import datetime, time, timezone
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Any, Iterator, List, NamedTuple, Optional

from team_movements.utils.logging import get_logger

LOGGER = get_logger(__name__)

NULL_SENTINELS = frozenset({"", "null", "undefined", "na", "n/a"})
DATE_SENTINELS = frozenset({"", "null", "undefined"})

DATE_FORMATS = [
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y/%m/%d",
    "%d-%m-%Y",
    "%m-%d-%Y",
]

TIME_FORMATS = ["%I:%M %p", "%I:%M%p", "%H:%M", "%H.%M"]

TRUE_STRINGS = frozenset({"true", "yes", "y", "1"})
FALSE_STRINGS = frozenset({"false", "no", "n", "0"})

_CURRENCY_RE = re.compile(r"[$€£,]")
_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_MILITARY_RE = re.compile(r"^\d{4}$")


class CoercionResult(NamedTuple):
    """Outcome of a coercion; ``ok`` is False only when input was rejected."""

    value: Any
    ok: bool


class WarningSink:
    """Append-only, thread-safe collection of warning messages."""

    def __init__(self) -> None:
        self._items: List[str] = []
        self._lock = threading.Lock()

    def add(self, message: str) -> None:
        with self._lock:
            self._items.append(message)
        LOGGER.debug(message)

    def snapshot(self) -> List[str]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def coerce_str(value: Any) -> Optional[str]:
    """Render a scalar as text; objects, arrays and null become None."""
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def coerce_datetime(value: Any, field_name: str, sink: WarningSink) -> CoercionResult:
    """Parse ISO-8601, a fixed set of date formats or a Unix millisecond timestamp.

    Naive results are taken to be UTC.
    """
    if value is None:
        return CoercionResult(None, True)

    if _is_number(value):
        try:
            return CoercionResult(
                datetime.fromtimestamp(float(value) / 1000, tz=timezone.utc), True
            )
        except (OverflowError, OSError, ValueError):
            sink.add(f"Failed to parse {field_name} numeric timestamp: {value}")
            return CoercionResult(None, False)

    if not isinstance(value, str):
        sink.add(f"Failed to parse {field_name} date: '{value}'")
        return CoercionResult(None, False)

    text = value.strip()
    if text.lower() in DATE_SENTINELS:
        return CoercionResult(None, True)

    parsed: Optional[datetime] = None
    try:
        iso_text = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
        parsed = datetime.fromisoformat(iso_text)
    except ValueError:
        for fmt in DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        sink.add(f"Failed to parse {field_name} date: '{text}'")
        return CoercionResult(None, False)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return CoercionResult(parsed, True)


def _to_decimal(value: Any) -> Optional[Decimal]:
    """Convert a JSON number or numeric string to Decimal, or None."""
    if _is_number(value):
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            result = None
        if result is not None and result.is_finite():
            return result
        as_float = float(value)
        if math.isnan(as_float) or math.isinf(as_float):
            return None
        return Decimal(repr(as_float))

    if isinstance(value, str):
        cleaned = _CURRENCY_RE.sub("", value).strip()
        try:
            result = Decimal(cleaned)
        except InvalidOperation:
            return None
        return result if result.is_finite() else None

    return None


def _is_null_sentinel(value: Any, field_name: str, sink: WarningSink) -> bool:
    """True for strings that mean "no value"; named placeholders are warned about."""
    if not isinstance(value, str):
        return False
    text = value.strip()
    if text.lower() not in NULL_SENTINELS:
        return False
    if text:
        sink.add(f"Could not parse {field_name} value: '{value}', treating it as missing")
    return True


def coerce_decimal(value: Any, field_name: str, sink: WarningSink) -> CoercionResult:
    """Parse numbers and numeric strings, stripping currency symbols and separators."""
    if value is None:
        return CoercionResult(None, True)
    if _is_null_sentinel(value, field_name, sink):
        return CoercionResult(None, True)

    result = _to_decimal(value)
    if result is None:
        sink.add(f"Could not parse {field_name} value: '{value}'")
        return CoercionResult(None, False)
    return CoercionResult(result, True)


def coerce_int(
    value: Any,
    field_name: str,
    sink: WarningSink,
    default: Optional[int] = None,
) -> CoercionResult:
    """Parse an integer, rounding fractional input half-to-even."""
    if value is None:
        return CoercionResult(default, True)
    if _is_null_sentinel(value, field_name, sink):
        return CoercionResult(default, True)

    if isinstance(value, int) and not isinstance(value, bool):
        return CoercionResult(value, True)

    result = _to_decimal(value)
    if result is None:
        sink.add(f"Could not parse {field_name} value as integer: '{value}'")
        return CoercionResult(default, False)
    return CoercionResult(int(result.quantize(Decimal(1), rounding=ROUND_HALF_EVEN)), True)


def coerce_bool(
    value: Any,
    field_name: str,
    sink: WarningSink,
    default: bool = False,
) -> CoercionResult:
    """Accept JSON booleans, yes/no style strings and numbers (non-zero is True)."""
    if value is None:
        return CoercionResult(default, True)
    if isinstance(value, bool):
        return CoercionResult(value, True)
    if _is_number(value):
        return CoercionResult(value != 0, True)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_STRINGS:
            return CoercionResult(True, True)
        if text in FALSE_STRINGS:
            return CoercionResult(False, True)
        if text in NULL_SENTINELS:
            return CoercionResult(default, True)

    sink.add(f"Could not parse {field_name} as boolean: '{value}'")
    return CoercionResult(default, False)


def coerce_time(value: Any, field_name: str, sink: WarningSink) -> CoercionResult:
    """Parse a time of day; failure yields midnight.

    Accepts ``H:MM[:SS]``, four digit military time (``0930``) and a few
    twelve hour and dotted forms (``9:30 PM``, ``9.30``).
    """
    if value is None:
        return CoercionResult(time(0, 0), True)

    text = str(value).strip()
    if not text:
        return CoercionResult(time(0, 0), True)

    match = _CLOCK_RE.match(text)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        seconds = int(match.group(3) or 0)
        if hours < 24 and minutes < 60 and seconds < 60:
            return CoercionResult(time(hours, minutes, seconds), True)

    if _MILITARY_RE.match(text):
        hours, minutes = divmod(int(text), 100)
        if hours < 24 and minutes < 60:
            return CoercionResult(time(hours, minutes), True)

    upper = text.upper()
    for fmt in TIME_FORMATS:
        try:
            return CoercionResult(datetime.strptime(upper, fmt).time(), True)
        except ValueError:
            continue

    try:
        return CoercionResult(datetime.fromisoformat(text).time(), True)
    except ValueError:
        pass

    sink.add(f"Could not parse time string '{text}', using default 00:00")
    return CoercionResult(time(0, 0), False)
