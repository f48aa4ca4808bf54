"""Number, string and name formatting shared by the text writers."""

from __future__ import annotations

import math
from decimal import Decimal

from .names import is_valid_legacy_metric_name

_ESCAPES = {"\\": "\\\\", "\n": "\\n"}
_QUOTED_ESCAPES = {**_ESCAPES, '"': '\\"'}
_TABLE = str.maketrans(_ESCAPES)
_QUOTED_TABLE = str.maketrans(_QUOTED_ESCAPES)


def _shortest(value: float) -> str:
    """Shortest round-trip form of a finite non-zero positive float, %g style."""
    _, digit_tuple, exponent = Decimal(repr(value)).as_tuple()
    all_digits = "".join(map(str, digit_tuple))
    point = len(all_digits) + exponent
    digits = all_digits.rstrip("0")
    exp = point - 1
    if exp < -4 or exp >= 6:
        mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        return f"{mantissa}e{exp:+03d}"
    if point <= 0:
        return "0." + "0" * (-point) + digits
    if point >= len(digits):
        return digits + "0" * (point - len(digits))
    return digits[:point] + "." + digits[point:]


def format_float(value: float) -> str:
    """Format a float the way the text exposition format writes it."""
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "0"
    if value < 0:
        return "-" + _shortest(-value)
    return _shortest(value)


def format_openmetrics_float(value: float) -> str:
    """Like :func:`format_float`, but always marks finite numbers as floats."""
    text = format_float(value)
    if math.isnan(value) or math.isinf(value):
        return text
    if "e" not in text and "." not in text:
        text += ".0"
    return text


def escape_string(value: str, include_double_quote: bool) -> str:
    """Escape backslashes and newlines, and double quotes if asked to."""
    return value.translate(_QUOTED_TABLE if include_double_quote else _TABLE)


def format_name(name: str) -> str:
    """Write a legacy-valid name as is, anything else quoted and escaped."""
    if is_valid_legacy_metric_name(name):
        return name
    return '"' + escape_string(name, True) + '"'