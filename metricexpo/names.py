"""Validation and escaping of metric and label names."""

from __future__ import annotations

import dataclasses
import enum
import re

from .model import METRIC_NAME_LABEL, LabelPair, Metric, MetricFamily

ESCAPING_KEY = "escaping"

_LEGACY_METRIC_NAME = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*")
_LEGACY_LABEL_NAME = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")


class ValidationScheme(enum.Enum):
    """Which characters metric and label names may hold."""

    LEGACY = "legacy"
    UTF8 = "utf8"


class EscapingScheme(enum.Enum):
    """How names that are not legacy-valid are rewritten for output."""

    NO_ESCAPING = "allow-utf-8"
    UNDERSCORES = "underscores"
    DOTS = "dots"
    VALUES = "values"

    def __str__(self) -> str:
        return self.value


DEFAULT_ESCAPING_SCHEME = EscapingScheme.VALUES
DEFAULT_VALIDATION_SCHEME = ValidationScheme.LEGACY


def _is_valid_utf8(value: str) -> bool:
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def is_valid_legacy_metric_name(name: str) -> bool:
    """Whether the name matches the classic metric name pattern."""
    return _LEGACY_METRIC_NAME.fullmatch(name) is not None


def is_valid_metric_name(name: str, scheme: ValidationScheme = DEFAULT_VALIDATION_SCHEME) -> bool:
    """Whether the name is a valid metric name under the given scheme."""
    if scheme is ValidationScheme.LEGACY:
        return is_valid_legacy_metric_name(name)
    return bool(name) and _is_valid_utf8(name)


def is_valid_label_name(name: str, scheme: ValidationScheme = DEFAULT_VALIDATION_SCHEME) -> bool:
    """Whether the name is a valid label name under the given scheme."""
    if scheme is ValidationScheme.LEGACY:
        return _LEGACY_LABEL_NAME.fullmatch(name) is not None
    return bool(name) and _is_valid_utf8(name)


def is_valid_label_value(value: str) -> bool:
    """Whether the label value is valid UTF-8."""
    return _is_valid_utf8(value)


def to_escaping_scheme(value: str) -> EscapingScheme:
    """Parse the value of an ``escaping`` parameter."""
    if not value:
        raise ValueError("got empty string instead of escaping scheme")
    try:
        return EscapingScheme(value)
    except ValueError:
        raise ValueError(f"unknown format scheme {value}") from None


def _is_legacy_char(char: str, index: int) -> bool:
    return (
        "a" <= char <= "z"
        or "A" <= char <= "Z"
        or char in "_:"
        or ("0" <= char <= "9" and index > 0)
    )


def escape_name(name: str, scheme: EscapingScheme) -> str:
    """Rewrite a name according to the escaping scheme."""
    if not name or scheme is EscapingScheme.NO_ESCAPING:
        return name
    if scheme is EscapingScheme.UNDERSCORES:
        if is_valid_legacy_metric_name(name):
            return name
        return "".join(c if _is_legacy_char(c, i) else "_" for i, c in enumerate(name))
    if scheme is EscapingScheme.DOTS:
        parts = []
        for i, c in enumerate(name):
            if c == "_":
                parts.append("__")
            elif c == ".":
                parts.append("_dot_")
            elif _is_legacy_char(c, i):
                parts.append(c)
            else:
                parts.append("__")
        return "".join(parts)
    if is_valid_legacy_metric_name(name):
        return name
    parts = ["U__"]
    for i, c in enumerate(name):
        if c == "_":
            parts.append("__")
        elif _is_legacy_char(c, i):
            parts.append(c)
        elif not _is_valid_utf8(c):
            parts.append("_FFFD_")
        else:
            parts.append(f"_{ord(c):x}_")
    return "".join(parts)


def _metric_needs_escaping(metric: Metric) -> bool:
    for pair in metric.label:
        if pair.name == METRIC_NAME_LABEL and not is_valid_legacy_metric_name(pair.value):
            return True
        if not is_valid_legacy_metric_name(pair.name):
            return True
    return False


def _escape_label(pair: LabelPair, scheme: EscapingScheme) -> LabelPair:
    if pair.name == METRIC_NAME_LABEL:
        if is_valid_legacy_metric_name(pair.value):
            return pair
        return LabelPair(METRIC_NAME_LABEL, escape_name(pair.value, scheme))
    if is_valid_legacy_metric_name(pair.name):
        return pair
    return LabelPair(escape_name(pair.name, scheme), pair.value)


def escape_metric_family(family: MetricFamily, scheme: EscapingScheme) -> MetricFamily:
    """Return the family with metric and label names escaped; the input is unchanged."""
    if scheme is EscapingScheme.NO_ESCAPING:
        return family
    name = family.name
    if name and not is_valid_legacy_metric_name(name):
        name = escape_name(name, scheme)
    metrics = [
        dataclasses.replace(m, label=[_escape_label(p, scheme) for p in m.label])
        if _metric_needs_escaping(m)
        else m
        for m in family.metric
    ]
    return dataclasses.replace(family, name=name, metric=metrics)