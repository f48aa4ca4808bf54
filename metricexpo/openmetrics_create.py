"""Rendering of metric families in the OpenMetrics text format."""

from __future__ import annotations

import math
from typing import Iterator, Optional, TextIO

from .floatfmt import escape_string, format_name, format_openmetrics_float
from .model import (
    BUCKET_LABEL,
    QUANTILE_LABEL,
    Exemplar,
    LabelPair,
    Metric,
    MetricFamily,
    MetricType,
)
from .names import is_valid_legacy_metric_name

EOF_LINE = "# EOF\n"

# Range of valid protobuf timestamps: 0001-01-01T00:00:00Z up to 9999-12-31T23:59:59Z.
_MIN_TIMESTAMP = -62135596800.0
_MAX_TIMESTAMP = 253402300800.0

_TYPE_NAMES = {
    MetricType.GAUGE: "gauge",
    MetricType.SUMMARY: "summary",
    MetricType.UNTYPED: "unknown",
    MetricType.HISTOGRAM: "histogram",
}


def _name_and_labels(
    name: str,
    labels: list[LabelPair],
    extra_name: str = "",
    extra_value: float = 0.0,
) -> str:
    """Metric name plus the braced label set; odd names go inside the braces."""
    prefix = ""
    items: list[str] = []
    if name:
        if is_valid_legacy_metric_name(name):
            prefix = name
        else:
            items.append(format_name(name))
    items.extend(
        f'{format_name(pair.name)}="{escape_string(pair.value, True)}"' for pair in labels
    )
    if extra_name:
        items.append(f'{extra_name}="{format_openmetrics_float(extra_value)}"')
    if not items:
        return prefix
    return prefix + "{" + ",".join(items) + "}"


def _check_timestamp(seconds: float) -> None:
    if not math.isfinite(seconds) or not _MIN_TIMESTAMP <= seconds < _MAX_TIMESTAMP:
        raise ValueError(f"timestamp {seconds!r} out of range")


def _exemplar(exemplar: Exemplar) -> str:
    text = " # " + _name_and_labels("", exemplar.label)
    text += " " + format_openmetrics_float(exemplar.value)
    if exemplar.timestamp is not None:
        _check_timestamp(exemplar.timestamp)
        text += " " + format_openmetrics_float(exemplar.timestamp)
    return text


def _sample(
    name: str,
    metric: Metric,
    value: float,
    *,
    as_int: bool = False,
    extra_name: str = "",
    extra_value: float = 0.0,
    exemplar: Optional[Exemplar] = None,
) -> str:
    line = _name_and_labels(name, metric.label, extra_name, extra_value)
    line += " " + (str(int(value)) if as_int else format_openmetrics_float(value))
    if metric.timestamp_ms is not None:
        line += " " + format_openmetrics_float(metric.timestamp_ms / 1000)
    if exemplar is not None and exemplar.label:
        line += _exemplar(exemplar)
    return line + "\n"


def _created(name: str, metric: Metric, created: float) -> str:
    line = _name_and_labels(name + "_created", metric.label)
    return f"{line} {format_openmetrics_float(created)}\n"


def _missing(kind: str, name: str, metric: Metric) -> ValueError:
    return ValueError(f"expected {kind} in metric {name} {metric}")


def _sample_lines(
    name: str, metric_type: MetricType, metric: Metric, with_created_lines: bool
) -> Iterator[str]:
    if metric_type is MetricType.COUNTER:
        counter = metric.counter
        if counter is None:
            raise _missing("counter", name, metric)
        yield _sample(name, metric, counter.value, exemplar=counter.exemplar)
        if with_created_lines and counter.created_timestamp is not None:
            base = name[: -len("_total")] if name.endswith("_total") else name
            yield _created(base, metric, counter.created_timestamp)
    elif metric_type is MetricType.GAUGE:
        if metric.gauge is None:
            raise _missing("gauge", name, metric)
        yield _sample(name, metric, metric.gauge.value)
    elif metric_type is MetricType.UNTYPED:
        if metric.untyped is None:
            raise _missing("untyped", name, metric)
        yield _sample(name, metric, metric.untyped.value)
    elif metric_type is MetricType.SUMMARY:
        summary = metric.summary
        if summary is None:
            raise _missing("summary", name, metric)
        for q in summary.quantile:
            yield _sample(
                name, metric, q.value, extra_name=QUANTILE_LABEL, extra_value=q.quantile
            )
        yield _sample(name + "_sum", metric, summary.sample_sum)
        yield _sample(name + "_count", metric, summary.sample_count, as_int=True)
        if with_created_lines and summary.created_timestamp is not None:
            yield _created(name, metric, summary.created_timestamp)
    elif metric_type is MetricType.HISTOGRAM:
        histogram = metric.histogram
        if histogram is None:
            raise _missing("histogram", name, metric)
        inf_seen = False
        for bucket in histogram.bucket:
            yield _sample(
                name + "_bucket",
                metric,
                bucket.cumulative_count,
                as_int=True,
                extra_name=BUCKET_LABEL,
                extra_value=bucket.upper_bound,
                exemplar=bucket.exemplar,
            )
            if math.isinf(bucket.upper_bound) and bucket.upper_bound > 0:
                inf_seen = True
        if not inf_seen:
            yield _sample(
                name + "_bucket",
                metric,
                histogram.sample_count,
                as_int=True,
                extra_name=BUCKET_LABEL,
                extra_value=math.inf,
            )
        yield _sample(name + "_sum", metric, histogram.sample_sum)
        yield _sample(name + "_count", metric, histogram.sample_count, as_int=True)
        if with_created_lines and histogram.created_timestamp is not None:
            yield _created(name, metric, histogram.created_timestamp)
    else:
        raise ValueError(f"unexpected type in metric {name} {metric}")


def _lines(family: MetricFamily, with_created_lines: bool, with_unit: bool) -> Iterator[str]:
    name = family.name
    try:
        metric_type: Optional[MetricType] = MetricType(family.type)
    except ValueError:
        metric_type = None

    is_total_counter = metric_type is MetricType.COUNTER and name.endswith("_total")
    compliant = name[: -len("_total")] if is_total_counter else name
    unit = family.unit if with_unit else None
    if unit is not None and not compliant.endswith(f"_{unit}"):
        compliant += f"_{unit}"

    if family.help is not None:
        yield f"# HELP {format_name(compliant)} {escape_string(family.help, True)}\n"

    if metric_type is MetricType.COUNTER:
        type_name: Optional[str] = "counter" if is_total_counter else "unknown"
    else:
        type_name = _TYPE_NAMES.get(metric_type) if metric_type is not None else None
    if type_name is None:
        # The TYPE prefix is written before the type is found to be unknown.
        yield f"# TYPE {format_name(compliant)}"
        raise ValueError(f"unknown metric type {family.type}")
    yield f"# TYPE {format_name(compliant)} {type_name}\n"

    if unit is not None:
        yield f"# UNIT {format_name(compliant)} {escape_string(unit, True)}\n"

    if is_total_counter:
        compliant += "_total"
    for metric in family.metric:
        yield from _sample_lines(compliant, metric_type, metric, with_created_lines)


def metric_family_to_openmetrics(
    out: TextIO,
    family: MetricFamily,
    with_created_lines: bool = False,
    with_unit: bool = False,
) -> int:
    """Write the family in OpenMetrics format to ``out`` and return the UTF-8 byte count.

    Counters named ``*_total`` have the suffix dropped from the HELP, TYPE and
    UNIT lines; other counters are typed ``unknown``. ``with_unit`` writes a
    UNIT line and appends the unit to the name when it is missing;
    ``with_created_lines`` writes ``_created`` lines. Output produced before
    an error is still written. The final ``# EOF`` line is not written here.
    """
    if not family.name:
        raise ValueError(f"MetricFamily has no name: {family}")

    parts: list[str] = []
    try:
        for line in _lines(family, with_created_lines, with_unit):
            parts.append(line)
    finally:
        text = "".join(parts)
        if text:
            out.write(text)
    return len(text.encode("utf-8"))


def finalize_openmetrics(out: TextIO) -> int:
    """Write the closing ``# EOF`` line and return the number of bytes written."""
    out.write(EOF_LINE)
    return len(EOF_LINE.encode("utf-8"))