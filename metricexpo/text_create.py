"""Rendering of metric families in the classic text exposition format."""

from __future__ import annotations

import math
from typing import Iterator, Optional, TextIO

from .floatfmt import escape_string, format_float, format_name
from .model import BUCKET_LABEL, QUANTILE_LABEL, LabelPair, Metric, MetricFamily, MetricType
from .names import is_valid_legacy_metric_name

_TYPE_NAMES = {
    MetricType.COUNTER: "counter",
    MetricType.GAUGE: "gauge",
    MetricType.SUMMARY: "summary",
    MetricType.UNTYPED: "untyped",
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
        items.append(f'{extra_name}="{format_float(extra_value)}"')
    if not items:
        return prefix
    return prefix + "{" + ",".join(items) + "}"


def _sample(
    name: str,
    metric: Metric,
    value: float,
    extra_name: str = "",
    extra_value: float = 0.0,
) -> str:
    line = _name_and_labels(name, metric.label, extra_name, extra_value)
    line += " " + format_float(value)
    if metric.timestamp_ms is not None:
        line += f" {int(metric.timestamp_ms)}"
    return line + "\n"


def _missing(kind: str, name: str, metric: Metric) -> ValueError:
    return ValueError(f"expected {kind} in metric {name} {metric}")


def _sample_lines(name: str, metric_type: MetricType, metric: Metric) -> Iterator[str]:
    if metric_type is MetricType.COUNTER:
        if metric.counter is None:
            raise _missing("counter", name, metric)
        yield _sample(name, metric, metric.counter.value)
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
            yield _sample(name, metric, q.value, QUANTILE_LABEL, q.quantile)
        yield _sample(name + "_sum", metric, summary.sample_sum)
        yield _sample(name + "_count", metric, float(summary.sample_count))
    elif metric_type is MetricType.HISTOGRAM:
        histogram = metric.histogram
        if histogram is None:
            raise _missing("histogram", name, metric)
        inf_seen = False
        for bucket in histogram.bucket:
            yield _sample(
                name + "_bucket",
                metric,
                float(bucket.cumulative_count),
                BUCKET_LABEL,
                bucket.upper_bound,
            )
            if math.isinf(bucket.upper_bound) and bucket.upper_bound > 0:
                inf_seen = True
        if not inf_seen:
            yield _sample(
                name + "_bucket",
                metric,
                float(histogram.sample_count),
                BUCKET_LABEL,
                math.inf,
            )
        yield _sample(name + "_sum", metric, histogram.sample_sum)
        yield _sample(name + "_count", metric, float(histogram.sample_count))
    else:
        raise ValueError(f"unexpected type in metric {name} {metric}")


def _lines(family: MetricFamily) -> Iterator[str]:
    name = family.name
    if family.help is not None:
        yield f"# HELP {format_name(name)} {escape_string(family.help, False)}\n"
    metric_type: Optional[MetricType]
    try:
        metric_type = MetricType(family.type)
    except ValueError:
        metric_type = None
    type_name = _TYPE_NAMES.get(metric_type) if metric_type is not None else None
    if type_name is None:
        # The TYPE prefix is written before the type is found to be unknown.
        yield f"# TYPE {format_name(name)}"
        raise ValueError(f"unknown metric type {family.type}")
    yield f"# TYPE {format_name(name)} {type_name}\n"
    for metric in family.metric:
        yield from _sample_lines(name, metric_type, metric)


def metric_family_to_text(out: TextIO, family: MetricFamily) -> int:
    """Write the family in text format to ``out`` and return the UTF-8 byte count.

    The input is assumed to be sanitised; only missing metrics, a missing name
    and values that do not match the family type raise ValueError. Output
    produced before an error is still written.
    """
    if not family.metric:
        raise ValueError(f"MetricFamily has no metrics: {family}")
    if not family.name:
        raise ValueError(f"MetricFamily has no name: {family}")

    parts: list[str] = []
    try:
        for line in _lines(family):
            parts.append(line)
    finally:
        text = "".join(parts)
        if text:
            out.write(text)
    return len(text.encode("utf-8"))