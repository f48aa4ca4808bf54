"""Data model for metric families and the samples extracted from them."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional

METRIC_NAME_LABEL = "__name__"
QUANTILE_LABEL = "quantile"
BUCKET_LABEL = "le"


class MetricType(enum.IntEnum):
    """Type of a metric family, numbered as on the protobuf wire."""

    COUNTER = 0
    GAUGE = 1
    SUMMARY = 2
    UNTYPED = 3
    HISTOGRAM = 4
    GAUGE_HISTOGRAM = 5


@dataclass
class LabelPair:
    """A single label name and value."""

    name: str = ""
    value: str = ""


@dataclass
class Exemplar:
    """An exemplar attached to a counter or a histogram bucket.

    ``timestamp`` is in seconds since the epoch, or None when absent.
    """

    label: list[LabelPair] = field(default_factory=list)
    value: float = 0.0
    timestamp: Optional[float] = None


@dataclass
class Counter:
    """Counter value; ``created_timestamp`` is in seconds since the epoch."""

    value: float = 0.0
    exemplar: Optional[Exemplar] = None
    created_timestamp: Optional[float] = None


@dataclass
class Gauge:
    """Gauge value."""

    value: float = 0.0


@dataclass
class Untyped:
    """Value of a metric without a declared type."""

    value: float = 0.0


@dataclass
class Quantile:
    """One quantile of a summary."""

    quantile: float = 0.0
    value: float = 0.0


@dataclass
class Summary:
    """Summary with its quantiles, sum and count."""

    sample_count: int = 0
    sample_sum: float = 0.0
    quantile: list[Quantile] = field(default_factory=list)
    created_timestamp: Optional[float] = None


@dataclass
class Bucket:
    """One cumulative histogram bucket."""

    cumulative_count: int = 0
    upper_bound: float = 0.0
    exemplar: Optional[Exemplar] = None


@dataclass
class Histogram:
    """Classic histogram with its buckets, sum and count."""

    sample_count: int = 0
    sample_sum: float = 0.0
    bucket: list[Bucket] = field(default_factory=list)
    created_timestamp: Optional[float] = None


@dataclass
class Metric:
    """One labelled series of a metric family."""

    label: list[LabelPair] = field(default_factory=list)
    gauge: Optional[Gauge] = None
    counter: Optional[Counter] = None
    summary: Optional[Summary] = None
    untyped: Optional[Untyped] = None
    histogram: Optional[Histogram] = None
    timestamp_ms: Optional[int] = None


@dataclass
class MetricFamily:
    """A named group of metrics sharing help text, type and unit.

    ``type`` is normally a :class:`MetricType`; a plain int stands for a type
    this package does not know. ``help`` and ``unit`` are None when absent.
    """

    name: str = ""
    help: Optional[str] = None
    type: int = MetricType.COUNTER
    metric: list[Metric] = field(default_factory=list)
    unit: Optional[str] = None


@dataclass
class Sample:
    """A single value of a series at a timestamp in milliseconds."""

    metric: dict[str, str]
    value: float
    timestamp: int = 0

    def sort_key(self) -> tuple:
        """Key ordering samples by their label sets, then by timestamp."""
        return (tuple(sorted(self.metric.items())), self.timestamp)