# metricexpo

`metricexpo` writes metric families in the common exposition formats. It needs nothing outside the standard library.

It supports three formats:

- the classic line-based text format
- OpenMetrics text
- protobuf `MetricFamily` messages, plain or length-delimited, plus their protobuf text and compact-text renderings

It also checks and escapes metric and label names.

## Installation

```
pip install metricexpo
```

To run the tests:

```
pip install "metricexpo[test]"
pytest
```

## Data model

`metricexpo.model` holds dataclasses that mirror the protobuf `MetricFamily` message:

- `MetricFamily`, which has `name`, `help`, `type`, `metric` and `unit`
- `Metric`, which has `label`, one value field and an optional `timestamp_ms`
- `LabelPair`
- the value kinds: `Counter`, `Gauge`, `Untyped`, `Summary` (with `Quantile`) and `Histogram` (with `Bucket`)
- `Exemplar`
- the `MetricType` enum, numbered as on the wire

Timestamps on exemplars and created timestamps are floats in seconds since the epoch.

`Sample` holds a label dict, a value and a timestamp in milliseconds. `Sample.sort_key()` orders samples by label set and then by timestamp.

The module also defines the label name constants `METRIC_NAME_LABEL` (`__name__`), `QUANTILE_LABEL` (`quantile`) and `BUCKET_LABEL` (`le`).

## Writing text formats

```python
import io

from metricexpo.model import Counter, LabelPair, Metric, MetricFamily, MetricType
from metricexpo.text_create import metric_family_to_text
from metricexpo.openmetrics_create import finalize_openmetrics, metric_family_to_openmetrics

family = MetricFamily(
    name="http_requests_total",
    help="Number of HTTP requests.",
    type=MetricType.COUNTER,
    metric=[Metric(label=[LabelPair(name="code", value="200")], counter=Counter(value=1027))],
)

out = io.StringIO()
metric_family_to_text(out, family)
# # HELP http_requests_total Number of HTTP requests.
# # TYPE http_requests_total counter
# http_requests_total{code="200"} 1027

out = io.StringIO()
metric_family_to_openmetrics(out, family, with_created_lines=False, with_unit=False)
finalize_openmetrics(out)
# # HELP http_requests Number of HTTP requests.
# # TYPE http_requests counter
# http_requests_total{code="200"} 1027.0
# # EOF
```

Both writers write to a text stream and return the number of UTF-8 bytes written. They raise `ValueError` in these cases:

- the family has no name
- the family's type is unknown
- a metric lacks the value that matches the family's type

`metric_family_to_text` also raises `ValueError` when the family has no metrics. Any output produced before an error is still written.

Summaries are written as their quantile lines, then `_sum` and `_count`. Histograms are written as `_bucket`, `_sum` and `_count` lines. A `+Inf` bucket is added when the histogram does not have one.

Names that are not valid legacy names are written quoted, inside the braces. For example, `{"name.with.dots"}`. Label names that are not valid legacy names are written quoted as well.

The OpenMetrics writer differs from the classic text writer in these ways:

- A counter named `*_total` has the suffix dropped from its HELP, TYPE and UNIT lines.
- Any other counter is typed `unknown`, and untyped metrics are typed `unknown` too.
- Finite floats always carry a `.0` or an exponent.
- Exemplars with labels are written after the sample value.
- `with_unit=True` writes a `# UNIT` line and appends the unit to the name when the name lacks it.
- `with_created_lines=True` writes `_created` lines for counters, summaries and histograms that have a created timestamp.

`finalize_openmetrics(out)` writes the closing `# EOF` line.

`metricexpo.floatfmt` exposes the formatting helpers the writers use:

- `format_float` and `format_openmetrics_float` format numbers.
- `escape_string` escapes backslashes and newlines, and double quotes when asked.
- `format_name` writes a name as is, or quoted and escaped when it is not a valid legacy name.

## Protobuf messages

`metricexpo.protowire` works with the protobuf wire form:

- `encode_metric_family(family)` returns the message bytes.
- `decode_metric_family(data)` parses message bytes. It raises `ValueError` on malformed input.
- `write_delimited(out, family)` writes a varint length prefix and the message to a binary stream, and returns the byte count.
- `read_delimited(stream)` reads the next length-prefixed family. It returns `None` at the clean end of the stream.
- `format_text(family, compact=False)` renders a family in protobuf text form, or on one line when `compact` is true.

```python
import io

from metricexpo.protowire import read_delimited, write_delimited

buf = io.BytesIO()
write_delimited(buf, family)
buf.seek(0)
assert read_delimited(buf) == family
assert read_delimited(buf) is None
```

## Names and escaping

`metricexpo.names` checks and escapes names:

- `is_valid_legacy_metric_name(name)` checks a name against the classic pattern.
- `is_valid_metric_name` and `is_valid_label_name` check names under a `ValidationScheme` (`LEGACY` or `UTF8`).
- `is_valid_label_value` checks that a label value is valid UTF-8.
- `to_escaping_scheme(value)` parses an `escaping=` parameter value (`allow-utf-8`, `underscores`, `dots`, `values`) into an `EscapingScheme`. It raises `ValueError` on an empty or unknown value.
- `escape_name(name, scheme)` rewrites a single name.
- `escape_metric_family(family, scheme)` returns a copy of the family with its metric and label names escaped. The input family is left unchanged.

```python
from metricexpo.names import EscapingScheme, escape_name

escape_name("foo.metric", EscapingScheme.VALUES)       # "U__foo_2e_metric"
escape_name("foo.metric", EscapingScheme.UNDERSCORES)  # "foo_metric"
```

## What this package does not do

- It does not parse the classic text format or OpenMetrics text back into metric families.
- It does not negotiate formats from an HTTP `Accept` header, and it does not detect a format from a `Content-Type` header.
- It does not provide encoder or decoder objects that pick a format for you.
- It does not turn families into `Sample` lists.

Choose the writer yourself, and use `read_delimited` to read protobuf streams.