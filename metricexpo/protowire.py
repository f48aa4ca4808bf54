"""Protobuf wire encoding of metric families, plus their protobuf text form."""

from __future__ import annotations

import math
import struct
from typing import BinaryIO, Iterator, Optional, Union

from .floatfmt import format_float
from .model import (
    Bucket,
    Counter,
    Exemplar,
    Gauge,
    Histogram,
    LabelPair,
    Metric,
    MetricFamily,
    MetricType,
    Quantile,
    Summary,
    Untyped,
)

_VARINT = 0
_FIXED64 = 1
_LEN = 2
_FIXED32 = 5

_U64 = 1 << 64


# ---------------------------------------------------------------- writing


def _varint(value: int) -> bytes:
    if value < 0:
        value += _U64
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _tag(number: int, wire_type: int) -> bytes:
    return _varint(number << 3 | wire_type)


def _int_field(number: int, value: int) -> bytes:
    return _tag(number, _VARINT) + _varint(int(value))


def _double_field(number: int, value: float) -> bytes:
    return _tag(number, _FIXED64) + struct.pack("<d", float(value))


def _len_field(number: int, payload: bytes) -> bytes:
    return _tag(number, _LEN) + _varint(len(payload)) + payload


def _str_field(number: int, value: str) -> bytes:
    return _len_field(number, value.encode("utf-8"))


def _timestamp(seconds: float) -> bytes:
    whole = math.floor(seconds)
    nanos = round((seconds - whole) * 1e9)
    if nanos >= 1_000_000_000:
        whole += 1
        nanos -= 1_000_000_000
    out = b""
    if whole:
        out += _int_field(1, whole)
    if nanos:
        out += _int_field(2, nanos)
    return out


def _label(pair: LabelPair) -> bytes:
    return _str_field(1, pair.name) + _str_field(2, pair.value)


def _exemplar(exemplar: Exemplar) -> bytes:
    out = b"".join(_len_field(1, _label(p)) for p in exemplar.label)
    out += _double_field(2, exemplar.value)
    if exemplar.timestamp is not None:
        out += _len_field(3, _timestamp(exemplar.timestamp))
    return out


def _counter(counter: Counter) -> bytes:
    out = _double_field(1, counter.value)
    if counter.exemplar is not None:
        out += _len_field(2, _exemplar(counter.exemplar))
    if counter.created_timestamp is not None:
        out += _len_field(3, _timestamp(counter.created_timestamp))
    return out


def _summary(summary: Summary) -> bytes:
    out = _int_field(1, summary.sample_count) + _double_field(2, summary.sample_sum)
    for q in summary.quantile:
        out += _len_field(3, _double_field(1, q.quantile) + _double_field(2, q.value))
    if summary.created_timestamp is not None:
        out += _len_field(4, _timestamp(summary.created_timestamp))
    return out


def _bucket(bucket: Bucket) -> bytes:
    out = _int_field(1, bucket.cumulative_count) + _double_field(2, bucket.upper_bound)
    if bucket.exemplar is not None:
        out += _len_field(3, _exemplar(bucket.exemplar))
    return out


def _histogram(histogram: Histogram) -> bytes:
    out = _int_field(1, histogram.sample_count) + _double_field(2, histogram.sample_sum)
    out += b"".join(_len_field(3, _bucket(b)) for b in histogram.bucket)
    if histogram.created_timestamp is not None:
        out += _len_field(15, _timestamp(histogram.created_timestamp))
    return out


def _metric(metric: Metric) -> bytes:
    out = b"".join(_len_field(1, _label(p)) for p in metric.label)
    if metric.gauge is not None:
        out += _len_field(2, _double_field(1, metric.gauge.value))
    if metric.counter is not None:
        out += _len_field(3, _counter(metric.counter))
    if metric.summary is not None:
        out += _len_field(4, _summary(metric.summary))
    if metric.untyped is not None:
        out += _len_field(5, _double_field(1, metric.untyped.value))
    if metric.timestamp_ms is not None:
        out += _int_field(6, metric.timestamp_ms)
    if metric.histogram is not None:
        out += _len_field(7, _histogram(metric.histogram))
    return out


def encode_metric_family(family: MetricFamily) -> bytes:
    """Serialise a family as a protobuf message."""
    out = _str_field(1, family.name) if family.name else b""
    if family.help is not None:
        out += _str_field(2, family.help)
    out += _int_field(3, int(family.type))
    out += b"".join(_len_field(4, _metric(m)) for m in family.metric)
    if family.unit is not None:
        out += _str_field(5, family.unit)
    return out


def write_delimited(out: BinaryIO, family: MetricFamily) -> int:
    """Write a length-prefixed message and return the number of bytes written."""
    payload = encode_metric_family(family)
    data = _varint(len(payload)) + payload
    out.write(data)
    return len(data)


# ---------------------------------------------------------------- reading


def _read_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise ValueError("truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result & (_U64 - 1), pos
        shift += 7
        if shift >= 70:
            raise ValueError("varint too long")


def _fields(data: bytes) -> Iterator[tuple[int, int, Union[int, bytes]]]:
    pos = 0
    while pos < len(data):
        key, pos = _read_varint(data, pos)
        number, wire_type = key >> 3, key & 7
        if number == 0:
            raise ValueError("invalid field number 0")
        if wire_type == _VARINT:
            value, pos = _read_varint(data, pos)
            yield number, wire_type, value
            continue
        if wire_type == _FIXED64:
            size = 8
        elif wire_type == _FIXED32:
            size = 4
        elif wire_type == _LEN:
            size, pos = _read_varint(data, pos)
        else:
            raise ValueError(f"unsupported wire type {wire_type}")
        if pos + size > len(data):
            raise ValueError("truncated message")
        yield number, wire_type, data[pos : pos + size]
        pos += size


def _signed(value: int) -> int:
    return value - _U64 if value >= 1 << 63 else value


def _double(wire_type: int, value) -> float:
    if wire_type != _FIXED64:
        raise ValueError("expected a double field")
    return struct.unpack("<d", value)[0]


def _blob(wire_type: int, value) -> bytes:
    if wire_type != _LEN:
        raise ValueError("expected a length-delimited field")
    return value


def _int(wire_type: int, value) -> int:
    if wire_type != _VARINT:
        raise ValueError("expected a varint field")
    return value


def _text(wire_type: int, value) -> str:
    try:
        return _blob(wire_type, value).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ValueError("string field is not valid UTF-8") from exc


def _read_timestamp(data: bytes) -> float:
    seconds = 0
    nanos = 0
    for number, wt, value in _fields(data):
        if number == 1:
            seconds = _signed(_int(wt, value))
        elif number == 2:
            nanos = _signed(_int(wt, value))
    return seconds + nanos / 1e9


def _read_label(data: bytes) -> LabelPair:
    pair = LabelPair()
    for number, wt, value in _fields(data):
        if number == 1:
            pair.name = _text(wt, value)
        elif number == 2:
            pair.value = _text(wt, value)
    return pair


def _read_exemplar(data: bytes) -> Exemplar:
    exemplar = Exemplar()
    for number, wt, value in _fields(data):
        if number == 1:
            exemplar.label.append(_read_label(_blob(wt, value)))
        elif number == 2:
            exemplar.value = _double(wt, value)
        elif number == 3:
            exemplar.timestamp = _read_timestamp(_blob(wt, value))
    return exemplar


def _read_single_value(data: bytes) -> float:
    result = 0.0
    for number, wt, value in _fields(data):
        if number == 1:
            result = _double(wt, value)
    return result


def _read_counter(data: bytes) -> Counter:
    counter = Counter()
    for number, wt, value in _fields(data):
        if number == 1:
            counter.value = _double(wt, value)
        elif number == 2:
            counter.exemplar = _read_exemplar(_blob(wt, value))
        elif number == 3:
            counter.created_timestamp = _read_timestamp(_blob(wt, value))
    return counter


def _read_quantile(data: bytes) -> Quantile:
    q = Quantile()
    for number, wt, value in _fields(data):
        if number == 1:
            q.quantile = _double(wt, value)
        elif number == 2:
            q.value = _double(wt, value)
    return q


def _read_summary(data: bytes) -> Summary:
    summary = Summary()
    for number, wt, value in _fields(data):
        if number == 1:
            summary.sample_count = _int(wt, value)
        elif number == 2:
            summary.sample_sum = _double(wt, value)
        elif number == 3:
            summary.quantile.append(_read_quantile(_blob(wt, value)))
        elif number == 4:
            summary.created_timestamp = _read_timestamp(_blob(wt, value))
    return summary


def _read_bucket(data: bytes) -> Bucket:
    bucket = Bucket()
    for number, wt, value in _fields(data):
        if number == 1:
            bucket.cumulative_count = _int(wt, value)
        elif number == 2:
            bucket.upper_bound = _double(wt, value)
        elif number == 3:
            bucket.exemplar = _read_exemplar(_blob(wt, value))
    return bucket


def _read_histogram(data: bytes) -> Histogram:
    histogram = Histogram()
    for number, wt, value in _fields(data):
        if number == 1:
            histogram.sample_count = _int(wt, value)
        elif number == 2:
            histogram.sample_sum = _double(wt, value)
        elif number == 3:
            histogram.bucket.append(_read_bucket(_blob(wt, value)))
        elif number == 15:
            histogram.created_timestamp = _read_timestamp(_blob(wt, value))
    return histogram


def _read_metric(data: bytes) -> Metric:
    metric = Metric()
    for number, wt, value in _fields(data):
        if number == 1:
            metric.label.append(_read_label(_blob(wt, value)))
        elif number == 2:
            metric.gauge = Gauge(_read_single_value(_blob(wt, value)))
        elif number == 3:
            metric.counter = _read_counter(_blob(wt, value))
        elif number == 4:
            metric.summary = _read_summary(_blob(wt, value))
        elif number == 5:
            metric.untyped = Untyped(_read_single_value(_blob(wt, value)))
        elif number == 6:
            metric.timestamp_ms = _signed(_int(wt, value))
        elif number == 7:
            metric.histogram = _read_histogram(_blob(wt, value))
    return metric


def decode_metric_family(data: bytes) -> MetricFamily:
    """Parse a protobuf message into a family; raises ValueError if malformed."""
    family = MetricFamily()
    for number, wt, value in _fields(bytes(data)):
        if number == 1:
            family.name = _text(wt, value)
        elif number == 2:
            family.help = _text(wt, value)
        elif number == 3:
            raw = _signed(_int(wt, value))
            try:
                family.type = MetricType(raw)
            except ValueError:
                family.type = raw
        elif number == 4:
            family.metric.append(_read_metric(_blob(wt, value)))
        elif number == 5:
            family.unit = _text(wt, value)
    return family


def read_delimited(stream: BinaryIO) -> Optional[MetricFamily]:
    """Read the next length-prefixed family, or None at the clean end of the stream."""
    length = 0
    shift = 0
    first = True
    while True:
        byte = stream.read(1)
        if not byte:
            if first:
                return None
            raise ValueError("truncated length prefix")
        first = False
        length |= (byte[0] & 0x7F) << shift
        if not byte[0] & 0x80:
            break
        shift += 7
        if shift >= 70:
            raise ValueError("length prefix too long")
    payload = stream.read(length) if length else b""
    if len(payload) != length:
        raise ValueError("truncated message")
    return decode_metric_family(payload)


# ---------------------------------------------------------------- text form

_Node = list  # list of (field name, scalar text or nested _Node)


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def _num(value: float) -> str:
    value = float(value)
    if math.isnan(value):
        return "nan"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    return format_float(value)


def _labels_node(labels: list[LabelPair]) -> _Node:
    return [("label", [("name", _quote(p.name)), ("value", _quote(p.value))]) for p in labels]


def _ts_node(seconds: float) -> _Node:
    whole = math.floor(seconds)
    nanos = round((seconds - whole) * 1e9)
    node: _Node = []
    if whole:
        node.append(("seconds", str(whole)))
    if nanos:
        node.append(("nanos", str(nanos)))
    return node


def _exemplar_node(exemplar: Exemplar) -> _Node:
    node = _labels_node(exemplar.label) + [("value", _num(exemplar.value))]
    if exemplar.timestamp is not None:
        node.append(("timestamp", _ts_node(exemplar.timestamp)))
    return node


def _metric_node(metric: Metric) -> _Node:
    node = _labels_node(metric.label)
    if metric.gauge is not None:
        node.append(("gauge", [("value", _num(metric.gauge.value))]))
    if metric.counter is not None:
        c = metric.counter
        sub: _Node = [("value", _num(c.value))]
        if c.exemplar is not None:
            sub.append(("exemplar", _exemplar_node(c.exemplar)))
        if c.created_timestamp is not None:
            sub.append(("created_timestamp", _ts_node(c.created_timestamp)))
        node.append(("counter", sub))
    if metric.summary is not None:
        s = metric.summary
        sub = [("sample_count", str(s.sample_count)), ("sample_sum", _num(s.sample_sum))]
        sub += [
            ("quantile", [("quantile", _num(q.quantile)), ("value", _num(q.value))])
            for q in s.quantile
        ]
        if s.created_timestamp is not None:
            sub.append(("created_timestamp", _ts_node(s.created_timestamp)))
        node.append(("summary", sub))
    if metric.untyped is not None:
        node.append(("untyped", [("value", _num(metric.untyped.value))]))
    if metric.timestamp_ms is not None:
        node.append(("timestamp_ms", str(metric.timestamp_ms)))
    if metric.histogram is not None:
        h = metric.histogram
        sub = [("sample_count", str(h.sample_count)), ("sample_sum", _num(h.sample_sum))]
        for b in h.bucket:
            bnode: _Node = [
                ("cumulative_count", str(b.cumulative_count)),
                ("upper_bound", _num(b.upper_bound)),
            ]
            if b.exemplar is not None:
                bnode.append(("exemplar", _exemplar_node(b.exemplar)))
            sub.append(("bucket", bnode))
        if h.created_timestamp is not None:
            sub.append(("created_timestamp", _ts_node(h.created_timestamp)))
        node.append(("histogram", sub))
    return node


def _family_node(family: MetricFamily) -> _Node:
    node: _Node = []
    if family.name:
        node.append(("name", _quote(family.name)))
    if family.help is not None:
        node.append(("help", _quote(family.help)))
    try:
        node.append(("type", MetricType(family.type).name))
    except ValueError:
        node.append(("type", str(int(family.type))))
    node += [("metric", _metric_node(m)) for m in family.metric]
    if family.unit is not None:
        node.append(("unit", _quote(family.unit)))
    return node


def _render_compact(node: _Node) -> str:
    return " ".join(
        f"{key}:{{{_render_compact(value)}}}" if isinstance(value, list) else f"{key}:{value}"
        for key, value in node
    )


def _render_multi(node: _Node, indent: int) -> Iterator[str]:
    pad = "  " * indent
    for key, value in node:
        if isinstance(value, list):
            yield f"{pad}{key}: {{"
            yield from _render_multi(value, indent + 1)
            yield f"{pad}}}"
        else:
            yield f"{pad}{key}: {value}"


def format_text(family: MetricFamily, compact: bool = False) -> str:
    """Protobuf text form of a family, on one line when ``compact``."""
    node = _family_node(family)
    if compact:
        return _render_compact(node)
    return "\n".join(_render_multi(node, 0))