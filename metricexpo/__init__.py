"""Write metrics as classic text or OpenMetrics, handle protobuf MetricFamily messages, and escape names."""

__version__ = "0.1.0"

__all__ = [
    "floatfmt",
    "model",
    "names",
    "openmetrics_create",
    "protowire",
    "text_create",
]