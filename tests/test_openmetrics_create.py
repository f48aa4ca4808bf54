import io
import math

import pytest

from metricexpo.model import (
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
from metricexpo.openmetrics_create import finalize_openmetrics, metric_family_to_openmetrics

TS = 12345.6


def labels(*pairs):
    return [LabelPair(name, value) for name, value in pairs]


def buckets(with_inf=True):
    result = [
        Bucket(cumulative_count=123, upper_bound=100),
        Bucket(cumulative_count=412, upper_bound=120),
        Bucket(cumulative_count=592, upper_bound=144),
        Bucket(cumulative_count=1524, upper_bound=172.8),
    ]
    if with_inf:
        result.append(Bucket(cumulative_count=2693, upper_bound=math.inf))
    return result


def counter_pair(name):
    return MetricFamily(
        name=name,
        help="boring help",
        type=MetricType.COUNTER,
        metric=[
            Metric(label=labels(("labelname", "val1"), ("basename", "basevalue")), counter=Counter(42)),
            Metric(
                label=labels(("labelname", "val2"), ("basename", "basevalue")),
                counter=Counter(0.23),
                timestamp_ms=1234567890,
            ),
        ],
    )


def gauge_family(name, name1, name2):
    return MetricFamily(
        name=name,
        help='gauge\ndoc\nstr"ing',
        type=MetricType.GAUGE,
        metric=[
            Metric(
                label=labels((name1, "val with\nnew line"), (name2, 'val with \\backslash and "quotes"')),
                gauge=Gauge(math.inf),
            ),
            Metric(label=labels((name1, "Björn"), (name2, "佖佥")), gauge=Gauge(3.14e42)),
        ],
    )


def scenario_0():
    family = counter_pair("name")
    family.help = "two-line\n doc  str\\ing"
    return family, {}, r'''# HELP name two-line\n doc  str\\ing
# TYPE name unknown
name{labelname="val1",basename="basevalue"} 42.0
name{labelname="val2",basename="basevalue"} 0.23 1.23456789e+06
'''


def scenario_1():
    return counter_pair("name.with.dots"), {}, r'''# HELP "name.with.dots" boring help
# TYPE "name.with.dots" unknown
{"name.with.dots",labelname="val1",basename="basevalue"} 42.0
{"name.with.dots",labelname="val2",basename="basevalue"} 0.23 1.23456789e+06
'''


def scenario_2():
    family = MetricFamily(
        name="name.with.dots",
        help="boring help",
        type=MetricType.COUNTER,
        metric=[Metric(counter=Counter(42)), Metric(counter=Counter(0.23), timestamp_ms=1234567890)],
    )
    return family, {}, r'''# HELP "name.with.dots" boring help
# TYPE "name.with.dots" unknown
{"name.with.dots"} 42.0
{"name.with.dots"} 0.23 1.23456789e+06
'''


def scenario_3():
    return gauge_family("gauge_name", "name_1", "name_2"), {}, r'''# HELP gauge_name gauge\ndoc\nstr\"ing
# TYPE gauge_name gauge
gauge_name{name_1="val with\nnew line",name_2="val with \\backslash and \"quotes\""} +Inf
gauge_name{name_1="Björn",name_2="佖佥"} 3.14e+42
'''


def scenario_4():
    return gauge_family('gauge.name"', "name.1", "name*2"), {}, r'''# HELP "gauge.name\"" gauge\ndoc\nstr\"ing
# TYPE "gauge.name\"" gauge
{"gauge.name\"","name.1"="val with\nnew line","name*2"="val with \\backslash and \"quotes\""} +Inf
{"gauge.name\"","name.1"="Björn","name*2"="佖佥"} 3.14e+42
'''


def scenario_5():
    family = MetricFamily(
        name="unknown_name",
        type=MetricType.UNTYPED,
        metric=[
            Metric(untyped=Untyped(-math.inf)),
            Metric(label=labels(("name_1", "value 1")), untyped=Untyped(-1.23e-45)),
        ],
    )
    return family, {}, '''# TYPE unknown_name unknown
unknown_name -Inf
unknown_name{name_1="value 1"} -1.23e-45
'''


def scenario_6():
    family = MetricFamily(
        name="summary_name",
        help="summary docstring",
        type=MetricType.SUMMARY,
        metric=[
            Metric(
                summary=Summary(
                    sample_count=42,
                    sample_sum=-3.4567,
                    quantile=[Quantile(0.5, -1.23), Quantile(0.9, 0.2342354), Quantile(0.99, 0)],
                    created_timestamp=TS,
                )
            ),
            Metric(
                label=labels(("name_1", "value 1"), ("name_2", "value 2")),
                summary=Summary(
                    sample_count=4711,
                    sample_sum=2010.1971,
                    quantile=[Quantile(0.5, 1), Quantile(0.9, 2), Quantile(0.99, 3)],
                    created_timestamp=TS,
                ),
            ),
        ],
    )
    return family, {"with_created_lines": True}, '''# HELP summary_name summary docstring
# TYPE summary_name summary
summary_name{quantile="0.5"} -1.23
summary_name{quantile="0.9"} 0.2342354
summary_name{quantile="0.99"} 0.0
summary_name_sum -3.4567
summary_name_count 42
summary_name_created 12345.6
summary_name{name_1="value 1",name_2="value 2",quantile="0.5"} 1.0
summary_name{name_1="value 1",name_2="value 2",quantile="0.9"} 2.0
summary_name{name_1="value 1",name_2="value 2",quantile="0.99"} 3.0
summary_name_sum{name_1="value 1",name_2="value 2"} 2010.1971
summary_name_count{name_1="value 1",name_2="value 2"} 4711
summary_name_created{name_1="value 1",name_2="value 2"} 12345.6
'''


HISTOGRAM_BODY = '''request_duration_microseconds_bucket{le="100.0"} 123
request_duration_microseconds_bucket{le="120.0"} 412
request_duration_microseconds_bucket{le="144.0"} 592
request_duration_microseconds_bucket{le="172.8"} 1524
request_duration_microseconds_bucket{le="+Inf"} 2693
request_duration_microseconds_sum 1.7560473e+06
request_duration_microseconds_count 2693
'''

HISTOGRAM_HEAD = '''# HELP request_duration_microseconds The response latency.
# TYPE request_duration_microseconds histogram
'''


def histogram_family(bucket_list, unit=None, created=None):
    return MetricFamily(
        name="request_duration_microseconds",
        help="The response latency.",
        type=MetricType.HISTOGRAM,
        unit=unit,
        metric=[
            Metric(
                histogram=Histogram(
                    sample_count=2693,
                    sample_sum=1756047.3,
                    bucket=bucket_list,
                    created_timestamp=created,
                )
            )
        ],
    )


def scenario_7():
    family = histogram_family(buckets(), unit="microseconds", created=TS)
    expected = (
        HISTOGRAM_HEAD
        + "# UNIT request_duration_microseconds microseconds\n"
        + HISTOGRAM_BODY
        + "request_duration_microseconds_created 12345.6\n"
    )
    return family, {"with_created_lines": True, "with_unit": True}, expected


def scenario_8():
    return histogram_family(buckets(False), unit="microseconds"), {}, HISTOGRAM_HEAD + HISTOGRAM_BODY


def scenario_9():
    bucket_list = buckets(False)
    bucket_list[1].exemplar = Exemplar(label=labels(("foo", "bar")), value=119.9, timestamp=TS)
    bucket_list[2].exemplar = Exemplar(label=labels(("foo", "baz"), ("dings", "bums")), value=140.14)
    expected = HISTOGRAM_HEAD + '''request_duration_microseconds_bucket{le="100.0"} 123
request_duration_microseconds_bucket{le="120.0"} 412 # {foo="bar"} 119.9 12345.6
request_duration_microseconds_bucket{le="144.0"} 592 # {foo="baz",dings="bums"} 140.14
request_duration_microseconds_bucket{le="172.8"} 1524
request_duration_microseconds_bucket{le="+Inf"} 2693
request_duration_microseconds_sum 1.7560473e+06
request_duration_microseconds_count 2693
'''
    return histogram_family(bucket_list), {}, expected


def foos(counter):
    return MetricFamily(
        name="foos_total", help="Number of foos.", type=MetricType.COUNTER, metric=[Metric(counter=counter)]
    )


FOOS = '''# HELP foos Number of foos.
# TYPE foos counter
foos_total 42.0
'''


def scenario_10():
    return foos(Counter(42, created_timestamp=TS)), {"with_created_lines": True}, FOOS + "foos_created 12345.6\n"


def scenario_11():
    return foos(Counter(42, created_timestamp=TS)), {}, FOOS


def scenario_12():
    family = MetricFamily(name="name_total", help="doc string", type=MetricType.COUNTER)
    return family, {}, "# HELP name doc string\n# TYPE name counter\n"


def scenario_13():
    counter = Counter(42, exemplar=Exemplar(label=[], value=1, timestamp=TS))
    return foos(counter), {}, FOOS


def scenario_14():
    family = MetricFamily(name="name_seconds_total", help="doc string", type=MetricType.COUNTER, unit="seconds")
    return family, {"with_unit": True}, '''# HELP name_seconds doc string
# TYPE name_seconds counter
# UNIT name_seconds seconds
'''


def scenario_15():
    return histogram_family(buckets(), unit="microseconds"), {}, HISTOGRAM_HEAD + HISTOGRAM_BODY


def scenario_16():
    family = MetricFamily(name="name_total", help="doc string", type=MetricType.COUNTER, unit="seconds")
    return family, {"with_unit": True}, '''# HELP name_seconds doc string
# TYPE name_seconds counter
# UNIT name_seconds seconds
'''


def scenario_17():
    family = MetricFamily(name="name_total", help="doc string", type=MetricType.COUNTER)
    return family, {"with_unit": True}, "# HELP name doc string\n# TYPE name counter\n"


def scenario_18():
    family = counter_pair("some_measure_total")
    family.help = "some testing measurement"
    family.unit = "seconds"
    return family, {"with_unit": True}, '''# HELP some_measure_seconds some testing measurement
# TYPE some_measure_seconds counter
# UNIT some_measure_seconds seconds
some_measure_seconds_total{labelname="val1",basename="basevalue"} 42.0
some_measure_seconds_total{labelname="val2",basename="basevalue"} 0.23 1.23456789e+06
'''


SCENARIOS = [
    scenario_0, scenario_1, scenario_2, scenario_3, scenario_4, scenario_5, scenario_6,
    scenario_7, scenario_8, scenario_9, scenario_10, scenario_11, scenario_12, scenario_13,
    scenario_14, scenario_15, scenario_16, scenario_17, scenario_18,
]


@pytest.mark.parametrize("make", SCENARIOS, ids=[s.__name__ for s in SCENARIOS])
def test_create_openmetrics(make):
    family, options, expected = make()
    out = io.StringIO()
    written = metric_family_to_openmetrics(out, family, **options)
    assert out.getvalue() == expected
    assert written == len(expected.encode("utf-8"))


def test_input_family_is_not_modified():
    family, options, _ = scenario_18()
    metric_family_to_openmetrics(io.StringIO(), family, **options)
    assert family.name == "some_measure_total"


def test_error_no_metric_name():
    family = MetricFamily(
        help="doc string", type=MetricType.UNTYPED, metric=[Metric(untyped=Untyped(-math.inf))]
    )
    with pytest.raises(ValueError, match=r"^MetricFamily has no name"):
        metric_family_to_openmetrics(io.StringIO(), family)


def test_error_wrong_type():
    family = MetricFamily(
        name="name", help="doc string", type=MetricType.COUNTER, metric=[Metric(untyped=Untyped(-math.inf))]
    )
    with pytest.raises(ValueError, match=r"^expected counter in metric"):
        metric_family_to_openmetrics(io.StringIO(), family)


def test_error_unknown_metric_type():
    family = MetricFamily(name="name", type=42, metric=[Metric(gauge=Gauge(1))])
    out = io.StringIO()
    with pytest.raises(ValueError, match=r"^unknown metric type"):
        metric_family_to_openmetrics(out, family)
    assert out.getvalue() == "# TYPE name"


def test_error_exemplar_timestamp_out_of_range():
    counter = Counter(42, exemplar=Exemplar(label=labels(("a", "b")), value=1, timestamp=1e20))
    with pytest.raises(ValueError, match="out of range"):
        metric_family_to_openmetrics(io.StringIO(), foos(counter))


def test_counter_exemplar_written():
    counter = Counter(42, exemplar=Exemplar(label=labels(("trace", "abc")), value=1))
    out = io.StringIO()
    metric_family_to_openmetrics(out, foos(counter))
    assert out.getvalue().splitlines()[-1] == 'foos_total 42.0 # {trace="abc"} 1.0'


def test_finalize_openmetrics():
    out = io.StringIO()
    assert finalize_openmetrics(out) == 6
    assert out.getvalue() == "# EOF\n"