import time

import pytest

from secretsanta import metrics
from secretsanta.metrics import (
    REGISTRY,
    AlreadyRegisteredError,
    Counter,
    Gauge,
    Histogram,
    Registry,
    Timer,
)


def _value(series):
    for line in REGISTRY.expose().splitlines():
        if line.startswith(series + " "):
            return float(line.rsplit(" ", 1)[1])
    raise AssertionError(f"series {series} not exposed")


def _exposed(series):
    return any(line.startswith(series + " ") for line in REGISTRY.expose().splitlines())


def test_fresh_registry_counter_exposition():
    registry = Registry()
    counter = Counter(
        "requests_total", "Total API requests", ["operation", "status"], namespace="x"
    )
    registry.register(counter)
    counter.labels("get", "ok").inc()
    counter.labels("get", "ok").inc(2)
    assert registry.expose() == (
        "# HELP x_requests_total Total API requests\n"
        "# TYPE x_requests_total counter\n"
        'x_requests_total{operation="get",status="ok"} 3\n'
    )


def test_unlabeled_metric_exposed_at_zero_and_empty_vec_hidden():
    registry = Registry()
    registry.register(Gauge("up", "Up"), Counter("hits", "Hits", ["path"]))
    assert registry.expose() == "# HELP up Up\n# TYPE up gauge\nup 0\n"


def test_histogram_exposition():
    registry = Registry()
    histogram = Histogram("latency", "Latency", buckets=[1, 2])
    registry.register(histogram)
    histogram.observe(1.5)
    assert registry.expose() == (
        "# HELP latency Latency\n"
        "# TYPE latency histogram\n"
        'latency_bucket{le="1"} 0\n'
        'latency_bucket{le="2"} 1\n'
        'latency_bucket{le="+Inf"} 1\n'
        "latency_sum 1.5\n"
        "latency_count 1\n"
    )


@pytest.mark.parametrize(
    "value, text", [(1e6, "1e+06"), (0.5, "0.5"), (100, "100"), (0.00001, "1e-05")]
)
def test_gauge_float_formatting(value, text):
    registry = Registry()
    gauge = Gauge("g", "G")
    registry.register(gauge)
    gauge.set(value)
    assert registry.expose().splitlines()[-1] == f"g {text}"


def test_label_value_escaping():
    registry = Registry()
    gauge = Gauge("g", "G", ["k"])
    registry.register(gauge)
    gauge.labels('a"b\\c\n').set(1)
    assert registry.expose().splitlines()[-1] == 'g{k="a\\"b\\\\c\\n"} 1'


def test_duplicate_registration_raises():
    with pytest.raises(AlreadyRegisteredError):
        REGISTRY.register(metrics.SUCCESS_GENERATION_TOTAL)


def test_wrong_label_count_raises():
    with pytest.raises(ValueError):
        Counter("c", "C", ["a", "b"]).labels("only-one")


def test_labeled_metric_without_labels_raises():
    with pytest.raises(ValueError):
        Counter("c", "C", ["a"]).inc()


def test_counter_rejects_negative():
    with pytest.raises(ValueError):
        Counter("c", "C").inc(-1)


def test_timer_reports_same_duration():
    seen = []
    timer = Timer(seen.append)
    elapsed = timer.observe_duration()
    assert elapsed >= 0
    assert seen == [elapsed]


def test_record_successful_generation():
    metrics.record_successful_generation("ss-ok", "ns-m")
    labels = '{namespace="ns-m",secretsanta="ss-ok"}'
    assert _value("secretsanta_controller_success_generation_total" + labels) == 1
    assert _value("secretsanta_secret_generation_status" + labels) == 1


def test_record_failed_generation():
    metrics.record_failed_generation("ss-bad", "ns-m", "boom")
    assert (
        _value(
            'secretsanta_controller_failed_generation_total'
            '{namespace="ns-m",reason="boom",secretsanta="ss-bad"}'
        )
        == 1
    )
    assert _value('secretsanta_secret_generation_status{namespace="ns-m",secretsanta="ss-bad"}') == 0


def test_record_secret_skipped():
    metrics.record_secret_skipped("ss-skip", "ns-m")
    metrics.record_secret_skipped("ss-skip", "ns-m")
    assert (
        _value('secretsanta_controller_secrets_skipped_total{namespace="ns-m",secretsanta="ss-skip"}')
        == 2
    )


def test_template_validation_failures_share_counter():
    metrics.record_template_validation_failed("ss-tpl", "ns-m")
    metrics.record_template_validation_error("ss-tpl", "ns-m")
    assert (
        _value(
            'secretsanta_controller_template_validation_failed_total'
            '{namespace="ns-m",secretsanta="ss-tpl"}'
        )
        == 2
    )


def test_record_generator_execution():
    metrics.record_generator_execution("random_uuid", "success")
    assert (
        _value('secretsanta_generator_executions_total{generator_type="random_uuid",status="success"}')
        == 1
    )


def test_kubernetes_client_failure_counted_separately():
    metrics.record_kubernetes_client_request("get-fail", "failed")
    metrics.record_kubernetes_client_request("get-ok", "success")
    assert (
        _value('secretsanta_kubernetes_client_requests_total{operation="get-fail",status="failed"}')
        == 1
    )
    assert _value('secretsanta_kubernetes_client_fail_total{operation="get-fail"}') == 1
    assert not _exposed('secretsanta_kubernetes_client_fail_total{operation="get-ok"}')


def test_record_loop_duration_accumulates():
    before = _value("secretsanta_controller_loop_seconds_total")
    metrics.record_loop_duration(2.5)
    assert _value("secretsanta_controller_loop_seconds_total") == pytest.approx(before + 2.5)


def test_generator_timer_observes_histogram():
    metrics.new_generator_timer("timer-gen").observe_duration()
    assert _value('secretsanta_generator_response_time_seconds_count{generator_type="timer-gen"}') == 1
    assert (
        _value('secretsanta_generator_response_time_seconds_bucket{generator_type="timer-gen",le="+Inf"}')
        == 1
    )


def test_update_last_reconciliation_time():
    metrics.update_last_reconciliation_time()
    assert abs(_value("secretsanta_last_reconciliation_timestamp_seconds") - time.time()) < 60


def test_update_reconciliation_status_flips():
    metrics.update_reconciliation_status(True)
    assert _value('secretsanta_reconciliation_status{status="success"}') == 1
    assert _value('secretsanta_reconciliation_status{status="failure"}') == 0
    metrics.update_reconciliation_status(False)
    assert _value('secretsanta_reconciliation_status{status="success"}') == 0
    assert _value('secretsanta_reconciliation_status{status="failure"}') == 1


def test_update_managed_secrets_count():
    metrics.update_managed_secrets_count(7)
    assert _value("secretsanta_managed_secrets_total") == 7


def test_reconcile_timer_and_completion():
    labels = '{secretsanta_name="rec",secretsanta_namespace="ns-m"}'
    timer = metrics.new_reconcile_timer("rec", "ns-m")
    assert _value("secretsanta_controller_reconcile_active" + labels) == 1
    elapsed = timer.observe_duration()
    assert _value("secretsanta_controller_last_reconcile_duration_seconds" + labels) == pytest.approx(elapsed)
    metrics.record_reconcile_complete("rec", "ns-m", 4.5)
    assert _value("secretsanta_controller_reconcile_active" + labels) == 0
    assert _value("secretsanta_controller_last_reconcile_duration_seconds" + labels) == 4.5


def test_record_reconcile_error():
    metrics.record_reconcile_error("rec-err", "ns-m", "oops")
    assert (
        _value('secretsanta_controller_sync_error_count{secretsanta_name="rec-err",secretsanta_namespace="ns-m"}')
        == 1
    )
    assert (
        _value(
            'secretsanta_controller_failed_generation_total'
            '{namespace="ns-m",reason="oops",secretsanta="rec-err"}'
        )
        == 1
    )


def test_record_secret_generated():
    metrics.record_secret_generated("gen", "ns-m", "Opaque")
    assert (
        _value('secretsanta_controller_sync_call_count{secretsanta_name="gen",secretsanta_namespace="ns-m"}')
        == 1
    )
    assert (
        _value('secretsanta_controller_success_generation_total{namespace="ns-m",secretsanta="gen"}')
        == 1
    )


def test_update_secret_instances():
    metrics.update_secret_instances("inst", "ns-m", 3)
    assert (
        _value('secretsanta_controller_secrets_instances{secretsanta_name="inst",secretsanta_namespace="ns-m"}')
        == 3
    )