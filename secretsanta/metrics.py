"""Operational metrics and a small registry that renders the text exposition format."""

from __future__ import annotations

import bisect
import copy
import math
import threading
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Iterable, Iterator

NAMESPACE = "secretsanta"
CONTROLLER_SUBSYSTEM = "controller"
GENERATOR_SUBSYSTEM = "generator"
KUBERNETES_CLIENT_SUBSYSTEM = "kubernetes_client"

DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

_Sample = tuple[str, list[tuple[str, str]], float]


class AlreadyRegisteredError(ValueError):
    """Raised when a metric name is registered twice."""


def _full_name(namespace: str, subsystem: str, name: str) -> str:
    if not name:
        raise ValueError("metric name must not be empty")
    return "_".join(part for part in (namespace, subsystem, name) if part)


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    dec = Decimal(repr(float(value))).normalize()
    if dec == 0:
        return "0"
    sign, digits, exponent = dec.as_tuple()
    mantissa = "".join(map(str, digits))
    count = len(mantissa)
    point = count + exponent
    exp10 = point - 1
    prefix = "-" if sign else ""
    if exp10 < -4 or exp10 >= 6:
        body = mantissa[0] + ("." + mantissa[1:] if count > 1 else "")
        return f"{prefix}{body}e{'+' if exp10 >= 0 else '-'}{abs(exp10):02d}"
    if point <= 0:
        return f"{prefix}0.{'0' * -point}{mantissa}"
    if point >= count:
        return f"{prefix}{mantissa}{'0' * (point - count)}"
    return f"{prefix}{mantissa[:point]}.{mantissa[point:]}"


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def _format_labels(labels: list[tuple[str, str]]) -> str:
    if not labels:
        return ""
    body = ",".join(f'{name}="{_escape_label(value)}"' for name, value in labels)
    return "{" + body + "}"


class _Metric:
    _kind = "untyped"

    def __init__(
        self,
        name: str,
        documentation: str,
        labelnames: Iterable[str] = (),
        *,
        namespace: str = "",
        subsystem: str = "",
    ) -> None:
        self.name = _full_name(namespace, subsystem, name)
        self.documentation = documentation
        self.labelnames = tuple(labelnames)
        self._lock = threading.Lock()
        self._children: dict[tuple[str, ...], Any] = {}
        self._bound: tuple[str, ...] | None = None
        if not self.labelnames:
            self._bound = ()
            self._children[()] = self._new_state()

    def _new_state(self) -> Any:
        return [0.0]

    def _child(self, args: tuple[Any, ...]):
        if self.labelnames and self._bound is not None:
            raise ValueError(f"{self.name}: labels already bound")
        if len(args) != len(self.labelnames):
            raise ValueError(
                f"{self.name}: expected {len(self.labelnames)} label values, got {len(args)}"
            )
        key = tuple(str(value) for value in args)
        with self._lock:
            self._children.setdefault(key, self._new_state())
        child = copy.copy(self)
        child._bound = key
        return child

    def _state(self) -> Any:
        if self._bound is None:
            raise ValueError(f"{self.name}: label values required, call labels() first")
        return self._children[self._bound]

    def _state_samples(self, labels: list[tuple[str, str]], state: Any) -> list[_Sample]:
        return [(self.name, labels, state[0])]

    def _samples(self) -> Iterator[_Sample]:
        with self._lock:
            collected = []
            for key, state in sorted(self._children.items()):
                labels = sorted(zip(self.labelnames, key))
                collected.extend(self._state_samples(labels, state))
        yield from collected


class Counter(_Metric):
    """A monotonically increasing value."""

    _kind = "counter"

    def labels(self, *args: Any) -> "Counter":
        """Return the child series for the given label values, creating it."""
        return self._child(args)

    def inc(self, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError(f"{self.name}: counters can only increase")
        with self._lock:
            self._state()[0] += amount


class Gauge(_Metric):
    """A value that can go up and down."""

    _kind = "gauge"

    def labels(self, *args: Any) -> "Gauge":
        """Return the child series for the given label values, creating it."""
        return self._child(args)

    def set(self, value: float) -> None:
        with self._lock:
            self._state()[0] = float(value)

    def inc(self, amount: float = 1.0) -> None:
        with self._lock:
            self._state()[0] += amount

    def set_to_current_time(self) -> None:
        self.set(time.time())


@dataclass
class _HistogramState:
    counts: list[int]
    total: float = 0.0
    count: int = 0


class Histogram(_Metric):
    """Observations counted into cumulative buckets."""

    _kind = "histogram"

    def __init__(
        self,
        name: str,
        documentation: str,
        labelnames: Iterable[str] = (),
        *,
        namespace: str = "",
        subsystem: str = "",
        buckets: Iterable[float] = DEFAULT_BUCKETS,
    ) -> None:
        bounds = tuple(float(b) for b in buckets if not math.isinf(b))
        if any(a >= b for a, b in zip(bounds, bounds[1:])):
            raise ValueError("histogram buckets must be strictly increasing")
        self.buckets = bounds
        super().__init__(
            name, documentation, labelnames, namespace=namespace, subsystem=subsystem
        )

    def labels(self, *args: Any) -> "Histogram":
        """Return the child series for the given label values, creating it."""
        return self._child(args)

    def _new_state(self) -> _HistogramState:
        return _HistogramState(counts=[0] * len(self.buckets))

    def observe(self, value: float) -> None:
        with self._lock:
            state = self._state()
            index = bisect.bisect_left(self.buckets, value)
            if index < len(self.buckets):
                state.counts[index] += 1
            state.total += value
            state.count += 1

    def _state_samples(
        self, labels: list[tuple[str, str]], state: _HistogramState
    ) -> list[_Sample]:
        samples: list[_Sample] = []
        running = 0
        for bound, hits in zip(self.buckets, state.counts):
            running += hits
            samples.append(
                (f"{self.name}_bucket", [*labels, ("le", _format_float(bound))], running)
            )
        samples.append((f"{self.name}_bucket", [*labels, ("le", "+Inf")], state.count))
        samples.append((f"{self.name}_sum", labels, state.total))
        samples.append((f"{self.name}_count", labels, state.count))
        return samples


class Timer:
    """Measures elapsed time and hands it to an observer."""

    def __init__(self, observer: Callable[[float], None]) -> None:
        self._observer = observer
        self._start = time.perf_counter()

    def observe_duration(self) -> float:
        elapsed = time.perf_counter() - self._start
        self._observer(elapsed)
        return elapsed

    def __enter__(self) -> "Timer":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.observe_duration()


class Registry:
    """A named collection of metrics."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._metrics: dict[str, _Metric] = {}

    def register(self, *args: _Metric) -> None:
        with self._lock:
            for metric in args:
                if metric.name in self._metrics:
                    raise AlreadyRegisteredError(
                        f"metric {metric.name} is already registered"
                    )
                self._metrics[metric.name] = metric

    def expose(self) -> str:
        """Render every registered metric in the text exposition format."""
        with self._lock:
            metrics = sorted(self._metrics.values(), key=lambda m: m.name)
        lines: list[str] = []
        for metric in metrics:
            samples = list(metric._samples())
            if not samples:
                continue
            lines.append(f"# HELP {metric.name} {_escape_help(metric.documentation)}")
            lines.append(f"# TYPE {metric.name} {metric._kind}")
            for sample_name, labels, value in samples:
                lines.append(f"{sample_name}{_format_labels(labels)} {_format_float(value)}")
        return "".join(line + "\n" for line in lines)


SUCCESS_GENERATION_TOTAL = Counter(
    "success_generation_total", "Successful secret generations",
    ["secretsanta", "namespace"], namespace=NAMESPACE, subsystem=CONTROLLER_SUBSYSTEM,
)
FAILED_GENERATION_TOTAL = Counter(
    "failed_generation_total", "Failed secret generations",
    ["secretsanta", "namespace", "reason"], namespace=NAMESPACE, subsystem=CONTROLLER_SUBSYSTEM,
)
LOOP_SECONDS_TOTAL = Counter(
    "loop_seconds_total", "Total seconds spent in processing loops",
    namespace=NAMESPACE, subsystem=CONTROLLER_SUBSYSTEM,
)
SECRETS_SKIPPED_TOTAL = Counter(
    "secrets_skipped_total", "Secrets skipped (already exist)",
    ["secretsanta", "namespace"], namespace=NAMESPACE, subsystem=CONTROLLER_SUBSYSTEM,
)
TEMPLATE_VALIDATION_FAILED_TOTAL = Counter(
    "template_validation_failed_total", "Template validation failures",
    ["secretsanta", "namespace"], namespace=NAMESPACE, subsystem=CONTROLLER_SUBSYSTEM,
)
GENERATOR_EXECUTIONS_TOTAL = Counter(
    "executions_total", "Total generator executions",
    ["generator_type", "status"], namespace=NAMESPACE, subsystem=GENERATOR_SUBSYSTEM,
)
GENERATOR_RESPONSE_TIME = Histogram(
    "response_time_seconds", "Generator execution times",
    ["generator_type"], namespace=NAMESPACE, subsystem=GENERATOR_SUBSYSTEM,
    buckets=DEFAULT_BUCKETS,
)
KUBERNETES_CLIENT_FAIL_TOTAL = Counter(
    "fail_total", "Failed API requests",
    ["operation"], namespace=NAMESPACE, subsystem=KUBERNETES_CLIENT_SUBSYSTEM,
)
KUBERNETES_CLIENT_REQUESTS_TOTAL = Counter(
    "requests_total", "Total API requests",
    ["operation", "status"], namespace=NAMESPACE, subsystem=KUBERNETES_CLIENT_SUBSYSTEM,
)
LAST_RECONCILIATION_TIME = Gauge(
    "last_reconciliation_timestamp_seconds", "Last reconciliation timestamp",
    namespace=NAMESPACE,
)
RECONCILIATION_STATUS = Gauge(
    "reconciliation_status", "Reconciliation status (1=success, 0=failure)",
    ["status"], namespace=NAMESPACE,
)
MANAGED_SECRETS_TOTAL = Gauge(
    "managed_secrets_total", "Total managed SecretSanta resources", namespace=NAMESPACE,
)
SECRET_GENERATION_STATUS = Gauge(
    "secret_generation_status", "Secret generation status (1=generated, 0=failed)",
    ["secretsanta", "namespace"], namespace=NAMESPACE,
)

_SIMPLE_LABELS = ["secretsanta_name", "secretsanta_namespace"]

SYNC_CALL_COUNT = Counter(
    "controller_sync_call_count", "The number of reconciliation loops made by a controller",
    _SIMPLE_LABELS, subsystem="secretsanta",
)
SYNC_ERROR_COUNT = Counter(
    "controller_sync_error_count", "The number of failed reconciliation loops",
    _SIMPLE_LABELS, subsystem="secretsanta",
)
LAST_RECONCILE_DURATION = Gauge(
    "controller_last_reconcile_duration_seconds", "Duration of the last reconcile operation",
    _SIMPLE_LABELS, subsystem="secretsanta",
)
RECONCILE_ACTIVE = Gauge(
    "controller_reconcile_active", "Shows if Reconcile loop is running",
    _SIMPLE_LABELS, subsystem="secretsanta",
)
SECRET_INSTANCES = Gauge(
    "controller_secrets_instances", "The number of desired secret instances",
    _SIMPLE_LABELS, subsystem="secretsanta",
)

REGISTRY = Registry()
REGISTRY.register(
    SUCCESS_GENERATION_TOTAL,
    FAILED_GENERATION_TOTAL,
    LOOP_SECONDS_TOTAL,
    SECRETS_SKIPPED_TOTAL,
    TEMPLATE_VALIDATION_FAILED_TOTAL,
    GENERATOR_EXECUTIONS_TOTAL,
    GENERATOR_RESPONSE_TIME,
    KUBERNETES_CLIENT_FAIL_TOTAL,
    KUBERNETES_CLIENT_REQUESTS_TOTAL,
    LAST_RECONCILIATION_TIME,
    RECONCILIATION_STATUS,
    MANAGED_SECRETS_TOTAL,
    SECRET_GENERATION_STATUS,
    SYNC_CALL_COUNT,
    SYNC_ERROR_COUNT,
    LAST_RECONCILE_DURATION,
    RECONCILE_ACTIVE,
    SECRET_INSTANCES,
)


def record_successful_generation(secret_santa_name: str, namespace: str) -> None:
    SUCCESS_GENERATION_TOTAL.labels(secret_santa_name, namespace).inc()
    SECRET_GENERATION_STATUS.labels(secret_santa_name, namespace).set(1)


def record_failed_generation(secret_santa_name: str, namespace: str, reason: str) -> None:
    FAILED_GENERATION_TOTAL.labels(secret_santa_name, namespace, reason).inc()
    SECRET_GENERATION_STATUS.labels(secret_santa_name, namespace).set(0)


def record_secret_skipped(secret_santa_name: str, namespace: str) -> None:
    SECRETS_SKIPPED_TOTAL.labels(secret_santa_name, namespace).inc()


def record_template_validation_failed(secret_santa_name: str, namespace: str) -> None:
    TEMPLATE_VALIDATION_FAILED_TOTAL.labels(secret_santa_name, namespace).inc()


def record_generator_execution(generator_type: str, status: str) -> None:
    GENERATOR_EXECUTIONS_TOTAL.labels(generator_type, status).inc()


def record_kubernetes_client_request(operation: str, status: str) -> None:
    KUBERNETES_CLIENT_REQUESTS_TOTAL.labels(operation, status).inc()
    if status == "failed":
        KUBERNETES_CLIENT_FAIL_TOTAL.labels(operation).inc()


def record_loop_duration(seconds: float) -> None:
    LOOP_SECONDS_TOTAL.inc(seconds)


def new_generator_timer(generator_type: str) -> Timer:
    return Timer(GENERATOR_RESPONSE_TIME.labels(generator_type).observe)


def update_last_reconciliation_time() -> None:
    LAST_RECONCILIATION_TIME.set_to_current_time()


def update_reconciliation_status(success: bool) -> None:
    RECONCILIATION_STATUS.labels("success").set(1 if success else 0)
    RECONCILIATION_STATUS.labels("failure").set(0 if success else 1)


def update_managed_secrets_count(count: float) -> None:
    MANAGED_SECRETS_TOTAL.set(count)


def new_reconcile_timer(name: str, namespace: str) -> Timer:
    RECONCILE_ACTIVE.labels(name, namespace).set(1)
    return Timer(LAST_RECONCILE_DURATION.labels(name, namespace).set)


def record_reconcile_complete(name: str, namespace: str, duration: float) -> None:
    RECONCILE_ACTIVE.labels(name, namespace).set(0)
    LAST_RECONCILE_DURATION.labels(name, namespace).set(duration)


def record_reconcile_error(name: str, namespace: str, reason: str) -> None:
    SYNC_ERROR_COUNT.labels(name, namespace).inc()
    FAILED_GENERATION_TOTAL.labels(name, namespace, reason).inc()


def record_template_validation_error(name: str, namespace: str) -> None:
    TEMPLATE_VALIDATION_FAILED_TOTAL.labels(name, namespace).inc()


def record_secret_generated(name: str, namespace: str, secret_type: str) -> None:
    SUCCESS_GENERATION_TOTAL.labels(name, namespace).inc()
    SYNC_CALL_COUNT.labels(name, namespace).inc()


def update_secret_instances(name: str, namespace: str, count: float) -> None:
    SECRET_INSTANCES.labels(name, namespace).set(count)