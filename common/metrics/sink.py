"""Thread-safe metric accumulator shared by all virtual users of a run."""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from common.errors import ConfigurationError
from common.models.metrics import (
    MetricKind,
    MetricSample,
    MetricSummary,
    MetricsSnapshot,
    sub_metric_key,
)


BUILTIN_METRICS: dict[str, MetricKind] = {
    "iterations": MetricKind.COUNTER,
    "iteration_duration": MetricKind.HISTOGRAM,
    "iteration_errors": MetricKind.COUNTER,
    "checks": MetricKind.RATE,
    "vus": MetricKind.COUNTER,
}


class _Bucket:
    """Accumulator for one metric key, guarded by its own lock."""

    __slots__ = ("key", "name", "kind", "lock", "samples", "total", "passes", "fails", "values")

    def __init__(self, key: str, name: str, kind: MetricKind):
        self.key = key
        self.name = name
        self.kind = kind
        self.lock = threading.Lock()
        self.samples = 0
        self.total = 0.0
        self.passes = 0
        self.fails = 0
        self.values: list[float] = []

    def add(self, value: float) -> None:
        with self.lock:
            if self.kind == MetricKind.COUNTER:
                self.samples += 1
                self.total += value
            elif self.kind == MetricKind.RATE:
                if value:
                    self.passes += 1
                else:
                    self.fails += 1
            else:
                self.values.append(value)

    def summary(self) -> MetricSummary:
        with self.lock:
            values = tuple(sorted(self.values))
            return MetricSummary(
                key=self.key,
                name=self.name,
                kind=self.kind,
                samples=self.samples,
                total=self.total,
                passes=self.passes,
                fails=self.fails,
                values=values,
            )


class MetricSink:
    """Named counters, rates and histograms aggregated for a whole run.

    ``record`` may be called concurrently from event-loop tasks and worker
    threads. Each metric key has its own lock, so recording ``checks`` never
    waits on ``http_req_duration``. The registry lock is only taken when a new
    key appears and when a snapshot lists the keys.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._started = clock()
        self._registry: dict[str, MetricKind] = {}
        self._buckets: dict[str, _Bucket] = {}
        self._registry_lock = threading.Lock()

        for name, kind in BUILTIN_METRICS.items():
            self.register(name, kind)

    def register(self, name: str, kind: MetricKind) -> None:
        """Declare a metric. Re-registering with the same kind is a no-op."""
        with self._registry_lock:
            existing = self._registry.get(name)
            if existing is not None and existing != kind:
                raise ConfigurationError(
                    f"Metric {name} already registered as {existing.value}, not {kind.value}"
                )
            self._registry[name] = kind
            if name not in self._buckets:
                self._buckets[name] = _Bucket(name, name, kind)

    def knows(self, name: str) -> bool:
        return name in self._registry

    def kind_of(self, name: str) -> Optional[MetricKind]:
        return self._registry.get(name)

    @property
    def metric_names(self) -> list[str]:
        return sorted(self._registry)

    def record(self, sample: MetricSample) -> None:
        """Aggregate one sample into its metric and tag sub-metrics."""
        kind = self._registry.get(sample.name)
        if kind is None:
            raise KeyError(f"Unknown metric: {sample.name}")
        if kind != sample.kind:
            raise ValueError(
                f"Metric {sample.name} is a {kind.value}, got a {sample.kind.value} sample"
            )

        self._bucket(sample.name, sample.name, kind).add(sample.value)
        for tag, value in sample.tags.items():
            key = sub_metric_key(sample.name, tag, value)
            self._bucket(key, sample.name, kind).add(sample.value)

    def add(self, name: str, value: float = 1, **tags: str) -> None:
        self.record(MetricSample.counter(name, value, **tags))

    def observe(self, name: str, value: float, **tags: str) -> None:
        self.record(MetricSample.histogram(name, value, **tags))

    def record_rate(self, name: str, outcome: bool, **tags: str) -> None:
        self.record(MetricSample.rate(name, outcome, **tags))

    def record_check(self, label: str, passed: bool, **tags: str) -> bool:
        """Record a check result into the ``checks`` rate."""
        passed = bool(passed)
        self.record(MetricSample.rate("checks", passed, check=label, **tags))
        return passed

    def total(self, name: str) -> float:
        """Cheap live read: counter sum, or sample count for other kinds."""
        bucket = self._buckets.get(name)
        if bucket is None:
            return 0
        with bucket.lock:
            if bucket.kind == MetricKind.COUNTER:
                return bucket.total
            if bucket.kind == MetricKind.RATE:
                return bucket.passes + bucket.fails
            return len(bucket.values)

    @property
    def elapsed_seconds(self) -> float:
        return max(self._clock() - self._started, 0.0)

    def snapshot(self) -> MetricsSnapshot:
        """Immutable aggregated view of everything recorded so far."""
        with self._registry_lock:
            buckets = list(self._buckets.values())

        return MetricsSnapshot(
            elapsed_seconds=self.elapsed_seconds,
            metrics={bucket.key: bucket.summary() for bucket in buckets},
        )

    def _bucket(self, key: str, name: str, kind: MetricKind) -> _Bucket:
        bucket = self._buckets.get(key)
        if bucket is None:
            with self._registry_lock:
                bucket = self._buckets.get(key)
                if bucket is None:
                    bucket = _Bucket(key, name, kind)
                    self._buckets[key] = bucket
        return bucket
