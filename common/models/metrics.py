"""Metric samples and aggregated snapshot models."""

from __future__ import annotations

import math
import time
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class MetricKind(str, Enum):
    """How samples of a metric are aggregated."""
    COUNTER = "counter"
    RATE = "rate"
    HISTOGRAM = "histogram"


class MetricSample(BaseModel):
    """Single recorded observation. Never mutated after creation."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Metric name")
    kind: MetricKind
    value: float = Field(..., description="Counter increment, 1/0 for rates, or a histogram value")
    timestamp: float = Field(default_factory=time.time)
    tags: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def counter(cls, name: str, value: float = 1, **tags: str) -> "MetricSample":
        return cls(name=name, kind=MetricKind.COUNTER, value=float(value), tags=tags)

    @classmethod
    def rate(cls, name: str, outcome: bool, **tags: str) -> "MetricSample":
        return cls(name=name, kind=MetricKind.RATE, value=1.0 if outcome else 0.0, tags=tags)

    @classmethod
    def histogram(cls, name: str, value: float, **tags: str) -> "MetricSample":
        return cls(name=name, kind=MetricKind.HISTOGRAM, value=float(value), tags=tags)


class CheckResult(BaseModel):
    """Labelled boolean assertion made inside a scenario iteration."""
    model_config = ConfigDict(frozen=True)

    label: str
    passed: bool


def sub_metric_key(name: str, tag: str, value: str) -> str:
    """Key of the sub-metric holding only samples tagged ``tag=value``."""
    return f"{name}{{{tag}:{value}}}"


def percentile(sorted_values: tuple[float, ...] | list[float], pct: float) -> float:
    """Percentile by linear interpolation between closest ranks."""
    if not sorted_values:
        raise ValueError("percentile of empty data")
    k = (len(sorted_values) - 1) * (pct / 100.0)
    f = math.floor(k)
    c = math.ceil(k)
    if f == c:
        return sorted_values[int(k)]
    return sorted_values[f] * (c - k) + sorted_values[c] * (k - f)


class MetricSummary(BaseModel):
    """Aggregated view of one metric key."""
    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    kind: MetricKind

    # counter
    samples: int = 0
    total: float = 0
    # rate
    passes: int = 0
    fails: int = 0
    # histogram, sorted ascending
    values: tuple[float, ...] = ()

    @property
    def count(self) -> int:
        """Number of samples (sum for counters)."""
        if self.kind == MetricKind.COUNTER:
            return int(self.total)
        if self.kind == MetricKind.RATE:
            return self.passes + self.fails
        return len(self.values)

    @property
    def is_empty(self) -> bool:
        """True when nothing was recorded. A counter that summed to 0 is not empty."""
        if self.kind == MetricKind.COUNTER:
            return self.samples == 0
        return self.count == 0

    @property
    def rate(self) -> Optional[float]:
        """Fraction of true samples, or None without samples."""
        if self.kind != MetricKind.RATE or self.count == 0:
            return None
        return self.passes / self.count

    @property
    def avg(self) -> Optional[float]:
        if not self.values:
            return None
        return sum(self.values) / len(self.values)

    @property
    def min(self) -> Optional[float]:
        return self.values[0] if self.values else None

    @property
    def max(self) -> Optional[float]:
        return self.values[-1] if self.values else None

    @property
    def med(self) -> Optional[float]:
        return self.percentile(50)

    def percentile(self, pct: float) -> Optional[float]:
        if not self.values:
            return None
        return percentile(self.values, pct)

    def stats(self) -> dict[str, float]:
        """Headline numbers for reports."""
        if self.kind == MetricKind.COUNTER:
            return {"count": self.total}
        if self.kind == MetricKind.RATE:
            return {"rate": self.rate or 0.0, "passes": self.passes, "fails": self.fails}
        if not self.values:
            return {"count": 0}
        return {
            "avg": self.avg,
            "min": self.min,
            "med": self.med,
            "max": self.max,
            "p90": self.percentile(90),
            "p95": self.percentile(95),
            "p99": self.percentile(99),
            "count": len(self.values),
        }


class MetricsSnapshot(BaseModel):
    """Immutable aggregated view of every metric recorded in a run."""
    model_config = ConfigDict(frozen=True)

    taken_at: datetime = Field(default_factory=datetime.utcnow)
    elapsed_seconds: float = Field(default=0, ge=0, description="Run time covered by the snapshot")
    metrics: dict[str, MetricSummary] = Field(default_factory=dict)

    def get(self, key: str) -> Optional[MetricSummary]:
        return self.metrics.get(key)

    def sub_metrics(self, name: str) -> list[MetricSummary]:
        """Tag sub-metrics of ``name``, sorted by key."""
        prefix = f"{name}{{"
        return [self.metrics[k] for k in sorted(self.metrics) if k.startswith(prefix)]

    def to_jsonl(self) -> dict:
        """Compact form (histograms reduced to their stats)."""
        return {
            "ts": self.taken_at.isoformat(),
            "elapsed_s": round(self.elapsed_seconds, 3),
            "metrics": {key: summary.stats() for key, summary in self.metrics.items()},
        }
