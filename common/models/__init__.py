"""Common data models for loadramp."""

from common.models.stage import Stage, RampPolicy
from common.models.metrics import (
    MetricKind,
    MetricSample,
    CheckResult,
    MetricSummary,
    MetricsSnapshot,
)
from common.models.threshold import Threshold, Aggregation, parse_thresholds
from common.models.run import RunConfig, TargetConfig, RunStatus, RunPhase
from common.models.verdict import RunVerdict, ThresholdResult

__all__ = [
    "Stage",
    "RampPolicy",
    "MetricKind",
    "MetricSample",
    "CheckResult",
    "MetricSummary",
    "MetricsSnapshot",
    "Threshold",
    "Aggregation",
    "parse_thresholds",
    "RunConfig",
    "TargetConfig",
    "RunStatus",
    "RunPhase",
    "RunVerdict",
    "ThresholdResult",
]
