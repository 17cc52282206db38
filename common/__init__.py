"""Common utilities and models shared across the controller and virtual users."""

from common.errors import (
    LoadrampError,
    ConfigurationError,
    IterationError,
    ThresholdEvaluationError,
    CancellationSignal,
)
from common.models.stage import Stage, RampPolicy
from common.models.metrics import MetricKind, MetricSample, MetricsSnapshot
from common.models.threshold import Threshold
from common.models.run import RunConfig, TargetConfig
from common.models.verdict import RunVerdict, ThresholdResult

__all__ = [
    "LoadrampError",
    "ConfigurationError",
    "IterationError",
    "ThresholdEvaluationError",
    "CancellationSignal",
    "Stage",
    "RampPolicy",
    "MetricKind",
    "MetricSample",
    "MetricsSnapshot",
    "Threshold",
    "RunConfig",
    "TargetConfig",
    "RunVerdict",
    "ThresholdResult",
]
