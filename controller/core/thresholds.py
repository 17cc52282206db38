"""Threshold validation and end-of-run evaluation."""

from __future__ import annotations

import logging
from typing import Iterable

from common.errors import ConfigurationError, ThresholdEvaluationError
from common.metrics.sink import MetricSink
from common.models.metrics import MetricKind, MetricSummary, MetricsSnapshot
from common.models.threshold import Aggregation, Threshold
from common.models.verdict import ThresholdResult

logger = logging.getLogger(__name__)


def validate_thresholds(thresholds: Iterable[Threshold], sink: MetricSink) -> None:
    """Fail fast on metrics the sink cannot produce or unsuitable aggregations."""
    for threshold in thresholds:
        kind = sink.kind_of(threshold.name)
        if kind is None:
            raise ConfigurationError(
                f"Threshold {threshold} refers to unknown metric '{threshold.name}' "
                f"(known: {', '.join(sink.metric_names)})"
            )
        threshold.check_kind(kind)


def observe(threshold: Threshold, snapshot: MetricsSnapshot) -> float:
    """Value of the snapshot a threshold compares against its bound."""
    summary = snapshot.get(threshold.key)
    if summary is None and threshold.tag is not None:
        parent = snapshot.get(threshold.name)
        if parent is not None and parent.kind == MetricKind.COUNTER and not parent.is_empty:
            # the counter was recorded, just never with this tag value
            return 0.0
    if summary is None or summary.is_empty:
        raise ThresholdEvaluationError(f"No samples recorded for {threshold.key}")

    agg = threshold.aggregation
    if agg == Aggregation.PERCENTILE:
        return summary.percentile(threshold.percentile)
    if agg == Aggregation.AVG:
        return summary.avg
    if agg == Aggregation.MIN:
        return summary.min
    if agg == Aggregation.MAX:
        return summary.max
    if agg == Aggregation.MED:
        return summary.med
    if agg == Aggregation.COUNT:
        return float(summary.count)
    if agg == Aggregation.RATE:
        return _rate(summary, snapshot.elapsed_seconds)
    return _natural_value(summary)


def _rate(summary: MetricSummary, elapsed_seconds: float) -> float:
    if summary.kind == MetricKind.COUNTER:
        if elapsed_seconds <= 0:
            raise ThresholdEvaluationError(f"No run time to compute a rate for {summary.key}")
        return summary.total / elapsed_seconds
    if summary.kind == MetricKind.RATE:
        return summary.rate
    raise ThresholdEvaluationError(f"{summary.key} is a {summary.kind.value}, not a rate")


def _natural_value(summary: MetricSummary) -> float:
    if summary.kind == MetricKind.COUNTER:
        return summary.total
    if summary.kind == MetricKind.RATE:
        return summary.rate
    return summary.avg


def evaluate_threshold(threshold: Threshold, snapshot: MetricsSnapshot) -> ThresholdResult:
    try:
        observed = observe(threshold, snapshot)
    except ThresholdEvaluationError as e:
        logger.warning(f"Threshold {threshold} could not be evaluated: {e}")
        return ThresholdResult(threshold=threshold, passed=False, error=str(e))

    return ThresholdResult(
        threshold=threshold,
        passed=threshold.compare(observed),
        observed=observed,
    )


def evaluate_thresholds(
    thresholds: Iterable[Threshold],
    snapshot: MetricsSnapshot,
) -> list[ThresholdResult]:
    """Evaluate every threshold once against a final snapshot.

    Results keep the configured order, one per threshold, duplicates included.
    Pure with respect to ``snapshot``: evaluating twice yields equal results.
    """
    return [evaluate_threshold(threshold, snapshot) for threshold in thresholds]
