"""Verdict models: the terminal artifact of a run."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from common.models.metrics import MetricsSnapshot
from common.models.run import RunStatus
from common.models.threshold import Threshold


class ThresholdResult(BaseModel):
    """Outcome of a single threshold."""
    model_config = ConfigDict(frozen=True)

    threshold: Threshold
    passed: bool
    observed: Optional[float] = None
    error: Optional[str] = Field(default=None, description="Why the threshold could not be evaluated")


class RunVerdict(BaseModel):
    """Final pass/fail result of a load-test run."""
    model_config = ConfigDict(frozen=True)

    run_id: str
    name: str
    status: RunStatus
    overall_pass: bool
    cancelled: bool = False
    thresholds: tuple[ThresholdResult, ...] = ()
    metrics: MetricsSnapshot

    # Timing
    started_at: datetime
    completed_at: datetime
    duration_seconds: float = 0

    # Virtual users
    peak_vus: int = 0
    iterations: int = 0

    @property
    def failed_thresholds(self) -> list[ThresholdResult]:
        return [r for r in self.thresholds if not r.passed]
