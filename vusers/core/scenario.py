"""Scenario contract and the per-iteration context handed to it."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from common.metrics.sink import MetricSink
from common.models.metrics import CheckResult, MetricKind
from vusers.core.cancellation import CancellationToken

ScenarioFn = Callable[["IterationContext"], Any]


@dataclass
class Scenario:
    """A user-supplied request flow run once per iteration.

    ``fn`` may be a coroutine function or a plain function. Plain functions
    run in a worker thread so blocking clients do not stall the event loop.
    """
    name: str
    fn: ScenarioFn
    pause: float = 0.0
    metrics: dict[str, MetricKind] = field(default_factory=dict)

    def __post_init__(self):
        if self.pause < 0:
            raise ValueError("Scenario pause must be >= 0")

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.fn) or inspect.iscoroutinefunction(
            getattr(self.fn, "__call__", None)
        )


class IterationContext:
    """What a scenario may do during one iteration: check, pause, record."""

    def __init__(
        self,
        vu_id: int,
        iteration: int,
        scenario: str,
        sink: MetricSink,
        cancel: Optional[CancellationToken] = None,
    ):
        self.vu_id = vu_id
        self.iteration = iteration
        self.scenario = scenario
        self.metrics = sink
        self.checks: list[CheckResult] = []
        self.requested_pause: Optional[float] = None
        self._cancel = cancel

    @property
    def cancelled(self) -> bool:
        return self._cancel is not None and self._cancel.cancelled

    def raise_if_cancelled(self) -> None:
        """Abandon a multi-step iteration once the user is retired or the run stops."""
        if self._cancel is not None:
            self._cancel.raise_if_cancelled()

    def check(self, label: Any, condition: Any) -> bool:
        """Record a labelled assertion. Always safe to call, never raises."""
        label = str(label)
        try:
            passed = bool(condition() if callable(condition) else condition)
        except Exception:
            passed = False
        self.checks.append(CheckResult(label=label, passed=passed))
        self.metrics.record_check(label, passed, scenario=self.scenario)
        return passed

    def pause(self, seconds: float) -> None:
        """Override the scenario's pause after this iteration."""
        self.requested_pause = max(float(seconds), 0.0)

    @property
    def failed_checks(self) -> list[CheckResult]:
        return [c for c in self.checks if not c.passed]
