"""Run controller for orchestrating a complete load-test run."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack
from datetime import datetime
from typing import Optional

import httpx

from common.errors import ConfigurationError
from common.metrics.sink import MetricSink
from common.models.run import RunConfig, RunPhase, RunStatus
from common.models.verdict import RunVerdict
from common.utils import Timer, format_duration, generate_run_id
from controller.config import Settings, get_settings
from controller.core.reporter import ProgressReporter
from controller.core.scheduler import StageScheduler, validate_stages
from controller.core.thresholds import evaluate_thresholds, validate_thresholds
from vusers.core.cancellation import CancellationToken
from vusers.core.http_scenario import HTTP_METRICS, HttpQueryScenario
from vusers.core.scenario import Scenario

logger = logging.getLogger(__name__)


class RunController:
    """Validate, run, evaluate: one load-test run from config to verdict."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self.http_client = http_client
        self._state: dict = {}
        self._cancel: Optional[CancellationToken] = None

    @property
    def state(self) -> dict:
        return dict(self._state)

    def stop(self, reason: str = "stopped") -> None:
        """Signal the current run to drain and finish."""
        if self._cancel is not None:
            logger.info(f"Stop requested: {reason}")
            self._cancel.cancel(reason)

    async def execute(
        self,
        config: RunConfig,
        scenario: Optional[Scenario] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> RunVerdict:
        """Run ``config`` to completion (or cancellation) and return its verdict.

        Raises ConfigurationError before any scenario is built or invoked if
        the stages or thresholds are invalid.
        """
        run_id = generate_run_id()
        self._state = {
            "run_id": run_id,
            "phase": RunPhase.INIT.value,
            "started_at": datetime.utcnow().isoformat(),
        }

        sink = MetricSink()
        thresholds = self._validate(config, scenario, sink)
        logger.info(
            f"Starting run {config.name} ({run_id}): {len(config.stages)} stage(s), "
            f"{format_duration(config.total_duration)}, peak {config.max_target} VUs, "
            f"{len(thresholds)} threshold(s)"
        )

        cancel = cancel or CancellationToken()
        self._cancel = cancel

        scheduler = StageScheduler(
            sink,
            tick_interval=self.settings.tick_interval,
            ramp_policy=config.ramp_policy,
            graceful_stop=self.settings.graceful_stop,
        )
        reporter = ProgressReporter(sink, scheduler, interval=self.settings.progress_interval)

        try:
            with Timer() as timer:
                async with AsyncExitStack() as stack:
                    if scenario is None:
                        http = await stack.enter_async_context(
                            HttpQueryScenario(
                                config.target,
                                client=self.http_client,
                                timeout=self.settings.http_timeout,
                                max_connections=config.max_target,
                            )
                        )
                        scenario = http.as_scenario()

                    self._update_state(phase=RunPhase.RUNNING.value, scenario=scenario.name)
                    await reporter.start_reporting(run_id)
                    try:
                        result = await scheduler.run(config.stages, scenario, cancel)
                    finally:
                        await reporter.stop_reporting()
        finally:
            self._cancel = None

        self._update_state(phase=RunPhase.EVALUATING.value)
        snapshot = sink.snapshot()
        results = evaluate_thresholds(thresholds, snapshot)
        overall_pass = all(r.passed for r in results)

        verdict = RunVerdict(
            run_id=run_id,
            name=config.name,
            status=RunStatus.CANCELLED if result.cancelled else RunStatus.COMPLETED,
            overall_pass=overall_pass,
            cancelled=result.cancelled,
            thresholds=tuple(results),
            metrics=snapshot,
            started_at=timer.started_at,
            completed_at=timer.completed_at,
            duration_seconds=timer.elapsed_seconds,
            peak_vus=result.peak_vus,
            iterations=result.iterations,
        )

        self._update_state(phase=RunPhase.DONE.value, overall_pass=overall_pass)
        failed = len(verdict.failed_thresholds)
        logger.info(
            f"Run {run_id} {verdict.status.value}: "
            f"{'PASS' if overall_pass else 'FAIL'} "
            f"({len(results) - failed}/{len(results)} thresholds passed, "
            f"{result.iterations} iterations)"
        )
        return verdict

    def validate(self, config: RunConfig, scenario: Optional[Scenario] = None) -> list:
        """Check a config without running it. Returns the parsed thresholds."""
        return self._validate(config, scenario, MetricSink())

    def _validate(self, config: RunConfig, scenario: Optional[Scenario], sink: MetricSink) -> list:
        validate_stages(config.stages, self.settings.tick_interval)

        if scenario is None:
            if not config.target.base_url:
                raise ConfigurationError(
                    "No scenario given and no target base URL configured "
                    "(set target.base_url, LOADRAMP_TARGET_URL or --target-url)"
                )
            metrics = HTTP_METRICS
        else:
            metrics = scenario.metrics

        for name, kind in metrics.items():
            sink.register(name, kind)

        thresholds = config.threshold_list()
        validate_thresholds(thresholds, sink)
        return thresholds

    def _update_state(self, **kwargs) -> None:
        """Update run state."""
        self._state.update(kwargs)
