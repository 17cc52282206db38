"""Progress reporter for logging run state while a run is in flight."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from common.metrics.sink import MetricSink
from common.utils import format_duration
from controller.core.scheduler import StageScheduler

logger = logging.getLogger(__name__)


class ProgressReporter:
    """Periodically log elapsed time, live VUs and iteration counts."""

    def __init__(
        self,
        sink: MetricSink,
        scheduler: StageScheduler,
        interval: float = 10.0,
    ):
        self.sink = sink
        self.scheduler = scheduler
        self.interval = interval

        self._is_running = False
        self._current_run_id: Optional[str] = None
        self._report_task: Optional[asyncio.Task] = None

    async def start_reporting(self, run_id: str) -> None:
        """Start periodic progress reporting. A zero interval disables it."""
        if self._is_running or self.interval <= 0:
            return

        self._is_running = True
        self._current_run_id = run_id
        self._report_task = asyncio.create_task(self._report_loop())
        logger.debug(f"Started progress reporting for run: {run_id}")

    async def stop_reporting(self) -> None:
        """Stop progress reporting."""
        self._is_running = False

        if self._report_task:
            self._report_task.cancel()
            try:
                await self._report_task
            except asyncio.CancelledError:
                pass
            self._report_task = None

        self._current_run_id = None

    async def _report_loop(self) -> None:
        """Periodic progress reporting loop."""
        while self._is_running:
            try:
                await asyncio.sleep(self.interval)
                self.report_progress()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in progress report loop: {e}")

    def report_progress(self) -> None:
        """Log one progress line."""
        stage = self.scheduler.current_stage
        logger.info(
            f"[{self._current_run_id}] {format_duration(self.scheduler.elapsed_seconds)} elapsed, "
            f"stage {stage + 1 if stage >= 0 else '-'}, "
            f"{self.scheduler.active_count} active VUs ({self.scheduler.live_count} live), "
            f"{int(self.sink.total('iterations'))} iterations, "
            f"{int(self.sink.total('iteration_errors'))} errors"
        )
