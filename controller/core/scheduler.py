"""Stage scheduler: ramps virtual users through a sequence of timed stages."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from common.errors import ConfigurationError
from common.metrics.sink import MetricSink
from common.models.stage import RampPolicy, Stage
from vusers.core.cancellation import CancellationToken
from vusers.core.runner import VirtualUser
from vusers.core.scenario import Scenario

logger = logging.getLogger(__name__)


def validate_stages(stages: Sequence[Stage], tick_interval: float = 1.0) -> None:
    """Reject malformed stage input before anything starts."""
    if not stages:
        raise ConfigurationError("At least one stage is required")
    for i, stage in enumerate(stages, start=1):
        if stage.duration <= 0:
            raise ConfigurationError(f"Stage {i} duration must be > 0, got {stage.duration}")
        if stage.target < 0:
            raise ConfigurationError(f"Stage {i} target must be >= 0, got {stage.target}")
    if tick_interval <= 0:
        raise ConfigurationError(f"Tick interval must be > 0, got {tick_interval}")


def stage_index(stages: Sequence[Stage], elapsed: float) -> int:
    """Index of the stage active at ``elapsed`` (the last one once all are over)."""
    stage_end = 0.0
    for i, stage in enumerate(stages):
        stage_end += stage.duration
        if elapsed < stage_end:
            return i
    return len(stages) - 1


def desired_vus(
    stages: Sequence[Stage],
    elapsed: float,
    policy: RampPolicy = RampPolicy.LINEAR,
) -> int:
    """Target VU count at ``elapsed`` seconds into the run.

    Each stage ramps from the previous stage's target (0 before the first)
    to its own. The result always lies between those two targets.
    """
    previous = 0
    stage_start = 0.0
    for stage in stages:
        stage_end = stage_start + stage.duration
        if elapsed < stage_end:
            if policy == RampPolicy.STEP:
                return stage.target
            fraction = min(max((elapsed - stage_start) / stage.duration, 0.0), 1.0)
            return int(round(previous + (stage.target - previous) * fraction))
        previous = stage.target
        stage_start = stage_end
    return stages[-1].target


@dataclass
class SchedulerResult:
    """Completion signal of a scheduler run."""
    cancelled: bool
    duration_seconds: float
    iterations: int
    spawned: int
    peak_vus: int
    forced_stops: int = 0


@dataclass
class _Slot:
    vu: VirtualUser
    token: CancellationToken
    task: asyncio.Task


class StageScheduler:
    """Spawns and retires virtual users to follow the stage targets.

    Retired users finish their current iteration before stopping. Until they
    do they still count against the peak target, so the number of live users
    never exceeds the largest stage target.
    """

    def __init__(
        self,
        sink: MetricSink,
        tick_interval: float = 1.0,
        ramp_policy: RampPolicy = RampPolicy.LINEAR,
        graceful_stop: float = 30.0,
    ):
        self.sink = sink
        self.tick_interval = tick_interval
        self.ramp_policy = ramp_policy
        self.graceful_stop = graceful_stop

        self._active: list[_Slot] = []
        self._draining: list[_Slot] = []
        self._next_vu_id = 1
        self._iterations = 0
        self._peak = 0
        self._started_at: Optional[float] = None
        self._current_stage = -1

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def live_count(self) -> int:
        """Active users plus retired users still finishing an iteration."""
        return len(self._active) + len(self._draining)

    @property
    def peak_vus(self) -> int:
        return self._peak

    @property
    def current_stage(self) -> int:
        return self._current_stage

    @property
    def elapsed_seconds(self) -> float:
        if self._started_at is None:
            return 0.0
        return asyncio.get_running_loop().time() - self._started_at

    async def run(
        self,
        stages: Sequence[Stage],
        scenario: Scenario,
        cancel: CancellationToken,
    ) -> SchedulerResult:
        """Drive all stages, then drain every user. Returns when all have stopped."""
        validate_stages(stages, self.tick_interval)

        loop = asyncio.get_running_loop()
        self._started_at = loop.time()
        total_duration = sum(stage.duration for stage in stages)
        max_target = max(stage.target for stage in stages)
        ticks = 0

        logger.info(
            f"Scheduling {len(stages)} stage(s) over {total_duration:.1f}s, "
            f"peak target {max_target} VUs"
        )

        try:
            while not cancel.cancelled:
                elapsed = loop.time() - self._started_at
                if elapsed >= total_duration:
                    break

                index = stage_index(stages, elapsed)
                if index != self._current_stage:
                    self._current_stage = index
                    logger.info(
                        f"Stage {index + 1}/{len(stages)}: {stages[index].describe()}"
                    )

                self._scale_to(
                    desired_vus(stages, elapsed, self.ramp_policy),
                    max_target,
                    scenario,
                    cancel,
                )

                ticks += 1
                next_tick = min(self._started_at + ticks * self.tick_interval,
                                self._started_at + total_duration)
                await cancel.wait(max(next_tick - loop.time(), 0.0))

            cancelled = cancel.cancelled
            if cancelled:
                logger.info(f"Run cancelled ({cancel.reason}), draining {self.live_count} VUs")
            forced = await self._drain_all()
        except asyncio.CancelledError:
            await self._abort_all()
            raise

        duration = loop.time() - self._started_at
        logger.info(
            f"Scheduler finished after {duration:.1f}s: {self._iterations} iterations, "
            f"{self._next_vu_id - 1} VUs spawned, peak {self._peak}"
        )
        return SchedulerResult(
            cancelled=cancelled,
            duration_seconds=duration,
            iterations=self._iterations,
            spawned=self._next_vu_id - 1,
            peak_vus=self._peak,
            forced_stops=forced,
        )

    def _scale_to(
        self,
        desired: int,
        max_target: int,
        scenario: Scenario,
        cancel: CancellationToken,
    ) -> None:
        active = len(self._active)

        if desired > active:
            room = max_target - self.live_count
            to_spawn = min(desired - active, room)
            for _ in range(max(to_spawn, 0)):
                self._spawn(scenario, cancel)
            if to_spawn > 0:
                logger.debug(f"Spawned {to_spawn} VUs (active={len(self._active)})")

        elif desired < active:
            for _ in range(active - desired):
                self._retire(self._active[-1])
            logger.debug(f"Retired {active - desired} VUs (active={len(self._active)})")

        self._peak = max(self._peak, self.live_count)

    def _spawn(self, scenario: Scenario, cancel: CancellationToken) -> None:
        vu = VirtualUser(self._next_vu_id)
        self._next_vu_id += 1
        token = cancel.child()
        task = asyncio.create_task(
            vu.loop(scenario, self.sink, token),
            name=f"vu-{vu.vu_id}",
        )
        slot = _Slot(vu=vu, token=token, task=task)
        self._active.append(slot)
        task.add_done_callback(lambda _t, s=slot: self._on_done(s))

    def _retire(self, slot: _Slot) -> None:
        self._active.remove(slot)
        self._draining.append(slot)
        slot.vu.retire()

    def _on_done(self, slot: _Slot) -> None:
        for group in (self._active, self._draining):
            if slot in group:
                group.remove(slot)
        slot.token.detach()
        self._iterations += slot.vu.iterations

        if not slot.task.cancelled() and slot.task.exception() is not None:
            logger.error(f"VU {slot.vu.vu_id} crashed: {slot.task.exception()!r}")

    async def _drain_all(self) -> int:
        """Retire every user and wait for them. Returns how many were forced."""
        for slot in list(self._active):
            self._retire(slot)

        tasks = [slot.task for slot in self._draining]
        if not tasks:
            return 0

        _, pending = await asyncio.wait(tasks, timeout=self.graceful_stop)
        if not pending:
            return 0

        logger.warning(
            f"{len(pending)} VUs still busy after {self.graceful_stop}s graceful stop, cancelling"
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        return len(pending)

    async def _abort_all(self) -> None:
        tasks = [slot.task for slot in self._active + self._draining]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
