"""Virtual user: runs scenario iterations until retired or cancelled."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Optional

from common.errors import CancellationSignal, IterationError
from common.metrics.sink import MetricSink
from vusers.core.cancellation import CancellationToken
from vusers.core.scenario import IterationContext, Scenario

logger = logging.getLogger(__name__)


class VirtualUser:
    """One simulated client executing a scenario in a loop."""

    def __init__(self, vu_id: int):
        self.vu_id = vu_id
        self.iterations = 0
        self.errors = 0

        self._is_running = False
        self._token: Optional[CancellationToken] = None
        self._in_iteration = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def in_iteration(self) -> bool:
        return self._in_iteration

    @property
    def retired(self) -> bool:
        return self._token is not None and self._token.cancelled

    def retire(self) -> None:
        """Ask the user to stop after its current iteration."""
        if self._token is not None:
            self._token.cancel("retired")

    async def loop(
        self,
        scenario: Scenario,
        sink: MetricSink,
        cancel: CancellationToken,
    ) -> int:
        """Iterate until ``cancel`` fires. Returns the number of iterations run.

        ``cancel`` is checked between iterations and interrupts the pause, never
        the scenario call itself.
        """
        self._token = cancel
        self._is_running = True
        sink.add("vus")
        logger.debug(f"VU {self.vu_id} started")

        try:
            while not cancel.cancelled:
                pause = await self.run_iteration(scenario, sink, cancel)

                if cancel.cancelled:
                    break
                if pause > 0 and await cancel.wait(pause):
                    break
        finally:
            self._is_running = False
            logger.debug(
                f"VU {self.vu_id} stopped after {self.iterations} iterations "
                f"({cancel.reason or 'finished'})"
            )

        return self.iterations

    async def run_iteration(
        self,
        scenario: Scenario,
        sink: MetricSink,
        cancel: Optional[CancellationToken] = None,
    ) -> float:
        """Run the scenario exactly once and record its outcome.

        Returns the pause to observe before the next iteration. An iteration
        the scenario abandons with ``CancellationSignal`` is not counted.
        """
        number = self.iterations + 1
        ctx = IterationContext(
            vu_id=self.vu_id,
            iteration=number,
            scenario=scenario.name,
            sink=sink,
            cancel=cancel,
        )

        self._in_iteration = True
        start = time.perf_counter()
        try:
            await self._invoke(scenario, ctx)
        except asyncio.CancelledError:
            raise
        except CancellationSignal as e:
            logger.debug(f"VU {self.vu_id} abandoned iteration {number}: {e}")
            return 0.0
        except Exception as e:
            error = IterationError(scenario.name, e)
            self.errors += 1
            logger.debug(f"VU {self.vu_id} iteration {number}: {error}")
            sink.add("iteration_errors", scenario=scenario.name)
            ctx.check(error.check_label, False)
        else:
            sink.add("iteration_errors", 0, scenario=scenario.name)
        finally:
            self._in_iteration = False

        elapsed_ms = (time.perf_counter() - start) * 1000
        self.iterations = number
        sink.observe("iteration_duration", elapsed_ms, scenario=scenario.name)
        sink.add("iterations", scenario=scenario.name)

        if ctx.requested_pause is not None:
            return ctx.requested_pause
        return scenario.pause

    async def _invoke(self, scenario: Scenario, ctx: IterationContext) -> None:
        if scenario.is_async:
            await scenario.fn(ctx)
            return

        result = await asyncio.to_thread(scenario.fn, ctx)
        if inspect.isawaitable(result):
            await result
