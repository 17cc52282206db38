"""HTTP query scenario: GET an endpoint with fixed parameters and check it."""

from __future__ import annotations

import logging
import time
from typing import Optional

import httpx

from common.models.metrics import MetricKind
from common.models.run import TargetConfig
from vusers.core.scenario import IterationContext, Scenario

logger = logging.getLogger(__name__)

HTTP_METRICS: dict[str, MetricKind] = {
    "http_reqs": MetricKind.COUNTER,
    "http_req_duration": MetricKind.HISTOGRAM,
    "http_req_failed": MetricKind.RATE,
}


def _is_json(response: httpx.Response) -> bool:
    try:
        response.json()
    except ValueError:
        return False
    return True


class HttpQueryScenario:
    """Scenario hitting ``target.url`` once per iteration.

    The ``httpx.AsyncClient`` is shared by every virtual user. Pass one in to
    control pooling or transport, otherwise one is opened on ``__aenter__`` and
    closed on ``__aexit__``.
    """

    def __init__(
        self,
        target: TargetConfig,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        max_connections: int = 100,
    ):
        self.target = target
        self.url = target.url
        self._client = client
        self._owns_client = client is None
        self._timeout = target.timeout or timeout
        self._max_connections = max(max_connections, 1)

    async def __aenter__(self) -> "HttpQueryScenario":
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                limits=httpx.Limits(
                    max_connections=self._max_connections,
                    max_keepalive_connections=self._max_connections,
                ),
            )
            logger.debug(f"Opened HTTP client for {self.url} (pool={self._max_connections})")
        return self

    async def __aexit__(self, *args) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def as_scenario(self) -> Scenario:
        return Scenario(
            name=self.target.name,
            fn=self.iteration,
            pause=self.target.pause,
            metrics=dict(HTTP_METRICS),
        )

    async def iteration(self, ctx: IterationContext) -> httpx.Response:
        if self._client is None:
            raise RuntimeError("HTTP client is not open")

        name = self.target.name
        method = self.target.method
        sink = ctx.metrics

        start = time.perf_counter()
        try:
            response = await self._client.request(
                method,
                self.url,
                params=self.target.params,
                headers=self.target.headers,
            )
        except httpx.HTTPError:
            sink.add("http_reqs", scenario=name, status="error")
            sink.record_rate("http_req_failed", True, scenario=name)
            raise
        elapsed_ms = (time.perf_counter() - start) * 1000

        status = str(response.status_code)
        ok = response.status_code == self.target.expected_status
        sink.add("http_reqs", scenario=name, status=status)
        sink.observe("http_req_duration", elapsed_ms, scenario=name, method=method, status=status)
        sink.record_rate("http_req_failed", not ok, scenario=name)

        ctx.check(f"status is {self.target.expected_status}", ok)
        if self.target.check_json:
            ctx.check("body is valid JSON", _is_json(response))

        return response
