"""Pytest configuration and shared fixtures."""

import tempfile
import shutil
from pathlib import Path
from typing import Generator

import httpx
import pytest

import controller.config
from common.metrics.sink import MetricSink
from controller.config import Settings


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch):
    """Keep the settings singleton from leaking between tests."""
    monkeypatch.setattr(controller.config, "_settings", None)
    monkeypatch.delenv("LOADRAMP_TARGET_URL", raising=False)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def sink() -> MetricSink:
    """Fresh metric sink with the built-in metrics registered."""
    return MetricSink()


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with sub-second ticks so runs finish quickly."""
    return Settings(
        tick_interval=0.02,
        graceful_stop=1.0,
        progress_interval=0,
        http_timeout=2.0,
    )


@pytest.fixture
def sample_run_config() -> dict:
    """Sample run configuration, as loaded from a run file."""
    return {
        "name": "test-run",
        "stages": [
            {"duration": "30s", "target": 10},
        ],
        "thresholds": {
            "http_req_duration": "p(95)<500",
            "checks": ["rate>0.99"],
        },
        "target": {
            "name": "query",
            "base_url": "http://proxy.test:8480",
            "path": "/api/v1/query_range",
            "params": {"query": "up", "step": 15},
            "pause": "1s",
        },
    }


@pytest.fixture
def mock_client():
    """Build an ``httpx.AsyncClient`` backed by a handler function."""
    def factory(handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory
