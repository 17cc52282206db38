"""Common utility functions."""

from __future__ import annotations

import re
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Union

import yaml

_DURATION_UNITS = {
    'ms': 0.001,
    's': 1,
    'm': 60,
    'h': 3600,
}

_DURATION_TOKEN = re.compile(r'(\d+(?:\.\d+)?)(ms|h|m|s)')


def generate_id(prefix: str = "") -> str:
    """Generate a unique identifier."""
    timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
    short_uuid = uuid.uuid4().hex[:8]
    if prefix:
        return f"{prefix}_{timestamp}_{short_uuid}"
    return f"{timestamp}_{short_uuid}"


def generate_run_id() -> str:
    """Generate a run ID."""
    return generate_id("run")


def parse_duration(value: Union[str, int, float]) -> float:
    """Parse a duration (e.g., 30, '30s', '1m30s', '500ms', '2h') to seconds."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    duration_str = value.strip().lower()
    if not duration_str:
        raise ValueError("Empty duration")

    if re.match(r'^\d+(?:\.\d+)?$', duration_str):
        return float(duration_str)

    # Tokens must cover the whole string, otherwise "10x" would parse as 10s
    if _DURATION_TOKEN.sub('', duration_str):
        raise ValueError(f"Invalid duration format: {value}")

    total = 0.0
    for amount, unit in _DURATION_TOKEN.findall(duration_str):
        total += float(amount) * _DURATION_UNITS[unit]
    return total


def format_duration(seconds: float) -> str:
    """Format seconds to human-readable duration."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        whole = int(seconds)
        if seconds == whole:
            return f"{whole}s"
        return f"{seconds:.1f}s"

    seconds = int(seconds)
    if seconds < 3600:
        minutes = seconds // 60
        secs = seconds % 60
        return f"{minutes}m {secs}s"
    else:
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        secs = seconds % 60
        return f"{hours}h {minutes}m {secs}s"


def load_yaml(path: str | Path) -> dict:
    """Load a YAML file."""
    with open(path, 'r') as f:
        return yaml.safe_load(f) or {}


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def ensure_dir(path: str | Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


class Timer:
    """Context manager measuring a block on the monotonic clock.

    Wall-clock start/end timestamps are kept alongside for reporting.
    """

    def __init__(self):
        self.started_at: datetime | None = None
        self.completed_at: datetime | None = None
        self._start: float | None = None
        self._end: float | None = None

    def __enter__(self):
        self.started_at = datetime.utcnow()
        self._start = time.monotonic()
        return self

    def __exit__(self, *args):
        self._end = time.monotonic()
        self.completed_at = datetime.utcnow()

    @property
    def elapsed_seconds(self) -> float:
        if self._start is None:
            return 0
        end = self._end if self._end is not None else time.monotonic()
        return end - self._start

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed_seconds * 1000
