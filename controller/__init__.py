"""Run controller: schedules stages, evaluates thresholds, renders verdicts."""

__version__ = "1.0.0"
