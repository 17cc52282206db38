"""Controller core components."""

from controller.core.scheduler import StageScheduler, SchedulerResult, desired_vus
from controller.core.thresholds import evaluate_thresholds, validate_thresholds
from controller.core.reporter import ProgressReporter
from controller.core.run_controller import RunController

__all__ = [
    "StageScheduler",
    "SchedulerResult",
    "desired_vus",
    "evaluate_thresholds",
    "validate_thresholds",
    "ProgressReporter",
    "RunController",
]
