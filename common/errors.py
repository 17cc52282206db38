"""Error taxonomy for load-test runs.

Only ``ConfigurationError`` is allowed to abort a run. The other kinds are
absorbed into metrics or the final verdict by the code that raises them.
"""

from __future__ import annotations


class LoadrampError(Exception):
    """Base class for all loadramp errors."""


class ConfigurationError(LoadrampError):
    """Malformed stages, thresholds or settings. Raised before any run activity."""


class IterationError(LoadrampError):
    """A scenario iteration raised. Recorded as a failed check, never fatal."""

    def __init__(self, scenario: str, cause: BaseException):
        self.scenario = scenario
        self.cause = cause
        super().__init__(f"{scenario} raised {type(cause).__name__}: {cause}")

    @property
    def check_label(self) -> str:
        return f"{self.scenario} raised {type(self.cause).__name__}"


class ThresholdEvaluationError(LoadrampError):
    """A threshold could not be evaluated, e.g. its metric has no samples."""


class CancellationSignal(LoadrampError):
    """External interrupt. Triggers a graceful drain of all virtual users."""
