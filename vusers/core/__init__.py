"""Virtual user core components."""

from vusers.core.cancellation import CancellationToken
from vusers.core.scenario import IterationContext, Scenario
from vusers.core.runner import VirtualUser

__all__ = ["CancellationToken", "IterationContext", "Scenario", "VirtualUser"]
