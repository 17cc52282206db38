"""Virtual users: scenario execution, checks and cancellation."""

__version__ = "1.0.0"
