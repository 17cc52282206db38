"""Stage models for ramping virtual-user concurrency."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from common.utils import parse_duration, format_duration


class RampPolicy(str, Enum):
    """How the desired VU count moves between stage targets."""
    LINEAR = "linear"
    STEP = "step"


class Stage(BaseModel):
    """A timed ramp segment towards a target concurrency."""
    model_config = ConfigDict(frozen=True)

    duration: float = Field(..., gt=0, description="Stage duration in seconds")
    target: int = Field(..., ge=0, description="Target concurrent virtual users")

    @field_validator("duration", mode="before")
    @classmethod
    def parse_duration_string(cls, v):
        """Accept '30s', '1m30s', '500ms' as well as plain seconds."""
        if isinstance(v, str):
            return parse_duration(v)
        return v

    def describe(self) -> str:
        return f"{format_duration(self.duration)} -> {self.target} VUs"
