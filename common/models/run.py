"""Run configuration models."""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional
from urllib.parse import urljoin

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from common.errors import ConfigurationError
from common.models.stage import Stage, RampPolicy
from common.models.threshold import Threshold, parse_thresholds
from common.utils import parse_duration


class RunStatus(str, Enum):
    """Final state of a run."""
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RunPhase(str, Enum):
    """Current run phase."""
    INIT = "init"
    RUNNING = "running"
    EVALUATING = "evaluating"
    DONE = "done"


class TargetConfig(BaseModel):
    """Endpoint hit by the built-in HTTP query scenario."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(default="query", description="Scenario name used in metric tags")
    base_url: Optional[str] = Field(default=None, description="e.g. http://localhost:8480")
    path: str = Field(default="/", description="Request path relative to base_url")
    method: Literal["GET", "POST"] = Field(default="GET")
    params: dict[str, str] = Field(default_factory=dict, description="Fixed query parameters")
    headers: dict[str, str] = Field(default_factory=dict)
    expected_status: int = Field(default=200, ge=100, le=599)
    check_json: bool = Field(default=False, description="Also check the body parses as JSON")
    pause: float = Field(default=1.0, ge=0, description="Sleep between iterations in seconds")
    timeout: Optional[float] = Field(default=None, gt=0, description="Request timeout override")

    @field_validator("pause", "timeout", mode="before")
    @classmethod
    def parse_duration_string(cls, v):
        if isinstance(v, str):
            return parse_duration(v)
        return v

    @field_validator("params", "headers", mode="before")
    @classmethod
    def stringify_values(cls, v):
        """YAML turns ``step: 15`` into an int; query strings want text."""
        if isinstance(v, dict):
            return {str(k): str(val) for k, val in v.items()}
        return v

    @property
    def url(self) -> str:
        if not self.base_url:
            raise ConfigurationError("No target base URL configured")
        return urljoin(self.base_url.rstrip("/") + "/", self.path.lstrip("/"))


class RunConfig(BaseModel):
    """Complete load-test run configuration."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(default="loadramp", description="Run name")
    description: Optional[str] = Field(default=None)

    stages: list[Stage] = Field(..., min_length=1, description="Ordered ramp stages")
    ramp_policy: RampPolicy = Field(default=RampPolicy.LINEAR)

    # k6-style {metric: [expression, ...]}
    thresholds: dict[str, list[str]] = Field(default_factory=dict)

    target: TargetConfig = Field(default_factory=TargetConfig)

    @field_validator("thresholds", mode="before")
    @classmethod
    def normalise_thresholds(cls, v):
        if isinstance(v, dict):
            return {k: [e] if isinstance(e, str) else e for k, e in v.items()}
        return v

    @model_validator(mode="after")
    def validate_threshold_syntax(self) -> "RunConfig":
        try:
            parse_thresholds(self.thresholds)
        except ConfigurationError as e:
            raise ValueError(str(e)) from e
        return self

    def threshold_list(self) -> list[Threshold]:
        return parse_thresholds(self.thresholds)

    @property
    def max_target(self) -> int:
        return max(stage.target for stage in self.stages)

    @property
    def total_duration(self) -> float:
        return sum(stage.duration for stage in self.stages)
