"""Threshold models: declarative pass/fail criteria over aggregated metrics."""

from __future__ import annotations

import operator
import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from common.errors import ConfigurationError
from common.models.metrics import MetricKind, sub_metric_key


class Aggregation(str, Enum):
    """Value of a metric a threshold compares against its bound."""
    PERCENTILE = "p"
    AVG = "avg"
    MIN = "min"
    MAX = "max"
    MED = "med"
    COUNT = "count"
    RATE = "rate"
    VALUE = "value"


ALLOWED_AGGREGATIONS: dict[MetricKind, frozenset[Aggregation]] = {
    MetricKind.COUNTER: frozenset({Aggregation.COUNT, Aggregation.RATE, Aggregation.VALUE}),
    MetricKind.RATE: frozenset({Aggregation.RATE, Aggregation.VALUE}),
    MetricKind.HISTOGRAM: frozenset({
        Aggregation.PERCENTILE,
        Aggregation.AVG,
        Aggregation.MIN,
        Aggregation.MAX,
        Aggregation.MED,
        Aggregation.COUNT,
        Aggregation.VALUE,
    }),
}

OPERATORS = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}

_EXPRESSION_RE = re.compile(
    r'^\s*(?P<agg>p\(\s*(?P<pct>\d+(?:\.\d+)?)\s*\)|avg|min|max|med|count|rate|value)'
    r'\s*(?P<op><=|>=|==|!=|<|>)'
    r'\s*(?P<bound>-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)\s*$'
)

_METRIC_KEY_RE = re.compile(
    r'^(?P<name>[A-Za-z_][\w.]*)(?:\{(?P<tag>[^:{}]+):(?P<value>[^{}]+)\})?$'
)


class Threshold(BaseModel):
    """A parsed threshold such as ``http_req_duration: p(95)<500``."""
    model_config = ConfigDict(frozen=True)

    metric: str = Field(..., description="Metric key as written, may include a tag filter")
    name: str = Field(..., description="Base metric name")
    tag: Optional[str] = None
    tag_value: Optional[str] = None
    expression: str
    aggregation: Aggregation
    percentile: Optional[float] = Field(default=None, ge=0, le=100)
    op: str
    bound: float

    @classmethod
    def parse(cls, metric: str, expression: str) -> "Threshold":
        """Parse a metric key and expression. Raises ConfigurationError."""
        if not isinstance(expression, str):
            raise ConfigurationError(f"Threshold for {metric} must be a string, got {expression!r}")

        key_match = _METRIC_KEY_RE.match(metric.strip())
        if not key_match:
            raise ConfigurationError(f"Malformed threshold metric: {metric!r}")

        expr_match = _EXPRESSION_RE.match(expression)
        if not expr_match:
            raise ConfigurationError(f"Malformed threshold expression for {metric}: {expression!r}")

        agg_text = expr_match.group("agg")
        pct = expr_match.group("pct")
        if pct is not None:
            aggregation = Aggregation.PERCENTILE
            pct_value = float(pct)
            if pct_value > 100:
                raise ConfigurationError(f"Percentile out of range in {expression!r}")
        else:
            aggregation = Aggregation(agg_text)
            pct_value = None

        tag = key_match.group("tag")
        return cls(
            metric=metric.strip(),
            name=key_match.group("name"),
            tag=tag.strip() if tag else None,
            tag_value=key_match.group("value").strip() if tag else None,
            expression=expression.strip(),
            aggregation=aggregation,
            percentile=pct_value,
            op=expr_match.group("op"),
            bound=float(expr_match.group("bound")),
        )

    @property
    def key(self) -> str:
        """Snapshot key this threshold reads."""
        if self.tag is None:
            return self.name
        return sub_metric_key(self.name, self.tag, self.tag_value)

    def check_kind(self, kind: MetricKind) -> None:
        """Reject aggregations that make no sense for the metric's kind."""
        if self.aggregation not in ALLOWED_AGGREGATIONS[kind]:
            raise ConfigurationError(
                f"Threshold {self} uses '{self.aggregation.value}' "
                f"which is not available for {kind.value} metric {self.name}"
            )

    def compare(self, observed: float) -> bool:
        return OPERATORS[self.op](observed, self.bound)

    def __str__(self) -> str:
        return f"{self.metric}: {self.expression}"


def parse_thresholds(mapping: dict[str, list[str] | str]) -> list[Threshold]:
    """Parse the ``{metric: [expressions]}`` mapping used in run files."""
    thresholds = []
    for metric, expressions in mapping.items():
        if isinstance(expressions, str):
            expressions = [expressions]
        if not expressions:
            raise ConfigurationError(f"No threshold expressions given for {metric}")
        for expression in expressions:
            thresholds.append(Threshold.parse(metric, expression))
    return thresholds
