"""Unit tests for data models."""

import pytest
from pydantic import ValidationError

from common.errors import ConfigurationError
from common.models.stage import Stage, RampPolicy
from common.models.metrics import (
    MetricKind,
    MetricSample,
    MetricSummary,
    MetricsSnapshot,
    percentile,
    sub_metric_key,
)
from common.models.threshold import Aggregation, Threshold, parse_thresholds
from common.models.run import RunConfig, TargetConfig


class TestStage:
    """Tests for Stage model."""

    def test_stage_duration_string(self):
        stage = Stage(duration="1m30s", target=10)

        assert stage.duration == 90.0
        assert stage.target == 10

    def test_stage_numeric_duration(self):
        assert Stage(duration=0.5, target=0).duration == 0.5

    @pytest.mark.parametrize("duration", [0, -1, "0s", "bogus"])
    def test_stage_invalid_duration(self, duration):
        with pytest.raises(ValidationError):
            Stage(duration=duration, target=1)

    def test_stage_negative_target(self):
        with pytest.raises(ValidationError):
            Stage(duration=1, target=-1)

    def test_stage_frozen(self):
        stage = Stage(duration=1, target=1)

        with pytest.raises(ValidationError):
            stage.target = 5

    def test_stage_describe(self):
        assert Stage(duration=30, target=10).describe() == "30s -> 10 VUs"


class TestMetricSample:
    """Tests for MetricSample constructors."""

    def test_counter(self):
        sample = MetricSample.counter("iterations", scenario="query")

        assert sample.kind == MetricKind.COUNTER
        assert sample.value == 1.0
        assert sample.tags == {"scenario": "query"}
        assert sample.timestamp > 0

    def test_rate(self):
        assert MetricSample.rate("checks", True).value == 1.0
        assert MetricSample.rate("checks", False).value == 0.0

    def test_histogram(self):
        sample = MetricSample.histogram("http_req_duration", 12.5)

        assert sample.kind == MetricKind.HISTOGRAM
        assert sample.value == 12.5


class TestPercentile:
    """Tests for percentile interpolation."""

    def test_percentile_interpolates(self):
        values = [10.0, 20.0, 30.0, 40.0]

        assert percentile(values, 0) == 10.0
        assert percentile(values, 100) == 40.0
        assert percentile(values, 50) == 25.0

    def test_percentile_single_value(self):
        assert percentile([7.0], 95) == 7.0

    def test_percentile_empty(self):
        with pytest.raises(ValueError):
            percentile([], 50)


class TestMetricSummary:
    """Tests for MetricSummary aggregates."""

    def test_histogram_stats(self):
        summary = MetricSummary(
            key="http_req_duration",
            name="http_req_duration",
            kind=MetricKind.HISTOGRAM,
            values=tuple(float(v) for v in range(1, 101)),
        )

        assert summary.count == 100
        assert summary.avg == 50.5
        assert summary.min == 1.0
        assert summary.max == 100.0
        assert summary.med == 50.5
        assert summary.percentile(95) == pytest.approx(95.05)
        assert summary.stats()["p99"] == pytest.approx(99.01)

    def test_rate_summary(self):
        summary = MetricSummary(key="checks", name="checks", kind=MetricKind.RATE, passes=3, fails=1)

        assert summary.count == 4
        assert summary.rate == 0.75
        assert not summary.is_empty

    def test_empty_summaries(self):
        rate = MetricSummary(key="checks", name="checks", kind=MetricKind.RATE)
        hist = MetricSummary(key="d", name="d", kind=MetricKind.HISTOGRAM)
        unrecorded = MetricSummary(key="errors", name="errors", kind=MetricKind.COUNTER)
        zero = MetricSummary(key="errors", name="errors", kind=MetricKind.COUNTER, samples=3)

        assert unrecorded.is_empty
        assert not zero.is_empty
        assert zero.count == 0
        assert rate.is_empty
        assert rate.rate is None
        assert hist.is_empty
        assert hist.avg is None
        assert hist.percentile(95) is None

    def test_snapshot_sub_metrics(self):
        key_a = sub_metric_key("checks", "check", "a")
        key_b = sub_metric_key("checks", "check", "b")
        snapshot = MetricsSnapshot(
            elapsed_seconds=1.0,
            metrics={
                "checks": MetricSummary(key="checks", name="checks", kind=MetricKind.RATE),
                key_b: MetricSummary(key=key_b, name="checks", kind=MetricKind.RATE),
                key_a: MetricSummary(key=key_a, name="checks", kind=MetricKind.RATE),
            },
        )

        assert [s.key for s in snapshot.sub_metrics("checks")] == ["checks{check:a}", "checks{check:b}"]
        assert snapshot.get("missing") is None
        assert set(snapshot.to_jsonl()["metrics"]) == {"checks", key_a, key_b}


class TestThreshold:
    """Tests for threshold expression parsing."""

    def test_parse_percentile(self):
        threshold = Threshold.parse("http_req_duration", "p(95)<500")

        assert threshold.name == "http_req_duration"
        assert threshold.aggregation == Aggregation.PERCENTILE
        assert threshold.percentile == 95.0
        assert threshold.op == "<"
        assert threshold.bound == 500.0
        assert threshold.key == "http_req_duration"

    def test_parse_fractional_percentile(self):
        assert Threshold.parse("http_req_duration", "p(99.9) <= 1000").percentile == 99.9

    def test_parse_rate(self):
        threshold = Threshold.parse("checks", "rate>0.99")

        assert threshold.aggregation == Aggregation.RATE
        assert threshold.compare(1.0)
        assert not threshold.compare(0.5)

    def test_parse_tagged_metric(self):
        threshold = Threshold.parse("checks{check:status is 200}", "rate>=0.95")

        assert threshold.name == "checks"
        assert threshold.tag == "check"
        assert threshold.tag_value == "status is 200"
        assert threshold.key == "checks{check:status is 200}"

    @pytest.mark.parametrize("op,observed,expected", [
        ("<", 1, True), ("<=", 2, True), (">", 2, False),
        (">=", 2, True), ("==", 2, True), ("!=", 2, False),
    ])
    def test_operators(self, op, observed, expected):
        assert Threshold.parse("iterations", f"count{op}2").compare(observed) is expected

    @pytest.mark.parametrize("expression", [
        "p95<500", "p(101)<5", "avg<", "median<5", "rate>>1", "", "rate<abc",
    ])
    def test_parse_malformed(self, expression):
        with pytest.raises(ConfigurationError):
            Threshold.parse("http_req_duration", expression)

    def test_parse_malformed_metric(self):
        with pytest.raises(ConfigurationError):
            Threshold.parse("bad metric{", "rate>0")

    def test_check_kind(self):
        Threshold.parse("http_req_duration", "p(95)<500").check_kind(MetricKind.HISTOGRAM)

        with pytest.raises(ConfigurationError):
            Threshold.parse("checks", "p(95)<500").check_kind(MetricKind.RATE)
        with pytest.raises(ConfigurationError):
            Threshold.parse("http_req_duration", "rate<1").check_kind(MetricKind.HISTOGRAM)

    def test_threshold_hashable(self):
        a = Threshold.parse("checks", "rate>0.99")
        b = Threshold.parse("checks", "rate>0.99")

        assert {a: 1}[b] == 1
        assert str(a) == "checks: rate>0.99"

    def test_parse_thresholds_mapping(self):
        thresholds = parse_thresholds({
            "http_req_duration": ["p(95)<500", "avg<200"],
            "checks": "rate>0.99",
        })

        assert [str(t) for t in thresholds] == [
            "http_req_duration: p(95)<500",
            "http_req_duration: avg<200",
            "checks: rate>0.99",
        ]

    def test_parse_thresholds_empty_list(self):
        with pytest.raises(ConfigurationError):
            parse_thresholds({"checks": []})


class TestRunConfig:
    """Tests for RunConfig model."""

    def test_run_config_from_dict(self, sample_run_config):
        config = RunConfig(**sample_run_config)

        assert config.name == "test-run"
        assert config.stages[0].duration == 30.0
        assert config.ramp_policy == RampPolicy.LINEAR
        assert config.thresholds["http_req_duration"] == ["p(95)<500"]
        assert len(config.threshold_list()) == 2
        assert config.max_target == 10
        assert config.total_duration == 30.0

    def test_run_config_requires_stages(self):
        with pytest.raises(ValidationError):
            RunConfig(stages=[])

    def test_run_config_rejects_bad_threshold(self, sample_run_config):
        sample_run_config["thresholds"] = {"checks": "rate>>1"}

        with pytest.raises(ValidationError):
            RunConfig(**sample_run_config)

    def test_target_url_and_params(self, sample_run_config):
        target = RunConfig(**sample_run_config).target

        assert target.url == "http://proxy.test:8480/api/v1/query_range"
        assert target.params == {"query": "up", "step": "15"}
        assert target.pause == 1.0

    def test_target_without_base_url(self):
        with pytest.raises(ConfigurationError):
            TargetConfig().url
