"""Unit tests for threshold validation and evaluation."""

import itertools

import pytest

from common.errors import ConfigurationError
from common.metrics.sink import MetricSink
from common.models.metrics import MetricKind
from common.models.threshold import Threshold, parse_thresholds
from controller.core.thresholds import (
    evaluate_threshold,
    evaluate_thresholds,
    observe,
    validate_thresholds,
)


@pytest.fixture
def http_sink() -> MetricSink:
    sink = MetricSink(clock=itertools.chain([0.0], itertools.repeat(10.0)).__next__)
    sink.register("http_req_duration", MetricKind.HISTOGRAM)
    sink.register("http_req_failed", MetricKind.RATE)
    return sink


class TestValidateThresholds:
    """Tests for configuration-time threshold checks."""

    def test_known_metrics(self, http_sink):
        validate_thresholds(
            parse_thresholds({
                "http_req_duration": "p(95)<500",
                "http_req_failed": "rate<0.01",
                "checks{check:status is 200}": "rate>0.99",
                "iterations": ["count>0", "rate>1"],
            }),
            http_sink,
        )

    def test_unknown_metric(self, sink):
        with pytest.raises(ConfigurationError, match="unknown metric"):
            validate_thresholds(parse_thresholds({"http_req_duration": "p(95)<500"}), sink)

    def test_unsuitable_aggregation(self, http_sink):
        with pytest.raises(ConfigurationError):
            validate_thresholds(parse_thresholds({"http_req_failed": "p(95)<1"}), http_sink)


class TestEvaluateThresholds:
    """Tests for end-of-run evaluation."""

    def test_percentile_and_rate(self, http_sink):
        for value in range(1, 101):
            http_sink.observe("http_req_duration", float(value))
            http_sink.record_rate("http_req_failed", value > 99)
        snapshot = http_sink.snapshot()
        thresholds = parse_thresholds({
            "http_req_duration": ["p(95)<500", "max<50"],
            "http_req_failed": "rate<0.02",
        })

        results = evaluate_thresholds(thresholds, snapshot)

        p95, max_, failed = results
        assert [r.threshold for r in results] == thresholds
        assert p95.passed and p95.observed == pytest.approx(95.05)
        assert not max_.passed and max_.observed == 100.0
        assert failed.passed and failed.observed == pytest.approx(0.01)

    def test_counter_rate_per_second(self, http_sink):
        for _ in range(50):
            http_sink.add("iterations")
        snapshot = http_sink.snapshot()

        assert snapshot.elapsed_seconds == 10.0
        assert observe(Threshold.parse("iterations", "rate>1"), snapshot) == 5.0
        assert observe(Threshold.parse("iterations", "count>1"), snapshot) == 50.0
        assert observe(Threshold.parse("iterations", "value>1"), snapshot) == 50.0

    def test_tagged_sub_metric(self, http_sink):
        http_sink.record_check("status is 200", True)
        http_sink.record_check("body is valid JSON", False)
        snapshot = http_sink.snapshot()

        ok = evaluate_threshold(Threshold.parse("checks{check:status is 200}", "rate==1"), snapshot)
        bad = evaluate_threshold(Threshold.parse("checks{check:body is valid JSON}", "rate==1"), snapshot)

        assert ok.passed
        assert not bad.passed and bad.observed == 0.0

    def test_missing_samples_reported_not_raised(self, http_sink):
        snapshot = http_sink.snapshot()
        thresholds = parse_thresholds({
            "http_req_duration": "p(95)<500",
            "checks": "rate>0.99",
        })

        results = evaluate_thresholds(thresholds, snapshot)

        assert len(results) == 2
        for result in results:
            assert not result.passed
            assert result.observed is None
            assert "No samples" in result.error

    def test_unrecorded_tag_value(self, http_sink):
        result = evaluate_threshold(
            Threshold.parse("checks{check:never}", "rate>0"),
            http_sink.snapshot(),
        )

        assert not result.passed
        assert result.error

    def test_duplicate_thresholds_each_reported(self, http_sink):
        http_sink.observe("http_req_duration", 40.0)
        thresholds = parse_thresholds({"http_req_duration": ["max<100000", "max<100000"]})

        results = evaluate_thresholds(thresholds, http_sink.snapshot())

        assert len(results) == 2
        assert all(r.passed for r in results)

    def test_zero_counter_is_not_missing(self, http_sink):
        http_sink.add("iteration_errors", 0)
        http_sink.add("iteration_errors", 0)
        snapshot = http_sink.snapshot()

        result = evaluate_threshold(Threshold.parse("iteration_errors", "count<1"), snapshot)

        assert result.passed
        assert result.observed == 0.0
        assert result.error is None

    def test_unrecorded_counter_tag_value_is_zero(self, http_sink):
        http_sink.register("http_reqs", MetricKind.COUNTER)
        http_sink.add("http_reqs", status="200")
        snapshot = http_sink.snapshot()

        result = evaluate_threshold(Threshold.parse("http_reqs{status:500}", "count<1"), snapshot)

        assert result.passed
        assert result.observed == 0.0

    def test_unrecorded_counter_without_samples(self, http_sink):
        http_sink.register("http_reqs", MetricKind.COUNTER)

        result = evaluate_threshold(
            Threshold.parse("http_reqs{status:500}", "count<1"),
            http_sink.snapshot(),
        )

        assert not result.passed
        assert "No samples" in result.error

    def test_evaluation_is_idempotent(self, http_sink):
        for value in (10.0, 20.0, 30.0):
            http_sink.observe("http_req_duration", value)
        snapshot = http_sink.snapshot()
        thresholds = parse_thresholds({"http_req_duration": ["p(90)<25", "avg<=20"]})

        assert evaluate_thresholds(thresholds, snapshot) == evaluate_thresholds(thresholds, snapshot)
