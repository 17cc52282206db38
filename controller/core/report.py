"""Verdict rendering, JSON export and exit codes."""

from __future__ import annotations

import json
import logging
from enum import IntEnum
from pathlib import Path
from typing import Optional

from common.models.metrics import MetricKind, MetricSummary
from common.models.verdict import RunVerdict, ThresholdResult
from common.utils import ensure_dir, format_duration

logger = logging.getLogger(__name__)

_CHECK_PREFIX = "checks{check:"


class ExitCode(IntEnum):
    OK = 0
    THRESHOLDS_FAILED = 99
    CONFIG_ERROR = 104


def exit_code(verdict: RunVerdict) -> ExitCode:
    return ExitCode.OK if verdict.overall_pass else ExitCode.THRESHOLDS_FAILED


def _fmt(value: Optional[float], unit: str = "") -> str:
    if value is None:
        return "-"
    if float(value).is_integer():
        return f"{int(value)}{unit}"
    return f"{value:.2f}{unit}"


def _threshold_line(result: ThresholdResult) -> str:
    status = "✓" if result.passed else "✗"
    if result.error:
        detail = f"error: {result.error}"
    else:
        detail = f"observed {_fmt(result.observed)}"
    return f"  {status} {result.threshold}  ({detail})"


def _metric_line(summary: MetricSummary, elapsed_seconds: float) -> str:
    if summary.kind == MetricKind.COUNTER:
        per_second = summary.total / elapsed_seconds if elapsed_seconds > 0 else 0.0
        detail = f"{_fmt(summary.total)}  {per_second:.2f}/s"
    elif summary.kind == MetricKind.RATE:
        detail = (
            f"{(summary.rate or 0.0) * 100:.2f}%  "
            f"✓ {summary.passes}  ✗ {summary.fails}"
        )
    elif summary.is_empty:
        detail = "no samples"
    else:
        stats = summary.stats()
        detail = "  ".join(
            f"{k}={_fmt(stats[k])}" for k in ("avg", "min", "med", "max", "p90", "p95")
        )
    return f"  {summary.key:.<32} {detail}"


def render_summary(verdict: RunVerdict) -> str:
    """Human-readable end-of-run report."""
    snapshot = verdict.metrics
    lines = [
        f"Run: {verdict.name} ({verdict.run_id})",
        f"Status: {verdict.status.value.upper()}"
        + ("  (cancelled early)" if verdict.cancelled else ""),
        f"Duration: {format_duration(verdict.duration_seconds)}  "
        f"Peak VUs: {verdict.peak_vus}  Iterations: {verdict.iterations}",
    ]

    lines.append("")
    lines.append("Thresholds:")
    if verdict.thresholds:
        lines.extend(_threshold_line(r) for r in verdict.thresholds)
    else:
        lines.append("  (none)")

    checks = [s for s in snapshot.sub_metrics("checks") if s.key.startswith(_CHECK_PREFIX)]
    if checks:
        lines.append("")
        lines.append("Checks:")
        for summary in checks:
            label = summary.key[len(_CHECK_PREFIX):-1]
            status = "✓" if summary.fails == 0 else "✗"
            lines.append(f"  {status} {label}  ({summary.passes} passed, {summary.fails} failed)")

    headline = [s for key, s in sorted(snapshot.metrics.items()) if "{" not in key]
    if headline:
        lines.append("")
        lines.append("Metrics:")
        lines.extend(_metric_line(s, snapshot.elapsed_seconds) for s in headline)

    lines.append("")
    lines.append(f"Result: {'PASS' if verdict.overall_pass else 'FAIL'}")
    return "\n".join(lines)


def summary_dict(verdict: RunVerdict) -> dict:
    """JSON-ready verdict with histograms reduced to their stats."""
    data = verdict.model_dump(mode="json", exclude={"metrics", "thresholds"})
    data["thresholds"] = [
        {
            "threshold": str(r.threshold),
            "passed": r.passed,
            "observed": r.observed,
            "error": r.error,
        }
        for r in verdict.thresholds
    ]
    data["metrics"] = verdict.metrics.to_jsonl()
    return data


def write_summary_json(verdict: RunVerdict, path: str | Path) -> Path:
    path = Path(path)
    ensure_dir(path.parent)
    with open(path, "w") as f:
        json.dump(summary_dict(verdict), f, indent=2)
    logger.info(f"Wrote summary to {path}")
    return path
