"""Render validation reports as text, HTML and JSON."""

from __future__ import annotations

import datetime as dt
import html
import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from .models import Item, RunResult, SortingViolation, ValidationReport

logger = logging.getLogger(__name__)

SAMPLE_ITEM_COUNT = 10
HTML_VIOLATION_LIMIT = 5
REPORT_BASENAME = "validation-report"


def item_to_dict(item: Item) -> Dict[str, Any]:
    return {
        "title": item.title,
        "raw_timestamp": item.raw_timestamp,
        "normalized_time": item.normalized_time.isoformat() if item.normalized_time else None,
        "position": item.position,
        "source_page": item.source_page,
        "environment": item.environment,
        "extraction_duration_ms": item.extraction_duration_ms,
    }


def violation_to_dict(violation: SortingViolation) -> Dict[str, Any]:
    return {
        "position": violation.position,
        "current": item_to_dict(violation.current),
        "next": item_to_dict(violation.next),
    }


def result_to_dict(result: RunResult) -> Dict[str, Any]:
    metrics = result.metrics
    return {
        "environment": result.environment,
        "success": result.success,
        "stop_reason": result.stop_reason.value,
        "items_collected": result.items_collected,
        "pages_processed": result.pages_processed,
        "fatal_error": result.fatal_error,
        "finished_at": result.finished_at,
        "violations": [violation_to_dict(v) for v in result.violations],
        "metrics": {
            "started_at": metrics.started_at,
            "total_time_ms": metrics.total_time_ms,
            "page_load_durations_ms": list(metrics.page_load_durations_ms),
            "average_page_load_ms": metrics.average_page_load_ms,
            "average_item_duration_ms": metrics.average_item_duration_ms,
            "network_requests": metrics.network_requests,
            "errors": [
                {"kind": e.kind, "message": e.message, "page": e.page}
                for e in metrics.errors
            ],
        },
        "items": [item_to_dict(item) for item in result.items[:SAMPLE_ITEM_COUNT]],
    }


def report_to_dict(report: ValidationReport) -> Dict[str, Any]:
    summary = report.summary
    return {
        "started_at": report.started_at,
        "finished_at": report.finished_at,
        "summary": {
            "total_runs": summary.total_runs,
            "successful": summary.successful,
            "failed": summary.failed,
            "success_rate": summary.success_rate,
            "environments": list(summary.environments),
            "average_items_collected": summary.average_items_collected,
            "total_violations": summary.total_violations,
        },
        "runs": [result_to_dict(result) for result in report.results],
    }


def render_json(report: ValidationReport) -> str:
    return json.dumps(report_to_dict(report), indent=2, ensure_ascii=False)


def render_text(report: ValidationReport, generated_at: str | None = None) -> str:
    summary = report.summary
    generated_at = generated_at or dt.datetime.now(dt.timezone.utc).isoformat()
    lines: List[str] = [
        "=" * 80,
        "LISTING ORDER VALIDATION REPORT",
        "=" * 80,
        f"Generated: {generated_at}",
        f"Test Duration: {report.started_at} to {report.finished_at}",
        "",
        "SUMMARY",
        "-" * 40,
        f"Total Test Runs: {summary.total_runs}",
        f"Successful: {summary.successful}",
        f"Failed: {summary.failed}",
        f"Success Rate: {summary.success_rate:.2f}%",
        f"Average Items Collected: {summary.average_items_collected:.0f}",
        f"Total Sorting Errors: {summary.total_violations}",
        "",
        "DETAILED RESULTS",
        "-" * 40,
    ]
    for result in report.results:
        metrics = result.metrics
        lines.append("")
        lines.append(f"{result.environment.upper()}:")
        lines.append(f"  Status: {'PASSED' if result.success else 'FAILED'}")
        lines.append(f"  Stop Reason: {result.stop_reason.value}")
        lines.append(f"  Items Collected: {result.items_collected}")
        lines.append(f"  Sorting Errors: {len(result.violations)}")
        lines.append(f"  Total Time: {metrics.total_time_ms}ms")
        lines.append(f"  Average Page Load: {metrics.average_page_load_ms:.2f}ms")
        lines.append(f"  Network Requests: {metrics.network_requests}")
        if result.fatal_error:
            lines.append(f"  Error: {result.fatal_error}")
        if result.violations:
            first = result.violations[0]
            lines.append("  First Sorting Error:")
            lines.append(f"    Position: {first.position}")
            lines.append(f"    Current: {first.current.title}")
            lines.append(f"    Next: {first.next.title}")
    return "\n".join(lines)


def render_html(report: ValidationReport, generated_at: str | None = None) -> str:
    summary = report.summary
    generated_at = generated_at or dt.datetime.now(dt.timezone.utc).isoformat()
    rate_class = "success" if summary.successful == summary.total_runs else "failure"
    violation_class = "success" if summary.total_violations == 0 else "failure"
    sections = "".join(_render_html_result(result) for result in report.results)
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Listing Order Validation Report</title>
    <style>
        body {{ font-family: sans-serif; margin: 0; padding: 20px; background: #f5f5f5; }}
        .container {{ max-width: 1200px; margin: 0 auto; background: white; padding: 30px; }}
        .metric {{ display: inline-block; margin: 10px 20px; text-align: center; }}
        .metric-value {{ font-size: 2em; font-weight: bold; }}
        .success {{ color: #28a745; }}
        .failure {{ color: #dc3545; }}
        .run {{ border: 1px solid #ddd; margin: 20px 0; padding: 20px; }}
        table {{ width: 100%; border-collapse: collapse; }}
        th, td {{ text-align: left; padding: 8px; border-bottom: 1px solid #ddd; }}
    </style>
</head>
<body>
    <div class="container">
        <h1>Listing Order Validation Report</h1>
        <div class="summary">
            <div class="metric"><div class="metric-value {rate_class}">{summary.success_rate:.1f}%</div>Success Rate</div>
            <div class="metric"><div class="metric-value">{summary.total_runs}</div>Total Runs</div>
            <div class="metric"><div class="metric-value">{summary.average_items_collected:.0f}</div>Avg Items</div>
            <div class="metric"><div class="metric-value {violation_class}">{summary.total_violations}</div>Sorting Errors</div>
        </div>
        <h2>Results by Environment</h2>
        {sections}
        <p class="timestamp">Report generated on {html.escape(generated_at)}</p>
    </div>
</body>
</html>
"""


def _render_html_result(result: RunResult) -> str:
    status_class = "success" if result.success else "failure"
    metrics = result.metrics
    parts = [
        f'<div class="run {status_class}">',
        f"<h3>{html.escape(result.environment.upper())}</h3>",
        f'<p><strong>Status:</strong> <span class="{status_class}">'
        f"{'PASSED' if result.success else 'FAILED'}</span></p>",
        f"<p><strong>Items Collected:</strong> {result.items_collected}</p>",
        f"<p><strong>Sorting Errors:</strong> {len(result.violations)}</p>",
        "<ul>",
        f"<li>Total Execution Time: {metrics.total_time_ms}ms</li>",
        f"<li>Average Page Load Time: {metrics.average_page_load_ms:.2f}ms</li>",
        f"<li>Network Requests: {metrics.network_requests}</li>",
        f"<li>Processing Errors: {len(metrics.errors)}</li>",
        "</ul>",
    ]
    if result.fatal_error:
        parts.append(f"<p><strong>Error:</strong> {html.escape(result.fatal_error)}</p>")
    if result.violations:
        parts.append("<table><thead><tr><th>Position</th><th>Current</th>"
                     "<th>Next</th></tr></thead><tbody>")
        for violation in result.violations[:HTML_VIOLATION_LIMIT]:
            parts.append(
                f"<tr><td>{violation.position}</td>"
                f"<td>{html.escape(violation.current.title)}</td>"
                f"<td>{html.escape(violation.next.title)}</td></tr>")
        parts.append("</tbody></table>")
    parts.append("</div>")
    return "\n".join(parts)


def write_reports(report: ValidationReport, output_dir: Path) -> List[Path]:
    """Write text, HTML and JSON renderings into ``output_dir``."""
    output_dir.mkdir(parents=True, exist_ok=True)
    generated_at = dt.datetime.now(dt.timezone.utc).isoformat()
    renderings = {
        "txt": render_text(report, generated_at),
        "html": render_html(report, generated_at),
        "json": render_json(report),
    }
    paths: List[Path] = []
    for suffix, content in renderings.items():
        path = output_dir / f"{REPORT_BASENAME}.{suffix}"
        path.write_text(content, encoding="utf-8")
        logger.info("Wrote %s report to %s", suffix, path)
        paths.append(path)
    return paths
