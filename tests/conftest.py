import datetime as dt

import pytest

from orderwatch.models import Item, RunMetrics, RunResult, SortingViolation, StopReason, ValidationReport
from orderwatch.runner import summarize

NOW = dt.datetime(2025, 3, 10, 12, 0, 0, tzinfo=dt.timezone.utc)


def make_item(environment: str, position: int, title: str, minutes: int) -> Item:
    return Item(
        title=title,
        raw_timestamp=f"{minutes} minutes ago",
        normalized_time=NOW - dt.timedelta(minutes=minutes),
        position=position,
        source_page=1,
        environment=environment,
        extraction_duration_ms=3,
    )


@pytest.fixture
def sample_report() -> ValidationReport:
    passing_items = tuple(
        make_item("chromium", i, f"Story {i}", i) for i in range(1, 13))
    failing_items = (
        make_item("firefox", 1, "Older <b>story</b>", 10),
        make_item("firefox", 2, "Newer story", 2),
    )
    metrics = RunMetrics(total_time_ms=1200, page_load_durations_ms=[400, 600],
                         network_requests=42)
    metrics.record_error("item_extraction", "No subtext row found for item", 1)
    results = (
        RunResult(
            environment="chromium",
            success=True,
            items=passing_items,
            violations=(),
            metrics=metrics,
            stop_reason=StopReason.TARGET_REACHED,
            pages_processed=1,
            finished_at=NOW.isoformat(),
        ),
        RunResult(
            environment="firefox",
            success=False,
            items=failing_items,
            violations=(SortingViolation(position=1,
                                         current=failing_items[0],
                                         next=failing_items[1]),),
            metrics=RunMetrics(),
            stop_reason=StopReason.NAVIGATION_FAILED,
            pages_processed=1,
            finished_at=NOW.isoformat(),
        ),
        RunResult(
            environment="webkit",
            success=False,
            items=(),
            violations=(),
            metrics=RunMetrics(),
            fatal_error="Executable doesn't exist",
            stop_reason=StopReason.FATAL,
            finished_at=NOW.isoformat(),
        ),
    )
    return ValidationReport(
        started_at=NOW.isoformat(),
        finished_at=NOW.isoformat(),
        results=results,
        summary=summarize(results),
    )
