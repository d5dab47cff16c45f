"""Core data models for OrderWatch."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class RawItem:
    """Title and timestamp text as extracted from one listing row."""

    title: Optional[str]
    raw_timestamp: Optional[str]


@dataclass(frozen=True)
class Item:
    """Represents a listing entry accepted into a run."""

    title: str
    raw_timestamp: str
    normalized_time: Optional[dt.datetime]
    position: int
    source_page: int
    environment: str
    extraction_duration_ms: int


@dataclass(frozen=True)
class ErrorEvent:
    """Structured record of a recovered failure."""

    kind: str
    message: str
    page: int


@dataclass
class RunMetrics:
    """Mutable counters owned by a single run."""

    started_at: str = field(
        default_factory=lambda: dt.datetime.now(dt.timezone.utc).isoformat())
    total_time_ms: int = 0
    page_load_durations_ms: List[int] = field(default_factory=list)
    item_durations_ms: List[int] = field(default_factory=list)
    network_requests: int = 0
    errors: List[ErrorEvent] = field(default_factory=list)

    def record_error(self, kind: str, message: str, page: int) -> None:
        self.errors.append(ErrorEvent(kind=kind, message=message, page=page))

    @property
    def average_page_load_ms(self) -> float:
        if not self.page_load_durations_ms:
            return 0.0
        return sum(self.page_load_durations_ms) / len(self.page_load_durations_ms)

    @property
    def average_item_duration_ms(self) -> float:
        if not self.item_durations_ms:
            return 0.0
        return sum(self.item_durations_ms) / len(self.item_durations_ms)


@dataclass(frozen=True)
class SortingViolation:
    """Adjacent pair where the later item is more recent than the earlier one."""

    position: int
    current: Item
    next: Item


class StopReason(str, Enum):
    """Why a pagination run stopped."""

    TARGET_REACHED = "target_reached"
    NO_MORE_PAGES = "no_more_pages"
    NAVIGATION_FAILED = "navigation_failed"
    ERROR_BUDGET_EXHAUSTED = "error_budget_exhausted"
    PAGE_LIMIT_REACHED = "page_limit_reached"
    NO_ITEMS = "no_items"
    FATAL = "fatal"

    @property
    def outcome(self) -> str:
        if self is StopReason.TARGET_REACHED:
            return "success"
        if self in (StopReason.NO_MORE_PAGES, StopReason.NAVIGATION_FAILED):
            return "exhausted"
        return "aborted"


@dataclass(frozen=True)
class RunResult:
    """Terminal outcome of one environment's run."""

    environment: str
    success: bool
    items: Tuple[Item, ...]
    violations: Tuple[SortingViolation, ...]
    metrics: RunMetrics
    fatal_error: Optional[str] = None
    stop_reason: StopReason = StopReason.FATAL
    pages_processed: int = 0
    finished_at: str = ""

    @property
    def items_collected(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class Summary:
    """Aggregate statistics across every run of an invocation."""

    total_runs: int
    successful: int
    failed: int
    success_rate: float
    environments: Tuple[str, ...]
    average_items_collected: float
    total_violations: int


@dataclass(frozen=True)
class ValidationReport:
    """Durable output handed to report sinks."""

    started_at: str
    finished_at: str
    results: Sequence[RunResult]
    summary: Summary
