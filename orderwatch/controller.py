"""Pagination state machine: walk pages, collect items, validate ordering."""

from __future__ import annotations

import datetime as dt
import logging
import time
from typing import Callable, List, Optional, Sequence

from .config import ValidationConfig
from .fetcher import EnvironmentUnusableError, ItemHandle, PageFetcher, PLACEHOLDER_TITLE
from .models import Item, RunMetrics, RunResult, StopReason
from .timestamps import normalize_timestamp
from .validator import validate_ordering

logger = logging.getLogger(__name__)

PROGRESS_LOG_INTERVAL = 10


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class PaginationController:
    """Runs one environment's pagination loop to a terminal state.

    The loop reloads in place on empty or failing pages while the consecutive
    error count is under ``config.inner_retry_limit``, advances only after a
    page was processed, and stops on the first exhausted budget. Every exit
    path produces a ``RunResult``.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        config: ValidationConfig,
        environment: str,
        metrics: Optional[RunMetrics] = None,
        *,
        now: Callable[[], dt.datetime] = utc_now,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger = logger,
    ):
        self.fetcher = fetcher
        self.config = config
        self.environment = environment
        self.metrics = metrics if metrics is not None else RunMetrics()
        self._now = now
        self._clock = clock
        self.logger = logger

        self.collected: List[Item] = []
        self.current_page = 1
        self.consecutive_errors = 0
        self.fatal_error: Optional[str] = None
        self.opened = False

    def run(self) -> RunResult:
        started = self._clock()
        self.logger.info("Starting %s run (target %d items)", self.environment,
                         self.config.target_count)
        stop_reason = self._open()
        if stop_reason is None:
            stop_reason = self._loop()
        self.metrics.total_time_ms = self._elapsed_ms(started)
        return self._finish(stop_reason)

    def _open(self) -> Optional[StopReason]:
        started = self._clock()
        try:
            self.fetcher.open()
        except Exception as exc:  # noqa: BLE001
            self.logger.error("Initial navigation failed for %s: %s", self.environment, exc)
            self.metrics.record_error("fatal", str(exc), self.current_page)
            self.fatal_error = f"Initial navigation failed: {exc}"
            return StopReason.FATAL
        self.opened = True
        self.metrics.page_load_durations_ms.append(self._elapsed_ms(started))
        return None

    def _loop(self) -> StopReason:
        while True:
            stop_reason = self._entry_guard()
            if stop_reason is not None:
                return stop_reason

            page_started = self._clock()
            self.logger.info(
                "Processing page %d (%d collected, %d consecutive errors)",
                self.current_page,
                len(self.collected),
                self.consecutive_errors,
            )
            try:
                if not self.fetcher.page_is_usable():
                    raise EnvironmentUnusableError(
                        f"{self.environment} can no longer load pages")
                handles = self.fetcher.fetch_items()
                self.logger.info("Found %d items on page %d", len(handles),
                                 self.current_page)

                if not handles:
                    self.metrics.record_error("no_items", "No items found on page",
                                              self.current_page)
                    self.consecutive_errors += 1
                    if self.consecutive_errors < self.config.inner_retry_limit:
                        self.logger.warning("No items on page %d; reloading",
                                            self.current_page)
                        self.fetcher.reload()
                        continue
                    self.logger.warning("No items on page %d; giving up",
                                        self.current_page)
                    return StopReason.NO_ITEMS

                if self.config.enable_snapshots:
                    self._capture_snapshot()

                accepted = self._process_items(handles)
                self.logger.info("Processed %d items on page %d", accepted,
                                 self.current_page)
                if accepted:
                    self.consecutive_errors = 0
                self.metrics.page_load_durations_ms.append(self._elapsed_ms(page_started))
            except EnvironmentUnusableError as exc:
                self.logger.error("Environment %s unusable: %s", self.environment, exc)
                self.metrics.record_error("fatal", str(exc), self.current_page)
                self.fatal_error = str(exc)
                return StopReason.FATAL
            except Exception as exc:  # noqa: BLE001
                self._recover_page(exc)
                continue

            stop_reason = self._advance()
            if stop_reason is not None:
                return stop_reason

    def _entry_guard(self) -> Optional[StopReason]:
        if len(self.collected) >= self.config.target_count:
            return StopReason.TARGET_REACHED
        if self.consecutive_errors >= self.config.max_consecutive_errors:
            self.logger.warning("Error budget exhausted after %d consecutive errors",
                                self.consecutive_errors)
            return StopReason.ERROR_BUDGET_EXHAUSTED
        if self.current_page > self.config.max_pages:
            return StopReason.PAGE_LIMIT_REACHED
        return None

    def _process_items(self, handles: Sequence[ItemHandle]) -> int:
        accepted = 0
        for index, handle in enumerate(handles):
            if len(self.collected) >= self.config.target_count:
                break
            item_started = self._clock()
            try:
                raw = handle.extract()
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("Error processing item %d on page %d: %s", index,
                                    self.current_page, exc)
                self.metrics.record_error("item_extraction", str(exc), self.current_page)
                continue

            if not raw.raw_timestamp or not raw.raw_timestamp.strip():
                self.logger.warning("Skipping item - no timestamp found")
                continue
            title = (raw.title or "").strip()
            if not title or title == PLACEHOLDER_TITLE:
                self.logger.warning("Skipping item - no title found")
                continue

            duration_ms = self._elapsed_ms(item_started)
            self.collected.append(
                Item(
                    title=title,
                    raw_timestamp=raw.raw_timestamp,
                    normalized_time=normalize_timestamp(raw.raw_timestamp, self._now()),
                    position=len(self.collected) + 1,
                    source_page=self.current_page,
                    environment=self.environment,
                    extraction_duration_ms=duration_ms,
                ))
            self.metrics.item_durations_ms.append(duration_ms)
            accepted += 1

            if len(self.collected) % PROGRESS_LOG_INTERVAL == 0:
                self.logger.info("Progress: %d/%d items", len(self.collected),
                                 self.config.target_count)
        return accepted

    def _advance(self) -> Optional[StopReason]:
        if len(self.collected) >= self.config.target_count:
            return None
        if self.current_page >= self.config.max_pages:
            self.logger.warning("Reached page limit %d with %d/%d items",
                                self.config.max_pages, len(self.collected),
                                self.config.target_count)
            return StopReason.PAGE_LIMIT_REACHED
        try:
            if not self.fetcher.has_next_page():
                self.logger.info("No more pages after page %d", self.current_page)
                return StopReason.NO_MORE_PAGES
            advanced = self.fetcher.advance_to_next_page()
        except Exception as exc:  # noqa: BLE001
            self.logger.error("Navigation from page %d failed: %s", self.current_page, exc)
            self.metrics.record_error("navigation", str(exc), self.current_page)
            return StopReason.NAVIGATION_FAILED
        if not advanced:
            self.logger.warning("Failed to navigate to next page, stopping")
            self.metrics.record_error("navigation", "Could not advance to next page",
                                      self.current_page)
            return StopReason.NAVIGATION_FAILED
        self.current_page += 1
        return None

    def _recover_page(self, exc: Exception) -> None:
        self.logger.error("Error processing page %d: %s", self.current_page, exc)
        self.metrics.record_error("page_processing", str(exc), self.current_page)
        self.consecutive_errors += 1
        if self.consecutive_errors >= self.config.inner_retry_limit:
            return
        try:
            if not self.fetcher.page_is_usable():
                return
            self.logger.info("Attempting page recovery")
            self.fetcher.reload()
        except Exception as recovery_exc:  # noqa: BLE001
            self.logger.error("Page recovery failed: %s", recovery_exc)
            self.metrics.record_error("recovery", str(recovery_exc),
                                      self.current_page)

    def _capture_snapshot(self) -> None:
        try:
            self.fetcher.capture_diagnostic_snapshot(f"page-{self.current_page}")
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("Snapshot failed: %s", exc)

    def _finish(self, stop_reason: StopReason) -> RunResult:
        violations = validate_ordering(self.collected)
        success = not violations and self.fatal_error is None
        self.logger.log(
            logging.INFO if success else logging.ERROR,
            "%s validation %s: %d items, %d violations, stop=%s, %dms",
            self.environment,
            "PASSED" if success else "FAILED",
            len(self.collected),
            len(violations),
            stop_reason.value,
            self.metrics.total_time_ms,
        )
        return RunResult(
            environment=self.environment,
            success=success,
            items=tuple(self.collected),
            violations=tuple(violations),
            metrics=self.metrics,
            fatal_error=self.fatal_error,
            stop_reason=stop_reason,
            pages_processed=self.current_page if self.opened else 0,
            finished_at=self._now().isoformat(),
        )

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int(round((self._clock() - started) * 1000)))
