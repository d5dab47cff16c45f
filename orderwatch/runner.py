"""Core execution workflow for OrderWatch."""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Sequence

from .config import ValidationConfig
from .controller import PaginationController, utc_now
from .fetcher import PageFetcher, build_fetcher
from .models import RunMetrics, RunResult, StopReason, Summary, ValidationReport

logger = logging.getLogger(__name__)

FetcherFactory = Callable[[str, ValidationConfig, RunMetrics], PageFetcher]


@dataclass
class OrderWatchRunner:
    """Runs the pagination loop once per environment and summarizes the results."""

    config: ValidationConfig
    fetcher_factory: FetcherFactory = field(default_factory=lambda: build_fetcher)
    now: Callable[[], dt.datetime] = field(default_factory=lambda: utc_now)

    def run(self) -> ValidationReport:
        """Execute every configured environment sequentially."""
        started_at = self.now().isoformat()
        logger.info(
            "Starting validation across %s (target %d items)",
            ", ".join(self.config.environments),
            self.config.target_count,
        )

        results: List[RunResult] = []
        for environment in self.config.environments:
            logger.info("Testing with %s", environment)
            results.append(self.run_environment(environment))

        summary = summarize(results)
        logger.info(
            "Completed %d run(s): %d passed, %d failed, %d violation(s)",
            summary.total_runs,
            summary.successful,
            summary.failed,
            summary.total_violations,
        )
        return ValidationReport(
            started_at=started_at,
            finished_at=self.now().isoformat(),
            results=tuple(results),
            summary=summary,
        )

    def run_environment(self, environment: str) -> RunResult:
        """Run one environment, converting any crash into a failed result."""
        metrics = RunMetrics()
        result: RunResult | None = None
        try:
            with self.fetcher_factory(environment, self.config, metrics) as fetcher:
                controller = PaginationController(
                    fetcher=fetcher,
                    config=self.config,
                    environment=environment,
                    metrics=metrics,
                    now=self.now,
                )
                result = controller.run()
        except Exception as exc:  # noqa: BLE001
            if result is not None:
                # The run itself finished; only teardown failed.
                logger.error("Failed to close %s: %s", environment, exc)
                metrics.record_error("close", str(exc), result.pages_processed)
                return result
            logger.exception("Critical error in %s: %s", environment, exc)
            metrics.record_error("fatal", str(exc), 0)
            return RunResult(
                environment=environment,
                success=False,
                items=(),
                violations=(),
                metrics=metrics,
                fatal_error=str(exc) or type(exc).__name__,
                stop_reason=StopReason.FATAL,
                pages_processed=0,
                finished_at=self.now().isoformat(),
            )
        return result


def summarize(results: Sequence[RunResult]) -> Summary:
    """Aggregate run results into summary statistics."""
    total = len(results)
    successful = sum(1 for result in results if result.success)
    return Summary(
        total_runs=total,
        successful=successful,
        failed=total - successful,
        success_rate=(successful / total) * 100 if total else 0.0,
        environments=tuple(result.environment for result in results),
        average_items_collected=(
            sum(result.items_collected for result in results) / total if total else 0.0),
        total_violations=sum(len(result.violations) for result in results),
    )
