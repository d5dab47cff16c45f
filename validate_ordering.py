"""CLI entrypoint for the OrderWatch listing-order probe."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from orderwatch.config import BROWSER_ENGINES, HTTP_ENVIRONMENT, ValidationConfig
from orderwatch.db import Database, resolve_sqlite_path
from orderwatch.models import ValidationReport
from orderwatch.notifications import build_notifier_from_env, format_notifications
from orderwatch.reports import write_reports
from orderwatch.runner import OrderWatchRunner

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Check that a paginated listing is ordered newest first")
    parser.add_argument("--target-count", type=int, help="items to collect per environment")
    parser.add_argument(
        "--environment",
        action="append",
        dest="environments",
        choices=BROWSER_ENGINES + (HTTP_ENVIRONMENT,),
        help="environment to run (repeatable; overrides ORDERWATCH_ENVIRONMENTS)",
    )
    parser.add_argument("--max-consecutive-errors", type=int, help="page-level failure budget")
    parser.add_argument("--page-timeout-ms", type=int, help="content readiness timeout")
    parser.add_argument("--navigation-timeout-ms", type=int, help="navigation timeout")
    parser.add_argument("--start-url", help="first listing page to load")
    parser.add_argument("--output-dir", type=Path, help="directory for reports and snapshots")
    parser.add_argument("--no-snapshots", action="store_true", help="skip per-page snapshots")
    parser.add_argument("--no-reports", action="store_true", help="skip writing report files")
    parser.add_argument("--verbose", action="store_true", help="enable debug logging")
    return parser


def build_config(args: argparse.Namespace) -> ValidationConfig:
    return ValidationConfig.from_env().with_overrides(
        target_count=args.target_count,
        environments=tuple(args.environments) if args.environments else None,
        max_consecutive_errors=args.max_consecutive_errors,
        page_timeout_ms=args.page_timeout_ms,
        navigation_timeout_ms=args.navigation_timeout_ms,
        start_url=args.start_url,
        output_dir=args.output_dir,
        enable_snapshots=False if args.no_snapshots else None,
    )


def log_summary(report: ValidationReport) -> None:
    summary = report.summary
    logger.info("=" * 60)
    logger.info("FINAL RESULTS SUMMARY")
    logger.info("Success rate: %.1f%%", summary.success_rate)
    logger.info("Total runs: %d", summary.total_runs)
    logger.info("Average items: %.0f", summary.average_items_collected)
    logger.info("Total sorting errors: %d", summary.total_violations)
    for result in report.results:
        if result.violations:
            first = result.violations[0]
            logger.info(
                "%s | first violation at #%d: %s (%s) before %s (%s)",
                result.environment,
                first.position,
                first.current.title,
                first.current.raw_timestamp,
                first.next.title,
                first.next.raw_timestamp,
            )
        if result.fatal_error:
            logger.info("%s | fatal error: %s", result.environment, result.fatal_error)


def record_history(report: ValidationReport, database_url: str, output_dir: Path) -> None:
    database = Database(path=resolve_sqlite_path(database_url))
    database.initialize()
    run_ids = database.record_report(report)
    logger.info("Recorded %d run(s) in %s", len(run_ids), database.path)
    try:
        timestamp = (
            report.finished_at.replace(":", "-").replace(".", "-").replace("T", "_")
        )
        export_path = output_dir / f"items_{timestamp}.xlsx"
        database.export_items_to_xlsx(export_path)
        logger.info("Exported collected items to %s", export_path)
    except Exception:  # noqa: BLE001
        logger.exception("Failed to export collected items")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = build_config(args)
    except ValueError as exc:
        parser.error(str(exc))

    runner = OrderWatchRunner(config=config)
    report = runner.run()
    log_summary(report)

    if not args.no_reports:
        write_reports(report, config.output_dir)
        logger.info("Reports saved to %s", config.output_dir)

    database_url = (os.getenv("DATABASE_URL") or "").strip()
    if database_url:
        record_history(report, database_url, config.output_dir)

    notifier = build_notifier_from_env()
    if notifier:
        messages = format_notifications(report)
        if messages:
            logger.info("Delivering %d notification(s)", len(messages))
            for message in messages:
                notifier.send(message)
        else:
            logger.debug("No failures to notify.")

    return 0 if report.summary.total_violations == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
