"""SQLite-backed run history."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Tuple

from openpyxl import Workbook

from .models import ValidationReport

SQLITE_PREFIX = "sqlite://"
ITEM_COLUMNS = (
    "environment",
    "position",
    "title",
    "raw_timestamp",
    "normalized_time",
    "source_page",
    "extraction_duration_ms",
)


def resolve_sqlite_path(database_url: str) -> Path:
    """Translate a DATABASE_URL into a filesystem path."""
    if not database_url:
        raise ValueError("DATABASE_URL must not be empty")

    if database_url.startswith(SQLITE_PREFIX):
        raw_path = database_url[len(SQLITE_PREFIX):]
        # sqlite:///path and sqlite://path are both accepted.
        if raw_path.startswith("/"):
            raw_path = raw_path[1:]
        path = Path(raw_path)
    else:
        path = Path(database_url)

    if not path.is_absolute():
        path = Path.cwd() / path
    return path.expanduser().resolve()


@dataclass
class HistoryRun:
    """One persisted environment run."""

    run_id: int
    executed_at: str
    environment: str
    success: bool
    stop_reason: str
    items_collected: int
    violations: int
    fatal_error: str | None


@dataclass
class Database:
    """Thin wrapper around sqlite3 for storing validation history."""

    path: Path

    def connect(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(self.path)

    def initialize(self) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    executed_at TEXT NOT NULL,
                    environment TEXT NOT NULL,
                    success INTEGER NOT NULL,
                    stop_reason TEXT NOT NULL,
                    items_collected INTEGER NOT NULL,
                    violations INTEGER NOT NULL,
                    total_time_ms INTEGER NOT NULL,
                    network_requests INTEGER NOT NULL,
                    fatal_error TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS run_items (
                    run_id INTEGER NOT NULL,
                    position INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    raw_timestamp TEXT NOT NULL,
                    normalized_time TEXT,
                    source_page INTEGER NOT NULL,
                    extraction_duration_ms INTEGER NOT NULL,
                    PRIMARY KEY(run_id, position),
                    FOREIGN KEY(run_id) REFERENCES runs(id)
                )
                """
            )
            conn.commit()

    def record_report(self, report: ValidationReport) -> List[int]:
        """Append one runs row per result, with its items. Returns the new run ids."""
        run_ids: List[int] = []
        with self.connect() as conn:
            for result in report.results:
                cursor = conn.execute(
                    """
                    INSERT INTO runs (
                        executed_at, environment, success, stop_reason,
                        items_collected, violations, total_time_ms,
                        network_requests, fatal_error
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        result.finished_at or report.finished_at,
                        result.environment,
                        int(result.success),
                        result.stop_reason.value,
                        result.items_collected,
                        len(result.violations),
                        result.metrics.total_time_ms,
                        result.metrics.network_requests,
                        result.fatal_error,
                    ),
                )
                run_id = int(cursor.lastrowid)
                conn.executemany(
                    """
                    INSERT INTO run_items (
                        run_id, position, title, raw_timestamp, normalized_time,
                        source_page, extraction_duration_ms
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            run_id,
                            item.position,
                            item.title,
                            item.raw_timestamp,
                            item.normalized_time.isoformat() if item.normalized_time else None,
                            item.source_page,
                            item.extraction_duration_ms,
                        )
                        for item in result.items
                    ],
                )
                run_ids.append(run_id)
            conn.commit()
        return run_ids

    def recent_runs(self, limit: int = 10) -> List[HistoryRun]:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                SELECT id, executed_at, environment, success, stop_reason,
                       items_collected, violations, fatal_error
                FROM runs ORDER BY id DESC LIMIT ?
                """,
                (limit,),
            )
            return [
                HistoryRun(
                    run_id=row[0],
                    executed_at=row[1],
                    environment=row[2],
                    success=bool(row[3]),
                    stop_reason=row[4],
                    items_collected=int(row[5]),
                    violations=int(row[6]),
                    fatal_error=row[7],
                )
                for row in cursor.fetchall()
            ]

    def fetch_items(self, run_id: int) -> List[Tuple]:
        """Return the stored items of a run in position order."""
        with self.connect() as conn:
            cursor = conn.execute(
                """
                SELECT position, title, raw_timestamp, normalized_time,
                       source_page, extraction_duration_ms
                FROM run_items WHERE run_id = ? ORDER BY position
                """,
                (run_id,),
            )
            return cursor.fetchall()

    def _latest_items(self) -> Iterable[Tuple]:
        query = """
            SELECT r.environment, i.position, i.title, i.raw_timestamp,
                   i.normalized_time, i.source_page, i.extraction_duration_ms
            FROM run_items i
            JOIN runs r ON r.id = i.run_id
            WHERE r.id IN (SELECT MAX(id) FROM runs GROUP BY environment)
            ORDER BY r.environment, i.position
        """
        with self.connect() as conn:
            cursor = conn.execute(query)
            yield from cursor.fetchall()

    def export_items_to_xlsx(self, path: Path) -> Path:
        """Write the latest run's items for each environment to an Excel workbook."""
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "items"
        sheet.append(list(ITEM_COLUMNS))
        for row in self._latest_items():
            sheet.append(list(row))
        path.parent.mkdir(parents=True, exist_ok=True)
        workbook.save(path)
        return path
