"""Notification helpers for delivering validation failures to external channels."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List, Protocol

import requests

from .models import RunResult, ValidationReport

logger = logging.getLogger(__name__)

MAX_VIOLATIONS_PER_MESSAGE = 5


class Notifier(Protocol):
    """Protocol defining the notifier contract."""

    def send(self, message: str) -> None:
        ...


@dataclass
class SlackNotifier:
    """Send messages to Slack via Incoming Webhook."""

    webhook_url: str
    timeout: int = 10

    def send(self, message: str) -> None:
        response = requests.post(
            self.webhook_url,
            json={"text": message},
            timeout=self.timeout,
        )
        response.raise_for_status()


@dataclass
class CompositeNotifier:
    """Fan-out notifier that forwards messages to multiple channels."""

    notifiers: List[Notifier]

    def send(self, message: str) -> None:
        for notifier in self.notifiers:
            try:
                notifier.send(message)
            except Exception:  # noqa: BLE001
                logger.exception("Failed to deliver notification via %s",
                                 type(notifier).__name__)


def build_notifier_from_env() -> CompositeNotifier | None:
    """Construct a notifier from environment configuration."""
    notifiers: list[Notifier] = []

    slack_webhook = (os.getenv("SLACK_WEBHOOK") or "").strip()
    if slack_webhook:
        notifiers.append(SlackNotifier(webhook_url=slack_webhook))

    if not notifiers:
        return None
    return CompositeNotifier(notifiers=notifiers)


def format_notifications(report: ValidationReport) -> List[str]:
    """Render one message per failed run."""
    return [_format_failure(result) for result in report.results if not result.success]


def _format_failure(result: RunResult) -> str:
    lines = [
        f":x: Ordering check failed ({result.environment})",
        f"Items collected: {result.items_collected}",
        f"Stop reason: {result.stop_reason.value}",
    ]
    if result.fatal_error:
        lines.append(f"Error: {result.fatal_error}")
    if result.violations:
        lines.append(f"Sorting errors: {len(result.violations)}")
        for violation in result.violations[:MAX_VIOLATIONS_PER_MESSAGE]:
            lines.append(
                f"- #{violation.position} {violation.current.title} "
                f"({violation.current.raw_timestamp}) before "
                f"{violation.next.title} ({violation.next.raw_timestamp})")
        if len(result.violations) > MAX_VIOLATIONS_PER_MESSAGE:
            remaining = len(result.violations) - MAX_VIOLATIONS_PER_MESSAGE
            lines.append(f"...and {remaining} more")
    return "\n".join(lines)


__all__ = [
    "CompositeNotifier",
    "Notifier",
    "SlackNotifier",
    "build_notifier_from_env",
    "format_notifications",
]
