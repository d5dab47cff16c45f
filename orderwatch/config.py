"""Runtime configuration for validation runs."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional, Tuple

DEFAULT_START_URL = "https://news.ycombinator.com/newest"
BROWSER_ENGINES = ("chromium", "firefox", "webkit")
HTTP_ENVIRONMENT = "http"
ENV_PREFIX = "ORDERWATCH_"


@dataclass(frozen=True)
class ValidationConfig:
    """Options consumed by the pagination loop and its fetchers."""

    target_count: int = 100
    environments: Tuple[str, ...] = ("chromium",)
    max_consecutive_errors: int = 5
    page_timeout_ms: int = 45000
    navigation_timeout_ms: int = 60000
    max_pages: int = 10
    reload_retry_limit: int = 3
    page_delay_s: float = 2.0
    start_url: str = DEFAULT_START_URL
    output_dir: Path = field(default_factory=lambda: Path("reports"))
    enable_snapshots: bool = True

    @property
    def inner_retry_limit(self) -> int:
        """Consecutive failures after which in-place reloads stop."""
        return min(self.reload_retry_limit, self.max_consecutive_errors)

    @property
    def snapshot_dir(self) -> Path:
        return self.output_dir / "snapshots"

    def validate(self) -> "ValidationConfig":
        for name in (
                "target_count",
                "max_consecutive_errors",
                "page_timeout_ms",
                "navigation_timeout_ms",
                "max_pages",
                "reload_retry_limit",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        if self.page_delay_s < 0:
            raise ValueError("page_delay_s must not be negative")
        if not self.environments:
            raise ValueError("at least one environment is required")
        if len(set(self.environments)) != len(self.environments):
            raise ValueError(f"duplicate environments: {self.environments!r}")
        if not self.start_url:
            raise ValueError("start_url must not be empty")
        return self

    def with_overrides(self, **overrides: object) -> "ValidationConfig":
        """Return a copy with every non-None override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes).validate()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ValidationConfig":
        """Build a configuration from ``ORDERWATCH_*`` environment variables."""
        env = os.environ if environ is None else environ
        defaults = cls()

        def _int(name: str, default: int) -> int:
            raw = (env.get(ENV_PREFIX + name) or "").strip()
            if not raw:
                return default
            try:
                return int(raw)
            except ValueError as exc:
                raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from exc

        raw_envs = (env.get(ENV_PREFIX + "ENVIRONMENTS") or "").strip()
        environments = (
            tuple(part.strip() for part in raw_envs.split(",") if part.strip())
            if raw_envs else defaults.environments
        )
        output_dir = (env.get(ENV_PREFIX + "OUTPUT_DIR") or "").strip()

        return cls(
            target_count=_int("TARGET_COUNT", defaults.target_count),
            environments=environments,
            max_consecutive_errors=_int("MAX_CONSECUTIVE_ERRORS",
                                        defaults.max_consecutive_errors),
            page_timeout_ms=_int("PAGE_TIMEOUT_MS", defaults.page_timeout_ms),
            navigation_timeout_ms=_int("NAVIGATION_TIMEOUT_MS",
                                       defaults.navigation_timeout_ms),
            start_url=(env.get(ENV_PREFIX + "START_URL") or "").strip()
            or defaults.start_url,
            output_dir=Path(output_dir) if output_dir else defaults.output_dir,
        ).validate()
