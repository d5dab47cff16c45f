"""Page fetcher contract shared by the HTTP and browser implementations."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Protocol, Sequence

from .config import BROWSER_ENGINES, HTTP_ENVIRONMENT, ValidationConfig
from .models import RawItem, RunMetrics

ITEM_ROW_SELECTOR = "tr.athing"
TITLE_SELECTORS = (".titleline a", "a.storylink")
AGE_SELECTORS = (".age", ".age a")
NEXT_PAGE_SELECTOR = "a.morelink"
PLACEHOLDER_TITLE = "No title"
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
BROWSER_HEADERS = {
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
}


class OrderWatchError(Exception):
    """Base class for recoverable fetch-layer failures."""


class ItemExtractionError(OrderWatchError):
    """A single row is missing data or could not be read."""


class PageUnavailableError(OrderWatchError):
    """The current page could not be loaded or never became ready."""


class NavigationError(OrderWatchError):
    """Moving to the next page failed."""


class EnvironmentUnusableError(OrderWatchError):
    """The underlying client or browser can no longer serve requests."""


class ItemHandle(Protocol):
    """A row on the current page whose data is read on demand."""

    def extract(self) -> RawItem:
        ...


class PageFetcher(Protocol):
    """Capability the pagination loop drives."""

    def open(self) -> None:
        ...

    def fetch_items(self) -> Sequence[ItemHandle]:
        ...

    def has_next_page(self) -> bool:
        ...

    def advance_to_next_page(self) -> bool:
        ...

    def reload(self) -> None:
        ...

    def page_is_usable(self) -> bool:
        ...

    def capture_diagnostic_snapshot(self, label: str) -> Optional[Path]:
        ...

    def close(self) -> None:
        ...

    def __enter__(self) -> "PageFetcher":
        ...

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        ...


def build_fetcher(environment: str, config: ValidationConfig,
                  metrics: RunMetrics) -> PageFetcher:
    """Create the fetcher that serves the given environment id."""
    if environment in BROWSER_ENGINES:
        from .browser import BrowserPageFetcher

        return BrowserPageFetcher(environment=environment,
                                  config=config,
                                  metrics=metrics)
    if environment == HTTP_ENVIRONMENT:
        from .scraper import HttpPageFetcher

        return HttpPageFetcher(environment=environment,
                               config=config,
                               metrics=metrics)
    raise ValueError(
        f"Unknown environment {environment!r}; expected one of "
        f"{', '.join(BROWSER_ENGINES + (HTTP_ENVIRONMENT,))}")
