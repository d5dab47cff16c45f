"""HTTP-backed fetcher for server-rendered listing pages."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, List, Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup, Tag

from .config import ValidationConfig
from .fetcher import (
    AGE_SELECTORS,
    BROWSER_HEADERS,
    BROWSER_USER_AGENT,
    ITEM_ROW_SELECTOR,
    NEXT_PAGE_SELECTOR,
    TITLE_SELECTORS,
    EnvironmentUnusableError,
    ItemExtractionError,
    PageUnavailableError,
)
from .models import RawItem, RunMetrics

logger = logging.getLogger(__name__)

READINESS_POLL_INTERVAL_S = 1.0


class HtmlItemHandle:
    """Listing row parsed out of a fetched HTML document."""

    def __init__(self, row: Tag):
        self.row = row

    def extract(self) -> RawItem:
        subtext = self.row.find_next_sibling("tr")
        if subtext is None or "athing" in (subtext.get("class") or []):
            raise ItemExtractionError("No subtext row found for item")
        return RawItem(title=_extract_title(self.row),
                       raw_timestamp=_extract_timestamp(subtext))


class HttpPageFetcher:
    """Walks a paginated listing with plain HTTP requests."""

    def __init__(
        self,
        environment: str,
        config: ValidationConfig,
        metrics: RunMetrics,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.environment = environment
        self.config = config
        self.metrics = metrics
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": BROWSER_USER_AGENT})
        self.session.headers.update(BROWSER_HEADERS)
        self._sleep = sleep
        self._clock = clock
        self._closed = False
        self._url: str | None = None
        self._html: str | None = None
        self._soup: BeautifulSoup | None = None

    def __enter__(self) -> "HttpPageFetcher":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def current_url(self) -> str | None:
        return self._url

    def open(self) -> None:
        logger.info("Opening %s (%s)", self.config.start_url, self.environment)
        self._load(self.config.start_url)

    def fetch_items(self) -> List[HtmlItemHandle]:
        self._ensure_usable()
        if self._soup is None:
            raise PageUnavailableError("No page has been loaded")
        return [HtmlItemHandle(row) for row in self._soup.select(ITEM_ROW_SELECTOR)]

    def has_next_page(self) -> bool:
        return self._next_href() is not None

    def advance_to_next_page(self) -> bool:
        href = self._next_href()
        if href is None:
            logger.info("No more pages available")
            return False
        target = urljoin(self._url or self.config.start_url, href)
        self._sleep(self.config.page_delay_s)
        try:
            self._load(target)
        except (PageUnavailableError, EnvironmentUnusableError) as exc:
            logger.error("Navigation to %s failed: %s", target, exc)
            return False
        return True

    def reload(self) -> None:
        if self._url is None:
            raise PageUnavailableError("No page has been loaded")
        logger.info("Reloading %s", self._url)
        self._load(self._url)

    def page_is_usable(self) -> bool:
        return not self._closed

    def capture_diagnostic_snapshot(self, label: str) -> Optional[Path]:
        if self._html is None:
            return None
        path = self.config.snapshot_dir / f"{label}-{self.environment}.html"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(self._html, encoding="utf-8")
        except OSError as exc:
            logger.warning("Snapshot failed for %s: %s", label, exc)
            return None
        return path

    def close(self) -> None:
        if not self._closed:
            self.session.close()
            self._closed = True

    def _ensure_usable(self) -> None:
        if self._closed:
            raise EnvironmentUnusableError("HTTP session is closed")

    def _next_href(self) -> str | None:
        if self._soup is None:
            return None
        link = self._soup.select_one(NEXT_PAGE_SELECTOR)
        if link is None:
            return None
        href = link.get("href")
        if not href:
            logger.warning("More link has no href attribute")
            return None
        return href

    def _get(self, url: str) -> str:
        self._ensure_usable()
        self.metrics.network_requests += 1
        response = self.session.get(
            url,
            timeout=self.config.navigation_timeout_ms / 1000,
        )
        response.raise_for_status()
        if not response.encoding or response.encoding.lower() == "iso-8859-1":
            response.encoding = response.apparent_encoding or "utf-8"
        return response.text

    def _load(self, url: str) -> None:
        """Fetch ``url`` until listing rows appear or the page timeout runs out."""
        deadline = self._clock() + self.config.page_timeout_ms / 1000
        last_error: Exception | None = None

        while True:
            try:
                html_text = self._get(url)
            except requests.RequestException as exc:
                last_error = exc
                logger.warning("Request for %s failed: %s", url, exc)
            else:
                soup = BeautifulSoup(html_text, "html.parser")
                row_count = len(soup.select(ITEM_ROW_SELECTOR))
                if row_count:
                    logger.info("Found %d items on %s", row_count, url)
                    self._url = url
                    self._html, self._soup = html_text, soup
                    return
                last_error = None
                logger.warning("Page %s has no items yet", url)

            if self._clock() >= deadline:
                break
            self._sleep(READINESS_POLL_INTERVAL_S)

        if last_error is None:
            raise PageUnavailableError(
                f"No items found on {url} within {self.config.page_timeout_ms}ms")
        raise PageUnavailableError(
            f"Could not load {url} within {self.config.page_timeout_ms}ms: {last_error}")


def _extract_title(row: Tag) -> str | None:
    for selector in TITLE_SELECTORS:
        anchor = row.select_one(selector)
        if anchor is not None:
            text = anchor.get_text(strip=True)
            if text:
                return text
    return None


def _extract_timestamp(subtext: Tag) -> str | None:
    for selector in AGE_SELECTORS:
        element = subtext.select_one(selector)
        if element is not None and element.get("title"):
            return element["title"]
    titled = subtext.find(attrs={"title": True})
    if titled is not None and titled.get("title"):
        return titled["title"]
    for selector in AGE_SELECTORS:
        element = subtext.select_one(selector)
        if element is not None:
            text = element.get_text(strip=True)
            if text:
                return text
    return None
