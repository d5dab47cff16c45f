"""Playwright-driven fetcher, one browser engine per environment."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional
from urllib.parse import urljoin

from playwright.sync_api import ElementHandle, Page
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from .config import ValidationConfig
from .fetcher import (
    BROWSER_HEADERS,
    BROWSER_USER_AGENT,
    ITEM_ROW_SELECTOR,
    NEXT_PAGE_SELECTOR,
    EnvironmentUnusableError,
    ItemExtractionError,
    NavigationError,
    PageUnavailableError,
)
from .models import RawItem, RunMetrics

logger = logging.getLogger(__name__)

CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-extensions",
]
VIEWPORT = {"width": 1920, "height": 1080}
LAUNCH_TIMEOUT_MS = 60000
SELECTOR_WAIT_MS = 20000
NETWORK_IDLE_WAIT_MS = 15000
TABLE_WAIT_MS = 10000
SETTLE_WAIT_MS = 5000

EXTRACT_ROW_SCRIPT = """
(row) => {
    const subtext = row.nextElementSibling;
    const title = row.querySelector('.titleline a')?.textContent?.trim()
        || row.querySelector('a.storylink')?.textContent?.trim()
        || null;
    if (!subtext) {
        return {title, timestamp: null, hasSubtext: false};
    }
    const timestamp = subtext.querySelector('.age')?.title
        || subtext.querySelector('.age a')?.title
        || subtext.querySelector('[title]')?.title
        || subtext.querySelector('.age')?.textContent?.trim()
        || subtext.querySelector('.age a')?.textContent?.trim()
        || null;
    return {title, timestamp, hasSubtext: true};
}
"""


class BrowserItemHandle:
    """Listing row living in a browser page."""

    def __init__(self, row: ElementHandle):
        self.row = row

    def extract(self) -> RawItem:
        try:
            data = self.row.evaluate(EXTRACT_ROW_SCRIPT)
        except PlaywrightError as exc:
            raise ItemExtractionError(str(exc)) from exc
        if not data.get("hasSubtext"):
            raise ItemExtractionError("No subtext row found for item")
        return RawItem(title=data.get("title"), raw_timestamp=data.get("timestamp"))


class BrowserPageFetcher:
    """Drives a headless browser through the listing's pages."""

    def __init__(self, environment: str, config: ValidationConfig,
                 metrics: RunMetrics):
        self.environment = environment
        self.config = config
        self.metrics = metrics
        self._playwright = None
        self._browser = None
        self.page: Page | None = None

    def __enter__(self) -> "BrowserPageFetcher":
        self._launch()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _launch(self) -> None:
        self._playwright = sync_playwright().start()
        launcher = getattr(self._playwright, self.environment)
        self._browser = launcher.launch(
            headless=True,
            timeout=LAUNCH_TIMEOUT_MS,
            args=CHROMIUM_ARGS if self.environment == "chromium" else [],
        )
        context = self._browser.new_context(
            user_agent=BROWSER_USER_AGENT,
            viewport=VIEWPORT,
            extra_http_headers=BROWSER_HEADERS,
        )
        self.page = context.new_page()
        self.page.on("request", self._on_request)
        self.page.set_default_timeout(self.config.page_timeout_ms)
        self.page.set_default_navigation_timeout(self.config.navigation_timeout_ms)
        logger.info("Launched %s", self.environment)

    def _on_request(self, _request) -> None:
        self.metrics.network_requests += 1

    def _require_page(self) -> Page:
        if self.page is None or self.page.is_closed():
            raise EnvironmentUnusableError(f"{self.environment} page is closed")
        return self.page

    def open(self) -> None:
        page = self._require_page()
        logger.info("Opening %s (%s)", self.config.start_url, self.environment)
        try:
            page.goto(self.config.start_url,
                      wait_until="domcontentloaded",
                      timeout=self.config.navigation_timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise PageUnavailableError(f"Navigation timed out: {exc}") from exc
        self.wait_for_items()

    def wait_for_items(self) -> int:
        """Block until listing rows exist, trying progressively looser signals."""
        page = self._require_page()
        try:
            page.wait_for_selector(ITEM_ROW_SELECTOR, timeout=SELECTOR_WAIT_MS)
            count = self._row_count(page)
            if count:
                logger.info("Found %d items on page", count)
                return count
        except PlaywrightTimeoutError:
            logger.warning("Primary selector wait failed, trying fallback methods")

        try:
            page.wait_for_load_state("networkidle", timeout=NETWORK_IDLE_WAIT_MS)
            count = self._row_count(page)
            if count:
                logger.info("Network idle fallback found %d items", count)
                return count
        except PlaywrightTimeoutError:
            logger.warning("Network idle wait failed")

        try:
            page.wait_for_selector("table", timeout=TABLE_WAIT_MS)
            count = self._row_count(page)
            if count:
                logger.info("Table fallback found %d items", count)
                return count
        except PlaywrightTimeoutError:
            logger.warning("Table fallback failed")

        count = self._row_count(page)
        if count == 0:
            raise PageUnavailableError("No items found after all fallback attempts")
        return count

    def fetch_items(self) -> List[BrowserItemHandle]:
        page = self._require_page()
        try:
            page.wait_for_load_state("domcontentloaded", timeout=self.config.page_timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise PageUnavailableError(f"Page never became ready: {exc}") from exc
        return [BrowserItemHandle(row) for row in page.query_selector_all(ITEM_ROW_SELECTOR)]

    def has_next_page(self) -> bool:
        return self._next_href() is not None

    def advance_to_next_page(self) -> bool:
        try:
            page = self._require_page()
            try:
                page.wait_for_load_state("networkidle", timeout=SETTLE_WAIT_MS)
            except PlaywrightTimeoutError:
                pass
            href = self._next_href()
            if href is None:
                logger.info("No more pages available")
                return False

            page.wait_for_timeout(self.config.page_delay_s * 1000)
            full_url = urljoin(page.url, href)
            try:
                page.goto(full_url,
                          wait_until="domcontentloaded",
                          timeout=self.config.navigation_timeout_ms)
            except PlaywrightError as exc:
                logger.warning("Direct navigation failed, trying click method: %s", exc)
                self._click_next(page)

            self.wait_for_items()
            return True
        except (PlaywrightError, NavigationError, PageUnavailableError,
                EnvironmentUnusableError) as exc:
            logger.error("Navigation failed: %s", exc)
            return False

    def _click_next(self, page: Page) -> None:
        link = page.query_selector(NEXT_PAGE_SELECTOR)
        if link is None:
            raise NavigationError("More link disappeared")
        previous_url = page.url
        link.click()
        page.wait_for_function(
            "(oldUrl) => window.location.href !== oldUrl",
            arg=previous_url,
            timeout=self.config.navigation_timeout_ms,
        )
        page.wait_for_load_state("domcontentloaded", timeout=self.config.page_timeout_ms)

    def reload(self) -> None:
        page = self._require_page()
        try:
            page.reload(wait_until="domcontentloaded")
        except PlaywrightError as exc:
            raise PageUnavailableError(f"Reload failed: {exc}") from exc
        self.wait_for_items()

    def page_is_usable(self) -> bool:
        return self.page is not None and not self.page.is_closed()

    def capture_diagnostic_snapshot(self, label: str) -> Optional[Path]:
        if not self.page_is_usable():
            return None
        path = self.config.snapshot_dir / f"{label}-{self.environment}.png"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self.page.screenshot(path=str(path), full_page=False)
        except (OSError, PlaywrightError) as exc:
            logger.warning("Screenshot failed: %s", exc)
            return None
        return path

    def close(self) -> None:
        try:
            if self.page is not None and not self.page.is_closed():
                self.page.close()
        except PlaywrightError as exc:
            logger.warning("Error closing page: %s", exc)
        try:
            if self._browser is not None:
                self._browser.close()
        except PlaywrightError as exc:
            logger.warning("Error closing browser: %s", exc)
        try:
            if self._playwright is not None:
                self._playwright.stop()
        except PlaywrightError as exc:
            logger.warning("Error stopping Playwright: %s", exc)
        self.page = None
        self._browser = None
        self._playwright = None

    def _row_count(self, page: Page) -> int:
        return len(page.query_selector_all(ITEM_ROW_SELECTOR))

    def _next_href(self) -> str | None:
        page = self._require_page()
        link = page.query_selector(NEXT_PAGE_SELECTOR)
        if link is None:
            return None
        href = link.get_attribute("href")
        if not href:
            logger.warning("More link has no href attribute")
            return None
        return href
