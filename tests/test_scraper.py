import itertools

import pytest
import requests

from orderwatch.config import ValidationConfig
from orderwatch.fetcher import EnvironmentUnusableError, ItemExtractionError, PageUnavailableError
from orderwatch.models import RunMetrics
from orderwatch.scraper import HttpPageFetcher

START_URL = "https://news.example.com/newest"

PAGE_ONE = """
<html><body>
<table>
  <tr class="athing" id="101">
    <td class="title"><span class="titleline"><a href="https://a.example">Newest story</a></span></td>
  </tr>
  <tr><td class="subtext"><span class="age" title="2025-03-10T11:58:00 1741607880"><a href="item?id=101">2 minutes ago</a></span></td></tr>
  <tr class="spacer"></tr>
  <tr class="athing" id="100">
    <td class="title"><a class="storylink" href="https://b.example">Legacy markup story</a></td>
  </tr>
  <tr><td class="subtext"><span class="age"><a href="item?id=100">5 minutes ago</a></span></td></tr>
  <tr class="athing" id="99">
    <td class="title"><span class="titleline"><a href="https://c.example">Orphan row</a></span></td>
  </tr>
</table>
<a class="morelink" href="newest?next=99&amp;n=31">More</a>
</body></html>
"""

PAGE_TWO = """
<html><body><table>
  <tr class="athing" id="98">
    <td class="title"><span class="titleline"><a href="https://d.example">Older story</a></span></td>
  </tr>
  <tr><td class="subtext"><span class="age" title="2025-03-10T11:40:00">20 minutes ago</span></td></tr>
</table></body></html>
"""

EMPTY_PAGE = "<html><body><table></table></body></html>"


class DummyResponse:

    def __init__(self, text: str):
        self.text = text
        self.status_code = 200
        self.encoding = "utf-8"

    def raise_for_status(self):
        pass

    @property
    def apparent_encoding(self):
        return "utf-8"


class FakeSession:

    def __init__(self, responses):
        self.responses = responses
        self.headers = {}
        self.calls = []
        self.closed = False

    def get(self, url, timeout=None):
        self.calls.append(url)
        queue = self.responses[url]
        outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(outcome, Exception):
            raise outcome
        return DummyResponse(outcome)

    def close(self):
        self.closed = True


def make_fetcher(tmp_path, responses, **overrides):
    options = dict(
        environments=("http",),
        start_url=START_URL,
        page_timeout_ms=3000,
        page_delay_s=0,
        output_dir=tmp_path,
    )
    options.update(overrides)
    session = FakeSession(responses)
    sleeps = []
    fetcher = HttpPageFetcher(
        environment="http",
        config=ValidationConfig(**options),
        metrics=RunMetrics(),
        session=session,
        sleep=sleeps.append,
        clock=itertools.count().__next__,
    )
    return fetcher, session, sleeps


def test_fetcher_extracts_items_and_sends_browser_headers(tmp_path):
    fetcher, session, _ = make_fetcher(tmp_path, {START_URL: [PAGE_ONE]})
    fetcher.open()

    handles = fetcher.fetch_items()

    assert len(handles) == 3
    first = handles[0].extract()
    assert first.title == "Newest story"
    assert first.raw_timestamp == "2025-03-10T11:58:00 1741607880"
    second = handles[1].extract()
    assert second.title == "Legacy markup story"
    assert second.raw_timestamp == "5 minutes ago"
    with pytest.raises(ItemExtractionError):
        handles[2].extract()
    assert "Mozilla" in session.headers["User-Agent"]
    assert "Accept-Language" in session.headers
    assert fetcher.metrics.network_requests == 1


def test_fetcher_follows_more_link(tmp_path):
    next_url = "https://news.example.com/newest?next=99&n=31"
    fetcher, session, sleeps = make_fetcher(
        tmp_path,
        {START_URL: [PAGE_ONE], next_url: [PAGE_TWO]},
        page_delay_s=2.0,
    )
    fetcher.open()

    assert fetcher.has_next_page() is True
    assert fetcher.advance_to_next_page() is True

    assert fetcher.current_url == next_url
    assert sleeps[0] == 2.0
    assert [h.extract().title for h in fetcher.fetch_items()] == ["Older story"]
    assert fetcher.has_next_page() is False
    assert fetcher.advance_to_next_page() is False


def test_readiness_wait_polls_until_items_appear(tmp_path):
    fetcher, session, sleeps = make_fetcher(tmp_path, {START_URL: [EMPTY_PAGE, PAGE_ONE]})

    fetcher.open()

    assert len(session.calls) == 2
    assert len(sleeps) == 1
    assert len(fetcher.fetch_items()) == 3


def test_page_that_stays_empty_raises(tmp_path):
    fetcher, session, _ = make_fetcher(tmp_path, {START_URL: [EMPTY_PAGE]})

    with pytest.raises(PageUnavailableError, match="No items found"):
        fetcher.open()
    assert len(session.calls) == 3


def test_advance_to_empty_page_returns_false(tmp_path):
    next_url = "https://news.example.com/newest?next=99&n=31"
    fetcher, _, _ = make_fetcher(tmp_path, {START_URL: [PAGE_ONE], next_url: [EMPTY_PAGE]})
    fetcher.open()

    assert fetcher.advance_to_next_page() is False
    assert fetcher.current_url == START_URL
    assert len(fetcher.fetch_items()) == 3


def test_unreachable_page_raises(tmp_path):
    error = requests.ConnectionError("connection refused")
    fetcher, _, _ = make_fetcher(tmp_path, {START_URL: [error]})

    with pytest.raises(PageUnavailableError):
        fetcher.open()
    assert fetcher.metrics.network_requests == 3


def test_failed_advance_returns_false(tmp_path):
    next_url = "https://news.example.com/newest?next=99&n=31"
    fetcher, _, _ = make_fetcher(
        tmp_path,
        {START_URL: [PAGE_ONE], next_url: [requests.Timeout("slow")]},
    )
    fetcher.open()

    assert fetcher.advance_to_next_page() is False
    assert fetcher.current_url == START_URL


def test_reload_refetches_current_page(tmp_path):
    fetcher, session, _ = make_fetcher(tmp_path, {START_URL: [PAGE_ONE]})
    fetcher.open()

    fetcher.reload()

    assert session.calls == [START_URL, START_URL]


def test_snapshot_writes_html(tmp_path):
    fetcher, _, _ = make_fetcher(tmp_path, {START_URL: [PAGE_ONE]})
    fetcher.open()

    path = fetcher.capture_diagnostic_snapshot("page-1")

    assert path == tmp_path / "snapshots" / "page-1-http.html"
    assert "Newest story" in path.read_text(encoding="utf-8")


def test_closed_fetcher_is_unusable(tmp_path):
    fetcher, session, _ = make_fetcher(tmp_path, {START_URL: [PAGE_ONE]})
    with fetcher:
        fetcher.open()
        assert fetcher.page_is_usable() is True

    assert session.closed is True
    assert fetcher.page_is_usable() is False
    with pytest.raises(EnvironmentUnusableError):
        fetcher.fetch_items()
