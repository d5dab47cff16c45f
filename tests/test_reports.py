import json

from orderwatch.reports import SAMPLE_ITEM_COUNT, render_html, render_json, render_text, write_reports


def test_text_report_lists_summary_and_first_violation(sample_report):
    text = render_text(sample_report, generated_at="2025-03-10T12:00:00+00:00")

    assert "Total Test Runs: 3" in text
    assert "Successful: 1" in text
    assert "Success Rate: 33.33%" in text
    assert "Total Sorting Errors: 1" in text
    assert "FIREFOX:" in text
    assert "    Position: 1" in text
    assert "    Next: Newer story" in text
    assert "  Error: Executable doesn't exist" in text
    assert "  Network Requests: 42" in text


def test_html_report_escapes_titles(sample_report):
    html_text = render_html(sample_report, generated_at="now")

    assert "Older &lt;b&gt;story&lt;/b&gt;" in html_text
    assert "<b>story</b>" not in html_text
    assert "Executable doesn&#x27;t exist" in html_text
    assert "33.3%" in html_text


def test_json_report_samples_items(sample_report):
    payload = json.loads(render_json(sample_report))

    assert payload["summary"]["total_violations"] == 1
    assert payload["summary"]["environments"] == ["chromium", "firefox", "webkit"]
    chromium = payload["runs"][0]
    assert chromium["items_collected"] == 12
    assert len(chromium["items"]) == SAMPLE_ITEM_COUNT
    assert chromium["stop_reason"] == "target_reached"
    assert chromium["metrics"]["average_page_load_ms"] == 500.0
    assert chromium["metrics"]["errors"] == [{
        "kind": "item_extraction",
        "message": "No subtext row found for item",
        "page": 1,
    }]
    firefox = payload["runs"][1]
    assert firefox["violations"][0]["position"] == 1
    assert firefox["violations"][0]["next"]["title"] == "Newer story"


def test_write_reports_creates_all_files(tmp_path, sample_report):
    paths = write_reports(sample_report, tmp_path / "out")

    assert [p.name for p in paths] == [
        "validation-report.txt",
        "validation-report.html",
        "validation-report.json",
    ]
    assert all(p.exists() for p in paths)
