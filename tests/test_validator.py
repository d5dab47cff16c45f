import datetime as dt

from orderwatch.models import Item
from orderwatch.validator import validate_ordering

T = dt.datetime(2025, 3, 10, 12, 0, 0, tzinfo=dt.timezone.utc)


def make_item(title: str, when: dt.datetime | None, position: int,
              raw: str | None = None) -> Item:
    return Item(
        title=title,
        raw_timestamp=raw if raw is not None else (when.isoformat() if when else "unknown"),
        normalized_time=when,
        position=position,
        source_page=1,
        environment="http",
        extraction_duration_ms=1,
    )


def test_detects_single_violation():
    items = [
        make_item("A", T, 1),
        make_item("B", T - dt.timedelta(seconds=10), 2),
        make_item("C", T - dt.timedelta(seconds=5), 3),
    ]

    violations = validate_ordering(items)

    assert len(violations) == 1
    assert violations[0].position == 2
    assert violations[0].current.title == "B"
    assert violations[0].next.title == "C"


def test_descending_and_equal_times_pass():
    items = [
        make_item("A", T, 1),
        make_item("B", T, 2),
        make_item("C", T - dt.timedelta(minutes=1), 3),
    ]
    assert validate_ordering(items) == []


def test_unknown_times_are_skipped():
    items = [
        make_item("A", T - dt.timedelta(hours=1), 1),
        make_item("B", None, 2),
        make_item("C", T, 3),
    ]
    assert validate_ordering(items) == []


def test_reports_violations_in_encounter_order():
    items = [
        make_item("A", T - dt.timedelta(hours=2), 1),
        make_item("B", T - dt.timedelta(hours=1), 2),
        make_item("C", T, 3),
    ]

    violations = validate_ordering(items)

    assert [v.position for v in violations] == [1, 2]


def test_does_not_mutate_input():
    items = [
        make_item("A", T - dt.timedelta(hours=1), 1),
        make_item("B", T, 2),
    ]
    snapshot = list(items)

    validate_ordering(items)

    assert items == snapshot


def test_falls_back_to_raw_timestamp_when_now_given():
    items = [
        make_item("A", None, 1, raw="3 hours ago"),
        make_item("B", None, 2, raw="1 hour ago"),
    ]

    assert validate_ordering(items) == []
    violations = validate_ordering(items, now=T)
    assert len(violations) == 1
    assert violations[0].position == 1


def test_short_sequences_have_no_violations():
    assert validate_ordering([]) == []
    assert validate_ordering([make_item("A", T, 1)]) == []
