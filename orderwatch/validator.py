"""Ordering checks over collected items."""

from __future__ import annotations

import datetime as dt
from typing import List, Optional, Sequence

from .models import Item, SortingViolation
from .timestamps import normalize_timestamp


def validate_ordering(
    items: Sequence[Item],
    now: Optional[dt.datetime] = None,
) -> List[SortingViolation]:
    """Report every adjacent pair where the next item is newer than the current one."""
    ordered = list(items)
    violations: List[SortingViolation] = []
    for index, (current, following) in enumerate(zip(ordered, ordered[1:]),
                                                 start=1):
        current_time = _resolve_time(current, now)
        next_time = _resolve_time(following, now)
        if current_time is None or next_time is None:
            continue
        if current_time < next_time:
            violations.append(
                SortingViolation(position=index, current=current, next=following))
    return violations


def _resolve_time(item: Item, now: Optional[dt.datetime]) -> Optional[dt.datetime]:
    if item.normalized_time is not None:
        return item.normalized_time
    if now is None:
        return None
    return normalize_timestamp(item.raw_timestamp, now)
