"""Client-side filter pipeline.

The ZenTao API cannot filter by title or assignee, so every record read by a
walk is passed through :func:`matches`. All predicates are pure: they never
touch the network and never mutate the record.
"""

from __future__ import annotations

from collections.abc import Callable

from .models import Record, SearchOptions, normalize_status

Predicate = Callable[[Record, SearchOptions], bool]


def status_matches(record: Record, options: SearchOptions) -> bool:
    if options.all_statuses:
        return True
    status = normalize_status(record.status)
    return status is not None and status.is_active


def keyword_matches(record: Record, options: SearchOptions) -> bool:
    keyword = (options.keyword or "").strip().lower()
    if not keyword:
        return True
    return keyword in (record.title or "").lower()


def assignee_matches(record: Record, options: SearchOptions) -> bool:
    if not options.assigned_to:
        return True
    if record.assigned_to is None:
        return False
    return record.assigned_to.lower() == options.assigned_to.strip().lower()


PIPELINE: tuple[Predicate, ...] = (status_matches, keyword_matches, assignee_matches)


def matches(record: Record, options: SearchOptions) -> bool:
    return all(predicate(record, options) for predicate in PIPELINE)


__all__ = [
    "Predicate",
    "PIPELINE",
    "status_matches",
    "keyword_matches",
    "assignee_matches",
    "matches",
]
