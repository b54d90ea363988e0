"""Pure filtering of merged timeline entries."""
from __future__ import annotations

from typing import Iterable, List, Optional

from .schemas import TimelineEntry, TimelineFilters


def _contains(haystack: Optional[str], needle: str) -> bool:
    return bool(haystack) and needle in haystack.lower()


def matches(entry: TimelineEntry, filters: TimelineFilters) -> bool:
    if filters.types and entry.type.value not in filters.types:
        return False
    if filters.sources and entry.source not in filters.sources:
        return False

    if filters.start_date is not None or filters.end_date is not None:
        if entry.timestamp is None:
            return False
        if filters.start_date is not None and entry.timestamp < filters.start_date:
            return False
        if filters.end_date is not None and entry.timestamp > filters.end_date:
            return False

    if filters.search_text:
        needle = filters.search_text.lower()
        if not (_contains(entry.title, needle) or _contains(entry.content, needle)):
            return False

    if filters.author:
        if not _contains(entry.author, filters.author.lower()):
            return False
    return True


def filter_entries(
    entries: Iterable[TimelineEntry],
    filters: Optional[TimelineFilters] = None,
) -> List[TimelineEntry]:
    """Keep the entries matching every set predicate, preserving order.

    A range whose end precedes its start simply matches nothing.
    """

    if filters is None:
        return list(entries)
    return [entry for entry in entries if matches(entry, filters)]
