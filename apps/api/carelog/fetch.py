"""One-shot timeline queries over a date window."""
from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime, timezone, tzinfo
from typing import List, Optional, Sequence

from .aggregator import sort_entries
from .config import CONFIG
from .entry_types import group_entries_by_period
from .schemas import DaySummary, DayTimeline, TimelineEntry
from .sources import DEFAULT_SOURCES, SourceDescriptor, within_window
from .store import DocumentStore, IndexRequiredError, StoreError
from .timestamps import local_day_bounds

logger = logging.getLogger(__name__)


def fetch_source_entries(
    store: DocumentStore,
    source: SourceDescriptor,
    child_id: str,
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    child_field: Optional[str] = None,
    timeout: Optional[float] = None,
) -> List[TimelineEntry]:
    """Entries of one source within [start, end], newest first.

    A missing composite index switches to the single-predicate query with the
    window applied client-side. Any other failure is logged and yields no
    entries so one broken source cannot blank the whole timeline.
    """

    child_field = child_field or CONFIG.timeline.child_field
    timeout = timeout if timeout is not None else CONFIG.timeline.query_timeout_seconds
    primary = source.primary_query(child_id, child_field=child_field, start=start, end=end)
    try:
        try:
            documents = store.fetch(primary, timeout=timeout)
        except IndexRequiredError:
            logger.warning(
                "index missing for timeline source, using fallback query",
                extra={"source": source.key, "child_id": child_id},
            )
            documents = store.fetch(source.fallback_query(child_id, child_field=child_field), timeout=timeout)
        entries = source.to_entries(documents)
    except StoreError as exc:
        logger.error(
            "timeline source query failed",
            extra={"source": source.key, "child_id": child_id, "error": str(exc)},
        )
        return []
    except Exception:
        logger.exception(
            "unexpected error querying timeline source",
            extra={"source": source.key, "child_id": child_id},
        )
        return []
    return sort_entries(entry for entry in entries if within_window(entry, start, end))


def fetch_timeline(
    store: DocumentStore,
    child_id: str,
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    sources: Optional[Sequence[SourceDescriptor]] = None,
    timeout: Optional[float] = None,
) -> List[TimelineEntry]:
    """Merged entries of every source for ``child_id`` within the window."""

    entries: List[TimelineEntry] = []
    for source in sources if sources is not None else DEFAULT_SOURCES:
        entries.extend(fetch_source_entries(store, source, child_id, start=start, end=end, timeout=timeout))
    logger.info(
        "timeline fetched",
        extra={"child_id": child_id, "count": len(entries)},
    )
    return sort_entries(entries)


def summarize_day(entries: Sequence[TimelineEntry]) -> DaySummary:
    counts = Counter(entry.type.value for entry in entries)
    return DaySummary(
        total_entries=len(entries),
        counts=dict(counts),
        last_activity_at=entries[0].timestamp if entries else None,
    )


def fetch_day(
    store: DocumentStore,
    child_id: str,
    day: date,
    *,
    tz: tzinfo = timezone.utc,
    sources: Optional[Sequence[SourceDescriptor]] = None,
) -> DayTimeline:
    """Everything logged for ``child_id`` on local ``day``, grouped by period."""

    start, next_day = local_day_bounds(day, tz)
    entries = [
        entry
        for entry in fetch_timeline(store, child_id, start=start, end=next_day, sources=sources)
        if entry.timestamp is not None and entry.timestamp < next_day
    ]
    return DayTimeline(
        child_id=child_id,
        day=day,
        entries=entries,
        periods=group_entries_by_period(entries, tz),
        summary=summarize_day(entries),
    )
