"""Merging per-source slices into one chronologically ordered feed."""
from __future__ import annotations

from typing import Iterable, List, Sequence

from .schemas import TimelineEntry
from .timestamps import sort_key


def sort_entries(entries: Iterable[TimelineEntry]) -> List[TimelineEntry]:
    """Newest first; entries with equal timestamps keep their relative order."""
    return sorted(entries, key=lambda entry: sort_key(entry.timestamp), reverse=True)


def merge_source_slice(
    current: Sequence[TimelineEntry],
    source_key: str,
    new_slice: Iterable[TimelineEntry],
) -> List[TimelineEntry]:
    """Replace everything ``source_key`` contributed with ``new_slice``.

    Entries from other sources are carried over untouched, so sources may
    report in any order and any number of times.
    """

    kept = [entry for entry in current if entry.source != source_key]
    kept.extend(new_slice)
    return sort_entries(kept)
