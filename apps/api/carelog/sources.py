"""Timeline source registry and per-source query construction."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .adapters import expand_follow_ups, normalize
from .entry_types import resolve_entry_type
from .schemas import EntryType, TimelineEntry
from .store import CollectionQuery, FieldFilter, StoredDocument
from .timestamps import to_datetime

logger = logging.getLogger(__name__)

CHILDREN_COLLECTION = "children"


class SourceShape(str, Enum):
    ROOT = "root"
    CHILD_SUBCOLLECTION = "child_subcollection"


Expander = Callable[[StoredDocument], List[StoredDocument]]
Predicate = Callable[[Mapping[str, Any]], bool]


@dataclass(frozen=True)
class SourceDescriptor:
    key: str
    collection: str
    label: str
    icon: str
    shape: SourceShape = SourceShape.CHILD_SUBCOLLECTION
    order_field: Optional[str] = "timestamp"
    expand: Optional[Expander] = None
    include: Optional[Predicate] = None

    @property
    def entry_type(self) -> EntryType:
        return resolve_entry_type(self.key)

    def path(self, child_id: str) -> Tuple[str, ...]:
        if self.shape is SourceShape.ROOT:
            return (self.collection,)
        return (CHILDREN_COLLECTION, child_id, self.collection)

    def _child_filters(self, child_id: str, child_field: str) -> Tuple[FieldFilter, ...]:
        if self.shape is SourceShape.ROOT:
            return (FieldFilter(child_field, "==", child_id),)
        return ()

    def primary_query(
        self,
        child_id: str,
        *,
        child_field: str = "childId",
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> CollectionQuery:
        """Compound query: child predicate, optional window, newest first."""

        filters = list(self._child_filters(child_id, child_field))
        if self.order_field and start is not None:
            filters.append(FieldFilter(self.order_field, ">=", start))
        if self.order_field and end is not None:
            filters.append(FieldFilter(self.order_field, "<=", end))
        return CollectionQuery(
            path=self.path(child_id),
            filters=tuple(filters),
            order_by=self.order_field,
            descending=True,
        )

    def fallback_query(self, child_id: str, *, child_field: str = "childId") -> CollectionQuery:
        """Single-predicate query that needs no composite index."""
        return CollectionQuery(
            path=self.path(child_id),
            filters=self._child_filters(child_id, child_field),
            order_by=None,
        )

    def to_entries(self, documents: Iterable[StoredDocument]) -> List[TimelineEntry]:
        """Normalize a snapshot; a record that cannot be normalized is skipped alone."""

        entries: List[TimelineEntry] = []
        for document in documents:
            try:
                if self.include is not None and not self.include(document.data or {}):
                    continue
                records = self.expand(document) if self.expand is not None else [document]
                normalized = [normalize(record, self.key, label=self.label, icon=self.icon) for record in records]
                entries.extend(normalized)
            except Exception:
                logger.exception(
                    "skipping malformed timeline record",
                    extra={"source": self.key, "document_id": document.id},
                )
        return entries


def _is_active_journal(data: Mapping[str, Any]) -> bool:
    status = data.get("status")
    return status in (None, "", "active")


DEFAULT_SOURCES: Tuple[SourceDescriptor, ...] = (
    SourceDescriptor("incident", "incidents", "Incident", "🛑", SourceShape.ROOT),
    SourceDescriptor(
        "follow_up",
        "incidents",
        "Follow-up",
        "🔁",
        SourceShape.ROOT,
        order_field=None,
        expand=expand_follow_ups,
    ),
    SourceDescriptor("journal", "dailyLogs", "Daily Note", "📝", SourceShape.ROOT, include=_is_active_journal),
    SourceDescriptor("progress_note", "progressNotes", "Progress Note", "📈"),
    SourceDescriptor("therapy_note", "therapyNotes", "Therapy Note", "🩺", SourceShape.ROOT),
    SourceDescriptor("sensory_log", "sensoryLogs", "Sensory Log", "🧠"),
    SourceDescriptor("behavior", "behaviors", "Behavior", "⚡"),
    SourceDescriptor("mood_log", "moodLogs", "Mood Log", "😊"),
    SourceDescriptor("medication_log", "medicationLogs", "Medication Log", "💊"),
    SourceDescriptor("food_log", "foodLogs", "Food Log", "🍎"),
    SourceDescriptor("medical_event", "medicalEvents", "Medical Event", "🏥"),
    SourceDescriptor("sleep_log", "sleepLogs", "Sleep Log", "😴"),
    SourceDescriptor("daily_care", "dailyCare", "Daily Care", "📋", SourceShape.ROOT),
    SourceDescriptor("child_timeline", "timeline", "Timeline Entry", "⏰"),
)

SOURCES_BY_KEY: Dict[str, SourceDescriptor] = {source.key: source for source in DEFAULT_SOURCES}


def get_source(key: str) -> Optional[SourceDescriptor]:
    return SOURCES_BY_KEY.get(key)


def within_window(
    entry: TimelineEntry,
    start: Optional[datetime],
    end: Optional[datetime],
) -> bool:
    if start is None and end is None:
        return True
    if entry.timestamp is None:
        return False
    if start is not None and entry.timestamp < to_datetime(start):
        return False
    if end is not None and entry.timestamp > to_datetime(end):
        return False
    return True

