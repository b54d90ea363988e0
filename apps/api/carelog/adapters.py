"""Source adapters: stored records to canonical timeline entries.

Each source kind has its own title/content fallback chain because the
collections were written by different screens over time. Shared fields
(timestamp, author) use one chain for every source. Adapters never raise on
missing or oddly typed fields.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .entry_types import resolve_entry_type
from .schemas import TimelineEntry
from .store import StoredDocument
from .timestamps import to_datetime

TitleContent = Tuple[str, str]
Adapter = Callable[[Mapping[str, Any]], TitleContent]

TIMESTAMP_FIELDS = ("timestamp", "createdAt", "date")
TITLE_PREVIEW_LIMIT = 50


def _first(data: Mapping[str, Any], *keys: str, default: str = "") -> str:
    for key in keys:
        value = data.get(key)
        if value:
            return value if isinstance(value, str) else str(value)
    return default


def _nested(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key)
    return value if isinstance(value, Mapping) else {}


def _display_name(value: Any) -> Optional[str]:
    if isinstance(value, Mapping):
        value = value.get("name") or value.get("displayName")
    if value:
        return value if isinstance(value, str) else str(value)
    return None


def resolve_author(data: Mapping[str, Any]) -> str:
    for candidate in (
        data.get("author"),
        _nested(data, "loggedBy").get("name"),
        data.get("createdBy"),
        data.get("userId"),
    ):
        name = _display_name(candidate)
        if name:
            return name
    return "Unknown"


def resolve_timestamp(data: Mapping[str, Any]) -> Optional[datetime]:
    for key in TIMESTAMP_FIELDS:
        moment = to_datetime(data.get(key))
        if moment is not None:
            return moment
    return None


def _adapt_journal(data: Mapping[str, Any]) -> TitleContent:
    text = _first(data, "text", "note", "content", "description")
    tags = data.get("tags")
    if isinstance(tags, (list, tuple)) and tags and tags[0]:
        title = f"Note: #{tags[0]}"
    elif text:
        first_line = text.split("\n")[0].strip()
        if len(first_line) > TITLE_PREVIEW_LIMIT:
            title = f"{first_line[:TITLE_PREVIEW_LIMIT - 3]}..."
        else:
            title = first_line or "Daily Note"
    else:
        title = "Daily Note"
    return title, text


def _adapt_progress_note(data: Mapping[str, Any]) -> TitleContent:
    return (
        _first(data, "title", "goal", default="Progress Update"),
        _first(data, "note", "progress", "content"),
    )


def _adapt_sensory_log(data: Mapping[str, Any]) -> TitleContent:
    return (
        f"Sensory: {_first(data, 'sensoryType', default='General')}",
        _first(data, "description", "notes", "content"),
    )


def _adapt_behavior(data: Mapping[str, Any]) -> TitleContent:
    return (
        f"Behavior: {_first(data, 'behaviorType', 'type', default='Incident')}",
        _first(data, "description", "notes", "details"),
    )


def _adapt_mood_log(data: Mapping[str, Any]) -> TitleContent:
    return (
        f"Mood: {_first(data, 'mood', default='Update')}",
        _first(data, "notes", "description", "details"),
    )


def _adapt_medication_log(data: Mapping[str, Any]) -> TitleContent:
    return (
        f"Medication: {_first(data, 'medicationName', 'name', 'medication', default='Dose')}",
        _first(data, "notes", "dosage", "description"),
    )


def _adapt_food_log(data: Mapping[str, Any]) -> TitleContent:
    return (
        f"Food: {_first(data, 'meal', 'food', default='Meal')}",
        _first(data, "notes", "description"),
    )


def _adapt_sleep_log(data: Mapping[str, Any]) -> TitleContent:
    return (
        f"Sleep: {_first(data, 'quality', 'duration', default='Update')}",
        _first(data, "notes", "description"),
    )


def _adapt_medical_event(data: Mapping[str, Any]) -> TitleContent:
    return (
        f"Medical: {_first(data, 'eventType', 'type', default='Event')}",
        _first(data, "description", "notes", "details"),
    )


def _adapt_daily_care(data: Mapping[str, Any]) -> TitleContent:
    action = _first(data, "actionType", default="Daily Care")
    care = _nested(data, "data")
    title = f"{action[:1].upper()}{action[1:]}: {_first(care, 'value', 'mood', 'rating', default='Update')}"
    content = _first(care, "notes") or _first(data, "notes") or _first(care, "description")
    return title, content


def _adapt_child_timeline(data: Mapping[str, Any]) -> TitleContent:
    return (
        _first(data, "title", "actionType", default="Timeline Entry"),
        _first(data, "notes", "content", "description"),
    )


def _incident_name(data: Mapping[str, Any]) -> str:
    return _first(data, "customIncidentName", "incidentType", "type", default="Incident")


def _adapt_incident(data: Mapping[str, Any]) -> TitleContent:
    title = f"Incident: {_incident_name(data)}"
    severity = data.get("severity")
    if severity not in (None, ""):
        title = f"{title} (severity {severity})"
    return title, _first(data, "description", "summary", "notes", "details")


def _adapt_follow_up(data: Mapping[str, Any]) -> TitleContent:
    content = _first(data, "notes")
    if not content and data.get("effectiveness") not in (None, ""):
        content = f"Effectiveness: {data.get('effectiveness')}"
    return f"Follow-up: {_incident_name(data)}", content


def _adapt_therapy_note(data: Mapping[str, Any]) -> TitleContent:
    return (
        _first(data, "title", default="Therapy Note"),
        _first(data, "content", "notes"),
    )


def _adapt_generic(data: Mapping[str, Any]) -> TitleContent:
    return "Entry", _first(data, "content", "note", "description")


ADAPTERS: Dict[str, Adapter] = {
    "journal": _adapt_journal,
    "progress_note": _adapt_progress_note,
    "sensory_log": _adapt_sensory_log,
    "behavior": _adapt_behavior,
    "mood_log": _adapt_mood_log,
    "medication_log": _adapt_medication_log,
    "food_log": _adapt_food_log,
    "sleep_log": _adapt_sleep_log,
    "medical_event": _adapt_medical_event,
    "daily_care": _adapt_daily_care,
    "child_timeline": _adapt_child_timeline,
    "incident": _adapt_incident,
    "follow_up": _adapt_follow_up,
    "therapy_note": _adapt_therapy_note,
}


def adapter_for(source_key: str) -> Adapter:
    return ADAPTERS.get(source_key, _adapt_generic)


def normalize(
    document: StoredDocument,
    source_key: str,
    *,
    label: str = "",
    icon: str = "",
) -> TimelineEntry:
    """Build the canonical entry for one stored record of ``source_key``."""

    data: Mapping[str, Any] = document.data if isinstance(document.data, Mapping) else {}
    title, content = adapter_for(source_key)(data)
    return TimelineEntry(
        id=str(document.id),
        type=resolve_entry_type(source_key),
        source=source_key,
        title=title,
        content=content,
        timestamp=resolve_timestamp(data),
        author=resolve_author(data),
        label=label,
        icon=icon,
        original_data=dict(data),
    )


def expand_follow_ups(document: StoredDocument) -> List[StoredDocument]:
    """Split an incident document into one record per follow-up response."""

    incident = document.data if isinstance(document.data, Mapping) else {}
    responses = incident.get("followUpResponses")
    if not isinstance(responses, list):
        return []

    records: List[StoredDocument] = []
    for index, response in enumerate(responses):
        if not isinstance(response, Mapping):
            continue
        record = {
            "incidentId": document.id,
            "incidentType": incident.get("type"),
            "customIncidentName": incident.get("customIncidentName"),
            "originalSeverity": incident.get("severity"),
            "effectiveness": response.get("effectiveness"),
            "notes": response.get("notes"),
            "timestamp": response.get("timestamp"),
            "intervalMinutes": response.get("intervalMinutes"),
            "responseIndex": response.get("responseIndex") or index,
            "author": response.get("author") or incident.get("author"),
            "loggedBy": response.get("loggedBy") or incident.get("loggedBy"),
            "createdBy": response.get("createdBy") or incident.get("createdBy"),
        }
        records.append(StoredDocument(id=f"{document.id}-followup-{index}", data=record))
    return records
