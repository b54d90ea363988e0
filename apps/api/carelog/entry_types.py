"""Canonical timeline entry types, legacy type mapping and date bucketing."""
from __future__ import annotations

from datetime import date, timezone, tzinfo
from typing import Dict, Iterable, List, Tuple

from .schemas import EntryType, EntryTypeMeta, PeriodGroup, TimelineEntry
from .timestamps import local_date

ENTRY_TYPES: Dict[EntryType, EntryTypeMeta] = {
    EntryType.INCIDENT: EntryTypeMeta(
        key=EntryType.INCIDENT,
        label="Incidents",
        icon="🛑",
        palette_key="timeline.entries.incident",
    ),
    EntryType.DAILY_HABIT: EntryTypeMeta(
        key=EntryType.DAILY_HABIT,
        label="Daily Habits",
        icon="📋",
        palette_key="timeline.entries.dailyHabit",
    ),
    EntryType.DAILY_NOTE: EntryTypeMeta(
        key=EntryType.DAILY_NOTE,
        label="Daily Notes",
        icon="📝",
        palette_key="timeline.entries.dailyNote",
    ),
    EntryType.JOURNAL: EntryTypeMeta(
        key=EntryType.JOURNAL,
        label="Journal",
        icon="📔",
        palette_key="timeline.entries.journal",
    ),
}

DEFAULT_ENTRY_TYPE = EntryType.DAILY_NOTE

# Current and historical identifiers with a fixed canonical target.
# A follow-up continues an incident, so it shares the incident type.
EXPLICIT_TYPE_MAP: Dict[str, EntryType] = {
    **{entry_type.value: entry_type for entry_type in EntryType},
    "followUp": EntryType.INCIDENT,
    "follow_up": EntryType.INCIDENT,
    "medical_event": EntryType.INCIDENT,
    "dailyLog": EntryType.JOURNAL,
    "daily_note": EntryType.JOURNAL,
    "progressNote": EntryType.DAILY_NOTE,
    "progress_note": EntryType.DAILY_NOTE,
    "therapyNote": EntryType.DAILY_NOTE,
    "therapy_note": EntryType.DAILY_NOTE,
    "sensory_log": EntryType.DAILY_HABIT,
    "behavior": EntryType.DAILY_HABIT,
    "mood_log": EntryType.DAILY_HABIT,
    "medication_log": EntryType.DAILY_HABIT,
    "food_log": EntryType.DAILY_HABIT,
    "sleep_log": EntryType.DAILY_HABIT,
    "daily_care": EntryType.DAILY_HABIT,
    "child_timeline": EntryType.DAILY_HABIT,
}

LEGACY_HABIT_TYPES = frozenset(
    {
        "mood",
        "sleep",
        "nutrition",
        "progress",
        "other",
        "moodLog",
        "sleepLog",
        "foodLog",
        "customHabit",
        "quickNote",
    }
)


def map_legacy_type(raw_type: str) -> str:
    """Map a raw or historical type string to its canonical value.

    Unrecognized strings pass through unchanged; use ``resolve_entry_type``
    when a guaranteed ``EntryType`` is needed.
    """

    explicit = EXPLICIT_TYPE_MAP.get(raw_type)
    if explicit is not None:
        return explicit.value
    if raw_type in LEGACY_HABIT_TYPES:
        return EntryType.DAILY_HABIT.value
    return raw_type


def resolve_entry_type(raw_type: str) -> EntryType:
    mapped = map_legacy_type(raw_type)
    try:
        return EntryType(mapped)
    except ValueError:
        return DEFAULT_ENTRY_TYPE


def get_entry_type_meta(raw_type: str) -> EntryTypeMeta:
    """Display metadata for any type string; unknown input gets the note record."""
    return ENTRY_TYPES[resolve_entry_type(raw_type)]


PERIODS: Tuple[Tuple[str, str, int, int], ...] = (
    ("morning", "🌅 Morning", 6, 12),
    ("afternoon", "☀️ Afternoon", 12, 18),
    ("evening", "🌙 Evening", 18, 24),
)


def period_for(entry: TimelineEntry, tz: tzinfo = timezone.utc) -> str:
    if entry.timestamp is None:
        return "evening"
    hour = entry.timestamp.astimezone(tz).hour
    for key, _label, start_hour, end_hour in PERIODS[:2]:
        if start_hour <= hour < end_hour:
            return key
    # Late night and early morning hours fold into the evening bucket.
    return "evening"


def group_entries_by_period(
    entries: Iterable[TimelineEntry],
    tz: tzinfo = timezone.utc,
) -> List[PeriodGroup]:
    buckets: Dict[str, List[TimelineEntry]] = {key: [] for key, *_ in PERIODS}
    for entry in entries:
        buckets[period_for(entry, tz)].append(entry)
    return [
        PeriodGroup(period=key, label=label, entries=buckets[key])
        for key, label, _start, _end in PERIODS
        if buckets[key]
    ]


def group_entries_by_day(
    entries: Iterable[TimelineEntry],
    tz: tzinfo = timezone.utc,
) -> List[Tuple[date, List[TimelineEntry]]]:
    """Bucket entries by local calendar day; entries without a timestamp are skipped."""

    days: Dict[date, List[TimelineEntry]] = {}
    for entry in entries:
        if entry.timestamp is None:
            continue
        days.setdefault(local_date(entry.timestamp, tz), []).append(entry)
    return list(days.items())
