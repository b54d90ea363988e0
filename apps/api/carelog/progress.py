"""Activity metrics derived from a merged timeline."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Dict, List, Optional, Sequence, Set

from .aggregator import sort_entries
from .entry_types import get_entry_type_meta
from .schemas import EntryType, TimelineEntry, TimelineProgress, TypeCount
from .timestamps import local_date

STREAK_LOOKBACK_DAYS = 30
WEEK_WINDOW_DAYS = 7
RECENT_ENTRIES_LIMIT = 5
DAILY_CARE_ITEMS = ("mood", "sleep", "energy")


def _now(now: Optional[datetime], tz: tzinfo) -> datetime:
    if now is None:
        return datetime.now(tz)
    if now.tzinfo is None:
        return now.replace(tzinfo=tz)
    return now


def _active_days(entries: Sequence[TimelineEntry], tz: tzinfo) -> Set[date]:
    return {local_date(entry.timestamp, tz) for entry in entries if entry.timestamp is not None}


def activity_streak(
    entries: Sequence[TimelineEntry],
    *,
    now: Optional[datetime] = None,
    tz: tzinfo = timezone.utc,
    lookback_days: int = STREAK_LOOKBACK_DAYS,
) -> int:
    """Consecutive local days with at least one entry, counting back from today.

    An empty today does not break the streak; the first empty earlier day
    does. At most ``lookback_days`` days are examined.
    """

    if not entries:
        return 0
    today = _now(now, tz).astimezone(tz).date()
    active = _active_days(entries, tz)
    streak = 0
    for offset in range(lookback_days):
        if today - timedelta(days=offset) in active:
            streak += 1
        elif offset > 0:
            break
    return streak


def type_distribution(entries: Sequence[TimelineEntry]) -> List[TypeCount]:
    """Per-type counts, largest first; ties keep first-seen order."""

    counts: Dict[EntryType, int] = {}
    for entry in entries:
        counts[entry.type] = counts.get(entry.type, 0) + 1
    distribution = []
    for entry_type, count in counts.items():
        meta = get_entry_type_meta(entry_type.value)
        distribution.append(TypeCount(type=entry_type, count=count, label=meta.label, icon=meta.icon))
    distribution.sort(key=lambda item: item.count, reverse=True)
    return distribution


def daily_care_completion(
    entries: Sequence[TimelineEntry],
    *,
    now: Optional[datetime] = None,
    tz: tzinfo = timezone.utc,
) -> int:
    """Percent of the daily-care items (mood, sleep, energy) recorded today."""

    today = _now(now, tz).astimezone(tz).date()
    recorded = set()
    for entry in entries:
        if entry.source != "daily_care" or entry.timestamp is None:
            continue
        if local_date(entry.timestamp, tz) != today:
            continue
        action = str(entry.original_data.get("actionType") or "").lower()
        if action in DAILY_CARE_ITEMS:
            recorded.add(action)
    return round(len(recorded) / len(DAILY_CARE_ITEMS) * 100)


def compute_progress(
    entries: Sequence[TimelineEntry],
    *,
    now: Optional[datetime] = None,
    tz: tzinfo = timezone.utc,
    week_days: int = WEEK_WINDOW_DAYS,
    lookback_days: int = STREAK_LOOKBACK_DAYS,
    recent_limit: int = RECENT_ENTRIES_LIMIT,
) -> TimelineProgress:
    if not entries:
        return TimelineProgress()

    current = _now(now, tz)
    today_start = datetime.combine(current.astimezone(tz).date(), time(), tzinfo=tz)
    week_start = current - timedelta(days=week_days)

    today_entries = [e for e in entries if e.timestamp is not None and e.timestamp >= today_start]
    week_entries = [e for e in entries if e.timestamp is not None and e.timestamp >= week_start]
    distribution = type_distribution(week_entries)

    return TimelineProgress(
        today_count=len(today_entries),
        week_count=len(week_entries),
        total_count=len(entries),
        average_per_day=round(len(week_entries) / week_days, 1),
        most_active_type=distribution[0].type if distribution else None,
        activity_streak=activity_streak(entries, now=current, tz=tz, lookback_days=lookback_days),
        has_activity_today=bool(today_entries),
        completion_rate=daily_care_completion(entries, now=current, tz=tz),
        type_distribution=distribution,
        recent_entries=sort_entries(entries)[:recent_limit],
    )
