"""Timestamp normalization for heterogeneous stored records."""
from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Mapping, Optional, Tuple

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Epoch values above this are treated as milliseconds (JavaScript Date.now()).
_MILLISECOND_THRESHOLD = 100_000_000_000


def to_datetime(value: Any) -> Optional[datetime]:
    """Return ``value`` as an aware UTC datetime, or None when it is unusable.

    Accepts datetimes (naive values are taken as UTC), Firestore timestamps,
    protobuf timestamps, ``{"seconds": ..., "nanoseconds": ...}`` maps,
    epoch seconds or milliseconds, and ISO 8601 strings.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time(), tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        try:
            return _from_epoch(float(value))
        except OverflowError:
            return None
    if isinstance(value, str):
        return _from_iso(value)
    if isinstance(value, Mapping):
        seconds = value.get("seconds", value.get("_seconds"))
        if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
            nanos = value.get("nanoseconds", value.get("_nanoseconds")) or 0
            try:
                raw = float(seconds) + float(nanos) / 1e9
            except (TypeError, ValueError, OverflowError):
                return None
            return _from_epoch(raw, assume_seconds=True)
        return None

    to_dt = getattr(value, "to_datetime", None) or getattr(value, "ToDatetime", None)
    if callable(to_dt):
        try:
            return to_datetime(to_dt())
        except (TypeError, ValueError, OverflowError):
            return None
    return None


def _from_epoch(raw: float, *, assume_seconds: bool = False) -> Optional[datetime]:
    if not math.isfinite(raw):
        return None
    if not assume_seconds and abs(raw) >= _MILLISECOND_THRESHOLD:
        raw = raw / 1000.0
    try:
        return EPOCH + timedelta(seconds=raw)
    except (OverflowError, ValueError):
        return None


def _from_iso(raw: str) -> Optional[datetime]:
    text = raw.strip()
    if not text:
        return None
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return to_datetime(parsed)


def sort_key(moment: Optional[datetime]) -> datetime:
    """Comparable key where missing timestamps sort as the oldest instant."""
    return moment if moment is not None else EPOCH


def local_day_bounds(day: date, tz: tzinfo) -> Tuple[datetime, datetime]:
    """Return [start, end) of ``day`` in ``tz`` as UTC datetimes."""

    start = datetime.combine(day, time(), tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time(), tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def local_date(moment: datetime, tz: tzinfo) -> date:
    return moment.astimezone(tz).date()
