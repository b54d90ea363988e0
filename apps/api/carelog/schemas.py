"""Pydantic schemas shared across the timeline engine and API."""
from __future__ import annotations

import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from .timestamps import to_datetime


def json_default(value: Any) -> Any:
    """Fallback encoder for values found in raw stored records."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


class EntryType(str, Enum):
    INCIDENT = "incident"
    DAILY_HABIT = "dailyHabit"
    DAILY_NOTE = "dailyNote"
    JOURNAL = "journal"


class EntryTypeMeta(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: EntryType
    label: str
    icon: str
    palette_key: str


class TimelineEntry(BaseModel):
    """One normalized record in a child's merged timeline."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: EntryType
    source: str = Field(description="Key of the source collection that produced the entry")
    title: str
    content: str = ""
    timestamp: Optional[datetime] = None
    author: str = "Unknown"
    label: str = ""
    icon: str = ""
    original_data: Dict[str, Any] = Field(default_factory=dict)

    @field_serializer("original_data", when_used="json")
    def serialize_original_data(self, value: Dict[str, Any]) -> Dict[str, Any]:
        return json.loads(json.dumps(value, default=json_default))


class TimelineFilters(BaseModel):
    """Optional, conjunctive filter predicates. Unset fields restrict nothing."""

    types: List[str] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    search_text: Optional[str] = None
    author: Optional[str] = None

    @field_validator("start_date", "end_date", mode="after")
    @classmethod
    def normalize_bound(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_datetime(value) if value is not None else None


class ExportFormat(str, Enum):
    JSON = "json"
    CSV = "csv"


class TypeCount(BaseModel):
    type: EntryType
    count: int
    label: str
    icon: str


class TimelineProgress(BaseModel):
    today_count: int = 0
    week_count: int = 0
    total_count: int = 0
    average_per_day: float = 0.0
    most_active_type: Optional[EntryType] = None
    activity_streak: int = 0
    has_activity_today: bool = False
    completion_rate: int = Field(default=0, description="Percent of today's daily-care items recorded")
    type_distribution: List[TypeCount] = Field(default_factory=list)
    recent_entries: List[TimelineEntry] = Field(default_factory=list)


class PeriodGroup(BaseModel):
    period: str
    label: str
    entries: List[TimelineEntry]


class DaySummary(BaseModel):
    total_entries: int = 0
    counts: Dict[str, int] = Field(default_factory=dict)
    last_activity_at: Optional[datetime] = None


class DayTimeline(BaseModel):
    child_id: str
    day: date
    entries: List[TimelineEntry]
    periods: List[PeriodGroup]
    summary: DaySummary
