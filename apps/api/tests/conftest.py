from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, Optional

import pytest

from carelog.entry_types import resolve_entry_type
from carelog.schemas import TimelineEntry
from carelog.store import MemoryStore


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def make_entry() -> Callable[..., TimelineEntry]:
    counter = {"value": 0}

    def _make(
        timestamp: Optional[datetime],
        *,
        source: str = "journal",
        title: str = "Entry",
        content: str = "",
        author: str = "Unknown",
        entry_id: Optional[str] = None,
        original_data: Optional[Dict[str, Any]] = None,
    ) -> TimelineEntry:
        counter["value"] += 1
        return TimelineEntry(
            id=entry_id or f"{source}-{counter['value']}",
            type=resolve_entry_type(source),
            source=source,
            title=title,
            content=content,
            timestamp=timestamp,
            author=author,
            original_data=original_data or {},
        )

    return _make
