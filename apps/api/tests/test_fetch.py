from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from carelog.fetch import fetch_day, fetch_source_entries, fetch_timeline
from carelog.sources import get_source
from carelog.store import MemoryStore, StoreError

CHILD_ID = "child-1"
WINDOW_START = datetime(2024, 6, 10, tzinfo=timezone.utc)
WINDOW_END = datetime(2024, 6, 12, 23, 59, tzinfo=timezone.utc)


def seed_incidents(store: MemoryStore) -> None:
    inside = [datetime(2024, 6, 10, 1), datetime(2024, 6, 10, 12), datetime(2024, 6, 11, 8),
              datetime(2024, 6, 12, 9), datetime(2024, 6, 12, 23)]
    outside = [datetime(2024, 6, 9, 23), datetime(2024, 6, 13, 0, 30), datetime(2024, 5, 1, 12)]
    for index, moment in enumerate(inside + outside):
        store.add(
            ("incidents",),
            {"childId": CHILD_ID, "type": f"incident-{index}", "timestamp": moment.replace(tzinfo=timezone.utc)},
            doc_id=f"inc-{index}",
        )
    store.add(
        ("incidents",),
        {"childId": "child-2", "type": "elsewhere", "timestamp": datetime(2024, 6, 11, tzinfo=timezone.utc)},
        doc_id="other-child",
    )


def test_fallback_query_returns_same_window() -> None:
    indexed = MemoryStore()
    unindexed = MemoryStore()
    seed_incidents(indexed)
    seed_incidents(unindexed)
    unindexed.require_index(("incidents",))
    source = get_source("incident")

    expected = fetch_source_entries(indexed, source, CHILD_ID, start=WINDOW_START, end=WINDOW_END)
    actual = fetch_source_entries(unindexed, source, CHILD_ID, start=WINDOW_START, end=WINDOW_END)

    assert [entry.id for entry in expected] == ["inc-4", "inc-3", "inc-2", "inc-1", "inc-0"]
    assert [entry.id for entry in actual] == [entry.id for entry in expected]
    assert len(unindexed.fetch_log) == 2
    assert unindexed.fetch_log[1].order_by is None


def test_source_failure_yields_no_entries() -> None:
    store = MemoryStore()
    store.fail(("dailyLogs",), StoreError("permission denied"))
    store.add(("dailyLogs",), {"childId": CHILD_ID, "text": "hi", "timestamp": "2024-06-12T09:00:00Z"})
    store.add(("children", CHILD_ID, "moodLogs"), {"mood": "calm", "timestamp": "2024-06-12T10:00:00Z"})

    assert fetch_source_entries(store, get_source("journal"), CHILD_ID) == []
    entries = fetch_timeline(store, CHILD_ID)
    assert [entry.title for entry in entries] == ["Mood: calm"]


def test_fetch_timeline_merges_every_source() -> None:
    store = MemoryStore()
    store.add(
        ("incidents",),
        {
            "childId": CHILD_ID,
            "type": "meltdown",
            "timestamp": "2024-06-12T08:00:00Z",
            "followUpResponses": [{"effectiveness": 4, "timestamp": "2024-06-12T08:30:00Z"}],
        },
        doc_id="inc-1",
    )
    store.add(("dailyLogs",), {"childId": CHILD_ID, "text": "Archived", "status": "archived",
                               "timestamp": "2024-06-12T12:00:00Z"})
    store.add(("dailyLogs",), {"childId": CHILD_ID, "text": "Park day", "timestamp": "2024-06-12T09:00:00Z"})
    store.add(("children", CHILD_ID, "sleepLogs"), {"quality": "good", "timestamp": "2024-06-12T07:00:00Z"})

    entries = fetch_timeline(store, CHILD_ID)

    assert [entry.source for entry in entries] == ["journal", "follow_up", "incident", "sleep_log"]
    assert entries[1].id == "inc-1-followup-0"


def test_fetch_day_groups_by_period() -> None:
    store = MemoryStore()
    for hour in (7, 13, 20, 2):
        store.add(("children", CHILD_ID, "moodLogs"), {"mood": f"h{hour}",
                                                      "timestamp": datetime(2024, 6, 12, hour, tzinfo=timezone.utc)})
    store.add(("children", CHILD_ID, "moodLogs"), {"mood": "tomorrow",
                                                  "timestamp": datetime(2024, 6, 13, 0, tzinfo=timezone.utc)})
    sources = [get_source("mood_log")]

    day = fetch_day(store, CHILD_ID, date(2024, 6, 12), sources=sources)

    assert day.summary.total_entries == 4
    assert day.summary.counts == {"dailyHabit": 4}
    assert day.summary.last_activity_at == datetime(2024, 6, 12, 20, tzinfo=timezone.utc)
    assert [group.period for group in day.periods] == ["morning", "afternoon", "evening"]
    assert [entry.title for entry in day.periods[2].entries] == ["Mood: h20", "Mood: h2"]


def test_fetch_day_respects_display_zone() -> None:
    store = MemoryStore()
    store.add(("children", CHILD_ID, "moodLogs"), {"mood": "late",
                                                  "timestamp": datetime(2024, 6, 13, 3, tzinfo=timezone.utc)})
    zone = timezone(timedelta(hours=-7))

    day = fetch_day(store, CHILD_ID, date(2024, 6, 12), tz=zone, sources=[get_source("mood_log")])

    assert [entry.title for entry in day.entries] == ["Mood: late"]
    assert day.periods[0].period == "evening"


def test_malformed_timestamps_do_not_drop_the_source() -> None:
    store = MemoryStore()
    mood_path = ("children", CHILD_ID, "moodLogs")
    store.add(mood_path, {"mood": "calm", "timestamp": "2024-06-12T10:00:00Z"}, doc_id="valid")
    store.add(mood_path, {"mood": "odd", "createdAt": float("nan")}, doc_id="nan-epoch")
    store.add(mood_path, {"mood": "odd", "timestamp": {"seconds": 1_718_000_000, "nanoseconds": "x"}},
              doc_id="bad-nanos")

    entries = fetch_source_entries(store, get_source("mood_log"), CHILD_ID)

    assert [entry.id for entry in entries] == ["valid", "nan-epoch", "bad-nanos"]
    assert entries[1].timestamp is None
    assert entries[2].timestamp is None


def test_record_that_fails_to_normalize_is_skipped_alone(monkeypatch) -> None:
    from carelog import sources as sources_module

    real_normalize = sources_module.normalize

    def fragile(record, source_key, **kwargs):
        if record.id == "broken":
            raise RuntimeError("unreadable record")
        return real_normalize(record, source_key, **kwargs)

    monkeypatch.setattr(sources_module, "normalize", fragile)
    store = MemoryStore()
    mood_path = ("children", CHILD_ID, "moodLogs")
    store.add(mood_path, {"mood": "calm", "timestamp": "2024-06-12T10:00:00Z"}, doc_id="valid")
    store.add(mood_path, {"mood": "odd", "timestamp": "2024-06-12T11:00:00Z"}, doc_id="broken")

    entries = fetch_source_entries(store, get_source("mood_log"), CHILD_ID)

    assert [entry.id for entry in entries] == ["valid"]
