from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from carelog.timestamps import EPOCH, local_day_bounds, sort_key, to_datetime


class FakeFirestoreTimestamp:
    def __init__(self, moment: datetime) -> None:
        self._moment = moment

    def to_datetime(self) -> datetime:
        return self._moment


def test_iso_strings_with_zulu_suffix() -> None:
    assert to_datetime("2024-01-01T10:00:00Z") == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


def test_naive_datetimes_are_utc() -> None:
    assert to_datetime(datetime(2024, 1, 1, 10, 0)) == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


def test_aware_datetimes_convert_to_utc() -> None:
    eastern = timezone(timedelta(hours=-5))
    moment = to_datetime(datetime(2024, 1, 1, 5, 0, tzinfo=eastern))
    assert moment == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
    assert moment.tzinfo == timezone.utc


def test_epoch_seconds_and_milliseconds() -> None:
    expected = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
    seconds = (expected - EPOCH).total_seconds()
    assert to_datetime(seconds) == expected
    assert to_datetime(int(seconds * 1000)) == expected


def test_serialized_firestore_timestamp_maps() -> None:
    expected = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
    seconds = int((expected - EPOCH).total_seconds())
    assert to_datetime({"seconds": seconds, "nanoseconds": 0}) == expected
    assert to_datetime({"_seconds": seconds, "_nanoseconds": 0}) == expected


def test_objects_exposing_to_datetime() -> None:
    expected = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
    assert to_datetime(FakeFirestoreTimestamp(expected)) == expected


def test_unusable_values_become_none() -> None:
    for value in (None, "", "not a date", True, {"foo": 1}, object()):
        assert to_datetime(value) is None


def test_missing_timestamps_sort_oldest() -> None:
    assert sort_key(None) == EPOCH
    assert sort_key(None) < sort_key(to_datetime("2000-01-01T00:00:00Z"))


def test_local_day_bounds() -> None:
    start, end = local_day_bounds(date(2024, 6, 12), timezone(timedelta(hours=2)))
    assert start == datetime(2024, 6, 11, 22, 0, tzinfo=timezone.utc)
    assert end - start == timedelta(days=1)


def test_non_finite_and_malformed_epochs_become_none() -> None:
    assert to_datetime(float("nan")) is None
    assert to_datetime(float("inf")) is None
    assert to_datetime(10 ** 400) is None
    assert to_datetime({"seconds": 1_700_000_000, "nanoseconds": "x"}) is None
    assert to_datetime({"seconds": float("nan")}) is None
