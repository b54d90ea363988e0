from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as google_exceptions

from carelog.firestore import FirestoreStore, translate_error
from carelog.sources import get_source
from carelog.store import IndexRequiredError, StoreError, StoreTimeoutError


def snapshot(doc_id: str, data):
    snap = MagicMock()
    snap.id = doc_id
    snap.to_dict.return_value = data
    return snap


def chainable_query() -> MagicMock:
    query = MagicMock()
    query.where.return_value = query
    query.order_by.return_value = query
    query.limit.return_value = query
    return query


def make_store(query: MagicMock) -> tuple:
    client = MagicMock()
    client.collection.return_value = query
    return FirestoreStore(client), client


def test_fetch_builds_filtered_ordered_query() -> None:
    query = chainable_query()
    query.get.return_value = [snapshot("inc-1", {"type": "meltdown"}), snapshot("inc-2", None)]
    store, client = make_store(query)
    start = datetime(2024, 6, 1, tzinfo=timezone.utc)

    documents = store.fetch(get_source("incident").primary_query("child-1", start=start), timeout=5)

    client.collection.assert_called_once_with("incidents")
    filters = [call.kwargs["filter"] for call in query.where.call_args_list]
    assert [(f.field_path, f.op_string, f.value) for f in filters] == [
        ("childId", "==", "child-1"),
        ("timestamp", ">=", start),
    ]
    query.order_by.assert_called_once_with("timestamp", direction="DESCENDING")
    query.get.assert_called_once_with(timeout=5)
    assert [(doc.id, doc.data) for doc in documents] == [("inc-1", {"type": "meltdown"}), ("inc-2", {})]


def test_subcollection_path_is_scoped_to_child() -> None:
    query = chainable_query()
    query.get.return_value = []
    store, client = make_store(query)

    store.fetch(get_source("mood_log").fallback_query("child-1"))

    client.collection.assert_called_once_with("children", "child-1", "moodLogs")
    query.where.assert_not_called()
    query.order_by.assert_not_called()


def test_fetch_translates_missing_index() -> None:
    query = chainable_query()
    query.get.side_effect = google_exceptions.FailedPrecondition("The query requires an index.")
    store, _ = make_store(query)

    with pytest.raises(IndexRequiredError):
        store.fetch(get_source("incident").primary_query("child-1"))


def test_translate_error() -> None:
    assert isinstance(translate_error(google_exceptions.DeadlineExceeded("slow")), StoreTimeoutError)
    assert isinstance(translate_error(google_exceptions.PermissionDenied("nope")), StoreError)
    assert not isinstance(translate_error(google_exceptions.FailedPrecondition("other")), IndexRequiredError)
    existing = IndexRequiredError("index")
    assert translate_error(existing) is existing


def test_watch_reports_probe_failure() -> None:
    query = chainable_query()
    query.get.side_effect = google_exceptions.FailedPrecondition("The query requires an index.")
    store, _ = make_store(query)
    errors = []

    handle = store.watch(get_source("incident").primary_query("child-1"), lambda docs: None, errors.append)

    assert len(errors) == 1
    assert isinstance(errors[0], IndexRequiredError)
    query.on_snapshot.assert_not_called()
    handle.unsubscribe()


def test_watch_forwards_snapshots() -> None:
    query = chainable_query()
    query.get.return_value = []
    watch = MagicMock()
    query.on_snapshot.return_value = watch
    store, _ = make_store(query)
    received = []

    handle = store.watch(get_source("incident").primary_query("child-1"), received.append, lambda exc: None)
    callback = query.on_snapshot.call_args.args[0]
    callback([snapshot("inc-1", {"type": "meltdown"})], [], None)

    assert handle is watch
    assert [[doc.id for doc in docs] for docs in received] == [["inc-1"]]
    query.limit.assert_called_once_with(1)
