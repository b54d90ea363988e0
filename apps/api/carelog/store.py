"""Document store capability consumed by the timeline engine.

The engine needs two operations from its backing store: a live ``watch`` over
a query and a one-shot ``fetch``. ``MemoryStore`` implements both in process
for local runs and tests; ``carelog.firestore.FirestoreStore`` talks to Cloud
Firestore.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Protocol, Set, Tuple
from uuid import uuid4

from .config import CONFIG
from .timestamps import sort_key, to_datetime

logger = logging.getLogger(__name__)

RANGE_OPERATORS = {">", ">=", "<", "<="}


class StoreError(RuntimeError):
    """Base error for data-access failures."""


class IndexRequiredError(StoreError):
    """The query needs a composite index the store does not have."""


class StoreTimeoutError(StoreError):
    """A one-shot query exceeded its request timeout."""


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: str
    value: Any


@dataclass(frozen=True)
class CollectionQuery:
    path: Tuple[str, ...]
    filters: Tuple[FieldFilter, ...] = ()
    order_by: Optional[str] = None
    descending: bool = True

    @property
    def is_composite(self) -> bool:
        """True when the query combines predicates or a predicate with ordering."""
        if len(self.filters) > 1:
            return True
        return bool(self.filters) and self.order_by is not None


@dataclass
class StoredDocument:
    id: str
    data: Dict[str, Any] = field(default_factory=dict)


SnapshotCallback = Callable[[List[StoredDocument]], None]
ErrorCallback = Callable[[Exception], None]


class WatchHandle(Protocol):
    def unsubscribe(self) -> None:
        ...


class DocumentStore(Protocol):
    def watch(
        self,
        query: CollectionQuery,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> WatchHandle:
        ...

    def fetch(self, query: CollectionQuery, *, timeout: Optional[float] = None) -> List[StoredDocument]:
        ...


def _matches(data: Dict[str, Any], flt: FieldFilter) -> bool:
    if flt.field not in data:
        return False
    actual = data[flt.field]
    expected = flt.value
    if flt.op == "==":
        return actual == expected
    if flt.op == "!=":
        return actual != expected
    if flt.op == "in":
        return actual in expected
    if flt.op in RANGE_OPERATORS:
        left, right = to_datetime(actual), to_datetime(expected)
        if left is None or right is None:
            return False
        if flt.op == ">":
            return left > right
        if flt.op == ">=":
            return left >= right
        if flt.op == "<":
            return left < right
        return left <= right
    raise StoreError(f"Unsupported operator {flt.op!r}")


def apply_query(query: CollectionQuery, documents: List[StoredDocument]) -> List[StoredDocument]:
    """Evaluate filters and ordering of ``query`` against in-memory documents."""

    selected = [doc for doc in documents if all(_matches(doc.data, flt) for flt in query.filters)]
    if query.order_by:
        order_field = query.order_by
        selected.sort(
            key=lambda doc: sort_key(to_datetime(doc.data.get(order_field))),
            reverse=query.descending,
        )
    return selected


class _MemoryWatch:
    def __init__(self, store: "MemoryStore", query: CollectionQuery, on_snapshot: SnapshotCallback) -> None:
        self._store = store
        self.query = query
        self.on_snapshot = on_snapshot
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._store._detach(self)


class MemoryStore:
    """Thread-safe in-process document store with live watches.

    ``require_index`` marks a collection whose composite queries fail the way a
    Firestore project without the matching index does; ``fail`` makes every
    query on a collection raise the given error.
    """

    def __init__(self) -> None:
        self._collections: Dict[Tuple[str, ...], Dict[str, Dict[str, Any]]] = {}
        self._watches: List[_MemoryWatch] = []
        self._index_required: Set[Tuple[str, ...]] = set()
        self._failures: Dict[Tuple[str, ...], Exception] = {}
        self._lock = threading.RLock()
        self.fetch_log: List[CollectionQuery] = []

    # Writes

    def add(self, path: Tuple[str, ...], data: Dict[str, Any], *, doc_id: Optional[str] = None) -> str:
        doc_id = doc_id or uuid4().hex
        self.set(path, doc_id, data)
        return doc_id

    def set(self, path: Tuple[str, ...], doc_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._collections.setdefault(tuple(path), {})[doc_id] = dict(data)
        self._notify(tuple(path))

    def delete(self, path: Tuple[str, ...], doc_id: str) -> None:
        with self._lock:
            self._collections.get(tuple(path), {}).pop(doc_id, None)
        self._notify(tuple(path))

    def require_index(self, path: Tuple[str, ...]) -> None:
        with self._lock:
            self._index_required.add(tuple(path))

    def fail(self, path: Tuple[str, ...], error: Exception) -> None:
        with self._lock:
            self._failures[tuple(path)] = error

    # Reads

    def _check(self, query: CollectionQuery) -> None:
        failure = self._failures.get(query.path)
        if failure is not None:
            raise failure
        if query.path in self._index_required and query.is_composite:
            raise IndexRequiredError(
                f"The query requires an index on {'/'.join(query.path)}."
            )

    def _evaluate(self, query: CollectionQuery) -> List[StoredDocument]:
        with self._lock:
            docs = [
                StoredDocument(id=doc_id, data=dict(data))
                for doc_id, data in self._collections.get(query.path, {}).items()
            ]
        return apply_query(query, docs)

    def fetch(self, query: CollectionQuery, *, timeout: Optional[float] = None) -> List[StoredDocument]:
        with self._lock:
            self.fetch_log.append(query)
            self._check(query)
        return self._evaluate(query)

    def watch(
        self,
        query: CollectionQuery,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> _MemoryWatch:
        handle = _MemoryWatch(self, query, on_snapshot)
        try:
            with self._lock:
                self._check(query)
        except Exception as exc:  # index, permission and injected failures alike
            handle.active = False
            on_error(exc)
            return handle
        with self._lock:
            self._watches.append(handle)
        on_snapshot(self._evaluate(query))
        return handle

    @property
    def active_watch_count(self) -> int:
        with self._lock:
            return len(self._watches)

    def _detach(self, handle: _MemoryWatch) -> None:
        with self._lock:
            if handle in self._watches:
                self._watches.remove(handle)

    def _notify(self, path: Tuple[str, ...]) -> None:
        with self._lock:
            targets = [watch for watch in self._watches if watch.query.path == path]
        for watch in targets:
            if watch.active:
                watch.on_snapshot(self._evaluate(watch.query))


@lru_cache
def get_store() -> DocumentStore:
    """Return the process-wide store selected by configuration."""

    if CONFIG.store_backend == "firestore":
        from .firestore import FirestoreStore, init_firestore_client

        logger.info("using firestore store", extra={"project_id": CONFIG.firebase_project_id})
        return FirestoreStore(init_firestore_client(CONFIG))
    logger.info("using in-memory store")
    return MemoryStore()
