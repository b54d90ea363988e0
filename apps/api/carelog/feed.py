"""Live, per-child timeline subscriptions.

A ``TimelineFeed`` is owned by its caller. Each ``subscribe`` call opens one
watch per configured source and returns a ``Subscription``; calling the
subscription (or ``close()``) releases every watch it opened. Store callbacks
may arrive on background threads, so a subscription serializes its merged
state and the caller's ``on_update`` under a lock.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional, Sequence, Set

from .aggregator import merge_source_slice
from .config import CONFIG
from .schemas import TimelineEntry
from .sources import DEFAULT_SOURCES, SourceDescriptor
from .store import CollectionQuery, DocumentStore, IndexRequiredError, StoredDocument, WatchHandle

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[List[TimelineEntry]], None]


class _SourceListener:
    """Keeps the watch handles for one source, including any fallback watch."""

    def __init__(self, subscription: "Subscription", source: SourceDescriptor) -> None:
        self._subscription = subscription
        self._source = source
        self._handles: List[WatchHandle] = []

    def start(self) -> None:
        child_id = self._subscription.child_id
        child_field = self._subscription.child_field
        primary = self._source.primary_query(child_id, child_field=child_field)
        self._open(primary, fallback=self._source.fallback_query(child_id, child_field=child_field))

    def _open(self, query: CollectionQuery, *, fallback: Optional[CollectionQuery]) -> None:
        source_key = self._source.key

        def on_snapshot(documents: List[StoredDocument]) -> None:
            self._subscription._receive(self._source, documents)

        def on_error(exc: Exception) -> None:
            if fallback is not None and fallback != query and isinstance(exc, IndexRequiredError):
                logger.warning(
                    "index missing for timeline source, using fallback query",
                    extra={"source": source_key, "child_id": self._subscription.child_id},
                )
                if not self._subscription.closed:
                    self._open(fallback, fallback=None)
                return
            logger.error(
                "timeline source subscription failed",
                extra={"source": source_key, "child_id": self._subscription.child_id, "error": str(exc)},
            )
            self._subscription._receive(self._source, [])

        handle = self._subscription.store.watch(query, on_snapshot, on_error)
        self._handles.append(handle)
        if self._subscription.closed:
            self.stop()

    def stop(self) -> None:
        handles, self._handles = self._handles, []
        for handle in handles:
            try:
                handle.unsubscribe()
            except Exception:
                logger.exception("error unsubscribing timeline source", extra={"source": self._source.key})


class Subscription:
    """Handle for one child's live timeline; call it to tear everything down."""

    def __init__(
        self,
        store: DocumentStore,
        sources: Sequence[SourceDescriptor],
        child_id: str,
        on_update: UpdateCallback,
        *,
        child_field: str,
    ) -> None:
        self.store = store
        self.child_id = child_id
        self.child_field = child_field
        self._sources = tuple(sources)
        self._on_update = on_update
        self._lock = threading.RLock()
        self._entries: List[TimelineEntry] = []
        self._reported: Set[str] = set()
        self._ready = False
        self._closed = False
        self._listeners: List[_SourceListener] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def ready(self) -> bool:
        """True once every source has reported at least once."""
        return self._ready

    @property
    def entries(self) -> List[TimelineEntry]:
        with self._lock:
            return list(self._entries)

    def open(self) -> "Subscription":
        for source in self._sources:
            if self._closed:
                break
            listener = _SourceListener(self, source)
            self._listeners.append(listener)
            try:
                listener.start()
            except Exception as exc:
                logger.error(
                    "could not open timeline source",
                    extra={"source": source.key, "child_id": self.child_id, "error": str(exc)},
                )
                self._receive(source, [])
        return self

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener.stop()
        logger.info("timeline subscription closed", extra={"child_id": self.child_id})

    __call__ = close

    def _receive(self, source: SourceDescriptor, documents: List[StoredDocument]) -> None:
        with self._lock:
            if self._closed:
                return
            try:
                new_slice = source.to_entries(documents)
            except Exception:
                logger.exception(
                    "could not normalize timeline source",
                    extra={"source": source.key, "child_id": self.child_id},
                )
                new_slice = []
            self._entries = merge_source_slice(self._entries, source.key, new_slice)
            self._reported.add(source.key)
            if not self._ready:
                if len(self._reported) < len(self._sources):
                    return
                self._ready = True
            snapshot = list(self._entries)
            try:
                self._on_update(snapshot)
            except Exception:
                logger.exception("timeline update callback failed", extra={"child_id": self.child_id})


class TimelineFeed:
    """Caller-owned manager for one live timeline at a time."""

    def __init__(
        self,
        store: DocumentStore,
        sources: Optional[Sequence[SourceDescriptor]] = None,
        *,
        child_field: Optional[str] = None,
    ) -> None:
        self._store = store
        self._sources = tuple(sources) if sources is not None else DEFAULT_SOURCES
        self._child_field = child_field or CONFIG.timeline.child_field
        self._lock = threading.Lock()
        self._current: Optional[Subscription] = None

    @property
    def current(self) -> Optional[Subscription]:
        return self._current

    def subscribe(self, child_id: str, on_update: UpdateCallback) -> Subscription:
        """Open live subscriptions for ``child_id``, replacing any previous child."""

        subscription = Subscription(
            self._store,
            self._sources,
            child_id,
            on_update,
            child_field=self._child_field,
        )
        with self._lock:
            previous, self._current = self._current, subscription
        if previous is not None:
            previous.close()
        logger.info(
            "timeline subscription opened",
            extra={"child_id": child_id, "sources": len(self._sources)},
        )
        return subscription.open()

    def unsubscribe_all(self) -> None:
        with self._lock:
            current, self._current = self._current, None
        if current is not None:
            current.close()
