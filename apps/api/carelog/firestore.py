"""Cloud Firestore implementation of the document store."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, List, Optional

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter as FirestoreFieldFilter

from .config import AppConfig
from .store import (
    CollectionQuery,
    ErrorCallback,
    IndexRequiredError,
    SnapshotCallback,
    StoredDocument,
    StoreError,
    StoreTimeoutError,
)

logger = logging.getLogger(__name__)

# Watch streams have no error callback; a one-document probe surfaces
# missing-index and permission errors before the listener is attached.
_PROBE_TIMEOUT_SECONDS = 10.0


def _credentials(config: AppConfig) -> Optional[credentials.Base]:
    service_account_json = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON")
    if service_account_json:
        try:
            return credentials.Certificate(json.loads(service_account_json))
        except (json.JSONDecodeError, ValueError) as exc:
            raise StoreError("FIREBASE_SERVICE_ACCOUNT_JSON is not a valid service account.") from exc

    path = config.resolved_credentials_path
    if path is None and os.getenv("GOOGLE_APPLICATION_CREDENTIALS"):
        path = Path(os.environ["GOOGLE_APPLICATION_CREDENTIALS"]).expanduser()
    if path is not None and path.exists():
        return credentials.Certificate(str(path))
    return None


def init_firestore_client(config: AppConfig) -> Any:
    """Initialize the default Firebase app once and return its Firestore client."""

    try:
        app = firebase_admin.get_app()
    except ValueError:
        cred = _credentials(config) or credentials.ApplicationDefault()
        options = {"projectId": config.firebase_project_id} if config.firebase_project_id else None
        app = firebase_admin.initialize_app(cred, options)
        logger.info("firebase app initialized", extra={"project_id": config.firebase_project_id})
    return firestore.client(app)


def translate_error(exc: Exception) -> StoreError:
    if isinstance(exc, StoreError):
        return exc
    if isinstance(exc, google_exceptions.FailedPrecondition) and "index" in str(exc).lower():
        return IndexRequiredError(str(exc))
    if isinstance(exc, google_exceptions.DeadlineExceeded):
        return StoreTimeoutError(str(exc))
    return StoreError(f"Firestore request failed: {exc}")


class _NoopWatch:
    def unsubscribe(self) -> None:
        return None


class FirestoreStore:
    def __init__(self, client: Any) -> None:
        self._client = client

    def _build(self, query: CollectionQuery) -> Any:
        ref = self._client.collection(*query.path)
        for flt in query.filters:
            ref = ref.where(filter=FirestoreFieldFilter(flt.field, flt.op, flt.value))
        if query.order_by:
            ref = ref.order_by(query.order_by, direction="DESCENDING" if query.descending else "ASCENDING")
        return ref

    @staticmethod
    def _documents(snapshots: Any) -> List[StoredDocument]:
        return [StoredDocument(id=snap.id, data=snap.to_dict() or {}) for snap in snapshots]

    def fetch(self, query: CollectionQuery, *, timeout: Optional[float] = None) -> List[StoredDocument]:
        try:
            snapshots = self._build(query).get(timeout=timeout)
        except google_exceptions.GoogleAPICallError as exc:
            raise translate_error(exc) from exc
        return self._documents(snapshots)

    def watch(
        self,
        query: CollectionQuery,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Any:
        built = self._build(query)
        try:
            built.limit(1).get(timeout=_PROBE_TIMEOUT_SECONDS)
        except google_exceptions.GoogleAPICallError as exc:
            on_error(translate_error(exc))
            return _NoopWatch()

        def _callback(snapshots: Any, _changes: Any, _read_time: Any) -> None:
            on_snapshot(self._documents(snapshots))

        return built.on_snapshot(_callback)
