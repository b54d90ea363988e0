from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, WebSocket, WebSocketDisconnect

from ..config import CONFIG
from ..entry_types import ENTRY_TYPES
from ..export import ExportError, export_entries
from ..feed import TimelineFeed
from ..fetch import fetch_day, fetch_timeline
from ..filters import filter_entries
from ..progress import compute_progress
from ..schemas import DayTimeline, EntryTypeMeta, ExportFormat, TimelineEntry, TimelineFilters, TimelineProgress
from ..store import DocumentStore, get_store

router = APIRouter(prefix="/api/v1", tags=["timeline"])
logger = logging.getLogger(__name__)

EXPORT_MEDIA_TYPES = {
    ExportFormat.JSON: "application/json",
    ExportFormat.CSV: "text/csv",
}


def _display_zone() -> ZoneInfo:
    return ZoneInfo(CONFIG.timeline.display_timezone)


def _require_child_id(query_value: Optional[str], header_value: Optional[str]) -> str:
    candidate = (query_value or header_value or "").strip()
    if not candidate:
        raise HTTPException(status_code=400, detail="child_id is required for timeline queries.")
    return candidate


def _filters(
    types: Optional[List[str]],
    sources: Optional[List[str]],
    start: Optional[datetime],
    end: Optional[datetime],
    search: Optional[str],
    author: Optional[str],
) -> TimelineFilters:
    return TimelineFilters(
        types=types or [],
        sources=sources or [],
        start_date=start,
        end_date=end,
        search_text=search,
        author=author,
    )


@router.get("/timeline", response_model=List[TimelineEntry])
def list_timeline(
    child_id: Optional[str] = Query(None, description="Child identifier"),
    start: Optional[datetime] = Query(None, description="Start of range (inclusive)"),
    end: Optional[datetime] = Query(None, description="End of range (inclusive)"),
    types: Optional[List[str]] = Query(None, description="Canonical entry types to keep"),
    sources: Optional[List[str]] = Query(None, description="Source keys to keep"),
    search: Optional[str] = Query(None, description="Text to find in title or content"),
    author: Optional[str] = Query(None),
    child_id_header: Optional[str] = Header(None, alias="X-Carelog-Child-Id"),
    store: DocumentStore = Depends(get_store),
) -> List[TimelineEntry]:
    """Return the merged timeline for a child, optionally filtered."""

    resolved_child_id = _require_child_id(child_id, child_id_header)
    logger.info(
        "child-scoped request",
        extra={"method": "GET", "path": "/api/v1/timeline", "child_id": resolved_child_id},
    )
    filters = _filters(types, sources, start, end, search, author)
    entries = fetch_timeline(store, resolved_child_id, start=filters.start_date, end=filters.end_date)
    return filter_entries(entries, filters)


@router.get("/timeline/day", response_model=DayTimeline)
def timeline_day(
    day: date = Query(..., alias="date", description="Local calendar day (YYYY-MM-DD)"),
    child_id: Optional[str] = Query(None),
    child_id_header: Optional[str] = Header(None, alias="X-Carelog-Child-Id"),
    store: DocumentStore = Depends(get_store),
) -> DayTimeline:
    resolved_child_id = _require_child_id(child_id, child_id_header)
    return fetch_day(store, resolved_child_id, day, tz=_display_zone())


@router.get("/timeline/progress", response_model=TimelineProgress)
def timeline_progress(
    child_id: Optional[str] = Query(None),
    child_id_header: Optional[str] = Header(None, alias="X-Carelog-Child-Id"),
    store: DocumentStore = Depends(get_store),
) -> TimelineProgress:
    resolved_child_id = _require_child_id(child_id, child_id_header)
    settings = CONFIG.timeline
    entries = fetch_timeline(store, resolved_child_id)
    return compute_progress(
        entries,
        tz=_display_zone(),
        week_days=settings.week_window_days,
        lookback_days=settings.streak_lookback_days,
        recent_limit=settings.recent_entries_limit,
    )


@router.get("/timeline/export")
def export_timeline(
    export_format: str = Query("json", alias="format", description="json | csv"),
    child_id: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    types: Optional[List[str]] = Query(None),
    sources: Optional[List[str]] = Query(None),
    search: Optional[str] = Query(None),
    author: Optional[str] = Query(None),
    child_id_header: Optional[str] = Header(None, alias="X-Carelog-Child-Id"),
    store: DocumentStore = Depends(get_store),
) -> Response:
    resolved_child_id = _require_child_id(child_id, child_id_header)
    try:
        fmt = ExportFormat(export_format.lower())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unsupported export format: {export_format}")

    filters = _filters(types, sources, start, end, search, author)
    entries = filter_entries(
        fetch_timeline(store, resolved_child_id, start=filters.start_date, end=filters.end_date),
        filters,
    )
    try:
        body = export_entries(entries, fmt, tz=_display_zone())
    except ExportError as exc:
        raise HTTPException(status_code=500, detail=f"Export failed [E_EXPORT]: {exc}") from exc

    today = datetime.now(_display_zone()).date()
    filename = f"timeline-{resolved_child_id}-{today.isoformat()}.{fmt.value}"
    return Response(
        content=body,
        media_type=EXPORT_MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/timeline/entry-types", response_model=List[EntryTypeMeta])
def list_entry_types() -> List[EntryTypeMeta]:
    return list(ENTRY_TYPES.values())


async def _pump(websocket: WebSocket, queue: "asyncio.Queue[str]") -> None:
    try:
        while True:
            await websocket.send_text(await queue.get())
    except WebSocketDisconnect:
        return


async def _drain(websocket: WebSocket) -> None:
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@router.websocket("/timeline/live")
async def live_timeline(
    websocket: WebSocket,
    child_id: Optional[str] = Query(None),
    store: DocumentStore = Depends(get_store),
) -> None:
    """Push the merged feed to the client on every source update."""

    if not child_id:
        await websocket.close(code=1008, reason="child_id is required for timeline queries.")
        return
    await websocket.accept()

    loop = asyncio.get_running_loop()
    queue: "asyncio.Queue[str]" = asyncio.Queue()

    def on_update(entries: List[TimelineEntry]) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, export_entries(entries, ExportFormat.JSON))

    feed = TimelineFeed(store)
    subscription = await asyncio.to_thread(feed.subscribe, child_id, on_update)
    sender = asyncio.create_task(_pump(websocket, queue))
    receiver = asyncio.create_task(_drain(websocket))
    try:
        await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        await asyncio.to_thread(subscription.close)
        for task in (sender, receiver):
            task.cancel()
        await asyncio.gather(sender, receiver, return_exceptions=True)
        logger.info("live timeline closed", extra={"child_id": child_id})
