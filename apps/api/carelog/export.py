"""Flattening timeline entries to JSON or CSV."""
from __future__ import annotations

import csv
import io
import json
import logging
from datetime import timezone, tzinfo
from typing import Sequence, Union

from .schemas import ExportFormat, TimelineEntry

logger = logging.getLogger(__name__)

CSV_HEADERS = ["Date", "Time", "Type", "Title", "Content", "Author"]


class ExportError(RuntimeError):
    """Raised when entries cannot be exported; no partial output is produced."""


def _to_json(entries: Sequence[TimelineEntry]) -> str:
    payload = [entry.model_dump(mode="json") for entry in entries]
    return json.dumps(payload, indent=2, ensure_ascii=False)


def _to_csv(entries: Sequence[TimelineEntry], tz: tzinfo) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for entry in entries:
        if entry.timestamp is not None:
            local = entry.timestamp.astimezone(tz)
            day, clock = local.date().isoformat(), local.strftime("%H:%M:%S")
        else:
            day, clock = "", ""
        writer.writerow(
            [
                day,
                clock,
                entry.label or entry.type.value,
                entry.title,
                entry.content.replace(",", ";"),
                entry.author,
            ]
        )
    return buffer.getvalue()


def export_entries(
    entries: Sequence[TimelineEntry],
    export_format: Union[ExportFormat, str] = ExportFormat.JSON,
    *,
    tz: tzinfo = timezone.utc,
) -> str:
    try:
        fmt = ExportFormat(export_format)
    except ValueError as exc:
        raise ValueError(f"Unsupported export format: {export_format}") from exc

    try:
        if fmt is ExportFormat.JSON:
            return _to_json(entries)
        return _to_csv(entries, tz)
    except (TypeError, ValueError) as exc:
        logger.exception("timeline export failed", extra={"format": fmt.value, "count": len(entries)})
        raise ExportError(f"Could not export {len(entries)} entries as {fmt.value}: {exc}") from exc
