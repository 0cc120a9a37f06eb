"""
Transcript record codec and file loader.

One codec is shared by the memory log file, exports and imports so that a
record written by any of them can be read back by the others.

Record shape (JSON object):
    {"id": 7, "timestamp": "2026-01-01T12:00:00+00:00", "role": "user",
     "content": "hello", "topic": "Alice", "source": "chat"}

Only ``role`` and ``content`` are required. A missing ``id`` is reported as
UNASSIGNED_ID and the memory log hands out a fresh one; a missing timestamp
becomes the load time.

Failure Modes:
- Individual malformed records are skipped (logged at debug level).
- An unreadable file raises OSError to the caller.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..domain.errors import ContractError, MalformedRecordError
from ..domain.models import Entry, Role
from ..infrastructure.logging import get_logger

logger = get_logger("thread_memory.ingestion")

UNASSIGNED_ID = -1


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat()


def parse_timestamp(raw: object) -> datetime:
    """Parse an ISO 8601 string (a trailing 'Z' is accepted) into an aware UTC datetime."""
    if not isinstance(raw, str) or not raw.strip():
        raise MalformedRecordError(f"Invalid timestamp: {raw!r}")
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        ts = datetime.fromisoformat(text)
    except ValueError as exc:
        raise MalformedRecordError(f"Invalid timestamp: {raw!r}") from exc
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def entry_to_record(entry: Entry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "timestamp": format_timestamp(entry.timestamp),
        "role": entry.role.value,
        "content": entry.content,
        "topic": entry.topic,
        "source": entry.source,
    }


def entry_from_record(record: object) -> Entry:
    """Decode one record; raises MalformedRecordError when it cannot be used."""
    if not isinstance(record, dict):
        raise MalformedRecordError("Record must be a JSON object")

    content = record.get("content")
    if not isinstance(content, str) or not content.strip():
        raise MalformedRecordError("Record must include non-empty 'content'")

    try:
        role = Role.parse(record.get("role"))
    except ContractError as exc:
        raise MalformedRecordError(str(exc)) from exc

    raw_ts = record.get("timestamp")
    timestamp = parse_timestamp(raw_ts) if raw_ts is not None else utc_now()

    raw_id = record.get("id")
    entry_id = UNASSIGNED_ID
    if raw_id is not None:
        if isinstance(raw_id, bool) or not isinstance(raw_id, int) or raw_id < 0:
            raise MalformedRecordError(f"Invalid id: {raw_id!r}")
        entry_id = raw_id

    topic = record.get("topic")
    source = record.get("source", "chat")
    return Entry(
        id=entry_id,
        timestamp=timestamp,
        role=role,
        content=content,
        topic=str(topic) if topic is not None else None,
        source=str(source) if source is not None else None,
    )


def infer_format(fmt: str, path: Path) -> str:
    """Infer input format from explicit flag or file extension."""

    resolved = (fmt or "auto").lower()
    if resolved != "auto":
        return resolved

    ext = path.suffix.lower()
    if ext == ".json":
        return "json"
    return "jsonl"


def _decode_all(records: List[object], source: Path) -> List[Entry]:
    entries: List[Entry] = []
    skipped = 0
    for record in records:
        try:
            entries.append(entry_from_record(record))
        except MalformedRecordError as exc:
            skipped += 1
            logger.debug("Skipping record | file=%s | reason=%s", source, exc)
    if skipped:
        logger.warning("Skipped malformed records | file=%s | skipped=%d", source, skipped)
    return entries


def load_entries(path: Path, fmt: str = "auto") -> List[Entry]:
    """Load entries from a JSONL or JSON transcript file.

    Args:
        path: File to read.
        fmt: "jsonl", "json" or "auto" (by extension; anything but .json is JSONL).

    Returns:
        List[Entry]: Decoded entries in file order; malformed records are skipped.

    Raises:
        OSError: When the file cannot be read.
        ValueError: When ``fmt`` is unsupported.
    """
    resolved = infer_format(fmt, path)
    text = path.read_text(encoding="utf-8", errors="ignore")

    if resolved == "jsonl":
        records: List[object] = []
        for idx, raw in enumerate(text.splitlines()):
            if not raw.strip():
                continue
            try:
                records.append(json.loads(raw))
            except json.JSONDecodeError as exc:
                logger.debug("Skipping line | file=%s | line=%d | reason=%s", path, idx + 1, exc)
                records.append(None)
        return _decode_all(records, path)

    if resolved == "json":
        try:
            data = json.loads(text) if text.strip() else []
        except json.JSONDecodeError as exc:
            logger.warning("Unreadable JSON transcript | file=%s | reason=%s", path, exc)
            return []
        entries_raw: Optional[List[object]] = None
        if isinstance(data, list):
            entries_raw = data
        elif isinstance(data, dict):
            for key in ("entries", "items"):
                if isinstance(data.get(key), list):
                    entries_raw = data[key]
                    break
        if entries_raw is None:
            logger.warning("JSON transcript must be a list or contain an 'entries' array | file=%s", path)
            return []
        return _decode_all(entries_raw, path)

    raise ValueError(f"Unsupported format '{fmt}'")
