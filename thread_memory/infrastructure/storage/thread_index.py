"""
Online nearest-centroid clustering of log entries into threads.

Threads reference entries by their stable log id. Resolution back to content
happens lazily through MemoryLog.resolve, which skips ids evicted since.

Persistence: ``<directory>/threads.json``::

    {"threads": [{"id": "...", "label": "...", "centroid": [...],
                  "memberIds": [0, 2, 4], "updatedAt": "2026-...+00:00"}]}

Membership is stored as ``memberIds`` (stable log ids). Older files that
carry ``memberPositions`` (indices into the log window at save time) cannot
be mapped to ids once the window has shifted; such threads load with no
members and a warning, and the next ``prune`` removes them.

A missing or unreadable file yields an empty index; malformed thread records
are skipped individually. Saves go through a temp file + os.replace.
"""
from __future__ import annotations

import json
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ...domain.errors import MalformedRecordError
from ...domain.models import Thread, ThreadSummary
from ...domain.vectors import average, cosine
from ...ingestion.transcript_loader import format_timestamp, parse_timestamp, utc_now
from ..config import DEFAULT_SIMILARITY_THRESHOLD, clamp_threshold
from ..logging import get_logger
from .atomic import atomic_write_text

logger = get_logger("thread_memory.thread_index")

LABEL_WORDS = 5


def guess_label(topic: Optional[str], content: str) -> str:
    """Topic when given, else the first few words of the content."""
    if topic and topic.strip():
        return topic.strip()
    words = (content or "").replace("\n", " ").split()
    return " ".join(words[:LABEL_WORDS]).strip() or "untitled"


def thread_to_record(t: Thread) -> Dict[str, Any]:
    return {
        "id": t.id,
        "label": t.label,
        "centroid": list(t.centroid),
        "memberIds": list(t.member_ids),
        "updatedAt": format_timestamp(t.updated_at),
    }


def thread_from_record(record: object) -> Thread:
    if not isinstance(record, dict):
        raise MalformedRecordError("Thread record must be a JSON object")
    tid = record.get("id")
    if not isinstance(tid, str) or not tid.strip():
        raise MalformedRecordError("Thread record must include an 'id'")
    centroid = record.get("centroid") or []
    if "memberIds" not in record and "memberPositions" in record:
        logger.warning("Thread uses legacy memberPositions; members dropped | thread=%s", tid)
    members = record.get("memberIds") or []
    if not isinstance(centroid, list) or not isinstance(members, list):
        raise MalformedRecordError(f"Thread {tid}: 'centroid' and 'memberIds' must be arrays")
    try:
        values = [float(x) for x in centroid]
        member_ids = [int(x) for x in members]
    except (TypeError, ValueError) as exc:
        raise MalformedRecordError(f"Thread {tid}: {exc}") from exc
    raw_updated = record.get("updatedAt")
    return Thread(
        id=tid,
        label=str(record.get("label") or "untitled"),
        centroid=values,
        member_ids=member_ids,
        updated_at=parse_timestamp(raw_updated) if raw_updated is not None else utc_now(),
    )


def _best(threads: Sequence[Thread], embedding: Sequence[float]) -> Tuple[Optional[Thread], float]:
    best: Optional[Thread] = None
    best_sim = -2.0
    for t in threads:
        sim = cosine(embedding, t.centroid)
        if sim > best_sim:
            best_sim = sim
            best = t
    return best, best_sim


class ThreadIndex:
    """Set of threads with create-or-join routing, persisted to threads.json."""

    FILE_NAME = "threads.json"

    def __init__(self, directory: Path, similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD) -> None:
        self._dir = Path(directory)
        self._path = self._dir / self.FILE_NAME
        self._threshold = clamp_threshold(similarity_threshold)
        self.gate = threading.RLock()
        self._threads: List[Thread] = []
        self.load()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def similarity_threshold(self) -> float:
        return self._threshold

    def __len__(self) -> int:
        with self.gate:
            return len(self._threads)

    def route_entry(
        self,
        entry_id: int,
        embedding: Sequence[float],
        topic: Optional[str] = None,
        content: str = "",
    ) -> str:
        """
        Join the entry to the most similar thread or found a new one.

        A new thread is created when there are no threads, the best similarity
        is below the threshold, or the best thread has an empty centroid. On a
        join the centroid becomes the equal-weight mean of the old centroid and
        ``embedding``. Decision, mutation and save happen under the gate.

        Returns:
            str: Id of the thread that now holds the entry.
        """
        vec = [float(x) for x in embedding]
        with self.gate:
            now = utc_now()
            best, best_sim = _best(self._threads, vec)
            if best is None or best_sim < self._threshold or not best.centroid:
                thread = Thread(
                    id=uuid.uuid4().hex,
                    label=guess_label(topic, content),
                    centroid=vec,
                    member_ids=[int(entry_id)],
                    updated_at=now,
                )
                self._threads.append(thread)
                logger.debug("Thread created | thread=%s | entry=%s | best_sim=%.3f", thread.id, entry_id, best_sim)
            else:
                thread = best
                thread.member_ids.append(int(entry_id))
                thread.centroid = average(thread.centroid, vec)
                thread.updated_at = now
                logger.debug("Thread joined | thread=%s | entry=%s | sim=%.3f", thread.id, entry_id, best_sim)
            self._save_locked()
            return thread.id

    def best_match(self, embedding: Sequence[float]) -> Optional[Thread]:
        """Copy of the thread most similar to ``embedding`` (first wins ties); None when empty."""
        with self.gate:
            best, _ = _best(self._threads, embedding)
            return best.copy() if best is not None else None

    def get(self, thread_id: str) -> Optional[Thread]:
        with self.gate:
            for t in self._threads:
                if t.id == thread_id:
                    return t.copy()
        return None

    def max_member_id(self) -> int:
        """Highest entry id referenced by any thread; -1 when there is none."""
        with self.gate:
            return max((i for t in self._threads for i in t.member_ids), default=-1)

    def threads(self) -> List[Thread]:
        with self.gate:
            return [t.copy() for t in self._threads]

    def summaries(self) -> List[ThreadSummary]:
        with self.gate:
            rows = [ThreadSummary(t.id, t.label, len(t.member_ids), t.updated_at) for t in self._threads]
        return sorted(rows, key=lambda s: s.updated_at, reverse=True)

    def prune(self, live_ids: Iterable[int]) -> int:
        """Drop member ids absent from ``live_ids`` and threads left empty.

        Returns:
            int: Number of member references removed.
        """
        live = set(live_ids)
        removed = 0
        with self.gate:
            kept: List[Thread] = []
            for t in self._threads:
                members = [i for i in t.member_ids if i in live]
                removed += len(t.member_ids) - len(members)
                t.member_ids = members
                if members:
                    kept.append(t)
            changed = removed > 0 or len(kept) != len(self._threads)
            self._threads = kept
            if changed:
                self._save_locked()
        return removed

    def clear(self) -> None:
        with self.gate:
            self._threads = []
            self._save_locked()

    def load(self) -> int:
        """Replace in-memory threads with the file contents; returns the thread count."""
        with self.gate:
            self._threads = []
            if not self._path.exists():
                return 0
            try:
                data = json.loads(self._path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.warning("Thread load failed | file=%s | error=%s", self._path, exc)
                return 0
            records = data.get("threads") if isinstance(data, dict) else data
            if not isinstance(records, list):
                logger.warning("Thread file has no thread list | file=%s", self._path)
                return 0
            for record in records:
                try:
                    self._threads.append(thread_from_record(record))
                except MalformedRecordError as exc:
                    logger.debug("Skipping thread record | file=%s | reason=%s", self._path, exc)
            logger.info("Threads loaded | file=%s | threads=%d", self._path, len(self._threads))
            return len(self._threads)

    def save(self) -> bool:
        with self.gate:
            return self._save_locked()

    def _save_locked(self) -> bool:
        doc = {"threads": [thread_to_record(t) for t in self._threads]}
        try:
            atomic_write_text(self._path, json.dumps(doc, ensure_ascii=False, indent=2))
            return True
        except OSError as exc:
            logger.warning("Thread save failed | file=%s | error=%s", self._path, exc)
            return False
