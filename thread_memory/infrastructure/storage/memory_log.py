"""
Append-only, capacity-bounded dialogue log mirrored to a JSONL file.

The in-memory window is authoritative. Every append writes one JSON line;
when the file grows past the compaction threshold it is rewritten (through a
temp file + os.replace) to hold exactly the current window.

Entries carry a monotonically increasing id that is never reused, so other
components can reference an entry across evictions and restarts. The
position of an entry is its index inside ``snapshot()``; positions shift on
eviction, ids do not.

The next id is also kept in ``memories.meta.json`` ({"nextId": N}). It is
written before every rewrite that can shrink the file (clear, compaction,
import), so numbering continues past ids that no longer appear in
``memories.jsonl``, even when the window restarts empty.

Failure Modes:
- Malformed lines are skipped on load.
- Append/compaction/clear I/O errors are logged; the window stays consistent.
- Export/import raise StorageError because they act on caller-chosen paths.
"""
from __future__ import annotations

import bisect
import json
import threading
from dataclasses import replace
from pathlib import Path
from typing import Iterable, List, Optional

from ...domain.errors import ContractError, StorageError
from ...domain.models import ContextMessage, Entry, Role
from ...ingestion.transcript_loader import (
    UNASSIGNED_ID,
    entry_to_record,
    load_entries,
    utc_now,
)
from ..config import DEFAULT_COMPACT_BYTES, DEFAULT_MAX_ENTRIES
from ..logging import get_logger
from .atomic import atomic_write_lines, atomic_write_text

logger = get_logger("thread_memory.memory_log")


def _dump(entry: Entry) -> str:
    return json.dumps(entry_to_record(entry), ensure_ascii=False)


class MemoryLog:
    """Chronological window of Entry objects backed by ``<directory>/memories.jsonl``."""

    FILE_NAME = "memories.jsonl"
    META_FILE_NAME = "memories.meta.json"

    def __init__(
        self,
        directory: Path,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        enabled: bool = True,
        compact_threshold_bytes: int = DEFAULT_COMPACT_BYTES,
    ) -> None:
        if int(max_entries) < 1:
            raise ContractError(f"max_entries must be >= 1, got {max_entries}")
        self._dir = Path(directory)
        self._path = self._dir / self.FILE_NAME
        self._meta_path = self._dir / self.META_FILE_NAME
        self._max = int(max_entries)
        self._compact_threshold = max(1, int(compact_threshold_bytes))
        self.enabled = bool(enabled)
        self.gate = threading.RLock()
        self._window: List[Entry] = []
        self._next_id = 0
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("Storage directory unavailable | dir=%s | error=%s", self._dir, exc)
        self.load()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def meta_path(self) -> Path:
        return self._meta_path

    @property
    def directory(self) -> Path:
        return self._dir

    @property
    def next_id(self) -> int:
        with self.gate:
            return self._next_id

    @property
    def max_entries(self) -> int:
        return self._max

    def __len__(self) -> int:
        with self.gate:
            return len(self._window)

    # --- Writes ---
    def append(
        self,
        role: object,
        content: str,
        topic: Optional[str] = None,
        source: Optional[str] = "chat",
    ) -> Optional[int]:
        """
        Append one turn and mirror it to disk.

        Args:
            role: Role or its string value ("user", "assistant", "system").
            content: Message text; blank text is ignored.
            topic: Optional label (speaker name).
            source: Origin tag stored with the record.

        Returns:
            Optional[int]: The new entry id, or None when the log is disabled or
            the content is blank.

        Raises:
            ContractError: Unknown role.
        """
        if not self.enabled:
            return None
        if not isinstance(content, str) or not content.strip():
            return None
        parsed_role = Role.parse(role)

        with self.gate:
            entry = Entry(
                id=self._next_id,
                timestamp=utc_now(),
                role=parsed_role,
                content=content,
                topic=topic,
                source=source,
            )
            self._next_id += 1
            self._window.append(entry)
            self._write_record_locked(entry)
            self._evict_locked()
            self._maybe_compact_locked()
            return entry.id

    def flush(self) -> bool:
        """Force compaction; returns False when the rewrite failed."""
        with self.gate:
            return self._rewrite_tail_locked()

    def clear_all(self) -> None:
        """Empty the window and truncate the file. Ids keep counting upward."""
        with self.gate:
            self._window = []
            self._write_meta_locked()
            try:
                self._path.open("w", encoding="utf-8").close()
            except OSError as exc:
                logger.warning("Clear failed | file=%s | error=%s", self._path, exc)
                return
            logger.info("Memory cleared | file=%s", self._path)

    # --- Reads ---
    def snapshot(self) -> List[Entry]:
        with self.gate:
            return list(self._window)

    def recent(self, n: int) -> List[Entry]:
        if n <= 0:
            return []
        with self.gate:
            return list(self._window[-n:])

    def recent_for_context(self, n: int) -> List[ContextMessage]:
        """Last ``min(n, len)`` turns, oldest first, as (role, content) pairs."""
        if not self.enabled:
            return []
        return [ContextMessage(e.role.value, e.content) for e in self.recent(n)]

    def position_of(self, entry_id: int) -> Optional[int]:
        with self.gate:
            pos = bisect.bisect_left(self._window, entry_id, key=lambda e: e.id)
            if pos < len(self._window) and self._window[pos].id == entry_id:
                return pos
            return None

    def resolve(self, ids: Iterable[int]) -> List[Entry]:
        """Entries for ``ids`` in the given order; ids no longer in the window are skipped."""
        with self.gate:
            by_id = {e.id: e for e in self._window}
        return [by_id[i] for i in ids if i in by_id]

    def live_ids(self) -> List[int]:
        with self.gate:
            return [e.id for e in self._window]

    def search(self, query: str = "", role: Optional[str] = None, topic: Optional[str] = None) -> List[Entry]:
        """Case-insensitive substring/role/topic filter, newest first."""
        q = (query or "").strip().lower()
        r = (role or "").strip().lower()
        t = (topic or "").strip().lower()
        with self.gate:
            window = list(self._window)
        return [
            e
            for e in reversed(window)
            if (not r or e.role.value == r)
            and (not t or (e.topic or "").lower() == t)
            and (not q or q in e.content.lower())
        ]

    # --- Persistence ---
    def load(self) -> int:
        """
        Rebuild the window from disk, skipping malformed records.

        Ids found in the file are kept while they increase; missing or
        out-of-order ids are replaced by fresh ones. When the file holds more
        than ``max_entries`` records only the newest are kept. The next id
        never drops below the stored high-water mark.

        Returns:
            int: Number of entries in the window after loading.
        """
        with self.gate:
            self._window = []
            self._next_id = max(self._next_id, self._read_meta())
            if not self._path.exists():
                return 0
            try:
                entries = load_entries(self._path, "jsonl")
            except OSError as exc:
                logger.warning("Load failed | file=%s | error=%s", self._path, exc)
                return 0

            # stored ids may sit below the high-water mark; fresh ones may not
            floor = self._next_id
            last = -1
            window: List[Entry] = []
            for e in entries:
                if e.id == UNASSIGNED_ID or e.id <= last:
                    e = replace(e, id=max(last + 1, floor))
                last = e.id
                window.append(e)
            self._next_id = max(self._next_id, last + 1)
            if len(window) > self._max:
                window = window[-self._max:]
            self._window = window
            logger.info("Memory loaded | file=%s | entries=%d", self._path, len(window))
            return len(window)

    def default_export_path(self) -> Path:
        return self._dir / f"memories_{utc_now():%Y%m%d_%H%M%S}.jsonl"

    def export_to(self, path: Optional[Path] = None) -> Path:
        """Write the window as JSONL to ``path`` (default: timestamped file in the storage dir)."""
        target = Path(path).expanduser() if path else self.default_export_path()
        with self.gate:
            lines = [_dump(e) for e in self._window]
        try:
            atomic_write_lines(target, lines)
        except OSError as exc:
            raise StorageError(f"Export to {target} failed: {exc}") from exc
        logger.info("Memory exported | file=%s | entries=%d", target, len(lines))
        return target

    def import_from(self, path: Path, keep_existing: bool = True) -> int:
        """
        Load entries from a JSONL/JSON transcript and add them to the window.

        Imported entries receive fresh ids. With ``keep_existing`` False the
        window is replaced instead of extended. The result is trimmed to
        capacity and the file compacted.

        Returns:
            int: Number of records read from ``path``.

        Raises:
            StorageError: When ``path`` cannot be read.
        """
        source = Path(path).expanduser()
        try:
            entries = load_entries(source)
        except OSError as exc:
            raise StorageError(f"Import from {source} failed: {exc}") from exc

        with self.gate:
            window = list(self._window) if keep_existing else []
            for e in entries:
                window.append(replace(e, id=self._next_id))
                self._next_id += 1
            if len(window) > self._max:
                window = window[-self._max:]
            self._window = window
            self._rewrite_tail_locked()
        logger.info(
            "Memory imported | file=%s | imported=%d | keep_existing=%s",
            source,
            len(entries),
            keep_existing,
        )
        return len(entries)

    # --- Internals (gate held) ---
    def _evict_locked(self) -> int:
        excess = len(self._window) - self._max
        if excess > 0:
            del self._window[:excess]
            return excess
        return 0

    def _write_record_locked(self, entry: Entry) -> None:
        try:
            with self._path.open("a", encoding="utf-8") as f:
                f.write(_dump(entry))
                f.write("\n")
        except OSError as exc:
            logger.warning("Append write failed | file=%s | error=%s", self._path, exc)

    def _maybe_compact_locked(self) -> None:
        try:
            size = self._path.stat().st_size
        except OSError:
            return
        if size > self._compact_threshold:
            logger.info("Compacting | file=%s | size_bytes=%d | entries=%d", self._path, size, len(self._window))
            self._rewrite_tail_locked()

    def reserve_ids(self, floor: int) -> None:
        """Make sure ids below ``floor`` are never handed out again."""
        with self.gate:
            if int(floor) > self._next_id:
                self._next_id = int(floor)
                self._write_meta_locked()
                logger.info("Entry ids reserved | next_id=%d", self._next_id)

    def _read_meta(self) -> int:
        if not self._meta_path.exists():
            return 0
        try:
            data = json.loads(self._meta_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Meta load failed | file=%s | error=%s", self._meta_path, exc)
            return 0
        raw = data.get("nextId") if isinstance(data, dict) else None
        if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
            logger.warning("Meta file has no usable nextId | file=%s", self._meta_path)
            return 0
        return raw

    def _write_meta_locked(self) -> None:
        try:
            atomic_write_text(self._meta_path, json.dumps({"nextId": self._next_id}))
        except OSError as exc:
            logger.warning("Meta write failed | file=%s | error=%s", self._meta_path, exc)

    def _rewrite_tail_locked(self) -> bool:
        self._write_meta_locked()
        try:
            atomic_write_lines(self._path, [_dump(e) for e in self._window])
            return True
        except OSError as exc:
            logger.warning("Compaction failed | file=%s | error=%s", self._path, exc)
            return False
