from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..application.context_assembler import ContextAssembler
from ..domain.errors import ContractError, StorageError
from ..domain.models import Entry, ThreadSummary
from ..infrastructure.config import load_settings
from ..infrastructure.logging import get_logger, set_level
from ..ingestion.transcript_loader import entry_to_record, format_timestamp
from .parsers import build_parser

logger = get_logger("thread_memory.cli")


def _print(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _serialize_entry(entry: Entry) -> Dict[str, Any]:
    """Convert an Entry into a JSON-serializable mapping (None fields dropped)."""
    return {k: v for k, v in entry_to_record(entry).items() if v is not None}


def _serialize_summary(summary: ThreadSummary) -> Dict[str, Any]:
    return {
        "id": summary.id,
        "label": summary.label,
        "member_count": summary.member_count,
        "updated_at": format_timestamp(summary.updated_at),
    }


def build_assembler(storage_dir: Optional[str] = None) -> ContextAssembler:
    """Resolve settings from env/.env (``storage_dir`` overrides MEMORY_DIR) and wire components."""
    settings = load_settings()
    if storage_dir:
        settings = replace(settings, storage_dir=Path(storage_dir).expanduser())
    return ContextAssembler.from_settings(settings)


def run(argv: Optional[Sequence[str]] = None) -> int:
    ap = build_parser()
    ns = ap.parse_args(list(argv or []))
    set_level(getattr(ns, "log_level", None))

    try:
        assembler = build_assembler(getattr(ns, "dir", None))
    except Exception as ex:
        _print({"status": "error", "error": f"{type(ex).__name__}: {ex}"})
        return 3

    try:
        return dispatch_commands(ns, assembler)
    except (ContractError, StorageError) as ex:
        _print({"status": "error", "error": f"{type(ex).__name__}: {ex}"})
        return 2
    except Exception as ex:  # keep CLI concise and user-friendly
        _print({"status": "error", "error": f"{type(ex).__name__}: {ex}"})
        return 3
    finally:
        assembler.close()


def dispatch_commands(ns, assembler: ContextAssembler) -> int:
    """
    Dispatches CLI commands to the assembler.

    Commands:
    - record: append a turn and route it into a thread
    - context: print the (role, content) list for a pending user text
    - recent, search: inspect the log window
    - threads: thread summaries, most recently updated first
    - export, import: bulk JSONL/JSON transfer
    - clear: wipe log and threads (requires --yes)
    - flush: compact the log file and rewrite the thread file
    - prune: drop thread references to evicted entries
    """
    if ns.cmd == "record":
        return record_turn(ns, assembler)
    if ns.cmd == "context":
        return build_context(ns, assembler)
    if ns.cmd == "recent":
        entries = assembler.log.recent(int(ns.n))
        _print({"status": "ok", "count": len(entries), "result": [_serialize_entry(e) for e in entries]})
        return 0
    if ns.cmd == "search":
        return search_log(ns, assembler)
    if ns.cmd == "threads":
        rows = assembler.index.summaries()
        _print({"status": "ok", "count": len(rows), "result": [_serialize_summary(s) for s in rows]})
        return 0
    if ns.cmd == "export":
        target = assembler.log.export_to(Path(ns.out) if getattr(ns, "out", None) else None)
        _print({"status": "ok", "path": str(target), "entries": len(assembler.log)})
        return 0
    if ns.cmd == "import":
        return import_transcript(ns, assembler)
    if ns.cmd == "clear":
        if not getattr(ns, "yes", False):
            _print({"status": "error", "error": "Refusing to clear without --yes"})
            return 2
        assembler.clear_all()
        _print({"status": "ok", "cleared": True})
        return 0
    if ns.cmd == "flush":
        assembler.flush()
        _print({"status": "ok", "entries": len(assembler.log), "threads": len(assembler.index)})
        return 0
    if ns.cmd == "prune":
        removed = assembler.prune_threads()
        _print({"status": "ok", "removed_references": removed, "threads": len(assembler.index)})
        return 0

    _print({"status": "error", "error": f"Unknown command: {ns.cmd}"})
    return 2


def record_turn(ns, assembler: ContextAssembler) -> int:
    text = str(ns.text)
    if not text.strip():
        _print({"status": "error", "error": "Text must not be blank"})
        return 2
    result = assembler.record_turn(str(ns.role), text, topic=getattr(ns, "topic", None))
    if result.entry_id is None:
        _print({"status": "error", "error": "Memory log is disabled (MEMORY_ENABLED=0)"})
        return 2
    _print({"status": "ok", "entry_id": result.entry_id, "thread_id": result.thread_id})
    return 0


def build_context(ns, assembler: ContextAssembler) -> int:
    messages = assembler.build_context(
        str(ns.q),
        max_recent=getattr(ns, "max_recent", None),
        max_from_thread=getattr(ns, "max_from_thread", None),
    )
    result: List[Dict[str, str]] = [{"role": m.role, "content": m.content} for m in messages]
    _print({"status": "ok", "count": len(result), "result": result})
    return 0


def search_log(ns, assembler: ContextAssembler) -> int:
    hits = assembler.log.search(str(ns.q or ""), role=getattr(ns, "role", None), topic=getattr(ns, "topic", None))
    limit = max(0, int(getattr(ns, "limit", 50) or 0))
    shown = hits[:limit] if limit else hits
    _print({"status": "ok", "count": len(hits), "result": [_serialize_entry(e) for e in shown]})
    return 0


def import_transcript(ns, assembler: ContextAssembler) -> int:
    input_path = Path(str(ns.input)).expanduser()
    if not input_path.exists():
        _print({"status": "error", "error": f"Input file '{input_path}' not found"})
        return 2
    keep_existing = not bool(getattr(ns, "replace", False))
    logger.info("Import request | file=%s | keep_existing=%s", input_path, keep_existing)
    count = assembler.log.import_from(input_path, keep_existing=keep_existing)
    if not keep_existing:
        # the previous window is gone; so are the thread references into it
        assembler.prune_threads()
    _print({"status": "ok", "imported": count, "entries": len(assembler.log)})
    return 0


def main() -> int:
    import sys
    return run(sys.argv[1:])


if __name__ == "__main__":
    raise SystemExit(main())
