"""
Tool-style API for agent integrations.

Each function builds a ContextAssembler from env/.env settings (or uses the
one passed in), performs one operation, and returns a JSON-serializable dict
with a ``status`` key. Errors are reported in the dict, never raised.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from ..application.context_assembler import ContextAssembler
from ..infrastructure.config import load_settings
from ..infrastructure.logging import get_logger
from ..ingestion.transcript_loader import format_timestamp

logger = get_logger("thread_memory.mcp.api")


def _assembler(assembler: Optional[ContextAssembler]) -> ContextAssembler:
    return assembler or ContextAssembler.from_settings(load_settings())


def _error(ex: Exception) -> Dict[str, Any]:
    return {"status": "error", "error": f"{type(ex).__name__}: {ex}"}


def memory_record_turn(
    role: str,
    text: str,
    topic: Optional[str] = None,
    assembler: Optional[ContextAssembler] = None,
) -> Dict[str, Any]:
    """Record one turn; returns the entry id and the thread it joined (if any)."""
    try:
        asm = _assembler(assembler)
        result = asm.record_turn(role, text, topic=topic)
    except Exception as ex:
        logger.warning("MCP record failed | error=%s", ex)
        return _error(ex)
    if result.entry_id is None:
        return {"status": "ignored", "reason": "blank text or memory disabled"}
    return {"status": "ok", "entry_id": result.entry_id, "thread_id": result.thread_id}


def memory_build_context(
    user_text: str,
    max_recent: Optional[int] = None,
    max_from_thread: Optional[int] = None,
    assembler: Optional[ContextAssembler] = None,
) -> Dict[str, Any]:
    """Context messages for ``user_text`` as a list of {role, content}."""
    try:
        asm = _assembler(assembler)
        messages = asm.build_context(user_text, max_recent=max_recent, max_from_thread=max_from_thread)
    except Exception as ex:
        logger.warning("MCP context failed | error=%s", ex)
        return _error(ex)
    return {"status": "ok", "messages": [{"role": m.role, "content": m.content} for m in messages]}


def memory_thread_summaries(assembler: Optional[ContextAssembler] = None) -> Dict[str, Any]:
    try:
        rows = _assembler(assembler).index.summaries()
    except Exception as ex:
        return _error(ex)
    return {
        "status": "ok",
        "threads": [
            {
                "id": s.id,
                "label": s.label,
                "member_count": s.member_count,
                "updated_at": format_timestamp(s.updated_at),
            }
            for s in rows
        ],
    }


def memory_export(path: Optional[str] = None, assembler: Optional[ContextAssembler] = None) -> Dict[str, Any]:
    try:
        target = _assembler(assembler).log.export_to(Path(path) if path else None)
    except Exception as ex:
        return _error(ex)
    return {"status": "ok", "path": str(target)}


def memory_clear(confirm: bool = False, assembler: Optional[ContextAssembler] = None) -> Dict[str, Any]:
    """Wipe log and threads; requires ``confirm=True``."""
    if not confirm:
        return {"status": "error", "error": "Refusing to clear without confirm=True"}
    try:
        _assembler(assembler).clear_all()
    except Exception as ex:
        return _error(ex)
    return {"status": "ok", "cleared": True}
