from __future__ import annotations

from typing import List

from ..dto import ContextRequest
from ..embedding_worker import EmbeddingWorker
from ...domain.models import ContextMessage
from ...domain.vectors import is_null
from ...infrastructure.logging import get_logger
from ...infrastructure.storage.memory_log import MemoryLog
from ...infrastructure.storage.thread_index import ThreadIndex

logger = get_logger("thread_memory.build_context")


class BuildContextUseCase:
    """Use-case: recency window followed by the tail of the best-matching thread."""

    def __init__(self, log: MemoryLog, index: ThreadIndex, embeddings: EmbeddingWorker) -> None:
        self._log = log
        self._index = index
        self._emb = embeddings

    def execute(self, req: ContextRequest) -> List[ContextMessage]:
        recent = self._log.recent_for_context(req.max_recent)
        if not req.threads_enabled:
            return recent

        q = self._emb.embed(req.user_text, req.cancel)
        if is_null(q):
            return recent

        best = self._index.best_match(q)
        if best is None or not best.member_ids or req.max_from_thread <= 0:
            return recent

        tail = best.member_ids[-req.max_from_thread:]
        entries = self._log.resolve(tail)
        logger.debug(
            "Context assembled | thread=%s | recent=%d | from_thread=%d",
            best.id,
            len(recent),
            len(entries),
        )
        ctx = list(recent)
        ctx.extend(ContextMessage(e.role.value, e.content) for e in entries)
        return ctx
