from __future__ import annotations

from ..dto import RecordTurnRequest, RecordTurnResult
from ..embedding_worker import EmbeddingWorker
from ...domain.vectors import is_null
from ...infrastructure.logging import get_logger
from ...infrastructure.storage.memory_log import MemoryLog
from ...infrastructure.storage.thread_index import ThreadIndex

logger = get_logger("thread_memory.record_turn")


class RecordTurnUseCase:
    """Use-case: append a turn to the log, then embed and route it into a thread."""

    def __init__(self, log: MemoryLog, index: ThreadIndex, embeddings: EmbeddingWorker) -> None:
        self._log = log
        self._index = index
        self._emb = embeddings

    def execute(self, req: RecordTurnRequest) -> RecordTurnResult:
        """
        Log first, thread second.

        The append completes (and is written to disk) before the embedding is
        requested, so a failed, cancelled or disabled embedding still leaves
        the turn in the log; such turns are reachable through recency only.
        No lock is held while waiting on the embedding.
        """
        entry_id = self._log.append(req.role, req.content, topic=req.topic)
        if entry_id is None:
            return RecordTurnResult()
        if not req.threaded:
            return RecordTurnResult(entry_id=entry_id)

        vec = self._emb.embed(req.content, req.cancel)
        if is_null(vec):
            logger.info("Turn logged without thread | entry=%d", entry_id)
            return RecordTurnResult(entry_id=entry_id)

        thread_id = self._index.route_entry(entry_id, vec, topic=req.topic, content=req.content)
        logger.info("Turn recorded | entry=%d | thread=%s", entry_id, thread_id)
        return RecordTurnResult(entry_id=entry_id, thread_id=thread_id)
