"""
Context Assembler.

Facade wiring MemoryLog, ThreadIndex and the EmbeddingWorker together for the
two hot paths of a conversation:

- ``record_turn``: every inbound or outbound turn (log first, thread second).
- ``build_context``: the ordered (role, content) list seeding a completion.

Locking:
- MemoryLog.gate and ThreadIndex.gate are held only for in-memory work and
  the file write that belongs to it; embeddings are awaited with no lock held.
- ``clear_all`` is the only path that holds both, always log first.
"""
from __future__ import annotations

import threading
from typing import List, Optional

from .dto import AssemblerSettings, ContextRequest, RecordTurnRequest, RecordTurnResult
from .embedding_worker import EmbeddingWorker
from .use_cases.build_context import BuildContextUseCase
from .use_cases.record_turn import RecordTurnUseCase
from ..domain.interfaces import EmbeddingService
from ..domain.models import ContextMessage
from ..infrastructure.config import MemorySettings
from ..infrastructure.logging import get_logger
from ..infrastructure.ollama.client import OllamaEmbeddingService
from ..infrastructure.storage.memory_log import MemoryLog
from ..infrastructure.storage.thread_index import ThreadIndex
from ..infrastructure.timeouts import worker_wait_seconds

logger = get_logger("thread_memory.assembler")


class ContextAssembler:
    """Records turns and builds generator context from recency + thread history."""

    def __init__(
        self,
        log: MemoryLog,
        index: ThreadIndex,
        embeddings: EmbeddingWorker,
        settings: Optional[AssemblerSettings] = None,
    ) -> None:
        self.log = log
        self.index = index
        self._emb = embeddings
        self.settings = settings or AssemblerSettings()
        # ids already referenced by threads must not be handed out again
        log.reserve_ids(index.max_member_id() + 1)
        self._record = RecordTurnUseCase(log, index, embeddings)
        self._context = BuildContextUseCase(log, index, embeddings)

    @classmethod
    def from_settings(
        cls,
        settings: MemorySettings,
        embeddings: Optional[EmbeddingService] = None,
    ) -> "ContextAssembler":
        """Build the full object graph from resolved settings."""
        log = MemoryLog(
            settings.storage_dir,
            max_entries=settings.max_entries,
            enabled=settings.memory_enabled,
            compact_threshold_bytes=settings.compact_threshold_bytes,
        )
        index = ThreadIndex(settings.storage_dir, similarity_threshold=settings.similarity_threshold)
        service = embeddings or OllamaEmbeddingService(
            base_url=settings.ollama_url,
            model=settings.embed_model,
            timeout=settings.http_timeout,
        )
        worker = EmbeddingWorker(
            service,
            wait_seconds=worker_wait_seconds(settings.http_timeout),
            enabled=settings.threads_enabled,
        )
        return cls(
            log,
            index,
            worker,
            AssemblerSettings(
                threads_enabled=settings.threads_enabled,
                max_recent=settings.max_recent,
                max_from_thread=settings.max_from_thread,
            ),
        )

    def record_turn(
        self,
        role: str,
        content: str,
        topic: Optional[str] = None,
        cancel: Optional[threading.Event] = None,
    ) -> RecordTurnResult:
        return self._record.execute(
            RecordTurnRequest(
                role=role,
                content=content,
                topic=topic,
                threaded=self.settings.threads_enabled,
                cancel=cancel,
            )
        )

    def build_context(
        self,
        user_text: str,
        cancel: Optional[threading.Event] = None,
        max_recent: Optional[int] = None,
        max_from_thread: Optional[int] = None,
    ) -> List[ContextMessage]:
        """
        Ordered context for a new completion.

        Args:
            user_text: The pending user utterance used to pick a thread.
            cancel: Optional event that abandons the embedding wait.
            max_recent: Override for the recency window size.
            max_from_thread: Override for the thread tail size.

        Returns:
            List[ContextMessage]: Recency window (chronological) followed by the
            matched thread's most recent members in join order. Overlap between
            the two parts is kept.
        """
        return self._context.execute(
            ContextRequest(
                user_text=user_text,
                max_recent=self.settings.max_recent if max_recent is None else int(max_recent),
                max_from_thread=self.settings.max_from_thread if max_from_thread is None else int(max_from_thread),
                threads_enabled=self.settings.threads_enabled,
                cancel=cancel,
            )
        )

    def clear_all(self) -> None:
        with self.log.gate, self.index.gate:
            self.log.clear_all()
            self.index.clear()
        logger.info("Memory and threads cleared")

    def prune_threads(self) -> int:
        """Drop thread references to entries evicted from the log."""
        return self.index.prune(self.log.live_ids())

    def flush(self) -> None:
        self.log.flush()
        self.index.save()

    def close(self) -> None:
        self.flush()
        self._emb.close()
