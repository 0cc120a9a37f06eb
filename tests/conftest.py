"""
Pytest configuration and fixtures for thread memory tests.

Provides a temporary storage directory, a deterministic fake embedding
service, and factories for the log / index / assembler graph.
"""

import os
import threading
from typing import Dict, List, Optional

import pytest

from thread_memory.application.context_assembler import ContextAssembler
from thread_memory.application.dto import AssemblerSettings
from thread_memory.application.embedding_worker import EmbeddingWorker
from thread_memory.domain.errors import EmbeddingError
from thread_memory.domain.interfaces import EmbeddingService
from thread_memory.domain.models import Vector
from thread_memory.infrastructure.storage.memory_log import MemoryLog
from thread_memory.infrastructure.storage.thread_index import ThreadIndex


class FakeEmbeddingService(EmbeddingService):
    """Looks vectors up by exact text; unknown text raises EmbeddingError."""

    def __init__(self, table: Optional[Dict[str, List[float]]] = None, block: Optional[threading.Event] = None):
        self.table: Dict[str, List[float]] = dict(table or {})
        self.calls: List[str] = []
        self.block = block

    def embed_texts(self, texts: List[str]) -> List[Vector]:
        out = []
        for t in texts:
            self.calls.append(t)
            if self.block is not None:
                self.block.wait(5)
            if t not in self.table:
                raise EmbeddingError(f"no vector for {t!r}")
            values = list(self.table[t])
            out.append(Vector(values=values, dim=len(values)))
        return out

    def get_dimension(self) -> int:
        return len(next(iter(self.table.values()), []))


@pytest.fixture
def storage_dir(tmp_path):
    """Fresh storage directory per test."""
    d = tmp_path / "store"
    d.mkdir()
    return d


@pytest.fixture
def fake_embeddings():
    return FakeEmbeddingService()


@pytest.fixture
def fake_service_cls():
    """The fake service class, for tests that need a separately configured instance."""
    return FakeEmbeddingService


@pytest.fixture
def make_assembler(storage_dir, fake_embeddings):
    """Factory building a ContextAssembler over the temp dir and the fake service."""
    created: List[ContextAssembler] = []

    def _make(
        max_entries: int = 100,
        threshold: float = 0.78,
        max_recent: int = 8,
        max_from_thread: int = 6,
        threads_enabled: bool = True,
        memory_enabled: bool = True,
        service: Optional[EmbeddingService] = None,
        wait_seconds: float = 2.0,
    ) -> ContextAssembler:
        log = MemoryLog(storage_dir, max_entries=max_entries, enabled=memory_enabled)
        index = ThreadIndex(storage_dir, similarity_threshold=threshold)
        worker = EmbeddingWorker(service or fake_embeddings, wait_seconds=wait_seconds, enabled=threads_enabled)
        asm = ContextAssembler(
            log,
            index,
            worker,
            AssemblerSettings(threads_enabled=threads_enabled, max_recent=max_recent, max_from_thread=max_from_thread),
        )
        created.append(asm)
        return asm

    yield _make
    for asm in created:
        asm._emb.close()


@pytest.fixture
def clean_environment():
    """Clean environment variables for testing."""
    env_vars_to_clean = [
        "MEMORY_DIR",
        "MEMORY_ENABLED",
        "MEMORY_MAX_ENTRIES",
        "MEMORY_COMPACT_BYTES",
        "THREADS_ENABLED",
        "THREAD_SIMILARITY_THRESHOLD",
        "THREAD_CONTEXT_MAX_FROM_THREAD",
        "THREAD_CONTEXT_MAX_RECENT",
        "OLLAMA_URL",
        "EMBED_MODEL",
        "MEMORY_HTTP_TIMEOUT",
        "XDG_DATA_HOME",
    ]

    original_env = {}
    for var in env_vars_to_clean:
        if var in os.environ:
            original_env[var] = os.environ[var]
            del os.environ[var]

    yield

    for var in env_vars_to_clean:
        os.environ.pop(var, None)
    for var, value in original_env.items():
        os.environ[var] = value
