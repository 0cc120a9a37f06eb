"""
Embedding Worker.

Runs EmbeddingService calls on a small thread pool so that callers wait on a
future (outside every storage lock) instead of blocking inside one. The
worker is the fail-closed boundary of the embedding provider: any failure,
timeout or cancellation produces an empty vector.

Timeout/Retries:
- One attempt per request; the caller waits at most ``wait_seconds``.
- A cancelled or timed-out request keeps running in the pool until the HTTP
  call returns; its result is discarded.
"""
from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import List, Optional

from ..domain.errors import EmbeddingError
from ..domain.interfaces import EmbeddingService
from ..infrastructure.logging import get_logger

logger = get_logger("thread_memory.embedding")

_POLL_SECONDS = 0.05


class EmbeddingWorker:
    """Message-passing front for an EmbeddingService."""

    def __init__(
        self,
        service: Optional[EmbeddingService],
        wait_seconds: float = 16.0,
        enabled: bool = True,
        max_workers: int = 2,
    ) -> None:
        self._service = service
        self._wait = max(0.0, float(wait_seconds))
        self.enabled = bool(enabled) and service is not None
        self._pool = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="embed")
        self._closed = False

    def submit(self, text: str) -> Future:
        """Queue an embedding request; the future resolves to a list of floats."""
        return self._pool.submit(self._embed_now, text)

    def embed(self, text: str, cancel: Optional[threading.Event] = None) -> List[float]:
        """
        Embed ``text`` and wait for the result.

        Args:
            text: Text to embed.
            cancel: Optional event; when set, waiting stops and [] is returned.

        Returns:
            List[float]: The embedding, or [] when disabled, blank, cancelled,
            timed out, or failed.
        """
        if not self.enabled or self._closed or not (text or "").strip():
            return []
        if cancel is not None and cancel.is_set():
            return []
        try:
            future = self.submit(text)
        except RuntimeError as exc:
            logger.warning("Embedding worker unavailable | error=%s", exc)
            return []

        deadline = time.monotonic() + self._wait
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                future.cancel()
                logger.warning("Embedding timed out | wait_seconds=%.1f", self._wait)
                return []
            try:
                return future.result(timeout=min(_POLL_SECONDS, remaining))
            except FutureTimeout:
                if future.done():
                    # either finished right after the wait expired, or the provider raised TimeoutError
                    error = future.exception()
                    if error is None:
                        return future.result()
                    logger.warning("Embedding failed; continuing without vector | error=%s", error)
                    return []
                if cancel is not None and cancel.is_set():
                    future.cancel()
                    logger.info("Embedding cancelled by caller")
                    return []
            except Exception as exc:
                logger.warning("Embedding failed; continuing without vector | error=%s: %s", type(exc).__name__, exc)
                return []

    def close(self) -> None:
        self._closed = True
        self._pool.shutdown(wait=False, cancel_futures=True)

    def _embed_now(self, text: str) -> List[float]:
        if self._service is None:
            raise EmbeddingError("No embedding service configured")
        return list(self._service.embed_text(text).values)
