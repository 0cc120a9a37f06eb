"""
Unit tests for the Ollama embedding adapter and the fail-closed worker.
"""

import threading
from concurrent.futures import TimeoutError as FutureTimeout
from unittest.mock import Mock

import pytest
import requests

from thread_memory.application.embedding_worker import EmbeddingWorker
from thread_memory.domain.errors import EmbeddingError
from thread_memory.infrastructure.ollama.client import OllamaEmbeddingService


def _session_returning(payload):
    session = Mock(spec=requests.Session)
    response = Mock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    session.post.return_value = response
    return session


class TestOllamaEmbeddingService:
    """Test request shape and response parsing."""

    def test_posts_model_and_prompt(self):
        session = _session_returning({"embedding": [0.1, 0.2, 0.3]})
        svc = OllamaEmbeddingService(base_url="http://host:11434/", model="m", timeout=3, session=session)
        vec = svc.embed_text("hello")
        assert vec.values == [0.1, 0.2, 0.3]
        assert vec.dim == 3
        session.post.assert_called_once_with(
            "http://host:11434/api/embeddings", json={"model": "m", "prompt": "hello"}, timeout=3.0
        )

    @pytest.mark.parametrize("payload", [{}, {"embedding": "nope"}, {"embedding": [1, "x"]}, ["embedding"]])
    def test_bad_payload_raises_embedding_error(self, payload):
        svc = OllamaEmbeddingService(base_url="http://h", model="m", timeout=1, session=_session_returning(payload))
        with pytest.raises(EmbeddingError):
            svc.embed_text("x")

    def test_http_error_propagates(self):
        session = _session_returning({})
        session.post.return_value.raise_for_status.side_effect = requests.HTTPError("500")
        svc = OllamaEmbeddingService(base_url="http://h", model="m", timeout=1, session=session)
        with pytest.raises(requests.HTTPError):
            svc.embed_texts(["x"])

    def test_dimension_probe(self):
        svc = OllamaEmbeddingService(
            base_url="http://h", model="m", timeout=1, session=_session_returning({"embedding": [0.0] * 4})
        )
        assert svc.get_dimension() == 4

    def test_empty_embedding_fails_dimension_probe(self):
        svc = OllamaEmbeddingService(base_url="http://h", model="m", timeout=1, session=_session_returning({"embedding": []}))
        with pytest.raises(EmbeddingError):
            svc.get_dimension()


class TestEmbeddingWorker:
    """Test that every failure mode collapses to an empty vector."""

    def test_returns_vector(self, fake_embeddings):
        fake_embeddings.table["a"] = [1.0, 2.0]
        worker = EmbeddingWorker(fake_embeddings, wait_seconds=2)
        try:
            assert worker.embed("a") == [1.0, 2.0]
        finally:
            worker.close()

    def test_provider_error_returns_empty(self, fake_embeddings):
        worker = EmbeddingWorker(fake_embeddings, wait_seconds=2)
        try:
            assert worker.embed("unknown") == []
        finally:
            worker.close()

    def test_http_failure_returns_empty(self):
        session = Mock(spec=requests.Session)
        session.post.side_effect = requests.ConnectionError("refused")
        worker = EmbeddingWorker(OllamaEmbeddingService(base_url="http://h", model="m", timeout=1, session=session))
        try:
            assert worker.embed("hello") == []
        finally:
            worker.close()

    def test_provider_timeout_returns_empty(self):
        session = Mock(spec=requests.Session)
        session.post.side_effect = requests.Timeout("slow")
        worker = EmbeddingWorker(OllamaEmbeddingService(base_url="http://h", model="m", timeout=1, session=session))
        try:
            assert worker.embed("hello") == []
        finally:
            worker.close()

    def test_disabled_or_blank_never_calls_provider(self, fake_embeddings):
        fake_embeddings.table["a"] = [1.0]
        off = EmbeddingWorker(fake_embeddings, enabled=False)
        on = EmbeddingWorker(fake_embeddings)
        try:
            assert off.embed("a") == []
            assert on.embed("   ") == []
            assert EmbeddingWorker(None).embed("a") == []
        finally:
            off.close()
            on.close()
        assert fake_embeddings.calls == []

    def test_pre_set_cancel_returns_immediately(self, fake_embeddings):
        fake_embeddings.table["a"] = [1.0]
        cancel = threading.Event()
        cancel.set()
        worker = EmbeddingWorker(fake_embeddings)
        try:
            assert worker.embed("a", cancel=cancel) == []
        finally:
            worker.close()
        assert fake_embeddings.calls == []

    def test_closed_worker_returns_empty(self, fake_embeddings):
        fake_embeddings.table["a"] = [1.0]
        worker = EmbeddingWorker(fake_embeddings)
        worker.close()
        assert worker.embed("a") == []


class TestWaitRace:
    """Test results that arrive just as the wait slice expires."""

    def _worker_with_future(self, fake_embeddings, future):
        fake_embeddings.table["a"] = [1.0]
        worker = EmbeddingWorker(fake_embeddings, wait_seconds=2)
        worker.submit = Mock(return_value=future)
        return worker

    def test_result_finished_after_wait_is_kept(self, fake_embeddings):
        future = Mock()
        future.result.side_effect = [FutureTimeout(), [0.5, 0.5]]
        future.done.return_value = True
        future.exception.return_value = None
        worker = self._worker_with_future(fake_embeddings, future)
        try:
            assert worker.embed("a") == [0.5, 0.5]
        finally:
            worker.close()

    def test_provider_timeout_error_returns_empty(self, fake_embeddings):
        future = Mock()
        future.result.side_effect = FutureTimeout()
        future.done.return_value = True
        future.exception.return_value = TimeoutError("read timed out")
        worker = self._worker_with_future(fake_embeddings, future)
        try:
            assert worker.embed("a") == []
        finally:
            worker.close()


def test_missing_service_raises_embedding_error():
    worker = EmbeddingWorker(None)
    try:
        with pytest.raises(EmbeddingError):
            worker._embed_now("a")
    finally:
        worker.close()
