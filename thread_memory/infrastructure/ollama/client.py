from __future__ import annotations

from typing import List, Optional

import requests

from ...domain.errors import EmbeddingError
from ...domain.interfaces import EmbeddingService
from ...domain.models import Vector
from ..config import embed_model, ollama_url
from ..timeouts import http_timeout_seconds


class OllamaEmbeddingService(EmbeddingService):
    """Embedding adapter for Ollama /api/embeddings."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base = (base_url or ollama_url()).rstrip("/")
        self._model = model or embed_model()
        self._timeout = float(timeout or http_timeout_seconds())
        self._http = session or requests.Session()

    @property
    def url(self) -> str:
        return f"{self._base}/api/embeddings"

    def embed_texts(self, texts: List[str]) -> List[Vector]:
        if not texts:
            return []
        out: List[Vector] = []
        for t in texts:
            r = self._http.post(self.url, json={"model": self._model, "prompt": t or ""}, timeout=self._timeout)
            r.raise_for_status()
            out.append(_vector_from_response(r.json()))
        return out

    def get_dimension(self) -> int:
        vecs = self.embed_texts(["probe"])
        if not vecs or vecs[0].dim == 0:
            raise EmbeddingError("Embedding dimension probe failed (no vectors)")
        return vecs[0].dim


def _vector_from_response(data: object) -> Vector:
    """Extract the numeric array from the ``embedding`` field of an Ollama reply."""
    raw = data.get("embedding") if isinstance(data, dict) else None
    if not isinstance(raw, list):
        raise EmbeddingError("Embedding response has no 'embedding' array")
    try:
        values = [float(x) for x in raw]
    except (TypeError, ValueError) as exc:
        raise EmbeddingError(f"Embedding array is not numeric: {exc}") from exc
    return Vector(values=values, dim=len(values))
