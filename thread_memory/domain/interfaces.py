from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from .models import Vector


class EmbeddingService(ABC):
    """Port for embedding provider (e.g., Ollama)."""

    @abstractmethod
    def embed_texts(self, texts: List[str]) -> List[Vector]:
        """Embed a batch of texts into vectors.

        Raises:
            Exception: Provider/network failures should surface; the embedding
                worker decides how to degrade.
        """
        raise NotImplementedError

    @abstractmethod
    def get_dimension(self) -> int:
        """Return embedding dimension, probing provider if needed."""
        raise NotImplementedError

    def embed_text(self, text: str) -> Vector:
        """Embed one text; empty Vector when the provider returned nothing."""
        vecs = self.embed_texts([text])
        return vecs[0] if vecs else Vector(values=[], dim=0)
