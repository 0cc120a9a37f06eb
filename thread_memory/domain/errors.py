from __future__ import annotations


class EmbeddingError(RuntimeError):
    """Raised when embedding provider fails or returns an unusable payload."""


class StorageError(OSError):
    """Raised when a durable file cannot be written or replaced."""


class ContractError(ValueError):
    """Raised when request violates documented contract (e.g., unknown role, capacity < 1)."""


class MalformedRecordError(ValueError):
    """Raised when a persisted record cannot be decoded; callers skip the record."""
