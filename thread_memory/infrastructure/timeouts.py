from __future__ import annotations

from .config import env_float

DEFAULT_HTTP_TIMEOUT = 15.0


def http_timeout_seconds() -> float:
    """Timeout for one embedding HTTP call (MEMORY_HTTP_TIMEOUT, default 15s)."""
    value = env_float("MEMORY_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT)
    return value if value > 0 else DEFAULT_HTTP_TIMEOUT


def worker_wait_seconds(http_timeout: float) -> float:
    """How long a caller waits on the embedding worker before falling back to an empty vector."""
    return float(http_timeout) + 1.0
