from __future__ import annotations

import contextlib
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

DEFAULT_MAX_ENTRIES = 1000
MIN_MAX_ENTRIES = 10
DEFAULT_COMPACT_BYTES = 10 * 1024 * 1024
DEFAULT_SIMILARITY_THRESHOLD = 0.78
SIMILARITY_FLOOR = 0.1
SIMILARITY_CEILING = 0.95

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def parse_dotenv(dotenv_path: Path) -> Dict[str, str]:
    """Parse a simple .env file (KEY=VALUE per line, '#' comments, quotes stripped)."""
    env: Dict[str, str] = {}
    if dotenv_path.exists():
        with contextlib.suppress(Exception):
            for raw in dotenv_path.read_text(encoding="utf-8", errors="ignore").splitlines():
                s = raw.strip()
                if not s or s.startswith("#") or "=" not in s:
                    continue
                k, v = s.split("=", 1)
                k = k.strip()
                v = v.strip().strip('"').strip("'")
                if k:
                    env[k] = v
    return env


def env_get(key: str) -> Optional[str]:
    """Get environment value from process env, falling back to .env in CWD."""
    v = os.getenv(key)
    if v is not None and v.strip():
        return v.strip()
    local = parse_dotenv(Path(".env"))
    v2 = local.get(key)
    return v2.strip() if v2 is not None and v2.strip() else None


def env_str(name: str, default: str) -> str:
    return env_get(name) or default


def env_int(name: str, default: int) -> int:
    try:
        return int(env_str(name, str(default)))
    except Exception:
        return default


def env_float(name: str, default: float) -> float:
    try:
        return float(env_str(name, str(default)))
    except Exception:
        return default


def env_bool(name: str, default: bool) -> bool:
    raw = (env_get(name) or "").lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    return default


def clamp_threshold(value: float) -> float:
    return max(SIMILARITY_FLOOR, min(SIMILARITY_CEILING, float(value)))


def clamp_max_entries(value: int) -> int:
    return max(MIN_MAX_ENTRIES, int(value))


def ollama_url() -> str:
    return env_str("OLLAMA_URL", "http://localhost:11434").rstrip("/")


def embed_model() -> str:
    return env_str("EMBED_MODEL", "nomic-embed-text")


def storage_dir() -> Path:
    """
    Directory holding memories.jsonl and threads.json.
    Defaults to $XDG_DATA_HOME/thread_memory (or ~/.local/share/thread_memory).
    """
    explicit = env_get("MEMORY_DIR")
    if explicit:
        return Path(explicit).expanduser()
    base = os.environ.get("XDG_DATA_HOME") or os.path.join(Path.home(), ".local", "share")
    return Path(base) / "thread_memory"


@dataclass(frozen=True)
class MemorySettings:
    """Resolved configuration handed to components at construction time.

    Fields:
        storage_dir: Directory the process owns exclusively.
        memory_enabled: Log enable flag; a disabled log ignores appends.
        max_entries: Window capacity (>= 10).
        compact_threshold_bytes: File size that triggers compaction.
        threads_enabled: Threading enable flag; also disables embedding.
        similarity_threshold: Join threshold, clamped to [0.1, 0.95].
        max_from_thread: Thread tail size appended to context.
        max_recent: Recency window size.
        ollama_url: Embedding endpoint base URL.
        embed_model: Embedding model name.
        http_timeout: Seconds allowed for one embedding call.
    """
    storage_dir: Path
    memory_enabled: bool = True
    max_entries: int = DEFAULT_MAX_ENTRIES
    compact_threshold_bytes: int = DEFAULT_COMPACT_BYTES
    threads_enabled: bool = True
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    max_from_thread: int = 6
    max_recent: int = 8
    ollama_url: str = "http://localhost:11434"
    embed_model: str = "nomic-embed-text"
    http_timeout: float = 15.0


def load_settings() -> MemorySettings:
    """Build MemorySettings from env/.env, applying documented clamps and defaults."""
    from .timeouts import http_timeout_seconds

    return MemorySettings(
        storage_dir=storage_dir(),
        memory_enabled=env_bool("MEMORY_ENABLED", True),
        max_entries=clamp_max_entries(env_int("MEMORY_MAX_ENTRIES", DEFAULT_MAX_ENTRIES)),
        compact_threshold_bytes=max(1, env_int("MEMORY_COMPACT_BYTES", DEFAULT_COMPACT_BYTES)),
        threads_enabled=env_bool("THREADS_ENABLED", True),
        similarity_threshold=clamp_threshold(
            env_float("THREAD_SIMILARITY_THRESHOLD", DEFAULT_SIMILARITY_THRESHOLD)
        ),
        max_from_thread=max(0, env_int("THREAD_CONTEXT_MAX_FROM_THREAD", 6)),
        max_recent=max(0, env_int("THREAD_CONTEXT_MAX_RECENT", 8)),
        ollama_url=ollama_url(),
        embed_model=embed_model(),
        http_timeout=http_timeout_seconds(),
    )
