from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AssemblerSettings:
    threads_enabled: bool = True
    max_recent: int = 8
    max_from_thread: int = 6


@dataclass(frozen=True)
class RecordTurnRequest:
    role: str
    content: str
    topic: Optional[str] = None
    threaded: bool = True
    cancel: Optional[threading.Event] = None


@dataclass(frozen=True)
class RecordTurnResult:
    """Outcome of recording a turn.

    Fields:
        entry_id: Log id of the new entry; None when nothing was appended.
        thread_id: Thread that received the entry; None when not threaded.
    """
    entry_id: Optional[int] = None
    thread_id: Optional[str] = None


@dataclass(frozen=True)
class ContextRequest:
    user_text: str
    max_recent: int = 8
    max_from_thread: int = 6
    threads_enabled: bool = True
    cancel: Optional[threading.Event] = None
