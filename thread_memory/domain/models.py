from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, NamedTuple, Optional

from .errors import ContractError


class Role(str, Enum):
    """Speaker of a dialogue turn."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"

    @classmethod
    def parse(cls, value: object) -> "Role":
        if isinstance(value, Role):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ContractError(f"Unknown role: {value!r}") from exc


@dataclass(frozen=True)
class Entry:
    """A single dialogue turn held by the memory log.

    Fields:
        id: Monotonic identifier assigned by the log at append time; never reused.
        timestamp: UTC instant of the append.
        role: Speaker role.
        content: Non-empty message text.
        topic: Optional label, usually the speaker's display name.
        source: Origin tag (e.g., "chat", "import").
    """
    id: int
    timestamp: datetime
    role: Role
    content: str
    topic: Optional[str] = None
    source: Optional[str] = "chat"


@dataclass
class Thread:
    """A topic-coherent cluster of entries.

    Fields:
        id: Hex identifier, stable for the thread's lifetime.
        label: Short human label (topic or first words of the founding entry).
        centroid: Representative embedding; empty if never embedded.
        member_ids: Entry ids in join order.
        updated_at: UTC instant of the last membership change.
    """
    id: str
    label: str
    centroid: List[float]
    member_ids: List[int]
    updated_at: datetime

    def copy(self) -> "Thread":
        return Thread(
            id=self.id,
            label=self.label,
            centroid=list(self.centroid),
            member_ids=list(self.member_ids),
            updated_at=self.updated_at,
        )


@dataclass(frozen=True)
class ThreadSummary:
    """Inspection view of a thread."""
    id: str
    label: str
    member_count: int
    updated_at: datetime


class ContextMessage(NamedTuple):
    """(role, content) pair handed to the text generator."""
    role: str
    content: str


@dataclass(frozen=True)
class Vector:
    """Embedding vector with explicit dimension.

    Fields:
        values: The numeric embedding.
        dim: Dimension; equals len(values).
    """
    values: List[float] = field(default_factory=list)
    dim: int = 0
