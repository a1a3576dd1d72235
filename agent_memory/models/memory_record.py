"""MemoryRecord: durable fact, preference or summary scoped to a (user, agent) pair."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple

from ..utils.datetime_utils import format_datetime, now_utc, parse_datetime

MemoryKind = Literal["fact", "preference", "summary"]
RecordState = Literal["active", "stale", "expired"]
ExpiryReason = Literal["ttl", "compacted", "capacity"]

MEMORY_KINDS: Tuple[str, ...] = ("fact", "preference", "summary")
EXTRACTABLE_KINDS: Tuple[str, ...] = ("fact", "preference")


def clamp_salience(value: Any, default: float = 0.5) -> float:
    """Coerce a model-provided salience into [0, 1]."""
    try:
        salience = float(value)
    except (TypeError, ValueError):
        return default
    return min(1.0, max(0.0, salience))


@dataclass
class CandidateMemory:
    """A statement proposed by the text-generation capability, not yet stored."""

    kind: MemoryKind
    content: str
    salience: float = 0.5

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["CandidateMemory"]:
        """Validate one raw model item; None when it carries no usable content."""
        content = str(data.get("content") or "").strip()
        if not content:
            return None
        kind = str(data.get("kind") or data.get("type") or "fact").lower()
        if kind not in EXTRACTABLE_KINDS:
            kind = "fact"
        return cls(kind=kind, content=content, salience=clamp_salience(data.get("salience")))


@dataclass
class MemoryRecord:
    """
    One long-term memory entry.

    Ownership is the composite (user_id, agent_id) key. Records are created by
    extraction or compaction, mutated only by reinforcement, and leave every
    read path once ``state`` becomes ``expired``. ``metadata`` is an opaque
    escape hatch; nothing in the lifecycle reads it.
    """

    id: str
    user_id: str
    agent_id: str
    kind: MemoryKind
    content: str
    salience: float
    created_at: datetime
    last_reinforced_at: datetime
    source_session_id: Optional[str] = None
    state: RecordState = "active"
    expired_at: Optional[datetime] = None
    expired_reason: Optional[ExpiryReason] = None
    compacted_from: List[str] = field(default_factory=list)
    reinforcement_count: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.id:
            self.id = str(uuid.uuid4())
        self.salience = clamp_salience(self.salience)

    @property
    def key(self) -> Tuple[str, str]:
        """The (user_id, agent_id) ownership key."""
        return (self.user_id, self.agent_id)

    @property
    def is_active(self) -> bool:
        """Active and stale records are both visible; expired ones are not."""
        return self.state != "expired"

    def reinforce(self, when: datetime, increment: float = 0.1) -> None:
        """Bump salience (bounded at 1.0) and refresh the reinforcement clock."""
        self.salience = min(1.0, self.salience + increment)
        self.last_reinforced_at = when
        self.reinforcement_count += 1
        if self.state == "stale":
            self.state = "active"

    def mark_expired(self, when: datetime, reason: ExpiryReason) -> None:
        """Logically expire the record, keeping it for audit until purged."""
        self.state = "expired"
        self.expired_at = when
        self.expired_reason = reason

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "agent_id": self.agent_id,
            "kind": self.kind,
            "content": self.content,
            "salience": self.salience,
            "created_at": format_datetime(self.created_at),
            "last_reinforced_at": format_datetime(self.last_reinforced_at),
            "source_session_id": self.source_session_id,
            "state": self.state,
            "expired_at": format_datetime(self.expired_at),
            "expired_reason": self.expired_reason,
            "compacted_from": list(self.compacted_from),
            "reinforcement_count": self.reinforcement_count,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MemoryRecord":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            agent_id=data["agent_id"],
            kind=data["kind"],
            content=data["content"],
            salience=data["salience"],
            created_at=parse_datetime(data["created_at"]),
            last_reinforced_at=parse_datetime(data["last_reinforced_at"]),
            source_session_id=data.get("source_session_id"),
            state=data.get("state", "active"),
            expired_at=parse_datetime(data.get("expired_at")),
            expired_reason=data.get("expired_reason"),
            compacted_from=list(data.get("compacted_from", [])),
            reinforcement_count=data.get("reinforcement_count", 0),
            metadata=data.get("metadata", {}),
        )

    @classmethod
    def create(
        cls,
        user_id: str,
        agent_id: str,
        kind: MemoryKind,
        content: str,
        salience: float,
        source_session_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        compacted_from: Optional[List[str]] = None,
    ) -> "MemoryRecord":
        """Factory method to create a fresh active record."""
        if kind not in MEMORY_KINDS:
            raise ValueError(f"Unknown memory kind: {kind}")
        when = timestamp or now_utc()
        return cls(
            id=str(uuid.uuid4()),
            user_id=user_id,
            agent_id=agent_id,
            kind=kind,
            content=content,
            salience=salience,
            created_at=when,
            last_reinforced_at=when,
            source_session_id=source_session_id,
            compacted_from=compacted_from or [],
        )
