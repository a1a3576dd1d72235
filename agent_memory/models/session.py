"""Session, message log entries and the derived SessionMemory snapshot."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from ..utils.datetime_utils import format_datetime, now_utc, parse_datetime
from ..utils.text import estimate_tokens
from .memory_record import MemoryRecord

MessageRole = Literal["user", "assistant", "system"]
MESSAGE_ROLES = ("user", "assistant", "system")


@dataclass
class Message:
    """One entry of a session's message log."""

    role: MessageRole
    content: str
    id: str = ""
    created_at: datetime = field(default_factory=now_utc)
    token_count: Optional[int] = None

    def __post_init__(self):
        if not self.id:
            self.id = str(uuid.uuid4())
        if self.token_count is None:
            self.token_count = estimate_tokens(self.content)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "created_at": format_datetime(self.created_at),
            "token_count": self.token_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        """Create from dictionary."""
        return cls(
            id=data.get("id", ""),
            role=data["role"],
            content=data["content"],
            created_at=parse_datetime(data.get("created_at")) or now_utc(),
            token_count=data.get("token_count"),
        )


@dataclass
class Session:
    """Ownership record of a conversation session."""

    session_id: str
    user_id: str
    agent_id: str
    created_at: datetime = field(default_factory=now_utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "agent_id": self.agent_id,
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            session_id=data["session_id"],
            user_id=data["user_id"],
            agent_id=data["agent_id"],
            created_at=parse_datetime(data.get("created_at")) or now_utc(),
        )

    @classmethod
    def create(cls, user_id: str, agent_id: str) -> "Session":
        """Factory method to open a new session."""
        return cls(session_id=str(uuid.uuid4()), user_id=user_id, agent_id=agent_id)


@dataclass
class SessionMemory:
    """
    Memory attached to a session at load time.

    ``short_term`` and ``summary`` come from the session buffer; ``facts``,
    ``preferences`` and ``summaries`` are read-through projections of the
    owner's active records. ``summaries`` holds what reflection condensed out
    of earlier facts and preferences.
    Never persisted as a source of truth.
    """

    short_term: List[Message] = field(default_factory=list)
    summary: str = ""
    facts: List[MemoryRecord] = field(default_factory=list)
    preferences: List[MemoryRecord] = field(default_factory=list)
    summaries: List[MemoryRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "short_term": [m.to_dict() for m in self.short_term],
            "summary": self.summary,
            "facts": [r.to_dict() for r in self.facts],
            "preferences": [r.to_dict() for r in self.preferences],
            "summaries": [r.to_dict() for r in self.summaries],
        }
