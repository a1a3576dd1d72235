"""Per-agent memory configuration."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from ..utils.datetime_utils import format_datetime, now_utc, parse_datetime

DEFAULT_MAX_MEMORIES = 100


@dataclass
class AgentMemoryConfig:
    """
    Memory behaviour an agent owner can tune.

    ``retention_days`` replaces the engine-wide base TTL for this agent's
    records when set.
    """

    agent_id: str
    memory_enabled: bool = True
    extraction_instructions: Optional[str] = None
    max_memories_per_user: int = DEFAULT_MAX_MEMORIES
    retention_days: Optional[float] = None
    updated_at: datetime = field(default_factory=now_utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "agent_id": self.agent_id,
            "memory_enabled": self.memory_enabled,
            "extraction_instructions": self.extraction_instructions,
            "max_memories_per_user": self.max_memories_per_user,
            "retention_days": self.retention_days,
            "updated_at": format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentMemoryConfig":
        """Create from dictionary."""
        return cls(
            agent_id=data["agent_id"],
            memory_enabled=data.get("memory_enabled", True),
            extraction_instructions=data.get("extraction_instructions"),
            max_memories_per_user=data.get(
                "max_memories_per_user", DEFAULT_MAX_MEMORIES
            ),
            retention_days=data.get("retention_days"),
            updated_at=parse_datetime(data.get("updated_at")) or now_utc(),
        )
