"""Operation reports and the extraction job log."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Literal, Optional

from ..utils.datetime_utils import format_datetime, now_utc, parse_datetime

JobStatus = Literal["pending", "processing", "completed", "failed"]
IN_FLIGHT_STATUSES = ("pending", "processing")


@dataclass
class ExtractionReport:
    """Outcome of one extraction call."""

    created: int = 0
    merged: int = 0
    message_count: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"created": self.created, "merged": self.merged}


@dataclass
class ReflectionReport:
    """
    Outcome of one reflection pass over a (user, agent) key.

    ``expired`` counts TTL expiries, capacity evictions and records folded
    into summaries; ``compacted`` counts the summary records created.
    """

    expired: int = 0
    compacted: int = 0
    stale: int = 0
    purged: int = 0
    compaction_skipped: bool = False
    timed_out: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"expired": self.expired, "compacted": self.compacted}
        if self.compaction_skipped:
            data["compaction_skipped"] = True
        if self.timed_out:
            data["timed_out"] = True
        return data


@dataclass
class ExtractionJob:
    """Background extraction bookkeeping; the failure channel for fire-and-forget runs."""

    job_id: str
    session_id: str
    agent_id: str
    user_id: str
    status: JobStatus = "pending"
    created_at: datetime = field(default_factory=now_utc)
    completed_at: Optional[datetime] = None
    message_count: int = 0
    created: int = 0
    merged: int = 0
    error: Optional[str] = None

    def __post_init__(self):
        if not self.job_id:
            self.job_id = str(uuid.uuid4())

    @property
    def in_flight(self) -> bool:
        return self.status in IN_FLIGHT_STATUSES

    def start(self) -> None:
        self.status = "processing"

    def complete(self, report: ExtractionReport) -> None:
        self.status = "completed"
        self.created = report.created
        self.merged = report.merged
        self.message_count = report.message_count
        self.completed_at = now_utc()

    def fail(self, error: str) -> None:
        self.status = "failed"
        self.error = error
        self.completed_at = now_utc()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "job_id": self.job_id,
            "session_id": self.session_id,
            "agent_id": self.agent_id,
            "user_id": self.user_id,
            "status": self.status,
            "created_at": format_datetime(self.created_at),
            "completed_at": format_datetime(self.completed_at),
            "message_count": self.message_count,
            "created": self.created,
            "merged": self.merged,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractionJob":
        """Create from dictionary."""
        return cls(
            job_id=data["job_id"],
            session_id=data["session_id"],
            agent_id=data["agent_id"],
            user_id=data["user_id"],
            status=data.get("status", "pending"),
            created_at=parse_datetime(data.get("created_at")) or now_utc(),
            completed_at=parse_datetime(data.get("completed_at")),
            message_count=data.get("message_count", 0),
            created=data.get("created", 0),
            merged=data.get("merged", 0),
            error=data.get("error"),
        )

    @classmethod
    def create(cls, session_id: str, agent_id: str, user_id: str) -> "ExtractionJob":
        """Factory method to open a pending job."""
        return cls(
            job_id=str(uuid.uuid4()),
            session_id=session_id,
            agent_id=agent_id,
            user_id=user_id,
        )
