# Data models for the memory lifecycle engine
from .agent_config import AgentMemoryConfig
from .memory_record import (
    EXTRACTABLE_KINDS,
    MEMORY_KINDS,
    CandidateMemory,
    MemoryKind,
    MemoryRecord,
    RecordState,
)
from .reports import ExtractionJob, ExtractionReport, ReflectionReport
from .session import Message, Session, SessionMemory

__all__ = [
    "AgentMemoryConfig",
    "CandidateMemory",
    "EXTRACTABLE_KINDS",
    "ExtractionJob",
    "ExtractionReport",
    "MEMORY_KINDS",
    "MemoryKind",
    "MemoryRecord",
    "Message",
    "RecordState",
    "ReflectionReport",
    "Session",
    "SessionMemory",
]
