"""Agent memory lifecycle engine: extraction, short-term buffering, reflection."""

from .config import EngineSettings
from .core import MemoryEngine
from .errors import (
    Busy,
    CapabilityUnavailable,
    InvalidInput,
    MemoryEngineError,
    NotAuthorized,
    StoreUnavailable,
)

__all__ = [
    "Busy",
    "CapabilityUnavailable",
    "EngineSettings",
    "InvalidInput",
    "MemoryEngine",
    "MemoryEngineError",
    "NotAuthorized",
    "StoreUnavailable",
]
