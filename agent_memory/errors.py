"""Error taxonomy for the memory lifecycle engine."""

from typing import Any, Dict


class MemoryEngineError(Exception):
    """Base class for every error raised by the engine."""

    code = "memory_error"
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> Dict[str, Any]:
        """Structured form for request handlers."""
        return {
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }


class NotAuthorized(MemoryEngineError):
    """The caller does not own the session or memory key."""

    code = "not_authorized"


class InvalidInput(MemoryEngineError):
    """A required identifier is missing or malformed."""

    code = "invalid_input"


class CapabilityUnavailable(MemoryEngineError):
    """The text-generation or similarity backend failed or timed out."""

    code = "capability_unavailable"
    retryable = True


class StoreUnavailable(MemoryEngineError):
    """The persistence layer failed."""

    code = "store_unavailable"


class Busy(MemoryEngineError):
    """The per-key lock could not be acquired within the bounded wait."""

    code = "busy"
    retryable = True
