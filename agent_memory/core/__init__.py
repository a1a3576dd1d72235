# Core memory lifecycle components
from .access import MemoryAccess
from .background import ExtractionQueue
from .capabilities import MemoryCapabilities
from .engine import MemoryEngine
from .extractor import MemoryExtractor
from .reflector import MemoryReflector
from .session_buffer import SessionBuffer

__all__ = [
    "ExtractionQueue",
    "MemoryAccess",
    "MemoryCapabilities",
    "MemoryEngine",
    "MemoryExtractor",
    "MemoryReflector",
    "SessionBuffer",
]
