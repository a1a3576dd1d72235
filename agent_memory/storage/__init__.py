# Storage backends
from .locks import KeyedLock
from .memory_store import MemoryStore, exact_similarity
from .mongo_client import MongoStorageClient
from .search_index import SearchIndex

__all__ = [
    "KeyedLock",
    "MemoryStore",
    "MongoStorageClient",
    "SearchIndex",
    "exact_similarity",
]
