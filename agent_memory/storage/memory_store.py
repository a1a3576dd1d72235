"""Memory record store backed by MongoDB."""

import logging
import os
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, List, Optional, Tuple

from pymongo.errors import PyMongoError

from ..errors import StoreUnavailable
from ..models import AgentMemoryConfig, ExtractionJob, MemoryRecord, Message, Session
from ..utils import now_utc
from .locks import KeyedLock
from .mongo_client import MongoStorageClient

logger = logging.getLogger(__name__)

SimilarityFn = Callable[[str, str], float]


def _normalized(text: str) -> str:
    return " ".join(text.lower().split()).rstrip(".!")


def exact_similarity(a: str, b: str) -> float:
    """Fallback similarity: 1.0 for the same normalized text, else 0.0."""
    return 1.0 if _normalized(a) == _normalized(b) else 0.0


@contextmanager
def _guard(operation: str) -> Iterator[None]:
    """Translate persistence failures into StoreUnavailable."""
    try:
        yield
    except PyMongoError as e:
        logger.error("Store operation '%s' failed: %s", operation, e)
        raise StoreUnavailable(f"{operation} failed: {e}") from e


class MemoryStore:
    """
    Persistent storage for memory records and their supporting documents.

    Record mutations take the per-(user, agent) lock themselves; callers that
    need a read-decide-write sequence hold :meth:`locked` around it (the lock
    is re-entrant). Expired records stay in the collection for audit but are
    excluded from every read path.
    """

    def __init__(
        self,
        mongo_uri: str = "mongodb://localhost:27017",
        db_name: str = "agent_memory",
        lock_timeout: float = 10.0,
        similarity: Optional[SimilarityFn] = None,
        **kwargs,
    ):
        """
        Initialize the memory store.

        Args:
            mongo_uri: Connection string for MongoDB
            db_name: Database name
            lock_timeout: Seconds to wait for a per-key lock before raising Busy
            similarity: Default content similarity for find_similar
            mongo_client: Optional injected Mongo client (for testing)
        """
        mongo_uri = os.getenv("MONGO_URI", mongo_uri)

        if "mongo_client" in kwargs:
            self.mongo = kwargs["mongo_client"]
        else:
            with _guard("connect"):
                self.mongo = MongoStorageClient(uri=mongo_uri, db_name=db_name)

        self.lock = KeyedLock(timeout=lock_timeout)
        self.similarity = similarity or exact_similarity

    @contextmanager
    def locked(
        self, user_id: str, agent_id: str, timeout: Optional[float] = None
    ) -> Iterator[None]:
        """Serialize mutations on one (user, agent) key."""
        with self.lock.hold(user_id, agent_id, timeout):
            yield

    # --- Record contract ---

    def put(self, record: MemoryRecord) -> None:
        """Insert or replace a record."""
        with self.locked(record.user_id, record.agent_id):
            with _guard("put"):
                self.mongo.upsert_memory(record.to_dict())

    def get(
        self, memory_id: str, user_id: str, include_expired: bool = False
    ) -> Optional[MemoryRecord]:
        """Get a record by ID; records owned by someone else read as absent."""
        with _guard("get"):
            data = self.mongo.find_memory(memory_id, user_id)
        if not data:
            return None
        record = MemoryRecord.from_dict(data)
        if not include_expired and not record.is_active:
            return None
        return record

    def list_active(self, user_id: str, agent_id: str) -> List[MemoryRecord]:
        """Non-expired records, salience descending then most recently reinforced."""
        with _guard("list_active"):
            docs = self.mongo.find_memories(user_id, agent_id)
        records = [MemoryRecord.from_dict(d) for d in docs]
        records = [r for r in records if r.is_active]
        records.sort(key=lambda r: (r.salience, r.last_reinforced_at), reverse=True)
        return records

    def list_records(self, user_id: str, agent_id: str) -> List[MemoryRecord]:
        """Every record of a key including expired ones (audit view)."""
        with _guard("list_records"):
            docs = self.mongo.find_memories(user_id, agent_id, include_expired=True)
        return [MemoryRecord.from_dict(d) for d in docs]

    def delete(self, memory_id: str, user_id: str) -> bool:
        """
        Physically delete an owned record.

        Returns False, never raises, when the record is absent or belongs to
        another user; the two cases are indistinguishable to the caller.
        """
        with _guard("delete"):
            data = self.mongo.find_memory(memory_id, user_id)
        if not data:
            return False
        with self.locked(user_id, data["agent_id"]):
            with _guard("delete"):
                return self.mongo.delete_memory(memory_id, user_id)

    def find_similar(
        self,
        user_id: str,
        agent_id: str,
        content: str,
        threshold: float,
        similarity: Optional[SimilarityFn] = None,
    ) -> Optional[MemoryRecord]:
        """
        Most similar active record whose similarity to content is >= threshold.

        Args:
            user_id: Owner of the key
            agent_id: Agent of the key
            content: Statement to compare
            threshold: Minimum similarity to count as a match
            similarity: Override for the store's default similarity function
        """
        score_fn = similarity or self.similarity
        best: Optional[MemoryRecord] = None
        best_score = -1.0
        for record in self.list_active(user_id, agent_id):
            score = score_fn(content, record.content)
            if score >= threshold and score > best_score:
                best, best_score = record, score
        return best

    def mark_expired(self, record: MemoryRecord, reason: str, when: datetime) -> None:
        """Logically expire one record (a single atomic document write)."""
        record.mark_expired(when, reason)
        self.put(record)

    def purge_expired(self, user_id: str, agent_id: str, before: datetime) -> int:
        """Physically delete records of a key that expired before the cutoff."""
        with self.locked(user_id, agent_id):
            ids = [
                r.id
                for r in self.list_records(user_id, agent_id)
                if not r.is_active and r.expired_at and r.expired_at < before
            ]
            with _guard("purge_expired"):
                return self.mongo.delete_memories(ids)

    def clear(self, user_id: str, agent_id: str) -> int:
        """Physically delete every record of a key; returns how many were active."""
        with self.locked(user_id, agent_id):
            records = self.list_records(user_id, agent_id)
            with _guard("clear"):
                self.mongo.delete_memories([r.id for r in records])
        return sum(1 for r in records if r.is_active)

    def count_active(self, user_id: str, agent_id: str) -> int:
        """Number of non-expired records for a key."""
        return len(self.list_active(user_id, agent_id))

    def active_keys(self) -> List[Tuple[str, str]]:
        """Every (user_id, agent_id) key with at least one non-expired record."""
        with _guard("active_keys"):
            return self.mongo.active_keys()

    # --- Sessions and message log ---

    def add_session(self, session: Session) -> None:
        with _guard("add_session"):
            self.mongo.add_session(session.to_dict())

    def get_session(self, session_id: str) -> Optional[Session]:
        with _guard("get_session"):
            data = self.mongo.get_session(session_id)
        return Session.from_dict(data) if data else None

    def append_message(self, session_id: str, message: Message) -> None:
        with _guard("append_message"):
            self.mongo.add_message(session_id, message.to_dict())

    def get_messages(self, session_id: str, limit: Optional[int] = None) -> List[Message]:
        """Most recent messages of a session, oldest first."""
        with _guard("get_messages"):
            docs = self.mongo.get_messages(session_id, limit)
        return [Message.from_dict(d) for d in docs]

    # --- Agent configs ---

    def get_agent_config(self, agent_id: str) -> AgentMemoryConfig:
        """Config for an agent, defaults when none was saved."""
        with _guard("get_agent_config"):
            data = self.mongo.get_agent_config(agent_id)
        return AgentMemoryConfig.from_dict(data) if data else AgentMemoryConfig(agent_id)

    def save_agent_config(self, config: AgentMemoryConfig) -> None:
        config.updated_at = now_utc()
        with _guard("save_agent_config"):
            self.mongo.save_agent_config(config.to_dict())

    # --- Extraction jobs ---

    def save_job(self, job: ExtractionJob) -> None:
        with _guard("save_job"):
            self.mongo.save_job(job.to_dict())

    def get_job(self, job_id: str) -> Optional[ExtractionJob]:
        with _guard("get_job"):
            data = self.mongo.get_job(job_id)
        return ExtractionJob.from_dict(data) if data else None

    def find_jobs(
        self, session_id: str, statuses: Optional[List[str]] = None
    ) -> List[ExtractionJob]:
        with _guard("find_jobs"):
            docs = self.mongo.find_jobs(session_id, statuses)
        return [ExtractionJob.from_dict(d) for d in docs]

    def clear_all(self) -> None:
        """Clear all data from the database."""
        with _guard("clear_all"):
            self.mongo.clear()
