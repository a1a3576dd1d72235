"""Memory Engine - the operations request handlers and the scheduler call."""

import logging
from dataclasses import fields
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config import EngineSettings
from ..errors import InvalidInput, MemoryEngineError, NotAuthorized
from ..models import (
    AgentMemoryConfig,
    ExtractionJob,
    ExtractionReport,
    MemoryRecord,
    Message,
    Session,
    SessionMemory,
)
from ..models.session import MESSAGE_ROLES
from ..storage import MemoryStore, SearchIndex
from ..utils import (
    EmbeddingService,
    LLMProvider,
    get_embedding_service,
    get_llm_provider,
    now_utc,
)
from .access import MemoryAccess
from .background import ExtractionQueue
from .capabilities import MemoryCapabilities
from .extractor import MemoryExtractor
from .reflector import MemoryReflector
from .session_buffer import SessionBuffer

logger = logging.getLogger(__name__)

_CONFIG_FIELDS = {
    f.name for f in fields(AgentMemoryConfig) if f.name not in ("agent_id", "updated_at")
}


def _require(**ids: Optional[str]) -> None:
    missing = [name for name, value in ids.items() if not value or not str(value).strip()]
    if missing:
        raise InvalidInput(f"missing required identifier(s): {', '.join(missing)}")


class MemoryEngine:
    """
    Orchestrator for the agent memory lifecycle.

    Every call carries its own (user_id, agent_id); nothing is read from
    ambient request state. Synchronous operations raise MemoryEngineError
    subclasses; background extraction and the scheduled sweep log their
    failures instead.

    Usage:
        engine = MemoryEngine(llm_provider=provider, embedding_service=embeddings)
        session = engine.start_session("user-1", "agent-1")
        engine.append_message(session.session_id, "user-1", "user", "I love espresso")
        engine.extract(session.session_id, "agent-1", "user-1")
    """

    def __init__(
        self,
        llm_provider: Optional[LLMProvider] = None,
        embedding_service: Optional[EmbeddingService] = None,
        memory_store: Optional[MemoryStore] = None,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], datetime] = now_utc,
        **kwargs,
    ):
        """
        Initialize the memory engine.

        Args:
            llm_provider: LLM provider (built from settings.llm_provider if not provided)
            embedding_service: Embedding service (built from settings.embedding_service
                if not provided)
            memory_store: Prebuilt store; otherwise one is built from settings
            settings: Engine tunables (defaults to EngineSettings.from_env())
            clock: Source of the current time
            mongo_client: Optional injected Mongo client, forwarded to MemoryStore
        """
        self.settings = settings or EngineSettings.from_env()
        self.clock = clock

        if llm_provider is None:
            llm_provider = get_llm_provider(
                self.settings.llm_provider, model=self.settings.llm_model
            )
        if embedding_service is None:
            embedding_service = get_embedding_service(
                self.settings.embedding_service, model=self.settings.embedding_model
            )
        self.llm = llm_provider
        self.embeddings = embedding_service
        self.capabilities = MemoryCapabilities(self.llm, self.embeddings)

        if memory_store is None:
            memory_store = MemoryStore(
                mongo_uri=self.settings.mongo_uri,
                db_name=self.settings.mongo_db,
                lock_timeout=self.settings.lock_timeout_seconds,
                similarity=self.capabilities.similarity,
                **kwargs,
            )
        self.store = memory_store

        self.buffer = SessionBuffer(
            max_messages=self.settings.max_short_term_messages,
            max_tokens=self.settings.max_short_term_tokens,
            synopsis_chars=self.settings.synopsis_chars,
            max_sessions=self.settings.max_buffered_sessions,
        )
        self.extractor = MemoryExtractor(self.store, self.capabilities, self.settings, clock)
        self.reflector = MemoryReflector(self.store, self.capabilities, self.settings, clock)
        self.access = MemoryAccess(self.store, SearchIndex())
        self.queue = ExtractionQueue(
            self.extractor.extract,
            self.store,
            max_workers=self.settings.extraction_workers,
            dedupe_seconds=self.settings.job_dedupe_seconds,
            clock=clock,
        )

    # --- Sessions ---

    def start_session(self, user_id: str, agent_id: str) -> Session:
        """Open a session owned by user_id with agent_id."""
        _require(user_id=user_id, agent_id=agent_id)
        session = Session.create(user_id, agent_id)
        session.created_at = self.clock()
        self.store.add_session(session)
        return session

    def _owned_session(self, session_id: str, user_id: str) -> Session:
        _require(session_id=session_id, user_id=user_id)
        session = self.store.get_session(session_id)
        if session is None or session.user_id != user_id:
            raise NotAuthorized(f"user {user_id} does not own session {session_id}")
        return session

    def append_message(
        self, session_id: str, user_id: str, role: str, content: str
    ) -> Message:
        """Persist a message to the session log and push it into the buffer."""
        self._owned_session(session_id, user_id)
        if role not in MESSAGE_ROLES:
            raise InvalidInput(f"unknown message role: {role}")
        message = Message(role=role, content=content, created_at=self.clock())
        self.store.append_message(session_id, message)
        if self.buffer.has(session_id):
            self.buffer.append(session_id, message)
        else:
            self.buffer.load(session_id, self.store.get_messages(session_id))
        return message

    def session_memory(self, session_id: str, user_id: str) -> SessionMemory:
        """
        Snapshot of a session's short-term window plus the owner's memories,
        including summaries left by compaction.

        The buffer is rebuilt from the message log when this process has not
        seen the session yet.
        """
        session = self._owned_session(session_id, user_id)
        if not self.buffer.has(session_id):
            self.buffer.load(session_id, self.store.get_messages(session_id))
        memory = self.buffer.snapshot(session_id)
        memory.facts, memory.preferences, memory.summaries = self.access.session_view(
            session.user_id, session.agent_id
        )
        return memory

    def end_session(self, session_id: str, user_id: str) -> bool:
        """
        Release a session's in-memory window.

        The message log is kept, so a later append or snapshot rebuilds the
        window by replay. Returns True when a window was held.
        """
        self._owned_session(session_id, user_id)
        return self.buffer.drop(session_id)

    def _session_for_extraction(self, session_id: str, agent_id: str, user_id: str) -> Session:
        _require(session_id=session_id, agent_id=agent_id, user_id=user_id)
        session = self._owned_session(session_id, user_id)
        if session.agent_id != agent_id:
            raise InvalidInput(f"session {session_id} does not belong to agent {agent_id}")
        return session

    # --- Extraction ---

    def extract(self, session_id: str, agent_id: str, user_id: str) -> Dict[str, int]:
        """
        Extract memories from a session now.

        Returns:
            {"created": int, "merged": int}
        """
        self._session_for_extraction(session_id, agent_id, user_id)
        report: ExtractionReport = self.extractor.extract(session_id, agent_id, user_id)
        return report.to_dict()

    def submit_extraction(
        self, session_id: str, agent_id: str, user_id: str
    ) -> Optional[ExtractionJob]:
        """
        Queue extraction in the background.

        Ownership is checked before queueing; everything after is reported
        through the returned job rather than raised.
        """
        self._session_for_extraction(session_id, agent_id, user_id)
        return self.queue.submit(session_id, agent_id, user_id)

    def get_job(self, job_id: str, user_id: str) -> Optional[ExtractionJob]:
        """An extraction job, visible only to the user it ran for."""
        _require(job_id=job_id, user_id=user_id)
        job = self.store.get_job(job_id)
        if job is None or job.user_id != user_id:
            return None
        return job

    # --- Reflection ---

    def reflect(
        self,
        user_id: str,
        agent_id: str,
        caller_user_id: Optional[str] = None,
        internal: bool = False,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Run a reflection pass over a key.

        Args:
            user_id: Owner of the key
            agent_id: Agent of the key
            caller_user_id: Authenticated caller; must equal user_id
            internal: Set by the scheduler, which acts as the owner
            timeout: Seconds the caller is willing to wait

        Returns:
            {"expired": int, "compacted": int} plus flags for degraded passes
        """
        _require(user_id=user_id, agent_id=agent_id)
        if not internal and caller_user_id != user_id:
            raise NotAuthorized(f"caller may not reflect memories of user {user_id}")
        return self.reflector.reflect(user_id, agent_id, timeout=timeout).to_dict()

    def sweep(self, timeout_per_key: Optional[float] = None) -> Dict[str, Any]:
        """
        Reflect every key that still has active memories, as the scheduler.

        Per-key failures are logged and collected; they never stop the sweep.
        """
        totals: Dict[str, Any] = {"keys": 0, "expired": 0, "compacted": 0, "errors": []}
        for user_id, agent_id in self.store.active_keys():
            totals["keys"] += 1
            try:
                result = self.reflect(
                    user_id, agent_id, internal=True, timeout=timeout_per_key
                )
            except MemoryEngineError as e:
                logger.error(
                    "Scheduled reflection failed for user=%s agent=%s: %s",
                    user_id,
                    agent_id,
                    e.message,
                )
                totals["errors"].append(
                    {"user_id": user_id, "agent_id": agent_id, **e.to_dict()}
                )
                continue
            totals["expired"] += result["expired"]
            totals["compacted"] += result["compacted"]
        logger.info(
            "Sweep finished: keys=%d expired=%d compacted=%d errors=%d",
            totals["keys"],
            totals["expired"],
            totals["compacted"],
            len(totals["errors"]),
        )
        return totals

    # --- Owner access ---

    def delete_memory(self, memory_id: str, user_id: str) -> bool:
        """True when the user's record was found and deleted."""
        _require(memory_id=memory_id, user_id=user_id)
        return self.access.delete_owned(memory_id, user_id)

    def list_memories(self, user_id: str, agent_id: str) -> List[MemoryRecord]:
        _require(user_id=user_id, agent_id=agent_id)
        return self.store.list_active(user_id, agent_id)

    def clear_memories(self, user_id: str, agent_id: str) -> int:
        _require(user_id=user_id, agent_id=agent_id)
        return self.access.clear(user_id, agent_id)

    def count_memories(self, user_id: str, agent_id: str) -> int:
        _require(user_id=user_id, agent_id=agent_id)
        return self.access.count_active(user_id, agent_id)

    def search_memories(
        self, user_id: str, agent_id: str, query: str, top_k: int = 10
    ) -> List[Tuple[MemoryRecord, float]]:
        _require(user_id=user_id, agent_id=agent_id)
        return self.access.search(user_id, agent_id, query, top_k)

    def build_context(self, user_id: str, agent_id: str, max_tokens: int = 800) -> str:
        """Prompt block of the user's memories for system-prompt injection."""
        _require(user_id=user_id, agent_id=agent_id)
        return self.access.build_context(user_id, agent_id, max_tokens)

    # --- Agent configuration ---

    def get_agent_config(self, agent_id: str) -> AgentMemoryConfig:
        _require(agent_id=agent_id)
        return self.store.get_agent_config(agent_id)

    def update_agent_config(self, agent_id: str, **changes: Any) -> AgentMemoryConfig:
        """Upsert an agent's memory config; unknown fields are rejected."""
        _require(agent_id=agent_id)
        unknown = set(changes) - _CONFIG_FIELDS
        if unknown:
            raise InvalidInput(f"unknown config field(s): {', '.join(sorted(unknown))}")
        config = self.store.get_agent_config(agent_id)
        for name, value in changes.items():
            setattr(config, name, value)
        self.store.save_agent_config(config)
        return config

    def close(self) -> None:
        """Wait for queued extractions and stop the worker pool."""
        self.queue.shutdown(wait=True)
