"""Turn session transcripts into new or reinforced memory records."""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from ..config import EngineSettings
from ..models import CandidateMemory, ExtractionReport, MemoryRecord
from ..storage import MemoryStore
from ..utils import now_utc
from .capabilities import MemoryCapabilities

logger = logging.getLogger(__name__)


class MemoryExtractor:
    """
    Extract durable memories from a session and merge them into the store.

    The model call that proposes candidates runs without the per-key lock.
    Only the merge step holds it: each candidate either reinforces an active
    record it is similar to or becomes a new record, so the key never ends
    up with two active records above the merge threshold.
    """

    def __init__(
        self,
        memory_store: MemoryStore,
        capabilities: MemoryCapabilities,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        """
        Initialize the extractor.

        Args:
            memory_store: Store holding records and the session message log
            capabilities: Candidate generation and similarity
            settings: Engine tunables
            clock: Source of the current time
        """
        self.store = memory_store
        self.capabilities = capabilities
        self.settings = settings or EngineSettings()
        self.clock = clock

    def extract(self, session_id: str, agent_id: str, user_id: str) -> ExtractionReport:
        """
        Run one extraction over the tail of a session's transcript.

        Args:
            session_id: Session whose messages are read
            agent_id: Agent of the memory key
            user_id: Owner of the memory key

        Returns:
            ExtractionReport with created and merged counts

        Raises:
            CapabilityUnavailable: candidate generation or similarity failed;
                no record is written in that case
            Busy: the key stayed locked past the lock timeout
        """
        report = ExtractionReport()

        config = self.store.get_agent_config(agent_id)
        if not config.memory_enabled:
            logger.info("Memory disabled for agent %s, skipping extraction", agent_id)
            return report

        messages = self.store.get_messages(session_id, limit=self.settings.transcript_window)
        report.message_count = len(messages)
        if len(messages) < self.settings.min_transcript_messages:
            logger.debug(
                "Session %s has %d message(s), not enough to extract", session_id, len(messages)
            )
            return report

        existing = self.store.list_active(user_id, agent_id)
        candidates = self.capabilities.generate_candidates(
            messages,
            existing[: self.settings.max_existing_in_prompt],
            config.extraction_instructions,
        )
        if not candidates:
            logger.info("No candidates extracted from session %s", session_id)
            return report

        self.capabilities.prepare(
            [c.content for c in candidates] + [r.content for r in existing]
        )
        merged = self.merge_candidates(candidates, session_id, agent_id, user_id)
        report.created = merged.created
        report.merged = merged.merged

        logger.info(
            "Extraction for user=%s agent=%s session=%s: created=%d merged=%d",
            user_id,
            agent_id,
            session_id,
            report.created,
            report.merged,
        )
        return report

    def _merge(
        self,
        candidate: CandidateMemory,
        session_id: Optional[str],
        agent_id: str,
        user_id: str,
    ) -> bool:
        """Reinforce a similar record or insert a new one. True when reinforced."""
        now = self.clock()
        match = self.store.find_similar(
            user_id,
            agent_id,
            candidate.content,
            self.settings.merge_threshold,
            similarity=self.capabilities.similarity,
        )
        if match:
            previous = match.salience
            match.reinforce(now, self.settings.reinforcement_increment)
            self.store.put(match)
            logger.debug(
                "Reinforced memory %s: salience %.2f -> %.2f", match.id, previous, match.salience
            )
            return True

        record = MemoryRecord.create(
            user_id=user_id,
            agent_id=agent_id,
            kind=candidate.kind,
            content=candidate.content,
            salience=candidate.salience,
            source_session_id=session_id,
            timestamp=now,
        )
        self.store.put(record)
        logger.debug("Created %s memory %s", record.kind, record.id)
        return False

    def merge_candidates(
        self,
        candidates: List[CandidateMemory],
        session_id: Optional[str],
        agent_id: str,
        user_id: str,
    ) -> ExtractionReport:
        """Merge candidates into the key under its lock."""
        report = ExtractionReport()
        if not candidates:
            return report
        with self.store.locked(user_id, agent_id):
            # Records may have changed while the model was running; embed any
            # newcomers before the first write so a failure leaves nothing behind.
            active = self.store.list_active(user_id, agent_id)
            self.capabilities.prepare(
                [c.content for c in candidates] + [r.content for r in active]
            )
            for candidate in candidates:
                if self._merge(candidate, session_id, agent_id, user_id):
                    report.merged += 1
                else:
                    report.created += 1
        return report
