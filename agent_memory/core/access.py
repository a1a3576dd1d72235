"""Owner-scoped reads and deletes over the memory store."""

import logging
from typing import Dict, List, Optional, Tuple

from ..models import MemoryRecord
from ..storage import MemoryStore, SearchIndex
from ..utils import estimate_tokens

logger = logging.getLogger(__name__)

CONTEXT_HEADER = "## What you remember about this user"

_KIND_LABELS = {"preference": "Preference", "fact": "Fact", "summary": "Summary"}


class MemoryAccess:
    """
    Read and delete operations that are always scoped to the owning user.

    Used to hydrate SessionMemory at session load and to serve user-initiated
    deletion. Nothing here can reveal whether another user's record exists.
    """

    def __init__(self, memory_store: MemoryStore, search_index: Optional[SearchIndex] = None):
        self.store = memory_store
        self.index = search_index or SearchIndex()

    def list_for_session(
        self, user_id: str, agent_id: str
    ) -> Tuple[List[MemoryRecord], List[MemoryRecord]]:
        """Active facts and preferences of a key, in store order."""
        facts, preferences, _ = self.session_view(user_id, agent_id)
        return facts, preferences

    def session_view(
        self, user_id: str, agent_id: str
    ) -> Tuple[List[MemoryRecord], List[MemoryRecord], List[MemoryRecord]]:
        """Facts, preferences and summaries of a key from one store read."""
        by_kind: Dict[str, List[MemoryRecord]] = {"fact": [], "preference": [], "summary": []}
        for record in self.store.list_active(user_id, agent_id):
            by_kind.setdefault(record.kind, []).append(record)
        return by_kind["fact"], by_kind["preference"], by_kind["summary"]

    def delete_owned(self, memory_id: str, user_id: str) -> bool:
        """Delete a record the user owns; False when absent or not theirs."""
        deleted = self.store.delete(memory_id, user_id)
        if deleted:
            logger.info("User %s deleted memory %s", user_id, memory_id)
        return deleted

    def clear(self, user_id: str, agent_id: str) -> int:
        """Delete every record of the user's key; returns the active count removed."""
        removed = self.store.clear(user_id, agent_id)
        logger.info("Cleared %d memories for user=%s agent=%s", removed, user_id, agent_id)
        return removed

    def count_active(self, user_id: str, agent_id: str) -> int:
        return self.store.count_active(user_id, agent_id)

    def search(
        self, user_id: str, agent_id: str, query: str, top_k: int = 10
    ) -> List[Tuple[MemoryRecord, float]]:
        """Keyword-ranked active records of a key."""
        return self.index.search(self.store.list_active(user_id, agent_id), query, top_k)

    def build_context(self, user_id: str, agent_id: str, max_tokens: int = 800) -> str:
        """
        Render active memories as a prompt block within a token budget.

        Preferences and facts come first by salience, summaries last. Lines
        that would overflow the budget are dropped; an empty string means
        there is nothing to remember.
        """
        records = self.store.list_active(user_id, agent_id)
        if not records:
            return ""

        ordered = [r for r in records if r.kind != "summary"] + [
            r for r in records if r.kind == "summary"
        ]
        lines = [CONTEXT_HEADER]
        used = estimate_tokens(CONTEXT_HEADER)
        for record in ordered:
            line = f"- {_KIND_LABELS.get(record.kind, record.kind)}: {record.content}"
            cost = estimate_tokens(line)
            if used + cost > max_tokens:
                continue
            lines.append(line)
            used += cost

        if len(lines) == 1:
            return ""
        return "\n".join(lines)
