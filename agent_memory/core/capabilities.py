"""Model-backed capabilities: candidate generation, similarity and condensation."""

import logging
from typing import Dict, List, Optional

from ..errors import CapabilityUnavailable
from ..models import CandidateMemory, MemoryRecord, Message
from ..prompts import (
    CANDIDATE_EXTRACTION_PROMPT,
    CONDENSATION_PROMPT,
    EXTRACTION_INSTRUCTIONS_BLOCK,
)
from ..utils import EmbeddingService, LLMProvider

logger = logging.getLogger(__name__)


class MemoryCapabilities:
    """
    The engine's only doorway to the language model and the embedding service.

    Every backend failure, and every response that cannot be parsed, leaves
    this class as CapabilityUnavailable. Embeddings are cached by content so
    repeated similarity checks against the same record are cheap.
    """

    def __init__(
        self,
        llm_provider: LLMProvider,
        embedding_service: EmbeddingService,
        max_cache_entries: int = 10000,
    ):
        """
        Initialize the capabilities.

        Args:
            llm_provider: LLM provider for generation and condensation
            embedding_service: Service for content similarity
            max_cache_entries: Embedding cache size before it is reset
        """
        self.llm = llm_provider
        self.embeddings = embedding_service
        self.max_cache_entries = max_cache_entries
        self._cache: Dict[str, List[float]] = {}

    def generate_candidates(
        self,
        messages: List[Message],
        existing: Optional[List[MemoryRecord]] = None,
        instructions: Optional[str] = None,
    ) -> List[CandidateMemory]:
        """
        Ask the model for candidate memories in a transcript.

        Args:
            messages: Transcript, oldest first
            existing: Active memories the model should not re-extract
            instructions: Agent-specific extraction hints

        Returns:
            Validated candidates; items without content are dropped
        """
        conversation = "\n".join(f"{m.role}: {m.content}" for m in messages)
        existing_text = (
            "\n".join(f"- [{r.kind}] {r.content}" for r in existing)
            if existing
            else "(none)"
        )
        instructions_text = (
            EXTRACTION_INSTRUCTIONS_BLOCK.format(extraction_instructions=instructions)
            if instructions
            else ""
        )
        prompt = CANDIDATE_EXTRACTION_PROMPT.format(
            existing_memories=existing_text,
            conversation=conversation,
            instructions=instructions_text,
        )

        try:
            response = self.llm.complete_json(
                [{"role": "user", "content": prompt}],
                temperature=0.0,
            )
        except Exception as e:
            raise CapabilityUnavailable(f"candidate generation failed: {e}") from e

        if not isinstance(response, dict) or "raw" in response:
            raise CapabilityUnavailable("candidate generation returned unparseable output")

        items = response.get("memories") or []
        if not isinstance(items, list):
            raise CapabilityUnavailable("candidate generation returned malformed memories")

        candidates = []
        for item in items:
            if not isinstance(item, dict):
                continue
            candidate = CandidateMemory.from_dict(item)
            if candidate:
                candidates.append(candidate)
        logger.debug("Model proposed %d candidates (%d usable)", len(items), len(candidates))
        return candidates

    def _embedding(self, text: str) -> List[float]:
        cached = self._cache.get(text)
        if cached is not None:
            return cached
        try:
            embedding = self.embeddings.embed(text)
        except Exception as e:
            raise CapabilityUnavailable(f"embedding failed: {e}") from e
        if len(self._cache) >= self.max_cache_entries:
            self._cache.clear()
        self._cache[text] = embedding
        return embedding

    def prepare(self, texts: List[str]) -> None:
        """Embed texts ahead of a locked section so comparisons there stay fast."""
        missing = list(dict.fromkeys(t for t in texts if t not in self._cache))
        if not missing:
            return
        if len(self._cache) + len(missing) > self.max_cache_entries:
            self._cache.clear()
            missing = list(dict.fromkeys(texts))
        try:
            vectors = self.embeddings.embed_batch(missing)
        except Exception as e:
            raise CapabilityUnavailable(f"embedding failed: {e}") from e
        self._cache.update(zip(missing, vectors))

    def similarity(self, content_a: str, content_b: str) -> float:
        """Content similarity in [0, 1]."""
        if content_a == content_b:
            return 1.0
        score = self.embeddings.similarity(
            self._embedding(content_a), self._embedding(content_b)
        )
        return min(1.0, max(0.0, float(score)))

    def condense(self, contents: List[str]) -> str:
        """Rewrite a group of near-duplicate statements as one statement."""
        statements = "\n".join(f"- {c}" for c in contents)
        prompt = CONDENSATION_PROMPT.format(statements=statements)
        try:
            response = self.llm.complete(
                [{"role": "user", "content": prompt}],
                temperature=0.0,
            )
        except Exception as e:
            raise CapabilityUnavailable(f"condensation failed: {e}") from e

        condensed = (response or "").strip()
        if not condensed:
            raise CapabilityUnavailable("condensation returned empty output")
        return condensed
