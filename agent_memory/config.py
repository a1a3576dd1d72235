"""Engine settings with environment overrides."""

import os
from dataclasses import dataclass, fields
from typing import Optional


def _env_value(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return cast(raw)


@dataclass
class EngineSettings:
    """
    Tunables for the memory lifecycle engine.

    Every field can be overridden with an ``AGENT_MEMORY_<FIELD>`` environment
    variable through :meth:`from_env`; ``MONGO_URI`` is honoured as well.

    Backends default to the mocks. ``from_env`` switches both to OpenAI when
    ``OPENAI_API_KEY`` is set and no backend variable names another choice.
    """

    # Merge / reinforcement
    merge_threshold: float = 0.85
    reinforcement_increment: float = 0.1

    # Expiry
    base_ttl_days: float = 30.0
    summary_ttl_multiplier: float = 3.0
    stale_fraction: float = 0.5
    purge_after_days: Optional[float] = None

    # Locking
    lock_timeout_seconds: float = 10.0

    # Session buffer
    max_short_term_messages: int = 20
    max_short_term_tokens: int = 4000
    synopsis_chars: int = 100
    max_buffered_sessions: int = 1000

    # Extraction
    transcript_window: int = 20
    min_transcript_messages: int = 2
    max_existing_in_prompt: int = 50
    extraction_workers: int = 4
    job_dedupe_seconds: float = 120.0

    # Model backends ("mock", "openai", or "sentence-transformers" for embeddings)
    llm_provider: str = "mock"
    llm_model: str = "gpt-4o-mini"
    embedding_service: str = "mock"
    embedding_model: str = ""

    # Persistence
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "agent_memory"

    @classmethod
    def from_env(cls, **overrides) -> "EngineSettings":
        """Build settings from defaults, then environment, then explicit overrides."""
        values = {}
        for f in fields(cls):
            default = f.default
            if f.name == "purge_after_days":
                cast = float
            elif isinstance(default, int):
                cast = int
            elif isinstance(default, float):
                cast = float
            else:
                cast = str
            values[f.name] = _env_value(
                f"AGENT_MEMORY_{f.name.upper()}", default, cast
            )

        values["mongo_uri"] = os.getenv("MONGO_URI", values["mongo_uri"])
        if os.getenv("OPENAI_API_KEY"):
            if not os.getenv("AGENT_MEMORY_LLM_PROVIDER"):
                values["llm_provider"] = "openai"
            if not os.getenv("AGENT_MEMORY_EMBEDDING_SERVICE"):
                values["embedding_service"] = "openai"
        values.update(overrides)
        return cls(**values)
