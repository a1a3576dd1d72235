# Prompt templates for LLM operations
from .candidate_extraction import (
    CANDIDATE_EXTRACTION_PROMPT,
    EXTRACTION_INSTRUCTIONS_BLOCK,
)
from .condensation import CONDENSATION_PROMPT

__all__ = [
    "CANDIDATE_EXTRACTION_PROMPT",
    "CONDENSATION_PROMPT",
    "EXTRACTION_INSTRUCTIONS_BLOCK",
]
