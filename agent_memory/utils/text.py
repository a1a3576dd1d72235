"""Small text helpers shared by the buffer, extractor and context builder."""

import math
import re
from typing import List

_WORD_RE = re.compile(r"[a-z0-9']+")


def estimate_tokens(text: str) -> int:
    """Approximate token count (4 characters per token)."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def truncate_text(text: str, max_chars: int) -> str:
    """Cut text to max_chars, marking the cut with an ellipsis."""
    text = " ".join(text.split())
    if len(text) <= max_chars:
        return text
    return text[: max(0, max_chars - 3)].rstrip() + "..."


def tokenize(text: str) -> List[str]:
    """Lowercase word tokens used for keyword search and mock embeddings."""
    return _WORD_RE.findall(text.lower())


def strip_code_fence(content: str) -> str:
    """Remove a markdown code fence that models like to wrap JSON in."""
    cleaned = content.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```(?:json)?\s*", "", cleaned)
        cleaned = re.sub(r"\s*```$", "", cleaned)
    return cleaned.strip()
