# Utility modules
from .datetime_utils import (
    days,
    days_between,
    ensure_aware,
    format_datetime,
    now_utc,
    parse_datetime,
)
from .embeddings import (
    EmbeddingService,
    MockEmbeddings,
    OpenAIEmbeddings,
    cosine_similarity,
    get_embedding_service,
)
from .llm import (
    LLMProvider,
    MockProvider,
    OpenAIProvider,
    decode_json_reply,
    get_llm_provider,
)
from .text import estimate_tokens, tokenize, truncate_text

__all__ = [
    "LLMProvider",
    "MockProvider",
    "OpenAIProvider",
    "decode_json_reply",
    "get_llm_provider",
    "EmbeddingService",
    "MockEmbeddings",
    "OpenAIEmbeddings",
    "cosine_similarity",
    "get_embedding_service",
    "days",
    "days_between",
    "ensure_aware",
    "format_datetime",
    "now_utc",
    "parse_datetime",
    "estimate_tokens",
    "tokenize",
    "truncate_text",
]
