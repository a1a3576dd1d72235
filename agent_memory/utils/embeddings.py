"""Embedding services backing the content similarity capability."""

import hashlib
import os
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import numpy as np

from .text import tokenize


def cosine_similarity(embedding1: List[float], embedding2: List[float]) -> float:
    """Cosine similarity of two vectors, 0.0 when either is empty or zero."""
    if not embedding1 or not embedding2:
        return 0.0
    vec1 = np.asarray(embedding1, dtype=float)
    vec2 = np.asarray(embedding2, dtype=float)
    norm1 = np.linalg.norm(vec1)
    norm2 = np.linalg.norm(vec2)
    if norm1 == 0 or norm2 == 0:
        return 0.0
    return float(np.dot(vec1, vec2) / (norm1 * norm2))


class EmbeddingService(ABC):
    """Abstract base class for embedding services."""

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """Generate embedding for a single text."""
        pass

    @abstractmethod
    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for a batch of texts."""
        pass

    def similarity(self, embedding1: List[float], embedding2: List[float]) -> float:
        """Calculate cosine similarity between two embeddings."""
        return cosine_similarity(embedding1, embedding2)


class SentenceTransformerEmbeddings(EmbeddingService):
    """Embedding service using sentence-transformers."""

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        """
        Initialize the embedding service.

        Args:
            model_name: Name of the sentence-transformers model to use
        """
        self.model_name = model_name
        try:
            from sentence_transformers import SentenceTransformer

            self.model = SentenceTransformer(model_name)
            self.dim = self.model.get_sentence_embedding_dimension()
        except ImportError:
            raise ImportError(
                "sentence-transformers not installed. Install with: pip install sentence-transformers"
            )

    def embed(self, text: str) -> List[float]:
        """Generate embedding for a single text."""
        embedding = self.model.encode([text])[0]
        return embedding.tolist()

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for a batch of texts."""
        embeddings = self.model.encode(texts)
        return embeddings.tolist()


class OpenAIEmbeddings(EmbeddingService):
    """
    Embeddings from the OpenAI API or a compatible endpoint.

    Batches are split into requests of at most ``batch_size`` inputs and the
    vectors are returned in input order.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "text-embedding-3-small",
        base_url: Optional[str] = None,
        batch_size: int = 100,
        client: Any = None,
    ):
        self.model = model
        self.batch_size = batch_size
        if client is not None:
            self.client = client
            return

        api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OpenAI API key not provided and OPENAI_API_KEY not set")

        from openai import OpenAI

        self.client = OpenAI(
            api_key=api_key, base_url=base_url or os.environ.get("OPENAI_BASE_URL")
        )

    def embed(self, text: str) -> List[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        vectors: List[List[float]] = []
        for start in range(0, len(texts), self.batch_size):
            response = self.client.embeddings.create(
                model=self.model, input=texts[start : start + self.batch_size]
            )
            ordered = sorted(response.data, key=lambda item: item.index)
            vectors.extend(item.embedding for item in ordered)
        return vectors


class MockEmbeddings(EmbeddingService):
    """
    Deterministic bag-of-words embeddings for testing without API calls.

    Each non-stopword token is hashed into one dimension, so statements that
    share their content words land on (nearly) the same vector.
    """

    STOPWORDS = {
        "a", "an", "the", "is", "are", "was", "to", "of", "and", "or",
        "in", "on", "at", "for", "with", "very", "really",
    }

    def __init__(self, dim: int = 384):
        """Initialize mock embeddings with given dimension."""
        self.dim = dim

    def _bucket(self, token: str) -> int:
        return int(hashlib.md5(token.encode()).hexdigest(), 16) % self.dim

    def embed(self, text: str) -> List[float]:
        """Return a mock embedding based on the content words of the text."""
        embedding = np.zeros(self.dim)
        for token in tokenize(text):
            if token in self.STOPWORDS:
                continue
            embedding[self._bucket(token)] += 1.0
        return embedding.tolist()

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Return mock embeddings for a batch of texts."""
        return [self.embed(text) for text in texts]


def get_embedding_service(
    service: str = "sentence-transformers", model: Optional[str] = None, **kwargs
) -> EmbeddingService:
    """
    Build an embedding backend by name.

    Args:
        service: "sentence-transformers", "openai", or "mock"
        model: Model name; empty means the backend's default, ignored by the mock
        **kwargs: Passed to the service constructor

    Returns:
        EmbeddingService instance
    """
    if service == "sentence-transformers":
        if model:
            kwargs["model_name"] = model
        return SentenceTransformerEmbeddings(**kwargs)
    if service == "openai":
        if model:
            kwargs["model"] = model
        return OpenAIEmbeddings(**kwargs)
    if service == "mock":
        return MockEmbeddings(**kwargs)
    raise ValueError(f"Unknown embedding service: {service}")
