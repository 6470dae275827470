"""
Embedding similarity signal.

Embeds a field's evidence text and compares it (dot product of
L2-normalized vectors) against:

1. Per-type centroids: the average of several canonical phrasings per type
2. The question bank: nearest previously seen question (see store.question_bank)

Providers:
- Local (sentence-transformers): BAAI/bge-base-en-v1.5 by default
- OpenAI: text-embedding-3-small

Usage:
    matcher = EmbeddingMatcher(create_embedding_provider("local"))
    match = matcher.best_centroid("This form field asks for: Given Name")
    if match and match.similarity >= 0.85:
        print(match.field_type)
"""

import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..errors import SignalUnavailable
from .taxonomy import CENTROID_PHRASES

logger = logging.getLogger(__name__)


# =============================================================================
# EMBEDDING PROVIDERS (Abstract Base)
# =============================================================================

class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    @abstractmethod
    def embed_texts(self, texts: list[str]) -> np.ndarray:
        """
        Embed a list of texts.

        Args:
            texts: List of text strings to embed

        Returns:
            numpy array of shape (len(texts), embedding_dim), rows L2-normalized
        """
        pass

    @property
    @abstractmethod
    def embedding_dim(self) -> int:
        """Return the embedding dimension."""
        pass

    def embed(self, text: str) -> np.ndarray:
        """Embed a single text."""
        return self.embed_texts([text])[0]

    @staticmethod
    def similarity(a: np.ndarray, b: np.ndarray) -> float:
        """Dot product of the normalized vectors, in [-1, 1]."""
        return float(np.dot(normalize_rows(a), normalize_rows(b)))


def normalize_rows(matrix: np.ndarray) -> np.ndarray:
    """L2-normalize each row, leaving zero rows untouched."""
    matrix = np.asarray(matrix, dtype=np.float32)
    if matrix.ndim == 1:
        norm = np.linalg.norm(matrix)
        return matrix / norm if norm > 0 else matrix
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


# =============================================================================
# OPENAI EMBEDDINGS
# =============================================================================

class OpenAIEmbeddings(EmbeddingProvider):
    """OpenAI embedding provider."""

    MODEL_DIMS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        batch_size: int = 100,
        delay_between_calls: float = 0.0,
    ):
        self.model = model
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.batch_size = batch_size
        self.delay_between_calls = delay_between_calls
        self._client = None
        self._last_call_time = 0.0

        if not self.api_key:
            raise SignalUnavailable("OpenAI API key required. Set OPENAI_API_KEY env var.")

    @property
    def client(self):
        """Lazy-load OpenAI client."""
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(api_key=self.api_key)
        return self._client

    @property
    def embedding_dim(self) -> int:
        return self.MODEL_DIMS.get(self.model, 1536)

    def _rate_limit(self):
        if self.delay_between_calls > 0:
            elapsed = time.time() - self._last_call_time
            if elapsed < self.delay_between_calls:
                time.sleep(self.delay_between_calls - elapsed)
        self._last_call_time = time.time()

    def embed_texts(self, texts: list[str]) -> np.ndarray:
        """Embed texts in batches."""
        all_embeddings = []

        for i in range(0, len(texts), self.batch_size):
            batch = texts[i:i + self.batch_size]
            self._rate_limit()
            try:
                response = self.client.embeddings.create(model=self.model, input=batch)
            except Exception as e:
                raise SignalUnavailable(f"OpenAI embedding call failed: {e}") from e
            all_embeddings.extend(item.embedding for item in response.data)

            logger.debug(f"Embedded batch {i // self.batch_size + 1}, {len(batch)} texts")

        return normalize_rows(np.array(all_embeddings))


# =============================================================================
# LOCAL EMBEDDINGS (sentence-transformers)
# =============================================================================

class LocalEmbeddings(EmbeddingProvider):
    """Local embedding provider using sentence-transformers."""

    MODEL_DIMS = {
        "BAAI/bge-base-en-v1.5": 768,
        "BAAI/bge-m3": 1024,
        "BAAI/bge-large-en-v1.5": 1024,
        "sentence-transformers/all-MiniLM-L6-v2": 384,
    }

    def __init__(
        self,
        model: str = "BAAI/bge-base-en-v1.5",
        batch_size: int = 32,
        device: Optional[str] = None,
    ):
        self.model_name = model
        self.batch_size = batch_size
        self._model = None
        self._device = device

    @property
    def model(self):
        """Lazy-load sentence-transformers model."""
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
                self._model = SentenceTransformer(self.model_name, device=self._device)
            except (ImportError, OSError) as e:
                raise SignalUnavailable(f"Cannot load embedding model {self.model_name}: {e}") from e
            logger.info(f"[Embeddings] Loaded local model: {self.model_name}")
        return self._model

    @property
    def embedding_dim(self) -> int:
        return self.MODEL_DIMS.get(self.model_name, 768)

    def embed_texts(self, texts: list[str]) -> np.ndarray:
        embeddings = self.model.encode(
            texts,
            batch_size=self.batch_size,
            show_progress_bar=len(texts) > 100,
            normalize_embeddings=True,
        )
        return np.asarray(embeddings, dtype=np.float32)


def create_embedding_provider(
    provider: str = "local",
    model: Optional[str] = None,
    api_key: Optional[str] = None,
) -> EmbeddingProvider:
    """
    Factory for embedding providers.

    Args:
        provider: "local" or "openai"
        model: Model name (defaults to best for provider)
        api_key: API key (openai only; falls back to env var)
    """
    if provider == "local":
        return LocalEmbeddings(model=model or "BAAI/bge-base-en-v1.5")
    elif provider == "openai":
        return OpenAIEmbeddings(model=model or "text-embedding-3-small", api_key=api_key)
    else:
        raise ValueError(f"Unknown embedding provider: {provider}")


# =============================================================================
# CENTROID MATCHER
# =============================================================================

@dataclass
class EmbeddingMatch:
    """Best type match for a piece of text."""
    field_type: str
    similarity: float
    matched_text: Optional[str] = None


class EmbeddingMatcher:
    """
    Compares evidence text against per-type centroid embeddings.

    Centroids are computed once, on first use, and shared read-only.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        phrases: Optional[dict[str, list[str]]] = None,
    ):
        self.provider = provider
        self.phrases = phrases or CENTROID_PHRASES
        self._types: list[str] = []
        self._centroids: Optional[np.ndarray] = None

    def _ensure_centroids(self):
        if self._centroids is not None:
            return

        rows = []
        for field_type, phrases in self.phrases.items():
            vectors = self.provider.embed_texts(list(phrases))
            rows.append(normalize_rows(vectors.mean(axis=0)))
            self._types.append(field_type)
        self._centroids = np.vstack(rows)
        logger.info(f"[Embeddings] Pre-computed {len(self._types)} type centroids")

    def embed(self, text: str) -> np.ndarray:
        return self.provider.embed(text)

    def rank(self, text: str, top_k: int = 3) -> list[EmbeddingMatch]:
        """Top-k centroid matches, best first."""
        self._ensure_centroids()
        query = normalize_rows(self.embed(text))
        scores = self._centroids @ query
        order = np.argsort(scores)[::-1][:top_k]
        return [EmbeddingMatch(self._types[i], float(scores[i])) for i in order]

    def best_centroid(self, text: str) -> Optional[EmbeddingMatch]:
        ranked = self.rank(text, top_k=1)
        return ranked[0] if ranked else None
