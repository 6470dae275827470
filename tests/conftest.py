"""
Shared fixtures: offline embedding provider, stub signals and stores.

Nothing here touches the network or downloads a model.
"""

import hashlib
import re

import numpy as np
import pytest

from field_cascade.classify.embeddings import EmbeddingMatch, EmbeddingProvider
from field_cascade.classify.models import FieldDescriptor, PageContext
from field_cascade.classify.taxonomy import FieldModality
from field_cascade.classify.zero_shot import ZeroShotResult
from field_cascade.config import CascadeConfig
from field_cascade.store.store import Store


class HashingEmbeddings(EmbeddingProvider):
    """Bag-of-words vectors: texts sharing tokens get high cosine similarity."""

    def __init__(self, dim: int = 256):
        self.dim = dim

    @property
    def embedding_dim(self) -> int:
        return self.dim

    def embed_texts(self, texts: list[str]) -> np.ndarray:
        rows = np.zeros((len(texts), self.dim), dtype=np.float32)
        for i, text in enumerate(texts):
            for token in re.findall(r"[a-z0-9]+", text.lower()):
                index = int(hashlib.md5(token.encode()).hexdigest(), 16) % self.dim
                rows[i, index] += 1.0
        norms = np.linalg.norm(rows, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        return rows / norms


class StubMatcher:
    """Centroid matcher that always answers the same type."""

    def __init__(self, field_type: str, similarity: float):
        self.match = EmbeddingMatch(field_type, similarity)
        self.calls = 0

    def best_centroid(self, text: str):
        self.calls += 1
        return self.match


class StubZeroShot:
    """Zero-shot classifier that always answers the same type."""

    def __init__(self, field_type: str, score: float):
        self.result = ZeroShotResult(label=f"stub {field_type}", field_type=field_type, score=score)

    def classify_field(self, evidence, modality=None):
        return self.result


@pytest.fixture
def embeddings():
    return HashingEmbeddings()


@pytest.fixture
def memory_store(embeddings):
    """Store with no files behind it."""
    return Store(None, provider=embeddings).load()


@pytest.fixture
def disk_store(tmp_path, embeddings):
    return Store(tmp_path / "cache", provider=embeddings).load()


@pytest.fixture
def config():
    return CascadeConfig()


def textarea(label: str, section: str = "", field_id: str = None) -> FieldDescriptor:
    return FieldDescriptor(id=field_id, label=label, modality=FieldModality.TEXTAREA, section_context=section)


def dropdown(label: str, section: str = "", options=("Yes", "No"), field_id: str = None) -> FieldDescriptor:
    return FieldDescriptor(
        id=field_id,
        label=label,
        modality=FieldModality.DROPDOWN,
        options=tuple(options),
        section_context=section,
    )


def page_of(*fields: FieldDescriptor, url: str = None) -> PageContext:
    return PageContext(url=url, fields=list(fields))
