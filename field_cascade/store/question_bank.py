"""
Question bank: known questions with their types, matched by embedding.

File format:
    {"version": 2, "updated": "...", "questions": [{"text", "field_type", "source"}]}

Embeddings are computed once per process (first use) and shared read-only;
new entries are embedded as they are learned. A new question whose
embedding is >= dedup_threshold similar to an existing question of the
same type is dropped.
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np

from ..classify.embeddings import EmbeddingProvider, normalize_rows
from ..errors import SignalUnavailable
from .persistence import JsonFile
from .records import QuestionBankEntry, load_records, now

logger = logging.getLogger(__name__)

BANK_VERSION = 2
MIN_QUESTION_LENGTH = 15


@dataclass
class QuestionMatch:
    """Nearest known question above the threshold."""
    field_type: str
    similarity: float
    matched_question: str
    source: str


class QuestionBank:
    """
    Growing corpus of known questions.

    Usage:
        bank = QuestionBank("cache/question-bank.json", provider=LocalEmbeddings())
        bank.load()
        match = bank.find_similar(question, threshold=0.82)
    """

    def __init__(
        self,
        path: Optional[str | Path] = None,
        provider: Optional[EmbeddingProvider] = None,
        dedup_threshold: float = 0.95,
        seed_path: Optional[str | Path] = None,
    ):
        self._file = JsonFile(path, "QuestionBank")
        self.seed_path = Path(seed_path) if seed_path else None
        self.provider = provider
        self.dedup_threshold = dedup_threshold

        self.questions: list[QuestionBankEntry] = []
        self.quarantined: list[dict] = []
        self._embeddings: Optional[np.ndarray] = None
        self._dirty = False
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self.questions)

    @property
    def memory_only(self) -> bool:
        return self._file.memory_only

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def load(self):
        raw = self._file.read()
        if raw is None and self.seed_path is not None:
            raw = JsonFile(self.seed_path, "QuestionBank").read()
            if raw is not None:
                logger.info(f"[QuestionBank] Initializing from seed: {self.seed_path}")
                self._dirty = True

        items = raw.get("questions", []) if isinstance(raw, dict) else (raw or [])
        valid, self.quarantined = load_records(enumerate(items), QuestionBankEntry, "QuestionBank")
        self.questions = list(valid.values())
        self._file.write_quarantine(self.quarantined)
        self._embeddings = None
        logger.info(f"[QuestionBank] Loaded {len(self.questions)} known questions")

    def flush(self) -> bool:
        with self._lock:
            if not self._dirty:
                return True
            data = {
                "version": BANK_VERSION,
                "updated": now().isoformat(),
                "questions": [q.model_dump(mode="json") for q in self.questions],
            }
            written = self._file.write(data)
            if written:
                self._dirty = False
            return written

    # -------------------------------------------------------------------------
    # Embeddings
    # -------------------------------------------------------------------------

    def _require_provider(self) -> EmbeddingProvider:
        if self.provider is None:
            raise SignalUnavailable("Question bank has no embedding provider")
        return self.provider

    def precompute(self):
        """Embed every known question (once per process)."""
        provider = self._require_provider()
        with self._lock:
            if self._embeddings is not None:
                return
            if not self.questions:
                self._embeddings = np.zeros((0, provider.embedding_dim), dtype=np.float32)
                return
            logger.info(f"[QuestionBank] Computing embeddings for {len(self.questions)} questions...")
            self._embeddings = normalize_rows(provider.embed_texts([q.text for q in self.questions]))

    def _similarities(self, vector: np.ndarray) -> np.ndarray:
        if self._embeddings is None or len(self._embeddings) == 0:
            return np.zeros(0, dtype=np.float32)
        return self._embeddings @ normalize_rows(vector)

    # -------------------------------------------------------------------------
    # Matching and learning
    # -------------------------------------------------------------------------

    def find_similar(self, text: Optional[str], threshold: float = 0.82) -> Optional[QuestionMatch]:
        """
        Nearest known question at or above threshold.

        Raises:
            SignalUnavailable: no embedding provider or model failed to load
        """
        if not text or len(text) < MIN_QUESTION_LENGTH or not self.questions:
            return None

        self.precompute()
        scores = self._similarities(self._require_provider().embed(text))
        if scores.size == 0:
            return None

        best = int(np.argmax(scores))
        similarity = float(scores[best])
        if similarity < threshold:
            return None

        entry = self.questions[best]
        return QuestionMatch(entry.field_type, similarity, entry.text, entry.source)

    def learn(self, text: Optional[str], field_type: str, source: str = "learned") -> bool:
        """
        Add a question unless a near-duplicate of the same type exists.

        Without an embedding provider only exact-text duplicates are detected.

        Returns:
            True if the question was added
        """
        if not text or len(text) < MIN_QUESTION_LENGTH:
            return False

        if any(q.text == text and q.field_type == field_type for q in self.questions):
            return False

        vector = None
        if self.provider is not None:
            try:
                self.precompute()
                vector = normalize_rows(self.provider.embed(text))
            except SignalUnavailable as e:
                logger.warning(f"[QuestionBank] Dedup by embedding unavailable: {e}")

        with self._lock:
            if vector is not None and self._embeddings is not None:
                scores = self._similarities(vector)
                for i, score in enumerate(scores):
                    if score >= self.dedup_threshold and self.questions[i].field_type == field_type:
                        logger.debug(f'[QuestionBank] Near-duplicate of "{self.questions[i].text[:50]}" ({score:.3f})')
                        return False

            self.questions.append(QuestionBankEntry(text=text, field_type=field_type, source=source))
            if vector is not None and self._embeddings is not None:
                self._embeddings = np.vstack([self._embeddings, vector[np.newaxis, :]])
            else:
                self._embeddings = None
            self._dirty = True

        logger.info(f'[QuestionBank] +1: "{text[:60]}..." -> {field_type}')
        return True
