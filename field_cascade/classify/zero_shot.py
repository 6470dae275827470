"""
Zero-shot field classifier over natural-language type hypotheses.

Uses an NLI cross-encoder: each candidate label is turned into a
hypothesis ("This form field collects {label}") and scored against the
field's evidence text. Entailment logits are softmax-normalized across the
candidate set, so scores sum to 1 over the candidates actually offered.

Faster and cheaper than an LLM, and needs no network access once the
model is cached.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from ..errors import SignalUnavailable
from .taxonomy import (
    FieldModality,
    ZERO_SHOT_HYPOTHESIS_TEMPLATE,
    ZERO_SHOT_LABELS,
    zero_shot_labels_for,
)

logger = logging.getLogger(__name__)


@dataclass
class ZeroShotResult:
    """Ranked zero-shot output."""
    label: str
    field_type: str
    score: float
    ranking: list[tuple[str, float]] = field(default_factory=list)


class ZeroShotClassifier:
    """
    NLI zero-shot classifier.

    Usage:
        classifier = ZeroShotClassifier()
        result = classifier.classify_field(evidence, FieldModality.RADIO)
        if result and result.score >= 0.85:
            print(result.field_type)
    """

    def __init__(
        self,
        model_name: str = "cross-encoder/nli-deberta-v3-base",
        hypothesis_template: str = ZERO_SHOT_HYPOTHESIS_TEMPLATE,
        device: Optional[str] = None,
    ):
        self.model_name = model_name
        self.hypothesis_template = hypothesis_template
        self._device = device
        self._model = None
        self._entailment_index: Optional[int] = None

    def _load_model(self):
        """Lazy load the NLI cross-encoder."""
        if self._model is not None:
            return
        try:
            from sentence_transformers import CrossEncoder

            logger.info(f"[ZeroShot] Loading model: {self.model_name}")
            self._model = CrossEncoder(self.model_name, device=self._device)
        except (ImportError, OSError) as e:
            raise SignalUnavailable(f"Cannot load NLI model {self.model_name}: {e}") from e

        id2label = getattr(getattr(self._model, "config", None), "id2label", None) or {}
        self._entailment_index = next(
            (int(i) for i, name in id2label.items() if str(name).lower() == "entailment"),
            1,
        )

    def _entailment_logits(self, text: str, labels: list[str]) -> np.ndarray:
        pairs = [(text, self.hypothesis_template.format(label)) for label in labels]
        logits = np.asarray(self._model.predict(pairs, show_progress_bar=False))
        if logits.ndim == 1:
            # Single-output model: the score already is the entailment logit
            return logits
        return logits[:, self._entailment_index]

    def classify(self, text: str, candidate_labels: list[str]) -> list[tuple[str, float]]:
        """
        Score text against candidate labels.

        Returns:
            (label, score) pairs sorted best first; scores sum to 1
        """
        if not candidate_labels:
            return []
        self._load_model()

        logits = self._entailment_logits(text, candidate_labels)
        exp = np.exp(logits - logits.max())
        probs = exp / exp.sum()
        order = np.argsort(probs)[::-1]
        return [(candidate_labels[i], float(probs[i])) for i in order]

    def classify_field(
        self,
        evidence: str,
        modality: Optional[FieldModality] = None,
    ) -> Optional[ZeroShotResult]:
        """Classify evidence text into a field type, narrowed by modality."""
        labels = zero_shot_labels_for(modality)
        ranking = self.classify(evidence, labels)
        if not ranking:
            return None

        best_label, best_score = ranking[0]
        return ZeroShotResult(
            label=best_label,
            field_type=ZERO_SHOT_LABELS[best_label],
            score=best_score,
            ranking=ranking[:3],
        )
