"""
Decision tracing for the trust cascade.

Every classification carries the list of tier decisions that produced it,
so any field can be explained after the fact:

    result = cascade.classify_field(descriptor, page)
    print(result.explain())

A whole page run can be saved to JSON with PageTrace.save().
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class DecisionType(str, Enum):
    """What a tier did with the field."""
    HIT = "hit"                   # Tier resolved the field
    MISS = "miss"                 # Tier had nothing
    VOTE = "vote"                 # Signal contributed a consensus vote
    NO_SIGNAL = "no_signal"       # Signal unavailable
    VERIFIED = "verified"         # Oracle confirmed the candidate
    REJECTED = "rejected"         # Oracle rejected the candidate
    CLASSIFIED = "classified"     # Full classification returned a type
    FALLBACK = "fallback"         # Direct-answer fallback
    CORRECTED = "corrected"       # Guard re-derived the type
    BLOCKED = "blocked"           # Guard fell back to the inert type
    LEARNED = "learned"           # Association persisted
    QUEUED = "queued"             # Association sent to review
    NOT_PERSISTED = "not_persisted"  # Failed validation, used this run only
    ERROR = "error"               # Transport error (tier miss)


@dataclass
class TierDecision:
    """One step of a field's path through the cascade."""
    tier: str                    # "tier1", "tier2", "tier3", "guard", "learning"
    decision: DecisionType
    candidate: Optional[str] = None
    confidence: Optional[float] = None
    evidence: str = ""
    metadata: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "tier": self.tier,
            "decision": self.decision.value,
            "candidate": self.candidate,
            "confidence": self.confidence,
            "evidence": self.evidence,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
        }


def format_trace(
    name: str,
    field_type: str,
    confidence: float,
    source: str,
    decisions: list[TierDecision],
) -> str:
    """Human-readable explanation of a field's decision path."""
    lines = [f"{'=' * 50}"]
    lines.append(f"Field: {name}")
    lines.append(f"{'=' * 50}")
    lines.append(f"Type: {field_type}")
    lines.append(f"Confidence: {confidence:.2f}")
    lines.append(f"Source: {source}")
    lines.append("")
    lines.append("Decision trace:")
    lines.append("-" * 50)

    for i, d in enumerate(decisions, 1):
        lines.append(f"  [{i}] {d.tier} -> {d.decision.value}")
        if d.candidate is not None:
            conf = f" ({d.confidence:.2f})" if d.confidence is not None else ""
            lines.append(f"      Candidate: {d.candidate}{conf}")
        if d.evidence:
            lines.append(f"      Why: {_truncate(d.evidence)}")
        for key, val in d.metadata.items():
            lines.append(f"      {key}: {_truncate(str(val))}")

    return "\n".join(lines)


def _truncate(text: str, max_length: int = 80) -> str:
    if len(text) > max_length:
        return text[:max_length - 3] + "..."
    return text


@dataclass
class PageTrace:
    """All classifications for one page."""
    url: Optional[str] = None
    fields: list[dict[str, Any]] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)

    def add(self, name: str, result: Any):
        """Record a Classification for a field."""
        entry = {"field": name, **result.to_dict()}
        entry["trace"] = [d.to_dict() for d in result.trace]
        self.fields.append(entry)

    def summarize(self) -> dict:
        by_source: dict[str, int] = {}
        for entry in self.fields:
            by_source[entry["source"]] = by_source.get(entry["source"], 0) + 1
        unknown = sum(1 for entry in self.fields if entry["field_type"] == "unknown")
        return {
            "url": self.url,
            "total_fields": len(self.fields),
            "unknown": unknown,
            "by_source": by_source,
        }

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "started_at": self.started_at.isoformat(),
            "summary": self.summarize(),
            "fields": self.fields,
        }

    def save(self, output_dir: str | Path) -> Path:
        """Save trace to {output_dir}/page_{timestamp}_decisions.json."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        stamp = self.started_at.strftime("%Y%m%d_%H%M%S")
        output_path = output_dir / f"page_{stamp}_decisions.json"
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

        logger.info(f"Saved decision trace to {output_path}")
        return output_path
