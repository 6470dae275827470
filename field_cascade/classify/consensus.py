"""
Consensus resolver for classification signals.

Aggregates votes from pattern matches, cache hits, embedding similarity
and zero-shot classification into a single weighted decision:

- Votes are grouped by proposed type and weighted by source reliability
- The type with the highest total weight wins
- agreement is "all" (every vote agrees), "majority" (winner has more than
  half the votes) or "split"
- Unanimous agreement among 2+ voters is boosted; split votes are discounted

A decision is accepted only when effective confidence reaches the
threshold and at least min_voters independent signals voted.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class AgreementKind(str, Enum):
    """How strongly the votes agree."""
    ALL = "all"
    MAJORITY = "majority"
    SPLIT = "split"
    NONE = "none"


class VoteSource(str, Enum):
    """Signal that produced a vote."""
    PATTERN = "pattern"
    OPTIONS = "options"
    CACHE_VERIFIED = "cache_verified"
    CACHE_UNVERIFIED = "cache_unverified"
    EMBEDDING = "embedding"
    ZERO_SHOT = "zero_shot"


@dataclass
class SourceWeights:
    """
    Reliability weight per vote source.

    Deterministic patterns are near-certain; model signals are weak voters.
    """
    pattern: float = 0.99
    options: float = 0.95
    cache_verified: float = 0.95
    cache_unverified: float = 0.85
    embedding: float = 0.65
    zero_shot: float = 0.60

    def weight_for(self, source: VoteSource) -> float:
        return getattr(self, source.value)


@dataclass
class Vote:
    """One signal's proposal."""
    field_type: str
    confidence: float
    source: VoteSource
    detail: str = ""


@dataclass
class ConsensusResult:
    """Outcome of resolving a set of votes."""
    field_type: Optional[str]
    confidence: float
    agreement: AgreementKind
    accepted: bool
    sources: list[str] = field(default_factory=list)
    votes: list[Vote] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "field_type": self.field_type,
            "confidence": round(self.confidence, 3),
            "agreement": self.agreement.value,
            "accepted": self.accepted,
            "sources": self.sources,
            "votes": [
                {"field_type": v.field_type, "confidence": round(v.confidence, 3), "source": v.source.value}
                for v in self.votes
            ],
        }


@dataclass
class _Tally:
    field_type: str
    total_weight: float = 0.0
    max_confidence: float = 0.0
    sources: list[str] = field(default_factory=list)


class ConsensusResolver:
    """
    Weighted voting over classification signals.

    Usage:
        resolver = ConsensusResolver(threshold=0.85)
        result = resolver.resolve([
            Vote("first_name", 0.91, VoteSource.EMBEDDING),
            Vote("first_name", 0.88, VoteSource.ZERO_SHOT),
        ])
        if result.accepted:
            print(result.field_type, result.agreement)
    """

    def __init__(
        self,
        weights: Optional[SourceWeights] = None,
        threshold: float = 0.85,
        agreement_boost: float = 0.02,
        min_voters: int = 2,
        max_confidence: float = 0.99,
    ):
        self.weights = weights or SourceWeights()
        self.threshold = threshold
        self.agreement_boost = agreement_boost
        self.min_voters = min_voters
        self.max_confidence = max_confidence

    def resolve(self, votes: list[Vote]) -> ConsensusResult:
        if not votes:
            return ConsensusResult(None, 0.0, AgreementKind.NONE, accepted=False)

        tallies: dict[str, _Tally] = {}
        for vote in votes:
            tally = tallies.setdefault(vote.field_type, _Tally(vote.field_type))
            tally.total_weight += self.weights.weight_for(vote.source)
            tally.max_confidence = max(tally.max_confidence, vote.confidence)
            tally.sources.append(vote.source.value)

        ranked = sorted(tallies.values(), key=lambda t: t.total_weight, reverse=True)
        winner = ranked[0]
        total_weight = sum(t.total_weight for t in ranked)

        if len(ranked) == 1:
            agreement = AgreementKind.ALL
            confidence = winner.max_confidence
            if len(winner.sources) >= 2:
                confidence = min(
                    self.max_confidence,
                    confidence + self.agreement_boost * len(winner.sources),
                )
        elif len(winner.sources) > len(votes) / 2:
            agreement = AgreementKind.MAJORITY
            confidence = winner.max_confidence
        else:
            agreement = AgreementKind.SPLIT
            confidence = winner.max_confidence * (winner.total_weight / total_weight)
            logger.info(
                "[Consensus] Split vote: "
                + ", ".join(f"{t.field_type}={'+'.join(t.sources)} ({t.total_weight:.2f})" for t in ranked)
            )

        accepted = len(votes) >= self.min_voters and confidence >= self.threshold
        return ConsensusResult(
            field_type=winner.field_type,
            confidence=confidence,
            agreement=agreement,
            accepted=accepted,
            sources=winner.sources,
            votes=list(votes),
        )
