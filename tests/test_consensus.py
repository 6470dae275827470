"""Tests for weighted consensus voting."""

import pytest

from field_cascade.classify.consensus import (
    AgreementKind,
    ConsensusResolver,
    SourceWeights,
    Vote,
    VoteSource,
)


@pytest.fixture
def resolver():
    return ConsensusResolver(threshold=0.85, agreement_boost=0.02, min_voters=2)


class TestConsensusResolver:
    """Tests for ConsensusResolver.resolve."""

    def test_no_votes(self, resolver):
        """Nothing to resolve."""
        result = resolver.resolve([])
        assert result.field_type is None
        assert result.agreement == AgreementKind.NONE
        assert result.accepted is False

    def test_single_vote_not_accepted(self, resolver):
        """One signal alone never reaches verification, however confident."""
        result = resolver.resolve([Vote("first_name", 0.99, VoteSource.OPTIONS)])
        assert result.field_type == "first_name"
        assert result.agreement == AgreementKind.ALL
        assert result.accepted is False

    def test_unanimous_votes_boosted(self, resolver):
        """Agreeing voters add the agreement boost per voter."""
        result = resolver.resolve([
            Vote("visa_sponsorship", 0.90, VoteSource.EMBEDDING),
            Vote("visa_sponsorship", 0.86, VoteSource.ZERO_SHOT),
        ])
        assert result.agreement == AgreementKind.ALL
        assert result.confidence == pytest.approx(0.94)
        assert result.accepted is True
        assert result.sources == ["embedding", "zero_shot"]

    def test_boost_capped(self, resolver):
        """Boosted confidence never exceeds the cap."""
        result = resolver.resolve([
            Vote("gender", 0.98, VoteSource.OPTIONS),
            Vote("gender", 0.97, VoteSource.EMBEDDING),
            Vote("gender", 0.96, VoteSource.ZERO_SHOT),
        ])
        assert result.confidence == pytest.approx(0.99)

    def test_disagreeing_pair_not_accepted(self, resolver):
        """A split vote is discounted by the winner's weight share."""
        result = resolver.resolve([
            Vote("city", 0.90, VoteSource.EMBEDDING),
            Vote("state", 0.90, VoteSource.ZERO_SHOT),
        ])
        assert result.agreement == AgreementKind.SPLIT
        assert result.field_type == "city"
        assert result.confidence == pytest.approx(0.90 * 0.65 / 1.25)
        assert result.accepted is False

    def test_majority(self, resolver):
        """Two of three voters agree; confidence is the winner's best vote."""
        result = resolver.resolve([
            Vote("degree", 0.90, VoteSource.EMBEDDING),
            Vote("degree", 0.88, VoteSource.ZERO_SHOT),
            Vote("school", 0.95, VoteSource.CACHE_UNVERIFIED),
        ])
        assert result.agreement == AgreementKind.MAJORITY
        assert result.field_type == "degree"
        assert result.confidence == pytest.approx(0.90)
        assert result.accepted is True

    def test_weighted_winner(self, resolver):
        """A heavier source wins a one-against-one split."""
        result = resolver.resolve([
            Vote("hispanic_latino", 0.95, VoteSource.OPTIONS),
            Vote("race_ethnicity", 0.90, VoteSource.EMBEDDING),
        ])
        assert result.field_type == "hispanic_latino"

    def test_custom_weights(self):
        """Weights come from SourceWeights."""
        weights = SourceWeights(embedding=0.10)
        assert weights.weight_for(VoteSource.EMBEDDING) == 0.10
        assert weights.weight_for(VoteSource.PATTERN) == 0.99

    def test_to_dict(self, resolver):
        """Serialized result carries votes and agreement."""
        result = resolver.resolve([
            Vote("email", 0.9, VoteSource.EMBEDDING),
            Vote("email", 0.9, VoteSource.ZERO_SHOT),
        ])
        data = result.to_dict()
        assert data["agreement"] == "all"
        assert len(data["votes"]) == 2
        assert data["votes"][0]["source"] == "embedding"
