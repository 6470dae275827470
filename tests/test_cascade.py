"""
End-to-end tests for the trust cascade with a scripted oracle.

Tests cover:
1. Tier 1 hits (field id, global label, exact cache) cost nothing
2. Tier 2 verification of question-bank and consensus candidates
3. Tier 3 questionnaire disambiguation of generic fields
4. Textarea guard, direct answers and oracle failures
5. Review-mode learning and auto-verify learning
"""

import pytest

from conftest import StubMatcher, StubZeroShot, dropdown, page_of, textarea
from field_cascade.classify.cascade import CascadeStats, TrustCascade
from field_cascade.classify.models import FieldDescriptor
from field_cascade.classify.observability import DecisionType
from field_cascade.classify.oracle import FakeOracle
from field_cascade.classify.taxonomy import DIRECT_ANSWER_TYPE, UNKNOWN_TYPE
from field_cascade.config import CascadeConfig, load_config
from field_cascade.profile.resolver import ProfileResolver
from field_cascade.store.records import ReviewTarget
from field_cascade.store.store import Store

AUTH_QUESTION = "Are you legally authorized to work in the United States?"
SPONSOR_QUESTION = "Will you now or in the future require sponsorship for employment visa status?"
RELATIVES_QUESTION = "Do you have any relatives currently working at this company?"
LICENSE_QUESTION = "Has any professional license you hold ever been subject to disciplinary proceedings?"
WORKDAY_URL = "https://acme.wd5.myworkdayjobs.com/en-US/careers/job/123/apply"
TALEO_URL = "https://acme.taleo.net/careersection/2/jobapply.ftl"


def decisions(result) -> list[DecisionType]:
    return [d.decision for d in result.trace]


# ─── Tier 1 ───


class TestTier1:
    """Free resolutions never reach the oracle."""

    def test_field_id_rule(self, memory_store):
        """A known stable id resolves at Tier 1 whatever the label says."""
        oracle = FakeOracle()
        cascade = TrustCascade(memory_store, oracle=oracle)
        descriptor = FieldDescriptor(id="legalName--firstName", label="Given Name")

        result = cascade.classify_field(descriptor)

        assert result.field_type == "first_name"
        assert result.source == "tier1_field_id"
        assert result.tier == 1
        assert result.verified is True
        assert oracle.call_count == 0
        assert cascade.stats.tier1_field_id == 1

    def test_global_label(self, memory_store):
        """Global label rules resolve from the cache."""
        oracle = FakeOracle()
        cascade = TrustCascade(memory_store, oracle=oracle)
        result = cascade.classify_field(FieldDescriptor(label="Email Address"))

        assert result.field_type == "email"
        assert result.source == "tier1_cache_global"
        assert oracle.call_count == 0

    def test_platform_rule(self, memory_store):
        """Platform id rules need the page URL."""
        cascade = TrustCascade(memory_store, oracle=FakeOracle())
        page = page_of(FieldDescriptor(id="cand_firstName", label="Given"), url=TALEO_URL)

        results, trace = cascade.classify_page(page)

        assert results[0].field_type == "first_name"
        assert results[0].source == "tier1_cache_platform"
        assert trace.summarize()["by_source"] == {"tier1_cache_platform": 1}

    def test_exact_cache(self, memory_store):
        """A persisted exact entry wins before anything else."""
        memory_store.exact_cache.add(LICENSE_QUESTION, "disciplinary_action", source="approved")
        oracle = FakeOracle()
        cascade = TrustCascade(memory_store, oracle=oracle)

        result = cascade.classify_field(FieldDescriptor(label="License history", section_context=LICENSE_QUESTION))

        assert result.field_type == "disciplinary_action"
        assert result.source == "exact_cache_approved"
        assert result.verified is True
        assert oracle.call_count == 0

    def test_exact_cache_by_long_label(self, memory_store):
        """Long specific labels are exact-cache keys too."""
        memory_store.exact_cache.add("Preferred pronouns for correspondence", "preferred_name")
        cascade = TrustCascade(memory_store, oracle=FakeOracle())
        result = cascade.classify_field(FieldDescriptor(label="Preferred Pronouns for Correspondence:"))
        assert result.field_type == "preferred_name"
        assert cascade.stats.tier1_exact_cache == 1


# ─── Tier 2 ───


class TestTier2:
    """One cheap verification call per field, at most."""

    def test_question_bank_verified(self, memory_store):
        """A question-bank match is verified, then lands in the exact cache."""
        memory_store.question_bank.learn(LICENSE_QUESTION, "disciplinary_action", source="seed")
        oracle = FakeOracle(verify=True)
        cascade = TrustCascade(memory_store, oracle=oracle)
        descriptor = FieldDescriptor(label="License history", section_context=LICENSE_QUESTION)

        result = cascade.classify_field(descriptor)

        assert result.field_type == "disciplinary_action"
        assert result.source == "tier2_oracle_confirmed"
        assert result.confidence == 0.92
        assert result.verified is True
        assert result.tier == 2
        verify_calls = oracle.calls_of("verify")
        assert len(verify_calls) == 1
        assert verify_calls[0].matched_question == LICENSE_QUESTION

        # Confirmed questions are free from now on
        again = cascade.classify_field(descriptor)
        assert again.source == "exact_cache_verified_by_oracle"
        assert oracle.call_count == 1

    def test_consensus_verified(self, memory_store):
        """Two agreeing signals reach the verification call."""
        oracle = FakeOracle(verify=True)
        cascade = TrustCascade(
            memory_store,
            oracle=oracle,
            matcher=StubMatcher("visa_sponsorship", 0.90),
            zero_shot=StubZeroShot("visa_sponsorship", 0.88),
        )
        descriptor = FieldDescriptor(label="Employer support for your employment status")

        result = cascade.classify_field(descriptor)

        assert result.field_type == "visa_sponsorship"
        assert result.source == "tier2_consensus_confirmed"
        assert result.confidence == pytest.approx(0.94)
        assert decisions(result).count(DecisionType.VOTE) == 2
        assert len(oracle.calls_of("verify")) == 1
        assert len(oracle.calls_of("classify")) == 0

        # Learned for the future, unverified until reviewed
        assert memory_store.exact_cache.lookup(descriptor.label).field_type == "visa_sponsorship"
        assert len(memory_store.cache.patterns) == 1
        assert cascade.stats.patterns_learned == 1

    def test_consensus_rejected_escalates(self, memory_store):
        """A "no" goes to Tier 3; nothing cheaper is retried."""
        oracle = FakeOracle(verify=False, classify="sponsorship_details")
        cascade = TrustCascade(
            memory_store,
            oracle=oracle,
            matcher=StubMatcher("visa_sponsorship", 0.90),
            zero_shot=StubZeroShot("visa_sponsorship", 0.88),
        )

        result = cascade.classify_field(FieldDescriptor(label="Employer support for your employment status"))

        assert result.field_type == "sponsorship_details"
        assert result.source == "tier3_oracle"
        assert [kind for kind, _ in oracle.calls] == ["verify", "classify"]
        assert cascade.stats.tier2_rejected == 1

    def test_weak_signals_skip_verification(self, memory_store):
        """Signals below their thresholds cast no vote."""
        oracle = FakeOracle(verify=True, classify="sponsorship_details")
        cascade = TrustCascade(
            memory_store,
            oracle=oracle,
            matcher=StubMatcher("visa_sponsorship", 0.70),
            zero_shot=StubZeroShot("visa_sponsorship", 0.50),
        )
        cascade.classify_field(FieldDescriptor(label="Employer support for your employment status"))
        assert oracle.calls_of("verify") == []

    def test_unverified_learned_entry_verified(self, memory_store):
        """A lone unverified learned entry is the verification candidate."""
        descriptor = FieldDescriptor(label="Preferred Pronouns Please")
        memory_store.cache.learn_pattern(descriptor, "preferred_name", "tier3_oracle")
        oracle = FakeOracle(verify=True)
        cascade = TrustCascade(memory_store, oracle=oracle)

        result = cascade.classify_field(descriptor)

        assert result.field_type == "preferred_name"
        assert result.source == "tier2_cache_confirmed"
        assert oracle.call_count == 1
        entry = next(iter(memory_store.cache.patterns.values()))
        assert entry.verified is True
        assert entry.verified_by == "oracle"

    def test_short_label_gets_cheaper(self, memory_store):
        """A short label too brief for the exact cache stops costing calls once confirmed."""
        config = load_config(overrides={"store": {"review_mode": False}})
        oracle = FakeOracle(verify=True, classify="preferred_name")
        cascade = TrustCascade(memory_store, oracle=oracle, config=config)
        descriptor = FieldDescriptor(label="Pronouns")

        runs = []
        for _ in range(4):
            before = oracle.call_count
            result = cascade.classify_field(descriptor)
            runs.append((result.source, oracle.call_count - before))

        assert runs == [
            ("tier3_oracle", 1),
            ("tier2_cache_confirmed", 1),
            ("tier1_cache_learned", 0),
            ("tier1_cache_learned", 0),
        ]

    def test_no_oracle_consensus(self, memory_store):
        """Without an oracle an accepted consensus resolves unverified."""
        cascade = TrustCascade(
            memory_store,
            matcher=StubMatcher("visa_sponsorship", 0.90),
            zero_shot=StubZeroShot("visa_sponsorship", 0.88),
        )
        result = cascade.classify_field(FieldDescriptor(label="Employer support for your employment status"))

        assert result.source == "tier2_consensus"
        assert result.verified is False
        assert memory_store.cache.patterns == {}


# ─── Tier 3 ───


class TestQuestionnaire:
    """Generic dropdowns disambiguated by page position."""

    def test_two_generic_dropdowns(self, memory_store):
        """Each "Select One" gets the question at its position."""
        oracle = FakeOracle(classify={"authorized to work": "work_authorization", "sponsorship": "visa_sponsorship"})
        cascade = TrustCascade(memory_store, oracle=oracle)
        section = f"{AUTH_QUESTION} | {SPONSOR_QUESTION}"
        page = page_of(dropdown("Select One", section), dropdown("Select One", section))

        results, trace = cascade.classify_page(page)

        assert [r.field_type for r in results] == ["work_authorization", "visa_sponsorship"]
        assert all(r.source == "tier3_oracle" for r in results)

        requests = oracle.calls_of("classify")
        assert [r.page_hint.position for r in requests] == [1, 2]
        assert all(r.page_hint.total == 2 for r in requests)
        assert requests[1].page_hint.questions == [AUTH_QUESTION, SPONSOR_QUESTION]
        assert requests[0].mode == "questionnaire"

        # Generic labels never become cache keys
        assert memory_store.cache.session == {}
        assert {item.store for item in memory_store.review_queue.pending()} == {ReviewTarget.QUESTION_BANK}
        assert trace.summarize()["total_fields"] == 2

    def test_position_among_same_label(self, memory_store):
        """A generic field with a different label does not shift the position or the total."""
        section = f"{AUTH_QUESTION} | {SPONSOR_QUESTION}"
        first = dropdown("Select One", section)
        other = dropdown("Please Select", section)
        third = dropdown("Select One:", section)
        page = page_of(first, other, third)

        assert page.generic_position(first) == 0
        assert page.generic_position(other) == 0
        assert page.generic_position(third) == 1
        assert len(page.generic_fields()) == 3

        hint = TrustCascade(memory_store, oracle=FakeOracle())._page_hint(third, page)
        assert (hint.position, hint.total) == (2, 2)

    def test_same_question_on_next_page(self, memory_store):
        """A question answered on one page is free on the next."""
        oracle = FakeOracle(classify={"relatives": "relative_at_company"})
        cascade = TrustCascade(memory_store, oracle=oracle)

        first, _ = cascade.classify_page(page_of(dropdown("Select One", RELATIVES_QUESTION), url=WORKDAY_URL))
        second, _ = cascade.classify_page(page_of(dropdown("Select One", RELATIVES_QUESTION), url=WORKDAY_URL))

        assert first[0].source == "tier3_oracle"
        assert second[0].field_type == "relative_at_company"
        assert second[0].source == "exact_cache_pending_review"
        assert second[0].verified is False
        assert oracle.call_count == 1

    def test_none_of_the_above(self, memory_store):
        """"none" from the oracle leaves the field unknown."""
        cascade = TrustCascade(memory_store, oracle=FakeOracle(classify="none"))
        result = cascade.classify_field(FieldDescriptor(label="Favourite ice cream flavour"))

        assert result.field_type == UNKNOWN_TYPE
        assert result.confidence == 0.0
        assert result.resolved is False
        assert cascade.stats.failed == 1


class TestDirectAnswer:
    """Out-of-taxonomy tokens fall back to a literal answer."""

    def test_direct_answer(self, memory_store):
        """The answer is carried on the result; nothing is learned."""
        oracle = FakeOracle(classify="years_managing_teams", direct_answer=" 5 ")
        profile = {"personal": {"firstName": "Ada", "lastName": "Lovelace"}}
        cascade = TrustCascade(memory_store, oracle=oracle, resolver=ProfileResolver(profile))

        result = cascade.classify_field(FieldDescriptor(label="How many years have you managed distributed teams?"))

        assert result.field_type == DIRECT_ANSWER_TYPE
        assert result.answer == "5"
        assert result.source == "tier3_direct_answer"
        assert result.confidence == 0.90
        assert DecisionType.FALLBACK in decisions(result)
        assert "Name: Ada Lovelace" in oracle.calls_of("direct_answer")[0].profile_summary
        assert memory_store.review_queue.pending() == []
        assert cascade.stats.direct_answers == 1

    def test_no_direct_answer(self, memory_store):
        """An empty direct answer is a failure."""
        cascade = TrustCascade(memory_store, oracle=FakeOracle(classify="years_managing_teams"))
        result = cascade.classify_field(FieldDescriptor(label="How many years have you managed distributed teams?"))
        assert result.field_type == UNKNOWN_TYPE


class TestOracleFailures:
    """Transport errors degrade to the next tier, never raise."""

    def test_all_calls_fail(self, memory_store):
        """Verification and classification both fail: unknown."""
        oracle = FakeOracle(fail=True)
        cascade = TrustCascade(
            memory_store,
            oracle=oracle,
            matcher=StubMatcher("visa_sponsorship", 0.90),
            zero_shot=StubZeroShot("visa_sponsorship", 0.88),
        )

        result = cascade.classify_field(FieldDescriptor(label="Employer support for your employment status"))

        assert result.field_type == UNKNOWN_TYPE
        assert decisions(result).count(DecisionType.ERROR) == 2
        assert [kind for kind, _ in oracle.calls] == ["verify", "classify"]
        assert memory_store.exact_cache.session == {}
        assert memory_store.review_queue.items == []

    def test_page_continues_after_failure(self, memory_store):
        """Later fields on the page are still classified."""
        cascade = TrustCascade(memory_store, oracle=FakeOracle(fail=True))
        results, _ = cascade.classify_page(page_of(
            FieldDescriptor(label="Favourite ice cream flavour"),
            FieldDescriptor(id="legalName--lastName", label="Surname"),
        ))
        assert [r.field_type for r in results] == [UNKNOWN_TYPE, "last_name"]


class TestOffline:
    """No oracle: standalone signals with their lower thresholds."""

    def test_standalone_guess(self, memory_store):
        """The best single signal at its standalone threshold."""
        cascade = TrustCascade(memory_store, matcher=StubMatcher("linkedin", 0.70))
        result = cascade.classify_field(FieldDescriptor(label="Professional profile link"))

        assert result.field_type == "linkedin"
        assert result.source == "offline_embedding"
        assert result.verified is False
        assert memory_store.review_queue.items == []

    def test_disabled_oracle_ignored(self, memory_store):
        """oracle.enabled=False drops an oracle that was passed in."""
        config = load_config(overrides={"oracle": {"enabled": False}})
        oracle = FakeOracle(classify="linkedin")
        cascade = TrustCascade(memory_store, oracle=oracle, config=config)

        result = cascade.classify_field(FieldDescriptor(label="Professional profile link"))

        assert result.field_type == UNKNOWN_TYPE
        assert oracle.call_count == 0


# ─── Guard and learning ───


class TestTextareaGuard:
    """A Yes/No answer on a textarea is corrected and never learned as Yes/No."""

    def test_follow_up_textarea(self, memory_store):
        """Tier 3 says work_authorization; the guard re-derives current status."""
        oracle = FakeOracle(classify={"authorized to work": "work_authorization"})
        cascade = TrustCascade(memory_store, oracle=oracle)
        descriptor = textarea("Are you authorized to work? *No")

        result = cascade.classify_field(descriptor)

        assert result.field_type == "current_visa_status"
        assert result.source == "textarea_guard_keyword"
        assert result.confidence == 0.80
        assert result.verified is False

        steps = decisions(result)
        assert DecisionType.NOT_PERSISTED in steps
        assert DecisionType.CORRECTED in steps
        assert cascade.stats.not_persisted == 1
        assert cascade.stats.guard_corrections == 1

        pending = memory_store.review_queue.pending()
        assert [(item.store, item.field_type) for item in pending] == [(ReviewTarget.CACHE, "current_visa_status")]


class TestLearningModes:
    """Review mode queues; auto-verify writes directly."""

    def test_review_mode_queues(self, memory_store):
        """Tier 3 results wait for review and are usable this run only."""
        oracle = FakeOracle(classify="preferred_name")
        cascade = TrustCascade(memory_store, oracle=oracle)
        descriptor = FieldDescriptor(label="What name should we call you?", section_context=(
            "Tell us the name you would like us to use during interviews"
        ))

        cascade.classify_field(descriptor)

        assert {item.store for item in memory_store.review_queue.pending()} == {
            ReviewTarget.QUESTION_BANK, ReviewTarget.CACHE,
        }
        assert memory_store.cache.patterns == {}
        assert len(memory_store.question_bank) == 0
        assert len(memory_store.exact_cache) == 0

        again = cascade.classify_field(descriptor)
        assert again.field_type == "preferred_name"
        assert oracle.call_count == 1
        assert cascade.stats.pending_review == 2

    def test_auto_verify_writes(self, embeddings):
        """Bootstrap mode persists straight to every store."""
        store = Store(None, auto_verify=True, provider=embeddings).load()
        cascade = TrustCascade(store, oracle=FakeOracle(classify="preferred_name"))
        descriptor = FieldDescriptor(label="What name should we call you?", section_context=(
            "Tell us the name you would like us to use during interviews"
        ))

        result = cascade.classify_field(descriptor)

        assert DecisionType.LEARNED in decisions(result)
        assert len(store.exact_cache) == 1
        assert len(store.question_bank) == 1
        entry = next(iter(store.cache.patterns.values()))
        assert entry.verified is True
        assert store.review_queue.items == []

    def test_invalid_association_not_learned(self, memory_store):
        """A text type proposed for a dropdown is used but not remembered."""
        cascade = TrustCascade(memory_store, oracle=FakeOracle(classify="city"))
        result = cascade.classify_field(dropdown("Where are you currently based?", options=("Berlin", "Paris")))

        assert result.field_type == "city"
        assert DecisionType.NOT_PERSISTED in decisions(result)
        assert memory_store.review_queue.items == []


class TestProfileAnswers:
    """Resolved types are filled from the profile."""

    def test_answer_from_profile(self, memory_store):
        """The resolver runs after the guard."""
        profile = {"personal": {"firstName": "Ada"}}
        cascade = TrustCascade(memory_store, resolver=ProfileResolver(profile))
        result = cascade.classify_field(FieldDescriptor(id="legalName--firstName", label="Given Name"))
        assert result.answer == "Ada"


class TestCascadeStats:
    """Tests for CascadeStats."""

    def test_estimated_cost(self):
        """Verify and classify calls are priced separately."""
        stats = CascadeStats(total_fields=10, tier2_calls=2, tier3_calls=1, direct_answers=1)
        cost = stats.estimated_cost(cost_per_verify=0.001, cost_per_classify=0.015)
        assert cost["verify"] == pytest.approx(0.002)
        assert cost["classify"] == pytest.approx(0.03)
        assert cost["total"] == pytest.approx(0.032)
        assert cost["saved_vs_all_tier3"] == pytest.approx(0.118)

    def test_stats_dict(self, memory_store):
        """The cascade reports costs with its configured prices."""
        cascade = TrustCascade(memory_store, config=CascadeConfig())
        cascade.classify_field(FieldDescriptor(id="legalName--firstName"))
        stats = cascade.stats_dict()
        assert stats["total_fields"] == 1
        assert stats["tier1_total"] == 1
        assert stats["estimated_cost"]["total"] == 0.0
