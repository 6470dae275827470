"""
Trust cascade: classify a form field at the lowest cost that is still safe.

    Tier 1 (free)       exact-match cache -> field-id rules -> hierarchical cache
    Tier 2 (~$0.001)    question bank or signal consensus -> one verify call
    Tier 3 (~$0.015)    full classification (questionnaire mode for generic fields)
    Failure             unknown, confidence 0 ("do not fill")

Escalation only moves forward: once a tier has run for a field, no cheaper
tier is tried again for that field. Every accepted result passes through
the TypeGuard, and every association learned along the way is validated
and then queued for review (or written directly in auto-verify mode).

Usage:
    store = Store("cache").load()
    cascade = TrustCascade(store, oracle=LLMOracle(...), matcher=EmbeddingMatcher(provider))
    results, trace = cascade.classify_page(page)
    store.flush()
"""

import logging
from dataclasses import asdict, dataclass
from typing import Optional

from ..config import CascadeConfig
from ..errors import AmbiguousTaxonomyResponse, OracleTransportError, SignalUnavailable, ValidationRejected
from ..profile.resolver import ProfileResolver, build_profile_summary
from ..store.hierarchical_cache import CacheHit
from ..store.question_bank import QuestionMatch
from ..store.records import ReviewQueueItem, ReviewTarget
from ..store.store import Store
from .consensus import ConsensusResolver, ConsensusResult, Vote, VoteSource
from .context import build_evidence_text, build_field_details, extract_question_text, section_parts
from .embeddings import EmbeddingMatcher
from .guard import TypeGuard, validate_before_learning
from .models import Classification, FieldDescriptor, PageContext
from .observability import DecisionType, PageTrace, TierDecision
from .oracle import ClassifyRequest, DirectAnswerRequest, Oracle, PageHint
from .patterns import FIELD_ID_RULES, match_options
from .taxonomy import DIRECT_ANSWER_TYPE, FIELD_TYPES
from .zero_shot import ZeroShotClassifier

logger = logging.getLogger(__name__)

MIN_LABEL_KEY_LENGTH = 15
MIN_SECTION_FOR_QUESTIONNAIRE = 20

TIER1_CONFIDENCE = 0.95
TIER2_BANK_CONFIDENCE = 0.92
TIER3_CONFIDENCE = 0.95
DIRECT_ANSWER_CONFIDENCE = 0.90


@dataclass
class CascadeStats:
    """Per-run counters."""
    total_fields: int = 0
    tier1_field_id: int = 0
    tier1_exact_cache: int = 0
    tier1_cache: int = 0
    tier2_verified: int = 0
    tier2_rejected: int = 0
    tier2_calls: int = 0
    tier2_unverified: int = 0
    tier3_calls: int = 0
    direct_answers: int = 0
    offline_guesses: int = 0
    guard_corrections: int = 0
    patterns_learned: int = 0
    pending_review: int = 0
    not_persisted: int = 0
    failed: int = 0

    @property
    def tier1_total(self) -> int:
        return self.tier1_field_id + self.tier1_exact_cache + self.tier1_cache

    def estimated_cost(self, cost_per_verify: float = 0.001, cost_per_classify: float = 0.015) -> dict:
        """Estimated spend, and what classifying every field at Tier 3 would have cost."""
        verify = self.tier2_calls * cost_per_verify
        classify = (self.tier3_calls + self.direct_answers) * cost_per_classify
        all_tier3 = self.total_fields * cost_per_classify
        return {
            "verify": round(verify, 4),
            "classify": round(classify, 4),
            "total": round(verify + classify, 4),
            "saved_vs_all_tier3": round(all_tier3 - verify - classify, 4),
        }

    def to_dict(self, cost_per_verify: float = 0.001, cost_per_classify: float = 0.015) -> dict:
        return {
            **asdict(self),
            "tier1_total": self.tier1_total,
            "estimated_cost": self.estimated_cost(cost_per_verify, cost_per_classify),
        }


class TrustCascade:
    """
    Tiered field classifier over an explicit Store.

    Signals (matcher, zero_shot) and the oracle are optional. A missing
    signal simply casts no vote. Without an oracle, an accepted consensus
    resolves unverified at Tier 2 and Tier 3 falls back to the best
    standalone signal.
    """

    def __init__(
        self,
        store: Store,
        oracle: Optional[Oracle] = None,
        config: Optional[CascadeConfig] = None,
        matcher: Optional[EmbeddingMatcher] = None,
        zero_shot: Optional[ZeroShotClassifier] = None,
        resolver: Optional[ProfileResolver] = None,
    ):
        self.config = config or CascadeConfig()
        self.store = store
        self.oracle = oracle if self.config.oracle.enabled else None
        self.matcher = matcher
        self.zero_shot = zero_shot
        self.resolver = resolver
        self.review_mode = self.config.store.review_mode

        consensus = self.config.consensus
        self.consensus = ConsensusResolver(
            weights=consensus.weights,
            threshold=consensus.threshold,
            agreement_boost=consensus.agreement_boost,
            min_voters=consensus.min_voters,
        )
        self.guard = TypeGuard(self.oracle, use_oracle=self.config.oracle.use_for_guard)
        self.profile_summary = build_profile_summary(resolver.profile if resolver else None)
        self.stats = CascadeStats()

    # =========================================================================
    # Entry points
    # =========================================================================

    def classify_page(self, page: PageContext) -> tuple[list[Classification], PageTrace]:
        """Classify every field on a page, in page order."""
        self.store.cache.set_context(page.url)
        trace = PageTrace(url=page.url)
        results = []
        for i, descriptor in enumerate(page.fields, 1):
            logger.info(f'[{i}/{len(page.fields)}] "{descriptor.display_name[:60]}"')
            result = self.classify_field(descriptor, page)
            trace.add(descriptor.display_name, result)
            results.append(result)
        return results, trace

    def classify_field(self, descriptor: FieldDescriptor, page: Optional[PageContext] = None) -> Classification:
        """
        Classify one field.

        Never raises for oracle or signal failures; an unresolvable field
        comes back as unknown with confidence 0.
        """
        self.stats.total_fields += 1
        trace: list[TierDecision] = []
        question = extract_question_text(descriptor, page)

        result, unverified_hit = self._tier1(descriptor, question, trace)
        if result is None:
            result = self._tier2(descriptor, page, question, unverified_hit, trace)
        if result is None:
            result = self._tier3(descriptor, page, question, trace)

        if not result.resolved:
            self.stats.failed += 1
            logger.info(f'[Cascade] UNKNOWN: "{descriptor.display_name[:60]}"')
            return result

        guarded = self.guard.apply(descriptor, result)
        if guarded.corrected:
            self.stats.guard_corrections += 1
            result = guarded.classification
            if not guarded.blocked:
                self._learn(descriptor, question, result.field_type, "textarea_guard", result.trace)

        if self.resolver is not None and result.field_type != DIRECT_ANSWER_TYPE:
            result.answer = self.resolver.resolve(result.field_type, descriptor)
        return result

    # =========================================================================
    # Tier 1: free
    # =========================================================================

    def _tier1(
        self,
        descriptor: FieldDescriptor,
        question: Optional[str],
        trace: list[TierDecision],
    ) -> tuple[Optional[Classification], Optional[CacheHit]]:
        """
        Returns:
            (resolved classification or None, unverified learned hit for Tier 2)
        """
        for text, kind in ((question, "question"), (self._label_key(descriptor), "label")):
            if not text:
                continue
            hit = self.store.exact_cache.lookup(text)
            if hit:
                self.stats.tier1_exact_cache += 1
                trace.append(TierDecision(
                    "tier1", DecisionType.HIT, hit.field_type, TIER1_CONFIDENCE,
                    evidence=f"exact {kind} match", metadata={"origin": hit.source, "persisted": hit.persisted},
                ))
                logger.info(f"[Tier1] Exact {kind} cache -> {hit.field_type} ({hit.source})")
                return self._resolved(hit.field_type, TIER1_CONFIDENCE, f"exact_cache_{hit.source}",
                                      hit.persisted, 1, trace), None

        match = FIELD_ID_RULES.match(descriptor.id)
        if match:
            self.stats.tier1_field_id += 1
            trace.append(TierDecision(
                "tier1", DecisionType.HIT, match.field_type, TIER1_CONFIDENCE,
                evidence=f"field id {descriptor.id!r}", metadata={"rule": match.rule},
            ))
            logger.info(f"[Tier1] Field ID -> {match.field_type}")
            return self._resolved(match.field_type, TIER1_CONFIDENCE, "tier1_field_id", True, 1, trace), None

        hit = self.store.cache.lookup(descriptor)
        if hit and hit.verified:
            self.stats.tier1_cache += 1
            trace.append(TierDecision(
                "tier1", DecisionType.HIT, hit.field_type, hit.confidence,
                evidence=f"cache level {hit.level}", metadata={"rule": hit.rule, "key": hit.key},
            ))
            logger.info(f"[Tier1] Cache ({hit.level}) -> {hit.field_type}")
            return self._resolved(hit.field_type, hit.confidence, f"tier1_cache_{hit.level}", True, 1, trace), None

        trace.append(TierDecision("tier1", DecisionType.MISS, evidence="no exact, id or verified cache match"))
        return None, hit

    # =========================================================================
    # Tier 2: signals + one cheap verification
    # =========================================================================

    def _tier2(
        self,
        descriptor: FieldDescriptor,
        page: Optional[PageContext],
        question: Optional[str],
        unverified_hit: Optional[CacheHit],
        trace: list[TierDecision],
    ) -> Optional[Classification]:
        """
        Candidate priority: question-bank match, accepted consensus, then a
        lone unverified learned entry. Only the first candidate found is
        verified; a "no" escalates to Tier 3.
        """
        bank_match = self._question_bank_match(question, trace)
        if bank_match is not None:
            return self._verify_candidate(
                descriptor, question, bank_match.field_type, TIER2_BANK_CONFIDENCE, trace,
                origin="question_bank", matched_question=bank_match.matched_question,
                unverified_hit=unverified_hit,
            )

        votes = self._collect_votes(descriptor, page, question, unverified_hit, trace)
        consensus = self.consensus.resolve(votes)
        if consensus.accepted:
            logger.info(
                f"[Tier2] Consensus {consensus.field_type} ({consensus.agreement.value}, "
                f"{consensus.confidence:.2f}, {'+'.join(consensus.sources)})"
            )
            if self.oracle is None:
                return self._unverified_consensus(consensus, trace)
            return self._verify_candidate(descriptor, question, consensus.field_type, consensus.confidence,
                                          trace, origin="consensus", consensus=consensus,
                                          unverified_hit=unverified_hit)

        if votes:
            trace.append(TierDecision(
                "tier2", DecisionType.MISS, consensus.field_type, consensus.confidence,
                evidence=f"consensus not accepted ({consensus.agreement.value}, {len(votes)} vote(s))",
            ))

        if unverified_hit is not None and self.oracle is not None:
            return self._verify_candidate(descriptor, question, unverified_hit.field_type, TIER2_BANK_CONFIDENCE,
                                          trace, origin="unverified_cache", unverified_hit=unverified_hit)
        return None

    def _question_bank_match(self, question: Optional[str], trace: list[TierDecision]) -> Optional[QuestionMatch]:
        if not question or self.oracle is None:
            return None
        try:
            match = self.store.question_bank.find_similar(question, self.config.thresholds.question_bank)
        except SignalUnavailable as e:
            trace.append(TierDecision("tier2", DecisionType.NO_SIGNAL, evidence=f"question bank: {e}"))
            return None
        if match is not None:
            logger.info(f'[Tier2] Question bank ({match.similarity:.3f}) -> {match.field_type}: '
                        f'"{match.matched_question[:50]}"')
        return match

    def _collect_votes(
        self,
        descriptor: FieldDescriptor,
        page: Optional[PageContext],
        question: Optional[str],
        unverified_hit: Optional[CacheHit],
        trace: list[TierDecision],
    ) -> list[Vote]:
        """Votes from option signatures, unverified associations, embeddings and zero-shot."""
        thresholds = self.config.thresholds
        votes: list[Vote] = []

        option_match = match_options(descriptor.options)
        if option_match:
            votes.append(Vote(option_match.field_type, 0.95, VoteSource.OPTIONS, option_match.rule))

        if unverified_hit is not None:
            votes.append(Vote(unverified_hit.field_type, unverified_hit.confidence,
                              VoteSource.CACHE_UNVERIFIED, f"learned from {unverified_hit.learned_from}"))
        else:
            hint = self.store.review_queue.find_hint(
                question=question, label=None if descriptor.is_generic else descriptor.label
            )
            if hint is not None:
                votes.append(Vote(hint.field_type, 0.85, VoteSource.CACHE_UNVERIFIED, "pending review"))

        evidence = build_evidence_text(descriptor, page)

        if self.matcher is not None:
            try:
                best = self.matcher.best_centroid(evidence)
            except SignalUnavailable as e:
                trace.append(TierDecision("tier2", DecisionType.NO_SIGNAL, evidence=f"embeddings: {e}"))
                best = None
            if best is not None and best.similarity >= thresholds.centroid:
                votes.append(Vote(best.field_type, best.similarity, VoteSource.EMBEDDING))

        if self.zero_shot is not None:
            try:
                result = self.zero_shot.classify_field(evidence, descriptor.modality)
            except SignalUnavailable as e:
                trace.append(TierDecision("tier2", DecisionType.NO_SIGNAL, evidence=f"zero-shot: {e}"))
                result = None
            if result is not None and result.score >= thresholds.zero_shot:
                votes.append(Vote(result.field_type, result.score, VoteSource.ZERO_SHOT, result.label))

        for vote in votes:
            trace.append(TierDecision("tier2", DecisionType.VOTE, vote.field_type, vote.confidence,
                                      evidence=vote.detail, metadata={"source": vote.source.value}))
        return votes

    def _verify_candidate(
        self,
        descriptor: FieldDescriptor,
        question: Optional[str],
        candidate: str,
        confidence: float,
        trace: list[TierDecision],
        origin: str,
        matched_question: Optional[str] = None,
        consensus: Optional[ConsensusResult] = None,
        unverified_hit: Optional[CacheHit] = None,
    ) -> Optional[Classification]:
        """The one verification call for this field. A "no" or a transport error escalates."""
        self.stats.tier2_calls += 1
        try:
            confirmed = self.oracle.verify(
                candidate, label=descriptor.label, question=question, matched_question=matched_question
            )
        except OracleTransportError as e:
            logger.warning(f"[Tier2] Verification unavailable: {e}")
            trace.append(TierDecision("tier2", DecisionType.ERROR, candidate, evidence=str(e)))
            return None

        if not confirmed:
            self.stats.tier2_rejected += 1
            logger.info(f"[Tier2] Oracle rejected {candidate}")
            trace.append(TierDecision("tier2", DecisionType.REJECTED, candidate, confidence,
                                      metadata={"origin": origin}))
            return None

        self.stats.tier2_verified += 1
        logger.info(f"[Tier2] Oracle confirmed {candidate}")
        metadata = {"origin": origin}
        if matched_question:
            metadata["matched_question"] = matched_question
        if consensus is not None:
            metadata["agreement"] = consensus.agreement.value
        trace.append(TierDecision("tier2", DecisionType.VERIFIED, candidate, confidence, metadata=metadata))

        source = {
            "question_bank": "tier2_oracle_confirmed",
            "consensus": "tier2_consensus_confirmed",
            "unverified_cache": "tier2_cache_confirmed",
        }[origin]
        result = self._resolved(candidate, confidence, source, True, 2, trace)
        promote_key = unverified_hit.key if unverified_hit and unverified_hit.field_type == candidate else None
        self._learn_tier2(descriptor, question, candidate, from_consensus=consensus is not None,
                          trace=trace, promote_key=promote_key)
        return result

    def _unverified_consensus(self, consensus: ConsensusResult, trace: list[TierDecision]) -> Classification:
        self.stats.tier2_unverified += 1
        trace.append(TierDecision("tier2", DecisionType.HIT, consensus.field_type, consensus.confidence,
                                  evidence="consensus accepted, no oracle to verify",
                                  metadata={"agreement": consensus.agreement.value}))
        return self._resolved(consensus.field_type, consensus.confidence, "tier2_consensus", False, 2, trace)

    # =========================================================================
    # Tier 3: full classification
    # =========================================================================

    def _tier3(
        self,
        descriptor: FieldDescriptor,
        page: Optional[PageContext],
        question: Optional[str],
        trace: list[TierDecision],
    ) -> Classification:
        if self.oracle is None:
            return self._standalone_guess(descriptor, page, trace)

        request = ClassifyRequest(
            field_details=build_field_details(descriptor),
            taxonomy=FIELD_TYPES,
            label=descriptor.label,
            question=question,
            page_hint=self._page_hint(descriptor, page),
        )
        self.stats.tier3_calls += 1
        try:
            field_type = self.oracle.classify(request)
        except OracleTransportError as e:
            logger.warning(f"[Tier3] Classification unavailable: {e}")
            trace.append(TierDecision("tier3", DecisionType.ERROR, evidence=str(e)))
            return self._failed(trace)
        except AmbiguousTaxonomyResponse as e:
            logger.info(f'[Tier3] Out-of-taxonomy token "{e.token}", asking for a direct answer')
            trace.append(TierDecision("tier3", DecisionType.MISS, e.token, evidence="token outside taxonomy"))
            return self._direct_answer(descriptor, question, request.field_details, trace)

        if field_type is None:
            trace.append(TierDecision("tier3", DecisionType.MISS, evidence="oracle answered none of the above"))
            return self._failed(trace)

        logger.info(f"[Tier3] Oracle ({request.mode}) -> {field_type}")
        metadata = {"mode": request.mode}
        if request.page_hint is not None:
            metadata["position"] = f"{request.page_hint.position}/{request.page_hint.total}"
        trace.append(TierDecision("tier3", DecisionType.CLASSIFIED, field_type, TIER3_CONFIDENCE,
                                  evidence=question or descriptor.label, metadata=metadata))

        result = self._resolved(field_type, TIER3_CONFIDENCE, "tier3_oracle", False, 3, trace)
        self._learn(descriptor, question, field_type, "tier3_oracle", result.trace)
        return result

    def _page_hint(self, descriptor: FieldDescriptor, page: Optional[PageContext]) -> Optional[PageHint]:
        """Questionnaire context for a generic field: every question on the page and this field's position."""
        section = descriptor.section_context or ""
        if not descriptor.is_generic or len(section) <= MIN_SECTION_FOR_QUESTIONNAIRE:
            return None

        generic_fields = page.generic_fields(descriptor.label) if page is not None else []
        position = page.generic_position(descriptor) if page is not None else None
        return PageHint(
            label=descriptor.label,
            position=(position if position is not None else 0) + 1,
            total=max(len(generic_fields), 1),
            questions=section_parts(section),
        )

    def _direct_answer(
        self,
        descriptor: FieldDescriptor,
        question: Optional[str],
        field_details: str,
        trace: list[TierDecision],
    ) -> Classification:
        """Bounded fallback: ask for the literal answer instead of a type."""
        self.stats.direct_answers += 1
        request = DirectAnswerRequest(
            question=question or descriptor.label or descriptor.display_name,
            field_details=field_details,
            profile_summary=self.profile_summary,
        )
        try:
            answer = self.oracle.direct_answer(request)
        except OracleTransportError as e:
            logger.warning(f"[Tier3] Direct answer unavailable: {e}")
            trace.append(TierDecision("tier3", DecisionType.ERROR, evidence=str(e)))
            return self._failed(trace)

        if answer is None:
            trace.append(TierDecision("tier3", DecisionType.MISS, evidence="no direct answer"))
            return self._failed(trace)

        logger.info(f'[Tier3] Direct answer: "{answer[:40]}"')
        trace.append(TierDecision("tier3", DecisionType.FALLBACK, DIRECT_ANSWER_TYPE, DIRECT_ANSWER_CONFIDENCE,
                                  evidence=request.question))
        result = self._resolved(DIRECT_ANSWER_TYPE, DIRECT_ANSWER_CONFIDENCE, "tier3_direct_answer", False, 3, trace)
        result.answer = answer
        return result

    def _standalone_guess(
        self,
        descriptor: FieldDescriptor,
        page: Optional[PageContext],
        trace: list[TierDecision],
    ) -> Classification:
        """No oracle: best single signal at its standalone threshold. Never learned."""
        thresholds = self.config.thresholds
        evidence = build_evidence_text(descriptor, page)
        candidates: list[tuple[str, float, str]] = []

        if self.matcher is not None:
            try:
                best = self.matcher.best_centroid(evidence)
                if best is not None and best.similarity >= thresholds.centroid_standalone:
                    candidates.append((best.field_type, best.similarity, "offline_embedding"))
            except SignalUnavailable as e:
                logger.debug(f"[Tier3] Embeddings unavailable: {e}")

        if self.zero_shot is not None:
            try:
                result = self.zero_shot.classify_field(evidence, descriptor.modality)
                if result is not None and result.score >= thresholds.zero_shot_standalone:
                    candidates.append((result.field_type, result.score, "offline_zero_shot"))
            except SignalUnavailable as e:
                logger.debug(f"[Tier3] Zero-shot unavailable: {e}")

        if not candidates:
            trace.append(TierDecision("tier3", DecisionType.MISS, evidence="no oracle and no standalone signal"))
            return self._failed(trace)

        field_type, confidence, source = max(candidates, key=lambda c: c[1])
        self.stats.offline_guesses += 1
        trace.append(TierDecision("tier3", DecisionType.FALLBACK, field_type, confidence, evidence=source))
        return self._resolved(field_type, confidence, source, False, 3, trace)

    # =========================================================================
    # Learning
    # =========================================================================

    def _learn_tier2(
        self,
        descriptor: FieldDescriptor,
        question: Optional[str],
        field_type: str,
        from_consensus: bool,
        trace: list[TierDecision],
        promote_key: Optional[str] = None,
    ):
        """
        An oracle "yes" goes straight to the exact cache; a consensus yes also
        seeds the learned cache. A confirmed unverified learned entry is
        promoted so the next run resolves it at Tier 1.
        """
        try:
            validate_before_learning(descriptor, field_type)
        except ValidationRejected as e:
            self._not_persisted(e, trace)
            return

        text = question or self._label_key(descriptor)
        if text and self.store.exact_cache.add(text, field_type, source="verified_by_oracle"):
            trace.append(TierDecision("learning", DecisionType.LEARNED, field_type, evidence="exact cache"))

        if from_consensus and not descriptor.is_generic:
            if self._learn_pattern(descriptor, field_type, "tier2_consensus"):
                trace.append(TierDecision("learning", DecisionType.LEARNED, field_type, evidence="learned cache"))

        if promote_key and self.store.cache.verify_pattern(promote_key, verified_by="oracle"):
            logger.info(f'[Tier2] Promoted learned entry "{promote_key}" to verified')
            trace.append(TierDecision("learning", DecisionType.LEARNED, field_type,
                                      evidence="learned cache verified", metadata={"key": promote_key}))

    def _learn(
        self,
        descriptor: FieldDescriptor,
        question: Optional[str],
        field_type: str,
        source: str,
        trace: list[TierDecision],
    ):
        """
        Persist (or queue) an association produced by Tier 3 or the guard.

        The classification is used for this run either way; a failed
        validation only stops it from being remembered.
        """
        try:
            validate_before_learning(descriptor, field_type)
        except ValidationRejected as e:
            self._not_persisted(e, trace)
            return

        text = question or self._label_key(descriptor)
        learn_label = not descriptor.is_generic and bool(descriptor.label)

        if self.review_mode and not self.store.auto_verify:
            self._queue_for_review(descriptor, question, field_type, source, learn_label, trace)
            # Usable for the rest of this run only
            if text:
                self.store.exact_cache.add_session(text, field_type, source="pending_review")
            if learn_label or descriptor.id:
                self.store.cache.add_session(descriptor, field_type)
            return

        learned = []
        if text and self.store.exact_cache.add(text, field_type, source=source):
            learned.append("exact cache")
        if question and self.store.question_bank.learn(question, field_type, source=source):
            learned.append("question bank")
        if learn_label and self._learn_pattern(descriptor, field_type, source):
            learned.append("learned cache")
        if learned:
            trace.append(TierDecision("learning", DecisionType.LEARNED, field_type, evidence=", ".join(learned)))

    def _queue_for_review(
        self,
        descriptor: FieldDescriptor,
        question: Optional[str],
        field_type: str,
        source: str,
        learn_label: bool,
        trace: list[TierDecision],
    ):
        common = dict(
            field_type=field_type,
            label=descriptor.label,
            source=source,
            field_id=descriptor.id or "",
            section=(descriptor.section_context or "")[:500],
            modality=descriptor.modality,
            platform=self.store.cache.platform,
        )
        queued = 0
        if question:
            queued += self.store.review_queue.add(
                ReviewQueueItem(store=ReviewTarget.QUESTION_BANK, question=question, **common)
            )
        if learn_label:
            queued += self.store.review_queue.add(ReviewQueueItem(store=ReviewTarget.CACHE, **common))

        self.stats.pending_review += queued
        if queued:
            trace.append(TierDecision("learning", DecisionType.QUEUED, field_type,
                                      evidence=question or descriptor.label, metadata={"items": queued}))

    def _learn_pattern(self, descriptor: FieldDescriptor, field_type: str, source: str) -> bool:
        """True if a new learned entry was created."""
        before = len(self.store.cache.patterns)
        self.store.cache.learn_pattern(descriptor, field_type, source)
        created = len(self.store.cache.patterns) > before
        if created:
            self.stats.patterns_learned += 1
        return created

    def _not_persisted(self, error: ValidationRejected, trace: list[TierDecision]):
        self.stats.not_persisted += 1
        logger.info(f"[Learning] Not persisted: {error.reason}")
        trace.append(TierDecision("learning", DecisionType.NOT_PERSISTED, error.field_type, evidence=error.reason))

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _label_key(descriptor: FieldDescriptor) -> Optional[str]:
        """Label usable as an exact-cache key: specific and long enough."""
        label = descriptor.label or ""
        if descriptor.is_generic or len(label) <= MIN_LABEL_KEY_LENGTH:
            return None
        return label

    @staticmethod
    def _resolved(
        field_type: str,
        confidence: float,
        source: str,
        verified: bool,
        tier: int,
        trace: list[TierDecision],
    ) -> Classification:
        return Classification(field_type, confidence, source, verified=verified, tier=tier, trace=trace)

    @staticmethod
    def _failed(trace: list[TierDecision]) -> Classification:
        result = Classification.unknown()
        result.tier = 3
        result.trace = trace
        return result

    def stats_dict(self) -> dict:
        return self.stats.to_dict(self.config.oracle.cost_per_verify, self.config.oracle.cost_per_classify)
