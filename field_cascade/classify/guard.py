"""
Type/modality safety checks.

TypeGuard runs on every accepted classification: a Yes/No type on a
free-text field would write "Yes" into a textarea, so it is re-derived
into a free-text type (oracle first, then label keywords, then the inert
explanation type).

validate_before_learning runs before any association is persisted and
rejects type/modality and keyword mismatches.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..errors import AmbiguousTaxonomyResponse, GuardBlocked, OracleTransportError, ValidationRejected
from .context import build_field_details, prior_answer
from .models import Classification, FieldDescriptor
from .observability import DecisionType, TierDecision
from .oracle import ClassifyRequest, Oracle
from .taxonomy import (
    CONSTRAINED_CHOICE_MODALITIES,
    FREE_TEXT_MODALITIES,
    INERT_TEXT_TYPE,
    NON_BOOLEAN_FIELD_TYPES,
    TEXT_ONLY_FIELD_TYPES,
    YES_NO_FIELD_TYPES,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Validate before learning
# =============================================================================

@dataclass(frozen=True)
class KeywordCheck:
    """Question keywords that rule out a set of wrong types."""
    keywords: tuple[str, ...]
    expected: str
    wrong: frozenset[str]


KEYWORD_CHECKS = (
    KeywordCheck(
        keywords=("j-1", "j-2", "j1", "j2", "exchange visitor"),
        expected="j1_j2_visa_history",
        wrong=frozenset({"visa_sponsorship", "work_authorization"}),
    ),
    KeywordCheck(
        keywords=("country of citizenship", "countries of citizenship"),
        expected="citizenship_country_text",
        wrong=frozenset({"group_d_country_citizen", "restricted_country_citizen"}),
    ),
    KeywordCheck(
        keywords=("current status", "current visa", "visa type", "immigration status"),
        expected="current_visa_status",
        wrong=frozenset({"work_authorization", "visa_sponsorship"}),
    ),
    KeywordCheck(
        keywords=("disability",),
        expected="disability_status",
        wrong=frozenset({"terms_agreement", "age_verification"}),
    ),
)


def validate_before_learning(descriptor: FieldDescriptor, field_type: str) -> None:
    """
    Check that an association is safe to persist.

    Raises:
        ValidationRejected: with the reason; the caller may still use the
            classification for the current run
    """
    if descriptor.modality in FREE_TEXT_MODALITIES and field_type in YES_NO_FIELD_TYPES:
        raise ValidationRejected(field_type, f'Yes/No type "{field_type}" on textarea')

    if descriptor.modality in CONSTRAINED_CHOICE_MODALITIES and field_type in TEXT_ONLY_FIELD_TYPES:
        raise ValidationRejected(field_type, f'Text type "{field_type}" on {descriptor.modality.value}')

    question_text = (descriptor.section_context or descriptor.label or "").lower()
    for check in KEYWORD_CHECKS:
        if field_type not in check.wrong:
            continue
        matched = next((k for k in check.keywords if k in question_text), None)
        if matched:
            raise ValidationRejected(
                field_type,
                f'Question has "{matched}" but classified as "{field_type}" (expected {check.expected})',
            )


# =============================================================================
# Textarea guard
# =============================================================================

EXPLANATION_KEYWORDS = ("if yes", "please explain", "provide details", "provide an explanation")
COUNTRY_KEYWORDS = ("citizen", "citizenship", "country")
STATUS_KEYWORDS = ("authorized to work", "visa", "status", "immigration")


@dataclass
class GuardResult:
    """Outcome of running the guard on one classification."""
    classification: Classification
    corrected: bool = False
    blocked: bool = False
    original_type: Optional[str] = None


class TypeGuard:
    """
    Blocks Yes/No types on free-text fields.

    Usage:
        guard = TypeGuard(oracle)
        result = guard.apply(descriptor, classification)
        if result.corrected:
            queue_learning(descriptor, result.classification)
    """

    def __init__(self, oracle: Optional[Oracle] = None, use_oracle: bool = True):
        self.oracle = oracle
        self.use_oracle = use_oracle

    @staticmethod
    def needs_guard(descriptor: FieldDescriptor, field_type: str) -> bool:
        return descriptor.modality in FREE_TEXT_MODALITIES and field_type in YES_NO_FIELD_TYPES

    def apply(self, descriptor: FieldDescriptor, classification: Classification) -> GuardResult:
        original = classification.field_type
        if not self.needs_guard(descriptor, original):
            return GuardResult(classification)

        logger.info(f'[Guard] "{original}" is Yes/No but field is textarea: {descriptor.display_name[:60]}')

        rederived = self._oracle_rederive(descriptor)
        if rederived is None:
            try:
                rederived = self._keyword_fallback(descriptor, original)
            except GuardBlocked as e:
                logger.info(f'[Guard] BLOCKED "{e.blocked_type}" on textarea, no keyword match')
                fallback = self._corrected(classification, e.fallback_type, 0.50, "textarea_guard_blocked")
                fallback.trace.append(TierDecision(
                    "guard", DecisionType.BLOCKED, original, evidence="Yes/No type on textarea, no safe re-derivation"
                ))
                return GuardResult(fallback, corrected=True, blocked=True, original_type=original)

        field_type, confidence, source = rederived
        logger.info(f"[Guard] {original} -> {field_type} ({source})")
        corrected = self._corrected(classification, field_type, confidence, source)
        corrected.trace.append(TierDecision(
            "guard", DecisionType.CORRECTED, field_type, confidence, evidence=f"{original} is Yes/No on textarea"
        ))
        return GuardResult(corrected, corrected=True, original_type=original)

    @staticmethod
    def _corrected(base: Classification, field_type: str, confidence: float, source: str) -> Classification:
        return Classification(
            field_type=field_type,
            confidence=confidence,
            source=source,
            verified=False,
            tier=base.tier,
            trace=list(base.trace),
        )

    def _oracle_rederive(self, descriptor: FieldDescriptor) -> Optional[tuple[str, float, str]]:
        if self.oracle is None or not self.use_oracle:
            return None

        request = ClassifyRequest(
            field_details=build_field_details(descriptor),
            taxonomy=NON_BOOLEAN_FIELD_TYPES,
            label=descriptor.label,
            free_text_only=True,
            prior_answer=prior_answer(descriptor.label),
        )
        try:
            token = self.oracle.classify(request)
        except OracleTransportError as e:
            logger.warning(f"[Guard] Re-classification unavailable: {e}")
            return None
        except AmbiguousTaxonomyResponse as e:
            logger.info(f'[Guard] Re-classification returned "{e.token}" (still Yes/No or invalid)')
            return None

        if token is None or token in YES_NO_FIELD_TYPES:
            return None
        return token, 0.90, "textarea_guard"

    @staticmethod
    def _keyword_fallback(descriptor: FieldDescriptor, original: str) -> tuple[str, float, str]:
        text = (descriptor.label or descriptor.section_context or "").lower()

        if any(k in text for k in EXPLANATION_KEYWORDS):
            return "explanation_text", 0.85, "textarea_guard_keyword"
        if any(k in text for k in COUNTRY_KEYWORDS):
            return "citizenship_country_text", 0.80, "textarea_guard_keyword"
        if any(k in text for k in STATUS_KEYWORDS):
            return "current_visa_status", 0.80, "textarea_guard_keyword"

        raise GuardBlocked(original, fallback_type=INERT_TEXT_TYPE)
