"""
Field classification package.

This package turns a discovered form field into a field type: pattern
rules, embedding and zero-shot signals, consensus voting, the oracle
interface and the type guard. The trust cascade itself lives in
field_cascade.classify.cascade.
"""

from .taxonomy import (
    FieldModality,
    FIELD_TYPES,
    YES_NO_FIELD_TYPES,
    TEXT_ONLY_FIELD_TYPES,
    UNKNOWN_TYPE,
    DIRECT_ANSWER_TYPE,
    is_known_type,
    is_generic_label,
)

from .models import (
    FieldDescriptor,
    PageContext,
    Classification,
)

from .patterns import (
    FIELD_ID_RULES,
    KNOWN_CONFLICTS,
    find_order_violations,
    match_options,
    detect_platform,
)

from .consensus import (
    AgreementKind,
    VoteSource,
    SourceWeights,
    Vote,
    ConsensusResult,
    ConsensusResolver,
)

from .oracle import (
    Oracle,
    LLMOracle,
    FakeOracle,
    ClassifyRequest,
    PageHint,
)

from .guard import (
    TypeGuard,
    validate_before_learning,
)

from .observability import (
    DecisionType,
    TierDecision,
    PageTrace,
)

__all__ = [
    # Taxonomy
    "FieldModality",
    "FIELD_TYPES",
    "YES_NO_FIELD_TYPES",
    "TEXT_ONLY_FIELD_TYPES",
    "UNKNOWN_TYPE",
    "DIRECT_ANSWER_TYPE",
    "is_known_type",
    "is_generic_label",
    # Models
    "FieldDescriptor",
    "PageContext",
    "Classification",
    # Patterns
    "FIELD_ID_RULES",
    "KNOWN_CONFLICTS",
    "find_order_violations",
    "match_options",
    "detect_platform",
    # Consensus
    "AgreementKind",
    "VoteSource",
    "SourceWeights",
    "Vote",
    "ConsensusResult",
    "ConsensusResolver",
    # Oracle
    "Oracle",
    "LLMOracle",
    "FakeOracle",
    "ClassifyRequest",
    "PageHint",
    # Guard
    "TypeGuard",
    "validate_before_learning",
    # Observability
    "DecisionType",
    "TierDecision",
    "PageTrace",
]
