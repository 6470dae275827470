"""
Persisted record types and a quarantining loader.

Each store file holds plain JSON records. Records are validated with
Pydantic on load: unknown keys are ignored (additive compatibility), and
a record that fails validation is quarantined rather than loaded, so a
hand-edited file with a typo never propagates half-formed entries.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Iterable, Optional, TypeVar

from pydantic import AfterValidator, AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from ..classify.taxonomy import FieldModality, is_known_type

logger = logging.getLogger(__name__)


def now() -> datetime:
    return datetime.now().astimezone()


def _check_field_type(value: str) -> str:
    if not is_known_type(value):
        raise ValueError(f"unknown field type '{value}'")
    return value


def _ensure_aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.astimezone()


FieldType = Annotated[str, AfterValidator(_check_field_type)]
Timestamp = Annotated[datetime, AfterValidator(_ensure_aware)]


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# =============================================================================
# Cache Entries
# =============================================================================

class CacheEntry(_Record):
    """Learned association for a normalized (platform, label, id, modality) key."""

    field_type: FieldType = Field(validation_alias=AliasChoices("field_type", "type"))
    learned_from: str = Field("unknown", validation_alias=AliasChoices("learned_from", "learnedFrom"))
    learned_at: Timestamp = Field(default_factory=now, validation_alias=AliasChoices("learned_at", "learnedAt"))
    platform: str = Field("unknown", validation_alias=AliasChoices("platform", "ats"))
    company: str = "unknown"
    original_label: Optional[str] = Field(None, validation_alias=AliasChoices("original_label", "originalLabel"))
    original_id: Optional[str] = Field(None, validation_alias=AliasChoices("original_id", "originalId"))

    verified: bool = False
    verified_at: Optional[Timestamp] = Field(None, validation_alias=AliasChoices("verified_at", "verifiedAt"))
    verified_by: Optional[str] = Field(None, validation_alias=AliasChoices("verified_by", "verifiedBy"))
    corrected_from: Optional[str] = Field(None, validation_alias=AliasChoices("corrected_from", "correctedFrom"))

    usage_count: int = Field(1, ge=0, validation_alias=AliasChoices("usage_count", "usageCount"))
    last_used_at: Timestamp = Field(default_factory=now, validation_alias=AliasChoices("last_used_at", "lastUsedAt"))

    def touch(self):
        self.usage_count += 1
        self.last_used_at = now()

    def mark_verified(self, verified_by: str):
        self.verified = True
        self.verified_at = now()
        self.verified_by = verified_by


class ExactCacheEntry(_Record):
    """Learned type for a normalized, token-sorted question string."""

    field_type: FieldType
    original_text: str = ""
    source: str = "learned"
    added_at: Timestamp = Field(default_factory=now)


# =============================================================================
# Question Bank
# =============================================================================

class QuestionBankEntry(_Record):
    """Known question text and its type. Embeddings are computed at runtime."""

    text: str = Field(min_length=1)
    field_type: FieldType
    source: str = "learned"


# =============================================================================
# Review Queue
# =============================================================================

class ReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewTarget(str, Enum):
    """Store an approved item is materialized into."""
    QUESTION_BANK = "question_bank"
    CACHE = "cache"


class ReviewQueueItem(_Record):
    """A learned association awaiting human approval."""

    store: ReviewTarget
    field_type: FieldType
    label: str = ""
    question: str = ""
    answer: str = ""
    source: str = ""
    field_id: str = Field("", validation_alias=AliasChoices("field_id", "fieldId"))
    section: str = ""
    modality: Optional[FieldModality] = None
    platform: str = "unknown"
    status: ReviewStatus = ReviewStatus.PENDING
    timestamp: Timestamp = Field(default_factory=now)

    @property
    def evidence(self) -> str:
        return self.question or self.label

    def dedup_key(self) -> tuple[str, str, str, str]:
        """(type, label, store), plus the question for question-bank items."""
        question = " ".join(self.question.lower().split()) if self.store == ReviewTarget.QUESTION_BANK else ""
        return self.field_type, self.label, self.store.value, question


# =============================================================================
# Loader
# =============================================================================

RecordT = TypeVar("RecordT", bound=BaseModel)


def load_records(
    raw_items: Iterable[tuple[Any, Any]],
    model: type[RecordT],
    store_name: str,
) -> tuple[dict[Any, RecordT], list[dict]]:
    """
    Validate (key, raw) pairs into records.

    Returns:
        (valid records by key, quarantined {"key", "record", "error"} dicts)
    """
    valid: dict[Any, RecordT] = {}
    quarantined: list[dict] = []

    for key, raw in raw_items:
        try:
            valid[key] = model.model_validate(raw)
        except ValidationError as e:
            first = e.errors()[0]
            error = f"{'.'.join(str(p) for p in first['loc'])}: {first['msg']}"
            quarantined.append({"key": key, "record": raw, "error": error})

    if quarantined:
        logger.warning(
            f"[{store_name}] Quarantined {len(quarantined)} malformed record(s), "
            f"first: {quarantined[0]['key']!r} ({quarantined[0]['error']})"
        )
    return valid, quarantined
