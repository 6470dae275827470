"""
Input and output records for field classification.

FieldDescriptor and PageContext arrive from the DOM-discovery side as JSON
and are validated with Pydantic. Classification is the per-field result
handed to the form filler.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .observability import TierDecision, format_trace
from .taxonomy import FieldModality, UNKNOWN_TYPE, is_generic_label


class FieldDescriptor(BaseModel):
    """One discovered form field. Never mutated by the classifier."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: Optional[str] = None
    label: str = ""
    modality: FieldModality = Field(
        FieldModality.TEXT,
        validation_alias=AliasChoices("modality", "input_modality", "type"),
    )
    options: tuple[str, ...] = ()
    section_context: str = Field(
        "",
        validation_alias=AliasChoices("section_context", "section", "sectionContext"),
    )
    aria_text: str = Field(
        "",
        validation_alias=AliasChoices("aria_text", "ariaLabel", "ariaOrAltText"),
    )

    @property
    def is_generic(self) -> bool:
        return is_generic_label(self.label)

    @property
    def display_name(self) -> str:
        return self.label or self.id or "unknown"


def _label_key(label: str) -> str:
    return " ".join(label.replace("*", " ").replace(":", " ").lower().split())


class PageContext(BaseModel):
    """Page-level context needed for positional disambiguation."""

    model_config = ConfigDict(extra="ignore")

    url: Optional[str] = None
    fields: list[FieldDescriptor] = Field(default_factory=list)

    def generic_fields(self, label: Optional[str] = None) -> list[FieldDescriptor]:
        """Fields on the page whose label is generic, in page order; only those labeled `label` when given."""
        wanted = _label_key(label) if label is not None else None
        return [f for f in self.fields if f.is_generic and (wanted is None or _label_key(f.label) == wanted)]

    def generic_position(self, descriptor: FieldDescriptor) -> Optional[int]:
        """
        Zero-based ordinal of a field among same-labeled generic fields.

        Matching is by id when the field has one, otherwise by identity of
        the record. Returns None when the field is not on the page.
        """
        for index, candidate in enumerate(self.generic_fields(descriptor.label)):
            if descriptor.id and candidate.id == descriptor.id:
                return index
            if not descriptor.id and candidate is descriptor:
                return index
        return None


@dataclass
class Classification:
    """Result of classifying one field."""
    field_type: str
    confidence: float
    source: str
    verified: bool = False
    answer: Any = None
    tier: Optional[int] = None
    trace: list[TierDecision] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return self.field_type != UNKNOWN_TYPE

    def explain(self, name: str = "field") -> str:
        return format_trace(name, self.field_type, self.confidence, self.source, self.trace)

    @classmethod
    def unknown(cls, source: str = "failed") -> "Classification":
        return cls(field_type=UNKNOWN_TYPE, confidence=0.0, source=source)

    def to_dict(self) -> dict:
        return {
            "field_type": self.field_type,
            "confidence": round(self.confidence, 3),
            "source": self.source,
            "verified": self.verified,
            "answer": self.answer,
            "tier": self.tier,
        }
