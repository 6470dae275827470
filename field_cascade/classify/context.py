"""
Evidence text for a field: the question it asks and a natural-language
description used by the embedding, zero-shot and oracle signals.
"""

import json
import re
from typing import Optional

from .models import FieldDescriptor, PageContext
from .taxonomy import FieldModality

SECTION_SEPARATOR = " | "
MIN_QUESTION_PART = 15
MAX_QUESTION_CHARS = 500

_MODALITY_PHRASES = {
    FieldModality.TEXT: "It is a text input field",
    FieldModality.TEXTAREA: "It is a text input field",
    FieldModality.DROPDOWN: "It is a dropdown selection",
    FieldModality.RADIO: "It is a radio button choice",
    FieldModality.CHECKBOX: "It is a checkbox",
}

_PRIOR_ANSWER = re.compile(r"\*\s*(Yes|No)\s*$", re.IGNORECASE)


def section_parts(section_text: str, min_length: int = MIN_QUESTION_PART) -> list[str]:
    """Split section text into question-sized parts."""
    return [p for p in section_text.split(SECTION_SEPARATOR) if len(p.strip()) > min_length]


def extract_question_text(
    descriptor: FieldDescriptor,
    page: Optional[PageContext] = None,
) -> Optional[str]:
    """
    Pick the question a field is answering from its section text.

    For a field that is the Nth generic field on the page, the Nth question
    part is used; otherwise the longest part.
    """
    section = descriptor.section_context or ""
    if len(section) < 20:
        return None

    parts = section_parts(section)
    if not parts:
        return None

    position = page.generic_position(descriptor) if page else None
    if position is not None and position < len(parts):
        return parts[position][:MAX_QUESTION_CHARS].strip()

    longest = max(parts, key=len)
    return longest[:MAX_QUESTION_CHARS].strip()


def readable_id(field_id: str) -> str:
    """'legalName--firstName' -> 'legal name first name'"""
    text = field_id.replace("--", " ")
    text = re.sub(r"([a-z])([A-Z])", r"\1 \2", text)
    text = re.sub(r"[-_]", " ", text)
    return text.lower()


def build_evidence_text(
    descriptor: FieldDescriptor,
    page: Optional[PageContext] = None,
) -> str:
    """
    Natural-language description of a field for the AI signals.

    Example:
        "This form field asks for: Preferred Name. It is a text input field"
    """
    parts = []
    label = descriptor.label.replace("*", "").strip()
    generic = descriptor.is_generic

    if label and not generic:
        parts.append(f"This form field asks for: {label}")

    phrase = _MODALITY_PHRASES.get(descriptor.modality)
    if phrase:
        parts.append(phrase)

    section = descriptor.section_context
    if section:
        if generic and page is not None and page.fields:
            questions = section_parts(section)
            position = page.generic_position(descriptor)
            if position is not None and position < len(questions):
                parts.append(f"Question: {questions[position][:300]}")
            else:
                joined = SECTION_SEPARATOR.join(q[:200] for q in questions)
                parts.append(f"Context: {joined[:400]}")
        else:
            raw_parts = section.split(SECTION_SEPARATOR)
            relevant = next((p for p in raw_parts if len(p) > MIN_QUESTION_PART), raw_parts[0])
            if len(relevant) > 10:
                parts.append(f"Context: {relevant[:200]}")

    if descriptor.aria_text and descriptor.aria_text != label:
        parts.append(f"Description: {descriptor.aria_text}")

    if descriptor.options:
        parts.append("Options include: " + ", ".join(descriptor.options[:5]))

    if not parts and descriptor.id:
        parts.append(f"Form field with ID: {readable_id(descriptor.id)}")

    return ". ".join(parts) or "Unknown form field"


def prior_answer(label: str) -> Optional[str]:
    """Recorded answer trailing a follow-up label ("... *Yes")."""
    match = _PRIOR_ANSWER.search(label or "")
    return match.group(1).capitalize() if match else None


def build_field_details(descriptor: FieldDescriptor, max_options: int = 10) -> str:
    """Field block for oracle prompts."""
    options = json.dumps(list(descriptor.options[:max_options])) if descriptor.options else "N/A"
    return "\n".join([
        f'- Label: "{(descriptor.label or "N/A")[:400]}"',
        f'- Field ID: "{descriptor.id or "N/A"}"',
        f"- Field Type: {descriptor.modality.value}",
        f"- Options: {options}",
        f'- Section/Context: "{(descriptor.section_context or "")[:500]}"',
    ])
