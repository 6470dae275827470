"""
Oracle interface for paid verification and classification calls.

Two call shapes plus a fallback:
- verify: cheap yes/no "is this field about X?" check (Tier 2)
- classify: full classification against the taxonomy (Tier 3, textarea guard)
- direct_answer: literal answer from the profile when the type is outside the taxonomy

The cascade only talks to the Oracle base class, so it can run against
FakeOracle in tests with no network access.

Usage:
    oracle = LLMOracle(verify_model="claude-haiku", classify_model="claude-opus")
    if oracle.verify("visa_sponsorship", label="Will you require sponsorship?"):
        ...
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence, Union

from pydantic import BaseModel, Field

from ..errors import AmbiguousTaxonomyResponse, OracleTransportError
from .llm_provider import (
    RateLimitConfig,
    create_instructor_client,
    detect_provider,
    resolve_model_name,
    retry_with_backoff,
)
from .prompts import (
    DIRECT_ANSWER_PROMPT,
    FOCUSED_QUESTION_PROMPT,
    FREE_TEXT_PROMPT,
    PRIOR_ANSWER_HINT,
    QUESTIONNAIRE_PROMPT,
    STANDARD_LABEL_PROMPT,
    VERIFY_LABEL_PROMPT,
    VERIFY_QUESTION_PROMPT,
)
from .taxonomy import KEY_DISTINCTIONS, describe_type

logger = logging.getLogger(__name__)

# Tokens meaning "none of the above"
NONE_SENTINELS = frozenset({"", "none", "none of the above", "unknown", "n/a", "null"})


# =============================================================================
# Requests
# =============================================================================

@dataclass
class PageHint:
    """Positional context for a generic field among same-labeled fields."""
    label: str
    position: int  # 1-based
    total: int
    questions: list[str] = field(default_factory=list)


@dataclass
class VerifyRequest:
    field_type: str
    label: str = ""
    question: Optional[str] = None
    matched_question: Optional[str] = None


@dataclass
class ClassifyRequest:
    """Everything a full classification call needs."""
    field_details: str
    taxonomy: Sequence[str]
    label: str = ""
    question: Optional[str] = None
    page_hint: Optional[PageHint] = None
    free_text_only: bool = False
    prior_answer: Optional[str] = None

    @property
    def mode(self) -> str:
        if self.free_text_only:
            return "free_text"
        if self.page_hint is not None:
            return "questionnaire"
        if self.question:
            return "question"
        return "label"


@dataclass
class DirectAnswerRequest:
    question: str
    field_details: str
    profile_summary: str


# =============================================================================
# Response Schemas
# =============================================================================

class VerificationResponse(BaseModel):
    """Response from a verification call."""

    is_correct: bool = Field(
        description="True only if the proposed field_type is what this field asks for."
    )
    reasoning: str = Field(
        "",
        description="One short sentence explaining the decision.",
    )


class ClassificationResponse(BaseModel):
    """Response from a classification call."""

    field_type: str = Field(
        description="Exactly one field_type token from the list, or 'none' if nothing fits."
    )


class DirectAnswerResponse(BaseModel):
    """Response from the direct-answer fallback."""

    answer: str = Field(description="The answer to enter into the field, nothing else.")


# =============================================================================
# Oracle (Abstract Base)
# =============================================================================

def normalize_token(raw: Optional[str], taxonomy: Sequence[str]) -> Optional[str]:
    """
    Clean an oracle token and check it against the taxonomy.

    Returns:
        The token, or None for an empty/"none" answer

    Raises:
        AmbiguousTaxonomyResponse: token is non-empty and not in the taxonomy
    """
    token = (raw or "").strip().strip("`'\".").strip().lower()
    if token in NONE_SENTINELS:
        return None
    if token not in set(taxonomy):
        raise AmbiguousTaxonomyResponse(token)
    return token


class Oracle(ABC):
    """External verification/classification function."""

    def verify(
        self,
        field_type: str,
        label: str = "",
        question: Optional[str] = None,
        matched_question: Optional[str] = None,
    ) -> bool:
        """
        Cheap yes/no check that a field is about field_type.

        Raises:
            OracleTransportError: network failure or timeout
        """
        return self._verify(VerifyRequest(field_type, label, question, matched_question))

    def classify(self, request: ClassifyRequest) -> Optional[str]:
        """
        Full classification.

        Returns:
            A token from request.taxonomy, or None for "none of the above"

        Raises:
            OracleTransportError: network failure or timeout
            AmbiguousTaxonomyResponse: token outside request.taxonomy
        """
        return normalize_token(self._classify(request), request.taxonomy)

    def direct_answer(self, request: DirectAnswerRequest) -> Optional[str]:
        """Literal answer for a field outside the taxonomy; None if no answer."""
        answer = (self._direct_answer(request) or "").strip()
        return answer or None

    @abstractmethod
    def _verify(self, request: VerifyRequest) -> bool:
        pass

    @abstractmethod
    def _classify(self, request: ClassifyRequest) -> Optional[str]:
        pass

    @abstractmethod
    def _direct_answer(self, request: DirectAnswerRequest) -> Optional[str]:
        pass


# =============================================================================
# LLM-backed Oracle
# =============================================================================

def build_verify_prompt(request: VerifyRequest) -> str:
    description = describe_type(request.field_type)
    if request.question:
        return VERIFY_QUESTION_PROMPT.format(
            question=request.question[:400],
            description=description,
            field_type=request.field_type,
            matched_question=(request.matched_question or request.question)[:200],
        )
    return VERIFY_LABEL_PROMPT.format(
        label=request.label[:300],
        description=description,
        field_type=request.field_type,
    )


def build_classify_prompt(request: ClassifyRequest) -> str:
    taxonomy = ", ".join(request.taxonomy)
    mode = request.mode

    if mode == "free_text":
        hint = PRIOR_ANSWER_HINT.format(answer=request.prior_answer) if request.prior_answer else ""
        return FREE_TEXT_PROMPT.format(
            field_details=request.field_details,
            prior_answer_hint=hint,
            taxonomy=taxonomy,
        )

    if mode == "questionnaire":
        hint = request.page_hint
        question_list = "\n".join(
            f'  Q{i + 1}: "{q[:300]}"' for i, q in enumerate(hint.questions)
        )
        return QUESTIONNAIRE_PROMPT.format(
            total=hint.total,
            label=hint.label,
            position=hint.position,
            question_list=question_list,
            field_details=request.field_details,
            taxonomy=taxonomy,
            distinctions=KEY_DISTINCTIONS,
        )

    if mode == "question":
        return FOCUSED_QUESTION_PROMPT.format(
            question=request.question,
            field_details=request.field_details,
            taxonomy=taxonomy,
            distinctions=KEY_DISTINCTIONS,
        )

    return STANDARD_LABEL_PROMPT.format(
        field_details=request.field_details,
        taxonomy=taxonomy,
        distinctions=KEY_DISTINCTIONS,
    )


class LLMOracle(Oracle):
    """
    Oracle backed by an instructor-wrapped LLM client.

    Verification and the textarea guard use the cheap model; full
    classification and direct answers use the classify model.
    """

    def __init__(
        self,
        verify_model: str = "claude-haiku-4-5-20251001",
        classify_model: str = "claude-opus-4-5-20251101",
        provider: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        rate_limit: Optional[RateLimitConfig] = None,
    ):
        self.verify_model = resolve_model_name(verify_model)
        self.classify_model = resolve_model_name(classify_model)
        self.provider = provider or detect_provider(self.classify_model).value
        self.api_key = api_key
        self.timeout = timeout
        self.rate_limit = rate_limit
        self._client = None

    @property
    def client(self):
        """Lazy-load instructor client."""
        if self._client is None:
            self._client = create_instructor_client(
                provider=self.provider,
                api_key=self.api_key,
                rate_limit=self.rate_limit,
                timeout=self.timeout,
            )
        return self._client

    def _complete(self, model: str, response_model: type[BaseModel], prompt: str, max_tokens: int):
        def call():
            return self.client.chat.completions.create(
                model=model,
                response_model=response_model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                max_retries=1,
            )

        try:
            return retry_with_backoff(call, self.rate_limit)
        except Exception as e:
            logger.warning(f"[Oracle] {response_model.__name__} call failed on {model}: {e}")
            raise OracleTransportError(str(e)) from e

    def _verify(self, request: VerifyRequest) -> bool:
        response = self._complete(
            self.verify_model, VerificationResponse, build_verify_prompt(request), max_tokens=150
        )
        logger.debug(f"[Oracle] verify {request.field_type}: {response.is_correct} ({response.reasoning})")
        return response.is_correct

    def _classify(self, request: ClassifyRequest) -> Optional[str]:
        model = self.verify_model if request.free_text_only else self.classify_model
        response = self._complete(
            model, ClassificationResponse, build_classify_prompt(request), max_tokens=100
        )
        return response.field_type

    def _direct_answer(self, request: DirectAnswerRequest) -> Optional[str]:
        prompt = DIRECT_ANSWER_PROMPT.format(
            question=request.question,
            field_details=request.field_details,
            profile_summary=request.profile_summary,
        )
        response = self._complete(self.classify_model, DirectAnswerResponse, prompt, max_tokens=200)
        return response.answer


# =============================================================================
# Scripted Oracle (offline runs and tests)
# =============================================================================

Scripted = Union[None, bool, str, dict, Callable[[Any], Any]]


class FakeOracle(Oracle):
    """
    Scripted oracle with a call log.

    Each answer may be a constant, a dict keyed by a substring of the
    question or label (first match wins), or a callable taking the request.

    Example:
        oracle = FakeOracle(
            verify={"sponsorship": True},
            classify={"require sponsorship": "visa_sponsorship"},
        )
    """

    def __init__(
        self,
        verify: Scripted = False,
        classify: Scripted = None,
        direct_answer: Scripted = None,
        fail: bool = False,
    ):
        self.verify_script = verify
        self.classify_script = classify
        self.direct_answer_script = direct_answer
        self.fail = fail
        self.calls: list[tuple[str, Any]] = []

    @staticmethod
    def _lookup(script: Scripted, request: Any, text: str, default: Any) -> Any:
        if callable(script):
            return script(request)
        if isinstance(script, dict):
            lowered = text.lower()
            for key, value in script.items():
                if key.lower() in lowered:
                    return value
            return default
        return default if script is None else script

    def _record(self, kind: str, request: Any):
        self.calls.append((kind, request))
        if self.fail:
            raise OracleTransportError(f"scripted {kind} failure")

    def _verify(self, request: VerifyRequest) -> bool:
        self._record("verify", request)
        text = f"{request.question or ''} {request.label} {request.field_type}"
        return bool(self._lookup(self.verify_script, request, text, False))

    def _classify(self, request: ClassifyRequest) -> Optional[str]:
        self._record("classify", request)
        text = f"{request.question or ''} {request.label} {request.field_details}"
        if request.page_hint is not None:
            # Questionnaire mode answers for the question at the field's position
            index = request.page_hint.position - 1
            if 0 <= index < len(request.page_hint.questions):
                text = request.page_hint.questions[index]
        return self._lookup(self.classify_script, request, text, None)

    def _direct_answer(self, request: DirectAnswerRequest) -> Optional[str]:
        self._record("direct_answer", request)
        return self._lookup(self.direct_answer_script, request, request.question, None)

    def calls_of(self, kind: str) -> list[Any]:
        return [request for k, request in self.calls if k == kind]

    @property
    def call_count(self) -> int:
        return len(self.calls)
