"""Tests for the oracle interface, prompts, and provider helpers."""

import pytest

from field_cascade.classify.llm_provider import (
    LLMProvider,
    RateLimitConfig,
    detect_provider,
    is_rate_limit_error,
    resolve_model_name,
    retry_with_backoff,
)
from field_cascade.classify.oracle import (
    ClassifyRequest,
    DirectAnswerRequest,
    FakeOracle,
    LLMOracle,
    PageHint,
    VerificationResponse,
    VerifyRequest,
    build_classify_prompt,
    build_verify_prompt,
    normalize_token,
)
from field_cascade.classify.taxonomy import FIELD_TYPES
from field_cascade.errors import AmbiguousTaxonomyResponse, OracleTransportError


# ─── Token normalization ─────────────────────────────────────────────────────

class TestNormalizeToken:
    """Tests for normalize_token."""

    def test_cleans_decoration(self):
        """Backticks, quotes, trailing dots and case are stripped."""
        assert normalize_token(" `Visa_Sponsorship`. ", FIELD_TYPES) == "visa_sponsorship"
        assert normalize_token('"first_name"', FIELD_TYPES) == "first_name"

    @pytest.mark.parametrize("raw", [None, "", "none", "None of the above", "N/A", "unknown"])
    def test_none_sentinels(self, raw):
        """'None of the above' answers map to None."""
        assert normalize_token(raw, FIELD_TYPES) is None

    def test_out_of_taxonomy(self):
        """Anything else outside the taxonomy raises."""
        with pytest.raises(AmbiguousTaxonomyResponse) as exc_info:
            normalize_token("favourite_colour", FIELD_TYPES)
        assert exc_info.value.token == "favourite_colour"

    def test_restricted_taxonomy(self):
        """The request's taxonomy is the one checked."""
        with pytest.raises(AmbiguousTaxonomyResponse):
            normalize_token("visa_sponsorship", ["explanation_text", "skills"])


# ─── Prompts ─────────────────────────────────────────────────────────────────

class TestPrompts:
    """Prompt selection by request shape."""

    def test_questionnaire(self):
        """Generic fields get the numbered question list and their position."""
        request = ClassifyRequest(
            field_details="Label: Select One",
            taxonomy=FIELD_TYPES,
            label="Select One",
            page_hint=PageHint(
                label="Select One",
                position=2,
                total=3,
                questions=["Are you 18?", "Will you require sponsorship?", "Were you referred?"],
            ),
        )
        prompt = build_classify_prompt(request)
        assert request.mode == "questionnaire"
        assert "DROPDOWN #2 of 3" in prompt
        assert 'Q2: "Will you require sponsorship?"' in prompt

    def test_free_text_with_prior_answer(self):
        """The guard prompt carries the prior answer hint."""
        request = ClassifyRequest(
            field_details="Label: Explain",
            taxonomy=["explanation_text"],
            free_text_only=True,
            prior_answer="No",
        )
        prompt = build_classify_prompt(request)
        assert request.mode == "free_text"
        assert "TEXTAREA" in prompt
        assert 'answered "No"' in prompt

    def test_question_and_label(self):
        """A question wins over a plain label."""
        question = ClassifyRequest(field_details="d", taxonomy=FIELD_TYPES, question="Are you a veteran?")
        label = ClassifyRequest(field_details="Label: Email", taxonomy=FIELD_TYPES, label="Email")
        assert question.mode == "question"
        assert 'QUESTION: "Are you a veteran?"' in build_classify_prompt(question)
        assert label.mode == "label"
        assert "Label: Email" in build_classify_prompt(label)

    def test_verify(self):
        """Question verification names the matched question."""
        prompt = build_verify_prompt(VerifyRequest(
            field_type="visa_sponsorship",
            question="Do you need a visa?",
            matched_question="Will you require sponsorship?",
        ))
        assert "field_type: visa_sponsorship" in prompt
        assert '"Will you require sponsorship?"' in prompt
        assert 'label: "Email"' in build_verify_prompt(VerifyRequest("email", label="Email"))


# ─── FakeOracle ──────────────────────────────────────────────────────────────

class TestFakeOracle:
    """Tests for the scripted oracle."""

    def test_dict_script(self):
        """Dict scripts match a substring of the label or question."""
        oracle = FakeOracle(verify={"sponsor": True})
        assert oracle.verify("visa_sponsorship", label="Sponsorship required?") is True
        assert oracle.verify("email", label="Email") is False
        assert [r.field_type for r in oracle.calls_of("verify")] == ["visa_sponsorship", "email"]

    def test_callable_script(self):
        """Callables receive the request."""
        oracle = FakeOracle(classify=lambda request: "skills" if "skill" in request.label.lower() else "none")
        assert oracle.classify(ClassifyRequest("d", FIELD_TYPES, label="Skills")) == "skills"
        assert oracle.classify(ClassifyRequest("d", FIELD_TYPES, label="Other")) is None

    def test_classify_normalized(self):
        """Scripted tokens go through the same normalization."""
        oracle = FakeOracle(classify="bogus_type")
        with pytest.raises(AmbiguousTaxonomyResponse):
            oracle.classify(ClassifyRequest("d", FIELD_TYPES, label="x"))

    def test_questionnaire_position(self):
        """Questionnaire requests are matched on the question at the field's position."""
        oracle = FakeOracle(classify={"sponsorship": "visa_sponsorship", "18": "age_verification"})
        hint = PageHint("Select One", 1, 2, ["Are you over 18?", "Will you require sponsorship?"])
        assert oracle.classify(ClassifyRequest("d", FIELD_TYPES, page_hint=hint)) == "age_verification"

    def test_fail(self):
        """Failing oracles still log the attempt."""
        oracle = FakeOracle(fail=True)
        with pytest.raises(OracleTransportError):
            oracle.verify("email", label="Email")
        assert oracle.call_count == 1

    def test_direct_answer(self):
        """Blank answers become None."""
        oracle = FakeOracle(direct_answer={"relocate": " Yes "})
        request = DirectAnswerRequest("Are you willing to relocate?", "d", "profile")
        assert oracle.direct_answer(request) == "Yes"
        assert oracle.direct_answer(DirectAnswerRequest("Other?", "d", "profile")) is None


# ─── LLMOracle ───────────────────────────────────────────────────────────────

class _Completions:
    def __init__(self, error=None, response=None):
        self.error = error
        self.response = response
        self.kwargs = []

    def create(self, **kwargs):
        self.kwargs.append(kwargs)
        if self.error:
            raise self.error
        return self.response


class _Client:
    def __init__(self, completions):
        self.chat = type("Chat", (), {"completions": completions})()


class TestLLMOracle:
    """Tests for LLMOracle with a stub client."""

    def test_aliases(self):
        """Model aliases resolve and pick the provider."""
        oracle = LLMOracle(verify_model="claude-haiku", classify_model="claude-opus")
        assert oracle.verify_model == "claude-haiku-4-5-20251001"
        assert oracle.provider == "anthropic"

    def test_transport_error(self):
        """Any client failure surfaces as OracleTransportError."""
        oracle = LLMOracle()
        oracle._client = _Client(_Completions(error=ValueError("connection reset")))
        with pytest.raises(OracleTransportError):
            oracle.verify("email", label="Email")

    def test_verify_uses_cheap_model(self):
        """Verification goes to the verify model."""
        completions = _Completions(response=VerificationResponse(is_correct=True, reasoning="label says email"))
        oracle = LLMOracle(verify_model="gpt-4o-mini", classify_model="gpt-4o")
        oracle._client = _Client(completions)

        assert oracle.verify("email", label="Email") is True
        assert completions.kwargs[0]["model"] == "gpt-4o-mini"


class TestProviderHelpers:
    """Tests for llm_provider helpers."""

    def test_detect_provider(self):
        """Provider is inferred from the model name."""
        assert detect_provider("claude-sonnet") == LLMProvider.ANTHROPIC
        assert detect_provider("gpt-4.1") == LLMProvider.OPENAI
        assert resolve_model_name("claude-haiku-3") == "claude-3-haiku-20240307"

    def test_rate_limit_detection(self):
        """429 and overload messages count as rate limits."""
        assert is_rate_limit_error(Exception("Error 429: Too Many Requests"))
        assert is_rate_limit_error(Exception("Overloaded"))
        assert not is_rate_limit_error(Exception("bad request"))

    def test_retry_reraises_other_errors(self):
        """Non-rate-limit errors are not retried."""
        calls = []

        def failing():
            calls.append(1)
            raise ValueError("bad request")

        with pytest.raises(ValueError):
            retry_with_backoff(failing, RateLimitConfig(max_retries=3))
        assert len(calls) == 1

    def test_retry_recovers(self):
        """A rate-limited call is retried until it succeeds."""
        attempts = iter([Exception("429"), "ok"])

        def flaky():
            result = next(attempts)
            if isinstance(result, Exception):
                raise result
            return result

        config = RateLimitConfig(max_retries=2, initial_retry_delay=0.0, max_retry_delay=0.0)
        assert retry_with_backoff(flaky, config) == "ok"

    def test_delay(self):
        """Fixed delay wins over requests-per-minute."""
        assert RateLimitConfig(requests_per_minute=60).get_delay() == 1.0
        assert RateLimitConfig(requests_per_minute=60, delay_between_calls=0.2).get_delay() == 0.2
