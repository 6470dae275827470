"""
LLM client factory with rate limiting, for the oracle.

Supports:
- Anthropic (claude-haiku-4-5 for verification, claude-opus-4-5 for classification)
- OpenAI (gpt-4o, gpt-4o-mini, etc.)

Usage:
    client = create_instructor_client(provider="anthropic", timeout=30.0)
    result = client.chat.completions.create(
        model=model,
        response_model=MySchema,
        messages=[...],
    )
"""

import logging
import os
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

import instructor

logger = logging.getLogger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


MODEL_ALIASES = {
    "claude-haiku": "claude-haiku-4-5-20251001",
    "claude-opus": "claude-opus-4-5-20251101",
    "claude-sonnet": "claude-sonnet-4-20250514",
    "claude-haiku-3": "claude-3-haiku-20240307",
}

API_KEY_ENV_VARS = {
    LLMProvider.OPENAI: "OPENAI_API_KEY",
    LLMProvider.ANTHROPIC: "ANTHROPIC_API_KEY",
}


@dataclass
class RateLimitConfig:
    """Rate limiting configuration."""
    requests_per_minute: Optional[int] = None  # None = no limit
    delay_between_calls: float = 0.0  # Fixed delay between API calls (seconds)
    max_retries: int = 3  # Max retries on rate limit errors
    initial_retry_delay: float = 1.0  # Initial retry delay for exponential backoff
    max_retry_delay: float = 30.0

    def get_delay(self) -> float:
        """Calculate delay to apply between calls."""
        if self.delay_between_calls > 0:
            return self.delay_between_calls
        if self.requests_per_minute and self.requests_per_minute > 0:
            return 60.0 / self.requests_per_minute
        return 0.0


# A form page issues a handful of calls at most; keep the limits loose
DEFAULT_RATE_LIMITS = {
    LLMProvider.ANTHROPIC: RateLimitConfig(
        requests_per_minute=800,
        delay_between_calls=0.1,
        max_retries=3,
        initial_retry_delay=1.0,
        max_retry_delay=30.0,
    ),
    LLMProvider.OPENAI: RateLimitConfig(
        requests_per_minute=60,
        delay_between_calls=0.5,
        max_retries=3,
        initial_retry_delay=1.0,
        max_retry_delay=30.0,
    ),
}


def detect_provider(model: str) -> LLMProvider:
    """
    Auto-detect provider from model name.

    Args:
        model: Model name or alias

    Returns:
        Detected LLMProvider (OpenAI for anything unrecognised)
    """
    resolved_model = MODEL_ALIASES.get(model, model)

    if resolved_model.startswith("claude"):
        return LLMProvider.ANTHROPIC
    if resolved_model.startswith(("gpt", "o1", "o3", "o4")):
        return LLMProvider.OPENAI

    logger.warning(f"Could not detect provider for model '{model}', defaulting to OpenAI")
    return LLMProvider.OPENAI


def resolve_model_name(model: str) -> str:
    """Resolve model alias to full model name."""
    return MODEL_ALIASES.get(model, model)


def has_api_key(provider: str) -> bool:
    """Whether the provider's API key is present in the environment."""
    return bool(os.environ.get(API_KEY_ENV_VARS[LLMProvider(provider.lower())]))


def create_instructor_client(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    rate_limit: Optional[RateLimitConfig] = None,
    timeout: float = 30.0,
) -> Any:
    """
    Create an instructor-wrapped LLM client.

    Args:
        provider: "openai" or "anthropic". Auto-detected from model if None.
        model: Model name (used for auto-detection if provider is None)
        api_key: API key. Uses environment variable if None.
        rate_limit: Rate limiting configuration (provider default if None)
        timeout: Per-request timeout in seconds

    Returns:
        Instructor-wrapped client ready for structured responses

    Raises:
        ValueError: If provider is invalid
    """
    if provider is None:
        provider = detect_provider(model).value if model else LLMProvider.ANTHROPIC.value

    provider_enum = LLMProvider(provider.lower())
    if rate_limit is None:
        rate_limit = DEFAULT_RATE_LIMITS[provider_enum]

    if provider_enum == LLMProvider.OPENAI:
        return _create_openai_client(api_key, rate_limit, timeout)
    elif provider_enum == LLMProvider.ANTHROPIC:
        return _create_anthropic_client(api_key, rate_limit, timeout)
    else:
        raise ValueError(f"Unsupported provider: {provider}")


def _create_openai_client(
    api_key: Optional[str],
    rate_limit: RateLimitConfig,
    timeout: float,
) -> Any:
    """Create OpenAI instructor client."""
    from openai import OpenAI

    client = OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
    instructor_client = instructor.from_openai(client)
    return _wrap_with_rate_limiting(instructor_client, rate_limit)


def _create_anthropic_client(
    api_key: Optional[str],
    rate_limit: RateLimitConfig,
    timeout: float,
) -> Any:
    """Create Anthropic instructor client."""
    import anthropic

    if api_key is None:
        api_key = os.environ.get("ANTHROPIC_API_KEY")

    # Retries are handled by retry_with_backoff so the timeout stays bounded
    client = anthropic.Anthropic(api_key=api_key, timeout=timeout, max_retries=0)
    instructor_client = instructor.from_anthropic(client)
    return _wrap_with_rate_limiting(instructor_client, rate_limit)


def _wrap_with_rate_limiting(client: Any, rate_limit: RateLimitConfig) -> Any:
    """
    Wrap an instructor client with rate limiting.

    This wraps the chat.completions.create method to add delays.
    """
    original_create = client.chat.completions.create
    last_call_time = [0.0]

    def rate_limited_create(*args, **kwargs):
        delay = rate_limit.get_delay()
        if delay > 0:
            elapsed = time.time() - last_call_time[0]
            if elapsed < delay:
                sleep_time = delay - elapsed
                logger.debug(f"Rate limiting: sleeping {sleep_time:.2f}s")
                time.sleep(sleep_time)

        result = original_create(*args, **kwargs)
        last_call_time[0] = time.time()
        return result

    client.chat.completions.create = rate_limited_create
    return client


def is_rate_limit_error(error: Exception) -> bool:
    error_str = str(error).lower()
    return (
        "429" in error_str or
        "rate limit" in error_str or
        "too many requests" in error_str or
        "overloaded" in error_str
    )


def retry_with_backoff(
    func: Callable[[], Any],
    rate_limit: Optional[RateLimitConfig] = None,
) -> Any:
    """
    Execute a function with exponential backoff retry on rate limit errors.

    Any other error is re-raised immediately.

    Raises:
        Last exception if all retries exhausted
    """
    max_retries = rate_limit.max_retries if rate_limit else 3
    initial_delay = rate_limit.initial_retry_delay if rate_limit else 1.0
    max_delay = rate_limit.max_retry_delay if rate_limit else 30.0

    for attempt in range(max_retries + 1):
        try:
            return func()
        except Exception as e:
            if not is_rate_limit_error(e):
                raise

            if attempt == max_retries:
                logger.error(f"Rate limit exceeded after {max_retries} retries")
                raise

            delay = min(initial_delay * (2 ** attempt), max_delay)
            sleep_time = delay * random.uniform(0.5, 1.5)
            logger.warning(
                f"Rate limit hit (attempt {attempt + 1}/{max_retries + 1}), "
                f"retrying in {sleep_time:.1f}s..."
            )
            time.sleep(sleep_time)
