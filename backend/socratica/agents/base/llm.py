"""LLM client factory and provider error classification.

Provides a factory for chat models served by any OpenAI-compatible API and
maps provider failures onto UpstreamError categories.
"""

from typing import Optional

import openai
from langchain_openai import ChatOpenAI

from ...core.config import get_settings
from ...core.errors import UpstreamError


def _resolve_api_key(base_url: str, api_key: str) -> str:
    """Provide a safe API key value for local OpenAI-compatible servers."""
    if api_key:
        return api_key
    base = (base_url or "").lower()
    if "127.0.0.1" in base or "localhost" in base:
        return "lm-studio"
    return ""


def get_llm(
    temperature: Optional[float] = None,
    model: Optional[str] = None,
    max_tokens: Optional[int] = None,
    json_mode: bool = False,
) -> ChatOpenAI:
    """
    Get a configured chat model client.

    Args:
        temperature: Override default temperature (0.0-1.0)
        model: Override default model name
        max_tokens: Override default max tokens
        json_mode: Ask the provider for a single JSON object reply

    Returns:
        Configured ChatOpenAI instance

    Example:
        >>> llm = get_llm(json_mode=True)
        >>> response = await llm.ainvoke(messages)
    """
    settings = get_settings()

    model_kwargs = {}
    if json_mode:
        model_kwargs["response_format"] = {"type": "json_object"}

    return ChatOpenAI(
        base_url=settings.LLM_BASE_URL,
        api_key=_resolve_api_key(settings.LLM_BASE_URL, settings.LLM_API_KEY),
        model=model or settings.LLM_MODEL,
        temperature=temperature if temperature is not None else settings.LLM_TEMPERATURE,
        max_tokens=max_tokens or settings.LLM_MAX_TOKENS,
        max_retries=0,
        model_kwargs=model_kwargs,
    )


def get_tutor_llm() -> ChatOpenAI:
    """FastAPI dependency returning the tutor's JSON-mode chat model."""
    return get_llm(json_mode=True)


# =============================================================================
# Error classification
# =============================================================================

_QUOTA_MARKERS = (
    "insufficient_quota",
    "insufficient balance",
    "no resource package",
    "please recharge",
    "'code': '1113'",
    "error code: 402",
    "payment required",
)

_RATE_LIMIT_MARKERS = (
    "error code: 429",
    "rate limit",
    "too many requests",
    "'code': '1302'",
)

_CONNECTION_MARKERS = (
    "connection error",
    "connecterror",
    "connection refused",
    "timed out",
    "failed to establish a new connection",
)


def _is_llm_quota_error(exc: Exception) -> bool:
    """Detect provider quota/billing exhaustion."""
    text = str(exc).lower()
    return any(marker in text for marker in _QUOTA_MARKERS)


def _is_llm_rate_limit_error(exc: Exception) -> bool:
    text = str(exc).lower()
    return any(marker in text for marker in _RATE_LIMIT_MARKERS)


def _is_llm_connection_error(exc: Exception) -> bool:
    """Detect upstream LLM connectivity issues."""
    text = str(exc).lower()
    return any(marker in text for marker in _CONNECTION_MARKERS)


def classify_llm_error(exc: Exception) -> UpstreamError:
    """Map a chat-model failure onto a user-facing UpstreamError."""
    if isinstance(exc, UpstreamError):
        return exc

    status_code = getattr(exc, "status_code", None)
    if status_code == 402 or _is_llm_quota_error(exc):
        return UpstreamError(
            "AI usage limit reached. Please contact your instructor.",
            UpstreamError.QUOTA_EXCEEDED,
        )
    if isinstance(exc, openai.RateLimitError) or status_code == 429 or _is_llm_rate_limit_error(exc):
        return UpstreamError(
            "Rate limit exceeded. Please wait a moment and try again.",
            UpstreamError.RATE_LIMITED,
        )
    if isinstance(exc, openai.APIConnectionError) or _is_llm_connection_error(exc):
        return UpstreamError(
            "I could not reach the tutor. Try again in a moment.",
            UpstreamError.UNAVAILABLE,
        )
    return UpstreamError(
        "The tutor service failed to respond. Try again in a moment.",
        UpstreamError.UNAVAILABLE,
    )
