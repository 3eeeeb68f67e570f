"""Base infrastructure for the tutor agent."""

from .llm import classify_llm_error, get_llm, get_tutor_llm

__all__ = [
    "classify_llm_error",
    "get_llm",
    "get_tutor_llm",
]
