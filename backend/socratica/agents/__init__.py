"""Socratica - LangGraph tutor agent package."""

from .base import get_llm, get_tutor_llm

__all__ = [
    "get_llm",
    "get_tutor_llm",
]
