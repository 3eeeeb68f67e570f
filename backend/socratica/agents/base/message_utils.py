"""Utilities for turning stored messages into LangChain chat messages."""

import json
import re
from typing import Any, Iterable, List, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

# Older replies sometimes had the raw structured payload appended to the text
_TRAILING_PAYLOAD_RE = re.compile(r'\s*\{"tutor_reply"[\s\S]*"metadata"[\s\S]*\}\s*$')


def clean_stored_text(text: str) -> str:
    """Strip an accidentally stored trailing ``{"tutor_reply": ...}`` payload."""
    return _TRAILING_PAYLOAD_RE.sub("", text or "")


def history_to_langchain(messages: Iterable[Any]) -> List[BaseMessage]:
    """
    Convert stored conversation messages to LangChain message objects.

    Args:
        messages: Objects or dicts with ``sender`` and ``text``

    Returns:
        Student turns as HumanMessage, tutor turns as AIMessage
    """
    result: List[BaseMessage] = []
    for msg in messages:
        if isinstance(msg, dict):
            sender, text = msg.get("sender"), msg.get("text", "")
        else:
            sender, text = getattr(msg, "sender", None), getattr(msg, "text", "")

        content = clean_stored_text(text)
        if sender == "student":
            result.append(HumanMessage(content=content))
        else:
            result.append(AIMessage(content=content))
    return result


def message_content(message: Any) -> str:
    """Extract plain-text content from dict or LangChain message objects."""
    if isinstance(message, dict):
        content = message.get("content", "")
        return content if isinstance(content, str) else str(content)

    if isinstance(message, BaseMessage):
        content = getattr(message, "content", "")
        if isinstance(content, list):
            # Content blocks: keep the text parts
            return "".join(
                block.get("text", "") if isinstance(block, dict) else str(block)
                for block in content
            )
        return content if isinstance(content, str) else str(content)

    return str(message) if message is not None else ""


_FENCE_RE = re.compile(r"^```(?:json)?\s*([\s\S]*?)\s*```$")


def extract_json_object(text: str) -> Optional[dict]:
    """Parse a reply that should be one JSON object, tolerating code fences."""
    candidate = (text or "").strip()
    fenced = _FENCE_RE.match(candidate)
    if fenced:
        candidate = fenced.group(1)
    try:
        value = json.loads(candidate)
    except (json.JSONDecodeError, TypeError):
        return None
    return value if isinstance(value, dict) else None
