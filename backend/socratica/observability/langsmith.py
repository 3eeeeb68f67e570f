"""LangSmith tracing setup and run-config helpers for tutor turns."""

import logging
import os
from typing import Any, Dict, Iterable, Optional

from ..core.config import Settings

logger = logging.getLogger(__name__)


def _export(names: Iterable[str], value: str) -> None:
    for name in names:
        os.environ[name] = value


def initialize_langsmith(settings: Settings) -> bool:
    """
    Export LangSmith settings to the environment LangChain reads.

    Returns:
        True when tracing is requested and an API key is present.
    """
    api_key = settings.LANGSMITH_API_KEY.strip()
    tracing_enabled = bool(settings.LANGSMITH_TRACING) and bool(api_key)

    _export(["LANGSMITH_TRACING", "LANGCHAIN_TRACING_V2"], "true" if tracing_enabled else "false")
    if api_key:
        # LangChain integrations still read the LANGCHAIN_* names
        _export(["LANGSMITH_API_KEY", "LANGCHAIN_API_KEY"], api_key)
        _export(["LANGSMITH_ENDPOINT", "LANGCHAIN_ENDPOINT"], settings.LANGSMITH_ENDPOINT)
        _export(["LANGSMITH_PROJECT", "LANGCHAIN_PROJECT"], settings.LANGSMITH_PROJECT)
        if settings.LANGSMITH_WORKSPACE_ID:
            _export(["LANGSMITH_WORKSPACE_ID"], settings.LANGSMITH_WORKSPACE_ID)

    if tracing_enabled:
        logger.info(
            "LangSmith tracing enabled (project=%s, endpoint=%s)",
            settings.LANGSMITH_PROJECT,
            settings.LANGSMITH_ENDPOINT,
        )
    else:
        logger.info("LangSmith tracing disabled")

    return tracing_enabled


def build_trace_config(
    thread_id: str,
    tags: Optional[Iterable[str]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    run_name: str = "tutor_turn",
) -> Dict[str, Any]:
    """Runnable config naming the run and tagging it for trace search."""
    config: Dict[str, Any] = {
        "run_name": run_name,
        "configurable": {"thread_id": thread_id},
        "metadata": {"thread_id": thread_id, **(metadata or {})},
    }
    if tags:
        config["tags"] = list(tags)
    return config
