"""Database package for Socratica."""

from .base import (
    Base,
    close_all,
    get_session,
    get_session_maker,
    init_databases,
    insert_or_fetch,
    utcnow_iso,
)

__all__ = [
    "Base",
    "close_all",
    "get_session",
    "get_session_maker",
    "init_databases",
    "insert_or_fetch",
    "utcnow_iso",
]
