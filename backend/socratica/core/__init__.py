"""Core configuration, errors and security for the Socratica backend."""

from .config import Settings, get_settings
from .errors import (
    AuthenticationError,
    AuthorizationError,
    InvalidJoinCodeError,
    NotFoundError,
    PersistenceError,
    SocraticaError,
    UpstreamError,
    ValidationError,
)
from .security import (
    create_access_token,
    verify_password,
    get_password_hash,
    verify_access_token,
)

__all__ = [
    "Settings",
    "get_settings",
    "AuthenticationError",
    "AuthorizationError",
    "InvalidJoinCodeError",
    "NotFoundError",
    "PersistenceError",
    "SocraticaError",
    "UpstreamError",
    "ValidationError",
    "create_access_token",
    "verify_password",
    "get_password_hash",
    "verify_access_token",
]
