"""Error taxonomy shared by services and API routes.

Every error carries the HTTP status it maps to at the request boundary.
Services raise these; ``socratica.main`` turns them into ``{"error": ...}``
responses.
"""

from typing import Any, Dict


class SocraticaError(Exception):
    """Base class for all handled application errors."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message}


class AuthorizationError(SocraticaError):
    """Caller lacks the role or ownership for the target resource."""

    status_code = 403


class AuthenticationError(AuthorizationError):
    """Missing, expired or invalid credentials."""

    status_code = 401


class ValidationError(SocraticaError):
    """Missing or malformed input."""

    status_code = 400


class NotFoundError(SocraticaError):
    status_code = 404


class InvalidJoinCodeError(NotFoundError):
    """Join code did not resolve to a course. Reported as bad input."""

    status_code = 400

    def __init__(self, message: str = "Invalid join code"):
        super().__init__(message)


class PersistenceError(SocraticaError):
    """Underlying store read or write failed."""

    status_code = 500


class UpstreamError(SocraticaError):
    """The LLM provider failed, throttled us, or returned unusable content."""

    RATE_LIMITED = "rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"
    UNAVAILABLE = "unavailable"
    MALFORMED = "malformed"

    _STATUS = {
        RATE_LIMITED: 429,
        QUOTA_EXCEEDED: 402,
        UNAVAILABLE: 503,
        MALFORMED: 502,
    }
    _RETRYABLE = {RATE_LIMITED, UNAVAILABLE}

    def __init__(self, message: str, category: str = UNAVAILABLE):
        super().__init__(message)
        if category not in self._STATUS:
            raise ValueError(f"Unknown upstream error category: {category}")
        self.category = category

    @property
    def status_code(self) -> int:  # type: ignore[override]
        return self._STATUS[self.category]

    @property
    def retryable(self) -> bool:
        return self.category in self._RETRYABLE

    def to_payload(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "category": self.category,
            "retryable": self.retryable,
        }
