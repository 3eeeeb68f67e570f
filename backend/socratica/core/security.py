"""Password hashing and signed JWTs for sessions and material downloads.

Two token types share one signing key: ``access`` tokens identify a user
for API calls, ``download`` tokens grant a single material file for a few
minutes. Each verifier rejects the other type.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt

from .config import settings

ACCESS_TOKEN = "access"
DOWNLOAD_TOKEN = "download"

# bcrypt only looks at the first 72 bytes
_BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a stored bcrypt hash."""
    return bcrypt.checkpw(_password_bytes(plain_password), hashed_password.encode("utf-8"))


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")


def _encode(claims: Dict[str, Any], expires_delta: timedelta) -> str:
    to_encode = {**claims, "exp": datetime.now(timezone.utc) + expires_delta}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def _decode(token: str, token_type: str) -> Optional[Dict[str, Any]]:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != token_type:
        return None
    return payload


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create a session token; ``data`` usually carries ``sub`` and ``role``."""
    return _encode(
        {**data, "type": ACCESS_TOKEN},
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def verify_access_token(token: str) -> Optional[dict]:
    """Decoded session claims, or None if the token is invalid or expired."""
    return _decode(token, ACCESS_TOKEN)


def create_download_token(material_id: int, ttl_seconds: int) -> str:
    """Sign a short-lived token granting download of one material file."""
    return _encode(
        {"type": DOWNLOAD_TOKEN, "material_id": material_id},
        timedelta(seconds=ttl_seconds),
    )


def verify_download_token(token: str) -> Optional[int]:
    """Return the material id a download token grants, or None."""
    payload = _decode(token, DOWNLOAD_TOKEN)
    if payload is None:
        return None
    material_id = payload.get("material_id")
    return material_id if isinstance(material_id, int) else None
