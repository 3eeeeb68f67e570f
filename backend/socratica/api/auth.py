"""Authentication API endpoints and the AuthContext dependency."""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select

from ..core.context import AuthContext, Role
from ..core.errors import AuthenticationError, ValidationError
from ..core.security import (
    create_access_token,
    get_password_hash,
    verify_access_token,
    verify_password,
)
from ..db.base import get_session
from ..db.models import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

# auto_error=False so a missing token reaches our own 401 payload
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/v1/auth/login", auto_error=False)


# ==============================================================================
# Pydantic Models
# ==============================================================================

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: str = Field(min_length=1)
    role: Literal["teacher", "student"]


class TokenResponse(BaseModel):
    """JWT token response."""
    access_token: str
    token_type: str = "bearer"
    role: str
    user_id: int


class UserResponse(BaseModel):
    id: int
    email: str
    name: str
    role: str


def _token_for(user: User) -> TokenResponse:
    token = create_access_token({"sub": str(user.id), "role": user.role})
    return TokenResponse(access_token=token, role=user.role, user_id=user.id)


# ==============================================================================
# Authentication Dependencies
# ==============================================================================

async def get_auth_context(token: Optional[str] = Depends(oauth2_scheme)) -> AuthContext:
    """Resolve the bearer token into an explicit AuthContext."""
    if not token:
        raise AuthenticationError("Unauthorized")

    payload = verify_access_token(token)
    if not payload:
        raise AuthenticationError("Invalid authentication credentials")

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid token payload")

    async with get_session() as session:
        user = await session.get(User, user_id)

    if user is None:
        raise AuthenticationError("User not found")

    return AuthContext(user_id=user.id, role=Role(user.role), name=user.name, email=user.email)


# ==============================================================================
# Endpoints
# ==============================================================================

@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest) -> TokenResponse:
    """Create a teacher or student account and return an access token."""
    email = request.email.lower()
    async with get_session() as session:
        existing = await session.execute(select(User.id).where(User.email == email))
        if existing.first() is not None:
            raise ValidationError("Email already registered")

        user = User(
            email=email,
            password_hash=get_password_hash(request.password),
            name=request.name.strip(),
            role=request.role,
        )
        session.add(user)
        await session.commit()

        logger.info("Registered %s %s", user.role, user.id)
        return _token_for(user)


@router.post("/login", response_model=TokenResponse)
async def login(form_data: OAuth2PasswordRequestForm = Depends()) -> TokenResponse:
    """OAuth2 password login; ``username`` is the account email."""
    async with get_session() as session:
        result = await session.execute(
            select(User).where(User.email == form_data.username.lower())
        )
        user = result.scalar_one_or_none()

    if user is None or not verify_password(form_data.password, user.password_hash):
        raise AuthenticationError("Incorrect email or password")
    return _token_for(user)


@router.get("/me", response_model=UserResponse)
async def me(ctx: AuthContext = Depends(get_auth_context)) -> UserResponse:
    return UserResponse(id=ctx.user_id, email=ctx.email, name=ctx.name, role=ctx.role.value)
