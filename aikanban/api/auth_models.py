"""Request/response models for authentication endpoints."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from aikanban.models.user import AuthSession, User


class SignUpRequest(BaseModel):
    """Request model for account creation."""
    email: str = Field(..., description="Account email address")
    password: str = Field(..., description="Account password (at least 6 characters)")
    name: Optional[str] = Field(None, description="Display name")


class SignInRequest(BaseModel):
    """Request model for email/password sign-in."""
    email: str
    password: str


class AuthResponse(BaseModel):
    """Response model for authentication."""
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: User

    @classmethod
    def from_session(cls, session: AuthSession) -> "AuthResponse":
        return cls(
            access_token=session.access_token,
            token_type=session.token_type,
            expires_at=session.expires_at,
            user=session.user,
        )


class SignOutResponse(BaseModel):
    signed_out: bool
