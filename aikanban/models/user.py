"""User data model for aikanban."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class User(BaseModel):
    """User model for aikanban."""

    id: str = Field(..., description="Unique user identifier")
    email: str = Field(..., description="User email address")
    name: Optional[str] = Field(None, description="User display name")
    created_at: datetime = Field(..., description="User creation timestamp")
    updated_at: datetime = Field(..., description="User last update timestamp")


class AuthSession(BaseModel):
    """An authenticated session: the user plus the bearer token that identifies it."""

    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: User
