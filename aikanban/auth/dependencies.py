"""FastAPI dependencies for authentication."""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from aikanban.database.database import get_db
from aikanban.auth.service import AuthService
from aikanban.models.user import AuthSession, User

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    return AuthService(db)


def get_current_session(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    auth: AuthService = Depends(get_auth_service),
) -> AuthSession:
    """Get the current session from the bearer token.

    Raises:
        HTTPException: If the token is missing, invalid, expired or revoked
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    session = auth.get_current_session(credentials.credentials)
    if not session:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


def get_current_user(session: AuthSession = Depends(get_current_session)) -> User:
    """Get current authenticated user."""
    return session.user
