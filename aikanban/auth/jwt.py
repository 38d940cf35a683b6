"""JWT token generation and validation for aikanban."""

import os
import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Tuple
from dotenv import load_dotenv

load_dotenv()

# JWT configuration
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRATION_HOURS = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))


def create_access_token(user_id: str, session_id: str, now: Optional[datetime] = None) -> Tuple[str, datetime]:
    """Create a JWT access token for a user session.

    Args:
        user_id: User ID to encode in token
        session_id: Session ID, stored as the "jti" claim so sign-out can revoke it
        now: Issue time (defaults to the current UTC time)

    Returns:
        Tuple of (encoded JWT token string, expiry timestamp)
    """
    issued_at = now or datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(hours=JWT_EXPIRATION_HOURS)
    payload = {
        "sub": user_id,  # Subject (user ID)
        "jti": session_id,
        "exp": expires_at,
        "iat": issued_at,  # Issued at
    }
    token = jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)
    return token, expires_at


def decode_access_token(token: str) -> Optional[Dict]:
    """Decode and validate a JWT access token.

    Returns:
        Decoded token payload (with 'sub' and 'jti'), or None if invalid or expired
    """
    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        return None
    if not payload.get("sub") or not payload.get("jti"):
        return None
    return payload
