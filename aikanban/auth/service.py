"""Account and session management for aikanban.

Sign-up, sign-in and sign-out are exposed through AuthService; every session
change is broadcast to listeners registered with `on_auth_state_change`.
"""

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aikanban.errors import AuthenticationError, ValidationError
from aikanban.auth.jwt import create_access_token, decode_access_token
from aikanban.auth.passwords import hash_password, verify_password
from aikanban.database.user_repository import SessionRepository, UserRepository
from aikanban.models.task_factory import utc_now
from aikanban.models.user import AuthSession, User

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class AuthEvent(str, Enum):
    """Session change broadcast to auth listeners."""
    SIGNED_UP = "SIGNED_UP"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"


AuthListener = Callable[[AuthEvent, Optional[AuthSession]], object]


class AuthEvents:
    """Registry of session-change listeners."""

    def __init__(self):
        self._listeners: List[AuthListener] = []

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception as e:
                logger.error(f"Auth listener failed on {event.value}: {type(e).__name__}: {str(e)}")


# Listeners shared by the API process
default_auth_events = AuthEvents()


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class AuthService:
    """Email/password accounts with revocable bearer sessions."""

    def __init__(self, db: Session, events: Optional[AuthEvents] = None):
        self.db = db
        self.events = events or default_auth_events
        self.users = UserRepository(db)
        self.sessions = SessionRepository(db)

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        return self.events.subscribe(listener)

    def _open_session(self, user: User) -> AuthSession:
        now = utc_now()
        session_id = str(uuid.uuid4())
        token, expires_at = create_access_token(user.id, session_id, now=now)
        self.sessions.create(user.id, session_id, now=now, expires_at=expires_at)
        return AuthSession(access_token=token, expires_at=expires_at, user=user)

    def sign_up(self, email: str, password: str, name: Optional[str] = None) -> AuthSession:
        """Create an account and sign it in.

        Raises:
            ValidationError: If the email is malformed, the password is too short,
                or the email is already registered
        """
        email = normalize_email(email)
        if "@" not in email or email.startswith("@") or email.endswith("@"):
            raise ValidationError("A valid email address is required")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if self.users.get_by_email(email):
            raise ValidationError("Email is already registered")

        try:
            user = self.users.create(email, hash_password(password), (name or "").strip() or None, now=utc_now())
        except IntegrityError as e:
            raise ValidationError("Email is already registered") from e

        session = self._open_session(user)
        logger.info(f"User {user.id} signed up")
        self.events.emit(AuthEvent.SIGNED_UP, session)
        return session

    def sign_in(self, email: str, password: str) -> AuthSession:
        """Open a session for an existing account.

        Raises:
            AuthenticationError: If the email/password pair is not recognized
        """
        email = normalize_email(email)
        stored_hash = self.users.get_password_hash(email)
        if not stored_hash or not verify_password(password or "", stored_hash):
            logger.debug("Rejected sign-in attempt")
            raise AuthenticationError("Invalid email or password")

        user = self.users.get_by_email(email)
        session = self._open_session(user)
        logger.info(f"User {user.id} signed in")
        self.events.emit(AuthEvent.SIGNED_IN, session)
        return session

    def get_current_session(self, token: str) -> Optional[AuthSession]:
        """Resolve a bearer token to its session, or None when it is invalid, expired or revoked."""
        payload = decode_access_token(token)
        if not payload:
            return None
        if not self.sessions.is_active(payload["jti"], now=utc_now()):
            return None
        user = self.users.get(payload["sub"])
        if not user:
            return None
        expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        return AuthSession(access_token=token, expires_at=expires_at, user=user)

    def sign_out(self, token: str) -> bool:
        """Revoke the session behind a token. Returns False when there was no active session."""
        session = self.get_current_session(token)
        if session is None:
            return False
        payload = decode_access_token(token)
        revoked = self.sessions.revoke(payload["jti"], now=utc_now())
        if revoked:
            logger.info(f"User {session.user.id} signed out")
            self.events.emit(AuthEvent.SIGNED_OUT, None)
        return revoked
