"""Repository for user and session database operations."""

import logging
from datetime import datetime
from typing import Optional
import uuid
from sqlalchemy.orm import Session

from aikanban.models.user import User
from aikanban.database.models import SessionDB, UserDB, as_utc

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for User database operations."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        user_db = self.db.query(UserDB).filter(UserDB.id == user_id).first()
        return user_db.to_pydantic() if user_db else None

    def get_by_email(self, email: str) -> Optional[User]:
        """Get user by email."""
        user_db = self.db.query(UserDB).filter(UserDB.email == email).first()
        return user_db.to_pydantic() if user_db else None

    def get_password_hash(self, email: str) -> Optional[str]:
        user_db = self.db.query(UserDB).filter(UserDB.email == email).first()
        return user_db.password_hash if user_db else None

    def create(self, email: str, password_hash: str, name: Optional[str], now: datetime) -> User:
        """Create a new user.

        Args:
            email: Normalized email address (unique)
            password_hash: Encoded password hash, never the password itself
            name: Optional display name
            now: Creation timestamp

        Returns:
            Created User object
        """
        user_db = UserDB(
            id=str(uuid.uuid4()),
            email=email,
            name=name,
            password_hash=password_hash,
            created_at=now,
            updated_at=now,
        )
        try:
            self.db.add(user_db)
            self.db.commit()
            self.db.refresh(user_db)
            logger.debug(f"Created user {user_db.id}")
            return user_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create user: {type(e).__name__}")
            raise


class SessionRepository:
    """Repository for issued access tokens."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, user_id: str, session_id: str, now: datetime, expires_at: datetime) -> None:
        session_db = SessionDB(id=session_id, user_id=user_id, created_at=now, expires_at=expires_at)
        try:
            self.db.add(session_db)
            self.db.commit()
            logger.debug(f"Opened session {session_id} for user {user_id}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to open session for user {user_id}: {type(e).__name__}")
            raise

    def is_active(self, session_id: str, now: datetime) -> bool:
        """True when the session exists, is not revoked, and has not expired."""
        session_db = self.db.query(SessionDB).filter(SessionDB.id == session_id).first()
        if not session_db or session_db.revoked_at is not None:
            return False
        return as_utc(session_db.expires_at) > now

    def revoke(self, session_id: str, now: datetime) -> bool:
        """Revoke a session. Revoking an unknown or already revoked session returns False."""
        session_db = self.db.query(SessionDB).filter(
            SessionDB.id == session_id,
            SessionDB.revoked_at.is_(None),
        ).first()
        if not session_db:
            return False
        try:
            session_db.revoked_at = now
            self.db.commit()
            logger.debug(f"Revoked session {session_id}")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to revoke session {session_id}: {type(e).__name__}")
            raise
