"""SQLAlchemy database models for aikanban.

Column names follow the store's underscore_case row format (ai_enhanced,
ai_suggested_tags, archived_at, ...).
"""

from datetime import datetime, timezone
from typing import Optional, Type, TypeVar, Union
import uuid
from sqlalchemy import Column, String, Boolean, DateTime, JSON, ForeignKey

from aikanban.database.database import Base
from aikanban.models.task import TaskPriority, TaskStatus

T = TypeVar('T')


def enum_to_value(enum_obj: Union[str, T]) -> str:
    """Convert enum to string value (handles both enum and string).

    Args:
        enum_obj: Enum instance or string value

    Returns:
        String value of the enum, or the string itself if already a string
    """
    if hasattr(enum_obj, 'value'):
        return enum_obj.value
    return str(enum_obj)


def value_to_enum(value: str, enum_class: Type[T], default: T) -> T:
    """Convert string to enum with fallback to default."""
    if not value:
        return default
    try:
        return enum_class(value.lower())
    except (ValueError, AttributeError):
        return default


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; every stored timestamp is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TaskDB(Base):
    """Database model for Task."""

    __tablename__ = "tasks"

    # Primary key (minted by the store, never by the client)
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    # User association
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Basic fields
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    priority = Column(String, nullable=False, default=TaskPriority.MEDIUM.value)
    status = Column(String, nullable=False, default=TaskStatus.BACKLOG.value)

    # Tags (stored as JSON arrays)
    tags = Column(JSON, nullable=False, default=list)
    ai_enhanced = Column(Boolean, nullable=False, default=False)
    ai_suggested_tags = Column(JSON, nullable=False, default=list)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)

    # Archive (soft delete)
    archived = Column(Boolean, nullable=False, default=False, index=True)
    archived_at = Column(DateTime(timezone=True), nullable=True)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from aikanban.models.task import Task

        return Task(
            id=self.id,
            user_id=self.user_id,
            title=self.title,
            description=self.description,
            priority=value_to_enum(self.priority, TaskPriority, TaskPriority.MEDIUM),
            status=value_to_enum(self.status, TaskStatus, TaskStatus.BACKLOG),
            tags=list(self.tags or []),
            ai_enhanced=bool(self.ai_enhanced),
            ai_suggested_tags=list(self.ai_suggested_tags or []),
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
            archived=bool(self.archived),
            archived_at=as_utc(self.archived_at),
        )

    @classmethod
    def from_pydantic(cls, task, user_id: str, task_id: Optional[str] = None):
        """Create database model from Pydantic model.

        The row gets a fresh id unless `task_id` is given; the client-side id is provisional.
        """
        return cls(
            id=task_id or str(uuid.uuid4()),
            user_id=user_id,
            title=task.title,
            description=task.description,
            priority=enum_to_value(task.priority),
            status=enum_to_value(task.status),
            tags=list(task.tags),
            ai_enhanced=task.ai_enhanced,
            ai_suggested_tags=list(task.ai_suggested_tags),
            created_at=task.created_at,
            updated_at=task.updated_at,
            archived=task.archived,
            archived_at=task.archived_at,
        )


class UserDB(Base):
    """Database model for User."""

    __tablename__ = "users"

    # Primary key
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    # User profile
    email = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=True)
    password_hash = Column(String, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from aikanban.models.user import User
        return User(
            id=self.id,
            email=self.email,
            name=self.name,
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
        )


class SessionDB(Base):
    """An issued access token. Sign-out revokes it; the JWT alone is not enough."""

    __tablename__ = "auth_sessions"

    # Primary key (the JWT "jti" claim)
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
