"""Repository layer for task database operations."""

import logging
from typing import Any, Dict, List, Mapping, Optional
from sqlalchemy.orm import Session
from sqlalchemy import desc

from aikanban.errors import NotFound, ValidationError
from aikanban.models.task import ChangeEvent, Task, TaskChange
from aikanban.database.changes import ChangeFeed
from aikanban.database.models import TaskDB, enum_to_value

logger = logging.getLogger(__name__)

# Task fields that map 1:1 onto writable columns
UPDATABLE_COLUMNS = frozenset({
    "title",
    "description",
    "priority",
    "status",
    "tags",
    "ai_enhanced",
    "ai_suggested_tags",
    "updated_at",
    "archived",
    "archived_at",
})
_ENUM_COLUMNS = ("priority", "status")


class TaskRepository:
    """Repository for Task database operations.

    Every committed write is published to the change feed, when one is given.
    """

    def __init__(self, db: Session, feed: Optional[ChangeFeed] = None):
        self.db = db
        self.feed = feed

    def _publish(self, event: ChangeEvent, user_id: str, new: Optional[Task] = None, old: Optional[Task] = None) -> None:
        if self.feed is not None:
            self.feed.publish(TaskChange(event=event, user_id=user_id, new=new, old=old))

    def _find(self, user_id: str, task_id: str) -> Optional[TaskDB]:
        return self.db.query(TaskDB).filter(
            TaskDB.id == task_id,
            TaskDB.user_id == user_id,
        ).first()

    def get(self, user_id: str, task_id: str) -> Optional[Task]:
        """Get task by ID for a specific user."""
        task_db = self._find(user_id, task_id)
        return task_db.to_pydantic() if task_db else None

    def list_active(self, user_id: str) -> List[Task]:
        """Get non-archived tasks for a user, newest first."""
        tasks_db = self.db.query(TaskDB).filter(
            TaskDB.user_id == user_id,
            TaskDB.archived.is_(False),
        ).order_by(desc(TaskDB.created_at)).all()
        return [task_db.to_pydantic() for task_db in tasks_db]

    def list_archived(self, user_id: str) -> List[Task]:
        """Get archived tasks for a user, most recently archived first."""
        tasks_db = self.db.query(TaskDB).filter(
            TaskDB.user_id == user_id,
            TaskDB.archived.is_(True),
        ).order_by(desc(TaskDB.archived_at)).all()
        return [task_db.to_pydantic() for task_db in tasks_db]

    def insert(self, task: Task, user_id: str) -> Task:
        """Insert a task. The stored row gets its own id; the returned task carries it."""
        try:
            task_db = TaskDB.from_pydantic(task, user_id=user_id)
            self.db.add(task_db)
            self.db.commit()
            self.db.refresh(task_db)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to insert task {task.id}: {type(e).__name__}: {str(e)}")
            raise

        stored = task_db.to_pydantic()
        logger.debug(f"Inserted task {task.id} as {stored.id}: {stored.title[:50]}")
        self._publish(ChangeEvent.INSERT, user_id, new=stored)
        return stored

    def update(self, user_id: str, task_id: str, changes: Mapping[str, Any]) -> Task:
        """Apply a partial update.

        Raises:
            NotFound: If the task does not exist for this user
            ValidationError: If `changes` names a field that cannot be written
        """
        unknown = set(changes) - UPDATABLE_COLUMNS
        if unknown:
            raise ValidationError(f"Cannot update task fields: {', '.join(sorted(unknown))}")

        task_db = self._find(user_id, task_id)
        if not task_db:
            raise NotFound(task_id)

        old = task_db.to_pydantic()
        values: Dict[str, Any] = dict(changes)
        for column in _ENUM_COLUMNS:
            if column in values:
                values[column] = enum_to_value(values[column])
        for column, value in values.items():
            if column in ("tags", "ai_suggested_tags"):
                value = list(value or [])
            setattr(task_db, column, value)

        try:
            self.db.commit()
            self.db.refresh(task_db)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update task {task_id}: {type(e).__name__}: {str(e)}")
            raise

        stored = task_db.to_pydantic()
        logger.debug(f"Updated task {task_id}: {sorted(values)}")
        self._publish(ChangeEvent.UPDATE, user_id, new=stored, old=old)
        return stored

    def delete(self, user_id: str, task_id: str) -> bool:
        """Permanently delete a task by ID for a specific user."""
        task_db = self._find(user_id, task_id)
        if not task_db:
            return False

        old = task_db.to_pydantic()
        try:
            self.db.delete(task_db)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete task {task_id}: {type(e).__name__}: {str(e)}")
            raise

        logger.debug(f"Deleted task {task_id}")
        self._publish(ChangeEvent.DELETE, user_id, old=old)
        return True
