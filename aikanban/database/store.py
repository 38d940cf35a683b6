"""Async TaskStore adapter over TaskRepository.

Each call opens its own session from the session factory, so writes issued by
the reconciler never share a transaction.

The session is synchronous, the same way the API routes use it, so a write
holds the event loop for the length of its database round trip. The caller
still sees the write as pending until it completes and receives it through
the task's confirmation.
"""

import logging
from typing import Any, Dict, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from aikanban.errors import RequestFailed
from aikanban.models.task import Task
from aikanban.database.changes import ChangeFeed
from aikanban.database.repository import TaskRepository

logger = logging.getLogger(__name__)


class RepositoryTaskStore:
    """Backing store for one user's board."""

    def __init__(self, session_factory: sessionmaker, user_id: str, feed: Optional[ChangeFeed] = None):
        self.session_factory = session_factory
        self.user_id = user_id
        self.feed = feed

    async def insert(self, task: Task) -> Task:
        with self.session_factory() as db:
            try:
                return TaskRepository(db, self.feed).insert(task, self.user_id)
            except SQLAlchemyError as e:
                raise RequestFailed(f"Task store rejected insert: {type(e).__name__}") from e

    async def update(self, task_id: str, changes: Dict[str, Any]) -> Task:
        with self.session_factory() as db:
            try:
                return TaskRepository(db, self.feed).update(self.user_id, task_id, changes)
            except SQLAlchemyError as e:
                raise RequestFailed(f"Task store rejected update: {type(e).__name__}") from e

    async def delete(self, task_id: str) -> None:
        with self.session_factory() as db:
            try:
                TaskRepository(db, self.feed).delete(self.user_id, task_id)
            except SQLAlchemyError as e:
                raise RequestFailed(f"Task store rejected delete: {type(e).__name__}") from e
