"""Task data model for aikanban."""

from datetime import datetime
from typing import List, Optional
from enum import Enum
from pydantic import BaseModel, Field


class TaskStatus(str, Enum):
    """Board column a task sits in."""
    BACKLOG = "backlog"
    TODO = "todo"
    IN_PROGRESS = "inprogress"
    DONE = "done"


class TaskPriority(str, Enum):
    """Task priority enumeration."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Column display titles, in board order
COLUMN_TITLES = {
    TaskStatus.BACKLOG.value: "Backlog",
    TaskStatus.TODO.value: "To Do",
    TaskStatus.IN_PROGRESS.value: "In Progress",
    TaskStatus.DONE.value: "Done",
}


class Task(BaseModel):
    """Canonical Task model."""

    id: str = Field(..., description="Opaque unique task identifier")
    user_id: Optional[str] = Field(None, description="Owner of the task (null for local-only boards)")
    title: str = Field(..., min_length=1, description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    priority: TaskPriority = Field(TaskPriority.MEDIUM, description="Task priority")
    status: TaskStatus = Field(TaskStatus.BACKLOG, description="Board column")
    tags: List[str] = Field(default_factory=list, description="Tags in display order")
    ai_enhanced: bool = Field(False, description="Whether AI suggestions were applied")
    ai_suggested_tags: List[str] = Field(default_factory=list, description="Subset of tags attributed to AI")
    created_at: datetime = Field(..., description="Task creation timestamp")
    updated_at: datetime = Field(..., description="Task last update timestamp")
    archived: bool = Field(False, description="Whether the task is archived")
    archived_at: Optional[datetime] = Field(None, description="Archive timestamp (null unless archived)")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class ChangeEvent(str, Enum):
    """Kind of row change published by the backing store."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class TaskChange(BaseModel):
    """Change notification for a single task row."""

    event: ChangeEvent
    user_id: str
    new: Optional[Task] = None
    old: Optional[Task] = None

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    @property
    def task_id(self) -> str:
        return (self.new or self.old).id
