"""Request/response models for task and AI endpoints."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from aikanban.engine.mutations import ENHANCEMENT_FIELDS
from aikanban.models.insights import (
    EnhancementSuggestion,
    ParsedTask,
    PriorityRecommendation,
    PriorityRecommendationSet,
    ProductivityInsightSet,
)
from aikanban.models.task import Task


class TaskCreateRequest(BaseModel):
    """Request model for creating a task. Priority and status fall back to medium / backlog."""
    title: str = Field(..., description="Task title")
    description: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class TaskUpdateRequest(BaseModel):
    """Partial update; only fields present in the request body are applied."""
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    tags: Optional[List[str]] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class TaskMoveRequest(BaseModel):
    status: str = Field(..., description="Target column: backlog, todo, inprogress or done")


class TaskResponse(BaseModel):
    """Response for a single-task mutation."""
    task: Optional[Task] = None
    changed: bool = True


class TaskListResponse(BaseModel):
    tasks: List[Task]


class BoardColumn(BaseModel):
    id: str
    title: str
    tasks: List[Task]


class BoardResponse(BaseModel):
    """Active tasks grouped into columns, in board order."""
    columns: List[BoardColumn]


class DeleteResponse(BaseModel):
    deleted: bool


class ApplyEnhancementRequest(BaseModel):
    """Apply a previously fetched suggestion; `accept` picks which parts to keep."""
    suggestion: EnhancementSuggestion
    accept: List[str] = Field(default_factory=lambda: list(ENHANCEMENT_FIELDS))


class SubtasksRequest(BaseModel):
    create: bool = Field(False, description="Add the generated subtasks to the board")


class SubtasksResponse(BaseModel):
    subtasks: List[ParsedTask]
    created: List[Task] = Field(default_factory=list)


class ParseRequest(BaseModel):
    text: str = Field(..., description="Free-form task description")
    create: bool = Field(True, description="Add the parsed task to the board")


class ParseResponse(BaseModel):
    parsed: ParsedTask
    task: Optional[Task] = None


class SuggestTagsRequest(BaseModel):
    title: str
    description: Optional[str] = None


class SuggestTagsResponse(BaseModel):
    tags: List[str]


class InsightsResponse(BaseModel):
    productivity: ProductivityInsightSet
    priorities: PriorityRecommendationSet


class ApplyRecommendationsRequest(BaseModel):
    recommendations: List[PriorityRecommendation]


class ApplyRecommendationsResponse(BaseModel):
    applied: List[str]
    ignored: List[str]
