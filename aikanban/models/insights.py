"""AI result models for aikanban.

These records are ephemeral: they are recomputed on demand from model output and
never persisted on their own. Field aliases match the camelCase keys the model is
prompted to produce. Validators are lenient on purpose so a sloppy but usable
response still yields a record; entries that cannot be salvaged are dropped.
"""

import logging
from typing import Any, List, Optional
from enum import Enum
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from aikanban.models.task import TaskPriority, TaskStatus
from aikanban.models.task_factory import clean_tags, coerce_enum

logger = logging.getLogger(__name__)


class InsightType(str, Enum):
    """Kind of productivity insight."""
    BOTTLENECK = "bottleneck"
    PATTERN = "pattern"
    RECOMMENDATION = "recommendation"


class InsightSeverity(str, Enum):
    """Severity of a productivity insight."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def _text_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, (list, tuple)):
        return []
    items = []
    for item in value:
        if isinstance(item, dict):
            # Subtasks sometimes come back as objects instead of plain strings
            item = item.get("title") or item.get("name")
        if item is None:
            continue
        text = str(item).strip()
        if text:
            items.append(text)
    return items


def _keep_valid(items: Any, model, label: str) -> list:
    if not isinstance(items, list):
        return []
    kept = []
    for item in items:
        try:
            kept.append(model.model_validate(item))
        except PydanticValidationError as e:
            logger.warning(f"Dropping invalid {label} from model response ({e.error_count()} errors)")
    return kept


class _AIRecord(BaseModel):
    class Config:
        """Pydantic configuration."""
        use_enum_values = True
        populate_by_name = True


class EnhancementSuggestion(_AIRecord):
    """Suggested improvements for a single task. Every field is optional."""

    improved_description: Optional[str] = Field(None, alias="improvedDescription")
    recommended_tags: Optional[List[str]] = Field(None, alias="recommendedTags")
    recommended_priority: Optional[TaskPriority] = Field(None, alias="recommendedPriority")
    estimated_time: Optional[str] = Field(None, alias="estimatedTime")
    suggestions: List[str] = Field(default_factory=list)
    subtasks: List[str] = Field(default_factory=list)

    @field_validator("improved_description", "estimated_time", mode="before")
    @classmethod
    def _optional_text(cls, v):
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @field_validator("recommended_tags", mode="before")
    @classmethod
    def _tags(cls, v):
        return None if v is None else clean_tags(v)

    @field_validator("recommended_priority", mode="before")
    @classmethod
    def _priority(cls, v):
        if v is None:
            return None
        priority = coerce_enum(v, TaskPriority)
        if priority is None:
            logger.warning(f"Ignoring invalid recommended priority {v!r}")
        return priority

    @field_validator("suggestions", "subtasks", mode="before")
    @classmethod
    def _lists(cls, v):
        return _text_list(v)


class ParsedTask(_AIRecord):
    """A task extracted from natural-language input."""

    title: str
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    tags: List[str] = Field(default_factory=list)
    status: TaskStatus = TaskStatus.BACKLOG

    @field_validator("title", mode="before")
    @classmethod
    def _title(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("title is required")
        return v.strip()

    @field_validator("description", mode="before")
    @classmethod
    def _description(cls, v):
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, v):
        return coerce_enum(v, TaskPriority, TaskPriority.MEDIUM.value)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v):
        return coerce_enum(v, TaskStatus, TaskStatus.BACKLOG.value)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v):
        return clean_tags(v)


class TagList(_AIRecord):
    """Suggested tags for a task."""

    tags: List[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v):
        return clean_tags(v)


class SubtaskDraft(ParsedTask):
    """A proposed subtask; same shape as a parsed task."""


class SubtaskPlan(_AIRecord):
    """Breakdown of a task into smaller subtasks."""

    subtasks: List[SubtaskDraft] = Field(default_factory=list)

    @field_validator("subtasks", mode="before")
    @classmethod
    def _subtasks(cls, v):
        return _keep_valid(v, SubtaskDraft, "subtask")


class PriorityRecommendation(_AIRecord):
    """A proposed priority change for one task."""

    task_id: str = Field(..., alias="taskId")
    current_priority: Optional[TaskPriority] = Field(None, alias="currentPriority")
    recommended_priority: TaskPriority = Field(..., alias="recommendedPriority")
    reason: str = ""

    @field_validator("task_id", mode="before")
    @classmethod
    def _task_id(cls, v):
        if v is None or not str(v).strip():
            raise ValueError("taskId is required")
        return str(v).strip()

    @field_validator("current_priority", mode="before")
    @classmethod
    def _current(cls, v):
        return coerce_enum(v, TaskPriority)

    @field_validator("recommended_priority", mode="before")
    @classmethod
    def _recommended(cls, v):
        priority = coerce_enum(v, TaskPriority)
        if priority is None:
            raise ValueError(f"invalid recommended priority {v!r}")
        return priority

    @field_validator("reason", mode="before")
    @classmethod
    def _reason(cls, v):
        return "" if v is None else str(v).strip()


class PriorityRecommendationSet(_AIRecord):
    """Priority recommendations for the current board."""

    recommendations: List[PriorityRecommendation] = Field(default_factory=list)

    @field_validator("recommendations", mode="before")
    @classmethod
    def _recommendations(cls, v):
        return _keep_valid(v, PriorityRecommendation, "priority recommendation")


class Insight(_AIRecord):
    """A single productivity observation."""

    type: InsightType
    title: str
    description: str = ""
    severity: InsightSeverity = InsightSeverity.MEDIUM

    @field_validator("type", mode="before")
    @classmethod
    def _type(cls, v):
        kind = coerce_enum(v, InsightType)
        if kind is None:
            raise ValueError(f"unknown insight type {v!r}")
        return kind

    @field_validator("severity", mode="before")
    @classmethod
    def _severity(cls, v):
        return coerce_enum(v, InsightSeverity, InsightSeverity.MEDIUM.value)


class ProductivitySummary(_AIRecord):
    """Headline numbers for the board."""

    total_tasks: int = Field(0, alias="totalTasks")
    completion_rate: str = Field("0%", alias="completionRate")
    average_time_in_progress: Optional[str] = Field(None, alias="averageTimeInProgress")
    most_common_tags: List[str] = Field(default_factory=list, alias="mostCommonTags")

    @field_validator("completion_rate", mode="before")
    @classmethod
    def _rate(cls, v):
        if isinstance(v, (int, float)):
            return f"{round(v)}%"
        return "0%" if v is None else str(v)

    @field_validator("most_common_tags", mode="before")
    @classmethod
    def _tags(cls, v):
        return clean_tags(v)


class ProductivityInsightSet(_AIRecord):
    """Summary plus insights. `summary` is filled in locally when the model omits it."""

    summary: Optional[ProductivitySummary] = None
    insights: List[Insight] = Field(default_factory=list)

    @field_validator("summary", mode="before")
    @classmethod
    def _summary(cls, v):
        if not isinstance(v, dict):
            return None
        try:
            return ProductivitySummary.model_validate(v)
        except PydanticValidationError:
            logger.warning("Discarding unusable productivity summary from model response")
            return None

    @field_validator("insights", mode="before")
    @classmethod
    def _insights(cls, v):
        return _keep_valid(v, Insight, "insight")


class ArchiveCategory(_AIRecord):
    """A named group of archived tasks."""

    name: str
    description: Optional[str] = None
    task_ids: List[str] = Field(default_factory=list, alias="taskIds")

    @field_validator("task_ids", mode="before")
    @classmethod
    def _task_ids(cls, v):
        if not isinstance(v, list):
            return []
        return clean_tags([str(item) for item in v if item is not None])


class ArchiveCategorySet(_AIRecord):
    """AI grouping of the archive."""

    categories: List[ArchiveCategory] = Field(default_factory=list)

    @field_validator("categories", mode="before")
    @classmethod
    def _categories(cls, v):
        return _keep_valid(v, ArchiveCategory, "archive category")
