"""Data models for aikanban."""

from aikanban.models.task import Task, TaskStatus, TaskPriority, TaskChange, ChangeEvent, COLUMN_TITLES
from aikanban.models.insights import (
    EnhancementSuggestion,
    ParsedTask,
    TagList,
    SubtaskPlan,
    PriorityRecommendation,
    PriorityRecommendationSet,
    ProductivityInsightSet,
    ProductivitySummary,
    ArchiveCategorySet,
)
from aikanban.models.user import User, AuthSession

__all__ = [
    "Task",
    "TaskStatus",
    "TaskPriority",
    "TaskChange",
    "ChangeEvent",
    "COLUMN_TITLES",
    "EnhancementSuggestion",
    "ParsedTask",
    "TagList",
    "SubtaskPlan",
    "PriorityRecommendation",
    "PriorityRecommendationSet",
    "ProductivityInsightSet",
    "ProductivitySummary",
    "ArchiveCategorySet",
    "User",
    "AuthSession",
]
