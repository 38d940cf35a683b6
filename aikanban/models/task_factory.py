"""Task creation factory for aikanban.

This module centralizes task creation logic to eliminate duplication
and ensure consistent default values across the application.
"""

import secrets
import string
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from aikanban.errors import ValidationError
from aikanban.models.task import Task, TaskPriority, TaskStatus
from aikanban.models.constants import (
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
    TASK_ID_PREFIX,
    TASK_ID_SUFFIX_LENGTH,
)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def next_timestamp(previous: Optional[datetime] = None) -> datetime:
    """Return the current time, nudged past `previous` so updates never go backwards."""
    now = utc_now()
    if previous is not None:
        if previous.tzinfo is None:
            previous = previous.replace(tzinfo=timezone.utc)
        if now <= previous:
            now = previous + timedelta(microseconds=1)
    return now


def generate_task_id() -> str:
    """Generate a task id from the epoch milliseconds and a random base36 suffix.

    Example: task_1718000000000_k3j9x0q2a
    """
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(TASK_ID_SUFFIX_LENGTH))
    return f"{TASK_ID_PREFIX}{int(time.time() * 1000)}_{suffix}"


def clean_tags(tags: Any) -> List[str]:
    """Normalize a tag value into a deduplicated list, preserving display order.

    Accepts a list of strings or a comma-separated string. Blank entries are dropped.
    """
    if tags is None:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    if not isinstance(tags, (list, tuple)):
        return []

    seen = set()
    cleaned: List[str] = []
    for tag in tags:
        if tag is None:
            continue
        value = str(tag).strip()
        if value and value not in seen:
            seen.add(value)
            cleaned.append(value)
    return cleaned


def coerce_enum(value: Any, enum_class, default=None):
    """Map a loose string onto an enum value, or return `default`."""
    if isinstance(value, enum_class):
        return value.value
    if not isinstance(value, str):
        return default
    try:
        return enum_class(value.strip().lower()).value
    except ValueError:
        return default


def validate_title(title: Any) -> str:
    """Return the stripped title, raising ValidationError if it is missing or blank."""
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Task title is required")
    return title.strip()


def prune_suggested_tags(ai_suggested_tags: Iterable[str], tags: Iterable[str]) -> List[str]:
    """Keep only AI-attributed tags that are still on the task."""
    current = set(tags)
    return [tag for tag in clean_tags(list(ai_suggested_tags)) if tag in current]


def create_task_defaults() -> Dict[str, Any]:
    """Get default task values as a dictionary."""
    return {
        "description": None,
        "priority": DEFAULT_PRIORITY,
        "status": DEFAULT_STATUS,
        "tags": [],
        "ai_enhanced": False,
        "ai_suggested_tags": [],
        "archived": False,
        "archived_at": None,
    }


def create_task_base(
    title: str,
    description: Optional[str] = None,
    priority: Optional[Any] = None,
    status: Optional[Any] = None,
    tags: Optional[Any] = None,
    user_id: Optional[str] = None,
    task_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Task:
    """Create a task with defaults, allowing overrides.

    New tasks always start with ai_enhanced=False, no AI-suggested tags and
    created_at == updated_at.

    Args:
        title: Task title (required, must not be blank)
        description: Task description
        priority: low|medium|high (defaults to medium)
        status: backlog|todo|inprogress|done (defaults to backlog)
        tags: List of tags or comma-separated string
        user_id: Owner of the task
        task_id: Explicit id (a fresh one is generated if None)
        now: Creation timestamp (defaults to the current UTC time)

    Returns:
        Task object with defaults applied

    Raises:
        ValidationError: If the title is blank or priority/status are not valid values
    """
    defaults = create_task_defaults()
    title = validate_title(title)

    priority_value = defaults["priority"].value
    if priority is not None:
        priority_value = coerce_enum(priority, TaskPriority)
        if priority_value is None:
            raise ValidationError(f"Invalid priority: {priority!r}")

    status_value = defaults["status"].value
    if status is not None:
        status_value = coerce_enum(status, TaskStatus)
        if status_value is None:
            raise ValidationError(f"Invalid status: {status!r}")

    created = now or utc_now()
    return Task(
        id=task_id or generate_task_id(),
        user_id=user_id,
        title=title,
        description=description if description is not None else defaults["description"],
        priority=priority_value,
        status=status_value,
        tags=clean_tags(tags) if tags is not None else defaults["tags"],
        ai_enhanced=defaults["ai_enhanced"],
        ai_suggested_tags=defaults["ai_suggested_tags"],
        created_at=created,
        updated_at=created,
        archived=defaults["archived"],
        archived_at=defaults["archived_at"],
    )
