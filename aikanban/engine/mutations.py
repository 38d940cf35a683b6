"""Pure task mutations over an immutable board snapshot.

Every function takes a BoardState and returns a new BoardState; the input
snapshot is never modified. The reconciler layers optimistic persistence on top.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from aikanban.errors import NotFound, ValidationError
from aikanban.models.task import COLUMN_TITLES, Task, TaskPriority, TaskStatus
from aikanban.models.insights import EnhancementSuggestion
from aikanban.models.task_factory import (
    clean_tags,
    coerce_enum,
    next_timestamp,
    prune_suggested_tags,
    utc_now,
    validate_title,
)

# Fields a caller may change through an update
EDITABLE_FIELDS = frozenset({
    "title",
    "description",
    "priority",
    "status",
    "tags",
    "ai_enhanced",
    "ai_suggested_tags",
})

ENHANCEMENT_FIELDS = ("description", "tags", "priority")


@dataclass(frozen=True)
class BoardState:
    """Immutable snapshot of every task on a board, archived ones included."""

    tasks: Tuple[Task, ...] = ()

    def __len__(self) -> int:
        return len(self.tasks)

    def __iter__(self):
        return iter(self.tasks)

    def __contains__(self, task_id: str) -> bool:
        return self.index_of(task_id) is not None

    def index_of(self, task_id: str) -> Optional[int]:
        for i, task in enumerate(self.tasks):
            if task.id == task_id:
                return i
        return None

    def get(self, task_id: str) -> Optional[Task]:
        index = self.index_of(task_id)
        return self.tasks[index] if index is not None else None

    def active(self) -> List[Task]:
        return [task for task in self.tasks if not task.archived]

    def archived(self) -> List[Task]:
        return [task for task in self.tasks if task.archived]

    def columns(self) -> Dict[str, List[Task]]:
        """Active tasks grouped by status, in board column order."""
        grouped: Dict[str, List[Task]] = {status: [] for status in COLUMN_TITLES}
        for task in self.active():
            grouped[task.status].append(task)
        return grouped


def _require(state: BoardState, task_id: str) -> Tuple[int, Task]:
    index = state.index_of(task_id)
    if index is None:
        raise NotFound(task_id)
    return index, state.tasks[index]


def _replace_at(state: BoardState, index: int, task: Task) -> BoardState:
    tasks = list(state.tasks)
    tasks[index] = task
    return BoardState(tuple(tasks))


def clean_changes(task: Task, changes: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate a partial field set against `task` and return normalized values.

    Raises:
        ValidationError: On unknown fields, a blank title or invalid enum values
    """
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    cleaned: Dict[str, Any] = {}
    for field, value in changes.items():
        if field == "title":
            cleaned["title"] = validate_title(value)
        elif field == "description":
            cleaned["description"] = value if value is None else str(value)
        elif field == "priority":
            priority = coerce_enum(value, TaskPriority)
            if priority is None:
                raise ValidationError(f"Invalid priority: {value!r}")
            cleaned["priority"] = priority
        elif field == "status":
            status = coerce_enum(value, TaskStatus)
            if status is None:
                raise ValidationError(f"Invalid status: {value!r}")
            cleaned["status"] = status
        elif field in ("tags", "ai_suggested_tags"):
            cleaned[field] = clean_tags(value)
        elif field == "ai_enhanced":
            cleaned["ai_enhanced"] = bool(value)

    # AI-attributed tags must stay a subset of the task's tags
    tags = cleaned.get("tags", task.tags)
    suggested = cleaned.get("ai_suggested_tags", task.ai_suggested_tags)
    pruned = prune_suggested_tags(suggested, tags)
    if "ai_suggested_tags" in cleaned or pruned != task.ai_suggested_tags:
        cleaned["ai_suggested_tags"] = pruned
    return cleaned


def apply_create(state: BoardState, task: Task) -> BoardState:
    """Append a new task."""
    if task.id in state:
        raise ValidationError(f"Task id {task.id} already exists")
    return BoardState(state.tasks + (task,))


def apply_update(
    state: BoardState,
    task_id: str,
    changes: Mapping[str, Any],
    now: Optional[datetime] = None,
) -> Tuple[BoardState, Task, Dict[str, Any]]:
    """Merge `changes` into a task and bump updated_at.

    Returns:
        (new state, updated task, normalized changes including updated_at)
    """
    index, task = _require(state, task_id)
    cleaned = clean_changes(task, changes)
    cleaned["updated_at"] = next_timestamp(task.updated_at) if now is None else now
    updated = task.model_copy(update=cleaned)
    return _replace_at(state, index, updated), updated, cleaned


def apply_delete(state: BoardState, task_id: str) -> Tuple[BoardState, Optional[Task], Optional[int]]:
    """Remove a task. Unknown ids leave the state untouched.

    Returns:
        (new state, removed task or None, index it was removed from or None)
    """
    index = state.index_of(task_id)
    if index is None:
        return state, None, None
    removed = state.tasks[index]
    return BoardState(state.tasks[:index] + state.tasks[index + 1:]), removed, index


def apply_move(
    state: BoardState,
    task_id: str,
    status: Any,
    now: Optional[datetime] = None,
) -> Tuple[BoardState, Task, Dict[str, Any]]:
    """Move a task to another column.

    Moving to the current column returns the same state object and no changes.
    """
    _, task = _require(state, task_id)
    target = coerce_enum(status, TaskStatus)
    if target is None:
        raise ValidationError(f"Invalid status: {status!r}")
    if target == task.status:
        return state, task, {}
    return apply_update(state, task_id, {"status": target}, now=now)


def apply_archive(
    state: BoardState,
    task_id: str,
    archived: bool = True,
    now: Optional[datetime] = None,
) -> Tuple[BoardState, Task, Dict[str, Any]]:
    """Archive or unarchive a task.

    Status and updated_at are left alone; toggling to the current value is a no-op.
    """
    index, task = _require(state, task_id)
    if task.archived == archived:
        return state, task, {}
    changes = {
        "archived": archived,
        "archived_at": (now or utc_now()) if archived else None,
    }
    updated = task.model_copy(update=changes)
    return _replace_at(state, index, updated), updated, changes


def enhancement_changes(
    task: Task,
    suggestion: EnhancementSuggestion,
    accept: Iterable[str] = ENHANCEMENT_FIELDS,
) -> Dict[str, Any]:
    """Translate the accepted parts of a suggestion into an update for `task`.

    Recommended tags are appended to the existing ones and recorded as AI-suggested.
    """
    accept = set(accept)
    unknown = accept - set(ENHANCEMENT_FIELDS)
    if unknown:
        raise ValidationError(f"Cannot apply suggestion fields: {', '.join(sorted(unknown))}")

    changes: Dict[str, Any] = {"ai_enhanced": True}
    if "description" in accept and suggestion.improved_description:
        changes["description"] = suggestion.improved_description
    if "priority" in accept and suggestion.recommended_priority:
        changes["priority"] = suggestion.recommended_priority
    if "tags" in accept and suggestion.recommended_tags:
        tags = clean_tags(list(task.tags) + list(suggestion.recommended_tags))
        changes["tags"] = tags
        changes["ai_suggested_tags"] = clean_tags(
            list(task.ai_suggested_tags) + [tag for tag in suggestion.recommended_tags if tag in tags]
        )
    return changes


def restore_task(state: BoardState, current_id: str, snapshot: Optional[Task], index: Optional[int]) -> BoardState:
    """Put a task back the way it was before a mutation.

    A None snapshot means the task did not exist (a rejected create), so it is removed.
    """
    current = state.index_of(current_id)
    if snapshot is None:
        if current is None:
            return state
        return BoardState(state.tasks[:current] + state.tasks[current + 1:])
    if current is not None:
        return _replace_at(state, current, snapshot)
    position = len(state.tasks) if index is None else min(index, len(state.tasks))
    return BoardState(state.tasks[:position] + (snapshot,) + state.tasks[position:])


def upsert_task(state: BoardState, task: Task) -> BoardState:
    """Replace the task with the same id, or append it."""
    index = state.index_of(task.id)
    if index is None:
        return BoardState(state.tasks + (task,))
    return _replace_at(state, index, task)
