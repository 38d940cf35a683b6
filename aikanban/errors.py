"""Error taxonomy for aikanban.

Normalizer and assistant failures are raised as these exceptions; the
reconciler returns them inside a MutationResult instead of raising.
"""

from typing import Optional


class KanbanError(Exception):
    """Base class for all aikanban errors."""


class ConfigurationError(KanbanError):
    """A required credential or setting is missing."""


class RequestFailed(KanbanError):
    """Transport or HTTP-level failure talking to a remote collaborator."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponse(KanbanError):
    """Model output could not be parsed as structured data, even after repair."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class NotFound(KanbanError):
    """A mutation referenced a task id that is not on the board."""

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class ValidationError(KanbanError):
    """A required field (such as the title) is missing or invalid."""


class AuthenticationError(KanbanError):
    """Credentials or session token were rejected."""
