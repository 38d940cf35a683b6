"""Task state reconciliation.

The reconciler owns the authoritative in-memory board. Each mutation is applied
to the local snapshot immediately (optimistic update) and, when a backing store
is configured, written to the store in the background:

- Writes for the same task run strictly in the order they were issued (each
  waits for the previous one); writes for different tasks are independent.
- A rejected write restores the task to its pre-mutation snapshot. Writes queued
  behind it for the same task are aborted, since they were built on top of it.
- A create is provisional until the store answers; the locally minted id is then
  swapped for the store's id. Later mutations may keep using either id.

Mutations never raise for expected failures; they return a MutationResult whose
`error` is set. When a store is configured the mutation methods must be called
from inside a running event loop.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional, Protocol

from aikanban.errors import KanbanError, NotFound, RequestFailed
from aikanban.engine import mutations
from aikanban.engine.mutations import BoardState
from aikanban.models.insights import EnhancementSuggestion, ParsedTask, PriorityRecommendation
from aikanban.models.task import ChangeEvent, Task, TaskChange
from aikanban.models.task_factory import create_task_base

logger = logging.getLogger(__name__)


class TaskStore(Protocol):
    """Persistence collaborator used by the reconciler."""

    async def insert(self, task: Task) -> Task:
        """Persist a new task; the returned task carries the store's id."""

    async def update(self, task_id: str, changes: Dict[str, Any]) -> Task:
        """Apply a partial update and return the stored task."""

    async def delete(self, task_id: str) -> None:
        """Remove a task."""


@dataclass
class MutationResult:
    """Outcome of a mutation.

    `state` is the board right after the optimistic update (or unchanged on
    error / no-op). `pending` is set when a store write is in flight; await
    `confirmation()` for the final result of that write.
    """

    state: BoardState
    task: Optional[Task] = None
    error: Optional[KanbanError] = None
    changed: bool = True
    pending: Optional["asyncio.Task[MutationResult]"] = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.error is None

    async def confirmation(self) -> "MutationResult":
        if self.pending is None:
            return self
        return await self.pending


WriteFn = Callable[[str], Awaitable[Optional[Task]]]


class TaskReconciler:
    """Owns a board's tasks and applies optimistic mutations against a TaskStore."""

    def __init__(self, tasks: Iterable[Task] = (), store: Optional[TaskStore] = None, user_id: Optional[str] = None):
        self._state = BoardState(tuple(tasks))
        self._store = store
        self._user_id = user_id
        # Last in-flight write per task, keyed by the id the task was first known by
        self._chains: Dict[str, "asyncio.Task[MutationResult]"] = {}
        # Bumped when a write for the key fails; writes queued under an old generation abort
        self._generations: Dict[str, int] = {}
        self._aliases: Dict[str, str] = {}  # provisional id -> store id
        self._keys: Dict[str, str] = {}  # store id -> provisional id

    @property
    def state(self) -> BoardState:
        return self._state

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    def has_pending(self, task_id: Optional[str] = None) -> bool:
        if task_id is None:
            return bool(self._chains)
        return self._chain_key(task_id) in self._chains

    async def drain(self) -> None:
        """Wait until every in-flight store write has settled."""
        while self._chains:
            await asyncio.wait(list(self._chains.values()))

    # ------------------------------------------------------------------ ids

    def _chain_key(self, task_id: str) -> str:
        return self._keys.get(task_id, task_id)

    def _current_id(self, task_id: str) -> str:
        return self._aliases.get(self._chain_key(task_id), task_id)

    # ------------------------------------------------------------ mutations

    def create(
        self,
        title: str,
        description: Optional[str] = None,
        priority: Optional[Any] = None,
        status: Optional[Any] = None,
        tags: Optional[Any] = None,
    ) -> MutationResult:
        """Add a task to the board. Provisional until the store confirms it."""
        try:
            task = create_task_base(
                title=title,
                description=description,
                priority=priority,
                status=status,
                tags=tags,
                user_id=self._user_id,
            )
            self._state = mutations.apply_create(self._state, task)
        except KanbanError as e:
            return MutationResult(state=self._state, error=e, changed=False)

        logger.debug(f"Created task {task.id}: {task.title[:50]}")
        pending = self._submit(
            task.id,
            snapshot=None,
            index=None,
            write=lambda _task_id: self._store.insert(task),
            confirm=self._confirm_create,
        )
        return MutationResult(state=self._state, task=task, pending=pending)

    def accept_parsed_task(self, parsed: ParsedTask) -> MutationResult:
        """Create a task from natural-language parsing output."""
        return self.create(
            title=parsed.title,
            description=parsed.description,
            priority=parsed.priority,
            status=parsed.status,
            tags=parsed.tags,
        )

    def update(self, task_id: str, changes: Mapping[str, Any]) -> MutationResult:
        """Merge a partial field set into a task. Unknown ids yield NotFound."""
        current_id = self._current_id(task_id)
        snapshot_index = self._state.index_of(current_id)
        snapshot = self._state.get(current_id)
        try:
            self._state, task, written = mutations.apply_update(self._state, current_id, changes)
        except KanbanError as e:
            return MutationResult(state=self._state, error=e, changed=False)

        logger.debug(f"Updated task {current_id}: {sorted(written)}")
        return self._persist_update(current_id, task, snapshot, snapshot_index, written)

    def move(self, task_id: str, status: Any) -> MutationResult:
        """Move a task to another column; moving to the current column does nothing."""
        current_id = self._current_id(task_id)
        snapshot_index = self._state.index_of(current_id)
        snapshot = self._state.get(current_id)
        try:
            new_state, task, written = mutations.apply_move(self._state, current_id, status)
        except KanbanError as e:
            return MutationResult(state=self._state, error=e, changed=False)

        if not written:
            return MutationResult(state=self._state, task=task, changed=False)
        self._state = new_state
        logger.debug(f"Moved task {current_id} to {task.status}")
        return self._persist_update(current_id, task, snapshot, snapshot_index, written)

    def archive(self, task_id: str) -> MutationResult:
        """Soft-delete a task: it leaves the columns but stays restorable."""
        return self._set_archived(task_id, True)

    def unarchive(self, task_id: str) -> MutationResult:
        """Return an archived task to its column."""
        return self._set_archived(task_id, False)

    def _set_archived(self, task_id: str, archived: bool) -> MutationResult:
        current_id = self._current_id(task_id)
        snapshot_index = self._state.index_of(current_id)
        snapshot = self._state.get(current_id)
        try:
            new_state, task, written = mutations.apply_archive(self._state, current_id, archived)
        except KanbanError as e:
            return MutationResult(state=self._state, error=e, changed=False)

        if not written:
            return MutationResult(state=self._state, task=task, changed=False)
        self._state = new_state
        logger.debug(f"{'Archived' if archived else 'Unarchived'} task {current_id}")
        return self._persist_update(current_id, task, snapshot, snapshot_index, written)

    def delete(self, task_id: str) -> MutationResult:
        """Permanently remove a task. Deleting an unknown id is not an error."""
        current_id = self._current_id(task_id)
        new_state, removed, index = mutations.apply_delete(self._state, current_id)
        if removed is None:
            logger.debug(f"Delete of unknown task {task_id} ignored")
            return MutationResult(state=self._state, changed=False)

        self._state = new_state
        logger.debug(f"Deleted task {current_id}")
        pending = self._submit(
            current_id,
            snapshot=removed,
            index=index,
            write=lambda store_id: self._store.delete(store_id),
            confirm=lambda key, stored: None,
        )
        return MutationResult(state=self._state, task=removed, pending=pending)

    def apply_recommendation(self, recommendation: PriorityRecommendation) -> MutationResult:
        """Apply a priority recommendation; recommendations for unknown tasks are ignored."""
        current_id = self._current_id(recommendation.task_id)
        if current_id not in self._state:
            logger.debug(f"Ignoring recommendation for unknown task {recommendation.task_id}")
            return MutationResult(state=self._state, changed=False)
        return self.update(current_id, {"priority": recommendation.recommended_priority})

    def apply_enhancement(
        self,
        task_id: str,
        suggestion: EnhancementSuggestion,
        accept: Iterable[str] = mutations.ENHANCEMENT_FIELDS,
    ) -> MutationResult:
        """Merge the accepted parts of an AI suggestion into a task and flag it as AI-enhanced."""
        current_id = self._current_id(task_id)
        task = self._state.get(current_id)
        if task is None:
            return MutationResult(state=self._state, error=NotFound(task_id), changed=False)
        try:
            changes = mutations.enhancement_changes(task, suggestion, accept)
        except KanbanError as e:
            return MutationResult(state=self._state, error=e, changed=False)
        return self.update(current_id, changes)

    def apply_remote_change(self, change: TaskChange) -> MutationResult:
        """Merge a change notification from the store subscription.

        Changes for other users, or for tasks with a local write in flight, are ignored.
        """
        if self._user_id is not None and change.user_id != self._user_id:
            return MutationResult(state=self._state, changed=False)
        if self._chain_key(change.task_id) in self._chains:
            logger.debug(f"Skipping remote {change.event} for task {change.task_id} with pending local writes")
            return MutationResult(state=self._state, changed=False)

        if change.event == ChangeEvent.DELETE:
            self._state, removed, _ = mutations.apply_delete(self._state, change.task_id)
            return MutationResult(state=self._state, task=removed, changed=removed is not None)

        if change.new is None:
            return MutationResult(state=self._state, changed=False)
        before = self._state
        self._state = mutations.upsert_task(self._state, change.new)
        return MutationResult(state=self._state, task=change.new, changed=self._state != before)

    # --------------------------------------------------------- persistence

    def _persist_update(self, current_id, task, snapshot, snapshot_index, written) -> MutationResult:
        pending = self._submit(
            current_id,
            snapshot=snapshot,
            index=snapshot_index,
            write=lambda store_id: self._store.update(store_id, dict(written)),
            confirm=self._confirm_update,
        )
        return MutationResult(state=self._state, task=task, pending=pending)

    def _submit(self, task_id: str, snapshot: Optional[Task], index: Optional[int], write: WriteFn, confirm):
        if self._store is None:
            return None
        key = self._chain_key(task_id)
        previous = self._chains.get(key)
        generation = self._generations.get(key, 0)
        pending = asyncio.get_running_loop().create_task(
            self._run_write(key, generation, previous, snapshot, index, write, confirm)
        )
        self._chains[key] = pending
        pending.add_done_callback(lambda done, key=key: self._release(key, done))
        return pending

    def _release(self, key: str, done) -> None:
        if self._chains.get(key) is done:
            del self._chains[key]

    async def _run_write(self, key, generation, previous, snapshot, index, write: WriteFn, confirm) -> MutationResult:
        if previous is not None:
            await asyncio.wait([previous])
        if self._generations.get(key, 0) != generation:
            logger.debug(f"Aborting queued write for task {key}: an earlier write was rejected")
            error = RequestFailed("Aborted because an earlier change to this task was rejected")
            return MutationResult(state=self._state, error=error, changed=False)

        try:
            stored = await write(self._aliases.get(key, key))
        except Exception as e:
            error = e if isinstance(e, KanbanError) else RequestFailed(f"Store write failed: {type(e).__name__}")
            logger.error(f"Store rejected write for task {key}: {type(e).__name__}. Rolling back.")
            self._generations[key] = generation + 1
            self._state = mutations.restore_task(self._state, self._aliases.get(key, key), self._rebase(key, snapshot), index)
            return MutationResult(state=self._state, error=error, changed=False)

        task = confirm(key, stored)
        return MutationResult(state=self._state, task=task)

    def _rebase(self, key: str, snapshot: Optional[Task]) -> Optional[Task]:
        # A snapshot taken before the create was confirmed still carries the provisional id
        store_id = self._aliases.get(key)
        if snapshot is not None and store_id is not None and snapshot.id != store_id:
            return snapshot.model_copy(update={"id": store_id})
        return snapshot

    def _has_followers(self, key: str) -> bool:
        return self._chains.get(key) is not asyncio.current_task()

    def _adopt(self, key: str, local_id: str, stored: Task) -> Task:
        """Bring the stored row into local state.

        While later writes for the task are still queued, only the id is taken
        from the store so newer optimistic fields are not overwritten.
        """
        local = self._state.get(local_id)
        if local is None:
            # Deleted locally before the store answered; drop any copy a change notification added
            if stored.id in self._state:
                self._state, _, _ = mutations.apply_delete(self._state, stored.id)
            return stored
        adopted = local.model_copy(update={"id": stored.id}) if self._has_followers(key) else stored
        # A change notification may already have added the stored row
        if stored.id != local_id and stored.id in self._state:
            self._state, _, _ = mutations.apply_delete(self._state, stored.id)
        self._state = mutations.restore_task(self._state, local_id, adopted, None)
        return adopted

    def _confirm_create(self, key: str, stored: Task) -> Task:
        if stored.id != key:
            self._aliases[key] = stored.id
            self._keys[stored.id] = key
            logger.debug(f"Task {key} confirmed by store as {stored.id}")
        return self._adopt(key, key, stored)

    def _confirm_update(self, key: str, stored: Task) -> Task:
        return self._adopt(key, self._aliases.get(key, key), stored)
