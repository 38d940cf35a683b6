"""FastAPI web application for aikanban."""

import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional
from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, sessionmaker

from aikanban.api.auth_models import AuthResponse, SignInRequest, SignOutResponse, SignUpRequest
from aikanban.api.schemas import (
    ApplyEnhancementRequest,
    ApplyRecommendationsRequest,
    ApplyRecommendationsResponse,
    BoardColumn,
    BoardResponse,
    DeleteResponse,
    InsightsResponse,
    ParseRequest,
    ParseResponse,
    SubtasksRequest,
    SubtasksResponse,
    SuggestTagsRequest,
    SuggestTagsResponse,
    TaskCreateRequest,
    TaskListResponse,
    TaskMoveRequest,
    TaskResponse,
    TaskUpdateRequest,
)
from aikanban.auth.dependencies import get_auth_service, get_current_session, get_current_user
from aikanban.auth.service import AuthService
from aikanban.database.changes import ChangeFeed, Subscription, default_feed
from aikanban.database.database import get_db, get_session_factory, init_db
from aikanban.database.repository import TaskRepository
from aikanban.database.store import RepositoryTaskStore
from aikanban.engine import assistant
from aikanban.engine.reconciler import MutationResult, TaskReconciler
from aikanban.engine.requests import RequestScope
from aikanban.errors import (
    AuthenticationError,
    ConfigurationError,
    KanbanError,
    MalformedResponse,
    NotFound,
    RequestFailed,
    ValidationError,
)
from aikanban.integrations.mistral_client import MistralClient
from aikanban.models.constants import INSIGHTS_PACING_SECONDS
from aikanban.models.insights import ArchiveCategorySet, EnhancementSuggestion
from aikanban.models.task import COLUMN_TITLES, Task
from aikanban.models.user import AuthSession, User

logger = logging.getLogger(__name__)

VERSION = "0.1.0"

# Checked in order, so subclasses must come before their bases
ERROR_STATUS_CODES = [
    (NotFound, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (ConfigurationError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (MalformedResponse, status.HTTP_502_BAD_GATEWAY),
    (RequestFailed, status.HTTP_502_BAD_GATEWAY),
]


def status_code_for(error: KanbanError) -> int:
    for error_class, code in ERROR_STATUS_CODES:
        if isinstance(error, error_class):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


class BoardRegistry:
    """One reconciler per signed-in user, loaded from the store on first use.

    Each board is subscribed to the change feed so writes made through another
    board or repository show up without a reload.
    """

    def __init__(self, feed: ChangeFeed):
        self.feed = feed
        self._boards: Dict[str, TaskReconciler] = {}
        self._subscriptions: Dict[str, Subscription] = {}

    def get(self, user_id: str, db: Session, session_factory: sessionmaker) -> TaskReconciler:
        board = self._boards.get(user_id)
        if board is None:
            repository = TaskRepository(db)
            tasks = repository.list_active(user_id) + repository.list_archived(user_id)
            store = RepositoryTaskStore(session_factory, user_id, self.feed)
            board = TaskReconciler(tasks, store=store, user_id=user_id)
            self._subscriptions[user_id] = self.feed.subscribe(user_id, board.apply_remote_change)
            self._boards[user_id] = board
            logger.debug(f"Loaded board for user {user_id} with {len(tasks)} tasks")
        return board

    def drop(self, user_id: str) -> None:
        """Forget a user's board unless it still has writes in flight."""
        board = self._boards.get(user_id)
        if board is None or board.has_pending():
            return
        self._subscriptions.pop(user_id).unsubscribe()
        del self._boards[user_id]

    def clear(self) -> None:
        for subscription in self._subscriptions.values():
            subscription.unsubscribe()
        self._subscriptions.clear()
        self._boards.clear()


board_registry = BoardRegistry(default_feed)
# Open insights request per user; a newer request supersedes the older one
insights_scopes: Dict[str, RequestScope] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Missing DATABASE_URL is fatal here (ConfigurationError)
    init_db()
    logger.info("Task store ready")
    yield
    board_registry.clear()


# Initialize FastAPI app
app = FastAPI(
    title="aikanban API",
    description="Kanban board with AI-assisted task enrichment",
    version=VERSION,
    lifespan=lifespan,
)


@app.exception_handler(KanbanError)
async def kanban_error_handler(request: Request, exc: KanbanError):
    code = status_code_for(exc)
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}")
    body = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, RequestFailed) and exc.status_code is not None:
        body["upstream_status"] = exc.status_code
    return JSONResponse(status_code=code, content=body)


# Dependencies

def get_session_maker() -> sessionmaker:
    return get_session_factory()


def get_board_registry() -> BoardRegistry:
    return board_registry


def get_ai_client() -> MistralClient:
    return assistant._get_mistral_client()


def get_board(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_maker),
    registry: BoardRegistry = Depends(get_board_registry),
) -> TaskReconciler:
    return registry.get(user.id, db, session_factory)


async def settle(result: MutationResult) -> MutationResult:
    """Wait for the store to confirm a mutation; raise its error if it failed."""
    if result.error is not None:
        raise result.error
    confirmed = await result.confirmation()
    if confirmed.error is not None:
        raise confirmed.error
    return confirmed


def _require_task(board: TaskReconciler, task_id: str) -> Task:
    task = board.state.get(task_id)
    if task is None:
        raise NotFound(task_id)
    return task


# Health / auth

@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": VERSION}


@app.post("/auth/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(request: SignUpRequest, auth: AuthService = Depends(get_auth_service)):
    session = auth.sign_up(request.email, request.password, name=request.name)
    return AuthResponse.from_session(session)


@app.post("/auth/signin", response_model=AuthResponse)
async def sign_in(request: SignInRequest, auth: AuthService = Depends(get_auth_service)):
    session = auth.sign_in(request.email, request.password)
    return AuthResponse.from_session(session)


@app.post("/auth/signout", response_model=SignOutResponse)
async def sign_out(
    session: AuthSession = Depends(get_current_session),
    auth: AuthService = Depends(get_auth_service),
    registry: BoardRegistry = Depends(get_board_registry),
):
    signed_out = auth.sign_out(session.access_token)
    registry.drop(session.user.id)
    return SignOutResponse(signed_out=signed_out)


@app.get("/auth/session", response_model=AuthResponse)
async def current_session(session: AuthSession = Depends(get_current_session)):
    return AuthResponse.from_session(session)


# Board

@app.get("/tasks", response_model=BoardResponse)
async def list_board(board: TaskReconciler = Depends(get_board)):
    """Active tasks by column, newest first within a column."""
    columns = []
    for column_id, tasks in board.state.columns().items():
        ordered = sorted(tasks, key=lambda task: task.created_at, reverse=True)
        columns.append(BoardColumn(id=column_id, title=COLUMN_TITLES[column_id], tasks=ordered))
    return BoardResponse(columns=columns)


@app.get("/tasks/archived", response_model=TaskListResponse)
async def list_archived(board: TaskReconciler = Depends(get_board)):
    """Archived tasks, most recently archived first."""
    tasks = sorted(board.state.archived(), key=lambda task: task.archived_at, reverse=True)
    return TaskListResponse(tasks=tasks)


@app.post("/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(request: TaskCreateRequest, board: TaskReconciler = Depends(get_board)):
    result = await settle(board.create(
        title=request.title,
        description=request.description,
        priority=request.priority,
        status=request.status,
        tags=request.tags,
    ))
    return TaskResponse(task=result.task)


@app.patch("/tasks/{task_id}", response_model=TaskResponse)
async def update_task(task_id: str, request: TaskUpdateRequest, board: TaskReconciler = Depends(get_board)):
    result = await settle(board.update(task_id, request.changes()))
    return TaskResponse(task=result.task)


@app.delete("/tasks/{task_id}", response_model=DeleteResponse)
async def delete_task(task_id: str, board: TaskReconciler = Depends(get_board)):
    """Permanently delete a task. Unknown ids are not an error."""
    result = await settle(board.delete(task_id))
    return DeleteResponse(deleted=result.changed)


@app.post("/tasks/{task_id}/move", response_model=TaskResponse)
async def move_task(task_id: str, request: TaskMoveRequest, board: TaskReconciler = Depends(get_board)):
    result = await settle(board.move(task_id, request.status))
    return TaskResponse(task=result.task, changed=result.changed)


@app.post("/tasks/{task_id}/archive", response_model=TaskResponse)
async def archive_task(task_id: str, board: TaskReconciler = Depends(get_board)):
    result = await settle(board.archive(task_id))
    return TaskResponse(task=result.task, changed=result.changed)


@app.post("/tasks/{task_id}/unarchive", response_model=TaskResponse)
async def unarchive_task(task_id: str, board: TaskReconciler = Depends(get_board)):
    result = await settle(board.unarchive(task_id))
    return TaskResponse(task=result.task, changed=result.changed)


# AI features

@app.post("/tasks/{task_id}/enhance", response_model=EnhancementSuggestion)
async def enhance_task(
    task_id: str,
    board: TaskReconciler = Depends(get_board),
    client: MistralClient = Depends(get_ai_client),
):
    """Fetch suggestions for a task without changing it."""
    task = _require_task(board, task_id)
    return await assistant.enhance_task(task, client=client)


@app.post("/tasks/{task_id}/enhance/apply", response_model=TaskResponse)
async def apply_enhancement(
    task_id: str,
    request: ApplyEnhancementRequest,
    board: TaskReconciler = Depends(get_board),
):
    result = await settle(board.apply_enhancement(task_id, request.suggestion, accept=request.accept))
    return TaskResponse(task=result.task)


@app.post("/tasks/{task_id}/subtasks", response_model=SubtasksResponse)
async def generate_subtasks(
    task_id: str,
    request: Optional[SubtasksRequest] = None,
    board: TaskReconciler = Depends(get_board),
    client: MistralClient = Depends(get_ai_client),
):
    task = _require_task(board, task_id)
    plan = await assistant.generate_subtasks(task.title, task.description, client=client)
    created: List[Task] = []
    if request is not None and request.create:
        for draft in plan.subtasks:
            result = await settle(board.accept_parsed_task(draft))
            created.append(result.task)
    return SubtasksResponse(subtasks=plan.subtasks, created=created)


@app.post("/tasks/parse", response_model=ParseResponse)
async def parse_task(
    request: ParseRequest,
    board: TaskReconciler = Depends(get_board),
    client: MistralClient = Depends(get_ai_client),
):
    """Turn free text into a task, and add it to the board unless `create` is false."""
    parsed = await assistant.parse_natural_language(request.text, client=client)
    task = None
    if request.create:
        result = await settle(board.accept_parsed_task(parsed))
        task = result.task
    return ParseResponse(parsed=parsed, task=task)


@app.post("/tasks/suggest-tags", response_model=SuggestTagsResponse)
async def suggest_tags(
    request: SuggestTagsRequest,
    user: User = Depends(get_current_user),
    client: MistralClient = Depends(get_ai_client),
):
    tags = await assistant.suggest_tags(request.title, request.description, client=client)
    return SuggestTagsResponse(tags=tags)


@app.get("/insights", response_model=InsightsResponse)
async def insights(
    board: TaskReconciler = Depends(get_board),
    client: MistralClient = Depends(get_ai_client),
):
    """Productivity insights and priority recommendations for the active board.

    A newer insights request from the same user supersedes this one (409).
    """
    previous = insights_scopes.get(board.user_id)
    if previous is not None:
        previous.close()
    scope = RequestScope(f"insights:{board.user_id}")
    insights_scopes[board.user_id] = scope

    try:
        bundle = await assistant.load_insights(
            board.state.active(),
            scope=scope,
            client=client,
            pacing_seconds=INSIGHTS_PACING_SECONDS,
        )
    finally:
        if insights_scopes.get(board.user_id) is scope:
            del insights_scopes[board.user_id]

    if bundle is None:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": "Superseded by a newer insights request"},
        )
    return InsightsResponse(productivity=bundle.productivity, priorities=bundle.priorities)


@app.post("/recommendations/apply", response_model=ApplyRecommendationsResponse)
async def apply_recommendations(request: ApplyRecommendationsRequest, board: TaskReconciler = Depends(get_board)):
    """Apply priority recommendations. Ones for tasks no longer on the board are ignored."""
    applied: List[str] = []
    ignored: List[str] = []
    for recommendation in request.recommendations:
        result = await settle(board.apply_recommendation(recommendation))
        if result.task is None:
            ignored.append(recommendation.task_id)
        else:
            applied.append(recommendation.task_id)
    return ApplyRecommendationsResponse(applied=applied, ignored=ignored)


@app.get("/archive/categories", response_model=ArchiveCategorySet)
async def archive_categories(
    board: TaskReconciler = Depends(get_board),
    client: MistralClient = Depends(get_ai_client),
):
    archived = board.state.archived()
    if not archived:
        return ArchiveCategorySet()
    return await assistant.sort_archived_tasks(archived, client=client)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
