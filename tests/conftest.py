"""Pytest fixtures and configuration for aikanban tests."""

import pytest
from datetime import datetime, timedelta, timezone
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock, patch

from aikanban.auth.passwords import hash_password
from aikanban.database.changes import ChangeFeed
from aikanban.database.database import Base
from aikanban.database.repository import TaskRepository
from aikanban.integrations.mistral_client import MistralClient
from aikanban.models.task import Task, TaskPriority, TaskStatus


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"
TEST_PASSWORD = "correct-horse"


@pytest.fixture(scope="function")
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    # StaticPool keeps one connection so every session sees the same database
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragmas(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def db_session(session_factory, test_user_id):
    """Create a database session for testing, with the test user already stored."""
    from aikanban.database.models import UserDB

    session = session_factory()
    now = datetime.now(timezone.utc)
    session.add(UserDB(
        id=test_user_id,
        email="test@example.com",
        name="Test User",
        password_hash=hash_password(TEST_PASSWORD, iterations=1000),
        created_at=now,
        updated_at=now,
    ))
    session.commit()

    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def change_feed():
    return ChangeFeed()


@pytest.fixture
def task_repository(db_session: Session, change_feed):
    """Create a TaskRepository instance for testing."""
    return TaskRepository(db_session, change_feed)


@pytest.fixture
def test_password():
    """Password stored for the test user."""
    return TEST_PASSWORD


@pytest.fixture
def test_user_id():
    """Test user ID for multi-user testing."""
    return "test-user-123"


@pytest.fixture
def sample_task_base(test_user_id):
    """Base task data for creating test tasks.

    Returns a dict with default task attributes that can be overridden.
    """
    now = datetime.now(timezone.utc)
    return {
        "id": "task_1718000000000_abcdefghi",
        "user_id": test_user_id,
        "title": "Test Task",
        "description": "Test description",
        "priority": TaskPriority.MEDIUM,
        "status": TaskStatus.BACKLOG,
        "tags": ["work"],
        "ai_enhanced": False,
        "ai_suggested_tags": [],
        "created_at": now,
        "updated_at": now,
        "archived": False,
        "archived_at": None,
    }


@pytest.fixture
def sample_task(sample_task_base):
    """Create a sample Task object for testing."""
    return Task(**sample_task_base)


@pytest.fixture
def make_task(sample_task_base):
    """Factory for tasks with distinct ids and staggered creation times."""
    counter = {"n": 0}

    def _make(**overrides) -> Task:
        counter["n"] += 1
        created = sample_task_base["created_at"] - timedelta(minutes=counter["n"])
        data = {
            **sample_task_base,
            "id": f"task_1718000000000_t{counter['n']:08d}",
            "title": f"Task {counter['n']}",
            "created_at": created,
            "updated_at": created,
        }
        data.update(overrides)
        return Task(**data)

    return _make


@pytest.fixture
def test_user(test_user_id):
    """Create a test user object."""
    from aikanban.models.user import User
    now = datetime.now(timezone.utc)
    return User(
        id=test_user_id,
        email="test@example.com",
        name="Test User",
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def mock_ai_client():
    """MistralClient stand-in; set `complete.return_value` to the raw model text."""
    client = MagicMock(spec=MistralClient)
    client.complete = AsyncMock(return_value="{}")
    return client


def _override_dependencies(app, session_factory, mock_ai_client):
    from aikanban.api.app import BoardRegistry, get_ai_client, get_board_registry, get_session_maker
    from aikanban.database.database import get_db

    registry = BoardRegistry(ChangeFeed())

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_maker] = lambda: session_factory
    app.dependency_overrides[get_board_registry] = lambda: registry
    app.dependency_overrides[get_ai_client] = lambda: mock_ai_client
    return registry


@pytest.fixture
def test_client(session_factory, db_session, test_user, mock_ai_client):
    """Create a FastAPI test client with overridden database dependency and authentication."""
    from aikanban.api.app import app
    from aikanban.auth.dependencies import get_current_user

    registry = _override_dependencies(app, session_factory, mock_ai_client)
    app.dependency_overrides[get_current_user] = lambda: test_user

    # Schema already exists; no pacing delay between insights calls
    with patch("aikanban.api.app.init_db"), patch("aikanban.api.app.INSIGHTS_PACING_SECONDS", 0):
        with TestClient(app) as client:
            client.registry = registry
            yield client

    # Clean up dependency overrides
    app.dependency_overrides.clear()


@pytest.fixture
def auth_client(session_factory, db_session, mock_ai_client):
    """Test client that goes through real bearer-token authentication."""
    from aikanban.api.app import app

    _override_dependencies(app, session_factory, mock_ai_client)

    with patch("aikanban.api.app.init_db"):
        with TestClient(app) as client:
            yield client

    app.dependency_overrides.clear()
