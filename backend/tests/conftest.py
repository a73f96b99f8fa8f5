"""Shared test fixtures for backend tests.

Provides a fresh RoomRouter, a SessionAuthenticator with a token factory,
temp-file SQLite stores, a fixed clock and Task builders so tests never
depend on wall-clock time or shared state.
"""

import sys
from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Ensure the backend package root is on sys.path so that absolute imports
# like ``from events.rooms import ...`` resolve correctly when running
# pytest from the repository root.
_backend_root = str(Path(__file__).resolve().parent.parent)
if _backend_root not in sys.path:
    sys.path.insert(0, _backend_root)

from auth import Identity, SessionAuthenticator  # noqa: E402
from config import Settings  # noqa: E402
from events import RoomRouter  # noqa: E402
from main import create_app  # noqa: E402
from models import TaskStore, UserStore, init_database  # noqa: E402
from models.schemas import Task, UserRole  # noqa: E402

TEST_SECRET = "test-secret-for-unit-tests-at-least-32-bytes"

FIXED_NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


@pytest.fixture()
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture()
def clock(now: datetime) -> Callable[[], datetime]:
    """A clock frozen at ``now``."""
    return lambda: now


# ---------------------------------------------------------------------------
# Router / authentication
# ---------------------------------------------------------------------------


@pytest.fixture()
def router() -> RoomRouter:
    """Return a fresh RoomRouter for each test."""
    return RoomRouter(queue_size=10)


@pytest.fixture()
def authenticator() -> SessionAuthenticator:
    # Real clock: jwcrypto checks ``exp`` against the wall clock
    return SessionAuthenticator(TEST_SECRET, expires_in=timedelta(hours=1))


@pytest.fixture()
def make_token(authenticator: SessionAuthenticator) -> Callable[..., str]:
    """Factory for signed credentials."""

    def _make(
        user_id: str = "user_1",
        email: str = "user1@example.com",
        role: UserRole = UserRole.USER,
    ) -> str:
        return authenticator.issue(Identity(user_id=user_id, email=email, role=role))

    return _make


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@pytest.fixture()
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "tasks.db")


@pytest.fixture()
async def user_store(db_path: str) -> UserStore:
    await init_database(db_path)
    return UserStore(db_path)


@pytest.fixture()
async def task_store(db_path: str) -> TaskStore:
    await init_database(db_path)
    return TaskStore(db_path)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_task(now: datetime) -> Callable[..., Task]:
    """Build an in-memory Task aged ``hours_old`` relative to ``now``."""
    counter = {"n": 0}

    def _make(
        user_id: str = "user_1",
        hours_old: float = 30,
        title: str | None = None,
        completed: bool = False,
    ) -> Task:
        counter["n"] += 1
        created_at = now - timedelta(hours=hours_old)
        return Task(
            task_id=f"task_{counter['n']}",
            user_id=user_id,
            title=title or f"Task {counter['n']}",
            description=f"Description {counter['n']}",
            completed=completed,
            created_at=created_at,
            updated_at=created_at,
        )

    return _make


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


@pytest.fixture()
def app_settings(db_path: str) -> Settings:
    return Settings(
        jwt_secret=TEST_SECRET,
        database_path=db_path,
        cron_enabled=False,
        websocket_queue_size=50,
    )


@pytest.fixture()
def client(app_settings: Settings) -> Generator[TestClient, None, None]:
    """TestClient with the lifespan running (stores, router, scheduler)."""
    with TestClient(create_app(app_settings)) as test_client:
        yield test_client
