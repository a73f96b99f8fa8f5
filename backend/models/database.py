"""SQLite-based task and user persistence using aiosqlite.

This module provides the stores the rest of the backend reads and writes
through. Each operation opens its own connection, so stores are safe to share
between request handlers and scheduled sweeps running on the same event loop.

Unlike best-effort telemetry writes, a failing task query must be visible to
the caller (the reminder sweep reports it, the HTTP layer answers 500), so
errors are logged and re-raised.

Tables:
    users: id, email (unique), role, created_at.
    tasks: id, user_id, title, description, completed, created_at, updated_at.

Usage:
    >>> from models.database import TaskStore, UserStore, init_database
    >>> await init_database("./data/tasks.db")
    >>> users = UserStore("./data/tasks.db")
    >>> user = await users.create("ada@example.com")
    >>> tasks = TaskStore("./data/tasks.db")
    >>> await tasks.create(user.user_id, "Write report", "Q3 numbers")
"""

import time
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from models.schemas import Task, User, UserRole

logger = structlog.get_logger(__name__)

_UPDATABLE_TASK_FIELDS = ("title", "description", "completed")


def _to_datetime(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=UTC)


async def init_database(db_path: str) -> None:
    """Create database tables if they do not exist.

    Also creates parent directories for the database file if needed.

    Args:
        db_path: Filesystem path to the SQLite database file.
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    try:
        async with aiosqlite.connect(db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL UNIQUE,
                    role TEXT NOT NULL DEFAULT 'user',
                    created_at REAL NOT NULL
                )
            """)
            await db.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL,
                    completed INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    FOREIGN KEY (user_id) REFERENCES users(id)
                )
            """)
            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_tasks_user_completed
                ON tasks(user_id, completed)
            """)
            # Staleness scans filter on created_at
            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_tasks_created_at
                ON tasks(created_at)
            """)
            await db.commit()
        logger.info("database_initialized", db_path=db_path)
    except Exception as e:
        logger.error("database_init_failed", db_path=db_path, error=str(e))
        raise


class UserStore:
    """Async SQLite store for users.

    Attributes:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    @staticmethod
    def _row_to_user(row: aiosqlite.Row) -> User:
        return User(
            user_id=row["id"],
            email=row["email"],
            role=UserRole(row["role"]),
            created_at=_to_datetime(row["created_at"]),
        )

    async def create(self, email: str, role: UserRole = UserRole.USER) -> User:
        """Insert a user. Emails are stored lower-cased.

        Raises:
            aiosqlite.IntegrityError: If the email is already registered.
        """
        user_id = uuid.uuid4().hex
        now = time.time()
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    "INSERT INTO users (id, email, role, created_at) VALUES (?, ?, ?, ?)",
                    (user_id, email.strip().lower(), str(role), now),
                )
                await db.commit()
        except Exception as e:
            logger.error("user_create_failed", email=email, error=str(e))
            raise

        logger.debug("user_created", user_id=user_id, role=str(role))
        return User(
            user_id=user_id,
            email=email.strip().lower(),
            role=role,
            created_at=_to_datetime(now),
        )

    async def get(self, user_id: str) -> User | None:
        """Return a user by id, or None if not found."""
        try:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute("SELECT * FROM users WHERE id = ?", (user_id,))
                row = await cursor.fetchone()
        except Exception as e:
            logger.error("user_get_failed", user_id=user_id, error=str(e))
            raise
        return self._row_to_user(row) if row is not None else None

    async def get_by_email(self, email: str) -> User | None:
        """Return a user by email (case-insensitive), or None."""
        try:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(
                    "SELECT * FROM users WHERE email = ?", (email.strip().lower(),)
                )
                row = await cursor.fetchone()
        except Exception as e:
            logger.error("user_get_by_email_failed", error=str(e))
            raise
        return self._row_to_user(row) if row is not None else None


class TaskStore:
    """Async SQLite store for tasks.

    Attributes:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        return Task(
            task_id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            description=row["description"],
            completed=bool(row["completed"]),
            created_at=_to_datetime(row["created_at"]),
            updated_at=_to_datetime(row["updated_at"]),
        )

    async def _fetch_all(self, query: str, params: tuple[Any, ...] = ()) -> list[Task]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def create(
        self,
        user_id: str,
        title: str,
        description: str,
        created_at: float | None = None,
    ) -> Task:
        """Insert a new, incomplete task.

        Args:
            user_id: Owning user.
            title: Task title.
            description: Task description.
            created_at: Unix timestamp of creation (defaults to now). Used by
                imports and tests that need back-dated tasks.
        """
        task_id = uuid.uuid4().hex
        now = time.time()
        created_at = created_at if created_at is not None else now
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    """
                    INSERT INTO tasks
                        (id, user_id, title, description, completed, created_at, updated_at)
                    VALUES (?, ?, ?, ?, 0, ?, ?)
                    """,
                    (task_id, user_id, title, description, created_at, created_at),
                )
                await db.commit()
        except Exception as e:
            logger.error("task_create_failed", user_id=user_id, error=str(e))
            raise

        logger.debug("task_created", task_id=task_id, user_id=user_id)
        return Task(
            task_id=task_id,
            user_id=user_id,
            title=title,
            description=description,
            completed=False,
            created_at=_to_datetime(created_at),
            updated_at=_to_datetime(created_at),
        )

    async def get(self, task_id: str) -> Task | None:
        """Return a task by id, or None if not found."""
        try:
            tasks = await self._fetch_all("SELECT * FROM tasks WHERE id = ?", (task_id,))
        except Exception as e:
            logger.error("task_get_failed", task_id=task_id, error=str(e))
            raise
        return tasks[0] if tasks else None

    async def list_by_user(self, user_id: str) -> list[Task]:
        """List a user's tasks, newest first."""
        try:
            return await self._fetch_all(
                "SELECT * FROM tasks WHERE user_id = ? ORDER BY created_at DESC",
                (user_id,),
            )
        except Exception as e:
            logger.error("task_list_by_user_failed", user_id=user_id, error=str(e))
            raise

    async def list_all(self) -> list[Task]:
        """List every task, newest first."""
        try:
            return await self._fetch_all("SELECT * FROM tasks ORDER BY created_at DESC")
        except Exception as e:
            logger.error("task_list_all_failed", error=str(e))
            raise

    async def find_incomplete_before(self, cutoff: datetime) -> list[Task]:
        """Return incomplete tasks created strictly before ``cutoff``, oldest first.

        Args:
            cutoff: Absolute timestamp; timezone-aware datetimes are expected.
        """
        try:
            return await self._fetch_all(
                """
                SELECT * FROM tasks
                WHERE completed = 0 AND created_at < ?
                ORDER BY created_at ASC
                """,
                (cutoff.timestamp(),),
            )
        except Exception as e:
            logger.error(
                "task_find_incomplete_failed",
                cutoff=cutoff.isoformat(),
                error=str(e),
            )
            raise

    async def update(self, task_id: str, changes: dict[str, Any]) -> Task | None:
        """Apply ``changes`` (title, description, completed) to a task.

        Unknown keys are ignored. Returns the updated task, or None if the
        task does not exist.
        """
        fields = {k: v for k, v in changes.items() if k in _UPDATABLE_TASK_FIELDS}
        if "completed" in fields:
            fields["completed"] = 1 if fields["completed"] else 0

        assignments = ", ".join(f"{name} = ?" for name in fields)
        set_clause = f"{assignments}, updated_at = ?" if assignments else "updated_at = ?"
        params = (*fields.values(), time.time(), task_id)

        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(
                    f"UPDATE tasks SET {set_clause} WHERE id = ?",  # noqa: S608
                    params,
                )
                await db.commit()
                updated = cursor.rowcount
        except Exception as e:
            logger.error("task_update_failed", task_id=task_id, error=str(e))
            raise

        if not updated:
            return None
        return await self.get(task_id)

    async def delete(self, task_id: str) -> bool:
        """Delete a task. Returns True if a row was removed."""
        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
                await db.commit()
                return cursor.rowcount > 0
        except Exception as e:
            logger.error("task_delete_failed", task_id=task_id, error=str(e))
            raise
