"""Tests for models/database.py -- SQLite user and task stores."""

import sqlite3
from datetime import UTC, datetime

import pytest

from models import TaskStore, UserRole, UserStore, init_database


class TestInitDatabase:
    async def test_creates_parent_directory(self, tmp_path) -> None:
        db_path = tmp_path / "nested" / "dir" / "tasks.db"
        await init_database(str(db_path))
        assert db_path.exists()

    async def test_is_idempotent(self, db_path: str) -> None:
        await init_database(db_path)
        await init_database(db_path)


class TestUserStore:
    async def test_create_and_get(self, user_store: UserStore) -> None:
        user = await user_store.create("Ada@Example.com", UserRole.ADMIN)

        fetched = await user_store.get(user.user_id)
        assert fetched == user
        assert fetched.email == "ada@example.com"
        assert fetched.role == UserRole.ADMIN

    async def test_get_by_email_is_case_insensitive(self, user_store: UserStore) -> None:
        user = await user_store.create("ada@example.com")
        assert await user_store.get_by_email("ADA@example.com") == user

    async def test_missing_user(self, user_store: UserStore) -> None:
        assert await user_store.get("nope") is None
        assert await user_store.get_by_email("nobody@example.com") is None

    async def test_duplicate_email_raises(self, user_store: UserStore) -> None:
        await user_store.create("ada@example.com")
        with pytest.raises(sqlite3.IntegrityError):
            await user_store.create("ada@example.com")


class TestTaskStore:
    async def test_create_defaults(self, task_store: TaskStore) -> None:
        task = await task_store.create("u1", "Write report", "Q3 numbers")

        assert task.completed is False
        assert task.created_at == task.updated_at
        assert await task_store.get(task.task_id) == task

    async def test_backdated_create(self, task_store: TaskStore) -> None:
        created = datetime(2026, 1, 1, tzinfo=UTC)
        task = await task_store.create("u1", "Old", "Old task", created_at=created.timestamp())
        assert (await task_store.get(task.task_id)).created_at == created

    async def test_list_by_user_newest_first(self, task_store: TaskStore) -> None:
        first = await task_store.create("u1", "First", "d", created_at=1_000.0)
        second = await task_store.create("u1", "Second", "d", created_at=2_000.0)
        await task_store.create("u2", "Other", "d", created_at=3_000.0)

        tasks = await task_store.list_by_user("u1")
        assert [t.task_id for t in tasks] == [second.task_id, first.task_id]

    async def test_list_all(self, task_store: TaskStore) -> None:
        await task_store.create("u1", "A", "d", created_at=1_000.0)
        await task_store.create("u2", "B", "d", created_at=2_000.0)
        assert [t.title for t in await task_store.list_all()] == ["B", "A"]

    async def test_update_applies_only_known_fields(self, task_store: TaskStore) -> None:
        task = await task_store.create("u1", "Title", "Desc", created_at=1_000.0)

        updated = await task_store.update(
            task.task_id, {"completed": True, "user_id": "thief", "title": "New"}
        )

        assert updated is not None
        assert updated.completed is True
        assert updated.title == "New"
        assert updated.user_id == "u1"
        assert updated.updated_at > updated.created_at

    async def test_update_missing_task(self, task_store: TaskStore) -> None:
        assert await task_store.update("nope", {"completed": True}) is None

    async def test_delete(self, task_store: TaskStore) -> None:
        task = await task_store.create("u1", "Title", "Desc")
        assert await task_store.delete(task.task_id) is True
        assert await task_store.delete(task.task_id) is False
        assert await task_store.get(task.task_id) is None

    async def test_errors_propagate(self, tmp_path) -> None:
        # Never initialized: the tasks table does not exist
        store = TaskStore(str(tmp_path / "empty.db"))
        with pytest.raises(sqlite3.OperationalError):
            await store.list_all()
