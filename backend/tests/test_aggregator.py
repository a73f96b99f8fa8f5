"""Tests for reminders/aggregator.py -- grouping, ages and payload shapes."""

from collections.abc import Callable
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from models.schemas import Task, User, UserRole
from reminders.aggregator import (
    ReminderAggregator,
    days_old,
    format_task_age,
    group_by_owner,
)


def _user(user_id: str, email: str, now: datetime) -> User:
    return User(user_id=user_id, email=email, role=UserRole.USER, created_at=now)


@pytest.fixture()
def user_store(now: datetime) -> AsyncMock:
    users = {
        "alice": _user("alice", "alice@example.com", now),
        "bob": _user("bob", "bob@example.com", now),
    }
    store = AsyncMock()
    store.get = AsyncMock(side_effect=lambda user_id: users.get(user_id))
    return store


# =========================================================================
# Age formatting
# =========================================================================


class TestFormatTaskAge:
    @pytest.mark.parametrize(
        ("elapsed", "expected"),
        [
            (timedelta(hours=25), "1 day 1 hour"),
            (timedelta(days=2), "2 days 0 hours"),
            (timedelta(days=3, hours=5, minutes=59), "3 days 5 hours"),
            (timedelta(hours=3, minutes=10), "3 hours 10 minutes"),
            (timedelta(hours=1, minutes=1), "1 hour 1 minute"),
            (timedelta(minutes=45), "45 minutes"),
            (timedelta(minutes=1, seconds=30), "1 minute"),
            (timedelta(0), "0 minutes"),
        ],
    )
    def test_formats(self, now: datetime, elapsed: timedelta, expected: str) -> None:
        assert format_task_age(now - elapsed, now) == expected

    def test_future_timestamp_counts_as_zero(self, now: datetime) -> None:
        assert format_task_age(now + timedelta(hours=2), now) == "0 minutes"

    def test_days_old(self, now: datetime) -> None:
        assert days_old(now - timedelta(hours=47), now) == 1
        assert days_old(now - timedelta(hours=48), now) == 2
        assert days_old(now + timedelta(hours=1), now) == 0


# =========================================================================
# Grouping
# =========================================================================


class TestGroupByOwner:
    def test_groups_preserve_first_seen_and_input_order(
        self, make_task: Callable[..., Task]
    ) -> None:
        b1 = make_task(user_id="bob", hours_old=50)
        a1 = make_task(user_id="alice", hours_old=40)
        b2 = make_task(user_id="bob", hours_old=30)

        groups = group_by_owner([b1, a1, b2])

        assert list(groups) == ["bob", "alice"]
        assert groups["bob"] == [b1, b2]
        assert groups["alice"] == [a1]

    def test_every_task_in_exactly_one_group(
        self, make_task: Callable[..., Task]
    ) -> None:
        tasks = [make_task(user_id=f"u{i % 3}") for i in range(10)]
        groups = group_by_owner(tasks)
        flattened = [t.task_id for group in groups.values() for t in group]
        assert sorted(flattened) == sorted(t.task_id for t in tasks)

    def test_empty(self) -> None:
        assert group_by_owner([]) == {}


# =========================================================================
# Aggregation
# =========================================================================


class TestAggregate:
    async def test_user_reminders_and_admin_summary(
        self,
        user_store: AsyncMock,
        make_task: Callable[..., Task],
        now: datetime,
    ) -> None:
        tasks = [
            make_task(user_id="alice", hours_old=72, title="Old report"),
            make_task(user_id="bob", hours_old=50),
            make_task(user_id="alice", hours_old=30),
        ]

        batch = await ReminderAggregator(user_store).aggregate(tasks, 24, now)

        assert batch.total_tasks == 3
        assert batch.total_users == 2

        alice, bob = batch.user_reminders
        assert alice.user_id == "alice"
        assert alice.email == "alice@example.com"
        assert alice.payload.count == 2
        assert alice.payload.message == "You have 2 incomplete tasks older than 24 hours"
        assert [item.title for item in alice.payload.tasks] == ["Old report", "Task 3"]
        assert alice.payload.tasks[0].age == "3 days 0 hours"
        assert alice.payload.tasks[0].days_old == 3
        assert alice.payload.timestamp == now

        assert bob.payload.count == 1
        assert bob.payload.message == "You have 1 incomplete task older than 24 hours"

        admin = batch.admin_summary
        assert admin.message == "3 incomplete tasks need attention"
        assert admin.summary.threshold_hours == 24
        assert [(s.email, s.task_count) for s in admin.user_summaries] == [
            ("alice@example.com", 2),
            ("bob@example.com", 1),
        ]
        # Global oldest-first order, not grouped
        assert [item.user_id for item in admin.all_tasks] == ["alice", "bob", "alice"]
        assert admin.all_tasks[1].user_email == "bob@example.com"

    async def test_user_counts_sum_to_total(
        self,
        user_store: AsyncMock,
        make_task: Callable[..., Task],
        now: datetime,
    ) -> None:
        tasks = [make_task(user_id=u) for u in ["alice", "bob", "bob", "alice", "bob"]]
        batch = await ReminderAggregator(user_store).aggregate(tasks, 24, now)

        assert sum(r.payload.count for r in batch.user_reminders) == batch.total_tasks
        assert len(batch.user_reminders) == batch.total_users

    async def test_single_task_admin_message(
        self,
        user_store: AsyncMock,
        make_task: Callable[..., Task],
        now: datetime,
    ) -> None:
        batch = await ReminderAggregator(user_store).aggregate([make_task()], 12, now)
        assert batch.admin_summary.message == "1 incomplete task needs attention"

    async def test_unknown_owner_does_not_abort_batch(
        self,
        user_store: AsyncMock,
        make_task: Callable[..., Task],
        now: datetime,
    ) -> None:
        tasks = [make_task(user_id="ghost"), make_task(user_id="alice")]

        batch = await ReminderAggregator(user_store).aggregate(tasks, 24, now)

        emails = {r.user_id: r.email for r in batch.user_reminders}
        assert emails == {"ghost": "Unknown", "alice": "alice@example.com"}
        assert batch.admin_summary.all_tasks[0].user_email == "Unknown"

    async def test_lookup_error_substitutes_unknown(
        self, make_task: Callable[..., Task], now: datetime
    ) -> None:
        store = AsyncMock()
        store.get = AsyncMock(side_effect=RuntimeError("database is locked"))

        batch = await ReminderAggregator(store).aggregate([make_task()], 24, now)

        assert batch.user_reminders[0].email == "Unknown"
        assert batch.total_tasks == 1

    async def test_owner_resolved_once_per_group(
        self,
        user_store: AsyncMock,
        make_task: Callable[..., Task],
        now: datetime,
    ) -> None:
        tasks = [make_task(user_id="alice") for _ in range(4)]
        await ReminderAggregator(user_store).aggregate(tasks, 24, now)
        user_store.get.assert_awaited_once_with("alice")

    async def test_wire_shape(
        self,
        user_store: AsyncMock,
        make_task: Callable[..., Task],
        now: datetime,
    ) -> None:
        batch = await ReminderAggregator(user_store).aggregate(
            [make_task(user_id="alice")], 24, now
        )

        user_item = batch.user_reminders[0].payload.model_dump(mode="json", by_alias=True)
        assert set(user_item) == {"count", "message", "tasks", "timestamp"}
        assert set(user_item["tasks"][0]) == {
            "taskId", "title", "description", "createdAt", "age", "daysOld",
        }

        admin = batch.admin_summary.model_dump(mode="json", by_alias=True)
        assert set(admin["summary"]) == {"totalTasks", "totalUsers", "thresholdHours"}
        assert set(admin["userSummaries"][0]) == {"userId", "email", "taskCount"}
        assert "userEmail" in admin["allTasks"][0]
