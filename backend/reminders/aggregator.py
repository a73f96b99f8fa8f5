"""Reminder aggregation: group stale tasks by owner and build payloads.

Given the scanner's output (oldest first) the aggregator produces one
reminder per owning user and a single summary for administrators. For a fixed
``now`` and input the result is fully deterministic; ``now`` is passed in
rather than read from the clock so age strings are reproducible.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

import structlog

from errors import IdentityResolutionError
from events.types import (
    AdminReminderItem,
    AdminTaskRemindersPayload,
    ReminderSummary,
    UserReminderItem,
    UserReminderSummary,
    UserTaskRemindersPayload,
)
from models.schemas import Task, User

logger = structlog.get_logger(__name__)

UNKNOWN_EMAIL = "Unknown"


class UserLookup(Protocol):
    async def get(self, user_id: str) -> User | None: ...


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def format_task_age(created_at: datetime, now: datetime) -> str:
    """Human-readable elapsed time since ``created_at``.

    ``"1 day 1 hour"`` from one day up, ``"3 hours 10 minutes"`` from one hour
    up, ``"45 minutes"`` below that. Future timestamps count as zero.
    """
    elapsed = max(now - created_at, timedelta(0))
    total_minutes = int(elapsed.total_seconds() // 60)
    days, remainder = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(remainder, 60)

    if days > 0:
        return f"{_plural(days, 'day')} {_plural(hours, 'hour')}"
    if hours > 0:
        return f"{_plural(hours, 'hour')} {_plural(minutes, 'minute')}"
    return _plural(minutes, "minute")


def days_old(created_at: datetime, now: datetime) -> int:
    """Whole days elapsed since ``created_at``."""
    return max(now - created_at, timedelta(0)).days


def group_by_owner(tasks: list[Task]) -> dict[str, list[Task]]:
    """Group tasks by ``user_id``.

    Groups appear in order of each owner's first task, and each group keeps
    the input order. Every input task lands in exactly one group.
    """
    groups: dict[str, list[Task]] = {}
    for task in tasks:
        groups.setdefault(task.user_id, []).append(task)
    return groups


@dataclass
class UserReminder:
    """The reminder addressed to one user's room."""

    user_id: str
    email: str
    payload: UserTaskRemindersPayload


@dataclass
class ReminderBatch:
    """Everything one sweep delivers."""

    groups: dict[str, list[Task]]
    user_reminders: list[UserReminder]
    admin_summary: AdminTaskRemindersPayload

    @property
    def total_tasks(self) -> int:
        return self.admin_summary.summary.total_tasks

    @property
    def total_users(self) -> int:
        return self.admin_summary.summary.total_users


class ReminderAggregator:
    """Builds per-user reminders and the admin summary from stale tasks.

    Attributes:
        user_store: Resolves owner ids to display identities.
    """

    def __init__(self, user_store: UserLookup) -> None:
        self.user_store = user_store

    async def resolve_email(self, user_id: str) -> str:
        """Return the owner's email, or ``"Unknown"`` if it cannot be resolved.

        A failure here never aborts the batch.
        """
        try:
            try:
                user = await self.user_store.get(user_id)
            except Exception as e:
                raise IdentityResolutionError(user_id, str(e)) from e
            if user is None:
                raise IdentityResolutionError(user_id, "user not found")
        except IdentityResolutionError as e:
            logger.warning("identity_resolution_failed", user_id=user_id, error=str(e))
            return UNKNOWN_EMAIL
        return user.email

    async def aggregate(
        self,
        tasks: list[Task],
        threshold_hours: int,
        now: datetime,
    ) -> ReminderBatch:
        """Group ``tasks`` by owner, resolve owners and build both payload shapes.

        Args:
            tasks: Stale tasks, oldest first.
            threshold_hours: Threshold the tasks were selected with (reported
                in the admin summary).
            now: Reference time for ages.
        """
        groups = group_by_owner(tasks)
        emails = {user_id: await self.resolve_email(user_id) for user_id in groups}

        user_reminders: list[UserReminder] = []
        user_summaries: list[UserReminderSummary] = []
        all_tasks: list[AdminReminderItem] = []

        for user_id, user_tasks in groups.items():
            email = emails[user_id]
            items = [
                UserReminderItem(
                    task_id=task.task_id,
                    title=task.title,
                    description=task.description,
                    created_at=task.created_at,
                    age=format_task_age(task.created_at, now),
                    days_old=days_old(task.created_at, now),
                )
                for task in user_tasks
            ]
            count = len(items)
            user_reminders.append(
                UserReminder(
                    user_id=user_id,
                    email=email,
                    payload=UserTaskRemindersPayload(
                        count=count,
                        message=(
                            f"You have {_plural(count, 'incomplete task')} "
                            f"older than {threshold_hours} hours"
                        ),
                        tasks=items,
                        timestamp=now,
                    ),
                )
            )
            user_summaries.append(
                UserReminderSummary(user_id=user_id, email=email, task_count=count)
            )

        # Admin view keeps the scanner's global oldest-first order
        for task in tasks:
            all_tasks.append(
                AdminReminderItem(
                    task_id=task.task_id,
                    user_id=task.user_id,
                    user_email=emails[task.user_id],
                    title=task.title,
                    description=task.description,
                    created_at=task.created_at,
                    age=format_task_age(task.created_at, now),
                    days_old=days_old(task.created_at, now),
                )
            )

        total = len(tasks)
        verb = "needs" if total == 1 else "need"
        admin_summary = AdminTaskRemindersPayload(
            message=f"{_plural(total, 'incomplete task')} {verb} attention",
            summary=ReminderSummary(
                total_tasks=total,
                total_users=len(groups),
                threshold_hours=threshold_hours,
            ),
            user_summaries=user_summaries,
            all_tasks=all_tasks,
            timestamp=now,
        )

        return ReminderBatch(
            groups=groups,
            user_reminders=user_reminders,
            admin_summary=admin_summary,
        )
