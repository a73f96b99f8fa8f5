"""Task CRUD with change notifications.

Every successful mutation is pushed to all live connections through the
RoomRouter. Emission is fire-and-forget: the router logs and swallows its own
failures, so a notification problem never changes the result of a mutation.
"""

from typing import Any

import structlog

from events.rooms import RoomRouter
from events.types import (
    DeletedTaskInfo,
    NewTaskEvent,
    TaskCompletedEvent,
    TaskDeletedEvent,
    TaskDeletedPayload,
    TaskEventPayload,
    TaskUpdatedEvent,
    TaskUpdatedPayload,
)
from models.database import TaskStore
from models.schemas import Task, TaskCreate, TaskUpdate

logger = structlog.get_logger(__name__)


class TaskService:
    """Owner-scoped task operations.

    A task that does not exist and a task owned by someone else are
    indistinguishable to the caller: both yield ``None`` / ``False``.

    Attributes:
        task_store: Persistence for tasks.
        router: Fan-out for change events.
    """

    def __init__(self, task_store: TaskStore, router: RoomRouter) -> None:
        self.task_store = task_store
        self.router = router

    async def list_user_tasks(self, user_id: str) -> list[Task]:
        return await self.task_store.list_by_user(user_id)

    async def list_all_tasks(self) -> list[Task]:
        return await self.task_store.list_all()

    async def create_task(self, user_id: str, data: TaskCreate) -> Task:
        task = await self.task_store.create(user_id, data.title, data.description)
        logger.info("task_created", task_id=task.task_id, user_id=user_id)

        self.router.broadcast(
            NewTaskEvent(data=TaskEventPayload(message="New task created", task=task)),
        )
        return task

    async def _owned(self, user_id: str, task_id: str) -> Task | None:
        existing = await self.task_store.get(task_id)
        if existing is None or existing.user_id != user_id:
            logger.debug("task_not_owned", task_id=task_id, user_id=user_id)
            return None
        return existing

    async def update_task(
        self, user_id: str, task_id: str, update: TaskUpdate
    ) -> Task | None:
        """Apply ``update`` to a task the user owns.

        Emits ``taskUpdated`` with the applied changes, and additionally
        ``taskCompleted`` when the task moves from incomplete to complete.
        """
        existing = await self._owned(user_id, task_id)
        if existing is None:
            return None

        changes: dict[str, Any] = update.changes()
        updated = await self.task_store.update(task_id, changes)
        if updated is None:
            return None

        logger.info("task_updated", task_id=task_id, fields=sorted(changes))
        self.router.broadcast(
            TaskUpdatedEvent(data=TaskUpdatedPayload(task=updated, changes=changes)),
        )
        if changes.get("completed") is True and not existing.completed:
            self.router.broadcast(
                TaskCompletedEvent(
                    data=TaskEventPayload(message="Task marked as completed", task=updated)
                ),
            )
        return updated

    async def delete_task(self, user_id: str, task_id: str) -> bool:
        if await self._owned(user_id, task_id) is None:
            return False

        deleted = await self.task_store.delete(task_id)
        if deleted:
            logger.info("task_deleted", task_id=task_id, user_id=user_id)
            self.router.broadcast(
                TaskDeletedEvent(
                    data=TaskDeletedPayload(
                        data=DeletedTaskInfo(task_id=task_id, user_id=user_id)
                    )
                ),
            )
        return deleted
