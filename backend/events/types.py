"""Event type definitions for the realtime channel.

Every server-to-client message is an envelope ``{"event": <name>, "data": {...}}``.
Each event name has exactly one payload model, and each envelope pins its
``event`` tag with a ``Literal`` so ``ServerEvent`` is a discriminated union:
an event cannot be built with the wrong payload shape.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from models.schemas import Task, UserRole, WireModel


def utcnow() -> datetime:
    return datetime.now(UTC)


class EventName(StrEnum):
    """All event names that travel over the realtime channel.

    Server -> client:
    - Connection lifecycle: welcome acknowledgment, rejection, pong
    - Task mutations: broadcast to every connection
    - Reminders: per-user and admin summaries from the reminder sweep
    - Diagnostics: admin test broadcast

    Client -> server:
    - PING
    """

    # Connection lifecycle
    CONNECTED = "connected"
    CONNECT_ERROR = "connect_error"
    PONG = "pong"

    # Task mutations
    NEW_TASK = "newTask"
    TASK_UPDATED = "taskUpdated"
    TASK_COMPLETED = "taskCompleted"
    TASK_DELETED = "taskDeleted"

    # Reminders
    USER_TASK_REMINDERS = "userTaskReminders"
    ADMIN_TASK_REMINDERS = "adminTaskReminders"

    # Diagnostics
    TEST_BROADCAST = "testBroadcast"

    # Client -> server
    PING = "ping"


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


class ConnectedPayload(WireModel):
    """Welcome acknowledgment sent to a connection once it is active."""

    message: str = "Connected to task notifications"
    user_id: str
    email: str
    role: UserRole
    socket_id: str
    rooms: list[str]
    timestamp: datetime = Field(default_factory=utcnow)


class ConnectErrorPayload(WireModel):
    message: str


class PongPayload(WireModel):
    timestamp: datetime = Field(default_factory=utcnow)


class TaskEventPayload(WireModel):
    """Payload for ``newTask`` and ``taskCompleted``."""

    message: str
    task: Task


class TaskUpdatedPayload(WireModel):
    message: str = "Task updated"
    task: Task
    changes: dict[str, Any]


class DeletedTaskInfo(WireModel):
    task_id: str
    user_id: str
    deleted_at: datetime = Field(default_factory=utcnow)


class TaskDeletedPayload(WireModel):
    message: str = "Task deleted"
    data: DeletedTaskInfo


class UserReminderItem(WireModel):
    """One stale task as shown to its owner."""

    task_id: str
    title: str
    description: str
    created_at: datetime
    age: str
    days_old: int


class UserTaskRemindersPayload(WireModel):
    count: int
    message: str
    tasks: list[UserReminderItem]
    timestamp: datetime = Field(default_factory=utcnow)


class ReminderSummary(WireModel):
    total_tasks: int
    total_users: int
    threshold_hours: int


class UserReminderSummary(WireModel):
    user_id: str
    email: str
    task_count: int


class AdminReminderItem(WireModel):
    """One stale task as shown to administrators."""

    task_id: str
    user_id: str
    user_email: str
    title: str
    description: str
    created_at: datetime
    age: str
    days_old: int


class AdminTaskRemindersPayload(WireModel):
    message: str
    summary: ReminderSummary
    user_summaries: list[UserReminderSummary]
    all_tasks: list[AdminReminderItem]
    timestamp: datetime = Field(default_factory=utcnow)


class AdminTestBroadcastPayload(WireModel):
    message: str = "Test broadcast from admin"
    timestamp: datetime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class _Envelope(BaseModel):
    def to_wire(self) -> dict[str, Any]:
        """Serialize to the JSON frame sent over the websocket."""
        return self.model_dump(mode="json", by_alias=True)


class ConnectedEvent(_Envelope):
    event: Literal[EventName.CONNECTED] = EventName.CONNECTED
    data: ConnectedPayload


class ConnectErrorEvent(_Envelope):
    event: Literal[EventName.CONNECT_ERROR] = EventName.CONNECT_ERROR
    data: ConnectErrorPayload


class PongEvent(_Envelope):
    event: Literal[EventName.PONG] = EventName.PONG
    data: PongPayload = Field(default_factory=PongPayload)


class NewTaskEvent(_Envelope):
    event: Literal[EventName.NEW_TASK] = EventName.NEW_TASK
    data: TaskEventPayload


class TaskUpdatedEvent(_Envelope):
    event: Literal[EventName.TASK_UPDATED] = EventName.TASK_UPDATED
    data: TaskUpdatedPayload


class TaskCompletedEvent(_Envelope):
    event: Literal[EventName.TASK_COMPLETED] = EventName.TASK_COMPLETED
    data: TaskEventPayload


class TaskDeletedEvent(_Envelope):
    event: Literal[EventName.TASK_DELETED] = EventName.TASK_DELETED
    data: TaskDeletedPayload


class UserTaskRemindersEvent(_Envelope):
    event: Literal[EventName.USER_TASK_REMINDERS] = EventName.USER_TASK_REMINDERS
    data: UserTaskRemindersPayload


class AdminTaskRemindersEvent(_Envelope):
    event: Literal[EventName.ADMIN_TASK_REMINDERS] = EventName.ADMIN_TASK_REMINDERS
    data: AdminTaskRemindersPayload


class AdminTestBroadcastEvent(_Envelope):
    event: Literal[EventName.TEST_BROADCAST] = EventName.TEST_BROADCAST
    data: AdminTestBroadcastPayload = Field(default_factory=AdminTestBroadcastPayload)


ServerEvent = Annotated[
    ConnectedEvent
    | ConnectErrorEvent
    | PongEvent
    | NewTaskEvent
    | TaskUpdatedEvent
    | TaskCompletedEvent
    | TaskDeletedEvent
    | UserTaskRemindersEvent
    | AdminTaskRemindersEvent
    | AdminTestBroadcastEvent,
    Field(discriminator="event"),
]
