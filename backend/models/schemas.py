"""Pydantic schemas for API request/response models.

This module defines the data models used by the HTTP API, the stores and the
websocket payloads. All models use Pydantic v2. Wire-facing models serialize
with camelCase aliases (``taskId``, ``createdAt``) while Python code uses
snake_case attribute names.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class WireModel(BaseModel):
    """Base for every model that crosses the HTTP or websocket boundary."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserRole(StrEnum):
    """Roles carried in bearer credentials."""

    USER = "user"
    ADMIN = "admin"


class User(WireModel):
    """A registered user, without credentials."""

    user_id: str
    email: str
    role: UserRole = UserRole.USER
    created_at: datetime


class Task(WireModel):
    """A work item owned by exactly one user.

    ``completed`` only changes through an explicit update.
    """

    task_id: str
    user_id: str
    title: str
    description: str
    completed: bool = False
    created_at: datetime
    updated_at: datetime


def _strip_required(value: str, field: str, max_length: int) -> str:
    stripped = value.strip()
    if not stripped:
        raise ValueError(f"{field} is required")
    if len(stripped) > max_length:
        raise ValueError(f"{field} cannot exceed {max_length} characters")
    return stripped


class TaskCreate(WireModel):
    """Request body for creating a task."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"title": "Buy groceries", "description": "Milk, eggs, bread"}
        }
    )

    title: str = Field(description="Short title", max_length=200)
    description: str = Field(description="Task details", max_length=1000)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Strip whitespace and require a non-empty title."""
        return _strip_required(v, "title", 200)

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        """Strip whitespace and require a non-empty description."""
        return _strip_required(v, "description", 1000)


class TaskUpdate(WireModel):
    """Request body for updating a task. Only provided fields change."""

    model_config = ConfigDict(
        json_schema_extra={"example": {"completed": True}}
    )

    title: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    completed: bool | None = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return _strip_required(v, "title", 200)

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return _strip_required(v, "description", 1000)

    def changes(self) -> dict[str, Any]:
        """Return only the fields the client actually sent, minus explicit nulls."""
        return {
            name: value
            for name, value in self.model_dump(exclude_unset=True).items()
            if value is not None
        }


class ApiResponse(BaseModel, Generic[T]):
    """Standard response envelope: ``{success, message, data}``."""

    success: bool = True
    message: str = "Success"
    data: T | None = None


class TaskData(WireModel):
    task: Task


class TaskListData(WireModel):
    tasks: list[Task]
    total: int | None = None


class ConnectedClient(WireModel):
    """A live websocket connection and the rooms it belongs to."""

    id: str
    rooms: list[str]


class ConnectedClientsData(WireModel):
    total_clients: int
    clients: list[ConnectedClient]


class JobStatus(WireModel):
    """Externally visible state of one scheduled job."""

    name: str
    schedule: str
    running: bool
    last_status: str | None = None
    last_run_at: datetime | None = None


class CronStatusData(WireModel):
    cron_enabled: bool
    jobs: list[JobStatus]


class TriggerData(WireModel):
    timestamp: datetime
    status: str
    stale_tasks: int
    users_notified: int


class HealthResponse(WireModel):
    """Response for the health check endpoint."""

    success: bool = True
    message: str = "Server is running"
    timestamp: datetime
    websocket_connections: int = Field(
        default=0, description="Number of live websocket connections"
    )
    cron_jobs: list[JobStatus] = Field(default_factory=list)
