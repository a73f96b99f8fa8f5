"""Models module for Pydantic schemas and SQLite stores.

This module exposes the domain models used by the API and the stores that
persist them.
"""

from models.database import TaskStore, UserStore, init_database
from models.schemas import (
    ApiResponse,
    HealthResponse,
    JobStatus,
    Task,
    TaskCreate,
    TaskUpdate,
    User,
    UserRole,
)

__all__ = [
    "ApiResponse",
    "HealthResponse",
    "JobStatus",
    "Task",
    "TaskCreate",
    "TaskStore",
    "TaskUpdate",
    "User",
    "UserRole",
    "UserStore",
    "init_database",
]
