"""HTTP API routes for the task notification backend.

This module defines the HTTP endpoints for task CRUD, admin introspection of
the realtime channel, and manual control of the reminder scheduler. Realtime
events are delivered over the WebSocket in websocket.py.

Every JSON response except ``/health`` uses the ``{success, message, data}``
envelope.
"""

from datetime import UTC, datetime
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Path, status

from api.dependencies import (
    AdminIdentity,
    CurrentIdentity,
    get_router,
    get_scheduler,
    get_task_service,
)
from events import RoomRouter
from events.types import AdminTestBroadcastEvent
from models.schemas import (
    ApiResponse,
    ConnectedClientsData,
    CronStatusData,
    HealthResponse,
    TaskCreate,
    TaskData,
    TaskListData,
    TaskUpdate,
    TriggerData,
)
from reminders import ReminderScheduler
from task_service import TaskService

logger = structlog.get_logger(__name__)

router = APIRouter()

Tasks = Annotated[TaskService, Depends(get_task_service)]
Router = Annotated[RoomRouter, Depends(get_router)]
Scheduler = Annotated[ReminderScheduler, Depends(get_scheduler)]

TaskId = Annotated[str, Path(description="The task ID")]

_NOT_FOUND = "Task not found or unauthorized"


# -----------------------------------------------------------------------------
# Health
# -----------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Liveness, live websocket connections and reminder job status.",
)
async def health_check(room_router: Router, scheduler: Scheduler) -> HealthResponse:
    return HealthResponse(
        timestamp=datetime.now(UTC),
        websocket_connections=room_router.connection_count(),
        cron_jobs=scheduler.status(),
    )


# -----------------------------------------------------------------------------
# Tasks
# -----------------------------------------------------------------------------


@router.get(
    "/api/tasks",
    response_model=ApiResponse[TaskListData],
    summary="List own tasks",
)
async def list_tasks(
    identity: CurrentIdentity, tasks: Tasks
) -> ApiResponse[TaskListData]:
    """List the caller's tasks, newest first."""
    items = await tasks.list_user_tasks(identity.user_id)
    return ApiResponse(data=TaskListData(tasks=items))


@router.post(
    "/api/tasks",
    response_model=ApiResponse[TaskData],
    status_code=status.HTTP_201_CREATED,
    summary="Create a task",
    description="Create a task owned by the caller and notify all connections.",
)
async def create_task(
    request: TaskCreate, identity: CurrentIdentity, tasks: Tasks
) -> ApiResponse[TaskData]:
    try:
        task = await tasks.create_task(identity.user_id, request)
    except Exception as e:
        logger.error("task_creation_failed", user_id=identity.user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create task",
        ) from e
    return ApiResponse(message="Task created successfully", data=TaskData(task=task))


@router.put(
    "/api/tasks/{task_id}",
    response_model=ApiResponse[TaskData],
    summary="Update a task",
    description="Update title, description or completion of a task the caller owns.",
)
async def update_task(
    task_id: TaskId,
    request: TaskUpdate,
    identity: CurrentIdentity,
    tasks: Tasks,
) -> ApiResponse[TaskData]:
    task = await tasks.update_task(identity.user_id, task_id, request)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_NOT_FOUND)
    return ApiResponse(message="Task updated successfully", data=TaskData(task=task))


@router.delete(
    "/api/tasks/{task_id}",
    response_model=ApiResponse[None],
    response_model_exclude_none=True,
    summary="Delete a task",
)
async def delete_task(
    task_id: TaskId, identity: CurrentIdentity, tasks: Tasks
) -> ApiResponse[None]:
    if not await tasks.delete_task(identity.user_id, task_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_NOT_FOUND)
    return ApiResponse(message="Task deleted successfully")


# -----------------------------------------------------------------------------
# Admin
# -----------------------------------------------------------------------------


@router.get(
    "/api/admin/tasks",
    response_model=ApiResponse[TaskListData],
    summary="List every task (admin)",
)
async def list_all_tasks(_: AdminIdentity, tasks: Tasks) -> ApiResponse[TaskListData]:
    items = await tasks.list_all_tasks()
    return ApiResponse(data=TaskListData(tasks=items, total=len(items)))


@router.get(
    "/api/websocket/clients",
    response_model=ApiResponse[ConnectedClientsData],
    summary="List live websocket connections (admin)",
)
async def list_connected_clients(
    _: AdminIdentity, room_router: Router
) -> ApiResponse[ConnectedClientsData]:
    clients = room_router.list_connections()
    return ApiResponse(
        data=ConnectedClientsData(total_clients=len(clients), clients=clients)
    )


@router.post(
    "/api/websocket/test-broadcast",
    response_model=ApiResponse[None],
    response_model_exclude_none=True,
    summary="Send a test event to the admin room (admin)",
)
async def test_broadcast(identity: AdminIdentity, room_router: Router) -> ApiResponse[None]:
    room_router.emit_to_admins(AdminTestBroadcastEvent())
    logger.info("test_broadcast_sent", requested_by=identity.user_id)
    return ApiResponse(message="Test broadcast sent to admins")


@router.post(
    "/api/cron/trigger-reminders",
    response_model=ApiResponse[TriggerData],
    summary="Run a reminder sweep now (admin)",
    description="Runs the stale-task sweep immediately, outside the schedule.",
)
async def trigger_reminders(
    identity: AdminIdentity, scheduler: Scheduler
) -> ApiResponse[TriggerData]:
    logger.info("reminder_trigger_requested", requested_by=identity.user_id)
    result = await scheduler.trigger_now()
    if not result.ok:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to trigger task reminders",
        )
    return ApiResponse(
        message="Task reminders triggered successfully",
        data=TriggerData(
            timestamp=result.finished_at,
            status=str(result.status),
            stale_tasks=result.stale_count,
            users_notified=result.user_count,
        ),
    )


@router.get(
    "/api/cron/status",
    response_model=ApiResponse[CronStatusData],
    summary="Reminder scheduler status (admin)",
)
async def cron_status(_: AdminIdentity, scheduler: Scheduler) -> ApiResponse[CronStatusData]:
    return ApiResponse(
        data=CronStatusData(cron_enabled=scheduler.enabled, jobs=scheduler.status())
    )
