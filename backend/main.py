"""FastAPI application entry point for the Taskpulse backend.

This module builds the FastAPI application with its middleware, routers and
lifespan. All long-lived components are created by the lifespan and stored
on ``app.state``.

Usage:
    uv run uvicorn main:app --reload
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

import structlog
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import router
from api.websocket import websocket_router
from auth import SessionAuthenticator
from config import Settings, settings as default_settings
from events import ConnectionManager, RoomRouter
from models import TaskStore, UserStore, init_database
from reminders import ReminderAggregator, ReminderScheduler, StalenessScanner
from task_service import TaskService

logger = structlog.get_logger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application for ``settings`` (the process settings by default)."""
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager for startup and shutdown events.

        Args:
            app: The FastAPI application instance.

        Yields:
            None during application runtime.
        """
        # Startup
        logger.info(
            "application_starting",
            backend_port=settings.backend_port,
            log_level=settings.log_level,
            cron_enabled=settings.cron_enabled,
        )

        await init_database(settings.database_path)
        user_store = UserStore(settings.database_path)
        task_store = TaskStore(settings.database_path)

        authenticator = SessionAuthenticator(
            settings.jwt_secret,
            expires_in=timedelta(minutes=settings.jwt_expires_minutes),
            algorithm=settings.jwt_algorithm,
        )
        room_router = RoomRouter(queue_size=settings.websocket_queue_size)
        scheduler = ReminderScheduler(
            StalenessScanner(task_store),
            ReminderAggregator(user_store),
            room_router,
            enabled=settings.cron_enabled,
            schedule=settings.cron_reminder_schedule,
            threshold_hours=settings.task_reminder_threshold_hours,
        )

        app.state.settings = settings
        app.state.user_store = user_store
        app.state.task_store = task_store
        app.state.authenticator = authenticator
        app.state.router = room_router
        app.state.connection_manager = ConnectionManager(room_router, authenticator)
        app.state.task_service = TaskService(task_store, room_router)
        app.state.scheduler = scheduler

        scheduler.initialize()

        logger.info("application_started")

        yield

        # Shutdown
        logger.info("application_shutting_down")
        scheduler.stop_all()
        room_router.close()
        logger.info("application_shutdown_complete")

    app = FastAPI(
        title="Taskpulse",
        description="Task tracking backend with realtime notifications "
        "and scheduled stale-task reminders.",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Configure CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning("request_validation_failed", path=request.url.path)
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "success": False,
                "error": "ValidationError",
                "detail": jsonable_encoder(exc.errors()),
            },
        )

    app.include_router(router, tags=["tasks"])
    app.include_router(websocket_router, tags=["websocket"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=default_settings.backend_port,
        reload=True,
        log_level=default_settings.log_level.lower(),
    )
