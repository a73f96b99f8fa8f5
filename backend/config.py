"""Application configuration using Pydantic Settings.

This module provides centralized configuration management for the Taskpulse backend.
All settings can be overridden via environment variables or a .env file.
"""

import json
import logging
from typing import Any

import structlog
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from auth.tokens import MIN_SECRET_BYTES


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        jwt_secret: Secret used to sign and verify bearer credentials. At least
            32 bytes (HS256 key size).
        jwt_algorithm: JWS algorithm for bearer credentials.
        jwt_expires_minutes: Lifetime of issued credentials.
        cron_enabled: If True, the task reminder job is registered at startup.
        cron_reminder_schedule: Cron expression for the reminder sweep.
        task_reminder_threshold_hours: Incomplete tasks older than this are
            reminder-eligible.
        database_path: Filesystem path of the SQLite database.
        websocket_queue_size: Per-connection outbound event buffer. Events for
            a connection whose buffer is full are dropped for that connection.
        backend_port: Port for the FastAPI server.
        cors_origins: Allowed origins for CORS (HTTP and websocket).
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        log_format: Log format (json or text).
    """

    # Credentials
    jwt_secret: str = "change-me-in-production-with-a-32-byte-secret"
    jwt_algorithm: str = "HS256"
    jwt_expires_minutes: int = 24 * 60

    # Reminder sweep
    cron_enabled: bool = False
    cron_reminder_schedule: str = "0 8 * * *"  # 08:00 daily
    task_reminder_threshold_hours: int = 24

    # Database Configuration
    database_path: str = "./data/tasks.db"

    # Realtime channel
    websocket_queue_size: int = 1000

    # Server Configuration
    backend_port: int = 8000
    cors_origins: str | list[str] = ["http://localhost:3000"]
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> list[str]:
        """Parse CORS origins from string or list.

        Accepts:
        - JSON array: '["http://localhost:3000"]'
        - Comma-separated: 'http://localhost:3000,http://localhost:8080'
        - Single value: 'http://localhost:3000'
        - Already a list: ["http://localhost:3000"]
        """
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            v = v.strip()
            # Try JSON first
            if v.startswith("["):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            # Fallback to comma-separated
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return ["http://localhost:3000"]

    @field_validator("jwt_secret")
    @classmethod
    def require_strong_secret(cls, v: str) -> str:
        """HS256 secrets must cover the full 256-bit key size."""
        if len(v.encode("utf-8")) < MIN_SECRET_BYTES:
            raise ValueError(f"must be at least {MIN_SECRET_BYTES} bytes")
        return v

    @field_validator("task_reminder_threshold_hours", "jwt_expires_minutes")
    @classmethod
    def require_positive(cls, v: int) -> int:
        """Durations must be strictly positive."""
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    model_config = SettingsConfigDict(
        # Support running `uvicorn` from either the repo root or `backend/`
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


def configure_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structured logging for the application.

    Sets up structlog with appropriate processors for either JSON or console output.

    Args:
        log_level: The minimum log level to emit (DEBUG, INFO, WARNING, ERROR).
        log_format: Output format - 'json' for production, 'text' for development.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Global settings instance
settings = Settings()

# Configure logging on module import
configure_logging(settings.log_level, settings.log_format)

# Create a logger for this module
logger = structlog.get_logger(__name__)
