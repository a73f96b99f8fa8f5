"""FastAPI dependencies.

Components are built once by the application lifespan and stored on
``app.state``; these helpers hand them to route handlers.
"""

from typing import Annotated

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from auth import Identity, SessionAuthenticator
from errors import AuthenticationError
from events import RoomRouter
from reminders import ReminderScheduler
from task_service import TaskService

logger = structlog.get_logger(__name__)

_bearer = HTTPBearer(auto_error=False)


def get_authenticator(request: Request) -> SessionAuthenticator:
    return request.app.state.authenticator


def get_router(request: Request) -> RoomRouter:
    return request.app.state.router


def get_task_service(request: Request) -> TaskService:
    return request.app.state.task_service


def get_scheduler(request: Request) -> ReminderScheduler:
    return request.app.state.scheduler


def get_current_identity(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
    authenticator: Annotated[SessionAuthenticator, Depends(get_authenticator)],
) -> Identity:
    """Resolve the caller from ``Authorization: Bearer <token>``.

    Raises:
        HTTPException: 401 if the token is missing, expired or invalid.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return authenticator.verify(credentials.credentials)
    except AuthenticationError as e:
        logger.warning("http_auth_failed", reason=e.reason)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def require_admin(
    identity: Annotated[Identity, Depends(get_current_identity)],
) -> Identity:
    """Like ``get_current_identity`` but rejects non-admins with 403."""
    if not identity.is_admin:
        logger.warning("admin_access_denied", user_id=identity.user_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )
    return identity


CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]
AdminIdentity = Annotated[Identity, Depends(require_admin)]
