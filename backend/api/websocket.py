"""WebSocket handler for realtime task notifications.

The endpoint authenticates the caller with the same bearer credential the
HTTP API uses, then streams every event routed to the connection's rooms and
answers ``{"event": "ping"}`` frames with ``pong``.

Frames in both directions are JSON objects ``{"event": <name>, "data": {...}}``.
"""

import asyncio
import contextlib

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from errors import AuthenticationError
from events import Connection, ConnectionManager
from events.types import ConnectErrorEvent, ConnectErrorPayload

logger = structlog.get_logger(__name__)

websocket_router = APIRouter()


def _extract_token(websocket: WebSocket, token: str | None) -> str | None:
    """Prefer the ``token`` query parameter, fall back to a Bearer header."""
    if token:
        return token
    header = websocket.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def _origin_allowed(origin: str | None, allowed: list[str]) -> bool:
    # Non-browser clients send no Origin header
    if origin is None:
        return True
    return "*" in allowed or origin.rstrip("/") in {o.rstrip("/") for o in allowed}


@websocket_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: str | None = None) -> None:
    """WebSocket endpoint for realtime notifications.

    This endpoint handles bidirectional communication:
    - Server -> Client: welcome ack, task change events, reminders, pong
    - Client -> Server: ping

    A rejected credential produces one ``connect_error`` frame followed by a
    close with code 1008. A browser ``Origin`` outside the configured CORS
    origins is refused with 1008 before the handshake completes.

    Args:
        websocket: The WebSocket connection.
        token: Bearer token passed as a query parameter.
    """
    manager: ConnectionManager = websocket.app.state.connection_manager

    origin = websocket.headers.get("origin")
    if not _origin_allowed(origin, websocket.app.state.settings.cors_origins):
        logger.warning("websocket_origin_rejected", origin=origin)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    connection = manager.open()
    reason = "server_closed"

    try:
        try:
            manager.authenticate(connection, _extract_token(websocket, token))
        except AuthenticationError as e:
            reason = "authentication_failed"
            await websocket.send_json(
                ConnectErrorEvent(data=ConnectErrorPayload(message=e.message)).to_wire()
            )
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        reason = await _pump(websocket, manager, connection)

    except WebSocketDisconnect:
        reason = "client_disconnect"
    except Exception as e:
        reason = "server_error"
        logger.error(
            "websocket_error",
            connection_id=connection.connection_id,
            error=str(e),
        )
    finally:
        manager.disconnect(connection, reason)


async def _pump(
    websocket: WebSocket, manager: ConnectionManager, connection: Connection
) -> str:
    """Run the send and receive loops until either ends; return the close reason."""
    outbox = connection.outbox
    if outbox is None:
        return "server_closed"

    async def send_events() -> str:
        while True:
            event = await outbox.get()
            try:
                await websocket.send_json(event.to_wire())
            except WebSocketDisconnect:
                return "client_disconnect"
            except Exception as e:
                manager.transport_error(connection, e)
                continue
            logger.debug(
                "event_sent",
                connection_id=connection.connection_id,
                event_name=str(event.event),
            )

    async def receive_messages() -> str:
        while True:
            try:
                data = await websocket.receive_json()
            except WebSocketDisconnect:
                return "client_disconnect"
            except (ValueError, TypeError, KeyError) as e:
                # Malformed or binary frame; keep the connection open
                manager.transport_error(connection, e)
                continue
            manager.handle_message(connection, data)

    send_task = asyncio.create_task(send_events())
    receive_task = asyncio.create_task(receive_messages())

    try:
        # Wait for either task to complete (usually due to disconnect)
        done, _ = await asyncio.wait(
            [send_task, receive_task],
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        for task in (send_task, receive_task):
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    return done.pop().result()
