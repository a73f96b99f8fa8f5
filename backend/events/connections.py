"""Per-connection lifecycle for the realtime channel.

Each websocket connection walks a small state machine::

    connecting -> authenticating -> authenticated -> active -> disconnected
                                 \\-> rejected ---------------/

A transport that closes before presenting credentials goes straight from
``connecting`` to ``disconnected``.

Authentication happens synchronously while the connection is being
established, so a connection owns no room membership and can receive no
events until it is ``active``. Membership is set exactly once, on entering
``authenticated``, and disappears with the connection.
"""

import asyncio
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import structlog

from auth import Identity, SessionAuthenticator
from errors import AuthenticationError, ConnectionStateError
from events.rooms import ADMIN_ROOM, RoomRouter, user_room
from events.types import (
    ConnectedEvent,
    ConnectedPayload,
    EventName,
    PongEvent,
    PongPayload,
    ServerEvent,
)

logger = structlog.get_logger(__name__)


class ConnectionState(StrEnum):
    """Lifecycle states of a realtime connection."""

    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    ACTIVE = "active"
    REJECTED = "rejected"
    DISCONNECTED = "disconnected"


_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.AUTHENTICATING, ConnectionState.DISCONNECTED}
    ),
    ConnectionState.AUTHENTICATING: frozenset(
        {ConnectionState.AUTHENTICATED, ConnectionState.REJECTED}
    ),
    ConnectionState.AUTHENTICATED: frozenset({ConnectionState.ACTIVE}),
    ConnectionState.ACTIVE: frozenset({ConnectionState.DISCONNECTED}),
    ConnectionState.REJECTED: frozenset({ConnectionState.DISCONNECTED}),
    ConnectionState.DISCONNECTED: frozenset(),
}


@dataclass
class Connection:
    """An ephemeral realtime connection.

    Attributes:
        connection_id: Unique id, echoed to the client as ``socketId``.
        created_at: When the transport opened.
        state: Current lifecycle state.
        identity: Authenticated caller (None until authenticated).
        outbox: Queue the router delivers this connection's events to
            (None until active).
    """

    connection_id: str
    created_at: datetime
    state: ConnectionState = ConnectionState.CONNECTING
    identity: Identity | None = None
    outbox: "asyncio.Queue[ServerEvent] | None" = field(default=None, repr=False)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ConnectionManager:
    """Drives connections through their lifecycle and owns the live registry.

    Attributes:
        router: Room router connections are joined to.
        authenticator: Verifies the credential presented at connect time.
    """

    def __init__(
        self,
        router: RoomRouter,
        authenticator: SessionAuthenticator,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.router = router
        self.authenticator = authenticator
        self._clock = clock
        self._connections: dict[str, Connection] = {}

    def _transition(self, connection: Connection, new_state: ConnectionState) -> None:
        if new_state not in _TRANSITIONS[connection.state]:
            raise ConnectionStateError(
                f"Illegal transition {connection.state} -> {new_state} "
                f"for connection {connection.connection_id}"
            )
        logger.debug(
            "connection_state_changed",
            connection_id=connection.connection_id,
            from_state=str(connection.state),
            to_state=str(new_state),
        )
        connection.state = new_state

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------

    def open(self) -> Connection:
        """Create a connection in the ``connecting`` state."""
        connection = Connection(
            connection_id=uuid.uuid4().hex[:20],
            created_at=self._clock(),
        )
        self._connections[connection.connection_id] = connection
        return connection

    def authenticate(self, connection: Connection, token: str | None) -> Identity:
        """Authenticate, join rooms, activate and send the welcome ack.

        Raises:
            AuthenticationError: The credential was rejected. The connection
                is left in ``rejected`` and joined to no room.
        """
        self._transition(connection, ConnectionState.AUTHENTICATING)
        try:
            identity = self.authenticator.verify(token)
        except AuthenticationError as e:
            self._transition(connection, ConnectionState.REJECTED)
            logger.warning(
                "connection_rejected",
                connection_id=connection.connection_id,
                reason=e.reason,
            )
            raise

        connection.identity = identity
        self._transition(connection, ConnectionState.AUTHENTICATED)

        connection.outbox = self.router.register(connection.connection_id)
        self.router.join(connection.connection_id, user_room(identity.user_id))
        if identity.is_admin:
            self.router.join(connection.connection_id, ADMIN_ROOM)
            logger.info(
                "admin_joined_admin_room",
                connection_id=connection.connection_id,
                email=identity.email,
            )

        self._transition(connection, ConnectionState.ACTIVE)
        rooms = self.router.rooms_of(connection.connection_id)
        logger.info(
            "client_connected",
            connection_id=connection.connection_id,
            user_id=identity.user_id,
            email=identity.email,
            role=str(identity.role),
            rooms=rooms,
        )

        self.router.send_to_connection(
            connection.connection_id,
            ConnectedEvent(
                data=ConnectedPayload(
                    user_id=identity.user_id,
                    email=identity.email,
                    role=identity.role,
                    socket_id=connection.connection_id,
                    rooms=rooms,
                    timestamp=self._clock(),
                )
            ),
        )
        return identity

    def handle_message(self, connection: Connection, message: Any) -> None:
        """Process one client frame (``{"event": "ping"}``)."""
        if connection.state != ConnectionState.ACTIVE:
            logger.warning(
                "message_on_inactive_connection",
                connection_id=connection.connection_id,
                state=str(connection.state),
            )
            return

        if not isinstance(message, dict):
            logger.warning("invalid_ws_message", connection_id=connection.connection_id)
            return

        event_name = message.get("event")
        if event_name == EventName.PING:
            self.router.send_to_connection(
                connection.connection_id,
                PongEvent(data=PongPayload(timestamp=self._clock())),
            )
        else:
            logger.warning(
                "unknown_client_event",
                connection_id=connection.connection_id,
                event_name=event_name,
            )

    def transport_error(self, connection: Connection, error: BaseException) -> None:
        """Record a transport error. The state only changes on closure."""
        logger.error(
            "connection_transport_error",
            connection_id=connection.connection_id,
            state=str(connection.state),
            error=str(error),
        )

    def disconnect(self, connection: Connection, reason: str) -> None:
        """Tear the connection down. Calling it again is a no-op."""
        if connection.state == ConnectionState.DISCONNECTED:
            return
        self._transition(connection, ConnectionState.DISCONNECTED)
        self.router.unregister(connection.connection_id)
        self._connections.pop(connection.connection_id, None)
        identity = connection.identity
        logger.info(
            "client_disconnected",
            connection_id=connection.connection_id,
            user_id=identity.user_id if identity else None,
            email=identity.email if identity else None,
            reason=reason,
        )

    # -----------------------------------------------------------------
    # Introspection
    # -----------------------------------------------------------------

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def active_connections(self) -> list[Connection]:
        return [
            c for c in self._connections.values() if c.state == ConnectionState.ACTIVE
        ]
