"""Room-addressed fan-out for realtime connections.

The RoomRouter keeps one outbound ``asyncio.Queue`` per live connection and a
membership map from room name to connection ids. Emitting an event puts it on
the queue of every member without waiting; the websocket handler owning each
queue drains it to its socket. A slow or dead peer therefore never delays its
siblings, and nothing a caller emits can raise back into the caller.

Rooms:
    ``user:<user_id>``: every connection of one user (multi-device).
    ``admins``: every connection whose identity has the admin role.
    ``ALL``: broadcast target covering every registered connection.
"""

import asyncio
from collections import defaultdict
from typing import Final

import structlog

from errors import EmissionError
from events.types import ServerEvent
from models.schemas import ConnectedClient

logger = structlog.get_logger(__name__)

ALL: Final = "*"
ADMIN_ROOM: Final = "admins"


def user_room(user_id: str) -> str:
    """Return the per-user room name for ``user_id``."""
    return f"user:{user_id}"


class RoomRouter:
    """Maintains connection -> room membership and performs fan-out.

    Membership for a connection is created by the connection lifecycle and
    removed with ``unregister``; the router never re-evaluates it.

    Usage:
        >>> router = RoomRouter()
        >>> queue = router.register("conn_1")
        >>> router.join("conn_1", user_room("u1"))
        >>> router.emit(user_room("u1"), PongEvent())
        >>> event = queue.get_nowait()

    Attributes:
        queue_size: Bound of each connection's outbound queue (0 = unbounded).
    """

    def __init__(self, queue_size: int = 1000) -> None:
        self.queue_size = queue_size
        self._queues: dict[str, asyncio.Queue[ServerEvent]] = {}
        self._rooms: dict[str, set[str]] = defaultdict(set)
        self._memberships: dict[str, set[str]] = defaultdict(set)
        self._closed = False
        logger.info("room_router_initialized", queue_size=queue_size)

    # -----------------------------------------------------------------
    # Membership
    # -----------------------------------------------------------------

    def register(self, connection_id: str) -> asyncio.Queue[ServerEvent]:
        """Attach a connection and return the queue its events arrive on.

        Registering an already registered connection returns its existing queue.
        """
        queue = self._queues.get(connection_id)
        if queue is None:
            queue = asyncio.Queue(maxsize=self.queue_size)
            self._queues[connection_id] = queue
            logger.debug("connection_registered", connection_id=connection_id)
        return queue

    def unregister(self, connection_id: str) -> None:
        """Detach a connection and drop all of its memberships. No-op if unknown."""
        self._queues.pop(connection_id, None)
        rooms = self._memberships.pop(connection_id, set())
        for room in rooms:
            members = self._rooms.get(room)
            if members is None:
                continue
            members.discard(connection_id)
            if not members:
                del self._rooms[room]
        logger.debug(
            "connection_unregistered",
            connection_id=connection_id,
            rooms_left=sorted(rooms),
        )

    def join(self, connection_id: str, room: str) -> None:
        """Add a registered connection to ``room``. Joining twice is a no-op."""
        if connection_id not in self._queues:
            logger.warning("join_unknown_connection", connection_id=connection_id, room=room)
            return
        if room == ALL:
            # Every registered connection is implicitly in ALL
            return
        self._rooms[room].add(connection_id)
        self._memberships[connection_id].add(room)

    def rooms_of(self, connection_id: str) -> list[str]:
        """Rooms a connection has joined, sorted for stable output."""
        return sorted(self._memberships.get(connection_id, set()))

    def list_members(self, room: str) -> list[str]:
        """Snapshot of the connection ids currently in ``room``."""
        if room == ALL:
            return sorted(self._queues)
        return sorted(self._rooms.get(room, set()))

    def list_connections(self) -> list[ConnectedClient]:
        """Every live connection with its room membership."""
        return [
            ConnectedClient(id=connection_id, rooms=self.rooms_of(connection_id))
            for connection_id in sorted(self._queues)
        ]

    def connection_count(self) -> int:
        return len(self._queues)

    # -----------------------------------------------------------------
    # Emission
    # -----------------------------------------------------------------

    def emit(self, target: str, event: ServerEvent) -> None:
        """Deliver ``event`` to every connection in ``target`` (a room or ALL).

        Best effort: an empty room delivers to nobody, a full queue drops the
        event for that connection only, and any failure is logged rather
        than raised.
        """
        try:
            if self._closed:
                raise EmissionError("room router is closed")
            recipients = self.list_members(target)
            delivered = 0
            for connection_id in recipients:
                if self._offer(connection_id, event):
                    delivered += 1
            logger.info(
                "event_emitted",
                event_name=str(event.event),
                room=target,
                recipients=len(recipients),
                delivered=delivered,
            )
        except Exception as e:
            logger.error(
                "emit_failed",
                event_name=str(getattr(event, "event", "unknown")),
                room=target,
                error=str(e),
            )

    def send_to_connection(self, connection_id: str, event: ServerEvent) -> None:
        """Deliver ``event`` to a single connection, with the same failure policy."""
        try:
            if self._closed:
                raise EmissionError("room router is closed")
            if connection_id not in self._queues:
                raise EmissionError(f"connection {connection_id} is not registered")
            self._offer(connection_id, event)
            logger.debug(
                "event_sent_to_connection",
                event_name=str(event.event),
                connection_id=connection_id,
            )
        except Exception as e:
            logger.error(
                "send_to_connection_failed",
                event_name=str(getattr(event, "event", "unknown")),
                connection_id=connection_id,
                error=str(e),
            )

    def emit_to_user(self, user_id: str, event: ServerEvent) -> None:
        self.emit(user_room(user_id), event)

    def emit_to_admins(self, event: ServerEvent) -> None:
        self.emit(ADMIN_ROOM, event)

    def broadcast(self, event: ServerEvent) -> None:
        self.emit(ALL, event)

    def _offer(self, connection_id: str, event: ServerEvent) -> bool:
        queue = self._queues.get(connection_id)
        if queue is None:
            # Disconnected between snapshot and delivery
            return False
        try:
            queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "event_dropped_queue_full",
                connection_id=connection_id,
                event_name=str(event.event),
            )
            return False
        return True

    def close(self) -> None:
        """Stop accepting emissions. Further emits are logged as failures."""
        self._closed = True
        logger.info("room_router_closed", connections=len(self._queues))
