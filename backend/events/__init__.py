"""Realtime notification channel.

This package provides the pieces between task/reminder producers and
websocket consumers. Producers emit typed events to named rooms; each live
connection has an ``asyncio.Queue`` the router fans events into.

Key Components:
    - EventName / ServerEvent: the typed wire contract, one payload model
      per event name
    - RoomRouter: room membership and best-effort fan-out
    - ConnectionManager: authenticate -> join rooms -> active -> disconnected

Usage:
    >>> from events import ConnectionManager, RoomRouter, user_room
    >>>
    >>> router = RoomRouter()
    >>> manager = ConnectionManager(router, authenticator)
    >>>
    >>> # Connection establishment
    >>> connection = manager.open()
    >>> manager.authenticate(connection, token)   # joins user:<id> (+ admins)
    >>>
    >>> # Fan-out from anywhere holding the router
    >>> router.emit(user_room("u1"), event)
    >>>
    >>> # The websocket handler drains the connection's queue
    >>> event = await connection.outbox.get()

Event Flow:
    1. Task service / reminder scheduler call RoomRouter.emit()
    2. The router puts the event on each member connection's queue
    3. The websocket handler forwards queued events to its socket
"""

from events.connections import Connection, ConnectionManager, ConnectionState
from events.rooms import ADMIN_ROOM, ALL, RoomRouter, user_room
from events.types import EventName, ServerEvent

__all__ = [
    # Event types
    "EventName",
    "ServerEvent",
    # Rooms
    "ADMIN_ROOM",
    "ALL",
    "RoomRouter",
    "user_room",
    # Connections
    "Connection",
    "ConnectionManager",
    "ConnectionState",
]
