"""Tests for events/rooms.py -- room membership and fan-out.

Covers registration, idempotent joins, addressed and broadcast emission,
per-peer queue overflow, and the never-raise emission contract.
"""

import asyncio

import pytest

from events.rooms import ADMIN_ROOM, ALL, RoomRouter, user_room
from events.types import AdminTestBroadcastEvent, PongEvent

# =========================================================================
# Membership
# =========================================================================


class TestMembership:
    def test_register_returns_queue(self, router: RoomRouter) -> None:
        queue = router.register("conn_1")
        assert isinstance(queue, asyncio.Queue)
        assert router.connection_count() == 1

    def test_register_twice_returns_same_queue(self, router: RoomRouter) -> None:
        assert router.register("conn_1") is router.register("conn_1")
        assert router.connection_count() == 1

    def test_join_is_idempotent(self, router: RoomRouter) -> None:
        router.register("conn_1")
        router.join("conn_1", user_room("u1"))
        router.join("conn_1", user_room("u1"))
        assert router.list_members(user_room("u1")) == ["conn_1"]
        assert router.rooms_of("conn_1") == ["user:u1"]

    def test_join_unknown_connection_is_ignored(self, router: RoomRouter) -> None:
        router.join("ghost", ADMIN_ROOM)
        assert router.list_members(ADMIN_ROOM) == []

    def test_all_covers_every_registered_connection(self, router: RoomRouter) -> None:
        router.register("conn_1")
        router.register("conn_2")
        router.join("conn_1", user_room("u1"))
        assert router.list_members(ALL) == ["conn_1", "conn_2"]

    def test_unregister_drops_memberships(self, router: RoomRouter) -> None:
        router.register("conn_1")
        router.join("conn_1", user_room("u1"))
        router.join("conn_1", ADMIN_ROOM)
        router.unregister("conn_1")

        assert router.list_members(user_room("u1")) == []
        assert router.list_members(ADMIN_ROOM) == []
        assert router.rooms_of("conn_1") == []
        assert router.connection_count() == 0

    def test_unregister_unknown_is_noop(self, router: RoomRouter) -> None:
        router.unregister("ghost")
        assert router.connection_count() == 0

    def test_list_connections(self, router: RoomRouter) -> None:
        router.register("conn_1")
        router.join("conn_1", user_room("u1"))
        router.join("conn_1", ADMIN_ROOM)

        clients = router.list_connections()
        assert len(clients) == 1
        assert clients[0].id == "conn_1"
        assert clients[0].rooms == ["admins", "user:u1"]


# =========================================================================
# Emission
# =========================================================================


class TestEmit:
    def test_emit_to_user_reaches_every_device(self, router: RoomRouter) -> None:
        phone = router.register("phone")
        laptop = router.register("laptop")
        other = router.register("other")
        router.join("phone", user_room("u1"))
        router.join("laptop", user_room("u1"))
        router.join("other", user_room("u2"))

        router.emit_to_user("u1", PongEvent())

        assert phone.qsize() == 1
        assert laptop.qsize() == 1
        assert other.qsize() == 0

    def test_emit_to_admins_only(self, router: RoomRouter) -> None:
        admin = router.register("admin_conn")
        user = router.register("user_conn")
        router.join("admin_conn", ADMIN_ROOM)
        router.join("user_conn", user_room("u1"))

        router.emit_to_admins(AdminTestBroadcastEvent())

        event = admin.get_nowait()
        assert event.event == "testBroadcast"
        assert user.empty()

    def test_broadcast_reaches_everyone(self, router: RoomRouter) -> None:
        queues = [router.register(f"conn_{i}") for i in range(3)]
        router.broadcast(PongEvent())
        assert all(q.qsize() == 1 for q in queues)

    def test_emit_to_empty_room_is_noop(self, router: RoomRouter) -> None:
        router.emit("user:nobody", PongEvent())

    def test_full_queue_drops_for_that_peer_only(self) -> None:
        router = RoomRouter(queue_size=1)
        slow = router.register("slow")
        fast = router.register("fast")

        router.broadcast(PongEvent())
        fast.get_nowait()
        router.broadcast(PongEvent())

        assert slow.qsize() == 1
        assert fast.qsize() == 1

    def test_send_to_connection(self, router: RoomRouter) -> None:
        queue = router.register("conn_1")
        router.register("conn_2")
        router.send_to_connection("conn_1", PongEvent())
        assert queue.qsize() == 1

    def test_send_to_unknown_connection_does_not_raise(self, router: RoomRouter) -> None:
        router.send_to_connection("ghost", PongEvent())

    def test_emit_after_close_does_not_raise(self, router: RoomRouter) -> None:
        queue = router.register("conn_1")
        router.close()
        router.broadcast(PongEvent())
        router.send_to_connection("conn_1", PongEvent())
        assert queue.empty()

    def test_emit_survives_unexpected_error(
        self, router: RoomRouter, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        router.register("conn_1")

        def broken_offer(connection_id: str, event: object) -> bool:
            raise RuntimeError("transport exploded")

        monkeypatch.setattr(router, "_offer", broken_offer)
        router.broadcast(PongEvent())
