"""Tests for the transports."""

import asyncio

import pytest

from flux_kernel.errors import DeliveryFailure
from flux_kernel.transport.memory import InMemoryTransport
from flux_kernel.transport.websocket import WebSocketFabric


class FakeWebSocket:
    def __init__(self, broken: bool = False):
        self.broken = broken
        self.frames = []

    async def send_json(self, data):
        if self.broken:
            raise RuntimeError("connection reset")
        self.frames.append(data)


class TestInMemoryTransport:
    def test_membership_includes_global(self):
        transport = InMemoryTransport()
        transport.join("sub_1", "admin")
        transport.join("sub_2")
        assert transport.members("$global") == ["sub_1", "sub_2"]
        assert transport.members("admin") == ["sub_1"]
        assert transport.members("nobody") == []

    def test_leave(self):
        transport = InMemoryTransport()
        transport.join("sub_1", "admin")
        transport.leave("sub_1")
        assert transport.members("admin") == []

    def test_publish_records(self):
        transport = InMemoryTransport()
        asyncio.run(transport.publish("admin", "create", {"entry": 1, "entity": "x"}))
        assert transport.to_group("admin")[0].message == {"entry": 1, "entity": "x"}

    def test_failing_group(self):
        transport = InMemoryTransport()
        transport.fail_group("admin")
        with pytest.raises(DeliveryFailure):
            asyncio.run(transport.publish("admin", "create", {}))
        assert transport.last() is None


class TestWebSocketFabric:
    def test_join_assigns_ids_and_groups(self):
        fabric = WebSocketFabric()
        sub = fabric.join(FakeWebSocket(), ["admin", "editors"])
        assert sub.startswith("sub_")
        assert fabric.groups_of(sub) == ["$global", "admin", "editors"]
        assert fabric.connection_count == 1

    def test_publish_sends_frame_to_each_member(self):
        fabric = WebSocketFabric()
        admin, editor = FakeWebSocket(), FakeWebSocket()
        fabric.join(admin, ["admin"])
        fabric.join(editor, ["editors"])

        asyncio.run(fabric.publish("admin", "update", {"entry": {"id": "p1"}, "entity": "product"}))

        assert admin.frames == [
            {"event": "update", "data": {"entry": {"id": "p1"}, "entity": "product"}}
        ]
        assert editor.frames == []

    def test_global_reaches_everyone(self):
        fabric = WebSocketFabric()
        sockets = [FakeWebSocket() for _ in range(3)]
        for ws in sockets:
            fabric.join(ws)

        asyncio.run(fabric.publish("$global", "create", {"entry": 1, "entity": "x"}))

        assert all(len(ws.frames) == 1 for ws in sockets)

    def test_broken_socket_is_dropped_without_affecting_others(self):
        fabric = WebSocketFabric()
        healthy, broken = FakeWebSocket(), FakeWebSocket(broken=True)
        fabric.join(healthy, ["admin"])
        broken_id = fabric.join(broken, ["admin"])

        asyncio.run(fabric.publish("admin", "create", {"entry": 1, "entity": "x"}))

        assert len(healthy.frames) == 1
        assert broken_id not in fabric.members("admin")
        assert fabric.connection_count == 1

    def test_publish_to_empty_group(self):
        fabric = WebSocketFabric()
        asyncio.run(fabric.publish("nobody", "create", {}))

    def test_leave_cleans_empty_groups(self):
        fabric = WebSocketFabric()
        sub = fabric.join(FakeWebSocket(), ["admin"])
        fabric.leave(sub)
        assert fabric.members("admin") == []
        assert fabric.members("$global") == []
        assert fabric.connection_count == 0
