"""Tests for the FastAPI API endpoints."""

import pytest
from fastapi.testclient import TestClient

from flux_kernel.api.app import create_app
from flux_kernel.models.config import FluxConfig
from flux_kernel.policy.registry import PolicyRegistry
from flux_kernel.transport.memory import InMemoryTransport


def _registry() -> PolicyRegistry:
    registry = PolicyRegistry()
    registry.register("product")
    registry.register(
        "article",
        access={"create": lambda ctx: True},
        payload={"create": lambda ctx: {"id": ctx.entry.id, "title": ctx.entry.title}},
    )
    return registry


@pytest.fixture
def client():
    """Test client over the WebSocket fabric, lifespan running."""
    app = create_app(
        registry=_registry(),
        config=FluxConfig(required_entities=["product", "article"]),
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def memory_client():
    """Test client over the in-memory transport."""
    transport = InMemoryTransport()
    app = create_app(registry=_registry(), transport=transport)
    with TestClient(app) as test_client:
        yield test_client, transport


def _subscribe(client, groups: str = ""):
    return client.websocket_connect(f"/flux?groups={groups}")


class TestPolicyEndpoints:
    def test_list_entities(self, client):
        response = client.get("/flux/entities")
        assert response.status_code == 200
        assert [p["entity"] for p in response.json()] == ["article", "product"]

    def test_get_entity_policy(self, client):
        response = client.get("/flux/entities/product")
        assert response.status_code == 200
        assert response.json()["payload"]["updateMany"] == "NoPayload()"

    def test_unknown_entity_policy(self, client):
        response = client.get("/flux/entities/invoice")
        assert response.status_code == 404


class TestDiagnostics:
    def test_config(self, client):
        data = client.get("/flux/config").json()
        assert data["global_group"] == "$global"
        assert data["required_entities"] == ["product", "article"]

    def test_group_members(self, client):
        with _subscribe(client, "editors") as ws:
            joined = ws.receive_json()
            response = client.get("/flux/groups/editors/members")
            assert response.json() == {
                "group": "editors",
                "members": [joined["data"]["subscriber"]],
                "count": 1,
            }

    def test_stats(self, client):
        data = client.get("/flux/stats").json()
        assert data["pending"] == 0
        assert data["delivered"] == 0


class TestSubscription:
    def test_join_frame(self, client):
        with _subscribe(client, "admin, editors") as ws:
            frame = ws.receive_json()
            assert frame["event"] == "$joined"
            assert frame["data"]["groups"] == ["$global", "admin", "editors"]

    def test_create_pushed_to_admin(self, client):
        with _subscribe(client, "admin") as ws:
            ws.receive_json()
            response = client.post("/store/product", json={"fields": {"id": "p1", "name": "Lamp"}})
            assert response.status_code == 200

            frame = ws.receive_json()
            assert frame == {
                "event": "create",
                "data": {"entry": {"id": "p1", "name": "Lamp"}, "entity": "product"},
            }

    def test_update_pushes_diff(self, client):
        with _subscribe(client, "admin") as ws:
            ws.receive_json()
            client.post("/store/product", json={"fields": {"id": "p1", "price": 10}, "no_flux": True})
            client.patch("/store/product/p1", json={"fields": {"price": 12}})

            frame = ws.receive_json()
            assert frame["event"] == "update"
            assert frame["data"]["id"] == "p1"
            assert frame["data"]["modified"] == {"price": {"before": 10, "after": 12}}

    def test_broadcast_reaches_plain_subscriber(self, client):
        with _subscribe(client) as ws:
            ws.receive_json()
            client.post("/store/article", json={"fields": {"id": "a1", "title": "Hi", "body": "..."}})

            frame = ws.receive_json()
            assert frame["event"] == "create"
            assert frame["data"]["entry"] == {"id": "a1", "title": "Hi"}

    def test_delete_pushed_with_id(self, client):
        with _subscribe(client, "admin") as ws:
            ws.receive_json()
            client.post("/store/product", json={"fields": {"id": "p1"}, "no_flux": True})
            response = client.delete("/store/product/p1")
            assert response.json() == {"status": "deleted", "id": "p1"}

            frame = ws.receive_json()
            assert frame["event"] == "delete"
            assert frame["data"]["id"] == "p1"


class TestStoreEndpoints:
    def test_list_entries(self, client):
        client.post("/store/product", json={"fields": {"id": "p1"}, "no_flux": True})
        assert client.get("/store/product").json() == [{"id": "p1"}]

    def test_update_missing_entry(self, client):
        response = client.patch("/store/product/nope", json={"fields": {}})
        assert response.status_code == 404

    def test_update_cannot_change_id(self, client):
        client.post("/store/product", json={"fields": {"id": "p1"}, "no_flux": True})

        response = client.patch("/store/product/p1", json={"fields": {"id": "p2"}})

        assert response.status_code == 422
        assert [e["id"] for e in client.get("/store/product").json()] == ["p1"]

    def test_update_with_same_id_is_allowed(self, client):
        client.post("/store/product", json={"fields": {"id": "p1"}, "no_flux": True})

        response = client.patch(
            "/store/product/p1", json={"fields": {"id": "p1", "x": 2}, "no_flux": True},
        )

        assert response.status_code == 200
        assert client.get("/store/product").json() == [{"id": "p1", "x": 2}]

    def test_delete_missing_entry(self, client):
        assert client.delete("/store/product/nope").status_code == 404

    def test_bulk_endpoints(self, client):
        for i in range(3):
            client.post("/store/product", json={"fields": {"id": f"p{i}"}, "no_flux": True})

        updated = client.post("/store/product/update-many", json={"ids": ["p0", "p1"], "fields": {"x": 1}})
        deleted = client.post("/store/product/delete-many", json={"ids": ["p1", "p2"]})

        assert updated.json() == {"updated": ["p0", "p1"]}
        assert deleted.json() == {"deleted": ["p1", "p2"]}
        assert client.get("/store/product").json() == [{"id": "p0", "x": 1}]


class TestManualDelivery:
    def test_deliver_to_admin(self, memory_client):
        client, transport = memory_client
        response = client.post("/flux/deliver", json={
            "entity": "product",
            "method": "create",
            "entry": {"id": "p1"},
        })
        assert response.status_code == 200
        assert response.json()["stats"]["delivered"] == 1
        (publication,) = transport.published
        assert publication.group == "admin"
        assert publication.message == {"entry": {"id": "p1"}, "entity": "product"}

    def test_deliver_unknown_entity_is_accepted(self, memory_client):
        client, transport = memory_client
        response = client.post("/flux/deliver", json={
            "entity": "invoice",
            "method": "create",
            "entry": {"id": "i1"},
        })
        assert response.status_code == 200
        assert response.json()["stats"]["dropped"] == 1
        assert transport.published == []

    def test_deliver_bulk_default_is_silent(self, memory_client):
        client, transport = memory_client
        response = client.post("/flux/deliver", json={
            "entity": "product",
            "method": "deleteMany",
            "entries": [{"id": "p1"}, {"id": "p2"}],
        })
        assert response.json()["stats"]["skipped"] == 1
        assert transport.published == []

    def test_deliver_rejects_unknown_method(self, memory_client):
        client, _ = memory_client
        response = client.post("/flux/deliver", json={"entity": "product", "method": "archive"})
        assert response.status_code == 422

    def test_members_on_memory_transport(self, memory_client):
        client, transport = memory_client
        transport.join("sub_1", "admin")
        assert client.get("/flux/groups/admin/members").json()["count"] == 1
