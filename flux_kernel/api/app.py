"""
Flux API - FastAPI endpoints.

Exposes:
- The WebSocket subscription endpoint subscribers receive pushes on
- Policy inspection
- Group membership diagnostics
- A reference entity store whose mutations fan out through flux
- Manual delivery (for testing)
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from flux_kernel.dispatcher.dispatcher import FluxDispatcher
from flux_kernel.errors import UnknownEntity
from flux_kernel.hooks.adapter import MutationHookAdapter
from flux_kernel.logging_config import configure_logging
from flux_kernel.models.config import FluxConfig
from flux_kernel.models.policy import MutationMethod
from flux_kernel.policy.registry import PolicyRegistry
from flux_kernel.store.memory import InMemoryEntityStore
from flux_kernel.tracking.tracker import ChangeTracker
from flux_kernel.transport.sink import TransportSink
from flux_kernel.transport.websocket import WebSocketFabric

logger = logging.getLogger(__name__)


# --- Request/Response Models ---

class DeliverRequest(BaseModel):
    entity: str
    method: MutationMethod
    entry: Any = None
    entries: Optional[List[Any]] = None
    legacy: Dict[str, Any] = {}
    wait: bool = True


class EntryUpdateRequest(BaseModel):
    fields: Dict[str, Any]
    no_flux: bool = False


class BulkUpdateRequest(BaseModel):
    ids: List[str]
    fields: Dict[str, Any]
    no_flux: bool = False


class BulkDeleteRequest(BaseModel):
    ids: List[str]
    no_flux: bool = False


# --- Application Factory ---

def create_app(
    registry: Optional[PolicyRegistry] = None,
    transport: Optional[TransportSink] = None,
    config: Optional[FluxConfig] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    config = config or FluxConfig()
    registry = registry or PolicyRegistry(default_group=config.default_group)
    transport = transport or WebSocketFabric(global_group=config.global_group)

    dispatcher = FluxDispatcher(registry, transport, config)
    hooks = MutationHookAdapter(dispatcher, ChangeTracker())
    store = InMemoryEntityStore(hooks)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(config)
        registry.validate(config.required_entities)
        dispatcher.bind_loop()
        logger.info("Flux ready for %d entities", len(registry.entities()))
        try:
            yield
        finally:
            await dispatcher.drain()
            dispatcher.unbind_loop()

    app = FastAPI(
        title="Flux Kernel API",
        description="Change-notification fan-out over WebSockets",
        version="0.1.0-alpha",
        lifespan=lifespan,
    )

    # Store components on app state for access in endpoints
    app.state.config = config
    app.state.registry = registry
    app.state.transport = transport
    app.state.dispatcher = dispatcher
    app.state.hooks = hooks
    app.state.store = store

    # === SUBSCRIPTION ===

    @app.websocket("/flux")
    async def subscribe(websocket: WebSocket, groups: str = Query(default="")):
        """Join the listed groups (comma separated) and receive pushes."""
        if not isinstance(transport, WebSocketFabric):
            await websocket.close(code=1011)
            return

        await websocket.accept()
        wanted = [g.strip() for g in groups.split(",") if g.strip()]
        subscriber_id = transport.join(websocket, wanted)
        try:
            await websocket.send_json({
                "event": "$joined",
                "data": {
                    "subscriber": subscriber_id,
                    "groups": transport.groups_of(subscriber_id),
                },
            })
            while True:
                # Subscribers only listen; inbound frames are ignored
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            transport.leave(subscriber_id)

    # === POLICIES ===

    @app.get("/flux/entities")
    def list_entities():
        """Registered entities and the resolver/builder behind each method."""
        return registry.describe()

    @app.get("/flux/entities/{entity_name}")
    def get_entity_policy(entity_name: str):
        try:
            return registry.resolve(entity_name).describe()
        except UnknownEntity:
            raise HTTPException(404, "Entity not registered")

    # === DIAGNOSTICS ===

    @app.get("/flux/groups/{group}/members")
    def group_members(group: str):
        members = transport.members(group)
        return {"group": group, "members": members, "count": len(members)}

    @app.get("/flux/config")
    def get_config():
        return config.model_dump()

    @app.get("/flux/stats")
    def get_stats():
        return {**dispatcher.stats.model_dump(), "pending": dispatcher.pending}

    @app.post("/flux/deliver")
    async def deliver(req: DeliverRequest):
        """Manual delivery (for testing)."""
        records = req.entries if req.entries is not None else req.entry
        dispatcher.deliver(req.entity, req.method, records, req.legacy)
        if req.wait:
            await dispatcher.drain()
        return {"status": "accepted", "stats": dispatcher.stats.model_dump()}

    # === REFERENCE STORE ===

    @app.get("/store/{entity_name}")
    def list_entries(entity_name: str):
        return [e.model_dump(mode="json") for e in store.all(entity_name)]

    @app.post("/store/{entity_name}")
    def create_entry(entity_name: str, req: EntryUpdateRequest):
        entry = store.create(entity_name, no_flux=req.no_flux, **req.fields)
        return entry.model_dump(mode="json")

    @app.patch("/store/{entity_name}/{record_id}")
    def update_entry(entity_name: str, record_id: str, req: EntryUpdateRequest):
        if req.fields.get("id", record_id) != record_id:
            raise HTTPException(422, "Entry id cannot be changed")
        entry = store.load(entity_name, record_id)
        if entry is None:
            raise HTTPException(404, "Entry not found")
        for field, value in req.fields.items():
            setattr(entry, field, value)
        entry.no_flux = req.no_flux
        store.save(entity_name, entry)
        return entry.model_dump(mode="json")

    @app.delete("/store/{entity_name}/{record_id}")
    def delete_entry(entity_name: str, record_id: str, no_flux: bool = False):
        entry = store.load(entity_name, record_id)
        if entry is None:
            raise HTTPException(404, "Entry not found")
        entry.no_flux = no_flux
        store.delete(entity_name, entry)
        return {"status": "deleted", "id": record_id}

    @app.post("/store/{entity_name}/update-many")
    def update_many(entity_name: str, req: BulkUpdateRequest):
        updated = store.update_many(entity_name, req.ids, req.fields, no_flux=req.no_flux)
        return {"updated": [e.id for e in updated]}

    @app.post("/store/{entity_name}/delete-many")
    def delete_many(entity_name: str, req: BulkDeleteRequest):
        removed = store.delete_many(entity_name, req.ids, no_flux=req.no_flux)
        return {"deleted": [e.id for e in removed]}

    return app


# Default application instance
app = create_app()
