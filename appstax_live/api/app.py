"""
appstax-live API — FastAPI endpoints.

Exposes a Model over HTTP. Every endpoint is a coroutine so model state is
only touched from the event loop that owns it.

Endpoints cover:
- Watch management
- Live result inspection
- Canonical object lookup
- Webhook event ingestion (a channel transport)
- Configuration
"""

from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from appstax_live.backend.memory import InMemoryBackend
from appstax_live.model.model import Model
from appstax_live.models.config import ModelConfig
from appstax_live.models.events import ChannelEventRequest, ChannelEventType
from appstax_live.objects.remote_object import ID_KEY, RemoteObject


# --- Request/Response Models ---

class WatchRequest(BaseModel):
    collection: Optional[str] = None
    filter: str = ""
    order: Optional[str] = None
    expand: int = Field(ge=0, default=0)


class UpdateRequest(BaseModel):
    collection: str
    object: dict
    depth: int = 0


class EventPublishResponse(BaseModel):
    channel: str
    delivered: int


# --- Application Factory ---

def create_app(
    model: Optional[Model] = None,
    backend: Optional[InMemoryBackend] = None,
    config: Optional[ModelConfig] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="appstax-live API",
        description="Live, normalized views over remote collections",
        version="0.1.0",
    )

    # Initialize components
    if model is None:
        be = backend or InMemoryBackend()
        model = Model(client=be, hub=be.hub, config=config)
    else:
        be = backend
    m = model

    # Store components on app state for access in endpoints
    app.state.model = m
    app.state.backend = be

    # === STATUS ===

    @app.get("/status")
    async def status():
        """Model overview."""
        return {
            "watches": len(m.watches()),
            "cached_objects": len(m.store),
            "open_channels": len(m.hub.channels()),
            "config": m.config.model_dump(),
        }

    # === WATCHES ===

    @app.get("/watches")
    async def list_watches():
        """All active watches."""
        return [w.model_dump(mode="json") for w in m.watches()]

    @app.put("/watches/{name}")
    async def put_watch(name: str, req: WatchRequest):
        """Create or replace a watch and wait for its initial load."""
        observer = m.watch(
            name,
            collection=req.collection,
            filter=req.filter,
            order=req.order,
            expand=req.expand,
        )
        await m.settle()
        return observer.summary().model_dump(mode="json")

    @app.get("/watches/{name}")
    async def get_watch(name: str):
        """One watch's summary."""
        observer = m.observer(name)
        if observer is None:
            raise HTTPException(404, "Watch not found")
        return observer.summary().model_dump(mode="json")

    @app.delete("/watches/{name}")
    async def delete_watch(name: str):
        """Tear down a watch and close its channels."""
        if not m.unwatch(name):
            raise HTTPException(404, "Watch not found")
        return {"status": "closed", "name": name}

    @app.get("/watches/{name}/objects")
    async def get_watch_objects(name: str, depth: int = 0):
        """Current result list of a watch."""
        objects = m[name]
        if objects is None:
            raise HTTPException(404, "Watch not found")
        return [o.to_dict(depth) for o in objects]

    # === OBJECTS ===

    @app.get("/objects/{object_id}")
    async def get_object(object_id: str, depth: int = 0):
        """Canonical instance of an object."""
        obj = m.store.get(object_id)
        if obj is None:
            raise HTTPException(404, "Object not found")
        return {"collection": obj.collection, "object": obj.to_dict(depth)}

    @app.post("/objects/update")
    async def update_object(req: UpdateRequest):
        """Push an externally sourced object through normalization."""
        canonical = m.update(RemoteObject.from_dict(req.collection, req.object), req.depth)
        await m.settle()
        return {"collection": canonical.collection, "object": canonical.to_dict(req.depth)}

    # === CHANNELS ===

    @app.post("/channels/{collection}/events")
    async def publish_event(collection: str, req: ChannelEventRequest):
        """Webhook transport: deliver a real-time event to open channels."""
        obj = None
        if req.object is not None:
            if ID_KEY not in req.object and req.type != ChannelEventType.CREATED:
                raise HTTPException(422, f"{ID_KEY} is required for {req.type.value}")
            obj = RemoteObject.from_dict(collection, req.object)
        channel = f"{m.config.channel_prefix}{collection}"
        delivered = m.hub.publish(channel, req.type.value, obj)
        await m.settle()
        return EventPublishResponse(channel=channel, delivered=delivered)

    # === CONFIG ===

    @app.get("/config")
    async def get_config():
        """Current model configuration."""
        return m.config.model_dump()

    @app.put("/config")
    async def update_config(config: ModelConfig):
        """Replace the model configuration."""
        m.configure(config)
        return config.model_dump()

    return app


# Default application instance
app = create_app()
