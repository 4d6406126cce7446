"""
Event registry HTTP routes - capacity reads for siblings, admin edits.
"""

from typing import Optional

from aiohttp import web

from adapters.api.common import base_app, read_body
from core.domain.models import EventUpdate
from core.services.event_registry_service import EventRegistryService
from infrastructure.messaging.event_bus import EventBusClient


def create_registry_app(registry: EventRegistryService, service_name: str = "event-service",
                        bus: Optional[EventBusClient] = None) -> web.Application:

    async def get_event(request: web.Request) -> web.Response:
        event = await registry.get_event(request.match_info["event_id"])
        return web.json_response({"event": event.to_wire()})

    async def get_status(request: web.Request) -> web.Response:
        snapshot = await registry.get_status(request.match_info["event_id"])
        return web.json_response(snapshot.to_wire())

    async def update_event(request: web.Request) -> web.Response:
        changes = await read_body(request, EventUpdate)
        event = await registry.update_event(request.match_info["event_id"], changes)
        return web.json_response({"message": "Event updated successfully", "event": event.to_wire()})

    app = base_app(service_name, bus)
    app.router.add_get("/events/{event_id}", get_event)
    app.router.add_get("/events/{event_id}/status", get_status)
    app.router.add_patch("/events/{event_id}", update_event)
    return app
