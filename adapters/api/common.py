"""
Shared pieces of the HTTP surface: error mapping, identity, request parsing.
"""

import logging
from typing import Optional, Type, TypeVar

from aiohttp import web
from pydantic import BaseModel, ValidationError as PydanticValidationError

from core.domain.errors import DomainError, ServiceUnavailableError, ValidationError
from core.domain.models import Requester
from infrastructure.messaging.event_bus import EventBusClient

logger = logging.getLogger(__name__)

BUS_KEY = web.AppKey("bus", EventBusClient)
SERVICE_NAME_KEY = web.AppKey("service_name", str)

ModelT = TypeVar("ModelT", bound=BaseModel)


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Map domain conflicts and connectivity faults to {code, message, details}."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except DomainError as e:
        logger.info(f"[API] {request.method} {request.path} -> {e.status} {e.code}")
        return web.json_response(e.to_dict(), status=e.status)
    except ServiceUnavailableError as e:
        logger.warning(f"[API] {request.method} {request.path} -> 503 ({e})")
        return web.json_response(e.to_dict(), status=e.status)
    except Exception as e:
        logger.error(f"[API] {request.method} {request.path} failed: {e}", exc_info=True)
        return web.json_response(
            {"code": "INTERNAL_SERVER_ERROR", "message": "Internal server error", "details": {}},
            status=500,
        )


def requester_from(request: web.Request) -> Requester:
    headers = request.headers
    return Requester(
        user_id=headers.get("x-user-id") or None,
        name=headers.get("x-user-name") or None,
        email=headers.get("x-user-email") or None,
        phone_number=headers.get("x-user-phone") or None,
        role=headers.get("x-user-role") or None,
    )


async def read_body(request: web.Request, model: Type[ModelT]) -> ModelT:
    if request.can_read_body:
        try:
            payload = await request.json()
        except ValueError:
            raise ValidationError("Request body must be valid JSON")
    else:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        details = {".".join(str(p) for p in err["loc"]) or "body": err["msg"] for err in e.errors()}
        raise ValidationError("Invalid request body", details)


def int_query(request: web.Request, name: str, default: int, minimum: int = 0,
              maximum: Optional[int] = None) -> int:
    raw = request.query.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"Query parameter {name} must be an integer", {name: raw})
    if value < minimum or (maximum is not None and value > maximum):
        raise ValidationError(f"Query parameter {name} is out of range", {name: raw})
    return value


async def health(request: web.Request) -> web.Response:
    bus = request.app.get(BUS_KEY)
    body = {"status": "ok", "service": request.app.get(SERVICE_NAME_KEY, "")}
    if bus is not None:
        body["bus"] = bus.state.value
        body["pendingMessages"] = bus.pending_count
    return web.json_response(body)


def base_app(service_name: str, bus: Optional[EventBusClient] = None) -> web.Application:
    app = web.Application(middlewares=[error_middleware])
    app[SERVICE_NAME_KEY] = service_name
    if bus is not None:
        app[BUS_KEY] = bus
    app.router.add_get("/health", health)
    return app
