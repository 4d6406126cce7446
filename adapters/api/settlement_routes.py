"""
Settlement HTTP routes.
"""

from typing import Optional

from aiohttp import web

from adapters.api.common import base_app, int_query, read_body
from core.domain.models import SettlementRequest
from core.services.settlement_service import SettlementService
from infrastructure.messaging.event_bus import EventBusClient


def create_settlement_app(settlements: SettlementService, service_name: str = "settlement-service",
                          bus: Optional[EventBusClient] = None) -> web.Application:

    async def calculate_and_charge(request: web.Request) -> web.Response:
        body = await read_body(request, SettlementRequest)
        settlement = await settlements.calculate_and_charge(
            body.event_id,
            shuttlecock_count=body.shuttlecock_count,
            penalty_fee=body.penalty_fee,
            currency=body.currency,
        )
        return web.json_response({
            "success": True,
            "data": settlement.to_wire(),
            "message": (f"Settlement calculation and charging completed. "
                        f"{settlement.successful_charges} successful, "
                        f"{settlement.failed_charges} failed charges."),
        }, status=201)

    async def calculate(request: web.Request) -> web.Response:
        body = await read_body(request, SettlementRequest)
        preview = await settlements.preview(
            body.event_id,
            shuttlecock_count=body.shuttlecock_count,
            penalty_fee=body.penalty_fee,
        )
        return web.json_response({"success": True, "data": preview})

    async def list_settlements(request: web.Request) -> web.Response:
        limit = int_query(request, "limit", 10, minimum=1, maximum=100)
        offset = int_query(request, "offset", 0)
        records = await settlements.list_settlements(
            event_id=request.query.get("event_id") or None, limit=limit, offset=offset,
        )
        return web.json_response({
            "success": True,
            "data": [s.to_wire() for s in records],
            "pagination": {"limit": limit, "offset": offset},
        })

    async def get_settlement(request: web.Request) -> web.Response:
        settlement = await settlements.get_settlement(request.match_info["settlement_id"])
        return web.json_response({"success": True, "data": settlement.to_wire()})

    app = base_app(service_name, bus)
    app.router.add_post("/settlements/calculate-and-charge", calculate_and_charge)
    app.router.add_post("/settlements/calculate", calculate)
    app.router.add_get("/settlements", list_settlements)
    app.router.add_get("/settlements/{settlement_id}", get_settlement)
    return app
