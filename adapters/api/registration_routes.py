"""
Registration HTTP routes.
"""

from typing import Optional

from aiohttp import web
from pydantic import BaseModel, Field

from adapters.api.common import base_app, int_query, read_body, requester_from
from core.domain.errors import ValidationError
from core.domain.models import GuestRegistration, MemberRegistration, Player, PlayerStatus
from core.interfaces import IPlayerRepository
from core.services.registration_service import RegistrationService
from core.services.waitlist_promoter import WaitlistPromoter
from infrastructure.messaging.event_bus import EventBusClient


class PromoteRequest(BaseModel):
    slots: int = Field(default=1, ge=1)


def _created(player: Player) -> dict:
    return {
        "eventId": player.event_id,
        "playerId": player.id,
        "userId": player.user_id,
        "registrationTime": player.registration_time.isoformat(),
        "status": player.status.value,
    }


def create_registration_app(registration: RegistrationService, promoter: WaitlistPromoter,
                            player_repo: IPlayerRepository,
                            service_name: str = "registration-service",
                            bus: Optional[EventBusClient] = None) -> web.Application:

    async def list_players(request: web.Request) -> web.Response:
        raw_status = request.query.get("status")
        try:
            status = PlayerStatus(raw_status) if raw_status else None
        except ValueError:
            raise ValidationError("Unknown player status", {"status": raw_status})
        roster = await registration.list_players(
            request.match_info["event_id"],
            status=status,
            limit=int_query(request, "limit", 50, minimum=1, maximum=1000),
            offset=int_query(request, "offset", 0),
        )
        return web.json_response(roster)

    async def register_member(request: web.Request) -> web.Response:
        body = await read_body(request, MemberRegistration)
        player = await registration.register_member(
            request.match_info["event_id"], requester_from(request), body,
        )
        return web.json_response(_created(player), status=201)

    async def register_guest(request: web.Request) -> web.Response:
        body = await read_body(request, GuestRegistration)
        player = await registration.register_guest(
            request.match_info["event_id"], requester_from(request), body,
        )
        return web.json_response(_created(player), status=201)

    async def cancel_player(request: web.Request) -> web.Response:
        player = await registration.cancel_registration(
            request.match_info["event_id"], request.match_info["player_id"], requester_from(request),
        )
        return web.json_response({
            "message": "Player registration canceled successfully",
            "player": {
                "playerId": player.id,
                "eventId": player.event_id,
                "status": player.status.value,
                "isPenalty": player.is_penalty,
                "canceledAt": player.canceled_at.isoformat() if player.canceled_at else None,
            },
        })

    async def promote_waitlist(request: web.Request) -> web.Response:
        event_id = request.match_info["event_id"]
        body = await read_body(request, PromoteRequest)
        promoted = await promoter.promote(event_id, body.slots)
        return web.json_response({
            "eventId": event_id,
            "promoted": [p.id for p in promoted],
            "remainingWaitlist": await player_repo.count_waitlisted(event_id),
        })

    app = base_app(service_name, bus)
    app.router.add_get("/registration/events/{event_id}/players", list_players)
    app.router.add_post("/registration/events/{event_id}/players", register_member)
    app.router.add_post("/registration/events/{event_id}/guests", register_guest)
    app.router.add_delete("/registration/events/{event_id}/players/{player_id}", cancel_player)
    app.router.add_post("/registration/events/{event_id}/promote-waitlist", promote_waitlist)
    return app
