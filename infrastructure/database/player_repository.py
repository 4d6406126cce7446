"""
Supabase implementation of the Registration Ledger.
"""

import logging
from datetime import datetime
from typing import List, Optional

from postgrest.exceptions import APIError

from core.domain.errors import AlreadyRegisteredError
from core.domain.models import Player, PlayerCreate, PlayerStatus, UserType
from core.interfaces.repositories import IPlayerRepository
from infrastructure.database.supabase_client import get_supabase, run_sync

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


class SupabasePlayerRepository(IPlayerRepository):
    """Supabase implementation of player repository"""

    def _to_model(self, data: dict) -> Player:
        """Convert database row to Player model"""
        return Player(
            id=str(data["id"]),
            event_id=str(data["event_id"]),
            user_id=data.get("user_id"),
            name=data.get("name"),
            email=data.get("email"),
            phone_number=data.get("phone_number"),
            start_time=data.get("start_time"),
            end_time=data.get("end_time"),
            status=PlayerStatus(data.get("status", PlayerStatus.REGISTERED.value)),
            user_type=UserType(data.get("user_type", UserType.MEMBER.value)),
            created_by=data.get("created_by"),
            registration_time=data["registration_time"],
            is_penalty=data.get("is_penalty", False),
            canceled_at=data.get("canceled_at"),
        )

    @run_sync
    def _create_sync(self, player_data: PlayerCreate) -> dict:
        row = player_data.model_dump(mode="json")
        response = get_supabase().table("players").insert(row).execute()
        return response.data[0]

    async def create(self, player_data: PlayerCreate) -> Player:
        try:
            data = await self._create_sync(player_data)
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                # Partial unique index on (event, user) / (event, phone) for non-canceled rows
                raise AlreadyRegisteredError(
                    "Player is already registered for this event",
                    {"eventId": player_data.event_id},
                ) from e
            raise
        return self._to_model(data)

    @run_sync
    def _get_by_id_sync(self, player_id: str) -> Optional[dict]:
        response = get_supabase().table("players").select("*").eq("id", player_id).execute()
        return response.data[0] if response.data else None

    async def get_by_id(self, player_id: str) -> Optional[Player]:
        data = await self._get_by_id_sync(player_id)
        return self._to_model(data) if data else None

    @run_sync
    def _find_active_sync(self, event_id: str, column: str, value: str) -> Optional[dict]:
        response = get_supabase().table("players").select("*")\
            .eq("event_id", event_id)\
            .eq(column, value)\
            .neq("status", PlayerStatus.CANCELED.value)\
            .limit(1)\
            .execute()
        return response.data[0] if response.data else None

    async def find_active_by_user(self, event_id: str, user_id: str) -> Optional[Player]:
        data = await self._find_active_sync(event_id, "user_id", user_id)
        return self._to_model(data) if data else None

    async def find_active_by_phone(self, event_id: str, phone_number: str) -> Optional[Player]:
        data = await self._find_active_sync(event_id, "phone_number", phone_number)
        return self._to_model(data) if data else None

    @run_sync
    def _list_by_event_sync(self, event_id: str, status: Optional[str]) -> List[dict]:
        query = get_supabase().table("players").select("*").eq("event_id", event_id)
        if status:
            query = query.eq("status", status)
        response = query.order("registration_time", desc=False).execute()
        return response.data or []

    async def list_by_event(self, event_id: str, status: Optional[PlayerStatus] = None) -> List[Player]:
        rows = await self._list_by_event_sync(event_id, status.value if status else None)
        return [self._to_model(row) for row in rows]

    @run_sync
    def _cancel_sync(self, player_id: str, is_penalty: bool, canceled_at: str) -> Optional[dict]:
        response = get_supabase().rpc("cancel_player", {
            "p_player_id": player_id,
            "p_is_penalty": is_penalty,
            "p_canceled_at": canceled_at,
        }).execute()
        return response.data[0] if response.data else None

    async def cancel(self, player_id: str, is_penalty: bool,
                     canceled_at: datetime) -> Optional[Player]:
        data = await self._cancel_sync(player_id, is_penalty, canceled_at.isoformat())
        return self._to_model(data) if data else None

    @run_sync
    def _promote_sync(self, event_id: str) -> Optional[dict]:
        response = get_supabase().rpc("promote_oldest_waitlisted", {"p_event_id": event_id}).execute()
        return response.data[0] if response.data else None

    async def promote_oldest_waitlisted(self, event_id: str) -> Optional[Player]:
        data = await self._promote_sync(event_id)
        return self._to_model(data) if data else None

    @run_sync
    def _count_waitlisted_sync(self, event_id: str) -> int:
        response = get_supabase().table("players").select("id", count="exact")\
            .eq("event_id", event_id)\
            .eq("status", PlayerStatus.WAITLIST.value)\
            .execute()
        return response.count or 0

    async def count_waitlisted(self, event_id: str) -> int:
        return await self._count_waitlisted_sync(event_id)
