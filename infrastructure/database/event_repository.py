"""
Supabase implementation of the Capacity Ledger.
"""

import logging
from typing import List, Optional, Sequence

from core.domain.models import Capacity, CourtSession, Event, EventStatus, EventUpdate, utc_now
from core.interfaces.repositories import CapacityAdjustment, IEventRepository
from infrastructure.database.supabase_client import get_supabase, run_sync

logger = logging.getLogger(__name__)


class SupabaseEventRepository(IEventRepository):
    """Supabase implementation of event repository"""

    def _to_model(self, data: dict) -> Event:
        """Convert database row to Event model"""
        status = EventStatus(data.get("status", EventStatus.UPCOMING.value))
        return Event(
            id=str(data["id"]),
            event_name=data.get("event_name") or "",
            event_date=data["event_date"],
            location=data.get("location"),
            courts=[CourtSession.model_validate(c) for c in data.get("courts") or []],
            capacity=Capacity(
                max_participants=data.get("max_participants", 0),
                current_participants=data.get("current_participants", 0),
                available_slots=data.get("available_slots", 0),
                waitlist_enabled=data.get("waitlist_enabled", False),
            ),
            status=status,
            shuttlecock_price=float(data.get("shuttlecock_price") or 0),
            court_hourly_rate=float(data.get("court_hourly_rate") or 0),
            penalty_fee=float(data.get("penalty_fee") or 0),
            shuttlecock_count=data.get("shuttlecock_count") or 0,
            created_by=data.get("created_by"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    @run_sync
    def _ping_sync(self) -> bool:
        get_supabase().table("events").select("id").limit(1).execute()
        return True

    async def ping(self) -> bool:
        try:
            return await self._ping_sync()
        except Exception as e:
            logger.debug(f"[EVENT_REPO] Ping failed: {e}")
            return False

    @run_sync
    def _get_by_id_sync(self, event_id: str) -> Optional[dict]:
        response = get_supabase().table("events").select("*").eq("id", event_id).execute()
        return response.data[0] if response.data else None

    async def get_by_id(self, event_id: str) -> Optional[Event]:
        data = await self._get_by_id_sync(event_id)
        return self._to_model(data) if data else None

    @run_sync
    def _get_by_status_sync(self, status: str) -> List[dict]:
        response = get_supabase().table("events").select("*").eq("status", status).execute()
        return response.data or []

    async def get_by_status(self, status: EventStatus) -> List[Event]:
        rows = await self._get_by_status_sync(status.value)
        return [self._to_model(row) for row in rows]

    @run_sync
    def _adjust_capacity_sync(self, event_id: str, player_id: str, direction: str, delta: int) -> str:
        response = get_supabase().rpc("adjust_event_capacity", {
            "p_event_id": event_id,
            "p_player_id": player_id,
            "p_direction": direction,
            "p_delta": delta,
        }).execute()
        return response.data

    async def adjust_capacity(self, event_id: str, player_id: str,
                              direction: str, delta: int) -> CapacityAdjustment:
        outcome = await self._adjust_capacity_sync(event_id, player_id, direction, delta)
        return CapacityAdjustment(outcome)

    @run_sync
    def _bulk_transition_sync(self, event_ids: List[str], from_status: str, to_status: str) -> int:
        response = get_supabase().table("events")\
            .update({"status": to_status, "updated_at": utc_now().isoformat()})\
            .in_("id", event_ids)\
            .eq("status", from_status)\
            .execute()
        return len(response.data or [])

    async def bulk_transition(self, event_ids: Sequence[str], from_status: EventStatus,
                              to_status: EventStatus) -> int:
        if not event_ids:
            return 0
        return await self._bulk_transition_sync(list(event_ids), from_status.value, to_status.value)

    @run_sync
    def _update_sync(self, event_id: str, expected_status: str, status: Optional[str],
                     max_participants: Optional[int]) -> Optional[dict]:
        response = get_supabase().rpc("apply_event_update", {
            "p_event_id": event_id,
            "p_expected_status": expected_status,
            "p_status": status,
            "p_max_participants": max_participants,
        }).execute()
        return response.data[0] if response.data else None

    async def update(self, event_id: str, changes: EventUpdate,
                     expected_status: EventStatus) -> Optional[Event]:
        data = await self._update_sync(
            event_id,
            expected_status.value,
            changes.status.value if changes.status else None,
            changes.max_participants,
        )
        return self._to_model(data) if data else None
