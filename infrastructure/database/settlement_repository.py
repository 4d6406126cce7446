"""
Supabase implementation of settlement records.
"""

from typing import List, Optional

from core.domain.models import PlayerSettlement, Settlement, SettlementStatus
from core.interfaces.repositories import ISettlementRepository
from infrastructure.database.supabase_client import get_supabase, run_sync


class SupabaseSettlementRepository(ISettlementRepository):
    """Supabase implementation of settlement repository"""

    def _to_model(self, data: dict) -> Settlement:
        return Settlement(
            settlement_id=data["settlement_id"],
            event_id=str(data["event_id"]),
            entries=[PlayerSettlement.model_validate(e) for e in data.get("entries") or []],
            total_collected=float(data.get("total_collected") or 0),
            successful_charges=data.get("successful_charges", 0),
            failed_charges=data.get("failed_charges", 0),
            status=SettlementStatus(data.get("status", SettlementStatus.PENDING.value)),
            currency=data.get("currency", "THB"),
            created_at=data["created_at"],
        )

    def _to_row(self, settlement: Settlement) -> dict:
        row = settlement.model_dump(mode="json", exclude={"entries"})
        row["entries"] = [e.to_wire() for e in settlement.entries]
        return row

    @run_sync
    def _save_sync(self, row: dict) -> dict:
        response = get_supabase().table("settlements").upsert(row, on_conflict="settlement_id").execute()
        return response.data[0]

    async def save(self, settlement: Settlement) -> Settlement:
        data = await self._save_sync(self._to_row(settlement))
        return self._to_model(data)

    @run_sync
    def _get_by_id_sync(self, settlement_id: str) -> Optional[dict]:
        response = get_supabase().table("settlements").select("*")\
            .eq("settlement_id", settlement_id)\
            .execute()
        return response.data[0] if response.data else None

    async def get_by_id(self, settlement_id: str) -> Optional[Settlement]:
        data = await self._get_by_id_sync(settlement_id)
        return self._to_model(data) if data else None

    @run_sync
    def _list_sync(self, event_id: Optional[str], limit: int, offset: int) -> List[dict]:
        query = get_supabase().table("settlements").select("*")
        if event_id:
            query = query.eq("event_id", event_id)
        response = query.order("created_at", desc=True)\
            .range(offset, offset + limit - 1)\
            .execute()
        return response.data or []

    async def list(self, event_id: Optional[str] = None, limit: int = 10,
                   offset: int = 0) -> List[Settlement]:
        rows = await self._list_sync(event_id, limit, offset)
        return [self._to_model(row) for row in rows]
