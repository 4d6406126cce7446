from infrastructure.database.event_repository import SupabaseEventRepository
from infrastructure.database.player_repository import SupabasePlayerRepository
from infrastructure.database.settlement_repository import SupabaseSettlementRepository

__all__ = [
    "SupabaseEventRepository",
    "SupabasePlayerRepository",
    "SupabaseSettlementRepository",
]
