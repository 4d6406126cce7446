"""
Repository interfaces - abstractions for data access.
Each ledger is owned by exactly one service; the ledger mutations that must
survive concurrent and duplicate deliveries are expressed as single
conditional operations so implementations can make them atomic.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Optional, List, Sequence
from core.domain.models import (
    Event, EventStatus, EventUpdate,
    Player, PlayerCreate, PlayerStatus,
    Settlement,
)


class CapacityAdjustment(str, Enum):
    """Outcome of a capacity ledger adjustment"""
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    MISSING = "missing"


class IEventRepository(ABC):
    """Interface for the Capacity Ledger (owned by the event registry)"""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True if the store is reachable"""
        pass

    @abstractmethod
    async def get_by_id(self, event_id: str) -> Optional[Event]:
        """Get event by ID"""
        pass

    @abstractmethod
    async def get_by_status(self, status: EventStatus) -> List[Event]:
        """Get all events currently in a status"""
        pass

    @abstractmethod
    async def adjust_capacity(self, event_id: str, player_id: str,
                              direction: str, delta: int) -> CapacityAdjustment:
        """
        Apply a seat delta exactly once per (event, player, direction).
        Must be a single conditional update: the counters and the dedup
        record change together or not at all.
        """
        pass

    @abstractmethod
    async def bulk_transition(self, event_ids: Sequence[str], from_status: EventStatus,
                              to_status: EventStatus) -> int:
        """Move events still in from_status to to_status. Returns rows changed."""
        pass

    @abstractmethod
    async def update(self, event_id: str, changes: EventUpdate,
                     expected_status: EventStatus) -> Optional[Event]:
        """
        Apply an admin edit (status / max participants) if the event is still
        in expected_status, re-deriving the capacity counters in the same
        update. Returns None when the event moved on or does not exist.
        """
        pass


class IPlayerRepository(ABC):
    """Interface for the Registration Ledger (owned by the registration service)"""

    @abstractmethod
    async def create(self, player_data: PlayerCreate) -> Player:
        """Insert a registration record"""
        pass

    @abstractmethod
    async def get_by_id(self, player_id: str) -> Optional[Player]:
        pass

    @abstractmethod
    async def find_active_by_user(self, event_id: str, user_id: str) -> Optional[Player]:
        """Non-canceled record for (event, user)"""
        pass

    @abstractmethod
    async def find_active_by_phone(self, event_id: str, phone_number: str) -> Optional[Player]:
        """Non-canceled record for (event, phone)"""
        pass

    @abstractmethod
    async def list_by_event(self, event_id: str, status: Optional[PlayerStatus] = None) -> List[Player]:
        """Records for an event ordered by registration_time ascending"""
        pass

    @abstractmethod
    async def cancel(self, player_id: str, is_penalty: bool,
                     canceled_at: datetime) -> Optional[Player]:
        """
        Flip a non-canceled record to canceled. Returns the record as it was
        BEFORE the update, or None if it was already canceled (or missing).
        """
        pass

    @abstractmethod
    async def promote_oldest_waitlisted(self, event_id: str) -> Optional[Player]:
        """
        Compare-and-swap the oldest waitlisted record of an event to
        registered. Returns the promoted record or None if nobody waits.
        """
        pass

    @abstractmethod
    async def count_waitlisted(self, event_id: str) -> int:
        pass


class ISettlementRepository(ABC):
    """Interface for settlement records"""

    @abstractmethod
    async def save(self, settlement: Settlement) -> Settlement:
        """Insert or replace a settlement record"""
        pass

    @abstractmethod
    async def get_by_id(self, settlement_id: str) -> Optional[Settlement]:
        pass

    @abstractmethod
    async def list(self, event_id: Optional[str] = None, limit: int = 10,
                   offset: int = 0) -> List[Settlement]:
        """Newest first"""
        pass
