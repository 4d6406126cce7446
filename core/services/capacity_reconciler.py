"""
Capacity reconciler - keeps the Capacity Ledger in step with registrations.

Consumes participant joined / cancelled and waitlist promoted events. Every
seat change goes through one conditional ledger update keyed by
(event, player, direction), so redelivered messages change nothing and a
duplicate cancel never opens a second slot.
"""

import logging

from core.domain.constants import (
    PARTICIPANT_CANCELLED,
    PARTICIPANT_JOINED,
    SEAT_RELEASED,
    SEAT_TAKEN,
    SLOT_OPENED,
    WAITLIST_PROMOTED,
)
from core.domain.models import DomainMessage, PlayerStatus
from core.interfaces import CapacityAdjustment, IEventPublisher, IEventRepository

logger = logging.getLogger(__name__)


class CapacityReconciler:
    """Applies registration events to the capacity counters"""

    def __init__(self, event_repo: IEventRepository, publisher: IEventPublisher):
        self.event_repo = event_repo
        self.publisher = publisher

    async def handle(self, message: DomainMessage, routing_key: str = "") -> None:
        data = message.data or {}
        event_id = data.get("eventId")
        player_id = data.get("playerId")
        if not event_id or not player_id:
            logger.warning(f"[RECONCILER] Ignoring {message.event_type} without eventId/playerId")
            return

        if message.event_type == PARTICIPANT_JOINED:
            if data.get("status") != PlayerStatus.REGISTERED.value:
                logger.debug(f"[RECONCILER] Joined as {data.get('status')}, no seat taken: {player_id}")
                return
            await self._adjust(event_id, player_id, SEAT_TAKEN, 1)

        elif message.event_type == WAITLIST_PROMOTED:
            await self._adjust(event_id, player_id, SEAT_TAKEN, 1)

        elif message.event_type == PARTICIPANT_CANCELLED:
            if not data.get("wasRegistered"):
                logger.debug(f"[RECONCILER] Waitlisted player {player_id} left, no seat released")
                return
            outcome = await self._adjust(event_id, player_id, SEAT_RELEASED, -1)
            if outcome == CapacityAdjustment.APPLIED:
                await self.publisher.publish(SLOT_OPENED, {"eventId": event_id, "openedSlots": 1})

        else:
            logger.debug(f"[RECONCILER] Unhandled message type {message.event_type} ({routing_key})")

    async def _adjust(self, event_id: str, player_id: str, direction: str, delta: int) -> CapacityAdjustment:
        outcome = await self.event_repo.adjust_capacity(event_id, player_id, direction, delta)
        if outcome == CapacityAdjustment.APPLIED:
            logger.info(f"[RECONCILER] Seat {direction} for event {event_id} by player {player_id}")
        elif outcome == CapacityAdjustment.DUPLICATE:
            logger.info(f"[RECONCILER] Duplicate seat {direction} for player {player_id}, skipped")
        else:
            logger.info(f"[RECONCILER] Event {event_id} not found, seat {direction} skipped")
        return outcome
