"""
Waitlist promoter - turns opened slots into registrations, oldest first.
"""

import asyncio
import logging
from typing import List

from core.domain.constants import SLOT_OPENED, WAITLIST_PROMOTED
from core.domain.models import DomainMessage, Player, utc_now
from core.interfaces import IEventPublisher, IPlayerRepository

logger = logging.getLogger(__name__)


def _opened_slots(value) -> int:
    try:
        return max(1, int(value))
    except (TypeError, ValueError):
        return 1


class WaitlistPromoter:
    """Promotes waitlisted players when capacity frees up"""

    def __init__(self, player_repo: IPlayerRepository, publisher: IEventPublisher,
                 delay_seconds: float = 0.0):
        self.player_repo = player_repo
        self.publisher = publisher
        self.delay_seconds = delay_seconds

    async def handle(self, message: DomainMessage, routing_key: str = "") -> None:
        if message.event_type != SLOT_OPENED:
            logger.debug(f"[PROMOTER] Ignoring {message.event_type} ({routing_key})")
            return

        event_id = (message.data or {}).get("eventId")
        if not event_id:
            logger.warning("[PROMOTER] slot.opened without eventId, ignored")
            return

        await self.promote(event_id, _opened_slots(message.data.get("openedSlots")))

        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

    async def promote(self, event_id: str, slots: int = 1) -> List[Player]:
        """
        Promote up to `slots` waitlisted players of an event in registration
        order. Each promotion is a compare-and-swap on the player's status,
        so concurrent promoters never flip the same record twice.
        """
        promoted: List[Player] = []
        for _ in range(max(1, slots)):
            player = await self.player_repo.promote_oldest_waitlisted(event_id)
            if not player:
                logger.info(f"[PROMOTER] No waitlisted players left for event {event_id}")
                break

            promoted.append(player)
            logger.info(f"[PROMOTER] Promoted {player.id} ({player.name}) for event {event_id}")
            await self.publisher.publish(WAITLIST_PROMOTED, {
                "eventId": event_id,
                "playerId": player.id,
                "userId": player.user_id,
                "playerName": player.name,
                "playerEmail": player.email,
                "status": player.status.value,
                "promotedFromWaitlist": True,
                "promotedAt": utc_now().isoformat(),
            })

        return promoted
