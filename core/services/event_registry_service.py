"""
Event registry service - read side of the Capacity Ledger plus admin edits.
"""

import logging
from typing import Dict, Optional, Set

from core.domain.errors import EventNotFoundError, InvalidTransitionError, StatusMismatchError
from core.domain.models import CapacitySnapshot, Event, EventStatus, EventUpdate
from core.interfaces import IEventRepository, IRegistrationClient

logger = logging.getLogger(__name__)

# Status only moves forward; completed and canceled are final
ALLOWED_TRANSITIONS: Dict[EventStatus, Set[EventStatus]] = {
    EventStatus.UPCOMING: {EventStatus.IN_PROGRESS, EventStatus.CANCELED},
    EventStatus.IN_PROGRESS: {EventStatus.CALCULATING, EventStatus.CANCELED},
    EventStatus.CALCULATING: {EventStatus.AWAITING_PAYMENT, EventStatus.CANCELED},
    EventStatus.AWAITING_PAYMENT: {EventStatus.COMPLETED},
    EventStatus.COMPLETED: set(),
    EventStatus.CANCELED: set(),
}


class EventRegistryService:
    """Serves events and live capacity to the other roles"""

    def __init__(self, event_repo: IEventRepository,
                 registration: Optional[IRegistrationClient] = None):
        self.event_repo = event_repo
        self.registration = registration

    async def get_event(self, event_id: str) -> Event:
        event = await self.event_repo.get_by_id(event_id)
        if not event:
            raise EventNotFoundError(event_id)
        return event

    async def get_status(self, event_id: str) -> CapacitySnapshot:
        return CapacitySnapshot.from_event(await self.get_event(event_id))

    async def update_event(self, event_id: str, changes: EventUpdate) -> Event:
        event = await self.get_event(event_id)

        if changes.status is not None and changes.status != event.status:
            if changes.status not in ALLOWED_TRANSITIONS[event.status]:
                raise InvalidTransitionError(
                    f"Cannot move event from {event.status.value} to {changes.status.value}",
                    {"eventId": event_id, "from": event.status.value, "to": changes.status.value},
                )

        expected_status = event.status
        slots_before = event.capacity.available_slots
        updated = await self.event_repo.update(event_id, changes, expected_status=expected_status)
        if not updated:
            raise StatusMismatchError(
                "Event changed while it was being updated",
                {"eventId": event_id, "expectedStatus": expected_status.value},
            )
        logger.info(f"[REGISTRY] Event {event_id} updated: {changes.model_dump(exclude_none=True)}")

        opened = updated.capacity.available_slots - slots_before
        if opened > 0 and updated.accepts_registrations:
            await self._trigger_promotion(event_id, opened)
        return updated

    async def _trigger_promotion(self, event_id: str, slots: int) -> None:
        if not self.registration:
            return
        if not await self.registration.promote_waitlist(event_id, slots):
            logger.warning(f"[REGISTRY] Waitlist promotion trigger failed for {event_id}, ignoring")
