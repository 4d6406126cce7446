"""
Registration service - producer side of the capacity protocol.

Writes the Registration Ledger and announces every change on the bus. The
capacity check before a registration is a synchronous read of the registry's
live snapshot: it fails closed when the registry is unreachable, but it is
not a reservation, so two concurrent registrations can both see the last
free seat. The reconciler clamps availableSlots at zero in that case.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from core.domain.constants import (
    PARTICIPANT_CANCELLED,
    PARTICIPANT_JOINED,
    WAITING_ADDED,
)
from core.domain.errors import (
    AlreadyCanceledError,
    AlreadyRegisteredError,
    AuthenticationRequiredError,
    EventFullError,
    EventNotFoundError,
    PermissionDeniedError,
    PlayerEventMismatchError,
    PlayerNotFoundError,
    RegistrationClosedError,
    ValidationError,
)
from core.domain.models import (
    CapacitySnapshot,
    Event,
    GuestRegistration,
    MemberRegistration,
    Player,
    PlayerCreate,
    PlayerStatus,
    Requester,
    UserType,
    utc_now,
)
from core.interfaces import IEventPublisher, IEventRegistryClient, IPlayerRepository
from core.utils.event_time import earliest_start, is_valid_hhmm, to_minutes

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


class RegistrationService:
    """Registers, lists and cancels players for an event"""

    def __init__(self, player_repo: IPlayerRepository, registry: IEventRegistryClient,
                 publisher: IEventPublisher, penalty_enabled: bool = True,
                 penalty_window_hours: float = 1.0, timezone_name: str = "Asia/Bangkok"):
        self.player_repo = player_repo
        self.registry = registry
        self.publisher = publisher
        self.penalty_enabled = penalty_enabled
        self.penalty_window = timedelta(hours=penalty_window_hours)
        self.tz = ZoneInfo(timezone_name)

    # --- Registration ---

    async def register_member(self, event_id: str, requester: Requester,
                              body: MemberRegistration) -> Player:
        event = await self._get_open_event(event_id)
        if not requester.user_id:
            raise AuthenticationRequiredError(
                "User authentication required for player registration",
                {"endpoint": "/registration/events/{id}/players"},
            )

        if await self.player_repo.find_active_by_user(event_id, requester.user_id):
            raise AlreadyRegisteredError(
                "User is already registered for this event",
                {"eventId": event_id, "userId": requester.user_id},
            )
        if requester.phone_number and await self.player_repo.find_active_by_phone(event_id, requester.phone_number):
            raise AlreadyRegisteredError(
                "A player with this phone number is already registered for this event",
                {"eventId": event_id, "phoneNumber": requester.phone_number},
            )

        self._validate_window(event, body.start_time, body.end_time)

        player_data = PlayerCreate(
            event_id=event_id,
            user_id=requester.user_id,
            name=requester.name or "",
            email=requester.email or "",
            phone_number=requester.phone_number,
            start_time=body.start_time,
            end_time=body.end_time,
            user_type=UserType.MEMBER,
        )
        return await self._admit(event_id, player_data)

    async def register_guest(self, event_id: str, requester: Requester,
                             body: GuestRegistration) -> Player:
        if not requester.user_id:
            raise AuthenticationRequiredError(
                "Admin authentication required for guest registration",
                {"endpoint": "/registration/events/{id}/guests"},
            )
        if not requester.is_admin:
            raise PermissionDeniedError(
                "Admin privileges required to register guests",
                {"currentRole": requester.role, "requiredRole": "admin"},
            )

        event = await self._get_open_event(event_id)

        if not body.name:
            raise ValidationError("Name is required for guest registration",
                                  {"field": "name", "required": True})
        if not body.phone_number:
            raise ValidationError("Phone number is required for guest registration",
                                  {"field": "phoneNumber", "required": True})

        if await self.player_repo.find_active_by_phone(event_id, body.phone_number):
            raise AlreadyRegisteredError(
                "A player with this phone number is already registered for this event",
                {"eventId": event_id, "phoneNumber": body.phone_number},
            )

        self._validate_window(event, body.start_time, body.end_time)

        player_data = PlayerCreate(
            event_id=event_id,
            name=body.name,
            phone_number=body.phone_number,
            start_time=body.start_time,
            end_time=body.end_time,
            user_type=UserType.GUEST,
            created_by=requester.user_id,
        )
        return await self._admit(event_id, player_data)

    async def _get_open_event(self, event_id: str) -> Event:
        event = await self.registry.get_event(event_id)
        if not event:
            raise EventNotFoundError(event_id)
        if not event.accepts_registrations:
            raise RegistrationClosedError(
                "Event is not accepting registrations",
                {"eventId": event_id, "status": event.status.value, "isAcceptingRegistrations": False},
            )
        return event

    async def _admit(self, event_id: str, player_data: PlayerCreate) -> Player:
        """Decide registered / waitlist from the live snapshot, then persist and announce."""
        snapshot = await self.registry.get_status(event_id)
        if not snapshot:
            raise EventNotFoundError(event_id)

        player_data.status = self._admission_status(event_id, snapshot)
        player = await self.player_repo.create(player_data)

        event_type = PARTICIPANT_JOINED if player.status == PlayerStatus.REGISTERED else WAITING_ADDED
        logger.info(f"[REGISTRATION] {player.id} joined event {event_id} as {player.status.value}")
        await self.publisher.publish(event_type, {
            "eventId": event_id,
            "playerId": player.id,
            "userId": player.user_id,
            "playerName": player.name,
            "playerEmail": player.email,
            "status": player.status.value,
        })
        return player

    def _admission_status(self, event_id: str, snapshot: CapacitySnapshot) -> PlayerStatus:
        if snapshot.available_slots > 0:
            return PlayerStatus.REGISTERED
        if snapshot.waitlist_enabled:
            return PlayerStatus.WAITLIST
        raise EventFullError(
            "Event is full and waitlist is not enabled",
            {
                "eventId": event_id,
                "maxParticipants": snapshot.max_participants,
                "currentParticipants": snapshot.current_participants,
                "availableSlots": snapshot.available_slots,
                "waitlistEnabled": snapshot.waitlist_enabled,
            },
        )

    def _validate_window(self, event: Event, start_time: Optional[str], end_time: Optional[str]) -> None:
        errors: Dict[str, str] = {}
        for field, value in (("startTime", start_time), ("endTime", end_time)):
            if value and not is_valid_hhmm(value):
                errors[field] = f"Invalid time format: {value}. Expected HH:MM"
        if errors:
            raise ValidationError("Invalid time format", errors)

        if not (start_time and end_time):
            return

        if not event.courts:
            raise ValidationError("No court time slots available for this event",
                                  {"eventId": event.id}, code="NO_COURT_AVAILABLE")

        court_start, court_end = self._court_span(event)
        start = self._on_court_timeline(start_time, court_start)
        end = self._on_court_timeline(end_time, court_start)
        if start >= end:
            raise ValidationError("Start time must be less than end time",
                                  {"startTime": start_time, "endTime": end_time})

        if start < court_start or end > court_end:
            raise ValidationError(
                "Registration time must be within available court time slots",
                {
                    "startTime": start_time,
                    "endTime": end_time,
                    "availableTimeRange": {
                        "earliestStart": _hhmm(court_start),
                        "latestEnd": _hhmm(court_end),
                    },
                    "courtTimeSlots": [c.to_wire() for c in event.courts],
                },
                code="TIME_OUTSIDE_COURT_HOURS",
            )

    def _court_span(self, event: Event) -> Tuple[int, int]:
        """Earliest start and latest end in minutes from midnight of the event date."""
        starts, ends = [], []
        for court in event.courts:
            if not (is_valid_hhmm(court.start_time) and is_valid_hhmm(court.end_time)):
                continue
            start, end = to_minutes(court.start_time), to_minutes(court.end_time)
            if end <= start:
                end += MINUTES_PER_DAY
            starts.append(start)
            ends.append(end)
        if not starts:
            raise ValidationError("No court time slots available for this event",
                                  {"eventId": event.id}, code="NO_COURT_AVAILABLE")
        return min(starts), max(ends)

    @staticmethod
    def _on_court_timeline(value: str, court_start: int) -> int:
        # Times before the first court start belong to the next day
        minutes = to_minutes(value)
        return minutes + MINUTES_PER_DAY if minutes < court_start else minutes

    # --- Cancellation ---

    async def cancel_registration(self, event_id: str, player_id: str, requester: Requester) -> Player:
        event = await self.registry.get_event(event_id)
        if not event:
            raise EventNotFoundError(event_id)

        player = await self.player_repo.get_by_id(player_id)
        if not player:
            raise PlayerNotFoundError(player_id)
        if player.event_id != event_id:
            raise PlayerEventMismatchError("Player is not registered for this event",
                                           {"playerId": player_id, "eventId": event_id})

        if not requester.is_admin:
            if not player.user_id:
                raise PermissionDeniedError("Only admin can cancel guest registrations",
                                            {"playerId": player_id, "playerType": "guest"})
            if player.user_id != requester.user_id:
                raise PermissionDeniedError(
                    "You can only cancel your own registration",
                    {"playerId": player_id, "requesterId": requester.user_id, "ownerId": player.user_id},
                )

        if player.status == PlayerStatus.CANCELED:
            raise AlreadyCanceledError("Player registration is already canceled",
                                       {"playerId": player_id, "currentStatus": player.status.value})

        now = utc_now()
        is_penalty = player.status == PlayerStatus.REGISTERED and self._inside_penalty_window(event, now)
        previous = await self.player_repo.cancel(player_id, is_penalty, now)
        if previous is None:
            # Lost the race against a concurrent cancel
            raise AlreadyCanceledError("Player registration is already canceled",
                                       {"playerId": player_id, "currentStatus": PlayerStatus.CANCELED.value})

        was_registered = previous.status == PlayerStatus.REGISTERED
        logger.info(f"[REGISTRATION] {player_id} canceled from event {event_id} "
                    f"(was {previous.status.value}, penalty={is_penalty})")
        await self.publisher.publish(PARTICIPANT_CANCELLED, {
            "eventId": event_id,
            "playerId": player_id,
            "canceledBy": requester.user_id,
            "wasRegistered": was_registered,
            "isPenalty": is_penalty,
            "status": PlayerStatus.CANCELED.value,
            "canceledAt": now.isoformat(),
        })
        return previous.model_copy(update={
            "status": PlayerStatus.CANCELED,
            "is_penalty": is_penalty,
            "canceled_at": now,
        })

    def _inside_penalty_window(self, event: Event, now) -> bool:
        if not self.penalty_enabled:
            return False
        start = earliest_start(event.event_date, event.courts, self.tz)
        return start is not None and now >= start - self.penalty_window

    # --- Roster ---

    async def list_players(self, event_id: str, status: Optional[PlayerStatus] = None,
                           limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        event = await self.registry.get_event(event_id)
        if not event:
            raise EventNotFoundError(event_id)

        players = await self.player_repo.list_by_event(event_id, status)
        page: List[Player] = players[offset:offset + limit]
        summary = {"total": len(players)}
        for s in PlayerStatus:
            summary[s.value] = sum(1 for p in players if p.status == s)

        return {
            "eventId": event_id,
            "players": [p.to_wire() for p in page],
            "summary": summary,
            "pagination": {
                "limit": limit,
                "offset": offset,
                "hasMore": offset + limit < len(players),
            },
        }


def _hhmm(minutes: int) -> str:
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"
