"""
Settlement service - bills an event once play is over.

Reads the event and the final roster from the sibling services (both gate
money, so both fail closed), runs the calculator, stores the result and
emits one charge request per player with something to pay.
"""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Tuple

from core.domain.constants import SETTLEMENT_ISSUE, SETTLEMENT_TYPE
from core.domain.errors import (
    EventNotFoundError,
    NoPlayersFoundError,
    SettlementNotFoundError,
    StatusMismatchError,
)
from core.domain.models import (
    ChargeRequest,
    CostParameters,
    Event,
    EventStatus,
    EventUpdate,
    Player,
    PlayerSettlement,
    PlayerStatus,
    RosterEntry,
    RosterStatus,
    Settlement,
    SettlementStatus,
)
from core.interfaces import (
    IEventPublisher,
    IEventRegistryClient,
    IRegistrationClient,
    ISettlementRepository,
)
from core.services.settlement_calculator import SettlementCalculator, round_money, total_collected

logger = logging.getLogger(__name__)


def _reference(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def to_roster_entry(player: Player) -> Optional[RosterEntry]:
    """
    Registration record -> calculator input. Players who canceled outside the
    penalty window owe nothing and are left out.
    """
    if player.status == PlayerStatus.REGISTERED:
        status = RosterStatus.PLAYED
    elif player.status == PlayerStatus.WAITLIST:
        status = RosterStatus.WAITLIST
    elif player.is_penalty:
        status = RosterStatus.CANCELED
    else:
        return None
    return RosterEntry(
        player_id=player.id,
        start_time=player.start_time,
        end_time=player.end_time,
        status=status,
    )


class SettlementService:
    """Calculate-and-charge flow"""

    def __init__(self, registry: IEventRegistryClient, registration: IRegistrationClient,
                 settlement_repo: ISettlementRepository, publisher: IEventPublisher,
                 calculator: Optional[SettlementCalculator] = None,
                 currency: str = "THB", penalty_amount: float = 0.0,
                 penalty_percentage: float = 0.0):
        self.registry = registry
        self.registration = registration
        self.settlement_repo = settlement_repo
        self.publisher = publisher
        self.calculator = calculator or SettlementCalculator()
        self.currency = currency
        self.penalty_amount = penalty_amount
        self.penalty_percentage = penalty_percentage

    async def calculate_and_charge(self, event_id: str, shuttlecock_count: Optional[int] = None,
                                   penalty_fee: Optional[float] = None,
                                   currency: Optional[str] = None) -> Settlement:
        currency = currency or self.currency
        _, entries = await self._calculate(event_id, shuttlecock_count, penalty_fee,
                                           require_status=EventStatus.CALCULATING)

        settlement = Settlement(
            settlement_id=_reference("settlement"),
            event_id=event_id,
            entries=[_rounded(e) for e in entries],
            total_collected=total_collected(entries),
            status=SettlementStatus.PROCESSING,
            currency=currency,
        )
        await self.settlement_repo.save(settlement)
        logger.info(f"[SETTLEMENT] {settlement.settlement_id} calculated for event {event_id}: "
                    f"{len(entries)} entries, total {settlement.total_collected} {currency}")

        for entry in settlement.entries:
            if entry.total_amount <= 0:
                continue
            if await self._issue_charge(event_id, entry, currency):
                settlement.successful_charges += 1
            else:
                settlement.failed_charges += 1

        settlement.status = (SettlementStatus.COMPLETED if settlement.failed_charges == 0
                             else SettlementStatus.FAILED)
        await self.settlement_repo.save(settlement)
        logger.info(f"[SETTLEMENT] {settlement.settlement_id} {settlement.status.value}: "
                    f"{settlement.successful_charges} charged, {settlement.failed_charges} failed")

        if not await self.registry.patch_event(event_id, EventUpdate(status=EventStatus.AWAITING_PAYMENT)):
            logger.warning(f"[SETTLEMENT] Could not move event {event_id} to awaiting_payment, ignoring")
        return settlement

    async def preview(self, event_id: str, shuttlecock_count: Optional[int] = None,
                      penalty_fee: Optional[float] = None) -> Dict[str, Any]:
        """Same calculation, nothing stored or charged."""
        _, entries = await self._calculate(event_id, shuttlecock_count, penalty_fee)
        return {
            "eventId": event_id,
            "entries": [_rounded(e).to_wire() for e in entries],
            "totalCollected": total_collected(entries),
            "currency": self.currency,
        }

    async def get_settlement(self, settlement_id: str) -> Settlement:
        settlement = await self.settlement_repo.get_by_id(settlement_id)
        if not settlement:
            raise SettlementNotFoundError(settlement_id)
        return settlement

    async def list_settlements(self, event_id: Optional[str] = None, limit: int = 10,
                               offset: int = 0) -> List[Settlement]:
        return await self.settlement_repo.list(event_id=event_id, limit=limit, offset=offset)

    # --- Internals ---

    async def _calculate(self, event_id: str, shuttlecock_count: Optional[int],
                         penalty_fee: Optional[float],
                         require_status: Optional[EventStatus] = None) -> Tuple[Event, List[PlayerSettlement]]:
        event = await self.registry.get_event(event_id)
        if not event:
            raise EventNotFoundError(event_id)
        if require_status and event.status != require_status:
            raise StatusMismatchError(
                f"Event must be {require_status.value} to settle",
                {"eventId": event_id, "status": event.status.value, "requiredStatus": require_status.value},
            )

        players = await self.registration.get_players(event_id)
        if not players:
            raise NoPlayersFoundError(event_id)

        roster = [entry for entry in (to_roster_entry(p) for p in players) if entry]
        costs = CostParameters(
            shuttlecock_price=event.shuttlecock_price,
            shuttlecock_count=event.shuttlecock_count if shuttlecock_count is None else shuttlecock_count,
            penalty_fee=self._penalty_fee(event, penalty_fee),
        )
        return event, self.calculator.calculate(roster, event.priced_courts(), costs)

    def _penalty_fee(self, event: Event, override: Optional[float]) -> float:
        if override is not None:
            return override
        if event.penalty_fee:
            return event.penalty_fee
        if self.penalty_amount:
            return self.penalty_amount
        return event.court_hourly_rate * self.penalty_percentage / 100

    async def _issue_charge(self, event_id: str, entry: PlayerSettlement, currency: str) -> bool:
        charge = ChargeRequest(
            player_id=entry.player_id,
            amount=entry.total_amount,
            currency=currency,
            event_id=event_id,
            description=(f"Settlement charge for event {event_id} - Court: {entry.court_fee}, "
                         f"Shuttlecock: {entry.shuttlecock_fee}, Penalty: {entry.penalty_fee}"),
            metadata={
                "court_fee": str(entry.court_fee),
                "shuttlecock_fee": str(entry.shuttlecock_fee),
                "penalty_fee": str(entry.penalty_fee),
                "hours_played": str(entry.hours_played),
                "settlement_type": SETTLEMENT_TYPE,
            },
        )
        payment_id = _reference("payment")
        try:
            await self.publisher.publish(SETTLEMENT_ISSUE, {**charge.model_dump(), "payment_id": payment_id})
        except Exception as e:
            logger.error(f"[SETTLEMENT] Charge request for {entry.player_id} failed: {e}")
            entry.payment_status = "failed"
            return False

        entry.payment_id = payment_id
        entry.payment_status = "pending"
        return True


def _rounded(entry: PlayerSettlement) -> PlayerSettlement:
    return entry.model_copy(update={"total_amount": round_money(entry.total_amount)})
