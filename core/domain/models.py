"""
Domain models - the core of business logic.
These models are transport-agnostic: the same objects back the Supabase
rows, the sibling HTTP payloads and the domain messages on the bus.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any
from datetime import date, datetime, timezone
from enum import Enum


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# === ENUMS ===

class EventStatus(str, Enum):
    UPCOMING = "upcoming"
    IN_PROGRESS = "in_progress"
    CALCULATING = "calculating"
    AWAITING_PAYMENT = "awaiting_payment"
    COMPLETED = "completed"
    CANCELED = "canceled"


# Statuses during which registrations (and the waitlist) are open
ACTIVE_EVENT_STATUSES = (EventStatus.UPCOMING, EventStatus.IN_PROGRESS)


class PlayerStatus(str, Enum):
    REGISTERED = "registered"
    WAITLIST = "waitlist"
    CANCELED = "canceled"


class UserType(str, Enum):
    MEMBER = "member"
    GUEST = "guest"


class SettlementStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RosterStatus(str, Enum):
    """Player status as seen by the settlement calculator"""
    PLAYED = "played"
    CANCELED = "canceled"
    WAITLIST = "waitlist"


class WireModel(BaseModel):
    """Base for models exchanged between services as camelCase JSON"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# === EVENT (Capacity Ledger) ===

class CourtSession(WireModel):
    """One booked court for the event, times are HH:MM on the event date"""
    court_number: int
    start_time: str
    end_time: str
    hourly_rate: Optional[float] = None


class Capacity(WireModel):
    """Per-event seat counters"""
    max_participants: int = Field(ge=0)
    current_participants: int = Field(default=0, ge=0)
    available_slots: int = Field(default=0, ge=0)
    waitlist_enabled: bool = False

    @classmethod
    def derive(cls, max_participants: int, current_participants: int,
               status: EventStatus) -> "Capacity":
        """Build counters that satisfy the ledger invariants"""
        available = max(0, max_participants - current_participants)
        return cls(
            max_participants=max_participants,
            current_participants=current_participants,
            available_slots=available,
            waitlist_enabled=status in ACTIVE_EVENT_STATUSES and available == 0,
        )


class Event(WireModel):
    """Full event model"""
    id: str
    event_name: str = ""
    event_date: date
    location: Optional[str] = None
    courts: List[CourtSession] = Field(default_factory=list)
    capacity: Capacity
    status: EventStatus = EventStatus.UPCOMING
    shuttlecock_price: float = 0.0
    court_hourly_rate: float = 0.0
    penalty_fee: float = 0.0
    shuttlecock_count: int = 0
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def accepts_registrations(self) -> bool:
        return self.status in ACTIVE_EVENT_STATUSES

    def priced_courts(self) -> List[CourtSession]:
        """Courts with the event-wide hourly rate filled in where missing"""
        return [
            court if court.hourly_rate is not None
            else court.model_copy(update={"hourly_rate": self.court_hourly_rate})
            for court in self.courts
        ]


class EventUpdate(WireModel):
    """Admin edit of an event"""
    status: Optional[EventStatus] = None
    max_participants: Optional[int] = Field(default=None, ge=0)


class CapacitySnapshot(WireModel):
    """Live capacity view served to the registration service"""
    id: str
    status: EventStatus
    max_participants: int
    current_participants: int
    available_slots: int
    is_accepting_registrations: bool
    waitlist_enabled: bool
    waitlist_active: bool

    @classmethod
    def from_event(cls, event: Event) -> "CapacitySnapshot":
        capacity = event.capacity
        active = event.accepts_registrations
        return cls(
            id=event.id,
            status=event.status,
            max_participants=capacity.max_participants,
            current_participants=capacity.current_participants,
            available_slots=capacity.available_slots,
            is_accepting_registrations=active and capacity.available_slots > 0,
            waitlist_enabled=capacity.waitlist_enabled,
            waitlist_active=capacity.waitlist_enabled and active and capacity.available_slots <= 0,
        )


# === PLAYER (Registration Ledger) ===

class PlayerCreate(WireModel):
    """Data for creating a registration record"""
    event_id: str
    user_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    status: PlayerStatus = PlayerStatus.REGISTERED
    user_type: UserType = UserType.MEMBER
    created_by: Optional[str] = None  # Admin who registered a guest
    registration_time: datetime = Field(default_factory=utc_now)


class Player(PlayerCreate):
    """Full registration record"""
    id: str
    is_penalty: bool = False
    canceled_at: Optional[datetime] = None


class Requester(BaseModel):
    """Caller identity forwarded by the gateway in x-user-* headers"""
    user_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    role: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class GuestRegistration(WireModel):
    """Admin-submitted guest registration"""
    name: Optional[str] = None
    phone_number: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None


class MemberRegistration(WireModel):
    """Self-registration body; identity comes from the requester"""
    start_time: Optional[str] = None
    end_time: Optional[str] = None


# === DOMAIN MESSAGES ===

class DomainMessage(BaseModel):
    """Envelope of every message on the event bus"""
    model_config = ConfigDict(populate_by_name=True)

    event_type: str = Field(alias="eventType")
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)
    service: str = ""

    @property
    def routing_key(self) -> str:
        return f"event.{self.event_type}"

    def to_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "DomainMessage":
        return cls.model_validate_json(raw or b"{}")


# === SETTLEMENT ===

class RosterEntry(BaseModel):
    """Player as fed to the settlement calculator"""
    player_id: str
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    status: RosterStatus = RosterStatus.PLAYED


class CostParameters(BaseModel):
    shuttlecock_price: float = 0.0
    shuttlecock_count: int = 0
    penalty_fee: float = 0.0

    @property
    def shuttlecock_total(self) -> float:
        return self.shuttlecock_price * self.shuttlecock_count


class HourBreakdown(WireModel):
    hour: str  # "20:00-21:00"
    players_in_session: int
    cost_per_player: float


class PlayerSettlement(WireModel):
    """One player's bill"""
    player_id: str
    court_fee: float = 0.0
    shuttlecock_fee: float = 0.0
    penalty_fee: float = 0.0
    total_amount: float = 0.0
    hours_played: int = 0
    per_hour_sessions: List[HourBreakdown] = Field(default_factory=list)
    payment_id: Optional[str] = None
    payment_status: Optional[str] = None


class Settlement(WireModel):
    """Result of one settlement run"""
    settlement_id: str
    event_id: str
    entries: List[PlayerSettlement] = Field(default_factory=list)
    total_collected: float = 0.0
    successful_charges: int = 0
    failed_charges: int = 0
    status: SettlementStatus = SettlementStatus.PENDING
    currency: str = "THB"
    created_at: datetime = Field(default_factory=utc_now)


class SettlementRequest(WireModel):
    """Body of a settlement trigger; omitted costs fall back to the event's"""
    event_id: str
    shuttlecock_count: Optional[int] = Field(default=None, ge=0)
    penalty_fee: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = None


class ChargeRequest(BaseModel):
    """Charge request handed to the payment subsystem"""
    player_id: str
    amount: float
    currency: str
    event_id: str
    description: str
    metadata: Dict[str, str] = Field(default_factory=dict)
