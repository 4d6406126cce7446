"""
In-memory stand-ins for the stores, the sibling services and the broker.
"""

import asyncio
import itertools
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from aio_pika.exceptions import ChannelInvalidStateError, DeliveryError
from pamqp.commands import Basic

from core.domain.errors import AlreadyRegisteredError, ServiceUnavailableError
from core.domain.models import (
    Capacity,
    CapacitySnapshot,
    CourtSession,
    Event,
    EventStatus,
    EventUpdate,
    Player,
    PlayerCreate,
    PlayerStatus,
    Settlement,
)
from core.interfaces import (
    CapacityAdjustment,
    IEventPublisher,
    IEventRegistryClient,
    IEventRepository,
    IPlayerRepository,
    IRegistrationClient,
    ISettlementRepository,
)

EVENT_DATE = date(2026, 3, 14)


def make_event(event_id: str = "evt-1", max_participants: int = 4, current: int = 0,
               status: EventStatus = EventStatus.UPCOMING, courts: Optional[List[CourtSession]] = None,
               event_date: date = EVENT_DATE, **kwargs) -> Event:
    if courts is None:
        courts = [CourtSession(court_number=1, start_time="20:00", end_time="22:00")]
    return Event(
        id=event_id,
        event_name=kwargs.pop("event_name", "Friday smash"),
        event_date=event_date,
        courts=courts,
        capacity=Capacity.derive(max_participants, current, status),
        status=status,
        **kwargs,
    )


# === REPOSITORIES ===

class InMemoryEventRepository(IEventRepository):

    def __init__(self, events: Sequence[Event] = ()):
        self.events: Dict[str, Event] = {e.id: e for e in events}
        self.adjustments: Set[Tuple[str, str, str]] = set()
        self.reachable = True
        self.ping_calls = 0

    async def ping(self) -> bool:
        self.ping_calls += 1
        return self.reachable

    async def get_by_id(self, event_id: str) -> Optional[Event]:
        event = self.events.get(event_id)
        return event.model_copy(deep=True) if event else None

    async def get_by_status(self, status: EventStatus) -> List[Event]:
        return [e.model_copy(deep=True) for e in self.events.values() if e.status == status]

    async def adjust_capacity(self, event_id: str, player_id: str,
                              direction: str, delta: int) -> CapacityAdjustment:
        # Yield like a round trip would; the update below is one atomic statement
        await asyncio.sleep(0)
        event = self.events.get(event_id)
        if not event:
            return CapacityAdjustment.MISSING
        key = (event_id, player_id, direction)
        if key in self.adjustments:
            return CapacityAdjustment.DUPLICATE
        self.adjustments.add(key)
        cap = event.capacity
        event.capacity = Capacity.derive(cap.max_participants, max(0, cap.current_participants + delta),
                                         event.status)
        return CapacityAdjustment.APPLIED

    async def bulk_transition(self, event_ids: Sequence[str], from_status: EventStatus,
                              to_status: EventStatus) -> int:
        changed = 0
        for event_id in event_ids:
            event = self.events.get(event_id)
            if event and event.status == from_status:
                event.status = to_status
                event.capacity = Capacity.derive(event.capacity.max_participants,
                                                 event.capacity.current_participants, to_status)
                changed += 1
        return changed

    async def update(self, event_id: str, changes: EventUpdate,
                     expected_status: EventStatus) -> Optional[Event]:
        event = self.events.get(event_id)
        if not event or event.status != expected_status:
            return None
        event.status = changes.status or event.status
        max_participants = (event.capacity.max_participants if changes.max_participants is None
                            else changes.max_participants)
        event.capacity = Capacity.derive(max_participants, event.capacity.current_participants, event.status)
        return event.model_copy(deep=True)


class InMemoryPlayerRepository(IPlayerRepository):

    def __init__(self, start: datetime = datetime(2026, 3, 1, 12, 0)):
        self.players: Dict[str, Player] = {}
        self._ids = itertools.count(1)
        self._clock = start

    def _tick(self) -> datetime:
        # Strictly increasing registration times keep FIFO order unambiguous
        self._clock += timedelta(seconds=1)
        return self._clock

    def _active(self, event_id: str, column: str, value: str) -> Optional[Player]:
        for p in self.players.values():
            if p.event_id == event_id and getattr(p, column) == value and p.status != PlayerStatus.CANCELED:
                return p
        return None

    async def create(self, player_data: PlayerCreate) -> Player:
        for column in ("user_id", "phone_number"):
            value = getattr(player_data, column)
            if value and self._active(player_data.event_id, column, value):
                raise AlreadyRegisteredError("Player is already registered for this event",
                                             {"eventId": player_data.event_id})
        data = player_data.model_dump()
        data["registration_time"] = self._tick()
        player = Player(id=f"player-{next(self._ids)}", **data)
        self.players[player.id] = player
        return player

    def add(self, event_id: str, status: PlayerStatus, **fields) -> Player:
        player = Player(id=f"player-{next(self._ids)}", event_id=event_id, status=status,
                        registration_time=self._tick(), **fields)
        self.players[player.id] = player
        return player

    async def get_by_id(self, player_id: str) -> Optional[Player]:
        return self.players.get(player_id)

    async def find_active_by_user(self, event_id: str, user_id: str) -> Optional[Player]:
        return self._active(event_id, "user_id", user_id)

    async def find_active_by_phone(self, event_id: str, phone_number: str) -> Optional[Player]:
        return self._active(event_id, "phone_number", phone_number)

    async def list_by_event(self, event_id: str, status: Optional[PlayerStatus] = None) -> List[Player]:
        rows = [p for p in self.players.values()
                if p.event_id == event_id and (status is None or p.status == status)]
        return sorted(rows, key=lambda p: p.registration_time)

    async def cancel(self, player_id: str, is_penalty: bool, canceled_at: datetime) -> Optional[Player]:
        player = self.players.get(player_id)
        if not player or player.status == PlayerStatus.CANCELED:
            return None
        previous = player.model_copy()
        player.status = PlayerStatus.CANCELED
        player.is_penalty = is_penalty
        player.canceled_at = canceled_at
        return previous

    async def promote_oldest_waitlisted(self, event_id: str) -> Optional[Player]:
        await asyncio.sleep(0)
        waiting = await self.list_by_event(event_id, PlayerStatus.WAITLIST)
        if not waiting:
            return None
        player = waiting[0]
        player.status = PlayerStatus.REGISTERED
        return player

    async def count_waitlisted(self, event_id: str) -> int:
        return len(await self.list_by_event(event_id, PlayerStatus.WAITLIST))


class InMemorySettlementRepository(ISettlementRepository):

    def __init__(self):
        self.records: Dict[str, Settlement] = {}
        self.saves: List[Tuple[str, str]] = []

    async def save(self, settlement: Settlement) -> Settlement:
        self.records[settlement.settlement_id] = settlement.model_copy(deep=True)
        self.saves.append((settlement.settlement_id, settlement.status.value))
        return settlement

    async def get_by_id(self, settlement_id: str) -> Optional[Settlement]:
        return self.records.get(settlement_id)

    async def list(self, event_id: Optional[str] = None, limit: int = 10,
                   offset: int = 0) -> List[Settlement]:
        rows = [s for s in self.records.values() if event_id is None or s.event_id == event_id]
        rows.sort(key=lambda s: s.created_at, reverse=True)
        return rows[offset:offset + limit]


# === PUBLISHER / SIBLINGS ===

class RecordingPublisher(IEventPublisher):

    def __init__(self):
        self.published: List[Tuple[str, Dict[str, Any]]] = []
        self.fail_for: Set[str] = set()  # player ids whose charge publish raises

    async def publish(self, event_type: str, data: Dict[str, Any]) -> None:
        if data.get("player_id") in self.fail_for:
            raise RuntimeError("broker rejected message")
        self.published.append((event_type, data))

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [data for t, data in self.published if t == event_type]


class FakeRegistryClient(IEventRegistryClient):
    """Reads straight from an in-memory Capacity Ledger"""

    def __init__(self, event_repo: InMemoryEventRepository):
        self.event_repo = event_repo
        self.available = True
        self.patch_ok = True
        self.patches: List[Tuple[str, EventUpdate]] = []

    def _check(self) -> None:
        if not self.available:
            raise ServiceUnavailableError("event-service", "connection refused")

    async def get_event(self, event_id: str) -> Optional[Event]:
        self._check()
        event = await self.event_repo.get_by_id(event_id)
        return event.model_copy(deep=True) if event else None

    async def get_status(self, event_id: str) -> Optional[CapacitySnapshot]:
        self._check()
        event = await self.event_repo.get_by_id(event_id)
        return CapacitySnapshot.from_event(event) if event else None

    async def patch_event(self, event_id: str, update: EventUpdate) -> bool:
        self.patches.append((event_id, update))
        return self.patch_ok


class FakeRegistrationClient(IRegistrationClient):

    def __init__(self, players: Optional[List[Player]] = None):
        self.players = players
        self.available = True
        self.promote_ok = True
        self.promotions: List[Tuple[str, int]] = []

    async def get_players(self, event_id: str) -> Optional[List[Player]]:
        if not self.available:
            raise ServiceUnavailableError("registration-service", "timeout")
        return self.players

    async def promote_waitlist(self, event_id: str, slots: int = 1) -> bool:
        self.promotions.append((event_id, slots))
        return self.promote_ok


# === BROKER ===

def topic_matches(pattern: str, key: str) -> bool:
    """AMQP topic match: '*' is one word, '#' is zero or more."""
    def match(p: List[str], k: List[str]) -> bool:
        if not p:
            return not k
        if p[0] == "#":
            return any(match(p[1:], k[i:]) for i in range(len(k) + 1))
        if not k:
            return False
        return (p[0] == "*" or p[0] == k[0]) and match(p[1:], k[1:])
    return match(pattern.split("."), key.split("."))


class FakeIncomingMessage:

    def __init__(self, body: bytes, routing_key: str):
        self.body = body
        self.routing_key = routing_key
        self.acked = False
        self.nacked = False
        self.requeue: Optional[bool] = None

    async def ack(self) -> None:
        self.acked = True

    async def nack(self, requeue: bool = True) -> None:
        self.nacked = True
        self.requeue = requeue


class FakeQueue:

    def __init__(self, broker: "FakeBroker", name: str):
        self.broker = broker
        self.name = name
        self.bindings: Set[str] = set()
        self.messages: List[FakeIncomingMessage] = []
        self.consumer = None

    async def bind(self, exchange, routing_key: str) -> None:
        self.bindings.add(routing_key)

    async def consume(self, callback) -> str:
        self.consumer = callback
        return f"ctag-{self.name}"

    def deliver(self, body: bytes, routing_key: str) -> None:
        message = FakeIncomingMessage(body, routing_key)
        self.messages.append(message)
        if self.consumer is not None:
            self.broker.spawn(self.consumer(message))


class FakeExchange:

    def __init__(self, channel: "FakeChannel", name: str):
        self.channel = channel
        self.name = name

    async def publish(self, message, routing_key: str, mandatory: bool = False) -> None:
        broker = self.channel.connection.broker
        if self.channel.connection.is_closed:
            raise ConnectionError("connection closed")
        if broker.publish_failures > 0:
            broker.publish_failures -= 1
            raise ChannelInvalidStateError("channel closed by broker")
        if broker.nacks > 0:
            broker.nacks -= 1
            raise DeliveryError(None, Basic.Nack())
        broker.published.append((routing_key, message.body))
        targets = [q for q in broker.queues.values() if any(topic_matches(b, routing_key) for b in q.bindings)]
        if not targets:
            broker.returned.append((routing_key, message.body))
            if mandatory and self.channel.on_return_raises:
                raise DeliveryError(None, None)
            return
        for queue in targets:
            queue.deliver(message.body, routing_key)


class FakeChannel:

    def __init__(self, connection: "FakeConnection", publisher_confirms: bool = True,
                 on_return_raises: bool = False):
        self.connection = connection
        self.publisher_confirms = publisher_confirms
        self.on_return_raises = on_return_raises
        self.prefetch_count: Optional[int] = None
        self.is_closed = False

    async def declare_exchange(self, name: str, type=None, durable: bool = False) -> FakeExchange:
        self.connection.broker.exchanges.add(name)
        return FakeExchange(self, name)

    async def declare_queue(self, name: str, durable: bool = False) -> FakeQueue:
        broker = self.connection.broker
        if name not in broker.queues:
            broker.queues[name] = FakeQueue(broker, name)
        return broker.queues[name]

    async def set_qos(self, prefetch_count: int) -> None:
        self.prefetch_count = prefetch_count

    async def close(self) -> None:
        self.is_closed = True


class FakeCallbacks:

    def __init__(self):
        self.callbacks = []

    def add(self, callback) -> None:
        self.callbacks.append(callback)


class FakeConnection:

    def __init__(self, broker: "FakeBroker"):
        self.broker = broker
        self.close_callbacks = FakeCallbacks()
        self.channels: List[FakeChannel] = []
        self.is_closed = False

    async def channel(self, publisher_confirms: bool = True, on_return_raises: bool = False) -> FakeChannel:
        channel = FakeChannel(self, publisher_confirms, on_return_raises)
        self.channels.append(channel)
        return channel

    async def close(self) -> None:
        self.is_closed = True
        for channel in self.channels:
            channel.is_closed = True
        for callback in self.close_callbacks.callbacks:
            callback(self, None)

    def drop(self) -> None:
        """Simulate the broker going away underneath the client."""
        self.is_closed = True
        for queue in self.broker.queues.values():
            queue.consumer = None
        for callback in self.close_callbacks.callbacks:
            callback(self, ConnectionError("connection reset"))


class FakeBroker:
    """Single-vhost topic broker good enough for the bus client"""

    def __init__(self, failures: int = 0):
        self.failures = failures  # connect attempts to refuse before accepting
        self.connect_attempts = 0
        self.publish_failures = 0  # publishes to fail while the connection stays open
        self.nacks = 0  # publishes the broker nacks
        self.connections: List[FakeConnection] = []
        self.exchanges: Set[str] = set()
        self.queues: Dict[str, FakeQueue] = {}
        self.published: List[Tuple[str, bytes]] = []
        self.returned: List[Tuple[str, bytes]] = []
        self._tasks: Set[asyncio.Task] = set()

    async def connect(self, url: str) -> FakeConnection:
        self.connect_attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("connection refused")
        connection = FakeConnection(self)
        self.connections.append(connection)
        return connection

    @property
    def connection(self) -> FakeConnection:
        return self.connections[-1]

    def spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait until every delivery (and whatever it published) is handled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
