import asyncio

import pytest

from core.domain.constants import SLOT_OPENED, WAITLIST_PROMOTED
from core.domain.models import DomainMessage, PlayerStatus
from core.services.waitlist_promoter import WaitlistPromoter
from tests.fakes import InMemoryPlayerRepository, RecordingPublisher


def slot_opened(event_id="evt-1", slots=1):
    return DomainMessage(event_type=SLOT_OPENED, data={"eventId": event_id, "openedSlots": slots})


@pytest.fixture
def players():
    return InMemoryPlayerRepository()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def promoter(players, publisher):
    return WaitlistPromoter(players, publisher)


async def test_oldest_waitlisted_player_is_promoted_first(promoter, players, publisher):
    first = players.add("evt-1", PlayerStatus.WAITLIST, name="First", user_id="u1", email="first@example.com")
    second = players.add("evt-1", PlayerStatus.WAITLIST, name="Second", user_id="u2")

    await promoter.handle(slot_opened())

    assert players.players[first.id].status == PlayerStatus.REGISTERED
    assert players.players[second.id].status == PlayerStatus.WAITLIST
    [payload] = publisher.of_type(WAITLIST_PROMOTED)
    assert payload["playerId"] == first.id
    assert payload["userId"] == "u1"
    assert payload["playerName"] == "First"
    assert payload["playerEmail"] == "first@example.com"
    assert payload["status"] == "registered"
    assert payload["promotedFromWaitlist"] is True
    assert payload["promotedAt"]


async def test_multiple_slots_promote_in_registration_order(promoter, players):
    a = players.add("evt-1", PlayerStatus.WAITLIST, name="A")
    b = players.add("evt-1", PlayerStatus.WAITLIST, name="B")
    c = players.add("evt-1", PlayerStatus.WAITLIST, name="C")

    promoted = await promoter.promote("evt-1", slots=2)

    assert [p.id for p in promoted] == [a.id, b.id]
    assert players.players[c.id].status == PlayerStatus.WAITLIST


async def test_stops_early_when_waitlist_runs_out(promoter, players, publisher):
    only = players.add("evt-1", PlayerStatus.WAITLIST, name="Only")

    promoted = await promoter.promote("evt-1", slots=3)

    assert [p.id for p in promoted] == [only.id]
    assert len(publisher.of_type(WAITLIST_PROMOTED)) == 1


async def test_empty_waitlist_publishes_nothing(promoter, publisher):
    await promoter.handle(slot_opened())

    assert publisher.published == []


async def test_other_events_are_untouched(promoter, players):
    other = players.add("evt-2", PlayerStatus.WAITLIST, name="Elsewhere")

    await promoter.handle(slot_opened("evt-1"))

    assert players.players[other.id].status == PlayerStatus.WAITLIST


async def test_registered_and_canceled_players_are_never_promoted(promoter, players):
    players.add("evt-1", PlayerStatus.CANCELED, name="Gone")
    players.add("evt-1", PlayerStatus.REGISTERED, name="Playing")
    waiting = players.add("evt-1", PlayerStatus.WAITLIST, name="Waiting")

    promoted = await promoter.promote("evt-1")

    assert [p.id for p in promoted] == [waiting.id]


async def test_redelivered_slot_never_promotes_the_same_player_twice(promoter, players, publisher):
    first = players.add("evt-1", PlayerStatus.WAITLIST, name="First")

    await promoter.handle(slot_opened())
    await promoter.handle(slot_opened())

    ids = [p["playerId"] for p in publisher.of_type(WAITLIST_PROMOTED)]
    assert ids == [first.id]


async def test_missing_event_id_is_ignored(promoter, players, publisher):
    players.add("evt-1", PlayerStatus.WAITLIST)

    await promoter.handle(DomainMessage(event_type=SLOT_OPENED, data={"openedSlots": 1}))

    assert publisher.published == []


@pytest.mark.parametrize("raw", [None, "abc", 0, -2])
async def test_bad_slot_counts_fall_back_to_one(promoter, players, raw):
    players.add("evt-1", PlayerStatus.WAITLIST, name="A")
    players.add("evt-1", PlayerStatus.WAITLIST, name="B")

    await promoter.handle(slot_opened(slots=raw))

    assert len(await players.list_by_event("evt-1", PlayerStatus.WAITLIST)) == 1


async def test_concurrent_slot_deliveries_never_promote_a_player_twice(promoter, players, publisher):
    a = players.add("evt-1", PlayerStatus.WAITLIST, name="A")
    b = players.add("evt-1", PlayerStatus.WAITLIST, name="B")
    c = players.add("evt-1", PlayerStatus.WAITLIST, name="C")

    await asyncio.gather(promoter.handle(slot_opened()), promoter.handle(slot_opened()))

    ids = [p["playerId"] for p in publisher.of_type(WAITLIST_PROMOTED)]
    assert sorted(ids) == sorted([a.id, b.id])
    assert players.players[c.id].status == PlayerStatus.WAITLIST


async def test_concurrent_duplicate_slot_with_one_waiter_promotes_once(promoter, players, publisher):
    only = players.add("evt-1", PlayerStatus.WAITLIST, name="Only")

    await asyncio.gather(*(promoter.handle(slot_opened()) for _ in range(3)))

    assert [p["playerId"] for p in publisher.of_type(WAITLIST_PROMOTED)] == [only.id]
    assert players.players[only.id].status == PlayerStatus.REGISTERED
