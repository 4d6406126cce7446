import pytest
from aiohttp.test_utils import TestServer

from adapters.api import create_registration_app, create_registry_app
from core.domain.errors import ServiceUnavailableError
from core.domain.models import EventStatus, EventUpdate, PlayerStatus
from core.services.event_registry_service import EventRegistryService
from core.services.registration_service import RegistrationService
from core.services.waitlist_promoter import WaitlistPromoter
from infrastructure.http.sibling_clients import EventRegistryClient, RegistrationClient
from tests.fakes import (
    FakeRegistryClient,
    InMemoryEventRepository,
    InMemoryPlayerRepository,
    RecordingPublisher,
    make_event,
)


@pytest.fixture
async def serve():
    servers, clients = [], []

    async def factory(app, client_cls):
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        client = client_cls(f"http://{server.host}:{server.port}", timeout_seconds=2)
        clients.append(client)
        return client

    yield factory
    for client in clients:
        await client.close()
    for server in servers:
        await server.close()


@pytest.fixture
def events():
    return InMemoryEventRepository([make_event(max_participants=3, current=1)])


@pytest.fixture
async def registry_client(serve, events):
    return await serve(create_registry_app(EventRegistryService(events)), EventRegistryClient)


async def test_get_event_over_http(registry_client):
    event = await registry_client.get_event("evt-1")

    assert event.id == "evt-1"
    assert event.capacity.available_slots == 2
    assert event.courts[0].start_time == "20:00"


async def test_get_status_over_http(registry_client):
    snapshot = await registry_client.get_status("evt-1")

    assert snapshot.current_participants == 1
    assert snapshot.is_accepting_registrations


async def test_missing_event_is_none(registry_client):
    assert await registry_client.get_event("nope") is None
    assert await registry_client.get_status("nope") is None


async def test_patch_event_reports_outcome(registry_client, events):
    assert await registry_client.patch_event("evt-1", EventUpdate(status=EventStatus.IN_PROGRESS))
    assert events.events["evt-1"].status == EventStatus.IN_PROGRESS

    # Backwards move is refused with 409
    assert not await registry_client.patch_event("evt-1", EventUpdate(status=EventStatus.UPCOMING))


async def test_server_error_is_unavailable(serve):
    class BrokenRepository(InMemoryEventRepository):
        async def get_by_id(self, event_id):
            raise RuntimeError("boom")

    client = await serve(create_registry_app(EventRegistryService(BrokenRepository())), EventRegistryClient)

    with pytest.raises(ServiceUnavailableError) as exc:
        await client.get_status("evt-1")
    assert exc.value.service == "event-service"


async def test_unreachable_sibling():
    client = EventRegistryClient("http://127.0.0.1:1", timeout_seconds=1)
    try:
        with pytest.raises(ServiceUnavailableError):
            await client.get_event("evt-1")
        assert await client.patch_event("evt-1", EventUpdate(status=EventStatus.CANCELED)) is False
    finally:
        await client.close()


async def test_registration_client_round_trip(serve, events):
    players = InMemoryPlayerRepository()
    waiting = players.add("evt-1", PlayerStatus.WAITLIST, name="W", user_id="u1")
    players.add("evt-1", PlayerStatus.REGISTERED, name="R", start_time="20:00", end_time="21:00")
    publisher = RecordingPublisher()
    service = RegistrationService(players, FakeRegistryClient(events), publisher)
    app = create_registration_app(service, WaitlistPromoter(players, publisher), players)
    client = await serve(app, RegistrationClient)

    roster = await client.get_players("evt-1")
    assert [(p.name, p.status) for p in roster] == [("W", PlayerStatus.WAITLIST),
                                                    ("R", PlayerStatus.REGISTERED)]
    assert roster[1].start_time == "20:00"

    assert await client.promote_waitlist("evt-1", slots=1) is True
    assert players.players[waiting.id].status == PlayerStatus.REGISTERED


async def test_registration_client_unreachable_promote_is_advisory():
    client = RegistrationClient("http://127.0.0.1:1", timeout_seconds=1)
    try:
        assert await client.promote_waitlist("evt-1") is False
        with pytest.raises(ServiceUnavailableError):
            await client.get_players("evt-1")
    finally:
        await client.close()
