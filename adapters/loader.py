"""
Service loader - wires repositories, the event bus and services for one role.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from aiohttp import web

from adapters.api import create_registration_app, create_registry_app, create_settlement_app
from config.features import Features
from config.settings import Settings
from core.domain.constants import (
    CAPACITY_BINDINGS,
    CAPACITY_PREFETCH,
    CAPACITY_QUEUE,
    WAITLIST_BINDINGS,
    WAITLIST_QUEUE,
)
from core.interfaces import MessageHandler
from core.services import (
    CapacityReconciler,
    EventRegistryService,
    RegistrationService,
    SchedulerService,
    SettlementService,
    WaitlistPromoter,
)
from infrastructure.database import (
    SupabaseEventRepository,
    SupabasePlayerRepository,
    SupabaseSettlementRepository,
)
from infrastructure.http.sibling_clients import EventRegistryClient, RegistrationClient
from infrastructure.messaging.event_bus import BusConfig, EventBusClient

ROLES = ("registry", "registration", "settlement")


@dataclass
class ConsumerSpec:
    queue: str
    binding_keys: List[str]
    handler: MessageHandler
    prefetch: int = 1


@dataclass
class Container:
    """Everything one process runs"""
    role: str
    bus: EventBusClient
    app: web.Application
    consumers: List[ConsumerSpec] = field(default_factory=list)
    scheduler: Optional[SchedulerService] = None
    closers: List[Callable[[], Awaitable[None]]] = field(default_factory=list)


def build_container(settings: Settings, features: Features) -> Container:
    role = settings.service_role
    if role not in ROLES:
        raise ValueError(f"Unknown SERVICE_ROLE '{role}', expected one of {', '.join(ROLES)}")

    # === EVENT BUS (one per process) ===
    bus = EventBusClient(BusConfig.from_settings(settings, features))
    service_name = settings.resolved_service_name
    timeout = settings.sibling_timeout_seconds

    if role == "registry":
        event_repo = SupabaseEventRepository()
        registration_client = RegistrationClient(settings.registration_service_url, timeout)
        registry = EventRegistryService(event_repo=event_repo, registration=registration_client)
        container = Container(
            role=role,
            bus=bus,
            app=create_registry_app(registry, service_name, bus),
            closers=[registration_client.close],
        )
        if features.ENABLE_CAPACITY_WORKER:
            reconciler = CapacityReconciler(event_repo=event_repo, publisher=bus)
            container.consumers.append(
                ConsumerSpec(CAPACITY_QUEUE, CAPACITY_BINDINGS, reconciler.handle, CAPACITY_PREFETCH)
            )
        if features.ENABLE_LIFECYCLE_SCHEDULER:
            container.scheduler = SchedulerService(
                event_repo=event_repo,
                poll_interval=settings.scheduler_poll_interval_seconds,
                timezone_name=settings.event_timezone,
            )
        return container

    if role == "registration":
        player_repo = SupabasePlayerRepository()
        registry_client = EventRegistryClient(settings.event_service_url, timeout)
        registration = RegistrationService(
            player_repo=player_repo,
            registry=registry_client,
            publisher=bus,
            penalty_enabled=features.PENALTY_ENABLED,
            penalty_window_hours=settings.penalty_window_hours,
            timezone_name=settings.event_timezone,
        )
        promoter = WaitlistPromoter(
            player_repo=player_repo,
            publisher=bus,
            delay_seconds=settings.rabbit_consumer_delay_ms / 1000,
        )
        container = Container(
            role=role,
            bus=bus,
            app=create_registration_app(registration, promoter, player_repo, service_name, bus),
            closers=[registry_client.close],
        )
        if features.ENABLE_WAITLIST_WORKER:
            container.consumers.append(
                ConsumerSpec(WAITLIST_QUEUE, WAITLIST_BINDINGS, promoter.handle, settings.rabbit_prefetch)
            )
        return container

    registry_client = EventRegistryClient(settings.event_service_url, timeout)
    registration_client = RegistrationClient(settings.registration_service_url, timeout)
    settlements = SettlementService(
        registry=registry_client,
        registration=registration_client,
        settlement_repo=SupabaseSettlementRepository(),
        publisher=bus,
        currency=settings.settlement_currency,
        penalty_amount=settings.penalty_amount,
        penalty_percentage=settings.penalty_percentage,
    )
    return Container(
        role=role,
        bus=bus,
        app=create_settlement_app(settlements, service_name, bus),
        closers=[registry_client.close, registration_client.close],
    )
