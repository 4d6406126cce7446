from core.interfaces.repositories import (
    CapacityAdjustment,
    IEventRepository,
    IPlayerRepository,
    ISettlementRepository,
)
from core.interfaces.messaging import (
    MessageHandler,
    IEventPublisher,
    IEventBus,
    IEventRegistryClient,
    IRegistrationClient,
)

__all__ = [
    # Repositories
    "CapacityAdjustment",
    "IEventRepository",
    "IPlayerRepository",
    "ISettlementRepository",
    # Messaging
    "MessageHandler",
    "IEventPublisher",
    "IEventBus",
    "IEventRegistryClient",
    "IRegistrationClient",
]
