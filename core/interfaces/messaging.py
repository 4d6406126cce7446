"""
Messaging interfaces - abstractions for the domain event bus and for the
synchronous calls one service makes to its siblings.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from core.domain.models import CapacitySnapshot, DomainMessage, Event, EventUpdate, Player

MessageHandler = Callable[[DomainMessage, str], Awaitable[None]]


class IEventPublisher(ABC):
    """Publishes domain events; never raises on connectivity loss"""

    @abstractmethod
    async def publish(self, event_type: str, data: Dict[str, Any]) -> None:
        pass


class IEventBus(IEventPublisher):
    """Publish/subscribe channel between services"""

    @abstractmethod
    async def connect(self) -> None:
        pass

    @abstractmethod
    async def consume(self, queue: str, binding_keys: Sequence[str],
                      handler: MessageHandler, prefetch: int = 1) -> None:
        """Bind a durable queue and dispatch deliveries to handler(message, routing_key)"""
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class IEventRegistryClient(ABC):
    """Read-only / admin view of the event registry used by sibling services"""

    @abstractmethod
    async def get_event(self, event_id: str) -> Optional[Event]:
        """Gating call: None on 404, raises ServiceUnavailableError when unreachable"""
        pass

    @abstractmethod
    async def get_status(self, event_id: str) -> Optional[CapacitySnapshot]:
        """Gating call: live capacity snapshot"""
        pass

    @abstractmethod
    async def patch_event(self, event_id: str, update: EventUpdate) -> bool:
        """Advisory call: False on any failure"""
        pass


class IRegistrationClient(ABC):
    """Registration service as seen by its siblings"""

    @abstractmethod
    async def get_players(self, event_id: str) -> Optional[List[Player]]:
        """Gating call: roster ordered by registration time"""
        pass

    @abstractmethod
    async def promote_waitlist(self, event_id: str, slots: int = 1) -> bool:
        """Advisory call: False on any failure"""
        pass
