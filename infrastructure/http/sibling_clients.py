"""
HTTP clients for calls between sibling services.

Gating calls (anything a registration or a charge depends on) fail closed:
network errors, timeouts and 5xx raise ServiceUnavailableError, 404 maps to
None. Advisory calls fail open: any failure is logged and reported as False.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
from pydantic import ValidationError as PydanticValidationError

from core.domain.errors import ServiceUnavailableError
from core.domain.models import CapacitySnapshot, Event, EventUpdate, Player
from core.interfaces.messaging import IEventRegistryClient, IRegistrationClient

logger = logging.getLogger(__name__)

ROSTER_PAGE_LIMIT = 1000


class SiblingClient:
    """Shared aiohttp session with a short total timeout"""

    service_name = "sibling"

    def __init__(self, base_url: str, timeout_seconds: float = 3.0,
                 session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def _request(self, method: str, path: str, *, json: Optional[Dict[str, Any]] = None,
                       params: Optional[Dict[str, Any]] = None) -> Tuple[int, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with self._get_session().request(
                method, url, json=json, params=params,
                headers={"Accept": "application/json"},
            ) as resp:
                if resp.status >= 500:
                    raise ServiceUnavailableError(self.service_name, f"HTTP {resp.status}")
                if resp.status == 404:
                    return resp.status, None
                try:
                    body = await resp.json(content_type=None)
                except ValueError:
                    body = None
                return resp.status, body
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"[SIBLING] {method} {url} failed: {e or type(e).__name__}")
            raise ServiceUnavailableError(self.service_name, str(e) or type(e).__name__) from e

    def _unexpected(self, status: int) -> ServiceUnavailableError:
        return ServiceUnavailableError(self.service_name, f"unexpected HTTP {status}")


class EventRegistryClient(SiblingClient, IEventRegistryClient):
    """Registration / settlement view of the event registry"""

    service_name = "event-service"

    async def get_event(self, event_id: str) -> Optional[Event]:
        status, body = await self._request("GET", f"/events/{event_id}")
        if status == 404:
            return None
        if status != 200 or not isinstance(body, dict):
            raise self._unexpected(status)
        try:
            return Event.model_validate(body.get("event", body))
        except PydanticValidationError as e:
            raise ServiceUnavailableError(self.service_name, f"invalid event payload: {e.error_count()} errors")

    async def get_status(self, event_id: str) -> Optional[CapacitySnapshot]:
        status, body = await self._request("GET", f"/events/{event_id}/status")
        if status == 404:
            return None
        if status != 200 or not isinstance(body, dict):
            raise self._unexpected(status)
        try:
            return CapacitySnapshot.model_validate(body)
        except PydanticValidationError as e:
            raise ServiceUnavailableError(self.service_name, f"invalid status payload: {e.error_count()} errors")

    async def patch_event(self, event_id: str, update: EventUpdate) -> bool:
        payload = update.model_dump(mode="json", by_alias=True, exclude_none=True)
        try:
            status, _ = await self._request("PATCH", f"/events/{event_id}", json=payload)
        except ServiceUnavailableError as e:
            logger.warning(f"[SIBLING] PATCH event {event_id} skipped: {e}")
            return False
        if status != 200:
            logger.warning(f"[SIBLING] PATCH event {event_id} returned HTTP {status}")
        return status == 200


class RegistrationClient(SiblingClient, IRegistrationClient):
    """Registry / settlement view of the registration service"""

    service_name = "registration-service"

    async def get_players(self, event_id: str) -> Optional[List[Player]]:
        status, body = await self._request(
            "GET", f"/registration/events/{event_id}/players",
            params={"limit": ROSTER_PAGE_LIMIT},
        )
        if status == 404:
            return None
        if status != 200 or not isinstance(body, dict):
            raise self._unexpected(status)
        try:
            return [Player.model_validate(p) for p in body.get("players", [])]
        except PydanticValidationError as e:
            raise ServiceUnavailableError(self.service_name, f"invalid roster payload: {e.error_count()} errors")

    async def promote_waitlist(self, event_id: str, slots: int = 1) -> bool:
        try:
            status, _ = await self._request(
                "POST", f"/registration/events/{event_id}/promote-waitlist",
                json={"slots": slots},
            )
        except ServiceUnavailableError as e:
            logger.warning(f"[SIBLING] Promote trigger for {event_id} skipped: {e}")
            return False
        return status == 200
