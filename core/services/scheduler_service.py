"""
Event lifecycle scheduler - moves events along by wall-clock time.
Runs as an asyncio background task next to the registry HTTP server.

upcoming -> in_progress once the earliest court starts,
in_progress -> calculating once the latest court ends.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, Optional
from zoneinfo import ZoneInfo

from core.domain.constants import DEFAULT_POLL_INTERVAL_SECONDS, MIN_POLL_INTERVAL_SECONDS
from core.domain.models import Event, EventStatus, utc_now
from core.interfaces import IEventRepository
from core.utils.event_time import has_ended, has_started

logger = logging.getLogger(__name__)


class SchedulerService:
    """Periodic event status transitions."""

    def __init__(self, event_repo: IEventRepository,
                 poll_interval: int = DEFAULT_POLL_INTERVAL_SECONDS,
                 timezone_name: str = "Asia/Bangkok",
                 clock: Callable[[], datetime] = utc_now):
        self.event_repo = event_repo
        self.poll_interval = max(MIN_POLL_INTERVAL_SECONDS, poll_interval)
        self.tz = ZoneInfo(timezone_name)
        self._clock = clock
        self._running = False
        self._tick_count = 0
        self._tick_lock = asyncio.Lock()
        self._store_down = False

    async def run(self):
        """Main scheduler loop."""
        self._running = True
        logger.info(f"[SCHEDULER] Started - checking event lifecycle every {self.poll_interval}s")

        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"[SCHEDULER] Tick failed: {e}", exc_info=True)

            await asyncio.sleep(self.poll_interval)

    async def stop(self):
        self._running = False

    async def run_once(self) -> Optional[Dict[str, int]]:
        """Run one tick unless the previous one is still in flight."""
        if self._tick_lock.locked():
            logger.warning("[SCHEDULER] Previous tick still running, skipping")
            return None
        async with self._tick_lock:
            return await self._tick()

    async def _tick(self) -> Dict[str, int]:
        self._tick_count += 1
        if not await self._store_available():
            return {}

        now = self._clock()
        started = await self._advance(
            EventStatus.UPCOMING, EventStatus.IN_PROGRESS,
            lambda e: has_started(e.event_date, e.courts, now, self.tz),
        )
        # Re-reads in_progress, so an event whose whole window passed while
        # we were down goes straight through to calculating
        ended = await self._advance(
            EventStatus.IN_PROGRESS, EventStatus.CALCULATING,
            lambda e: has_ended(e.event_date, e.courts, now, self.tz),
        )
        return {"started": started, "ended": ended}

    async def _store_available(self) -> bool:
        try:
            reachable = await self.event_repo.ping()
        except Exception as e:
            logger.debug(f"[SCHEDULER] Store ping failed: {e}")
            reachable = False

        if not reachable:
            if not self._store_down:
                logger.warning("[SCHEDULER] Event store unreachable, lifecycle updates paused")
            self._store_down = True
            return False

        if self._store_down:
            logger.info("[SCHEDULER] Event store reachable again, resuming lifecycle updates")
            self._store_down = False
        return True

    async def _advance(self, from_status: EventStatus, to_status: EventStatus,
                       is_due: Callable[[Event], bool]) -> int:
        events = await self.event_repo.get_by_status(from_status)
        due = [event.id for event in events if is_due(event)]
        if not due:
            return 0

        changed = await self.event_repo.bulk_transition(due, from_status, to_status)
        logger.info(f"[SCHEDULER] {changed} event(s) {from_status.value} -> {to_status.value}")
        return changed
