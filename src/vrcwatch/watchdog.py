"""Staleness watchdog for the event feed.

A push feed with sparse traffic can be silent for hours while perfectly
healthy, so the watchdog only warns; it never touches the connection.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from vrcwatch._constants import EVENT_STALE_THRESHOLD, HEALTH_CHECK_INTERVAL

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class HealthWatchdog:
    """Periodically compare the last event time against a threshold."""

    def __init__(
        self,
        last_event: Callable[[], datetime | None],
        *,
        interval: float = HEALTH_CHECK_INTERVAL,
        threshold: float = EVENT_STALE_THRESHOLD,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._last_event = last_event
        self._interval = interval
        self._threshold = threshold
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self.warnings = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="vrcwatch-health-watchdog")

    def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.check()

    def check(self) -> bool:
        """Run one tick. Returns whether a staleness warning was emitted."""
        last = self._last_event()
        if last is None:
            return False

        age = (self._clock() - last).total_seconds()
        if age <= self._threshold:
            return False

        self.warnings += 1
        _logger.warning(
            "No events received for %.1f hours. Last event: %s",
            age / 3600,
            last.isoformat(),
        )
        return True
