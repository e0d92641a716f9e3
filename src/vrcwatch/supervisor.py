"""Connection supervisor for the pipeline.

Owns one logical connection to the event source and keeps it alive:

* a failed connect or a dropped connection schedules exactly one retry;
* authentication failures wait out a long fixed cooldown, everything else
  uses jittered exponential backoff keyed on the attempt counter;
* :meth:`ConnectionSupervisor.stop` is terminal and idempotent.

Everything runs on one asyncio loop, so no locking is needed; fields are
written before any observer callback that may read them.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Protocol

from vrcwatch._constants import (
    CONNECT_TIMEOUT,
    EVENT_CLOSE,
    EVENT_ERROR,
    EVENT_STALE_THRESHOLD,
    HEALTH_CHECK_INTERVAL,
)
from vrcwatch.backoff import DelayPolicy, ExponentialBackoff, FixedCooldown
from vrcwatch.exceptions import VrcAuthenticationError, VrcConnectTimeoutError
from vrcwatch.watchdog import HealthWatchdog

_logger = logging.getLogger(__name__)

AUTH_ERROR_MARKERS: tuple[str, ...] = ("authentication", "login", "unauthorized", "401")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ConnectionState(StrEnum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    STOPPED = "stopped"


class ConnectionHandle(Protocol):
    """What the supervisor needs from a live connection."""

    def on(self, kind: str, handler: Callable[[Any], None]) -> None: ...

    def remove_all_listeners(self, kind: str | None = None) -> None: ...

    async def close(self) -> None: ...


class ConnectionObserver(Protocol):
    """Receives connection lifecycle notifications.

    ``on_connected`` gets the new handle and may attach listeners to it.
    ``on_disconnected`` means the previous handle must no longer be used.
    """

    async def on_connected(self, handle: Any) -> None: ...

    def on_disconnected(self) -> None: ...


def is_authentication_error(error: BaseException) -> bool:
    """Best-effort classification of a connect failure as an auth rejection.

    Misses fall back to normal backoff.
    """
    if isinstance(error, VrcAuthenticationError):
        return True
    message = str(error).lower()
    return any(marker in message for marker in AUTH_ERROR_MARKERS)


class ConnectionSupervisor:
    """Keep a single pipeline connection alive.

    Parameters
    ----------
    connect : callable
        Coroutine factory returning a fresh :class:`ConnectionHandle`.
    observer : ConnectionObserver
        Receives ``on_connected`` / ``on_disconnected``.
    backoff : DelayPolicy
        Delay policy for transient failures.
    cooldown : DelayPolicy
        Delay policy for authentication failures.
    connect_timeout : float
        Deadline for one ``connect()`` call in seconds.
    health_check_interval, stale_threshold : float
        Watchdog period and staleness threshold in seconds.
    clock : callable
        Returns the current aware datetime.
    sleep : callable
        Awaitable sleep used for reconnect delays.
    """

    def __init__(
        self,
        connect: Callable[[], Awaitable[ConnectionHandle]],
        observer: ConnectionObserver,
        *,
        backoff: DelayPolicy | None = None,
        cooldown: DelayPolicy | None = None,
        connect_timeout: float = CONNECT_TIMEOUT,
        health_check_interval: float = HEALTH_CHECK_INTERVAL,
        stale_threshold: float = EVENT_STALE_THRESHOLD,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._connect_factory = connect
        self._observer = observer
        self._backoff = backoff or ExponentialBackoff()
        self._cooldown = cooldown or FixedCooldown()
        self._connect_timeout = connect_timeout
        self._clock = clock
        self._sleep = sleep

        self._state = ConnectionState.CONNECTING
        self._handle: ConnectionHandle | None = None
        self._dead_handle: ConnectionHandle | None = None
        self._last_event_time: datetime | None = None
        self._attempts = 0
        self._reconnect_task: asyncio.Task[None] | None = None
        self._reconnect_pending = False
        self.last_delay: float | None = None

        self._watchdog = HealthWatchdog(
            lambda: self._last_event_time,
            interval=health_check_interval,
            threshold=stale_threshold,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Status accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def last_event_time(self) -> datetime | None:
        return self._last_event_time

    @property
    def handle(self) -> ConnectionHandle | None:
        return self._handle

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_pending

    @property
    def watchdog(self) -> HealthWatchdog:
        return self._watchdog

    def record_event(self) -> None:
        """Mark that an event arrived, valid or not."""
        self._last_event_time = self._clock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        _logger.info("Starting connection supervisor...")
        await self._connect()

    async def stop(self) -> None:
        """Stop for good: cancel the pending retry and tear down the handle."""
        if self._state is ConnectionState.STOPPED:
            return
        _logger.info("Stopping connection supervisor...")
        self._state = ConnectionState.STOPPED
        self._reconnect_pending = False

        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        self._watchdog.stop()

        handle = self._handle
        self._handle = None
        if handle is not None:
            await self._teardown(handle)
        await self._discard_dead_handle()

    # ------------------------------------------------------------------
    # Connect / reconnect
    # ------------------------------------------------------------------

    async def _connect(self) -> None:
        if self._state is ConnectionState.STOPPED:
            return

        self._state = ConnectionState.CONNECTING
        await self._discard_dead_handle()
        _logger.info("Connecting to the pipeline...")

        deadline = asyncio.timeout(self._connect_timeout)
        try:
            async with deadline:
                handle = await self._connect_factory()
        except asyncio.CancelledError:
            raise
        except TimeoutError as exc:
            if not deadline.expired():
                # The factory's own timeout, not ours.
                self._on_connect_failure(exc)
                return
            timeout_error = VrcConnectTimeoutError(f"Connect did not finish within {self._connect_timeout:.0f}s")
            timeout_error.__cause__ = exc
            self._on_connect_failure(timeout_error)
            return
        except Exception as exc:
            self._on_connect_failure(exc)
            return

        if self._state is ConnectionState.STOPPED:
            await self._teardown(handle)
            return

        self._attach(handle)
        self._handle = handle
        self._state = ConnectionState.CONNECTED
        self._attempts = 0
        _logger.info("Connected to the pipeline")

        self._watchdog.start()

        try:
            await self._observer.on_connected(handle)
        except asyncio.CancelledError:
            raise
        except Exception:
            _logger.exception("Error in connected handler")

    def _on_connect_failure(self, error: Exception) -> None:
        if self._state is ConnectionState.STOPPED:
            return
        if is_authentication_error(error):
            delay = self._cooldown.compute_delay(self._attempts)
            _logger.error(
                "Authentication error detected (%s). Cooling down for %.0f minutes...",
                error,
                delay / 60,
            )
        else:
            delay = self._backoff.compute_delay(self._attempts)
            _logger.warning("Failed to connect to the pipeline: %s", error)
        self._schedule_reconnect(delay)

    def _attach(self, handle: ConnectionHandle) -> None:
        def on_close(payload: Any) -> None:
            _logger.warning("Pipeline closed (code=%s)", payload)
            self._handle_disconnect(handle)

        def on_error(payload: Any) -> None:
            _logger.error("Pipeline error: %s", payload)
            self._handle_disconnect(handle)

        handle.on(EVENT_CLOSE, on_close)
        handle.on(EVENT_ERROR, on_error)

    def _handle_disconnect(self, handle: ConnectionHandle) -> None:
        if self._state is ConnectionState.STOPPED or self._reconnect_pending:
            return
        if handle is not self._handle:
            return

        _logger.warning("Handling pipeline disconnect...")
        self._handle = None
        self._dead_handle = handle
        self._state = ConnectionState.RECONNECTING

        try:
            self._observer.on_disconnected()
        except Exception:
            _logger.exception("Error in disconnected handler")

        self._schedule_reconnect(self._backoff.compute_delay(self._attempts))

    def _schedule_reconnect(self, delay: float) -> None:
        if self._state is ConnectionState.STOPPED:
            return
        if self._reconnect_pending:
            _logger.warning("Reconnect already in progress, skipping")
            return

        self._reconnect_pending = True
        self._state = ConnectionState.RECONNECTING
        self._attempts += 1
        self.last_delay = delay
        _logger.info("Scheduling reconnect attempt #%d in %.1f seconds...", self._attempts, delay)

        previous = self._reconnect_task
        if previous is not None and not previous.done() and previous is not asyncio.current_task():
            previous.cancel()

        self._reconnect_task = asyncio.create_task(
            self._reconnect_after(delay),
            name="vrcwatch-reconnect",
        )

    async def _reconnect_after(self, delay: float) -> None:
        await self._sleep(delay)
        # The timer has fired; a failure inside _connect may schedule the next one.
        self._reconnect_pending = False
        try:
            await self._connect()
        except asyncio.CancelledError:
            raise
        except Exception:
            _logger.exception("Error during reconnect")
            if not self._reconnect_pending:
                self._schedule_reconnect(self._backoff.compute_delay(self._attempts))

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def _teardown(self, handle: ConnectionHandle) -> None:
        # Listeners first, so closing does not re-enter _handle_disconnect.
        handle.remove_all_listeners(EVENT_CLOSE)
        handle.remove_all_listeners(EVENT_ERROR)
        try:
            await handle.close()
        except Exception:
            _logger.debug("Error while closing connection handle", exc_info=True)

    async def _discard_dead_handle(self) -> None:
        handle = self._dead_handle
        self._dead_handle = None
        if handle is not None:
            await self._teardown(handle)
