"""Application orchestrator.

Wires the connection supervisor to the location store and the notifier:

* on connect, reconcile every watched user against the stored snapshot and
  attach the pipeline listeners;
* each inbound event is decoded, applied to the store synchronously and in
  delivery order, and any resulting transition is queued for notification;
* a single worker sends queued notifications one at a time, in order.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from vrcwatch._redact import redact_for_log
from vrcwatch.backoff import ExponentialBackoff, FixedCooldown
from vrcwatch.config import WatchConfig
from vrcwatch.connection import VrcConnection, connect_vrchat
from vrcwatch.exceptions import MalformedEventError, VrcWatchError
from vrcwatch.health import HealthServer
from vrcwatch.models.events import (
    EVENT_KINDS,
    FriendEvent,
    FriendLocationEvent,
    FriendOfflineEvent,
    FriendOnlineEvent,
    decode_event,
)
from vrcwatch.models.transition import TransitionContext, TransitionKind
from vrcwatch.notifier import DiscordNotifier
from vrcwatch.state.store import StateDiffStore
from vrcwatch.supervisor import ConnectionSupervisor

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _Notification:
    kind: TransitionKind
    entity_id: str
    display_name: str
    previous: str | None
    current: str | None
    context: TransitionContext | None = None


class WatchApp:
    """Watch the configured users and notify on every transition."""

    def __init__(
        self,
        config: WatchConfig,
        *,
        store: StateDiffStore | None = None,
        notifier: DiscordNotifier | None = None,
        connect: Callable[[], Awaitable[VrcConnection]] | None = None,
        health_server: bool = True,
    ) -> None:
        self._config = config
        self._store = store or StateDiffStore(config.location_file, debounce=config.save_debounce)
        self._notifier = notifier or DiscordNotifier(config.webhook_url)
        self._supervisor = ConnectionSupervisor(
            connect or functools.partial(connect_vrchat, config),
            self,
            backoff=ExponentialBackoff(base=config.initial_backoff, max_delay=config.max_backoff),
            cooldown=FixedCooldown(config.auth_failure_cooldown),
            connect_timeout=config.connect_timeout,
            health_check_interval=config.health_check_interval,
            stale_threshold=config.stale_threshold,
        )
        self._health = (
            HealthServer(self._supervisor, host=config.health_host, port=config.health_port)
            if health_server
            else None
        )
        self._connection: VrcConnection | None = None
        self._queue: asyncio.Queue[_Notification] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._shutting_down = False

    @property
    def store(self) -> StateDiffStore:
        return self._store

    @property
    def supervisor(self) -> ConnectionSupervisor:
        return self._supervisor

    @property
    def connection(self) -> VrcConnection | None:
        return self._connection

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        _logger.info("Starting vrcwatch for %d user(s)...", len(self._config.target_user_ids))
        self._store.load()
        self._ensure_worker()
        if self._health is not None:
            await self._health.start()
        await self._supervisor.start()
        _logger.info("Application started. Listening for events...")

    async def shutdown(self) -> None:
        """Stop everything; safe to call more than once."""
        if self._shutting_down:
            return
        self._shutting_down = True
        _logger.info("Shutting down...")

        await self._supervisor.stop()
        self._store.flush()
        if self._health is not None:
            await self._health.stop()
        await self.drain()

        worker = self._worker
        self._worker = None
        if worker is not None:
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker
        await self._notifier.close()
        _logger.info("Goodbye!")

    async def drain(self) -> None:
        """Wait until every queued notification has been handled."""
        if self._worker is None and not self._queue.empty():
            self._ensure_worker()
        await self._queue.join()

    # ------------------------------------------------------------------
    # ConnectionObserver
    # ------------------------------------------------------------------

    async def on_connected(self, handle: VrcConnection) -> None:
        _logger.info("Pipeline connected, initializing...")
        self._connection = handle

        try:
            await self._validate_targets(handle)
            await self._reconcile(handle)
        finally:
            # Listeners go on even when reconciliation fails.
            if self._connection is handle:
                self._attach_listeners(handle)
            else:
                _logger.warning("Connection lost during initialization, not attaching listeners")
        if self._connection is handle:
            _logger.info("Pipeline initialized successfully")

    def on_disconnected(self) -> None:
        _logger.warning("Pipeline disconnected")
        self._connection = None

    # ------------------------------------------------------------------
    # Startup reconciliation
    # ------------------------------------------------------------------

    async def _validate_targets(self, handle: VrcConnection) -> None:
        _logger.info("Validating target users...")
        not_friends: list[str] = []
        try:
            friend_ids = set(await handle.client.get_friend_ids())
        except VrcWatchError as exc:
            _logger.warning("Could not list friends, checking each user: %s", exc)
            for user_id in self._config.target_user_ids:
                try:
                    if not await handle.client.is_friend(user_id):
                        not_friends.append(user_id)
                except VrcWatchError as err:
                    _logger.warning("Could not check friend status of %s: %s", user_id, err)
        else:
            not_friends = [user_id for user_id in self._config.target_user_ids if user_id not in friend_ids]

        if not_friends:
            _logger.warning("The following target users are not friends: %s", ", ".join(not_friends))
            _logger.warning("You will not receive notifications for these users until they become friends.")
        else:
            _logger.info("All %d target user(s) are friends.", len(self._config.target_user_ids))

    async def _reconcile(self, handle: VrcConnection) -> None:
        """Seed the store from the API and report changes missed while down."""
        _logger.info("Fetching initial user statuses...")
        for user_id in self._config.target_user_ids:
            try:
                info = await handle.client.get_user(user_id)
            except VrcWatchError as exc:
                _logger.warning("Failed to fetch user info for %s: %s", user_id, exc)
                continue
            if info is None:
                _logger.warning("Failed to fetch user info for %s", user_id)
                continue

            stored = self._store.get_record(user_id)
            current = info.location
            self._store.set_initial(user_id, info.display_name, current)

            if stored is not None and stored.state != current:
                _logger.info(
                    "State changed during downtime: %s (%s) - %s -> %s",
                    info.display_name,
                    user_id,
                    stored.state,
                    current,
                )
                kind = TransitionKind.OFFLINE if current is None else TransitionKind.LOCATION
                self._enqueue(_Notification(kind, user_id, info.display_name, stored.state, current))

            _logger.info(
                "Initial status: %s (%s) - %s @ %s",
                info.display_name,
                user_id,
                info.status or "unknown",
                current or "offline",
            )
        _logger.info("Initial user statuses fetched.")

    # ------------------------------------------------------------------
    # Live events
    # ------------------------------------------------------------------

    def _attach_listeners(self, handle: VrcConnection) -> None:
        for kind in EVENT_KINDS:
            handle.remove_all_listeners(kind)
        for kind in EVENT_KINDS:
            handle.on(kind, functools.partial(self._on_pipeline_event, kind))
        _logger.info("Pipeline event handlers registered.")

    def _on_pipeline_event(self, kind: str, payload: Any) -> None:
        self._supervisor.record_event()
        try:
            event = decode_event(kind, payload)
        except MalformedEventError as exc:
            _logger.error("Invalid %s event data (%s): %s", kind, exc, redact_for_log(payload, max_string=200))
            return
        self.handle_event(event)

    def handle_event(self, event: FriendEvent) -> None:
        """Apply one decoded event; must be called in delivery order."""
        if not self._config.is_target(event.user_id):
            return
        if isinstance(event, FriendLocationEvent):
            self._handle_location(event)
        elif isinstance(event, FriendOnlineEvent):
            self._handle_online(event)
        elif isinstance(event, FriendOfflineEvent):
            self._handle_offline(event)

    def _handle_location(self, event: FriendLocationEvent) -> None:
        _logger.info("Friend location event: %s (%s) -> %s", event.display_name, event.user_id, event.location)
        result = self._store.update(event.user_id, event.display_name, event.location)
        if not result.changed:
            return
        context = None
        if event.world is not None:
            context = TransitionContext(world_name=event.world.name, thumbnail_url=event.world.thumbnail_image_url)
        self._enqueue(
            _Notification(
                TransitionKind.LOCATION,
                event.user_id,
                event.display_name,
                result.previous,
                result.current,
                context,
            )
        )

    def _handle_online(self, event: FriendOnlineEvent) -> None:
        _logger.info("Friend online event: %s (%s)", event.display_name, event.user_id)
        self._store.update_display_name(event.user_id, event.display_name)
        self._enqueue(_Notification(TransitionKind.ONLINE, event.user_id, event.display_name, None, None))

    def _handle_offline(self, event: FriendOfflineEvent) -> None:
        display_name = self._store.get_display_name(event.user_id) or event.user_id
        _logger.info("Friend offline event: %s (%s)", display_name, event.user_id)
        result = self._store.update(event.user_id, display_name, None)
        self._enqueue(_Notification(TransitionKind.OFFLINE, event.user_id, display_name, result.previous, None))

    # ------------------------------------------------------------------
    # Notification worker
    # ------------------------------------------------------------------

    def _enqueue(self, notification: _Notification) -> None:
        self._queue.put_nowait(notification)
        self._ensure_worker()

    def _ensure_worker(self) -> None:
        if self._worker is not None and not self._worker.done():
            return
        self._worker = asyncio.create_task(self._notify_loop(), name="vrcwatch-notifier")

    async def _notify_loop(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                await self._notifier.notify_transition(
                    item.kind,
                    item.entity_id,
                    item.display_name,
                    item.previous,
                    item.current,
                    item.context,
                )
            except Exception:
                _logger.exception("Error sending %s notification for %s", item.kind.value, item.entity_id)
            finally:
                self._queue.task_done()
