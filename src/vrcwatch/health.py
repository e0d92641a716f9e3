"""Local HTTP status endpoint.

``GET /health`` answers 200 while the pipeline is connected and 503
otherwise, with the connection state and the last event time as JSON.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol

from aiohttp import web

from vrcwatch.supervisor import ConnectionState

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class StatusSource(Protocol):
    @property
    def state(self) -> ConnectionState: ...

    @property
    def last_event_time(self) -> datetime | None: ...


def build_health_payload(source: StatusSource, now: datetime) -> tuple[int, dict[str, str | None]]:
    state = source.state
    last_event = source.last_event_time
    healthy = state is ConnectionState.CONNECTED
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "connectionState": state.value,
        "lastEventTime": last_event.isoformat() if last_event is not None else None,
        "timestamp": now.isoformat(),
    }
    return (200 if healthy else 503), body


class HealthServer:
    def __init__(
        self,
        source: StatusSource,
        *,
        host: str = "127.0.0.1",
        port: int = 3000,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._source = source
        self._host = host
        self._port = port
        self._clock = clock
        self._runner: web.AppRunner | None = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._handle_health)
        return app

    async def _handle_health(self, _request: web.Request) -> web.Response:
        status, body = build_health_payload(self._source, self._clock())
        return web.json_response(body, status=status)

    async def start(self) -> None:
        runner = web.AppRunner(self.build_app(), access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self._host, self._port)
        await site.start()
        self._runner = runner
        _logger.info("Health check server listening on http://%s:%d/health", self._host, self._port)

    async def stop(self) -> None:
        runner = self._runner
        self._runner = None
        if runner is not None:
            await runner.cleanup()
            _logger.info("Health check server stopped")
