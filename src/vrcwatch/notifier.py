"""Discord webhook notifications for location and presence transitions."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

import aiohttp

from vrcwatch._constants import USER_AGENT
from vrcwatch._redact import redact_url
from vrcwatch.models.transition import TransitionContext, TransitionKind

_logger = logging.getLogger(__name__)

COLORS: dict[TransitionKind, int] = {
    TransitionKind.LOCATION: 0x00AAFF,
    TransitionKind.ONLINE: 0x00FF00,
    TransitionKind.OFFLINE: 0x808080,
}

TITLES: dict[TransitionKind, str] = {
    TransitionKind.LOCATION: "\U0001f4cd Location changed",
    TransitionKind.ONLINE: "\U0001f7e2 Online",
    TransitionKind.OFFLINE: "⚫ Offline",
}

MAX_ATTEMPTS = 3
RETRY_BASE_DELAY = 1.0


def _utcnow() -> datetime:
    return datetime.now(UTC)


def build_embed(
    kind: TransitionKind,
    display_name: str,
    previous: str | None,
    current: str | None,
    context: TransitionContext | None = None,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Build the Discord embed for one transition."""
    fields: list[dict[str, Any]] = [{"name": "User", "value": display_name, "inline": True}]

    if kind is TransitionKind.LOCATION:
        fields.append({"name": "Previous", "value": previous or "N/A", "inline": True})
        fields.append({"name": "Current", "value": current or "N/A", "inline": True})
        if context is not None and context.world_name:
            fields.append({"name": "World", "value": context.world_name, "inline": False})

    embed: dict[str, Any] = {
        "title": TITLES[kind],
        "color": COLORS[kind],
        "fields": fields,
        "timestamp": (now or _utcnow()).isoformat(),
    }
    if kind is TransitionKind.LOCATION and context is not None and context.thumbnail_url:
        embed["thumbnail"] = {"url": context.thumbnail_url}
    return embed


class DiscordNotifier:
    """Send transition embeds to a Discord webhook.

    Delivery is retried on rate limiting (HTTP 429, honouring
    ``retry_after``) and on server or network errors, up to
    ``max_attempts``. A notification that still fails is logged and dropped;
    it never raises into the caller.
    """

    def __init__(
        self,
        webhook_url: str,
        *,
        session: aiohttp.ClientSession | None = None,
        max_attempts: int = MAX_ATTEMPTS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._webhook_url = webhook_url
        self._external_session = session is not None
        self._http_session = session
        self._max_attempts = max_attempts
        self._sleep = sleep

    async def close(self) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
        self._http_session = None

    def _session(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        return self._http_session

    async def notify_transition(
        self,
        kind: TransitionKind,
        entity_id: str,
        display_name: str,
        previous: str | None,
        current: str | None,
        context: TransitionContext | None = None,
    ) -> bool:
        """Deliver one transition. Returns whether Discord accepted it."""
        _logger.info(
            "Notifying %s: %s (%s) %s -> %s",
            kind.value,
            display_name,
            entity_id,
            previous,
            current,
        )
        embed = build_embed(kind, display_name, previous, current, context)
        return await self.send_embed(embed)

    async def send_embed(self, embed: dict[str, Any]) -> bool:
        payload = {"embeds": [embed]}
        headers = {"user-agent": USER_AGENT}

        for attempt in range(1, self._max_attempts + 1):
            delay: float | None
            try:
                async with self._session().post(self._webhook_url, json=payload, headers=headers) as resp:
                    if 200 <= resp.status < 300:
                        return True
                    body = await resp.text()
                    delay = await self._retry_delay(resp, attempt)
                    _logger.warning(
                        "Discord webhook %s returned HTTP %d (attempt %d/%d): %s",
                        redact_url(self._webhook_url),
                        resp.status,
                        attempt,
                        self._max_attempts,
                        body[:200],
                    )
            except aiohttp.ClientError as exc:
                delay = RETRY_BASE_DELAY * 2 ** (attempt - 1)
                _logger.warning(
                    "Discord webhook request failed (attempt %d/%d): %s",
                    attempt,
                    self._max_attempts,
                    exc,
                )

            if delay is None or attempt == self._max_attempts:
                break
            await self._sleep(delay)

        _logger.error("Failed to send Discord notification")
        return False

    @staticmethod
    async def _retry_delay(resp: aiohttp.ClientResponse, attempt: int) -> float | None:
        """Seconds to wait before retrying, or ``None`` if the failure is final."""
        if resp.status == 429:
            retry_after: Any = None
            try:
                body = await resp.json(content_type=None)
            except (aiohttp.ContentTypeError, ValueError):
                body = None
            if isinstance(body, dict):
                retry_after = body.get("retry_after")
            if retry_after is None:
                retry_after = resp.headers.get("Retry-After")
            try:
                return max(float(retry_after), 0.0)
            except (TypeError, ValueError):
                return RETRY_BASE_DELAY * 2 ** (attempt - 1)
        if resp.status >= 500:
            return RETRY_BASE_DELAY * 2 ** (attempt - 1)
        return None
