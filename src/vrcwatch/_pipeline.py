"""Internal pipeline websocket runtime, frame parsing and listener dispatch."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import aiohttp

from vrcwatch._constants import EVENT_CLOSE, EVENT_ERROR, PIPELINE_URL, USER_AGENT
from vrcwatch._redact import redact_for_log
from vrcwatch.exceptions import MalformedEventError

Listener = Callable[[Any], None]


@dataclass(frozen=True)
class PipelineMessage:
    """One decoded pipeline frame."""

    kind: str
    content: Any


def decode_pipeline_frame(text: str) -> PipelineMessage:
    """Decode ``{"type": kind, "content": …}``.

    ``content`` is usually itself a JSON document encoded as a string; it is
    decoded when it looks like one and passed through unchanged otherwise.
    """
    try:
        envelope = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedEventError("Pipeline frame is not JSON") from exc
    if not isinstance(envelope, dict):
        raise MalformedEventError("Pipeline frame is not an object")
    kind = envelope.get("type")
    if not isinstance(kind, str) or not kind:
        raise MalformedEventError("Pipeline frame has no type")

    content = envelope.get("content")
    if isinstance(content, str) and content[:1] in ("{", "["):
        try:
            content = json.loads(content)
        except json.JSONDecodeError as exc:
            raise MalformedEventError(f"{kind} content is not valid JSON", kind=kind) from exc
    return PipelineMessage(kind=kind, content=content)


class Pipeline:
    """Websocket runtime that dispatches decoded frames to listeners.

    Listeners are plain callables run on the event loop in frame order.
    ``close`` fires when the socket ends without :meth:`close` being called;
    ``error`` fires on transport errors.
    """

    def __init__(self, *, heartbeat: float = 30.0, logger: logging.Logger | None = None) -> None:
        self._heartbeat = heartbeat
        self._logger = logger or logging.getLogger(__name__)
        self._listeners: dict[str, list[Listener]] = {}
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed and not self._closing

    def on(self, kind: str, handler: Listener) -> None:
        self._listeners.setdefault(kind, []).append(handler)

    def remove_all_listeners(self, kind: str | None = None) -> None:
        if kind is None:
            self._listeners.clear()
        else:
            self._listeners.pop(kind, None)

    def listener_count(self, kind: str) -> int:
        return len(self._listeners.get(kind, ()))

    def emit(self, kind: str, payload: Any = None) -> None:
        for handler in list(self._listeners.get(kind, ())):
            try:
                handler(payload)
            except Exception:
                self._logger.exception("Pipeline listener for %s failed", kind)

    async def open(self, http_session: aiohttp.ClientSession, auth_token: str, *, url: str = PIPELINE_URL) -> None:
        """Connect and start the reader task."""
        self._logger.debug("Pipeline connect requested url=%s", url)
        self._ws = await http_session.ws_connect(
            url,
            params={"authToken": auth_token},
            headers={"user-agent": USER_AGENT},
            heartbeat=self._heartbeat,
        )
        self._closing = False
        self._reader = asyncio.create_task(self._read_loop(self._ws), name="vrcwatch-pipeline-reader")
        self._logger.debug("Pipeline reader started")

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._handle_text(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    if not self._closing:
                        self.emit(EVENT_ERROR, ws.exception())
                    return
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if not self._closing:
                self._logger.debug("Pipeline reader failed", exc_info=True)
                self.emit(EVENT_ERROR, exc)
            return

        if not self._closing:
            self.emit(EVENT_CLOSE, ws.close_code)

    def _handle_text(self, text: str) -> None:
        try:
            message = decode_pipeline_frame(text)
        except MalformedEventError:
            self._logger.warning("Dropping undecodable pipeline frame: %s", redact_for_log(text, max_string=200))
            return
        self._logger.debug("Pipeline event kind=%s", message.kind)
        self.emit(message.kind, message.content)

    async def close(self) -> None:
        """Close the socket and stop the reader without firing ``close``."""
        self._closing = True
        ws = self._ws
        reader = self._reader
        self._ws = None
        self._reader = None
        if ws is not None:
            await ws.close()
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader
        self._logger.debug("Pipeline closed")
