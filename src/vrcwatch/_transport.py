"""HTTP transport for the VRChat REST API with cookie persistence."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol

import aiohttp
from aiohttp.abc import AbstractCookieJar

from vrcwatch._constants import API_BASE_URL, USER_AGENT
from vrcwatch.exceptions import VrcAuthenticationError, VrcTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Endpoint modules only depend on this protocol so tests can pass small
    fakes instead of a live HTTP session.
    """

    async def request_json(
        self,
        method: str,
        endpoint: str,
        *,
        params: Mapping[str, Any] | None = None,
        payload: Mapping[str, Any] | None = None,
        auth: aiohttp.BasicAuth | None = None,
    ) -> Any:
        ...


class VrcTransport:
    """JSON-over-HTTP transport sharing one cookie jar across requests."""

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        *,
        base_url: str = API_BASE_URL,
    ) -> None:
        self._http = http_session
        self._base_url = base_url.rstrip("/")

    @property
    def cookie_jar(self) -> AbstractCookieJar:
        return self._http.cookie_jar

    def cookie(self, name: str) -> str | None:
        """Return the value of a stored cookie, if present."""
        for morsel in self._http.cookie_jar:
            if morsel.key == name and morsel.value:
                return morsel.value
        return None

    def load_cookies(self, path: str | Path) -> bool:
        """Restore cookies saved by :meth:`save_cookies`. Returns whether any were loaded."""
        jar = self._http.cookie_jar
        file_path = Path(path)
        if not file_path.exists() or not isinstance(jar, aiohttp.CookieJar):
            return False
        try:
            jar.load(file_path)
        except Exception:  # noqa: BLE001
            _logger.warning("Could not load cookies from %s, ignoring", file_path, exc_info=True)
            jar.clear()
            return False
        return len(jar) > 0

    def save_cookies(self, path: str | Path) -> None:
        jar = self._http.cookie_jar
        if not isinstance(jar, aiohttp.CookieJar):
            return
        file_path = Path(path)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            jar.save(file_path)
        except OSError:
            _logger.warning("Could not save cookies to %s", file_path, exc_info=True)

    async def request_json(
        self,
        method: str,
        endpoint: str,
        *,
        params: Mapping[str, Any] | None = None,
        payload: Mapping[str, Any] | None = None,
        auth: aiohttp.BasicAuth | None = None,
    ) -> Any:
        """Send a request and decode the JSON reply.

        Raises
        ------
        VrcAuthenticationError
            On HTTP 401.
        VrcTransportError
            On any other non-2xx status, network failure, timeout or invalid JSON.
        """
        url = f"{self._base_url}{endpoint}"
        headers = {"user-agent": USER_AGENT, "accept": "application/json"}

        _logger.debug("%s %s", method, url)

        try:
            async with self._http.request(
                method,
                url,
                params=dict(params) if params else None,
                json=dict(payload) if payload is not None else None,
                headers=headers,
                auth=auth,
            ) as resp:
                text = await resp.text()
                status = resp.status
        except aiohttp.ClientError as exc:
            raise VrcTransportError(f"Request to {endpoint} failed: {exc}", endpoint=endpoint) from exc
        except TimeoutError as exc:
            raise VrcTransportError(f"Request to {endpoint} timed out", endpoint=endpoint) from exc

        if status == 401:
            raise VrcAuthenticationError(
                f"HTTP 401 Unauthorized from {endpoint}: {_error_message(text)}",
                status_code=status,
                endpoint=endpoint,
            )
        if not 200 <= status < 300:
            raise VrcTransportError(
                f"HTTP {status} from {endpoint}: {_error_message(text)}",
                status_code=status,
                endpoint=endpoint,
            )

        try:
            return json.loads(text) if text else {}
        except json.JSONDecodeError as exc:
            raise VrcTransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            ) from exc


def _error_message(text: str) -> str:
    """Pull ``error.message`` out of a VRChat error body, else a truncated body."""
    try:
        body = json.loads(text)
    except json.JSONDecodeError:
        return text[:200]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
    return text[:200]
