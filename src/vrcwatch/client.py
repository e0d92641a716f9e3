"""High-level async client for the VRChat REST API."""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any

import aiohttp

from vrcwatch._api import auth as _auth_api
from vrcwatch._api import users as _users_api
from vrcwatch._constants import API_BASE_URL
from vrcwatch._crypto.totp import generate_totp
from vrcwatch._transport import VrcTransport
from vrcwatch.config import WatchConfig
from vrcwatch.exceptions import VrcAuthenticationError, VrcWatchError
from vrcwatch.models.user import CurrentUser, TwoFactorChallenge, UserInfo

_logger = logging.getLogger(__name__)

AUTH_COOKIE = "auth"

CodePrompt = Callable[[str], Awaitable[str]]


class TerminalPrompt:
    """Read two-factor codes from the terminal without blocking the event loop.

    The read runs in an executor thread, which cannot be interrupted. When a
    login is cancelled while waiting (for example by the connect deadline),
    the read stays in flight and the next prompt awaits that same read
    instead of starting a second one on the same stdin.
    """

    def __init__(self, read_line: Callable[[str], str] = input, *, require_tty: bool = True) -> None:
        self._read_line = read_line
        self._require_tty = require_tty
        self._pending: asyncio.Future[str] | None = None

    async def __call__(self, message: str) -> str:
        if self._require_tty and (not sys.stdin or not sys.stdin.isatty()):
            raise VrcAuthenticationError("Two-factor code required but no terminal is attached")
        loop = asyncio.get_running_loop()
        pending = self._pending
        if pending is not None and not pending.done() and pending.get_loop() is loop:
            _logger.info("Still waiting for the two-factor code entered at the previous prompt")
        else:
            if pending is not None and pending.done():
                _logger.debug("Previous two-factor read finished unclaimed, reading again")
            pending = loop.run_in_executor(None, self._read_line, message)
            self._pending = pending
        # shield keeps the read alive if this call is cancelled.
        answer = await asyncio.shield(pending)
        self._pending = None
        return answer.strip()


prompt_terminal = TerminalPrompt()


class VrcClient:
    """Async client for the VRChat API.

    Usage::

        async with VrcClient(config) as client:
            await client.login()
            user = await client.get_user("usr_…")
    """

    def __init__(
        self,
        config: WatchConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        base_url: str = API_BASE_URL,
        prompt: CodePrompt | None = prompt_terminal,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._base_url = base_url
        self._prompt = prompt
        self._transport: VrcTransport | None = None
        self._current_user: CurrentUser | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> VrcClient:
        await self.open()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def open(self) -> None:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession(cookie_jar=aiohttp.CookieJar())
        self._transport = VrcTransport(self._http_session, base_url=self._base_url)

    async def close(self) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
        self._http_session = None
        self._transport = None

    @property
    def http_session(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            raise VrcWatchError("Client not initialized. Use 'async with VrcClient(...) as client:'")
        return self._http_session

    @property
    def current_user(self) -> CurrentUser | None:
        return self._current_user

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def login(self) -> CurrentUser:
        """Restore the saved session or log in, answering two-factor if asked.

        Raises
        ------
        VrcAuthenticationError
            If the credentials or the second factor are rejected.
        """
        transport = self._require_transport()

        if transport.load_cookies(self._config.cookie_file):
            _logger.info("Checking existing session...")
            try:
                restored = await _auth_api.fetch_current_user(transport)
            except VrcAuthenticationError:
                _logger.info("Stored session rejected, logging in again")
                transport.cookie_jar.clear()
            else:
                if isinstance(restored, CurrentUser):
                    _logger.info("Session restored: %s", restored.display_name)
                    self._current_user = restored
                    return restored

        _logger.info("No valid session, logging in...")
        basic = _auth_api.build_basic_auth(self._config.username, self._config.password)
        result = await _auth_api.fetch_current_user(transport, auth=basic)

        if isinstance(result, TwoFactorChallenge):
            await self._complete_two_factor(result)
            result = await _auth_api.fetch_current_user(transport)
            if not isinstance(result, CurrentUser):
                raise VrcAuthenticationError("Login failed: two-factor authentication still required")

        _logger.info("Logged in as %s", result.display_name)
        self._current_user = result
        transport.save_cookies(self._config.cookie_file)
        return result

    async def _complete_two_factor(self, challenge: TwoFactorChallenge) -> None:
        transport = self._require_transport()
        methods = {method.lower() for method in challenge.requires_two_factor_auth}

        if self._config.totp_secret and "totp" in methods:
            _logger.info("Answering two-factor challenge with TOTP")
            await _auth_api.verify_two_factor(transport, "totp", generate_totp(self._config.totp_secret))
            return

        if self._prompt is None:
            raise VrcAuthenticationError("Two-factor authentication required but no TOTP secret is configured")

        method = "emailotp" if "emailotp" in methods else "totp"
        code = await self._prompt("Enter 2FA code: ")
        await _auth_api.verify_two_factor(transport, method, code)

    def auth_token(self) -> str | None:
        """The ``auth`` cookie used to authenticate the pipeline socket."""
        return self._require_transport().cookie(AUTH_COOKIE)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_user(self, user_id: str) -> UserInfo | None:
        return await _users_api.get_user(self._require_transport(), user_id)

    async def is_friend(self, user_id: str) -> bool:
        status = await _users_api.get_friend_status(self._require_transport(), user_id)
        return status.is_friend

    async def get_friend_ids(self) -> list[str]:
        return await _users_api.get_friend_ids(self._require_transport())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_transport(self) -> VrcTransport:
        if self._transport is None:
            raise VrcWatchError("Client not initialized. Use 'async with VrcClient(...) as client:'")
        return self._transport
