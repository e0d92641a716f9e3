"""Authentication endpoints.

Endpoints:
  - GET  /auth/user
  - POST /auth/twofactorauth/{method}/verify
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import aiohttp
from pydantic import ValidationError

from vrcwatch._redact import redact_for_log
from vrcwatch._transport import Transport
from vrcwatch.exceptions import VrcAuthenticationError, VrcTransportError
from vrcwatch.models.user import CurrentUser, TwoFactorChallenge

_logger = logging.getLogger(__name__)

TWO_FACTOR_METHODS: frozenset[str] = frozenset({"totp", "otp", "emailotp"})


def build_basic_auth(username: str, password: str) -> aiohttp.BasicAuth:
    """VRChat expects both parts URL-encoded before base64."""
    return aiohttp.BasicAuth(quote(username, safe=""), quote(password, safe=""))


def parse_current_user_response(data: Any) -> CurrentUser | TwoFactorChallenge:
    if not isinstance(data, dict):
        raise VrcTransportError("/auth/user response is not an object", endpoint="/auth/user")
    if "requiresTwoFactorAuth" in data:
        return TwoFactorChallenge.model_validate(data)
    try:
        return CurrentUser.model_validate(data)
    except ValidationError as exc:
        _logger.debug("Unexpected /auth/user body: %s", redact_for_log(data))
        raise VrcAuthenticationError(
            "Login rejected: /auth/user did not return a user",
            endpoint="/auth/user",
        ) from exc


async def fetch_current_user(
    transport: Transport,
    *,
    auth: aiohttp.BasicAuth | None = None,
) -> CurrentUser | TwoFactorChallenge:
    """Return the logged-in user, or the pending two-factor challenge."""
    data = await transport.request_json("GET", "/auth/user", auth=auth)
    return parse_current_user_response(data)


async def verify_two_factor(transport: Transport, method: str, code: str) -> None:
    """Submit a second-factor code.

    Raises
    ------
    VrcAuthenticationError
        If the method is unsupported or the code is not accepted.
    """
    normalized = method.strip().lower()
    if normalized not in TWO_FACTOR_METHODS:
        raise VrcAuthenticationError(f"Unsupported two-factor method: {method}")
    endpoint = f"/auth/twofactorauth/{normalized}/verify"
    data = await transport.request_json("POST", endpoint, payload={"code": code})
    if not isinstance(data, dict) or not data.get("verified"):
        raise VrcAuthenticationError("Two-factor authentication failed: code not verified", endpoint=endpoint)
