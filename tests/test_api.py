from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import aiohttp
import pytest

from vrcwatch._api import auth as auth_api
from vrcwatch._api import users as users_api
from vrcwatch.exceptions import VrcAuthenticationError, VrcTransportError
from vrcwatch.models.user import CurrentUser, TwoFactorChallenge


class _FakeTransport:
    """Returns scripted replies keyed by ``(method, endpoint)``."""

    def __init__(self, replies: dict[tuple[str, str], Any]) -> None:
        self.replies = replies
        self.calls: list[dict[str, Any]] = []

    async def request_json(
        self,
        method: str,
        endpoint: str,
        *,
        params: Mapping[str, Any] | None = None,
        payload: Mapping[str, Any] | None = None,
        auth: aiohttp.BasicAuth | None = None,
    ) -> Any:
        self.calls.append({"method": method, "endpoint": endpoint, "params": params, "payload": payload, "auth": auth})
        reply = self.replies[(method, endpoint)]
        if isinstance(reply, list) and reply and isinstance(reply[0], list):
            reply = reply.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def test_basic_auth_is_url_encoded() -> None:
    auth = auth_api.build_basic_auth("me@example.com", "p@ss word")

    assert auth.login == "me%40example.com"
    assert auth.password == "p%40ss%20word"


@pytest.mark.asyncio
async def test_fetch_current_user_returns_user() -> None:
    transport = _FakeTransport({("GET", "/auth/user"): {"id": "usr_me", "displayName": "Watcher", "friends": []}})

    result = await auth_api.fetch_current_user(transport)

    assert isinstance(result, CurrentUser)
    assert result.display_name == "Watcher"


@pytest.mark.asyncio
async def test_fetch_current_user_returns_two_factor_challenge() -> None:
    transport = _FakeTransport({("GET", "/auth/user"): {"requiresTwoFactorAuth": ["totp", "otp"]}})

    result = await auth_api.fetch_current_user(transport, auth=auth_api.build_basic_auth("u", "p"))

    assert isinstance(result, TwoFactorChallenge)
    assert result.requires_two_factor_auth == ["totp", "otp"]
    assert transport.calls[0]["auth"] is not None


@pytest.mark.asyncio
async def test_fetch_current_user_rejects_unexpected_body() -> None:
    transport = _FakeTransport({("GET", "/auth/user"): {"ok": True}})

    with pytest.raises(VrcAuthenticationError):
        await auth_api.fetch_current_user(transport)


@pytest.mark.asyncio
async def test_verify_two_factor_posts_code() -> None:
    transport = _FakeTransport({("POST", "/auth/twofactorauth/totp/verify"): {"verified": True}})

    await auth_api.verify_two_factor(transport, "TOTP", "123456")

    assert transport.calls[0]["payload"] == {"code": "123456"}


@pytest.mark.asyncio
async def test_verify_two_factor_raises_when_not_verified() -> None:
    transport = _FakeTransport({("POST", "/auth/twofactorauth/emailotp/verify"): {"verified": False}})

    with pytest.raises(VrcAuthenticationError):
        await auth_api.verify_two_factor(transport, "emailotp", "000000")


@pytest.mark.asyncio
async def test_verify_two_factor_rejects_unknown_method() -> None:
    transport = _FakeTransport({})

    with pytest.raises(VrcAuthenticationError):
        await auth_api.verify_two_factor(transport, "sms", "000000")
    assert transport.calls == []


@pytest.mark.asyncio
async def test_get_user_maps_404_to_none() -> None:
    transport = _FakeTransport(
        {("GET", "/users/usr_gone"): VrcTransportError("HTTP 404 from /users/usr_gone", status_code=404)}
    )

    assert await users_api.get_user(transport, "usr_gone") is None


@pytest.mark.asyncio
async def test_get_user_propagates_other_errors() -> None:
    transport = _FakeTransport(
        {("GET", "/users/usr_a"): VrcTransportError("HTTP 500 from /users/usr_a", status_code=500)}
    )

    with pytest.raises(VrcTransportError):
        await users_api.get_user(transport, "usr_a")


@pytest.mark.asyncio
async def test_get_user_parses_location() -> None:
    transport = _FakeTransport(
        {
            ("GET", "/users/usr_a"): {
                "id": "usr_a",
                "displayName": "Alice",
                "location": "wrld_1:1~hidden(usr_a)",
                "status": "join me",
                "worldId": "wrld_1",
            }
        }
    )

    user = await users_api.get_user(transport, "usr_a")

    assert user is not None
    assert user.location == "wrld_1:1~hidden(usr_a)"
    assert user.status == "join me"
    assert user.world_id == "wrld_1"


@pytest.mark.asyncio
async def test_get_user_rejects_payload_without_display_name() -> None:
    transport = _FakeTransport({("GET", "/users/usr_a"): {"id": "usr_a", "location": "wrld_x:1"}})

    with pytest.raises(VrcTransportError) as excinfo:
        await users_api.get_user(transport, "usr_a")

    assert excinfo.value.endpoint == "/users/usr_a"
    assert "Unexpected user payload" in str(excinfo.value)


@pytest.mark.asyncio
async def test_get_friend_status_rejects_malformed_payload() -> None:
    transport = _FakeTransport({("GET", "/user/usr_a/friendStatus"): {"isFriend": "perhaps"}})

    with pytest.raises(VrcTransportError):
        await users_api.get_friend_status(transport, "usr_a")


@pytest.mark.asyncio
async def test_get_friend_status() -> None:
    transport = _FakeTransport({("GET", "/user/usr_a/friendStatus"): {"isFriend": True, "incomingRequest": False}})

    status = await users_api.get_friend_status(transport, "usr_a")

    assert status.is_friend
    assert not status.outgoing_request


@pytest.mark.asyncio
async def test_get_friend_ids_follows_pagination() -> None:
    transport = _FakeTransport(
        {
            ("GET", "/auth/user/friends"): [
                [{"id": "usr_1"}, {"id": "usr_2"}],
                [{"id": "usr_3"}],
            ]
        }
    )

    ids = await users_api.get_friend_ids(transport, page_size=2)

    assert ids == ["usr_1", "usr_2", "usr_3"]
    assert [call["params"] for call in transport.calls] == [{"n": 2, "offset": 0}, {"n": 2, "offset": 2}]
