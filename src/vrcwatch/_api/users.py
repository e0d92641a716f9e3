"""User and friend endpoints.

Endpoints:
  - GET /users/{userId}
  - GET /user/{userId}/friendStatus
  - GET /auth/user/friends
"""

from __future__ import annotations

from urllib.parse import quote

from pydantic import ValidationError

from vrcwatch._transport import Transport
from vrcwatch.exceptions import VrcAuthenticationError, VrcTransportError
from vrcwatch.models.user import FriendStatus, UserInfo

FRIENDS_PAGE_SIZE = 100


async def get_user(transport: Transport, user_id: str) -> UserInfo | None:
    """Fetch a user's public profile; ``None`` if the user does not exist."""
    endpoint = f"/users/{quote(user_id, safe='')}"
    try:
        data = await transport.request_json("GET", endpoint)
    except VrcAuthenticationError:
        raise
    except VrcTransportError as exc:
        if exc.status_code == 404:
            return None
        raise
    if not isinstance(data, dict):
        return None
    try:
        return UserInfo.model_validate(data)
    except ValidationError as exc:
        raise VrcTransportError(f"Unexpected user payload: {exc}", endpoint=endpoint) from exc


async def get_friend_status(transport: Transport, user_id: str) -> FriendStatus:
    endpoint = f"/user/{quote(user_id, safe='')}/friendStatus"
    data = await transport.request_json("GET", endpoint)
    if not isinstance(data, dict):
        return FriendStatus()
    try:
        return FriendStatus.model_validate(data)
    except ValidationError as exc:
        raise VrcTransportError(f"Unexpected friend status payload: {exc}", endpoint=endpoint) from exc


async def get_friend_ids(transport: Transport, *, page_size: int = FRIENDS_PAGE_SIZE) -> list[str]:
    """Collect every friend id, following offset pagination."""
    friend_ids: list[str] = []
    offset = 0
    while True:
        data = await transport.request_json(
            "GET",
            "/auth/user/friends",
            params={"n": page_size, "offset": offset},
        )
        if not isinstance(data, list):
            break
        for friend in data:
            if isinstance(friend, dict) and isinstance(friend.get("id"), str):
                friend_ids.append(friend["id"])
        if len(data) < page_size:
            break
        offset += page_size
    return friend_ids
