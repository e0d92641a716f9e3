"""Pipeline event shapes and the decoding boundary.

The pipeline delivers loosely-typed JSON. :func:`decode_event` turns a
``(kind, payload)`` pair into exactly one of the three event models below or
raises :class:`~vrcwatch.exceptions.MalformedEventError`; nothing past this
module sees an undecoded payload.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import ValidationError

from vrcwatch._constants import EVENT_FRIEND_LOCATION, EVENT_FRIEND_OFFLINE, EVENT_FRIEND_ONLINE
from vrcwatch.exceptions import MalformedEventError
from vrcwatch.models._base import VrcBaseModel


class EventUser(VrcBaseModel):
    id: str
    display_name: str
    current_avatar_thumbnail_image_url: str | None = None


class WorldInfo(VrcBaseModel):
    id: str
    name: str
    thumbnail_image_url: str | None = None


class FriendLocationEvent(VrcBaseModel):
    """A friend moved to a new instance."""

    kind: Literal["friend-location"] = EVENT_FRIEND_LOCATION
    user_id: str
    user: EventUser
    location: str
    world: WorldInfo | None = None

    @property
    def display_name(self) -> str:
        return self.user.display_name


class FriendOnlineEvent(VrcBaseModel):
    """A friend came online."""

    kind: Literal["friend-online"] = EVENT_FRIEND_ONLINE
    user_id: str
    user: EventUser

    @property
    def display_name(self) -> str:
        return self.user.display_name


class FriendOfflineEvent(VrcBaseModel):
    """A friend went offline. The payload carries no display name."""

    kind: Literal["friend-offline"] = EVENT_FRIEND_OFFLINE
    user_id: str


FriendEvent = FriendLocationEvent | FriendOnlineEvent | FriendOfflineEvent

_EVENT_MODELS: dict[str, type[FriendLocationEvent] | type[FriendOnlineEvent] | type[FriendOfflineEvent]] = {
    EVENT_FRIEND_LOCATION: FriendLocationEvent,
    EVENT_FRIEND_ONLINE: FriendOnlineEvent,
    EVENT_FRIEND_OFFLINE: FriendOfflineEvent,
}

EVENT_KINDS: tuple[str, ...] = tuple(_EVENT_MODELS)


def decode_event(kind: str, payload: Any) -> FriendEvent:
    """Validate *payload* as the event shape registered for *kind*."""
    model = _EVENT_MODELS.get(kind)
    if model is None:
        raise MalformedEventError(f"Unknown event kind: {kind!r}", kind=kind)
    if not isinstance(payload, dict):
        raise MalformedEventError(f"{kind} payload is not an object", kind=kind)
    # The tag comes from the transport, not the payload.
    body = {key: value for key, value in payload.items() if key != "kind"}
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        raise MalformedEventError(
            f"Invalid {kind} payload: {exc.error_count()} validation error(s)",
            kind=kind,
        ) from exc
