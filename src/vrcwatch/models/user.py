"""User models returned by the VRChat REST API."""

from __future__ import annotations

from pydantic import Field

from vrcwatch.models._base import OptionalLocation, VrcBaseModel


class CurrentUser(VrcBaseModel):
    """The logged-in account (``GET /auth/user``)."""

    id: str
    display_name: str


class UserInfo(VrcBaseModel):
    """Public view of another user (``GET /users/{userId}``)."""

    id: str
    display_name: str
    location: OptionalLocation = None
    """Current instance location, ``None`` when offline or hidden."""
    status: str = ""
    world_id: str | None = None


class FriendStatus(VrcBaseModel):
    """Friendship flags (``GET /user/{userId}/friendStatus``)."""

    is_friend: bool = False
    outgoing_request: bool = False
    incoming_request: bool = False


class TwoFactorChallenge(VrcBaseModel):
    """Login response asking for a second factor."""

    requires_two_factor_auth: list[str] = Field(default_factory=list)
