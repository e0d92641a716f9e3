"""Data models for VRChat payloads and transitions."""

from vrcwatch.models._base import OptionalLocation, VrcBaseModel, normalize_location
from vrcwatch.models.events import (
    EVENT_KINDS,
    EventUser,
    FriendEvent,
    FriendLocationEvent,
    FriendOfflineEvent,
    FriendOnlineEvent,
    WorldInfo,
    decode_event,
)
from vrcwatch.models.transition import TransitionContext, TransitionKind
from vrcwatch.models.user import CurrentUser, FriendStatus, TwoFactorChallenge, UserInfo

__all__ = [
    "EVENT_KINDS",
    "CurrentUser",
    "EventUser",
    "FriendEvent",
    "FriendLocationEvent",
    "FriendOfflineEvent",
    "FriendOnlineEvent",
    "FriendStatus",
    "OptionalLocation",
    "TransitionContext",
    "TransitionKind",
    "TwoFactorChallenge",
    "UserInfo",
    "VrcBaseModel",
    "WorldInfo",
    "decode_event",
    "normalize_location",
]
