"""vrcwatch - Watch VRChat friends' locations and post changes to Discord."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("vrcwatch")
except PackageNotFoundError:
    __version__ = "0+local"
from vrcwatch.app import WatchApp
from vrcwatch.backoff import ExponentialBackoff, FixedCooldown
from vrcwatch.client import VrcClient
from vrcwatch.config import WatchConfig
from vrcwatch.exceptions import (
    MalformedEventError,
    PersistenceError,
    VrcAuthenticationError,
    VrcConfigError,
    VrcConnectTimeoutError,
    VrcTransportError,
    VrcWatchError,
)
from vrcwatch.models import (
    FriendLocationEvent,
    FriendOfflineEvent,
    FriendOnlineEvent,
    TransitionContext,
    TransitionKind,
    UserInfo,
)
from vrcwatch.notifier import DiscordNotifier
from vrcwatch.state.store import EntityRecord, StateDiffStore, TransitionResult
from vrcwatch.supervisor import ConnectionState, ConnectionSupervisor
from vrcwatch.watchdog import HealthWatchdog

__all__ = [
    "__version__",
    "ConnectionState",
    "ConnectionSupervisor",
    "DiscordNotifier",
    "EntityRecord",
    "ExponentialBackoff",
    "FixedCooldown",
    "FriendLocationEvent",
    "FriendOfflineEvent",
    "FriendOnlineEvent",
    "HealthWatchdog",
    "MalformedEventError",
    "PersistenceError",
    "StateDiffStore",
    "TransitionContext",
    "TransitionKind",
    "TransitionResult",
    "UserInfo",
    "VrcAuthenticationError",
    "VrcClient",
    "VrcConfigError",
    "VrcConnectTimeoutError",
    "VrcTransportError",
    "VrcWatchError",
    "WatchApp",
]
