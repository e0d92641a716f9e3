"""Internal constants shared across the library."""

API_BASE_URL = "https://api.vrchat.cloud/api/1"
PIPELINE_URL = "wss://pipeline.vrchat.cloud/"
USER_AGENT = "vrcwatch/0.1.0 (+https://github.com/vrcwatch/vrcwatch)"
DISCORD_WEBHOOK_PREFIX = "https://discord.com/api/webhooks/"

# ------------------------------------------------------------------
# Reconnect timing (seconds)
# ------------------------------------------------------------------

INITIAL_BACKOFF = 1.0
MAX_BACKOFF = 5 * 60.0
BACKOFF_CAP_EXPONENT = 10
AUTH_FAILURE_COOLDOWN = 30 * 60.0
CONNECT_TIMEOUT = 120.0

# ------------------------------------------------------------------
# Health watchdog (seconds)
# ------------------------------------------------------------------

HEALTH_CHECK_INTERVAL = 60.0
EVENT_STALE_THRESHOLD = 24 * 60 * 60.0

# ------------------------------------------------------------------
# Persistence
# ------------------------------------------------------------------

SAVE_DEBOUNCE = 1.0
DEFAULT_LOCATION_FILE = "data/user-locations.json"
DEFAULT_COOKIE_FILE = "data/vrchat-cookies.pickle"

# Location values the API uses for "not in any instance".
OFFLINE_LOCATIONS: frozenset[str] = frozenset({"", "offline"})

# Pipeline event kinds.
EVENT_FRIEND_LOCATION = "friend-location"
EVENT_FRIEND_ONLINE = "friend-online"
EVENT_FRIEND_OFFLINE = "friend-offline"
EVENT_CLOSE = "close"
EVENT_ERROR = "error"
