"""Scrub secrets out of values before they are logged.

vrcwatch handles account passwords, TOTP secrets, auth cookies and webhook
URLs; none of those may appear in a log line.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

REDACTED = "<redacted>"
MAX_DEPTH = 20

_SECRET_KEYS: frozenset[str] = frozenset(
    {
        "auth",
        "authtoken",
        "authorization",
        "code",
        "cookie",
        "password",
        "token",
        "totpsecret",
        "webhookurl",
    }
)


def _is_secret_key(key: object) -> bool:
    # authToken, auth_token and auth-token all match.
    folded = str(key).lower().replace("_", "").replace("-", "")
    return folded in _SECRET_KEYS


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a log-safe copy of *value*.

    Mapping entries under secret-looking keys are replaced, long strings are
    truncated and raw bytes are summarised by length.
    """
    if _depth > MAX_DEPTH:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return value if len(value) <= max_string else f"{value[:max_string]}…<truncated>"
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    def nested(item: Any) -> Any:
        return redact_for_log(item, max_string=max_string, _depth=_depth + 1)

    if isinstance(value, Mapping):
        return {str(key): REDACTED if _is_secret_key(key) else nested(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [nested(item) for item in value]
    return repr(value)


def redact_url(url: str) -> str:
    """Hide the last path segment, where webhook tokens live."""
    base, sep, _tail = url.rpartition("/")
    if not sep:
        return REDACTED
    return f"{base}/{REDACTED}"
