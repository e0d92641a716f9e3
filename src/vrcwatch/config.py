"""Application configuration for vrcwatch."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from typing import Any

from vrcwatch._constants import (
    AUTH_FAILURE_COOLDOWN,
    CONNECT_TIMEOUT,
    DEFAULT_COOKIE_FILE,
    DEFAULT_LOCATION_FILE,
    DISCORD_WEBHOOK_PREFIX,
    EVENT_STALE_THRESHOLD,
    HEALTH_CHECK_INTERVAL,
    INITIAL_BACKOFF,
    MAX_BACKOFF,
    SAVE_DEBOUNCE,
)
from vrcwatch._crypto.totp import parse_base32_secret
from vrcwatch.exceptions import VrcConfigError

_REQUIRED_ENV = (
    "VRCHAT_USERNAME",
    "VRCHAT_PASSWORD",
    "DISCORD_WEBHOOK_URL",
    "TARGET_USER_IDS",
)


def parse_user_ids(value: str) -> tuple[str, ...]:
    """Split a comma-separated id list, dropping blanks."""
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _env_float(env: Mapping[str, str], key: str, errors: list[str]) -> float | None:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError:
        errors.append(f"{key} must be a number, got {raw!r}")
        return None
    if value <= 0:
        errors.append(f"{key} must be positive, got {raw!r}")
        return None
    return value


@dataclasses.dataclass(frozen=True)
class WatchConfig:
    """Application configuration.

    Parameters
    ----------
    username : str
        VRChat account name or e-mail address.
    password : str
        VRChat account password.
    webhook_url : str
        Discord webhook that receives transition notifications.
    target_user_ids : tuple of str
        VRChat user ids (``usr_…``) to watch.
    totp_secret : str or None
        Base32 TOTP secret. When set, two-factor login is answered
        automatically; otherwise the code is prompted on a terminal.
    location_file : str
        Path of the JSON snapshot holding the last known locations.
    cookie_file : str
        Path where the VRChat session cookies are kept between runs.
    health_host : str
        Bind address of the local status endpoint.
    health_port : int
        Port of the local status endpoint.
    initial_backoff : float
        First reconnect delay in seconds.
    max_backoff : float
        Ceiling of the exponential reconnect delay in seconds.
    auth_failure_cooldown : float
        Fixed delay after an authentication failure, in seconds.
    connect_timeout : float
        Deadline for a single connect (login + pipeline open), in seconds.
    health_check_interval : float
        Period of the staleness watchdog, in seconds.
    stale_threshold : float
        Age of the last event after which a staleness warning is logged.
    save_debounce : float
        Quiet period before the snapshot is written, in seconds.
    """

    username: str
    password: str
    webhook_url: str
    target_user_ids: tuple[str, ...]
    totp_secret: str | None = None
    location_file: str = DEFAULT_LOCATION_FILE
    cookie_file: str = DEFAULT_COOKIE_FILE
    health_host: str = "127.0.0.1"
    health_port: int = 3000
    initial_backoff: float = INITIAL_BACKOFF
    max_backoff: float = MAX_BACKOFF
    auth_failure_cooldown: float = AUTH_FAILURE_COOLDOWN
    connect_timeout: float = CONNECT_TIMEOUT
    health_check_interval: float = HEALTH_CHECK_INTERVAL
    stale_threshold: float = EVENT_STALE_THRESHOLD
    save_debounce: float = SAVE_DEBOUNCE

    def is_target(self, user_id: str) -> bool:
        return user_id in self.target_user_ids

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, **overrides: Any) -> WatchConfig:
        """Create configuration from environment variables.

        Every problem is collected first and reported together in one
        :class:`~vrcwatch.exceptions.VrcConfigError`. Explicit keyword
        arguments take precedence over environment values.

        Parameters
        ----------
        env : Mapping, optional
            Mapping to read instead of :data:`os.environ`.
        **overrides
            Explicit field values.

        Returns
        -------
        WatchConfig
            Populated configuration.
        """
        source = os.environ if env is None else env
        errors: list[str] = []

        for key in _REQUIRED_ENV:
            if not source.get(key):
                errors.append(f"Missing required environment variable: {key}")

        target_ids: tuple[str, ...] = ()
        raw_ids = source.get("TARGET_USER_IDS")
        if raw_ids:
            target_ids = parse_user_ids(raw_ids)
            if not target_ids:
                errors.append("TARGET_USER_IDS must contain at least one user ID")

        totp_secret = source.get("VRCHAT_TOTP_SECRET") or None
        if totp_secret:
            try:
                parse_base32_secret(totp_secret)
            except VrcConfigError as exc:
                errors.append(f"VRCHAT_TOTP_SECRET: {exc}")

        webhook_url = source.get("DISCORD_WEBHOOK_URL", "")
        if webhook_url and not webhook_url.startswith(DISCORD_WEBHOOK_PREFIX):
            errors.append("DISCORD_WEBHOOK_URL must be a valid Discord webhook URL")

        config_kwargs: dict[str, Any] = {
            "username": source.get("VRCHAT_USERNAME", ""),
            "password": source.get("VRCHAT_PASSWORD", ""),
            "webhook_url": webhook_url,
            "target_user_ids": target_ids,
            "totp_secret": totp_secret,
        }

        _ENV_STR_MAP = {
            "LOCATION_FILE_PATH": "location_file",
            "VRCHAT_COOKIE_PATH": "cookie_file",
            "HEALTH_HOST": "health_host",
        }
        for env_key, field_name in _ENV_STR_MAP.items():
            val = source.get(env_key)
            if val:
                config_kwargs[field_name] = val

        port_env = source.get("HEALTH_PORT")
        if port_env:
            try:
                config_kwargs["health_port"] = int(port_env, 10)
            except ValueError:
                errors.append(f"HEALTH_PORT must be an integer, got {port_env!r}")

        _ENV_FLOAT_MAP = {
            "WATCH_CONNECT_TIMEOUT": "connect_timeout",
            "WATCH_HEALTH_CHECK_INTERVAL": "health_check_interval",
            "WATCH_STALE_THRESHOLD": "stale_threshold",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            value = _env_float(source, env_key, errors)
            if value is not None and field_name not in overrides:
                config_kwargs[field_name] = value

        config_kwargs.update(overrides)

        if errors:
            raise VrcConfigError("Invalid configuration", errors=errors)

        return cls(**config_kwargs)
