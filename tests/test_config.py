from __future__ import annotations

import pytest

from vrcwatch.config import WatchConfig, parse_user_ids
from vrcwatch.exceptions import VrcConfigError

_WEBHOOK = "https://discord.com/api/webhooks/123/abc"


def _env(**overrides: str) -> dict[str, str]:
    env = {
        "VRCHAT_USERNAME": "watcher",
        "VRCHAT_PASSWORD": "hunter2",
        "DISCORD_WEBHOOK_URL": _WEBHOOK,
        "TARGET_USER_IDS": "usr_a, usr_b ,,",
    }
    env.update(overrides)
    return env


def test_parse_user_ids_drops_blanks() -> None:
    assert parse_user_ids(" usr_a ,usr_b,, ,usr_c") == ("usr_a", "usr_b", "usr_c")


def test_from_env_applies_defaults() -> None:
    config = WatchConfig.from_env(_env())

    assert config.username == "watcher"
    assert config.target_user_ids == ("usr_a", "usr_b")
    assert config.totp_secret is None
    assert config.location_file == "data/user-locations.json"
    assert config.health_host == "127.0.0.1"
    assert config.health_port == 3000
    assert config.initial_backoff == 1.0
    assert config.max_backoff == 300.0
    assert config.auth_failure_cooldown == 1800.0
    assert config.connect_timeout == 120.0
    assert config.stale_threshold == 86400.0
    assert config.is_target("usr_a")
    assert not config.is_target("usr_z")


def test_from_env_reads_optional_values() -> None:
    config = WatchConfig.from_env(
        _env(
            VRCHAT_TOTP_SECRET="JBSW Y3DP EHPK 3PXP",
            LOCATION_FILE_PATH="/var/lib/vrcwatch/locations.json",
            VRCHAT_COOKIE_PATH="/var/lib/vrcwatch/cookies.pickle",
            HEALTH_HOST="0.0.0.0",
            HEALTH_PORT="8080",
            WATCH_CONNECT_TIMEOUT="30",
            WATCH_HEALTH_CHECK_INTERVAL="15.5",
            WATCH_STALE_THRESHOLD="3600",
        )
    )

    assert config.totp_secret == "JBSW Y3DP EHPK 3PXP"
    assert config.location_file == "/var/lib/vrcwatch/locations.json"
    assert config.cookie_file == "/var/lib/vrcwatch/cookies.pickle"
    assert config.health_host == "0.0.0.0"
    assert config.health_port == 8080
    assert config.connect_timeout == 30.0
    assert config.health_check_interval == 15.5
    assert config.stale_threshold == 3600.0


def test_overrides_take_precedence() -> None:
    config = WatchConfig.from_env(_env(WATCH_CONNECT_TIMEOUT="30"), connect_timeout=5.0, health_port=9000)

    assert config.connect_timeout == 5.0
    assert config.health_port == 9000


def test_all_problems_are_reported_together() -> None:
    env = {
        "VRCHAT_USERNAME": "watcher",
        "DISCORD_WEBHOOK_URL": "https://example.com/hook",
        "TARGET_USER_IDS": " , ",
        "HEALTH_PORT": "eighty",
        "WATCH_STALE_THRESHOLD": "-5",
        "VRCHAT_TOTP_SECRET": "not base32!",
    }

    with pytest.raises(VrcConfigError) as excinfo:
        WatchConfig.from_env(env)

    errors = excinfo.value.errors
    assert "Missing required environment variable: VRCHAT_PASSWORD" in errors
    assert "TARGET_USER_IDS must contain at least one user ID" in errors
    assert "DISCORD_WEBHOOK_URL must be a valid Discord webhook URL" in errors
    assert any(error.startswith("HEALTH_PORT") for error in errors)
    assert any(error.startswith("WATCH_STALE_THRESHOLD") for error in errors)
    assert any(error.startswith("VRCHAT_TOTP_SECRET") for error in errors)


def test_reads_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for key, value in _env(TARGET_USER_IDS="usr_x").items():
        monkeypatch.setenv(key, value)

    config = WatchConfig.from_env()

    assert config.target_user_ids == ("usr_x",)
