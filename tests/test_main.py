from __future__ import annotations

import logging

import pytest

from vrcwatch import __main__ as cli


def test_invalid_configuration_exits_with_status_1(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    for key in ("VRCHAT_USERNAME", "VRCHAT_PASSWORD", "DISCORD_WEBHOOK_URL", "TARGET_USER_IDS"):
        monkeypatch.delenv(key, raising=False)

    assert cli.main([]) == 1
    assert "Missing required environment variable: VRCHAT_USERNAME" in caplog.text


def test_log_level_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "warning")
    assert cli._log_level(False) == logging.WARNING
    assert cli._log_level(True) == logging.DEBUG

    monkeypatch.setenv("LOG_LEVEL", "chatty")
    assert cli._log_level(False) == logging.INFO
