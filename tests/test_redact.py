from __future__ import annotations

from vrcwatch._redact import redact_for_log, redact_url


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "username": "watcher",
        "password": "pw",
        "authToken": "authcookie_123",
        "code": "123456",
        "nested": {"Cookie": "auth=abc", "displayName": "Alice"},
        "items": [{"token": "t"}],
    }

    redacted = redact_for_log(payload)
    assert redacted["username"] == "watcher"
    assert redacted["password"] == "<redacted>"
    assert redacted["authToken"] == "<redacted>"
    assert redacted["code"] == "<redacted>"
    assert redacted["nested"]["Cookie"] == "<redacted>"
    assert redacted["nested"]["displayName"] == "Alice"
    assert redacted["items"] == [{"token": "<redacted>"}]


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_redact_url_hides_webhook_token() -> None:
    url = "https://discord.com/api/webhooks/123456/secret-token"

    assert redact_url(url) == "https://discord.com/api/webhooks/123456/<redacted>"
    assert "secret-token" not in redact_url(url)
