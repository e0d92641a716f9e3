"""Time-based one-time passwords for VRChat two-factor login."""

from __future__ import annotations

import base64
import binascii
import time

from cryptography.hazmat.primitives.hashes import SHA1
from cryptography.hazmat.primitives.twofactor.totp import TOTP

from vrcwatch.exceptions import VrcConfigError

TOTP_DIGITS = 6
TOTP_STEP_SECONDS = 30


def parse_base32_secret(value: str) -> bytes:
    """Decode an authenticator-app secret.

    Spaces and dashes are ignored, case is folded and missing ``=`` padding is
    restored, matching how authenticator apps display secrets.

    Raises
    ------
    VrcConfigError
        If the secret is empty or not valid base32.
    """
    text = value.replace(" ", "").replace("-", "").strip().upper()
    if not text:
        raise VrcConfigError("TOTP secret is empty")
    text += "=" * (-len(text) % 8)
    try:
        return base64.b32decode(text)
    except (binascii.Error, ValueError) as exc:
        raise VrcConfigError("TOTP secret must be base32-encoded") from exc


def generate_totp(secret: str, *, at: float | None = None) -> str:
    """Return the current 6-digit code for *secret*."""
    key = parse_base32_secret(secret)
    totp = TOTP(key, TOTP_DIGITS, SHA1(), TOTP_STEP_SECONDS, enforce_key_length=False)
    timestamp = int(time.time() if at is None else at)
    return totp.generate(timestamp).decode("ascii")
