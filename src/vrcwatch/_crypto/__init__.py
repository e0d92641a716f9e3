"""Cryptographic helpers for VRChat authentication."""

from __future__ import annotations

from vrcwatch._crypto.totp import generate_totp, parse_base32_secret

__all__ = [
    "generate_totp",
    "parse_base32_secret",
]
