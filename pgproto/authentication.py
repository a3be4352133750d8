"""Helpers for password-based authentication exchanges."""

from __future__ import annotations

import hashlib


def _as_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


def md5_hash(username: str | bytes, password: str | bytes, salt: bytes) -> str:
    """Hash credentials in reply to an ``AuthenticationMD5Password`` message.

    The result is sent back to the server in a ``PasswordMessage``.
    """
    salt = bytes(salt)
    if len(salt) != 4:
        raise ValueError("salt must be exactly 4 bytes")
    inner = hashlib.md5(_as_bytes(password) + _as_bytes(username)).hexdigest()
    outer = hashlib.md5(inner.encode("ascii") + salt).hexdigest()
    return f"md5{outer}"