"""Client-side hashing of passwords for commands such as ``ALTER USER``.

Sending a hashed password keeps the cleartext out of server logs and
statistics views.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets

from pgproto.sasl import hi, normalize

SCRAM_DEFAULT_ITERATIONS = 4096
SCRAM_DEFAULT_SALT_LEN = 16


def _as_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def scram_sha_256(password: str | bytes, salt: bytes | None = None) -> str:
    """Hash ``password`` for SCRAM-SHA-256, with a random salt unless one is given.

    The result holds no characters that need escaping in an SQL command.
    """
    if salt is None:
        salt = secrets.token_bytes(SCRAM_DEFAULT_SALT_LEN)
    salt = bytes(salt)
    if len(salt) != SCRAM_DEFAULT_SALT_LEN:
        raise ValueError(f"salt must be exactly {SCRAM_DEFAULT_SALT_LEN} bytes")

    prepared = normalize(_as_bytes(password))
    salted_password = hi(prepared, salt, SCRAM_DEFAULT_ITERATIONS)

    client_key = hmac.new(salted_password, b"Client Key", hashlib.sha256).digest()
    stored_key = hashlib.sha256(client_key).digest()
    server_key = hmac.new(salted_password, b"Server Key", hashlib.sha256).digest()

    return (
        f"SCRAM-SHA-256${SCRAM_DEFAULT_ITERATIONS}:{_b64(salt)}"
        f"${_b64(stored_key)}:{_b64(server_key)}"
    )


def md5(password: str | bytes, username: str) -> str:
    """Hash ``password`` with MD5, salted with ``username``.

    MD5 is not considered secure; prefer :func:`scram_sha_256`.
    """
    digest = hashlib.md5(_as_bytes(password) + username.encode("utf-8")).hexdigest()
    return f"md5{digest}"