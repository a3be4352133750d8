"""Primitives shared by the message and value encoders."""

from __future__ import annotations

import enum
import struct

I16_MAX = 2**15 - 1
I32_MAX = 2**31 - 1


class ProtocolError(ValueError):
    """Raised when a value cannot be represented in the wire format."""


class IsNull(enum.Enum):
    """Whether an encoded value is SQL ``NULL``."""

    YES = True
    NO = False


def _check(value: int, limit: int) -> int:
    if value > limit:
        raise ProtocolError("value too large to transmit")
    return value


def check_i16(value: int) -> int:
    """Return ``value`` if it fits in a signed 16-bit length or count."""
    return _check(value, I16_MAX)


def check_i32(value: int) -> int:
    """Return ``value`` if it fits in a signed 32-bit length or count."""
    return _check(value, I32_MAX)


def encode_nullable(value: bytes | None) -> bytes:
    """Prefix ``value`` with its 32-bit length, or encode ``NULL`` as length -1."""
    if value is None:
        return struct.pack(">i", -1)
    data = bytes(value)
    return struct.pack(">i", check_i32(len(data))) + data