"""Binary encodings of scalar values.

Every ``*_to_sql`` function returns the encoded bytes. Every ``*_from_sql``
function decodes a value and raises ``ProtocolError`` if the buffer is
malformed.
"""

from __future__ import annotations

import struct
import uuid
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass

from pgproto.wire import ProtocolError, check_i32

_INVALID_SIZE = "invalid buffer size"


def _pack(fmt: str, *values: object) -> bytes:
    try:
        return struct.pack(fmt, *values)
    except struct.error as exc:
        raise ProtocolError(str(exc)) from exc


def _unpack_exact(fmt: str, buf: bytes, message: str = _INVALID_SIZE) -> tuple:
    data = bytes(buf)
    size = struct.calcsize(fmt)
    if len(data) < size:
        raise ProtocolError("failed to fill whole buffer")
    if len(data) > size:
        raise ProtocolError(message)
    return struct.unpack(fmt, data)


def _decode(data: bytes) -> str:
    try:
        return bytes(data).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ProtocolError(str(exc)) from exc


class _Reader:
    """Consumes big-endian fields from the front of a buffer."""

    def __init__(self, buf: bytes) -> None:
        self._buf = memoryview(bytes(buf))
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._buf) - self._pos

    def take(self, count: int) -> bytes:
        if count > self.remaining:
            raise ProtocolError("failed to fill whole buffer")
        data = bytes(self._buf[self._pos : self._pos + count])
        self._pos += count
        return data

    def i32(self) -> int:
        return struct.unpack(">i", self.take(4))[0]

    def rest(self) -> bytes:
        return self.take(self.remaining)


def bool_to_sql(value: bool) -> bytes:
    """Encode a ``BOOL`` value as a single byte, 1 for true and 0 for false."""
    return _pack(">B", int(bool(value)))


def bool_from_sql(buf: bytes) -> bool:
    """Decode a ``BOOL`` value."""
    if len(buf) != 1:
        raise ProtocolError(_INVALID_SIZE)
    return buf[0] != 0


def bytea_to_sql(value: bytes) -> bytes:
    """Encode a ``BYTEA`` value."""
    return bytes(value)


def bytea_from_sql(buf: bytes) -> bytes:
    """Decode a ``BYTEA`` value."""
    return bytes(buf)


def text_to_sql(value: str) -> bytes:
    """Encode a ``TEXT``, ``VARCHAR``, ``CHAR(n)``, ``NAME`` or ``CITEXT`` value."""
    return value.encode("utf-8")


def text_from_sql(buf: bytes) -> str:
    """Decode a ``TEXT``, ``VARCHAR``, ``CHAR(n)``, ``NAME`` or ``CITEXT`` value."""
    return _decode(buf)


def char_to_sql(value: int) -> bytes:
    """Encode a ``"char"`` value, a signed byte."""
    return _pack(">b", value)


def char_from_sql(buf: bytes) -> int:
    """Decode a ``"char"`` value, a signed byte."""
    return _unpack_exact(">b", buf)[0]


def int2_to_sql(value: int) -> bytes:
    """Encode an ``INT2`` value."""
    return _pack(">h", value)


def int2_from_sql(buf: bytes) -> int:
    """Decode an ``INT2`` value."""
    return _unpack_exact(">h", buf)[0]


def int4_to_sql(value: int) -> bytes:
    """Encode an ``INT4`` value."""
    return _pack(">i", value)


def int4_from_sql(buf: bytes) -> int:
    """Decode an ``INT4`` value."""
    return _unpack_exact(">i", buf)[0]


def oid_to_sql(value: int) -> bytes:
    """Encode an ``OID`` value."""
    return _pack(">I", value)


def oid_from_sql(buf: bytes) -> int:
    """Decode an ``OID`` value."""
    return _unpack_exact(">I", buf)[0]


def int8_to_sql(value: int) -> bytes:
    """Encode an ``INT8`` value."""
    return _pack(">q", value)


def int8_from_sql(buf: bytes) -> int:
    """Decode an ``INT8`` value."""
    return _unpack_exact(">q", buf)[0]


def lsn_to_sql(value: int) -> bytes:
    """Encode a ``PG_LSN`` value."""
    return _pack(">Q", value)


def lsn_from_sql(buf: bytes) -> int:
    """Decode a ``PG_LSN`` value."""
    return _unpack_exact(">Q", buf)[0]


def float4_to_sql(value: float) -> bytes:
    """Encode a ``FLOAT4`` value."""
    return _pack(">f", value)


def float4_from_sql(buf: bytes) -> float:
    """Decode a ``FLOAT4`` value."""
    return _unpack_exact(">f", buf)[0]


def float8_to_sql(value: float) -> bytes:
    """Encode a ``FLOAT8`` value."""
    return _pack(">d", value)


def float8_from_sql(buf: bytes) -> float:
    """Decode a ``FLOAT8`` value."""
    return _unpack_exact(">d", buf)[0]


def _pascal_string(text: str) -> bytes:
    data = text.encode("utf-8")
    return _pack(">i", check_i32(len(data))) + data


def hstore_to_sql(
    entries: Mapping[str, str | None] | Iterable[tuple[str, str | None]],
) -> bytes:
    """Encode an ``HSTORE`` value from key/value pairs; a ``None`` value is NULL."""
    pairs = entries.items() if isinstance(entries, Mapping) else entries
    parts = []
    for key, value in pairs:
        parts.append(_pascal_string(key))
        parts.append(_pack(">i", -1) if value is None else _pascal_string(value))
    count = check_i32(len(parts) // 2)
    return _pack(">i", count) + b"".join(parts)


def _hstore_entries(reader: _Reader, count: int) -> Iterator[tuple[str, str | None]]:
    for _ in range(count):
        key_len = reader.i32()
        if key_len < 0:
            raise ProtocolError("invalid key length")
        key = _decode(reader.take(key_len))
        value_len = reader.i32()
        value = None if value_len < 0 else _decode(reader.take(value_len))
        yield key, value
    if reader.remaining:
        raise ProtocolError(_INVALID_SIZE)


def hstore_from_sql(buf: bytes) -> Iterator[tuple[str, str | None]]:
    """Decode an ``HSTORE`` value into an iterator of key/value pairs.

    The entry count is checked at once; each entry is checked as it is read.
    """
    reader = _Reader(buf)
    count = reader.i32()
    if count < 0:
        raise ProtocolError("invalid entry count")
    return _hstore_entries(reader, count)


@dataclass(frozen=True)
class Varbit:
    """A ``VARBIT`` or ``BIT`` value: a bit count and the packed bits."""

    length: int
    data: bytes

    def __len__(self) -> int:
        return self.length

    @property
    def is_empty(self) -> bool:
        """Whether the value holds no bits."""
        return self.length == 0


def varbit_to_sql(length: int, data: Iterable[int] | bytes) -> bytes:
    """Encode a ``VARBIT`` or ``BIT`` value of ``length`` bits."""
    return _pack(">i", check_i32(length)) + bytes(data)


def varbit_from_sql(buf: bytes) -> Varbit:
    """Decode a ``VARBIT`` or ``BIT`` value."""
    reader = _Reader(buf)
    length = reader.i32()
    if length < 0:
        raise ProtocolError("invalid varbit length: varbit < 0")
    if reader.remaining != (length + 7) // 8:
        raise ProtocolError("invalid message length: varbit mismatch")
    return Varbit(length, reader.rest())


def timestamp_to_sql(value: int) -> bytes:
    """Encode a ``TIMESTAMP`` or ``TIMESTAMPTZ``: microseconds since 2000-01-01."""
    return _pack(">q", value)


def timestamp_from_sql(buf: bytes) -> int:
    """Decode a ``TIMESTAMP`` or ``TIMESTAMPTZ``: microseconds since 2000-01-01."""
    return _unpack_exact(">q", buf, "invalid message length: timestamp not drained")[0]


def date_to_sql(value: int) -> bytes:
    """Encode a ``DATE``: days since 2000-01-01."""
    return _pack(">i", value)


def date_from_sql(buf: bytes) -> int:
    """Decode a ``DATE``: days since 2000-01-01."""
    return _unpack_exact(">i", buf, "invalid message length: date not drained")[0]


def time_to_sql(value: int) -> bytes:
    """Encode a ``TIME`` or ``TIMETZ``: microseconds since midnight."""
    return _pack(">q", value)


def time_from_sql(buf: bytes) -> int:
    """Decode a ``TIME`` or ``TIMETZ``: microseconds since midnight."""
    return _unpack_exact(">q", buf, "invalid message length: time not drained")[0]


def macaddr_to_sql(value: bytes) -> bytes:
    """Encode a ``MACADDR`` from its six bytes."""
    data = bytes(value)
    if len(data) != 6:
        raise ValueError("a MAC address must be exactly 6 bytes")
    return data


def macaddr_from_sql(buf: bytes) -> bytes:
    """Decode a ``MACADDR`` into its six bytes."""
    if len(buf) != 6:
        raise ProtocolError("invalid message length: macaddr length mismatch")
    return bytes(buf)


def uuid_to_sql(value: uuid.UUID | bytes) -> bytes:
    """Encode a ``UUID`` from a ``uuid.UUID`` or its sixteen bytes."""
    data = value.bytes if isinstance(value, uuid.UUID) else bytes(value)
    if len(data) != 16:
        raise ValueError("a UUID must be exactly 16 bytes")
    return data


def uuid_from_sql(buf: bytes) -> uuid.UUID:
    """Decode a ``UUID``."""
    if len(buf) != 16:
        raise ProtocolError("invalid message length: uuid size mismatch")
    return uuid.UUID(bytes=bytes(buf))


def _versioned_to_sql(value: str) -> bytes:
    # A version number precedes the text.
    return b"\x01" + value.encode("utf-8")


def _versioned_from_sql(buf: bytes, kind: str) -> str:
    data = bytes(buf)
    if not data or data[0] != 1:
        raise ProtocolError(f"{kind} version 1 only supported")
    return _decode(data[1:])


def ltree_to_sql(value: str) -> bytes:
    """Encode an ``LTREE`` value."""
    return _versioned_to_sql(value)


def ltree_from_sql(buf: bytes) -> str:
    """Decode an ``LTREE`` value."""
    return _versioned_from_sql(buf, "ltree")


def lquery_to_sql(value: str) -> bytes:
    """Encode an ``LQUERY`` value."""
    return _versioned_to_sql(value)


def lquery_from_sql(buf: bytes) -> str:
    """Decode an ``LQUERY`` value."""
    return _versioned_from_sql(buf, "lquery")


def ltxtquery_to_sql(value: str) -> bytes:
    """Encode an ``LTXTQUERY`` value."""
    return _versioned_to_sql(value)


def ltxtquery_from_sql(buf: bytes) -> str:
    """Decode an ``LTXTQUERY`` value."""
    return _versioned_from_sql(buf, "ltxtquery")