"""Binary encodings of arrays, ranges, geometric types and network addresses.

Every ``*_to_sql`` function returns the encoded bytes. Every ``*_from_sql``
function decodes a value and raises ``ProtocolError`` if the buffer is
malformed. Arrays and paths are checked lazily as their items are read.
"""

from __future__ import annotations

import enum
import ipaddress
import struct
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import TypeVar

from pgproto.wire import ProtocolError, check_i32, encode_nullable

T = TypeVar("T")

_RANGE_UPPER_UNBOUNDED = 0b0001_0000
_RANGE_LOWER_UNBOUNDED = 0b0000_1000
_RANGE_UPPER_INCLUSIVE = 0b0000_0100
_RANGE_LOWER_INCLUSIVE = 0b0000_0010
_RANGE_EMPTY = 0b0000_0001

_PGSQL_AF_INET = 2
_PGSQL_AF_INET6 = 3

_I32_MIN = -(2**31)
_I32_MAX = 2**31 - 1


def _pack(fmt: str, *values: object) -> bytes:
    try:
        return struct.pack(fmt, *values)
    except struct.error as exc:
        raise ProtocolError(str(exc)) from exc


class _Reader:
    """Consumes big-endian fields from the front of a buffer."""

    def __init__(self, buf: bytes) -> None:
        self._buf = bytes(buf)
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._buf) - self._pos

    def take(self, count: int) -> bytes:
        if count > self.remaining:
            raise ProtocolError("failed to fill whole buffer")
        data = self._buf[self._pos : self._pos + count]
        self._pos += count
        return data

    def _unpack(self, fmt: str) -> int | float:
        return struct.unpack(fmt, self.take(struct.calcsize(fmt)))[0]

    def u8(self) -> int:
        return int(self._unpack(">B"))

    def i32(self) -> int:
        return int(self._unpack(">i"))

    def u32(self) -> int:
        return int(self._unpack(">I"))

    def f64(self) -> float:
        return float(self._unpack(">d"))

    def rest(self) -> bytes:
        return self.take(self.remaining)


# Arrays


@dataclass(frozen=True)
class ArrayDimension:
    """One dimension of an array: its length and the index of its first element."""

    length: int
    lower_bound: int


@dataclass(frozen=True)
class Array:
    """A decoded array.

    ``data`` holds the encoded dimensions followed by the encoded elements.
    """

    has_nulls: bool
    element_type: int
    ndim: int
    element_count: int
    data: bytes

    def dimensions(self) -> Iterator[ArrayDimension]:
        """Iterate over the dimensions of the array."""
        reader = _Reader(self.data[: self.ndim * 8])
        while reader.remaining:
            yield ArrayDimension(reader.i32(), reader.i32())

    def values(self) -> Iterator[bytes | None]:
        """Iterate over the encoded elements in row-major order; ``None`` is NULL."""
        reader = _Reader(self.data[self.ndim * 8 :])
        for _ in range(self.element_count):
            length = reader.i32()
            if length < 0:
                yield None
                continue
            if reader.remaining < length:
                raise ProtocolError("invalid value length")
            yield reader.take(length)
        if reader.remaining:
            raise ProtocolError("invalid message length: arrayvalue not drained")


def array_to_sql(
    dimensions: Iterable[ArrayDimension],
    element_type: int,
    elements: Iterable[T],
    serializer: Callable[[T], bytes | None],
) -> bytes:
    """Encode an array.

    ``serializer`` turns each element into its encoded bytes, or ``None`` for NULL.
    """
    dims = b"".join(_pack(">ii", dim.length, dim.lower_bound) for dim in dimensions)
    ndim = check_i32(len(dims) // 8)

    has_nulls = False
    parts = []
    for element in elements:
        encoded = serializer(element)
        if encoded is None:
            has_nulls = True
        parts.append(encode_nullable(encoded))

    header = _pack(">iiI", ndim, int(has_nulls), element_type)
    return header + dims + b"".join(parts)


def array_from_sql(buf: bytes) -> Array:
    """Decode an array; its elements are checked as they are read."""
    reader = _Reader(buf)
    ndim = reader.i32()
    if ndim < 0:
        raise ProtocolError("invalid dimension count")
    has_nulls = reader.i32() != 0
    element_type = reader.u32()
    data = reader.rest()

    dims = _Reader(data)
    element_count = 1
    for _ in range(ndim):
        length = dims.i32()
        if length < 0:
            raise ProtocolError("invalid dimension size")
        dims.i32()
        element_count *= length
        if element_count > _I32_MAX:
            raise ProtocolError("too many array elements")

    if ndim == 0:
        element_count = 0

    return Array(has_nulls, element_type, ndim, element_count, data)


# Ranges


class BoundKind(enum.Enum):
    """How one side of a range is bounded."""

    INCLUSIVE = "inclusive"
    EXCLUSIVE = "exclusive"
    UNBOUNDED = "unbounded"


@dataclass(frozen=True)
class RangeBound:
    """One side of a range; ``value`` is the encoded bound, ``None`` for NULL."""

    kind: BoundKind
    value: bytes | None = None

    @classmethod
    def inclusive(cls, value: bytes | None) -> RangeBound:
        """An inclusive bound."""
        return cls(BoundKind.INCLUSIVE, value)

    @classmethod
    def exclusive(cls, value: bytes | None) -> RangeBound:
        """An exclusive bound."""
        return cls(BoundKind.EXCLUSIVE, value)

    @classmethod
    def unbounded(cls) -> RangeBound:
        """No bound."""
        return cls(BoundKind.UNBOUNDED)


@dataclass(frozen=True)
class Range:
    """A decoded range. An empty range has neither bound."""

    lower: RangeBound | None = None
    upper: RangeBound | None = None

    @property
    def is_empty(self) -> bool:
        """Whether this is the empty range."""
        return self.lower is None and self.upper is None


def empty_range_to_sql() -> bytes:
    """Encode the empty range."""
    return bytes([_RANGE_EMPTY])


def _bound_to_sql(bound: RangeBound, unbounded: int, inclusive: int) -> tuple[int, bytes]:
    if bound.kind is BoundKind.UNBOUNDED:
        return unbounded, b""
    flag = inclusive if bound.kind is BoundKind.INCLUSIVE else 0
    return flag, encode_nullable(bound.value)


def range_to_sql(lower: RangeBound, upper: RangeBound) -> bytes:
    """Encode a non-empty range from its two bounds."""
    lower_flag, lower_data = _bound_to_sql(
        lower, _RANGE_LOWER_UNBOUNDED, _RANGE_LOWER_INCLUSIVE
    )
    upper_flag, upper_data = _bound_to_sql(
        upper, _RANGE_UPPER_UNBOUNDED, _RANGE_UPPER_INCLUSIVE
    )
    return bytes([lower_flag | upper_flag]) + lower_data + upper_data


def _read_bound(reader: _Reader, tag: int, unbounded: int, inclusive: int) -> RangeBound:
    if tag & unbounded:
        return RangeBound.unbounded()
    length = reader.i32()
    value = None
    if length >= 0:
        if reader.remaining < length:
            raise ProtocolError("invalid message size")
        value = reader.take(length)
    if tag & inclusive:
        return RangeBound.inclusive(value)
    return RangeBound.exclusive(value)


def range_from_sql(buf: bytes) -> Range:
    """Decode a range."""
    reader = _Reader(buf)
    tag = reader.u8()

    if tag == _RANGE_EMPTY:
        if reader.remaining:
            raise ProtocolError("invalid message size")
        return Range()

    lower = _read_bound(reader, tag, _RANGE_LOWER_UNBOUNDED, _RANGE_LOWER_INCLUSIVE)
    upper = _read_bound(reader, tag, _RANGE_UPPER_UNBOUNDED, _RANGE_UPPER_INCLUSIVE)

    if reader.remaining:
        raise ProtocolError("invalid message size")
    return Range(lower, upper)


# Geometry


@dataclass(frozen=True)
class Point:
    """A point."""

    x: float
    y: float


@dataclass(frozen=True)
class Box:
    """A box given by two opposite corners."""

    upper_right: Point
    lower_left: Point


def point_to_sql(x: float, y: float) -> bytes:
    """Encode a ``POINT``."""
    return _pack(">dd", x, y)


def point_from_sql(buf: bytes) -> Point:
    """Decode a ``POINT``."""
    reader = _Reader(buf)
    point = Point(reader.f64(), reader.f64())
    if reader.remaining:
        raise ProtocolError("invalid buffer size")
    return point


def box_to_sql(x1: float, y1: float, x2: float, y2: float) -> bytes:
    """Encode a ``BOX`` from its upper right and lower left corners."""
    return _pack(">dddd", x1, y1, x2, y2)


def box_from_sql(buf: bytes) -> Box:
    """Decode a ``BOX``."""
    reader = _Reader(buf)
    upper_right = Point(reader.f64(), reader.f64())
    lower_left = Point(reader.f64(), reader.f64())
    if reader.remaining:
        raise ProtocolError("invalid buffer size")
    return Box(upper_right, lower_left)


@dataclass(frozen=True)
class Path:
    """A decoded path; ``data`` holds the encoded points."""

    closed: bool
    count: int
    data: bytes

    def points(self) -> Iterator[Point]:
        """Iterate over the points of the path."""
        reader = _Reader(self.data)
        remaining = self.count
        while remaining != 0:
            remaining -= 1
            yield Point(reader.f64(), reader.f64())
        if reader.remaining:
            raise ProtocolError("invalid message length: path points not drained")


def path_to_sql(closed: bool, points: Iterable[tuple[float, float]]) -> bytes:
    """Encode a ``PATH`` from its ``(x, y)`` points."""
    encoded = b"".join(_pack(">dd", x, y) for x, y in points)
    count = check_i32(len(encoded) // 16)
    return _pack(">Bi", int(bool(closed)), count) + encoded


def path_from_sql(buf: bytes) -> Path:
    """Decode a ``PATH``; its points are checked as they are read."""
    reader = _Reader(buf)
    closed = reader.u8() != 0
    count = reader.i32()
    return Path(closed, count, reader.rest())


# Network addresses


@dataclass(frozen=True)
class Inet:
    """A network address with its netmask length."""

    addr: ipaddress.IPv4Address | ipaddress.IPv6Address
    netmask: int


def inet_to_sql(
    addr: str | ipaddress.IPv4Address | ipaddress.IPv6Address, netmask: int
) -> bytes:
    """Encode an ``INET`` value."""
    address = ipaddress.ip_address(addr)
    family = _PGSQL_AF_INET if address.version == 4 else _PGSQL_AF_INET6
    packed = address.packed
    return _pack(">BBBB", family, netmask, 0, len(packed)) + packed


def inet_from_sql(buf: bytes) -> Inet:
    """Decode an ``INET`` or ``CIDR`` value."""
    reader = _Reader(buf)
    family = reader.u8()
    netmask = reader.u8()
    reader.u8()  # is_cidr
    length = reader.u8()

    address: ipaddress.IPv4Address | ipaddress.IPv6Address
    if family == _PGSQL_AF_INET:
        if netmask > 32:
            raise ProtocolError("invalid IPv4 netmask")
        if length != 4:
            raise ProtocolError("invalid IPv4 address length")
        address = ipaddress.IPv4Address(reader.take(4))
    elif family == _PGSQL_AF_INET6:
        if netmask > 128:
            raise ProtocolError("invalid IPv6 netmask")
        if length != 16:
            raise ProtocolError("invalid IPv6 address length")
        address = ipaddress.IPv6Address(reader.take(16))
    else:
        raise ProtocolError("invalid IP family")

    if reader.remaining:
        raise ProtocolError("invalid buffer size")
    return Inet(address, netmask)