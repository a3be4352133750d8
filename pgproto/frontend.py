"""Serialization of messages sent from the client to the server.

Each function returns the complete encoded message as ``bytes``.
"""

from __future__ import annotations

import struct
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

from pgproto.wire import ProtocolError, check_i16, check_i32, encode_nullable

T = TypeVar("T")

_CANCEL_REQUEST_CODE = 80_877_102
_SSL_REQUEST_CODE = 80_877_103
_PROTOCOL_VERSION = 0x00_03_00_00


class BindError(Exception):
    """Raised when a ``Bind`` message cannot be built.

    ``conversion`` is true when a parameter serializer failed, and false when
    the message itself could not be encoded.
    """

    def __init__(self, error: BaseException, *, conversion: bool) -> None:
        super().__init__(str(error))
        self.error = error
        self.conversion = conversion


def _pack(fmt: str, *values: Any) -> bytes:
    try:
        return struct.pack(fmt, *values)
    except struct.error as exc:
        raise ProtocolError(str(exc)) from exc


def _as_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


def _cstr(value: str | bytes) -> bytes:
    data = _as_bytes(value)
    if b"\x00" in data:
        raise ProtocolError("string contains embedded null")
    return data + b"\x00"


def _byte(value: int | bytes | str) -> bytes:
    if isinstance(value, int):
        return _pack(">B", value)
    data = _as_bytes(value)
    if len(data) != 1:
        raise ProtocolError("variant must be a single byte")
    return data


def _body(payload: bytes) -> bytes:
    return _pack(">i", check_i32(len(payload) + 4)) + payload


def _message(tag: bytes, payload: bytes = b"") -> bytes:
    return tag + _body(payload)


def _counted(items: Iterable[T], encode: Callable[[T], bytes]) -> bytes:
    parts = [encode(item) for item in items]
    return _pack(">h", check_i16(len(parts))) + b"".join(parts)


def _i16(value: int) -> bytes:
    return _pack(">h", value)


def bind(
    portal: str,
    statement: str,
    formats: Iterable[int],
    values: Iterable[T],
    serializer: Callable[[T], bytes | None],
    result_formats: Iterable[int],
) -> bytes:
    """Encode a ``Bind`` message.

    ``serializer`` turns each value into its encoded bytes, or ``None`` for NULL.
    """

    def convert(value: T) -> bytes:
        try:
            encoded = serializer(value)
        except Exception as exc:
            raise BindError(exc, conversion=True) from exc
        return encode_nullable(encoded)

    try:
        payload = b"".join(
            (
                _cstr(portal),
                _cstr(statement),
                _counted(formats, _i16),
                _counted(values, convert),
                _counted(result_formats, _i16),
            )
        )
        return _message(b"B", payload)
    except ProtocolError as exc:
        raise BindError(exc, conversion=False) from exc


def cancel_request(process_id: int, secret_key: int) -> bytes:
    """Encode a ``CancelRequest`` message."""
    return _body(_pack(">iii", _CANCEL_REQUEST_CODE, process_id, secret_key))


def close(variant: int | bytes | str, name: str) -> bytes:
    """Encode a ``Close`` message for a statement (``S``) or portal (``P``)."""
    return _message(b"C", _byte(variant) + _cstr(name))


@dataclass(frozen=True)
class CopyData:
    """A ``CopyData`` message carrying a chunk of COPY data."""

    data: bytes

    def __post_init__(self) -> None:
        if len(self.data) + 4 > 2**31 - 1:
            raise ProtocolError("message length overflow")

    def encode(self) -> bytes:
        """Return the encoded message."""
        data = bytes(self.data)
        return b"d" + _pack(">i", len(data) + 4) + data


def copy_done() -> bytes:
    """Encode a ``CopyDone`` message."""
    return _message(b"c")


def copy_fail(message: str) -> bytes:
    """Encode a ``CopyFail`` message."""
    return _message(b"f", _cstr(message))


def describe(variant: int | bytes | str, name: str) -> bytes:
    """Encode a ``Describe`` message for a statement (``S``) or portal (``P``)."""
    return _message(b"D", _byte(variant) + _cstr(name))


def execute(portal: str, max_rows: int) -> bytes:
    """Encode an ``Execute`` message."""
    return _message(b"E", _cstr(portal) + _pack(">i", max_rows))


def parse(name: str, query: str, param_types: Iterable[int]) -> bytes:
    """Encode a ``Parse`` message with the given parameter type OIDs."""
    payload = _cstr(name) + _cstr(query) + _counted(param_types, lambda oid: _pack(">I", oid))
    return _message(b"P", payload)


def password_message(password: str | bytes) -> bytes:
    """Encode a ``PasswordMessage``."""
    return _message(b"p", _cstr(password))


def query(text: str) -> bytes:
    """Encode a simple ``Query`` message."""
    return _message(b"Q", _cstr(text))


def sasl_initial_response(mechanism: str, data: bytes) -> bytes:
    """Encode a ``SASLInitialResponse`` message."""
    data = bytes(data)
    payload = _cstr(mechanism) + _pack(">i", check_i32(len(data))) + data
    return _message(b"p", payload)


def sasl_response(data: bytes) -> bytes:
    """Encode a ``SASLResponse`` message."""
    return _message(b"p", bytes(data))


def ssl_request() -> bytes:
    """Encode an ``SSLRequest`` message."""
    return _body(_pack(">i", _SSL_REQUEST_CODE))


def startup_message(parameters: Mapping[str, str] | Iterable[tuple[str, str]]) -> bytes:
    """Encode a ``StartupMessage`` for protocol version 3.0."""
    pairs = parameters.items() if isinstance(parameters, Mapping) else parameters
    fields = b"".join(_cstr(key) + _cstr(value) for key, value in pairs)
    return _body(_pack(">i", _PROTOCOL_VERSION) + fields + b"\x00")


def sync() -> bytes:
    """Encode a ``Sync`` message."""
    return _message(b"S")


def terminate() -> bytes:
    """Encode a ``Terminate`` message."""
    return _message(b"X")