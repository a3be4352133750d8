import struct

import pytest

from pgproto.wire import ProtocolError, check_i16, check_i32, encode_nullable


def test_check_i16_accepts_limit():
    assert check_i16(32767) == 32767
    assert check_i16(0) == 0


def test_check_i16_rejects_overflow():
    with pytest.raises(ProtocolError, match="value too large to transmit"):
        check_i16(32768)


def test_check_i32_accepts_limit():
    assert check_i32(2**31 - 1) == 2**31 - 1


def test_check_i32_rejects_overflow():
    with pytest.raises(ProtocolError):
        check_i32(2**31)


def test_protocol_error_is_value_error():
    with pytest.raises(ValueError):
        check_i32(2**40)


def test_encode_null_has_negative_length():
    encoded = encode_nullable(None)
    assert struct.unpack(">i", encoded) == (-1,)


@pytest.mark.parametrize("payload", [b"", b"abc", bytes(range(256))])
def test_encode_nullable_round_trip(payload):
    encoded = encode_nullable(payload)
    (length,) = struct.unpack(">i", encoded[:4])
    assert length == len(payload)
    assert encoded[4:] == payload