import struct

import pytest

from pgproto import frontend
from pgproto.frontend import BindError, CopyData
from pgproto.wire import ProtocolError


def split_tagged(message):
    tag = message[:1]
    (length,) = struct.unpack(">i", message[1:5])
    assert length == len(message) - 1
    return tag, message[5:]


def split_untagged(message):
    (length,) = struct.unpack(">i", message[:4])
    assert length == len(message)
    return message[4:]


def read_cstr(data):
    end = data.index(b"\x00")
    return data[:end], data[end + 1 :]


@pytest.mark.parametrize(
    ("build", "tag"),
    [(frontend.sync, b"S"), (frontend.terminate, b"X"), (frontend.copy_done, b"c")],
)
def test_empty_messages(build, tag):
    got_tag, body = split_tagged(build())
    assert got_tag == tag
    assert body == b""


def test_query():
    tag, body = split_tagged(frontend.query("SELECT 1"))
    assert tag == b"Q"
    assert body == b"SELECT 1\x00"


def test_embedded_null_rejected():
    with pytest.raises(ProtocolError, match="embedded null"):
        frontend.query("SELECT\x001")


def test_copy_fail():
    tag, body = split_tagged(frontend.copy_fail("oops"))
    assert tag == b"f"
    assert body == b"oops\x00"


@pytest.mark.parametrize("variant", [b"S", "S", ord("S")])
def test_describe(variant):
    tag, body = split_tagged(frontend.describe(variant, "stmt"))
    assert tag == b"D"
    assert body == b"S" + b"stmt\x00"


def test_close():
    tag, body = split_tagged(frontend.close(b"P", "portal"))
    assert tag == b"C"
    assert body == b"P" + b"portal\x00"


def test_execute():
    tag, body = split_tagged(frontend.execute("portal", 10))
    assert tag == b"E"
    name, rest = read_cstr(body)
    assert name == b"portal"
    assert struct.unpack(">i", rest) == (10,)


def test_parse():
    tag, body = split_tagged(frontend.parse("s1", "SELECT $1", [23, 25]))
    assert tag == b"P"
    name, rest = read_cstr(body)
    text, rest = read_cstr(rest)
    assert (name, text) == (b"s1", b"SELECT $1")
    assert struct.unpack(">hII", rest) == (2, 23, 25)


def test_password_message():
    password = "password"
    tag, body = split_tagged(frontend.password_message(password))
    assert tag == b"p"
    assert body == b"password\x00"


def test_sasl_initial_response():
    tag, body = split_tagged(frontend.sasl_initial_response("SCRAM-SHA-256", b"n,,n=,r=abc"))
    assert tag == b"p"
    mechanism, rest = read_cstr(body)
    assert mechanism == b"SCRAM-SHA-256"
    (length,) = struct.unpack(">i", rest[:4])
    assert rest[4:] == b"n,,n=,r=abc"
    assert length == len(rest) - 4


def test_sasl_response():
    tag, body = split_tagged(frontend.sasl_response(b"c=biws"))
    assert tag == b"p"
    assert body == b"c=biws"


def test_ssl_request():
    body = split_untagged(frontend.ssl_request())
    assert struct.unpack(">i", body) == (80_877_103,)


def test_cancel_request():
    body = split_untagged(frontend.cancel_request(42, 7))
    assert struct.unpack(">iii", body) == (80_877_102, 42, 7)


def test_startup_message():
    body = split_untagged(frontend.startup_message({"user": "postgres", "database": "db"}))
    assert struct.unpack(">i", body[:4]) == (0x00_03_00_00,)
    fields = body[4:]
    assert fields.endswith(b"\x00\x00")
    parts = fields[:-2].split(b"\x00")
    assert parts == [b"user", b"postgres", b"database", b"db"]


def test_startup_message_accepts_pairs():
    assert frontend.startup_message([("user", "postgres")]) == frontend.startup_message(
        {"user": "postgres"}
    )


def test_copy_data():
    data = b"1\tfoo\n"
    encoded = CopyData(data).encode()
    tag, body = split_tagged(encoded)
    assert tag == b"d"
    assert body == data


def test_bind_layout():
    message = frontend.bind("portal", "stmt", [1], [b"x", None], lambda v: v, [0, 1])
    tag, body = split_tagged(message)
    assert tag == b"B"
    portal, rest = read_cstr(body)
    statement, rest = read_cstr(rest)
    assert (portal, statement) == (b"portal", b"stmt")
    assert struct.unpack(">hh", rest[:4]) == (1, 1)
    rest = rest[4:]
    (count,) = struct.unpack(">h", rest[:2])
    assert count == 2
    rest = rest[2:]
    (first_len,) = struct.unpack(">i", rest[:4])
    assert first_len == 1
    assert rest[4:5] == b"x"
    rest = rest[5:]
    assert struct.unpack(">i", rest[:4]) == (-1,)
    rest = rest[4:]
    assert struct.unpack(">hhh", rest) == (2, 0, 1)


def test_bind_conversion_error():
    def failing(value):
        raise TypeError("cannot convert")

    with pytest.raises(BindError) as info:
        frontend.bind("", "", [], [1], failing, [])
    assert info.value.conversion is True
    assert isinstance(info.value.error, TypeError)


def test_bind_serialization_error():
    with pytest.raises(BindError) as info:
        frontend.bind("bad\x00", "", [], [], lambda v: v, [])
    assert info.value.conversion is False
    assert isinstance(info.value.error, ProtocolError)


def test_bind_too_many_formats():
    with pytest.raises(BindError) as info:
        frontend.bind("", "", [0] * 32768, [], lambda v: v, [])
    assert info.value.conversion is False
    assert "too large" in str(info.value)