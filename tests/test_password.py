import base64
import hashlib
import hmac
import re

import pytest

from pgproto.authentication import md5_hash
from pgproto.password import md5, scram_sha_256
from pgproto.sasl import ChannelBinding, ScramSha256

SALT = bytes(range(16))
OTHER_SALT = bytes(range(16, 32))
VERIFIER_RE = re.compile(r"^SCRAM-SHA-256\$4096:([A-Za-z0-9+/=]+)\$([A-Za-z0-9+/=]+):([A-Za-z0-9+/=]+)$")


def _split(verifier):
    match = VERIFIER_RE.match(verifier)
    assert match is not None
    salt_b64, stored_b64, server_b64 = match.groups()
    return base64.b64decode(salt_b64), base64.b64decode(stored_b64), base64.b64decode(server_b64)


def test_scram_format_and_salt():
    password = b"password"
    salt, stored_key, server_key = _split(scram_sha_256(password, SALT))
    assert salt == SALT
    assert len(stored_key) == 32
    assert len(server_key) == 32


def test_scram_deterministic_with_salt():
    password = b"password"
    first = _split(scram_sha_256(password, SALT))
    second = _split(scram_sha_256(password, SALT))
    assert first == second
    assert first[0] == SALT

    other_salt = _split(scram_sha_256(password, OTHER_SALT))
    assert other_salt[0] == OTHER_SALT
    assert other_salt[1] != first[1]
    assert other_salt[2] != first[2]

    other_password = _split(scram_sha_256(b"secret", SALT))
    assert other_password[1] != first[1]
    assert other_password[2] != first[2]


def test_scram_random_salt_differs():
    password = b"password"
    first = _split(scram_sha_256(password))
    second = _split(scram_sha_256(password))
    assert len(first[0]) == 16
    assert first[0] != second[0]


def test_scram_salt_length_checked():
    password = b"password"
    with pytest.raises(ValueError):
        scram_sha_256(password, b"short")


def test_scram_applies_saslprep():
    assert scram_sha_256("I\u00adX", SALT) == scram_sha_256("IX", SALT)


def test_scram_accepts_non_utf8():
    salt, _, _ = _split(scram_sha_256(b"\xff\xfe", SALT))
    assert salt == SALT


def test_scram_verifier_authenticates_client():
    password = b"password"
    _, stored_key, server_key = _split(scram_sha_256(password, SALT))

    client = ScramSha256(password, ChannelBinding.unsupported(), "clientnonce")
    server_first = f"r=clientnonceSERVER,s={base64.b64encode(SALT).decode()},i=4096"
    client.update(server_first.encode())

    without_proof, proof_b64 = client.message().decode().rsplit(",p=", 1)
    auth_message = f"n=,r=clientnonce,{server_first},{without_proof}".encode()
    signature = hmac.new(stored_key, auth_message, hashlib.sha256).digest()
    client_key = bytes(a ^ b for a, b in zip(base64.b64decode(proof_b64), signature))
    assert hashlib.sha256(client_key).digest() == stored_key

    server_signature = hmac.new(server_key, auth_message, hashlib.sha256).digest()
    client.finish(b"v=" + base64.b64encode(server_signature))
    with pytest.raises(RuntimeError):
        client.message()


def test_md5_format():
    password = b"password"
    hashed = md5(password, "md5_user")
    assert hashed.startswith("md5")
    assert re.fullmatch(r"md5[0-9a-f]{32}", hashed) is not None


def test_md5_matches_authentication_exchange():
    password = b"password"
    salt = bytes([0x2A, 0x3D, 0x8F, 0xE0])
    stored = md5(password, "md5_user")
    outer = hashlib.md5(stored[3:].encode() + salt).hexdigest()
    assert f"md5{outer}" == "md562af4dd09bbb41884907a838a3233294"
    assert md5_hash(b"md5_user", password, salt) == f"md5{outer}"


def test_md5_str_and_bytes_agree():
    password = "password"
    assert md5(password, "md5_user") == md5(password.encode(), "md5_user")