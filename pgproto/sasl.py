"""Client side of the SCRAM-SHA-256 and SCRAM-SHA-256-PLUS SASL mechanisms."""

from __future__ import annotations

import base64
import binascii
import enum
import hashlib
import hmac
import secrets
import stringprep
import unicodedata
from collections.abc import Callable
from dataclasses import dataclass

from pgproto.wire import ProtocolError

SCRAM_SHA_256 = "SCRAM-SHA-256"
"""The identifier of the SCRAM-SHA-256 mechanism."""

SCRAM_SHA_256_PLUS = "SCRAM-SHA-256-PLUS"
"""The identifier of the SCRAM-SHA-256-PLUS mechanism."""

NONCE_LENGTH = 24
_U32_MAX = 2**32 - 1


def _as_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


def _is_prohibited(ch: str) -> bool:
    return (
        stringprep.in_table_c12(ch)
        or stringprep.in_table_c21(ch)
        or stringprep.in_table_c22(ch)
        or stringprep.in_table_c3(ch)
        or stringprep.in_table_c4(ch)
        or stringprep.in_table_c5(ch)
        or stringprep.in_table_c6(ch)
        or stringprep.in_table_c7(ch)
        or stringprep.in_table_c8(ch)
        or stringprep.in_table_c9(ch)
    )


def saslprep(text: str) -> str:
    """Prepare ``text`` with the SASLprep profile of stringprep.

    Raises ``ValueError`` if the prepared string holds prohibited characters,
    breaks the bidirectional text rules or holds unassigned code points.
    """
    if all(ord(ch) < 0x80 and not stringprep.in_table_c21(ch) for ch in text):
        return text

    mapped = "".join(
        " " if stringprep.in_table_c12(ch) else ch
        for ch in text
        if not stringprep.in_table_b1(ch)
    )
    normalized = unicodedata.normalize("NFKC", mapped)

    for ch in normalized:
        if _is_prohibited(ch):
            raise ValueError(f"prohibited character {ch!r}")

    if any(stringprep.in_table_d1(ch) for ch in normalized):
        if any(stringprep.in_table_d2(ch) for ch in normalized):
            raise ValueError("mixed bidirectional text")
        if not (stringprep.in_table_d1(normalized[0]) and stringprep.in_table_d1(normalized[-1])):
            raise ValueError("invalid bidirectional text")

    for ch in normalized:
        if stringprep.in_table_a1(ch):
            raise ValueError(f"unassigned code point {ch!r}")

    return normalized


def normalize(password: str | bytes) -> bytes:
    """Run SASLprep over ``password`` where possible.

    Passwords need be neither valid UTF-8 nor free of prohibited characters;
    in those cases the raw bytes are returned unchanged.
    """
    raw = _as_bytes(password)
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw
    try:
        return saslprep(text).encode("utf-8")
    except ValueError:
        return raw


def hi(password: bytes, salt: bytes, iterations: int) -> bytes:
    """The SCRAM ``Hi`` function: PBKDF2 with HMAC-SHA-256, 32 bytes of output.

    At least one round is always run.
    """
    return hashlib.pbkdf2_hmac("sha256", bytes(password), bytes(salt), max(iterations, 1), 32)


def _hmac(key: bytes, data: bytes) -> bytes:
    return hmac.new(key, data, hashlib.sha256).digest()


def _xor(left: bytes, right: bytes) -> bytes:
    return bytes(a ^ b for a, b in zip(left, right))


def _b64decode(text: str) -> bytes:
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ProtocolError(str(exc)) from exc


class _BindingKind(enum.Enum):
    UNREQUESTED = "y,,"
    UNSUPPORTED = "n,,"
    TLS_SERVER_END_POINT = "p=tls-server-end-point,,"


@dataclass(frozen=True)
class ChannelBinding:
    """The channel binding configuration of a SCRAM exchange."""

    kind: _BindingKind
    data: bytes = b""

    @classmethod
    def unrequested(cls) -> ChannelBinding:
        """The server did not request channel binding."""
        return cls(_BindingKind.UNREQUESTED)

    @classmethod
    def unsupported(cls) -> ChannelBinding:
        """The server requested channel binding but the client cannot provide it."""
        return cls(_BindingKind.UNSUPPORTED)

    @classmethod
    def tls_server_end_point(cls, signature: bytes) -> ChannelBinding:
        """Bind to the TLS channel with the ``tls-server-end-point`` method."""
        return cls(_BindingKind.TLS_SERVER_END_POINT, bytes(signature))

    @property
    def gs2_header(self) -> str:
        """The GS2 header sent at the start of the client messages."""
        return self.kind.value

    @property
    def cbind_data(self) -> bytes:
        """The channel binding data appended to the GS2 header."""
        return self.data if self.kind is _BindingKind.TLS_SERVER_END_POINT else b""


@dataclass(frozen=True)
class ServerFirstMessage:
    """The parsed ``server-first-message`` of a SCRAM exchange."""

    nonce: str
    salt: str
    iteration_count: int


@dataclass(frozen=True)
class ServerFinalMessage:
    """The parsed ``server-final-message``: either an error or a verifier."""

    error: str | None = None
    verifier: str | None = None


def _printable(ch: str) -> bool:
    return "\x21" <= ch <= "\x2b" or "\x2d" <= ch <= "\x7e"


def _base64_char(ch: str) -> bool:
    return ("a" <= ch <= "z") or ("A" <= ch <= "Z") or ("0" <= ch <= "9") or ch in "/+="


def _value_char(ch: str) -> bool:
    return ch in "\0=,"


class _Parser:
    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0

    def _byte_offset(self, index: int) -> int:
        return len(self._text[:index].encode("utf-8"))

    def _peek(self) -> str | None:
        return self._text[self._pos] if self._pos < len(self._text) else None

    def eat(self, target: str) -> None:
        ch = self._peek()
        if ch is None:
            raise ProtocolError("unexpected EOF")
        if ch != target:
            offset = self._byte_offset(self._pos)
            raise ProtocolError(
                f"unexpected character at byte {offset}: expected `{target}` but got `{ch}"
            )
        self._pos += 1

    def take_while(self, predicate: Callable[[str], bool]) -> str:
        start = self._pos
        while self._pos < len(self._text) and predicate(self._text[self._pos]):
            self._pos += 1
        return self._text[start : self._pos]

    def _field(self, name: str, predicate: Callable[[str], bool]) -> str:
        self.eat(name)
        self.eat("=")
        return self.take_while(predicate)

    def iteration_count(self) -> int:
        digits = self._field("i", lambda ch: "0" <= ch <= "9")
        if not digits:
            raise ProtocolError("cannot parse integer from empty string")
        count = int(digits)
        if count > _U32_MAX:
            raise ProtocolError("number too large to fit in target type")
        return count

    def eof(self) -> None:
        if self._pos < len(self._text):
            offset = self._byte_offset(self._pos)
            raise ProtocolError(f"unexpected trailing data at byte {offset}")

    def server_first_message(self) -> ServerFirstMessage:
        nonce = self._field("r", _printable)
        self.eat(",")
        salt = self._field("s", _base64_char)
        self.eat(",")
        iteration_count = self.iteration_count()
        self.eof()
        return ServerFirstMessage(nonce, salt, iteration_count)

    def server_final_message(self) -> ServerFinalMessage:
        if self._peek() == "e":
            message = ServerFinalMessage(error=self._field("e", _value_char))
        else:
            message = ServerFinalMessage(verifier=self._field("v", _base64_char))
        self.eof()
        return message


def parse_server_first_message(message: str) -> ServerFirstMessage:
    """Parse a ``server-first-message``."""
    return _Parser(message).server_first_message()


def parse_server_final_message(message: str) -> ServerFinalMessage:
    """Parse a ``server-final-message``."""
    return _Parser(message).server_final_message()


def _generate_nonce() -> str:
    chars = []
    for _ in range(NONCE_LENGTH):
        code = 0x21 + secrets.randbelow(0x7E - 0x21)
        if code == 0x2C:
            code = 0x7E
        chars.append(chr(code))
    return "".join(chars)


def _decode_message(message: bytes) -> str:
    try:
        return bytes(message).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ProtocolError(str(exc)) from exc


@dataclass
class _AwaitingUpdate:
    nonce: str
    password: bytes
    channel_binding: ChannelBinding


@dataclass
class _AwaitingFinish:
    salted_password: bytes
    auth_message: str


class ScramSha256:
    """Client side of a SCRAM-SHA-256 or SCRAM-SHA-256-PLUS exchange.

    Send ``message()`` in a ``SASLInitialResponse``, pass the body of the
    ``AuthenticationSASLContinue`` reply to ``update()`` and send
    ``message()`` again in a ``SASLResponse``, then pass the body of the
    ``AuthenticationSASLFinal`` reply to ``finish()``. Authentication has
    succeeded only if ``finish()`` returns without raising.
    """

    def __init__(
        self,
        password: str | bytes,
        channel_binding: ChannelBinding,
        nonce: str | None = None,
    ) -> None:
        if nonce is None:
            nonce = _generate_nonce()
        self._message = f"{channel_binding.gs2_header}n=,r={nonce}"
        self._state: _AwaitingUpdate | _AwaitingFinish | None = _AwaitingUpdate(
            nonce, normalize(password), channel_binding
        )

    def message(self) -> bytes:
        """The message to send to the server next."""
        if self._state is None:
            raise RuntimeError("invalid SCRAM state")
        return self._message.encode("utf-8")

    def update(self, message: bytes) -> None:
        """Process the server's ``AuthenticationSASLContinue`` message."""
        state, self._state = self._state, None
        if not isinstance(state, _AwaitingUpdate):
            raise RuntimeError("invalid SCRAM state")

        text = _decode_message(message)
        parsed = parse_server_first_message(text)
        if not parsed.nonce.startswith(state.nonce):
            raise ProtocolError("invalid nonce")

        salt = _b64decode(parsed.salt)
        salted_password = hi(state.password, salt, parsed.iteration_count)
        client_key = _hmac(salted_password, b"Client Key")
        stored_key = hashlib.sha256(client_key).digest()

        binding = state.channel_binding
        cbind_input = base64.b64encode(
            binding.gs2_header.encode("ascii") + binding.cbind_data
        ).decode("ascii")

        without_proof = f"c={cbind_input},r={parsed.nonce}"
        auth_message = f"n=,r={state.nonce},{text},{without_proof}"
        client_signature = _hmac(stored_key, auth_message.encode("utf-8"))
        client_proof = _xor(client_key, client_signature)

        self._message = f"{without_proof},p={base64.b64encode(client_proof).decode('ascii')}"
        self._state = _AwaitingFinish(salted_password, auth_message)

    def finish(self, message: bytes) -> None:
        """Verify the server's ``AuthenticationSASLFinal`` message."""
        state, self._state = self._state, None
        if not isinstance(state, _AwaitingFinish):
            raise RuntimeError("invalid SCRAM state")

        parsed = parse_server_final_message(_decode_message(message))
        if parsed.error is not None:
            raise ProtocolError(f"SCRAM error: {parsed.error}")

        verifier = _b64decode(parsed.verifier or "")
        server_key = _hmac(state.salted_password, b"Server Key")
        expected = _hmac(server_key, state.auth_message.encode("utf-8"))
        if not hmac.compare_digest(expected, verifier):
            raise ProtocolError("SCRAM verification error")