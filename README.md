# pgproto

Low level pieces of the Postgres client/server protocol. The package is plain
Python and needs nothing outside the standard library. It covers the
following:

- building the messages a client sends to the server,
- encoding and decoding values in Postgres's binary format,
- escaping literals and identifiers for SQL text,
- the client side of MD5 and SCRAM-SHA-256 authentication,
- hashing passwords for `ALTER USER ... PASSWORD`.

Text is always encoded and decoded as UTF-8. The package therefore expects the
`client_encoding` server parameter to be `UTF8`.

## Installing

```
pip install .
```

## Modules

### `pgproto.wire`

This module holds helpers that the other modules share.

- `ProtocolError` is a subclass of `ValueError`. It is raised when a value
  cannot be put into the wire format or read back from it.
- `IsNull` is an enum with the members `YES` and `NO`.
- `check_i16(value)` and `check_i32(value)` return `value` unchanged if it
  fits in a signed 16-bit or 32-bit count. Otherwise they raise
  `ProtocolError("value too large to transmit")`.
- `encode_nullable(value)` returns the bytes with a 32-bit big-endian length
  in front of them. `None` is encoded as the length `-1`.

### `pgproto.frontend`

Each function returns one complete encoded message as `bytes`.

| Function | Message |
| --- | --- |
| `startup_message(parameters)` | `StartupMessage`. It takes a mapping or `(key, value)` pairs and uses protocol 3.0. |
| `ssl_request()` | `SSLRequest` |
| `cancel_request(process_id, secret_key)` | `CancelRequest` |
| `query(text)` | `Query` |
| `parse(name, query, param_types)` | `Parse`, with the parameter type OIDs |
| `bind(portal, statement, formats, values, serializer, result_formats)` | `Bind` |
| `describe(variant, name)` / `close(variant, name)` | `Describe` / `Close`. `variant` is `"S"`, `"P"`, or the equivalent byte or int. |
| `execute(portal, max_rows)` | `Execute` |
| `sync()` / `terminate()` | `Sync` / `Terminate` |
| `password_message(password)` | `PasswordMessage` |
| `sasl_initial_response(mechanism, data)` / `sasl_response(data)` | `SASLInitialResponse` / `SASLResponse` |
| `copy_done()` / `copy_fail(message)` | `CopyDone` / `CopyFail` |
| `CopyData(data).encode()` | `CopyData` |

`ProtocolError` is raised in these cases:

- a string holds an embedded NUL byte,
- a count or length does not fit its field.

`bind` takes a `serializer` that turns each value into bytes, or into `None`
for NULL. Any failure in `bind` is raised as `BindError`. Its `error`
attribute holds the cause. Its `conversion` attribute is true when the
serializer failed, and false when the message could not be encoded.

### `pgproto.escape`

`escape_literal(text)` and `escape_identifier(text)` escape text for SQL
strings. A literal that contains a backslash gets the ` E'...'` form, with a
leading space. Prefer parameterized queries, and never escape the parameters
of one.

### `pgproto.authentication`

`md5_hash(username, password, salt)` builds the reply to an
`AuthenticationMD5Password` request. The salt must be exactly 4 bytes.

### `pgproto.sasl`

This module handles SCRAM-SHA-256 and SCRAM-SHA-256-PLUS.

- `ScramSha256(password, channel_binding, nonce=None)` drives the client side
  of an exchange. If no nonce is given, a random 24-character nonce is made.
- `ChannelBinding.unrequested()`, `ChannelBinding.unsupported()` and
  `ChannelBinding.tls_server_end_point(signature)` choose how the exchange is
  bound to the channel.
- `SCRAM_SHA_256` and `SCRAM_SHA_256_PLUS` are the mechanism names.

Several lower-level helpers are also exported:

- `saslprep(text)`,
- `normalize(password)`, which falls back to the raw bytes when SASLprep does
  not apply,
- `hi(password, salt, iterations)`,
- `parse_server_first_message`, which returns a `ServerFirstMessage`,
- `parse_server_final_message`, which returns a `ServerFinalMessage`.

### `pgproto.password`

- `scram_sha_256(password, salt=None)` returns a
  `SCRAM-SHA-256$4096:salt$stored_key:server_key` string. It uses 4096
  iterations. If no salt is given, a random 16-byte salt is used.
- `md5(password, username)` returns `md5` followed by a hex digest. MD5 is not
  considered secure.

### `pgproto.types`

This module encodes and decodes scalar values. Each pair is named
`<type>_to_sql` and `<type>_from_sql`. The types are:

- `bool`, `bytea`, `text`, `char` and `int2` / `int4` / `int8`,
- `oid`, `lsn` and `float4` / `float8`,
- `hstore` and `varbit`, which decodes to a `Varbit`,
- `timestamp`, `date` and `time`, as raw integer counts since 2000-01-01 or
  since midnight,
- `macaddr`, which takes six bytes,
- `uuid`, which takes a `uuid.UUID` or 16 bytes,
- `ltree`, `lquery` and `ltxtquery`.

`hstore_from_sql` checks the entry count at once and returns an iterator of
`(key, value)` pairs. Each entry is checked as it is read.

### `pgproto.structured`

This module covers arrays, ranges, geometric types and network addresses.

- `array_to_sql` and `array_from_sql` work with `ArrayDimension`. Decoding
  returns an `Array`, whose `dimensions()` and `values()` are read lazily.
- `range_to_sql(lower, upper)`, `empty_range_to_sql()` and `range_from_sql`
  work with `RangeBound` and `BoundKind`. Decoding returns a `Range`.
- `point_to_sql` and `point_from_sql` work with `Point`.
- `box_to_sql` and `box_from_sql` work with `Box`.
- `path_to_sql` and `path_from_sql` work with `Path`, whose `points()` is read
  lazily.
- `inet_to_sql` and `inet_from_sql` work with `Inet`.

Arrays and paths are checked as their items are read. A malformed buffer can
therefore raise `ProtocolError` during iteration.

## Examples

Building messages:

```python
from pgproto import frontend

packet = frontend.startup_message([("user", "postgres"), ("database", "postgres")])
packet += frontend.query("SELECT 1")
```

Escaping:

```python
from pgproto.escape import escape_identifier, escape_literal

escape_literal("f'oo")       # "'f''oo'"
escape_literal("f\\oo")      # " E'f\\\\oo'"
escape_identifier('f"oo')    # '"f""oo"'
```

Running a SCRAM exchange:

```python
from pgproto.sasl import ChannelBinding, ScramSha256

password = "password"
scram = ScramSha256(password.encode(), ChannelBinding.unsupported())
first = scram.message()          # send in a SASLInitialResponse
scram.update(server_first)       # body of AuthenticationSASLContinue
second = scram.message()         # send in a SASLResponse
scram.finish(server_final)       # body of AuthenticationSASLFinal
```

`finish` raises `ProtocolError` when any of the following is wrong:

- the server reports an error,
- the message is malformed,
- the server's signature does not verify.

Calling the methods out of order raises `RuntimeError`.

Encoding values:

```python
from pgproto import structured, types

buf = types.int4_to_sql(0x01020304)
assert types.int4_from_sql(buf) == 0x01020304

entries = dict(types.hstore_from_sql(types.hstore_to_sql({"hello": "world", "hola": None})))

array = structured.array_from_sql(
    structured.array_to_sql(
        [structured.ArrayDimension(2, 1)], 25, [b"a", None], lambda v: v
    )
)
assert list(array.values()) == [b"a", None]
```

## What the package does not do

- It does not parse messages sent by the server. Only client-to-server
  messages are built.
- It does not open connections. There is no socket handling, no TLS and no
  query execution, so bytes are sent and received by the caller.
- It does not map values to richer Python types, except for `uuid.UUID` and
  `ipaddress` addresses. Dates and times stay raw integer offsets, and array
  and range elements stay encoded bytes.

## Running the tests

```
pip install .[test]
pytest
```