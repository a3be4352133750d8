"""Low level Postgres wire protocol: frontend messages, binary value encodings, escaping and authentication."""

__version__ = "0.6.0"

__all__ = [
    "authentication",
    "escape",
    "frontend",
    "password",
    "sasl",
    "structured",
    "types",
    "wire",
]