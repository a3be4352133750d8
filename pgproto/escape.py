"""Escaping of literals and identifiers for use in SQL text.

Prefer parameterized queries; never escape parameters of one.
"""

from __future__ import annotations


def escape_literal(text: str) -> str:
    """Escape ``text`` as a single-quoted literal.

    If ``text`` holds backslashes the result takes the `` E'...'`` form, which
    is correct whatever ``standard_conforming_strings`` is set to.
    """
    return _escape(text, as_ident=False)


def escape_identifier(text: str) -> str:
    """Escape ``text`` as a double-quoted identifier."""
    return _escape(text, as_ident=True)


def _escape(text: str, *, as_ident: bool) -> str:
    quote = '"' if as_ident else "'"
    has_backslash = "\\" in text
    # The leading space guards against the result being glued to an identifier.
    prefix = " E" if not as_ident and has_backslash else ""
    body = text.replace(quote, quote * 2)
    if not as_ident:
        body = body.replace("\\", "\\\\")
    return f"{prefix}{quote}{body}{quote}"