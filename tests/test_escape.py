import pytest

from pgproto.escape import escape_identifier, escape_literal


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("foo", '"foo"'),
        ("f\\oo", '"f\\oo"'),
        ("f'oo", "\"f'oo\""),
        ('f"oo', '"f""oo"'),
    ],
)
def test_escape_identifier(text, expected):
    assert escape_identifier(text) == expected


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("foo", "'foo'"),
        ("f\\oo", " E'f\\\\oo'"),
        ("f'oo", "'f''oo'"),
        ('f"oo', "'f\"oo'"),
    ],
)
def test_escape_literal(text, expected):
    assert escape_literal(text) == expected


def test_literal_with_quote_and_backslash():
    result = escape_literal("a'\\b")
    assert result.startswith(" E'")
    assert result.endswith("'")
    assert result[3:-1] == "a''\\\\b"