"""Shared sanitization utilities used across middleware."""

from __future__ import annotations

import re

# C0 controls, DEL, C1 controls, line/paragraph separators,
# bidi overrides and zero-width characters, BOM.
CONTROL_CHARS_RE = re.compile(
    r"[\x00-\x1f\x7f-\x9f\u2028\u2029\u200b-\u200f\u202a-\u202e\u2066-\u2069\ufeff]"
)

_MAX_LOGGED_VALUE = 200


def strip_control_chars(value: str) -> str:
    """Strip all control characters from a string."""
    return CONTROL_CHARS_RE.sub("", value)


def repair_encoding(value: str) -> str:
    """Replace sequences that cannot be encoded as UTF-8 (lone surrogates)."""
    return value.encode("utf-8", "replace").decode("utf-8")


def is_valid_encoding(value: str) -> bool:
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def loggable(value: object) -> str:
    """Render *value* for a log line: truncated, encodable, no control chars."""
    text = value if isinstance(value, str) else repr(value)
    return strip_control_chars(repair_encoding(text[:_MAX_LOGGED_VALUE]))
