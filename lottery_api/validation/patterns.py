"""Substring screening for SQL-injection, XSS and path-traversal tokens.

Applied to values that have already been sanitized. Matching is plain
substring search: ``update`` or ``;`` anywhere in the value flags it.
"""

from __future__ import annotations

SQL_INJECTION_TOKENS: tuple[str, ...] = (
    "union",
    "select",
    "drop",
    "delete",
    "insert",
    "update",
    "--",
    ";",
)

XSS_TOKENS: tuple[str, ...] = (
    "<script",
    "javascript:",
    "onload=",
    "onerror=",
    "onclick=",
)

PATH_TRAVERSAL_TOKENS: tuple[str, ...] = (
    "../",
    "..\\",
)

SUSPICIOUS_TOKENS: tuple[str, ...] = SQL_INJECTION_TOKENS + XSS_TOKENS + PATH_TRAVERSAL_TOKENS


def is_suspicious(text: object) -> bool:
    """Return True if *text* contains any known attack token (case-insensitive)."""
    if text is None:
        return False
    lowered = str(text).lower()
    return any(token in lowered for token in SUSPICIOUS_TOKENS)
