"""String and parameter sanitization."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import unquote_plus

import structlog

from lottery_api.logging_config import log_validation_error
from lottery_api.utils.sanitize import is_valid_encoding, repair_encoding

logger = structlog.get_logger()

_PARAM_STRIP_RE = re.compile(r"[<>'\"&]")
_HASH_STRIP_RE = re.compile(r"[<>'\"&;]")
_EMAIL_STRIP_RE = re.compile(r"[<>\"'&;(){}\[\]]")


def _url_decode(key: str, raw: str) -> str:
    try:
        return unquote_plus(raw, errors="strict")
    except UnicodeDecodeError as exc:
        log_validation_error("url_decode", key, f"Failed to decode URL parameter: {exc.reason}")
        return raw


def _ensure_encoding(key: str, value: str) -> str:
    if is_valid_encoding(value):
        return value
    log_validation_error("url_param_encoding", key, "Invalid encoding in URL parameter")
    return repair_encoding(value)


def sanitize_param(key: str, value: Any) -> str:
    """URL-decode, trim, strip ``< > ' " &`` and repair the encoding of *value*."""
    decoded = _url_decode(key, str(value))
    cleaned = _PARAM_STRIP_RE.sub("", decoded.strip())
    return _ensure_encoding(key, cleaned)


def sanitize_params(params: Mapping[str, Any]) -> dict[str, str]:
    """Sanitize every non-None parameter in *params*."""
    return {
        key: sanitize_param(key, value)
        for key, value in params.items()
        if value is not None
    }


def sanitize_email(email: str | None) -> str | None:
    """Lower-case *email* and strip characters that never belong in an address.

    Idempotent: whitespace exposed by character removal is trimmed as well.
    """
    if email is None:
        return None
    cleaned = _EMAIL_STRIP_RE.sub("", str(email).strip().lower()).strip()
    return repair_encoding(cleaned)


def sanitize_hash_strings(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Strip ``< > " ' & ;`` from every string value; keys are trimmed.

    Non-string values are passed through untouched.
    """
    sanitized: dict[str, Any] = {}
    for key, value in payload.items():
        clean_key = str(key).strip()
        if isinstance(value, str):
            sanitized[clean_key] = repair_encoding(_HASH_STRIP_RE.sub("", value.strip()))
        else:
            sanitized[clean_key] = value
    return sanitized
