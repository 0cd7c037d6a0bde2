"""Strict JSON body decoding.

``parse_payload`` never raises: every failure comes back as a
:class:`~lottery_api.validation.result.Rejection`.
"""

from __future__ import annotations

import json

from lottery_api.logging_config import log_validation_error
from lottery_api.validation.result import Accepted, ErrorKind, Outcome, Rejection

_JSON_TYPE_NAMES = {
    list: "array",
    str: "string",
    int: "number",
    float: "number",
    bool: "boolean",
    type(None): "null",
}


def _reject_constant(name: str):
    raise ValueError(f"Invalid JSON constant: {name}")


def _json_type_name(value: object) -> str:
    return _JSON_TYPE_NAMES.get(type(value), type(value).__name__)


def parse_payload(body: bytes | str | None) -> Outcome:
    """Decode *body* into a JSON object.

    Empty or whitespace-only bodies decode to ``{}``.
    """
    if body is None:
        return Accepted({})
    if isinstance(body, str):
        try:
            body = body.encode("utf-8")
        except UnicodeEncodeError:
            body = body.encode("utf-8", "surrogatepass")
    if not body.strip():
        return Accepted({})

    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        log_validation_error("encoding", "invalid", "Invalid character encoding")
        return Rejection(
            kind=ErrorKind.MALFORMED_REQUEST,
            message="Invalid character encoding",
            details="Request body contains invalid UTF-8 characters",
            field="encoding",
        )

    try:
        parsed = json.loads(text, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as exc:
        # JSONDecodeError is a ValueError subclass
        detail = str(exc) if isinstance(exc, ValueError) else "JSON nesting too deep"
        log_validation_error("json_parse", detail, "Invalid JSON format")
        return Rejection(
            kind=ErrorKind.MALFORMED_REQUEST,
            message="Invalid JSON format",
            details=detail,
            field="json_parse",
        )

    if not isinstance(parsed, dict):
        type_name = _json_type_name(parsed)
        log_validation_error("json_structure", type_name, "JSON must be an object")
        return Rejection(
            kind=ErrorKind.MALFORMED_REQUEST,
            message="Invalid JSON structure",
            details=f"Expected JSON object, got {type_name}",
            field="json_structure",
        )

    return Accepted(parsed)
