"""Required-field and per-field type checks for decoded JSON payloads."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any

from lottery_api.logging_config import log_validation_error
from lottery_api.validation.result import ErrorKind, Rejection


class FieldType(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    ARRAY = "array"
    EMAIL = "email"
    ARRAY_OF_INTEGERS = "array_of_integers"


FieldTypeSchema = Mapping[str, "FieldType | str"]

# Lightweight shape check; full address rules live in validation.rules.
EMAIL_RE = re.compile(r"[\w+.-]+@[a-z0-9-]+(\.[a-z0-9-]+)*\.[a-z]+", re.IGNORECASE | re.ASCII)


def is_integer(value: Any) -> bool:
    # bool is an int subclass but never a JSON integer
    return isinstance(value, int) and not isinstance(value, bool)


def matches_email_pattern(value: Any) -> bool:
    return isinstance(value, str) and EMAIL_RE.fullmatch(value) is not None


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def check_required_fields(payload: Mapping[str, Any], names: Iterable[str]) -> Rejection | None:
    """Return a rejection listing every missing field, or None."""
    missing = [name for name in names if _is_missing(payload.get(name))]
    if not missing:
        return None
    log_validation_error("required_fields", missing, "Missing required fields")
    return Rejection(
        kind=ErrorKind.VALIDATION_FAILED,
        message="Missing required fields",
        details=f"The following fields are required: {', '.join(missing)}",
        field="required_fields",
        extra={"missing_fields": missing},
    )


def _type_error(name: str, expected: FieldType, value: Any) -> str | None:
    if expected is FieldType.STRING:
        return None if isinstance(value, str) else f"{name} must be string"
    if expected is FieldType.INTEGER:
        valid = is_integer(value)
    elif expected is FieldType.ARRAY:
        valid = isinstance(value, list)
    elif expected is FieldType.EMAIL:
        valid = matches_email_pattern(value)
    else:
        valid = isinstance(value, list) and all(is_integer(item) for item in value)
    return None if valid else f"{name} must be {expected.value}"


def check_data_types(payload: Mapping[str, Any], schema: FieldTypeSchema) -> Rejection | None:
    """Check every field present in both *payload* and *schema*.

    Unknown declared types pass. String fields are additionally screened for
    attack tokens.
    """
    type_errors: list[str] = []
    for name, declared in schema.items():
        if name not in payload:
            continue
        try:
            expected = FieldType(declared)
        except ValueError:
            continue
        error = _type_error(name, expected, payload[name])
        if error:
            type_errors.append(error)

    if not type_errors:
        return None
    log_validation_error("data_types", type_errors, "Invalid data types")
    return Rejection(
        kind=ErrorKind.VALIDATION_FAILED,
        message="Invalid data types",
        details=", ".join(type_errors),
        field="data_types",
        extra={"type_errors": type_errors},
    )
