"""Request payload validation and sanitization."""

from lottery_api.validation.patterns import is_suspicious
from lottery_api.validation.payload import parse_payload
from lottery_api.validation.result import Accepted, ErrorKind, Outcome, Rejection
from lottery_api.validation.sanitizer import (
    sanitize_email,
    sanitize_hash_strings,
    sanitize_param,
    sanitize_params,
)
from lottery_api.validation.schema import FieldType, check_data_types, check_required_fields

__all__ = [
    "Accepted",
    "ErrorKind",
    "FieldType",
    "Outcome",
    "Rejection",
    "check_data_types",
    "check_required_fields",
    "is_suspicious",
    "parse_payload",
    "sanitize_email",
    "sanitize_hash_strings",
    "sanitize_param",
    "sanitize_params",
]
