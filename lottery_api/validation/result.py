"""Two-variant validation outcome: an accepted payload or a structured rejection."""

from __future__ import annotations

from dataclasses import dataclass, field as dc_field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

from starlette.responses import JSONResponse


class ErrorKind(str, Enum):
    """Rejection categories and the HTTP status each maps to by default."""

    RATE_LIMITED = "rate_limited"
    MALFORMED_REQUEST = "malformed_request"
    VALIDATION_FAILED = "validation_failed"
    UNAUTHENTICATED = "unauthenticated"
    UPSTREAM_FAILURE = "upstream_failure"

    @property
    def status_code(self) -> int:
        return _DEFAULT_STATUS[self]


_DEFAULT_STATUS = {
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.MALFORMED_REQUEST: 400,
    ErrorKind.VALIDATION_FAILED: 400,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.UPSTREAM_FAILURE: 500,
}


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Accepted:
    """Sanitized payload that passed every stage."""

    payload: dict[str, Any] = dc_field(default_factory=dict)


@dataclass
class Rejection:
    """Structured failure produced by a pipeline stage or a route.

    ``extra`` carries stage-specific lists (``missing_fields``,
    ``type_errors``) merged into the response body. ``headers`` are copied to
    the HTTP response (``Retry-After``, ``WWW-Authenticate``).
    """

    kind: ErrorKind
    message: str
    field: str | None = None
    details: str | None = None
    status_code: int | None = None
    extra: dict[str, Any] = dc_field(default_factory=dict)
    headers: dict[str, str] = dc_field(default_factory=dict)
    timestamp: str = dc_field(default_factory=now_iso)

    @property
    def status(self) -> int:
        return self.status_code or self.kind.status_code

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.field:
            body["field"] = self.field
        if self.details:
            body["details"] = self.details
        body.update(self.extra)
        body["timestamp"] = self.timestamp
        return body

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status,
            content=self.to_body(),
            headers=self.headers or None,
        )


Outcome = Union[Accepted, Rejection]


def validation_error(message: str, field: str | None = None, details: str | None = None) -> JSONResponse:
    """Business-layer 400 response in the same shape as pipeline rejections."""
    return Rejection(
        kind=ErrorKind.VALIDATION_FAILED,
        message=message,
        field=field,
        details=details,
    ).to_response()


def upstream_failure(exc: BaseException, message: str = "Database error") -> Rejection:
    """The only rejection allowed to carry the raw collaborator message."""
    return Rejection(kind=ErrorKind.UPSTREAM_FAILURE, message=message, details=str(exc))
