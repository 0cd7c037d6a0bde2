"""Header, Content-Type and declared-size checks."""

from __future__ import annotations

import structlog

from lottery_api.logging_config import log_validation_error
from lottery_api.middleware.pipeline import InboundRequest, Middleware, RequestContext
from lottery_api.validation.result import ErrorKind, Rejection

logger = structlog.get_logger()

MAX_USER_AGENT_LENGTH = 1000


class HeaderCheck(Middleware):
    """Advisory header sanity: log odd User-Agents, never block."""

    async def process_request(self, inbound: InboundRequest, context: RequestContext) -> Rejection | None:
        user_agent = inbound.headers.get("user-agent")
        if not user_agent:
            logger.info("header_check", issue="missing_user_agent", path=inbound.path)
        elif len(user_agent) > MAX_USER_AGENT_LENGTH:
            log_validation_error("user_agent", user_agent, "User-Agent header too long")
        return None


class ContentTypeCheck(Middleware):
    """Require ``application/json`` on body-bearing methods."""

    async def process_request(self, inbound: InboundRequest, context: RequestContext) -> Rejection | None:
        if inbound.is_read_only:
            return None

        content_type = inbound.headers.get("content-type", "")
        if "application/json" in content_type.lower():
            return None

        log_validation_error("content_type", content_type, "Invalid Content-Type, expected application/json")
        return Rejection(
            kind=ErrorKind.MALFORMED_REQUEST,
            message="Invalid Content-Type",
            details=f"Expected 'application/json', got '{content_type}'",
            field="content_type",
        )


def payload_too_large(max_bytes: int) -> Rejection:
    return Rejection(
        kind=ErrorKind.MALFORMED_REQUEST,
        message="Payload too large",
        details=f"Maximum allowed size is {max_bytes} bytes",
        field="payload_size",
        status_code=413,
    )


class PayloadSizeCheck(Middleware):
    """Reject a declared Content-Length above ``max_bytes``.

    A malformed Content-Length is logged and let through; the body stage
    enforces the limit on the bytes actually received.
    """

    def __init__(self, max_bytes: int = 1_048_576) -> None:
        self.max_bytes = max_bytes

    async def process_request(self, inbound: InboundRequest, context: RequestContext) -> Rejection | None:
        if inbound.is_read_only:
            return None

        content_length = inbound.headers.get("content-length")
        if content_length is None:
            return None
        try:
            declared = int(content_length)
        except (ValueError, OverflowError) as exc:
            log_validation_error("payload_size", content_length, f"Invalid content length format: {exc}")
            return None

        if declared > self.max_bytes:
            log_validation_error("payload_size", declared, "Payload too large")
            return payload_too_large(self.max_bytes)
        return None
