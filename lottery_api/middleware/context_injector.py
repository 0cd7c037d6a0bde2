"""Context injector middleware: request id and structlog context."""

from __future__ import annotations

from uuid import uuid4

import structlog
from starlette.responses import Response

from lottery_api.middleware.pipeline import InboundRequest, Middleware, RequestContext
from lottery_api.utils.sanitize import strip_control_chars
from lottery_api.validation.result import Rejection

logger = structlog.get_logger()

_MAX_REQUEST_ID_LENGTH = 256


class ContextInjector(Middleware):
    """Tag each request with an id.

    - Generates a unique X-Request-ID (uuid4, first 8 chars)
    - Preserves a client-supplied X-Request-ID as X-Original-Request-ID
    - Binds request id, method and path into structlog contextvars
    """

    async def process_request(self, inbound: InboundRequest, context: RequestContext) -> Rejection | None:
        new_request_id = uuid4().hex[:8]

        # Sanitized at storage time so later log lines cannot be injected
        client_request_id = inbound.headers.get("x-request-id")
        if client_request_id:
            context.extra["original_request_id"] = strip_control_chars(
                client_request_id[:_MAX_REQUEST_ID_LENGTH]
            )

        context.request_id = new_request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=new_request_id,
            method=inbound.method,
            path=inbound.path,
        )
        logger.debug("context_injected", client_ip=inbound.client_host)
        return None

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        response.headers["x-request-id"] = context.request_id
        if context.extra.get("original_request_id"):
            response.headers["x-original-request-id"] = context.extra["original_request_id"]
        return response
