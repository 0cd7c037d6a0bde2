"""Terminal pipeline stage: body validation or parameter sanitization."""

from __future__ import annotations

import structlog

from lottery_api.logging_config import log_validation_error
from lottery_api.middleware.pipeline import InboundRequest, Middleware, RequestContext
from lottery_api.middleware.request_checks import payload_too_large
from lottery_api.validation import (
    ErrorKind,
    FieldType,
    Rejection,
    check_data_types,
    check_required_fields,
    is_suspicious,
    parse_payload,
    sanitize_hash_strings,
    sanitize_params,
)

logger = structlog.get_logger()


class RequestSanitizer(Middleware):
    """Produce the validated payload for the route handler.

    Body-bearing methods: read the body once, parse it as a JSON object and
    apply the route's required-field and type checks. Free-text
    (``string``) fields are then stripped of markup and statement separators
    and screened for attack patterns.

    Read-only methods: sanitize every query and path parameter. Suspicious
    values are logged but not rejected; handlers validate their own formats.
    """

    def __init__(self, max_bytes: int = 1_048_576) -> None:
        self.max_bytes = max_bytes

    async def process_request(self, inbound: InboundRequest, context: RequestContext) -> Rejection | None:
        if inbound.is_read_only:
            context.payload = self._sanitize_parameters(inbound, context)
            return None

        body = await inbound.body()
        if len(body) > self.max_bytes:
            log_validation_error("payload_size", len(body), "Payload too large")
            return payload_too_large(self.max_bytes)

        outcome = parse_payload(body)
        if isinstance(outcome, Rejection):
            return outcome
        payload = outcome.payload

        route = context.route
        if route is not None:
            if route.required_fields:
                rejection = check_required_fields(payload, route.required_fields)
                if rejection:
                    return rejection
            if route.type_schema:
                rejection = check_data_types(payload, route.type_schema)
                if rejection:
                    return rejection
                rejection = self._screen_strings(payload, route.type_schema)
                if rejection:
                    return rejection

        context.payload = payload
        return None

    def _screen_strings(self, payload: dict, type_schema) -> Rejection | None:
        names = [name for name, kind in type_schema.items() if kind == FieldType.STRING and name in payload]
        if not names:
            return None
        cleaned = sanitize_hash_strings({name: payload[name] for name in names})
        payload.update(cleaned)
        flagged = [name for name in names if is_suspicious(cleaned[name])]
        if not flagged:
            return None
        log_validation_error("suspicious_content", flagged, "Suspicious content in payload")
        return Rejection(
            kind=ErrorKind.VALIDATION_FAILED,
            message="Suspicious content detected",
            details=f"Rejected fields: {', '.join(flagged)}",
            field="suspicious_content",
        )

    def _sanitize_parameters(self, inbound: InboundRequest, context: RequestContext) -> dict[str, str]:
        params = sanitize_params({**inbound.query_params, **context.path_params})
        for key, value in params.items():
            if is_suspicious(value):
                logger.warning("suspicious_parameter", param=key, path=inbound.path)
        return params
