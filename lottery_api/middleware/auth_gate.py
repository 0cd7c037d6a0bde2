"""Authentication gate for protected routes."""

from __future__ import annotations

import structlog

from lottery_api.api.auth import CredentialVerifier
from lottery_api.middleware.pipeline import InboundRequest, Middleware, RequestContext
from lottery_api.validation.result import ErrorKind, Rejection

logger = structlog.get_logger()


class AuthGate(Middleware):
    """Require valid Basic credentials on protected routes.

    - Unprotected routes pass through without touching the header
    - An ``Authorization`` header that is not ``<scheme> <value>`` is a 400
    - Every other failure is the same 401, whatever the cause
    - On success the identity is stored on the context for the DB layer
    """

    def __init__(self, verifier: CredentialVerifier, realm: str = "lottery") -> None:
        self.verifier = verifier
        self.realm = realm

    async def process_request(self, inbound: InboundRequest, context: RequestContext) -> Rejection | None:
        if context.route is None or not context.route.protected:
            return None

        header = inbound.headers.get("authorization")
        if header and header.strip() and len(header.split()) < 2:
            logger.warning("auth_header_malformed", path=inbound.path)
            return Rejection(
                kind=ErrorKind.MALFORMED_REQUEST,
                message="Malformed Authorization header",
                details="Expected 'Basic <credentials>'",
                field="authorization",
            )

        auth = await self.verifier.authenticate(header)
        if auth is None:
            return self._unauthorized()

        context.auth = auth
        structlog.contextvars.bind_contextvars(credential_id=auth.credential_id)
        return None

    def _unauthorized(self) -> Rejection:
        return Rejection(
            kind=ErrorKind.UNAUTHENTICATED,
            message="Authentication required",
            headers={"WWW-Authenticate": f'Basic realm="{self.realm}"'},
        )
