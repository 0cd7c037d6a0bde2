"""Ordered request-defense chain framework."""

from __future__ import annotations

import abc
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

import structlog
from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import Response

from lottery_api.config.route_rules import READ_ONLY_METHODS, RouteRule, resolve_route
from lottery_api.models.auth import AuthContext
from lottery_api.validation.result import Accepted, ErrorKind, Outcome, Rejection

logger = structlog.get_logger()

BodyReader = Callable[[], Awaitable[bytes]]


@dataclass
class InboundRequest:
    """Transport-neutral view of an incoming request.

    The body is read at most once and cached.
    """

    method: str
    path: str
    headers: Headers = field(default_factory=Headers)
    query_params: dict[str, str] = field(default_factory=dict)
    client_host: str = "unknown"
    body_reader: BodyReader | None = None
    raw_body: bytes | None = None

    @classmethod
    def from_starlette(cls, request: Request, trust_forwarded_for: bool = False) -> InboundRequest:
        return cls(
            method=request.method.upper(),
            path=request.url.path,
            headers=request.headers,
            query_params=dict(request.query_params),
            client_host=client_address(request, trust_forwarded_for),
            body_reader=request.body,
        )

    @property
    def is_read_only(self) -> bool:
        return self.method in READ_ONLY_METHODS

    async def body(self) -> bytes:
        if self.raw_body is None:
            self.raw_body = await self.body_reader() if self.body_reader else b""
        return self.raw_body


def client_address(request: Request, trust_forwarded_for: bool = False) -> str:
    """Resolve the rate-limit key for *request*."""
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return request.client.host if request.client else "unknown"


@dataclass
class RequestContext:
    """Mutable context passed through the pipeline."""

    request_id: str = ""
    route: RouteRule | None = None
    path_params: dict[str, str] = field(default_factory=dict)
    auth: AuthContext | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.request_id:
            self.request_id = uuid4().hex[:8]


class Middleware(abc.ABC):
    """Base class for a pipeline stage."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abc.abstractmethod
    async def process_request(self, inbound: InboundRequest, context: RequestContext) -> Rejection | None:
        """Inspect an incoming request.

        Return None to continue the pipeline, or a Rejection to short-circuit.
        """
        ...

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        """Process an outgoing response. Override if needed."""
        return response


class RequestPipeline:
    """Ordered list of stages. Requests run forward, responses in reverse.

    ``run`` returns the first stage's Rejection, or ``Accepted`` carrying the
    payload the stages left on the context.
    """

    def __init__(self) -> None:
        self._middleware: list[Middleware] = []
        self._enabled: dict[str, bool] = {}

    def add(self, middleware: Middleware, enabled: bool = True) -> None:
        """Add a stage to the end of the pipeline."""
        self._middleware.append(middleware)
        self._enabled[middleware.name] = enabled
        logger.info("middleware_registered", name=middleware.name, enabled=enabled)

    def set_enabled(self, name: str, enabled: bool) -> None:
        """Enable or disable a stage by name."""
        if name in self._enabled:
            self._enabled[name] = enabled

    def get_middleware(self, cls: type) -> Middleware | None:
        for mw in self._middleware:
            if isinstance(mw, cls):
                return mw
        return None

    @property
    def stage_names(self) -> list[str]:
        return [mw.name for mw in self._middleware]

    async def run(self, inbound: InboundRequest, context: RequestContext) -> Outcome:
        """Run *inbound* through every enabled stage in order.

        A stage that raises is logged and turned into a 500 rejection; the
        remaining stages are skipped.
        """
        if context.route is None:
            context.route, context.path_params = resolve_route(inbound.method, inbound.path)

        for mw in self._middleware:
            if not self._enabled.get(mw.name, True):
                continue
            try:
                rejection = await mw.process_request(inbound, context)
            except Exception:
                logger.exception("middleware_request_error", middleware=mw.name)
                return Rejection(kind=ErrorKind.UPSTREAM_FAILURE, message="Internal server error")
            if rejection is not None:
                logger.info(
                    "middleware_short_circuit",
                    middleware=mw.name,
                    status=rejection.status,
                    field=rejection.field,
                )
                return rejection
        return Accepted(context.payload)

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        """Run *response* through every enabled stage in reverse order."""
        for mw in reversed(self._middleware):
            if not self._enabled.get(mw.name, True):
                continue
            try:
                response = await mw.process_response(response, context)
            except Exception:
                logger.exception("middleware_response_error", middleware=mw.name)
        return response

