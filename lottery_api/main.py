"""FastAPI application: request-defense pipeline in front of the lottery routes."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

import asyncpg
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from lottery_api.api.auth import CredentialVerifier
from lottery_api.api.combinations_routes import router as combinations_router
from lottery_api.api.docs_routes import router as docs_router
from lottery_api.api.results_routes import router as results_router
from lottery_api.api.system_routes import router as system_router
from lottery_api.api.users_routes import router as users_router
from lottery_api.config.loader import LotterySettings, get_settings, load_settings
from lottery_api.health import router as health_router
from lottery_api.logging_config import setup_logging
from lottery_api.middleware.auth_gate import AuthGate
from lottery_api.middleware.context_injector import ContextInjector
from lottery_api.middleware.pipeline import InboundRequest, RequestContext, RequestPipeline
from lottery_api.middleware.rate_limiter import RateLimiter, SlidingWindowRateLimiter, run_window_reaper
from lottery_api.middleware.request_checks import ContentTypeCheck, HeaderCheck, PayloadSizeCheck
from lottery_api.middleware.request_sanitizer import RequestSanitizer
from lottery_api.store import postgres as pg_store
from lottery_api.store.postgres import StoreUnavailable
from lottery_api.validation.result import Rejection, now_iso, upstream_failure

logger = structlog.get_logger()

_pipeline: RequestPipeline | None = None
_reaper_task: asyncio.Task | None = None


def _build_pipeline(settings: LotterySettings, verifier: CredentialVerifier | None = None) -> RequestPipeline:
    """Build the ordered request-defense pipeline.

    Authentication runs after the cheap header checks and before the body is
    read, so unauthenticated clients never get their payload parsed.
    """
    limiter = SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    pipeline = RequestPipeline()
    pipeline.add(ContextInjector())                                             # 0: request id
    pipeline.add(RateLimiter(limiter), enabled=settings.rate_limit_enabled)     # 1
    pipeline.add(HeaderCheck())                                                 # 2: advisory
    pipeline.add(ContentTypeCheck())                                            # 3
    pipeline.add(PayloadSizeCheck(settings.max_payload_bytes))                  # 4: declared length
    pipeline.add(AuthGate(verifier or CredentialVerifier(), realm=settings.auth_realm))  # 5: protected only
    pipeline.add(RequestSanitizer(settings.max_payload_bytes))                  # 6: payload
    return pipeline


def get_pipeline() -> RequestPipeline:
    """Return the active pipeline, building it on first use."""
    global _pipeline
    if _pipeline is None:
        _pipeline = _build_pipeline(get_settings())
    return _pipeline


def _rate_limiter(pipeline: RequestPipeline) -> SlidingWindowRateLimiter | None:
    stage = pipeline.get_middleware(RateLimiter)
    return stage.limiter if stage is not None else None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    global _pipeline, _reaper_task

    settings = load_settings()
    setup_logging(log_level=settings.log_level, json_format=settings.log_json)

    # Init PostgreSQL (non-fatal if unavailable)
    await pg_store.init_postgres(
        settings.postgres_url,
        min_size=settings.postgres_pool_min,
        max_size=settings.postgres_pool_max,
    )
    await pg_store.run_migrations()

    _pipeline = _build_pipeline(settings)

    limiter = _rate_limiter(_pipeline)
    if limiter is not None and settings.rate_limit_enabled:
        _reaper_task = asyncio.create_task(
            run_window_reaper(limiter, settings.rate_limit_reap_interval)
        )

    logger.info("api_started", port=settings.listen_port, stages=_pipeline.stage_names)

    yield

    logger.info("api_shutting_down")
    if _reaper_task and not _reaper_task.done():
        _reaper_task.cancel()
        try:
            await _reaper_task
        except asyncio.CancelledError:
            pass
    _reaper_task = None

    await pg_store.close_postgres()
    logger.info("api_stopped")


app = FastAPI(
    title="Euromillones Results API",
    version="1.0",
    description="Euromillones draw results, users and their saved combinations.",
    lifespan=lifespan,
)


@app.middleware("http")
async def request_defense(request: Request, call_next) -> Response:
    """Run every request through the pipeline before it reaches a route."""
    pipeline = get_pipeline()
    settings = get_settings()
    inbound = InboundRequest.from_starlette(request, trust_forwarded_for=settings.trust_forwarded_for)
    context = RequestContext()

    outcome = await pipeline.run(inbound, context)
    if isinstance(outcome, Rejection):
        # Short-circuit responses still get request-id and rate-limit headers
        return await pipeline.process_response(outcome.to_response(), context)

    request.state.payload = outcome.payload
    request.state.auth = context.auth
    request.state.request_id = context.request_id

    response = await call_next(request)
    return await pipeline.process_response(response, context)


# --- Exception handlers ---

@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
    logger.error("store_unavailable", error=str(exc))
    return JSONResponse(status_code=503, content={"error": "Database unavailable", "timestamp": now_iso()})


@app.exception_handler(asyncpg.PostgresError)
async def database_error_handler(request: Request, exc: asyncpg.PostgresError) -> JSONResponse:
    logger.error("database_error", error=str(exc), error_type=type(exc).__name__)
    return upstream_failure(exc).to_response()


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": str(exc.errors()), "timestamp": now_iso()},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", error_type=type(exc).__name__)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# --- Routers ---

app.include_router(system_router)
app.include_router(health_router)
app.include_router(docs_router)
app.include_router(users_router)
app.include_router(combinations_router)
app.include_router(results_router)
