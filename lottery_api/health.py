"""Health and readiness endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from lottery_api.store import postgres as pg_store

logger = structlog.get_logger()
router = APIRouter(tags=["system"])


@router.get("/health")
async def health():
    """Health check: API status and database reachability."""
    db_ok = await pg_store.ping()
    if db_ok:
        return {
            "status": "OK",
            "message": "API is live and database is reachable",
            "database": "up",
        }
    return JSONResponse(
        status_code=500,
        content={
            "status": "ERROR",
            "message": "API is down or database is unreachable",
            "database": "down",
        },
    )


@router.get("/ready")
async def ready():
    """Readiness check: 200 only when the database answers."""
    if await pg_store.ping():
        return {"status": "ready"}
    return JSONResponse(
        status_code=503,
        content={"status": "not_ready", "database": "down"},
    )
