"""PostgreSQL Row-Level Security (RLS): authenticated identity at the database level.

Provides ``bind_security_context`` / ``clear_security_context`` which set and
reset the GUC ``app.authenticated_user`` on a connection, and the
``authenticated_transaction`` async context manager that scopes one pooled
connection to one request:

    acquire -> bind -> BEGIN ... COMMIT/ROLLBACK -> RESET -> release

The bind is session-level so it survives a rolled-back transaction; the
``RESET`` in the ``finally`` block is what guarantees the next borrower of the
connection never observes the previous request's identity. If the reset itself
fails the connection is terminated rather than returned to the pool.

When ``rls_enabled`` is ``False`` in
:class:`~lottery_api.config.loader.LotterySettings`, the bind is skipped with a
warning and the policies see no identity.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import structlog

from lottery_api.models.auth import AuthContext
from lottery_api.store.postgres import StoreUnavailable, get_pool

if TYPE_CHECKING:
    import asyncpg

logger = structlog.get_logger()

# Session variable consulted by the RLS policies in schema.sql.
AUTH_SETTING = "app.authenticated_user"


async def bind_security_context(conn: Any, auth: AuthContext) -> None:
    """Mark *conn* as acting for ``auth.nickname``."""
    await conn.execute(
        "SELECT set_config('app.authenticated_user', $1, false)",
        auth.nickname,
    )
    logger.debug("security_context_bound", credential_id=auth.credential_id)


async def clear_security_context(conn: Any) -> None:
    """Reset the identity marker on *conn*."""
    await conn.execute("RESET app.authenticated_user")
    logger.debug("security_context_cleared")


async def current_security_context(conn: Any) -> str | None:
    """Return the nickname bound to *conn*, or None."""
    value = await conn.fetchval("SELECT current_setting('app.authenticated_user', true)")
    return value or None


def _is_rls_enabled() -> bool:
    from lottery_api.config.loader import get_settings  # noqa: PLC0415

    return get_settings().rls_enabled


@asynccontextmanager
async def authenticated_transaction(auth: AuthContext | None):
    """Acquire a dedicated connection with *auth* bound for the block's lifetime.

    Usage::

        async with authenticated_transaction(auth) as conn:
            rows = await conn.fetch("SELECT * FROM combinations")

    With ``auth=None`` (public routes) the connection carries no identity.
    The context is cleared on every exit path, including errors and
    cancellation.
    """
    pool = get_pool()
    if pool is None:
        raise StoreUnavailable("Database pool not initialized")

    bind = auth is not None and _is_rls_enabled()
    if auth is not None and not bind:
        logger.warning(
            "rls_disabled",
            msg="RLS context binding is disabled, row policies see no identity",
        )

    async with pool.acquire() as conn:
        try:
            if bind:
                await bind_security_context(conn, auth)
            async with conn.transaction():
                yield conn
        finally:
            if bind:
                await _release_context(conn)


async def _release_context(conn: asyncpg.Connection) -> None:
    try:
        await clear_security_context(conn)
    except Exception as exc:
        logger.error("security_context_clear_failed", error=str(exc), action="terminate_connection")
        conn.terminate()
