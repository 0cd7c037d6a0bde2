"""PostgreSQL async connection pool, password hashing and CRUD helpers.

Resource helpers take an explicit connection so callers can run them inside
:func:`lottery_api.store.rls.authenticated_transaction`, where the
row-level security context is bound.
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Any

import asyncpg
import bcrypt
import structlog

from lottery_api.logging_config import redact_dsn
from lottery_api.models.auth import Credential

logger = structlog.get_logger()

_pool: asyncpg.Pool | None = None

BCRYPT_ROUNDS = 12


class StoreUnavailable(Exception):
    """Raised when the database connection pool is not available."""
    pass


async def init_postgres(url: str, min_size: int = 2, max_size: int = 10):
    """Initialize PostgreSQL connection pool."""
    global _pool
    try:
        _pool = await asyncpg.create_pool(url, min_size=min_size, max_size=max_size)
        logger.info("postgres_connected", url=redact_dsn(url), min_size=min_size, max_size=max_size)
        return _pool
    except Exception as exc:
        logger.error("postgres_connect_failed", url=redact_dsn(url), error=str(exc))
        _pool = None
        return None


def get_pool() -> asyncpg.Pool | None:
    """Return the current connection pool."""
    return _pool


async def run_migrations() -> None:
    """Execute schema.sql against the database."""
    if _pool is None:
        logger.warning("postgres_migrations_skipped", reason="no pool")
        return
    schema_path = Path(__file__).parent.parent / "models" / "schema.sql"
    sql = schema_path.read_text()
    async with _pool.acquire() as conn:
        await conn.execute(sql)
    logger.info("postgres_migrations_complete")


async def ping() -> bool:
    """Check if the database answers a trivial query."""
    if _pool is None:
        return False
    try:
        async with _pool.acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1
    except Exception as exc:
        logger.warning("postgres_ping_failed", error=str(exc))
        return False


async def close_postgres() -> None:
    """Close the PostgreSQL connection pool."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("postgres_closed")


# --- Password hashing ---

def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Hash a password with bcrypt for storage in ``credentials.password_hash``."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def verify_password(password: str, stored_hash: str) -> bool:
    """Verify a password against a stored bcrypt hash (constant-time)."""
    try:
        return bcrypt.checkpw(password.encode(), stored_hash.encode())
    except ValueError:
        # Not a bcrypt hash
        return False


# --- Credentials ---

async def get_credential(nickname: str) -> Credential | None:
    """Fetch the credential for *nickname*, or None."""
    if _pool is None:
        raise StoreUnavailable("Database connection pool not initialized")
    async with _pool.acquire() as conn:
        row = await conn.fetchrow(
            "SELECT id, nickname, password_hash FROM credentials WHERE nickname = $1",
            nickname,
        )
    return Credential(**dict(row)) if row else None


# --- Helpers ---

def _affected(status: str) -> int:
    """Row count from a command tag such as ``UPDATE 1``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


def _load_json(value: Any) -> Any:
    return json.loads(value) if isinstance(value, str) else value


# --- Users ---

async def get_user_by_email(conn: asyncpg.Connection, email: str) -> dict[str, Any] | None:
    row = await conn.fetchrow("SELECT id, email FROM users WHERE email = $1", email)
    return dict(row) if row else None


async def create_user(conn: asyncpg.Connection, email: str) -> int | None:
    """Insert a user; returns the new id, or None if the email already exists."""
    return await conn.fetchval(
        "INSERT INTO users (email) VALUES ($1) ON CONFLICT (email) DO NOTHING RETURNING id",
        email,
    )


async def update_user_email(conn: asyncpg.Connection, old_email: str, new_email: str) -> bool:
    status = await conn.execute("UPDATE users SET email = $1 WHERE email = $2", new_email, old_email)
    return _affected(status) > 0


async def delete_user(conn: asyncpg.Connection, email: str) -> bool:
    """Delete a user; their combinations go with them (ON DELETE CASCADE)."""
    status = await conn.execute("DELETE FROM users WHERE email = $1", email)
    return _affected(status) > 0


# --- Combinations ---

async def list_combinations(conn: asyncpg.Connection, user_id: int) -> list[dict[str, Any]]:
    rows = await conn.fetch(
        "SELECT id, balls, stars FROM combinations WHERE user_id = $1 ORDER BY id",
        user_id,
    )
    return [
        {"id": row["id"], "balls": _load_json(row["balls"]), "stars": _load_json(row["stars"])}
        for row in rows
    ]


async def combination_exists(conn: asyncpg.Connection, user_id: int, balls: list[int], stars: list[int]) -> bool:
    found = await conn.fetchval(
        "SELECT id FROM combinations WHERE user_id = $1 AND balls = $2::jsonb AND stars = $3::jsonb",
        user_id, json.dumps(balls), json.dumps(stars),
    )
    return found is not None


async def create_combination(conn: asyncpg.Connection, user_id: int, balls: list[int], stars: list[int]) -> int:
    return await conn.fetchval(
        "INSERT INTO combinations (user_id, balls, stars) VALUES ($1, $2::jsonb, $3::jsonb) RETURNING id",
        user_id, json.dumps(balls), json.dumps(stars),
    )


async def get_combination_owner(conn: asyncpg.Connection, combination_id: int) -> int | None:
    return await conn.fetchval("SELECT user_id FROM combinations WHERE id = $1", combination_id)


async def update_combination(conn: asyncpg.Connection, combination_id: int, balls: list[int], stars: list[int]) -> bool:
    status = await conn.execute(
        "UPDATE combinations SET balls = $1::jsonb, stars = $2::jsonb WHERE id = $3",
        json.dumps(balls), json.dumps(stars), combination_id,
    )
    return _affected(status) > 0


async def delete_combination(conn: asyncpg.Connection, combination_id: int) -> bool:
    status = await conn.execute("DELETE FROM combinations WHERE id = $1", combination_id)
    return _affected(status) > 0


# --- Results ---

async def get_result(conn: asyncpg.Connection, draw_date: date) -> dict[str, Any] | None:
    row = await conn.fetchrow(
        "SELECT date, balls, stars, jackpot FROM results WHERE date = $1",
        draw_date,
    )
    if row is None:
        return None
    return {
        "date": row["date"].isoformat(),
        "balls": _load_json(row["balls"]),
        "stars": _load_json(row["stars"]),
        "jackpot": _load_json(row["jackpot"]),
    }


async def save_result(
    conn: asyncpg.Connection,
    draw_date: date,
    balls: list[int],
    stars: list[int],
    jackpot: Any,
) -> bool:
    """Upsert a draw result. Returns True if a new row was inserted."""
    inserted = await conn.fetchval(
        """INSERT INTO results (date, balls, stars, jackpot)
           VALUES ($1, $2::jsonb, $3::jsonb, $4::jsonb)
           ON CONFLICT (date) DO UPDATE
           SET balls = EXCLUDED.balls,
               stars = EXCLUDED.stars,
               jackpot = EXCLUDED.jackpot,
               updated_at = now()
           RETURNING (xmax = 0)""",
        draw_date, json.dumps(balls), json.dumps(stars), json.dumps(jackpot),
    )
    return bool(inserted)


async def list_all_combinations(conn: asyncpg.Connection) -> list[dict[str, Any]]:
    """Every saved combination with its owner's email, for prize matching."""
    rows = await conn.fetch(
        """SELECT u.email, c.balls, c.stars
           FROM combinations c JOIN users u ON u.id = c.user_id
           ORDER BY c.id"""
    )
    return [
        {"email": row["email"], "balls": _load_json(row["balls"]), "stars": _load_json(row["stars"])}
        for row in rows
    ]
