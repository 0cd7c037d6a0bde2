"""Endpoints for a user's saved Euromillones combinations."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException

from lottery_api.api.deps import get_connection, get_payload
from lottery_api.models.lottery import CombinationEntry, UserCombinations
from lottery_api.store import postgres as pg_store
from lottery_api.validation import sanitize_email
from lottery_api.validation.result import validation_error
from lottery_api.validation.rules import (
    INVALID_BALLS_MESSAGE,
    INVALID_STARS_MESSAGE,
    is_valid_email,
    valid_combination_id,
    valid_lottery_balls,
    valid_lottery_stars,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/combinations", tags=["combinations"])


def _check_numbers(balls: Any, stars: Any):
    if not valid_lottery_balls(balls):
        return validation_error(INVALID_BALLS_MESSAGE, "balls")
    if not valid_lottery_stars(stars):
        return validation_error(INVALID_STARS_MESSAGE, "stars")
    return None


def _combination_id(raw: str) -> int | None:
    return int(raw) if valid_combination_id(raw) else None


@router.post("", status_code=201)
async def create_combination(payload: dict = Depends(get_payload), conn: Any = Depends(get_connection)):
    """Save a combination for an existing user."""
    email = sanitize_email(payload.get("email"))
    balls = payload.get("balls")
    stars = payload.get("stars")

    if not is_valid_email(email):
        return validation_error("Invalid email format", "email")
    invalid = _check_numbers(balls, stars)
    if invalid is not None:
        return invalid

    user = await pg_store.get_user_by_email(conn, email)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    if await pg_store.combination_exists(conn, user["id"], balls, stars):
        raise HTTPException(status_code=409, detail="Combination already exists for this user")

    combination_id = await pg_store.create_combination(conn, user["id"], balls, stars)
    logger.info("combination_created", combination_id=combination_id, user_id=user["id"])
    return {
        "message": "Combination successfully added",
        "email": email,
        "balls": balls,
        "stars": stars,
        "combination_id": combination_id,
    }


@router.get("/{email}", response_model=UserCombinations)
async def list_combinations(email: str, params: dict = Depends(get_payload), conn: Any = Depends(get_connection)):
    """All combinations saved by a user."""
    clean = sanitize_email(params.get("email", email))
    if not is_valid_email(clean):
        return validation_error("Invalid email format", "email")

    user = await pg_store.get_user_by_email(conn, clean)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    rows = await pg_store.list_combinations(conn, user["id"])
    return UserCombinations(email=clean, combinations=[CombinationEntry(**row) for row in rows])


@router.put("/{combination_id}")
async def update_combination(
    combination_id: str,
    payload: dict = Depends(get_payload),
    conn: Any = Depends(get_connection),
):
    cid = _combination_id(combination_id)
    if cid is None:
        return validation_error("Invalid combination ID", "id")

    balls = payload.get("balls")
    stars = payload.get("stars")
    invalid = _check_numbers(balls, stars)
    if invalid is not None:
        return invalid

    owner = await pg_store.get_combination_owner(conn, cid)
    if owner is None:
        raise HTTPException(status_code=404, detail="Combination not found")

    if await pg_store.combination_exists(conn, owner, balls, stars):
        raise HTTPException(status_code=409, detail="Combination already exists for this user")

    if not await pg_store.update_combination(conn, cid, balls, stars):
        raise HTTPException(status_code=404, detail="Combination not found")

    logger.info("combination_updated", combination_id=cid)
    return {"message": "Combination updated", "id": cid, "balls": balls, "stars": stars}


@router.delete("/{combination_id}")
async def delete_combination(
    combination_id: str,
    params: dict = Depends(get_payload),
    conn: Any = Depends(get_connection),
):
    cid = _combination_id(params.get("id", combination_id))
    if cid is None:
        return validation_error("Invalid combination ID", "id")

    if not await pg_store.delete_combination(conn, cid):
        raise HTTPException(status_code=404, detail="Combination not found")

    logger.info("combination_deleted", combination_id=cid)
    return {"message": "Combination deleted", "id": cid}
