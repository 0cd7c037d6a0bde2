"""Euromillones draw results: public lookup and authenticated ingestion."""

from __future__ import annotations

from datetime import date
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from lottery_api.api.deps import get_connection, get_payload
from lottery_api.models.lottery import DrawResult
from lottery_api.prizes import find_winners
from lottery_api.store import postgres as pg_store
from lottery_api.validation.result import validation_error
from lottery_api.validation.rules import (
    INVALID_BALLS_MESSAGE,
    INVALID_STARS_MESSAGE,
    is_draw_day,
    matches_date_pattern,
    parse_date,
    valid_date_format,
    valid_lottery_balls,
    valid_lottery_stars,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/results", tags=["results"])


def _check_draw_date(raw: Any) -> date | JSONResponse:
    """Parse *raw* as the date of a past draw, or build the 400 explaining why not."""
    if not matches_date_pattern(raw):
        return validation_error("Invalid date format (use YYYY-MM-DD)", "date")
    day = parse_date(raw) if valid_date_format(raw) else None
    if day is None:
        return validation_error("Invalid date (day or month does not exist)", "date")
    if day > date.today():
        return validation_error("Date cannot be in the future", "date")
    if not is_draw_day(day):
        return validation_error(
            f"No Euromillones draw on {day.strftime('%A')}. "
            "Draws are held on Tuesdays and Fridays only.",
            "date",
        )
    return day


@router.get("/{draw_date}", response_model=DrawResult)
async def get_result(draw_date: str, params: dict = Depends(get_payload), conn: Any = Depends(get_connection)):
    """Result of the draw held on ``draw_date`` (YYYY-MM-DD)."""
    checked = _check_draw_date(params.get("date", draw_date))
    if isinstance(checked, JSONResponse):
        return checked

    row = await pg_store.get_result(conn, checked)
    if row is None:
        raise HTTPException(status_code=404, detail="No result found for this date")
    return DrawResult(**row)


@router.get("/{draw_date}/winners")
async def get_winners(draw_date: str, params: dict = Depends(get_payload), conn: Any = Depends(get_connection)):
    """Saved combinations that won a prize in the draw held on ``draw_date``."""
    checked = _check_draw_date(params.get("date", draw_date))
    if isinstance(checked, JSONResponse):
        return checked

    result = await pg_store.get_result(conn, checked)
    if result is None:
        raise HTTPException(status_code=404, detail="No result found for this date")

    winners = find_winners(result, await pg_store.list_all_combinations(conn))
    return {
        "date": result["date"],
        "winning_combination": {
            "balls": result["balls"],
            "stars": result["stars"],
            "jackpot": result["jackpot"],
        },
        "winners": winners,
        "total_winners": len(winners),
    }


@router.post("")
async def record_result(payload: dict = Depends(get_payload), conn: Any = Depends(get_connection)):
    """Record a draw result, replacing any stored result for the same date."""
    checked = _check_draw_date(payload.get("date"))
    if isinstance(checked, JSONResponse):
        return checked

    balls = payload.get("balls")
    stars = payload.get("stars")
    if not valid_lottery_balls(balls):
        return validation_error(INVALID_BALLS_MESSAGE, "balls")
    if not valid_lottery_stars(stars):
        return validation_error(INVALID_STARS_MESSAGE, "stars")

    jackpot = payload.get("jackpot")
    inserted = await pg_store.save_result(conn, checked, balls, stars, jackpot)
    logger.info("draw_result_saved", draw_date=checked.isoformat(), inserted=inserted)

    body = DrawResult(date=checked.isoformat(), balls=balls, stars=stars, jackpot=jackpot).model_dump()
    body["message"] = "Result recorded" if inserted else "Result updated"
    return JSONResponse(status_code=201 if inserted else 200, content=body)
