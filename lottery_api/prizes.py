"""Prize matching of saved combinations against a draw result.

The stored jackpot is a prize table keyed by balls matched, then stars
matched: ``{"5": {"2": 17000000.0, "1": 250000.0}, "2": {"1": 4.5}, ...}``.
Combinations whose match has no entry in the table win nothing.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import structlog

logger = structlog.get_logger()


def count_matches(chosen: Iterable[Any], drawn: Iterable[Any]) -> int:
    """Number of distinct values present in both sequences."""
    try:
        return len({int(n) for n in chosen} & {int(n) for n in drawn})
    except (TypeError, ValueError):
        return 0


def prize_for(jackpot: Any, balls_matched: int, stars_matched: int) -> float:
    """Amount paid for the given match, 0.0 when the table has no entry."""
    if not isinstance(jackpot, Mapping):
        return 0.0
    by_stars = jackpot.get(str(balls_matched))
    if not isinstance(by_stars, Mapping):
        return 0.0
    try:
        return float(by_stars.get(str(stars_matched), 0))
    except (TypeError, ValueError):
        return 0.0


def format_prize(amount: float) -> str:
    return f"{amount:.2f} \u20ac"


def find_winners(result: Mapping[str, Any], combinations: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Every combination whose match earns a prize, in input order."""
    winners = []
    for combination in combinations:
        balls_matched = count_matches(combination["balls"], result["balls"])
        stars_matched = count_matches(combination["stars"], result["stars"])
        prize = prize_for(result.get("jackpot"), balls_matched, stars_matched)
        if prize > 0:
            winners.append({
                "email": combination["email"],
                "balls_matched": balls_matched,
                "stars_matched": stars_matched,
                "prize": format_prize(prize),
            })
    logger.info("winners_computed", draw_date=result.get("date"), winners=len(winners))
    return winners
