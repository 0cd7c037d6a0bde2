"""Business-layer validators for emails, draws, combinations and dates."""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

from lottery_api.logging_config import log_validation_error
from lottery_api.validation.schema import is_integer, matches_email_pattern

BALLS_PER_DRAW = 5
BALL_RANGE = (1, 50)
STARS_PER_DRAW = 2
STAR_RANGE = (1, 12)

# PostgreSQL integer column limit
MAX_COMBINATION_ID = 2_147_483_647

INVALID_BALLS_MESSAGE = "Invalid balls: must be exactly 5 unique integers between 1-50"
INVALID_STARS_MESSAGE = "Invalid stars: must be exactly 2 unique integers between 1-12"

# Monday == 0
DRAW_WEEKDAYS = frozenset({1, 4})

_EMAIL_SUSPICIOUS_CHARS = frozenset('<>"\'&;(){}[]')
_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
_DIGITS_RE = re.compile(r"[0-9]+")


def is_valid_email(email: Any) -> bool:
    """Full address validation applied after :func:`sanitize_email`."""
    if not isinstance(email, str) or not email.strip():
        return False
    if len(email) > 255 or len(email) < 5:
        return False

    clean = email.strip().lower()
    if not matches_email_pattern(clean):
        return False
    if ".." in clean:
        return False
    if clean.startswith(".") or clean.endswith("."):
        return False
    if "@." in clean or ".@" in clean:
        return False
    return not any(char in _EMAIL_SUSPICIOUS_CHARS for char in clean)


def _valid_number_set(values: Any, field: str, count: int, bounds: tuple[int, int]) -> bool:
    if not isinstance(values, list) or len(values) != count:
        return False
    low, high = bounds
    for index, value in enumerate(values):
        if not is_integer(value):
            log_validation_error(f"{field}[{index}]", value, "Must be an integer")
            return False
        if not low <= value <= high:
            log_validation_error(f"{field}[{index}]", value, f"Must be between {low} and {high}")
            return False
    if len(set(values)) != len(values):
        duplicates = sorted({v for v in values if values.count(v) > 1})
        log_validation_error(field, duplicates, "Duplicate numbers found")
        return False
    return True


def valid_lottery_balls(balls: Any) -> bool:
    """Exactly five unique integers between 1 and 50."""
    return _valid_number_set(balls, "balls", BALLS_PER_DRAW, BALL_RANGE)


def valid_lottery_stars(stars: Any) -> bool:
    """Exactly two unique integers between 1 and 12."""
    return _valid_number_set(stars, "stars", STARS_PER_DRAW, STAR_RANGE)


def valid_combination_id(value: Any) -> bool:
    if value is None or not _DIGITS_RE.fullmatch(str(value)):
        return False
    return 0 < int(value) <= MAX_COMBINATION_ID


def matches_date_pattern(value: Any) -> bool:
    return isinstance(value, str) and _DATE_RE.fullmatch(value.strip()) is not None


def valid_date_format(value: Any) -> bool:
    """``YYYY-MM-DD`` with plausible ranges; calendar validity is checked by :func:`parse_date`."""
    if not isinstance(value, str) or not value.strip():
        return False
    clean = value.strip()
    if not _DATE_RE.fullmatch(clean):
        return False
    year, month, day = (int(part) for part in clean.split("-"))
    return 1900 <= year <= 2100 and 1 <= month <= 12 and 1 <= day <= 31


def parse_date(value: str) -> date | None:
    """Return the calendar date for ``YYYY-MM-DD``, or None if the day does not exist."""
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        return None


def is_draw_day(day: date) -> bool:
    """Euromillones draws are held on Tuesdays and Fridays."""
    return day.weekday() in DRAW_WEEKDAYS
