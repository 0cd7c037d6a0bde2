"""Pydantic response models for users, combinations and draw results."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class UserResponse(BaseModel):
    email: str
    user_id: int


class CombinationEntry(BaseModel):
    id: int
    balls: list[int]
    stars: list[int]


class UserCombinations(BaseModel):
    """Response body for a user's saved combinations."""

    email: str
    combinations: list[CombinationEntry] = Field(default_factory=list)


class DrawResult(BaseModel):
    """Response body for a single draw."""

    date: str
    balls: list[int]
    stars: list[int]
    jackpot: Any = None
