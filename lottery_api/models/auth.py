"""Pydantic models for stored credentials and the per-request identity."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Credential(BaseModel):
    """A row of the ``credentials`` table."""

    model_config = ConfigDict(frozen=True)

    id: int
    nickname: str
    password_hash: str = Field(repr=False)


class AuthContext(BaseModel):
    """Authenticated identity; lives for exactly one request."""

    model_config = ConfigDict(frozen=True)

    credential_id: int
    nickname: str
