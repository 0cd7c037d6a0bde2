"""Shared route dependencies."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from fastapi import Request

from lottery_api.store.rls import authenticated_transaction


async def get_payload(request: Request) -> dict[str, Any]:
    """The payload validated by the request pipeline.

    JSON object for body-bearing methods, sanitized parameters otherwise.
    """
    return getattr(request.state, "payload", {})


async def get_connection(request: Request) -> AsyncIterator[Any]:
    """Yield a pooled connection bound to the request's identity."""
    async with authenticated_transaction(getattr(request.state, "auth", None)) as conn:
        yield conn
