"""User CRUD endpoints. All require authentication."""

from __future__ import annotations

from typing import Any

import asyncpg
import structlog
from fastapi import APIRouter, Depends, HTTPException

from lottery_api.api.deps import get_connection, get_payload
from lottery_api.logging_config import log_validation_error
from lottery_api.models.lottery import UserResponse
from lottery_api.store import postgres as pg_store
from lottery_api.validation import sanitize_email
from lottery_api.validation.result import validation_error
from lottery_api.validation.rules import is_valid_email

logger = structlog.get_logger()

router = APIRouter(prefix="/user", tags=["users"])


@router.get("/{email}", response_model=UserResponse)
async def get_user(email: str, params: dict = Depends(get_payload), conn: Any = Depends(get_connection)):
    """Look up a user by email."""
    clean = sanitize_email(params.get("email", email))
    if not is_valid_email(clean):
        log_validation_error("email", email, "Invalid email format")
        return validation_error("Invalid email format", "email")

    user = await pg_store.get_user_by_email(conn, clean)
    if user is None:
        logger.info("user_not_found")
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse(email=user["email"], user_id=user["id"])


@router.post("", status_code=201)
async def create_user(payload: dict = Depends(get_payload), conn: Any = Depends(get_connection)):
    """Create a user. One user per email."""
    email = sanitize_email(payload.get("email"))
    if not is_valid_email(email):
        log_validation_error("email", payload.get("email"), "Invalid email format")
        return validation_error("Invalid email format", "email")

    user_id = await pg_store.create_user(conn, email)
    if user_id is None:
        logger.warning("user_already_exists")
        raise HTTPException(status_code=409, detail="Email already exists")

    logger.info("user_created", user_id=user_id)
    return {"message": "User created", "email": email, "user_id": user_id}


@router.put("/{email}")
async def update_user(email: str, payload: dict = Depends(get_payload), conn: Any = Depends(get_connection)):
    """Change a user's email."""
    old_email = sanitize_email(email)
    new_email = sanitize_email(payload.get("email"))

    if not is_valid_email(old_email):
        log_validation_error("old_email", email, "Invalid old email format")
        return validation_error("Invalid old email format", "old_email")
    if not is_valid_email(new_email):
        log_validation_error("new_email", payload.get("email"), "Invalid new email format")
        return validation_error("Invalid new email format", "new_email")

    try:
        # Savepoint: a unique violation must not abort the request transaction
        async with conn.transaction():
            updated = await pg_store.update_user_email(conn, old_email, new_email)
    except asyncpg.UniqueViolationError:
        logger.warning("user_email_conflict")
        raise HTTPException(status_code=409, detail="New email already exists")

    if not updated:
        raise HTTPException(status_code=404, detail="User not found")

    logger.info("user_email_updated")
    return {"message": "User email updated", "old_email": old_email, "new_email": new_email}


@router.delete("/{email}")
async def delete_user(email: str, params: dict = Depends(get_payload), conn: Any = Depends(get_connection)):
    """Delete a user and, by cascade, their combinations."""
    clean = sanitize_email(params.get("email", email))
    if not is_valid_email(clean):
        log_validation_error("email", email, "Invalid email format")
        return validation_error("Invalid email format", "email")

    if not await pg_store.delete_user(conn, clean):
        raise HTTPException(status_code=404, detail="User not found")

    logger.info("user_deleted")
    return {"message": "User deleted", "email": clean}
