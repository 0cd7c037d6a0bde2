"""HTTP Basic authentication against the ``credentials`` table."""

from __future__ import annotations

import base64
import binascii
from collections.abc import Awaitable, Callable
from functools import lru_cache

import structlog

from lottery_api.models.auth import AuthContext, Credential
from lottery_api.store import postgres as pg_store

logger = structlog.get_logger()

CredentialLookup = Callable[[str], Awaitable["Credential | None"]]

# Placeholder password verified when the nickname is unknown
_DUMMY_PASSWORD = "not-a-real-password"


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return pg_store.hash_password(_DUMMY_PASSWORD)


def parse_basic_credentials(header: str | None) -> tuple[str, str] | None:
    """Split ``Basic <base64(nickname:password)>`` into its two halves.

    Returns None if the scheme is not Basic, the payload is not valid base64
    or UTF-8, or either half is empty.
    """
    if not header:
        return None
    scheme, _, encoded = header.strip().partition(" ")
    if scheme.lower() != "basic" or not encoded.strip():
        return None
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    nickname, sep, password = decoded.partition(":")
    if not sep or not nickname or not password:
        return None
    return nickname, password


class CredentialVerifier:
    """Verify Basic credentials; every failure mode returns None (fail closed).

    *lookup* resolves a nickname to a :class:`Credential`. It defaults to
    :func:`lottery_api.store.postgres.get_credential`, resolved at call time.
    """

    def __init__(self, lookup: CredentialLookup | None = None) -> None:
        self._lookup = lookup

    async def _find(self, nickname: str) -> Credential | None:
        if self._lookup is not None:
            return await self._lookup(nickname)
        return await pg_store.get_credential(nickname)

    async def authenticate(self, authorization: str | None) -> AuthContext | None:
        try:
            parsed = parse_basic_credentials(authorization)
            if parsed is None:
                return None
            nickname, password = parsed

            logger.debug("auth_attempt", nickname=nickname)
            credential = await self._find(nickname)
            if credential is None:
                # Equalize timing with the wrong-password path
                pg_store.verify_password(password, _dummy_hash())
                logger.warning("auth_failed", reason="unknown_nickname")
                return None

            if not pg_store.verify_password(password, credential.password_hash):
                logger.warning("auth_failed", reason="invalid_password", credential_id=credential.id)
                return None

            logger.info("auth_succeeded", credential_id=credential.id)
            return AuthContext(credential_id=credential.id, nickname=credential.nickname)
        except Exception as exc:
            logger.error("auth_error", error_type=type(exc).__name__)
            return None
