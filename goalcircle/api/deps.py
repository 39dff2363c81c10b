"""
goalcircle.api.deps — FastAPI dependency injection & identity gate
===================================================================

Tokens are issued elsewhere; this module only verifies them.  A valid
token is an HS256 JWT signed with ``JWT_SECRET`` whose ``sub`` claim is the
numeric user id and whose ``username`` claim is the display name.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from goalcircle.config import GoalCircleConfig, load_config
from goalcircle.database.engine import create_db_engine
from goalcircle.services import user_service

_WEAK_SECRETS = frozenset({
    "goalcircle-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@dataclass(frozen=True, slots=True)
class CurrentUser:
    """Verified caller identity."""

    id: int
    username: str


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> GoalCircleConfig:
    return load_config()


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer …`` header value."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None


def decode_identity(token: str) -> CurrentUser:
    """Verify *token* and return the identity it carries.

    Raises :class:`InvalidTokenError` on a bad signature, expiry, or
    malformed claims.
    """
    payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise InvalidTokenError("Token has no numeric subject") from None
    username = str(payload.get("username") or f"user-{user_id}")
    return CurrentUser(id=user_id, username=username)


def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
    engine: Engine = Depends(get_engine),
) -> CurrentUser:
    """Validate the bearer JWT, register the identity, and return it.

    Raises 401 if the token is missing or invalid.
    """
    token = bearer_token(authorization)
    if token is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    try:
        user = decode_identity(token)
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    user_service.sync_user(engine, user.id, user.username)
    return user
