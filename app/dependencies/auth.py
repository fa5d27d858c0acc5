"""
Authentication helpers and dependencies for FastAPI routes.

Passwords are hashed with bcrypt; sessions are HS256 JWTs signed with
JWT_SECRET and sent as ``Authorization: Bearer <token>``.  The token subject
(``sub``) is the user id that every owned resource is scoped to.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt
from fastapi import Header, HTTPException, status
from jwt import InvalidTokenError

from app.config import settings

logger = logging.getLogger(__name__)


class AuthVerificationError(Exception):
    pass


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------

def hash_password(password: str, rounds: Optional[int] = None) -> str:
    salt = bcrypt.gensalt(rounds=rounds or settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

def _require_secret() -> str:
    if not settings.JWT_SECRET:
        logger.error("JWT_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="JWT_SECRET is not configured",
        )
    return settings.JWT_SECRET


def create_access_token(user_id: str, username: str) -> str:
    """Sign a token for *user_id*. Raises 500 when JWT_SECRET is missing."""
    now = datetime.now(timezone.utc)
    claims: Dict[str, Any] = {
        "sub": user_id,
        "username": username,
        "iat": now,
        "exp": now + timedelta(minutes=settings.JWT_EXPIRES_MINUTES),
    }
    return jwt.encode(claims, _require_secret(), algorithm=settings.JWT_ALGORITHM)


def _extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthVerificationError("No token provided")
    parts = authorization.strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise AuthVerificationError("Authorization header must be Bearer token")
    return parts[1].strip()


def decode_access_token(token: str, secret: str) -> Dict[str, Any]:
    try:
        claims = jwt.decode(token, secret, algorithms=[settings.JWT_ALGORITHM])
    except InvalidTokenError as exc:
        raise AuthVerificationError("Invalid or expired token") from exc

    user_id = claims.get("sub")
    if not isinstance(user_id, str) or not user_id:
        raise AuthVerificationError("Token missing subject claim")
    return claims


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

async def get_current_user_id(
    authorization: Optional[str] = Header(None),
) -> str:
    """Return the authenticated user id. Raises 401 for a missing or invalid token."""
    secret = _require_secret()
    try:
        token = _extract_bearer_token(authorization)
        claims = decode_access_token(token, secret)
    except AuthVerificationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    return claims["sub"]
