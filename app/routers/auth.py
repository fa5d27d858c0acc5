"""
Sign-up and sign-in endpoints.

POST /sign-up — create a user, return a bearer token (201).
POST /sign-in — check credentials, return a bearer token.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError

from app.dependencies.auth import create_access_token, hash_password, verify_password
from app.dependencies.services import ServiceContainer, get_container
from app.models.schemas import CredentialsRequest, TokenResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_credentials(body: CredentialsRequest) -> tuple[str, str]:
    if not body.username or not body.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username and password are required.",
        )
    return body.username, body.password


@router.post("/sign-up", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(
    body: CredentialsRequest,
    container: ServiceContainer = Depends(get_container),
) -> TokenResponse:
    username, password = _require_credentials(body)

    if await container.users.get_by_username(username) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username already taken.",
        )

    try:
        user = await container.users.create(username, hash_password(password))
    except IntegrityError:
        # Lost a race with a concurrent sign-up for the same name
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username already taken.",
        )

    logger.info("Created user %s (%s)", user.id, user.username)
    return TokenResponse(token=create_access_token(user.id, user.username))


@router.post("/sign-in", response_model=TokenResponse)
async def sign_in(
    body: CredentialsRequest,
    container: ServiceContainer = Depends(get_container),
) -> TokenResponse:
    username, password = _require_credentials(body)

    user = await container.users.get_by_username(username)
    if user is None or not verify_password(password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials.",
        )

    return TokenResponse(token=create_access_token(user.id, user.username))
