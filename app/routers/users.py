"""
User profile endpoints.
"""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from app.dependencies.auth import get_current_user_id
from app.dependencies.services import ServiceContainer, get_container
from app.models.schemas import UserEnvelope, UserResponse, UserSummary

router = APIRouter()


async def _load_user(container: ServiceContainer, user_id: str) -> UserEnvelope:
    user = await container.users.get(user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found.",
        )
    return UserEnvelope(user=UserResponse.model_validate(user))


@router.get("/", response_model=List[UserSummary])
async def list_users(
    user_id: str = Depends(get_current_user_id),
    container: ServiceContainer = Depends(get_container),
) -> List[UserSummary]:
    """Every registered user, as ``{id, username}``."""
    users = await container.users.list_all()
    return [UserSummary.model_validate(u) for u in users]


@router.get("/me", response_model=UserEnvelope)
async def get_me(
    user_id: str = Depends(get_current_user_id),
    container: ServiceContainer = Depends(get_container),
) -> UserEnvelope:
    return await _load_user(container, user_id)


@router.get("/{requested_id}", response_model=UserEnvelope)
async def get_user(
    requested_id: str,
    user_id: str = Depends(get_current_user_id),
    container: ServiceContainer = Depends(get_container),
) -> UserEnvelope:
    """A user may only read their own profile."""
    if requested_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized",
        )
    return await _load_user(container, user_id)
