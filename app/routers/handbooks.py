"""
Handbook generation endpoints.

POST /      — create a handbook and start generating it in the background (202).
GET  /      — list the caller's handbooks, newest first.
GET  /{id}  — one handbook, including its content once completed.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.dependencies.auth import get_current_user_id
from app.dependencies.services import ServiceContainer, get_container
from app.models.schemas import (
    HandbookCreateRequest,
    HandbookEnvelope,
    HandbookListResponse,
    HandbookResponse,
    HandbookStartResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/",
    response_model=HandbookStartResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def create_handbook(
    body: HandbookCreateRequest,
    user_id: str = Depends(get_current_user_id),
    container: ServiceContainer = Depends(get_container),
) -> HandbookStartResponse:
    """
    Queue a handbook for generation.

    `target_words` is clamped to 3000..30000 (default 20000).  The returned
    handbook is `queued`; poll GET /{id} until it is `completed` or `failed`.
    """
    prompt = (body.prompt or "").strip()
    if not prompt:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Prompt is required.",
        )

    handbook = await container.handbook_service.start_generation(
        owner_id=user_id,
        prompt=prompt,
        title=body.title,
        document_ids=body.document_ids,
        target_words=body.target_words,
    )
    return HandbookStartResponse(handbook=HandbookResponse.model_validate(handbook))


@router.get("/", response_model=HandbookListResponse)
async def list_handbooks(
    user_id: str = Depends(get_current_user_id),
    container: ServiceContainer = Depends(get_container),
) -> HandbookListResponse:
    handbooks = await container.handbooks.list_for_owner(user_id)
    return HandbookListResponse(
        handbooks=[HandbookResponse.model_validate(h) for h in handbooks]
    )


@router.get("/{handbook_id}", response_model=HandbookEnvelope)
async def get_handbook(
    handbook_id: str,
    user_id: str = Depends(get_current_user_id),
    container: ServiceContainer = Depends(get_container),
) -> HandbookEnvelope:
    handbook = await container.handbooks.get_for_owner(handbook_id, user_id)
    if handbook is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Handbook not found.",
        )
    return HandbookEnvelope(handbook=HandbookResponse.model_validate(handbook))
