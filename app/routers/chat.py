"""
Retrieval-grounded chat endpoint.

POST / — answer a question from the caller's indexed documents.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.dependencies.auth import get_current_user_id
from app.dependencies.services import ServiceContainer, get_container
from app.models.schemas import ChatRequest, ChatResponse, ChatSource

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/", response_model=ChatResponse)
async def chat(
    body: ChatRequest,
    user_id: str = Depends(get_current_user_id),
    container: ServiceContainer = Depends(get_container),
) -> ChatResponse:
    """
    Rank the caller's indexed chunks against the question and answer from the
    best matches.

    - `document_ids` / `documentIds` restricts the search; ids the caller
      does not own, or that are not indexed yet, are ignored
    - `top_k` / `topK` is clamped to 1..12 (default 6)
    - `used_model` is `retrieval-fallback` when no remote model answered
    """
    message = (body.message or "").strip()
    if not message:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Message is required.",
        )

    result = await container.chat.answer(
        owner_id=user_id,
        message=message,
        document_ids=body.document_ids,
        top_k=body.top_k,
    )
    return ChatResponse(
        answer=result.answer,
        sources=[
            ChatSource(
                document_id=s.document_id,
                chunk_index=s.chunk_index,
                excerpt=s.excerpt,
            )
            for s in result.sources
        ],
        used_model=result.used_model,
    )
