"""
Service container shared by every request and background job.

The container is built once in the application lifespan and stored on
``app.state.container``; routes reach it through ``get_container``.  Tests
build their own container (SQLite database, in-memory object store, mocked
remote model) and assign it to ``app.state.container`` before calling the app.
"""
from __future__ import annotations

import dataclasses
from typing import Optional

from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings
from app.services.chat import ChatService
from app.services.handbook import HandbookService
from app.services.ingestion import IngestionService
from app.services.llm_client import XaiChatClient
from app.services.object_store import ObjectStore, build_object_store
from app.services.records import (
    ChunkRepository,
    DocumentRepository,
    HandbookRepository,
    UserRepository,
)
from app.services.task_runner import BackgroundTaskRunner


@dataclasses.dataclass
class ServiceContainer:
    session_factory: async_sessionmaker[AsyncSession]
    object_store: ObjectStore
    llm: XaiChatClient
    runner: BackgroundTaskRunner
    users: UserRepository
    documents: DocumentRepository
    chunks: ChunkRepository
    handbooks: HandbookRepository
    ingestion: IngestionService
    chat: ChatService
    handbook_service: HandbookService


def build_container(
    config: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    object_store: Optional[ObjectStore] = None,
    llm: Optional[XaiChatClient] = None,
    runner: Optional[BackgroundTaskRunner] = None,
) -> ServiceContainer:
    """
    Wire repositories and services together.

    Raises:
        ConfigurationError: the selected object store backend is missing
            required settings.
    """
    store = object_store if object_store is not None else build_object_store(config)
    client = llm if llm is not None else XaiChatClient(
        api_key=config.XAI_API_KEY,
        base_url=config.XAI_BASE_URL,
        model=config.XAI_MODEL,
        temperature=config.XAI_TEMPERATURE,
        timeout=config.XAI_TIMEOUT,
    )
    task_runner = runner or BackgroundTaskRunner(config.BACKGROUND_CONCURRENCY)

    users = UserRepository(session_factory)
    documents = DocumentRepository(session_factory)
    chunks = ChunkRepository(session_factory)
    handbooks = HandbookRepository(session_factory)

    return ServiceContainer(
        session_factory=session_factory,
        object_store=store,
        llm=client,
        runner=task_runner,
        users=users,
        documents=documents,
        chunks=chunks,
        handbooks=handbooks,
        ingestion=IngestionService(documents, chunks, store),
        chat=ChatService(documents, chunks, client),
        handbook_service=HandbookService(documents, chunks, handbooks, client, task_runner),
    )


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting up.",
        )
    return container
