"""
Record store: async SQLAlchemy repositories for users, documents, chunks
and handbooks.

Each repository receives an ``async_sessionmaker`` and opens a short-lived
session per call, so request handlers and detached workflows can share the
same instances.  Lookups return ``None`` when a row does not exist; any other
database problem propagates as the underlying SQLAlchemy exception.

Status changes are conditional updates (``WHERE status IN (...)``): a
transition from an unexpected state matches no row and reports ``False``
instead of overwriting a terminal status.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.database_models import (
    Document,
    DocumentChunk,
    DocumentStatus,
    Handbook,
    HandbookStatus,
    User,
)
from app.services.chunking import TextChunk

logger = logging.getLogger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]

ERROR_MESSAGE_LIMIT = 3000


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class UserRepository:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._sessions = session_factory

    async def create(self, username: str, hashed_password: str) -> User:
        async with self._sessions() as session:
            user = User(username=username, hashed_password=hashed_password)
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    async def get(self, user_id: str) -> Optional[User]:
        async with self._sessions() as session:
            return await session.get(User, user_id)

    async def get_by_username(self, username: str) -> Optional[User]:
        async with self._sessions() as session:
            result = await session.execute(select(User).where(User.username == username))
            return result.scalar_one_or_none()

    async def list_all(self) -> List[User]:
        async with self._sessions() as session:
            result = await session.execute(select(User).order_by(User.created_at))
            return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

class DocumentRepository:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._sessions = session_factory

    async def create(
        self, owner_id: str, filename: str, storage_path: str, size_bytes: int
    ) -> Document:
        async with self._sessions() as session:
            document = Document(
                owner_id=owner_id,
                filename=filename,
                storage_path=storage_path,
                size_bytes=size_bytes,
                status=DocumentStatus.UPLOADED.value,
            )
            session.add(document)
            await session.commit()
            await session.refresh(document)
            return document

    async def get(self, document_id: str) -> Optional[Document]:
        async with self._sessions() as session:
            return await session.get(Document, document_id)

    async def get_for_owner(self, document_id: str, owner_id: str) -> Optional[Document]:
        async with self._sessions() as session:
            result = await session.execute(
                select(Document).where(
                    Document.id == document_id,
                    Document.owner_id == owner_id,
                )
            )
            return result.scalar_one_or_none()

    async def list_for_owner(self, owner_id: str) -> List[Document]:
        async with self._sessions() as session:
            result = await session.execute(
                select(Document)
                .where(Document.owner_id == owner_id)
                .order_by(Document.created_at.desc())
            )
            return list(result.scalars().all())

    async def list_indexed_for_owner(self, owner_id: str) -> List[Document]:
        async with self._sessions() as session:
            result = await session.execute(
                select(Document)
                .where(
                    Document.owner_id == owner_id,
                    Document.status == DocumentStatus.INDEXED.value,
                )
                .order_by(Document.created_at.desc())
            )
            return list(result.scalars().all())

    async def transition(
        self,
        document_id: str,
        new_status: DocumentStatus,
        allowed_from: Iterable[DocumentStatus],
    ) -> bool:
        """Move a document to *new_status* if it is currently in *allowed_from*."""
        async with self._sessions() as session:
            result = await session.execute(
                update(Document)
                .where(
                    Document.id == document_id,
                    Document.status.in_([s.value for s in allowed_from]),
                )
                .values(status=new_status.value)
            )
            await session.commit()
            changed = result.rowcount > 0
        if changed:
            logger.info("Document %s → %s", document_id, new_status.value)
        else:
            logger.warning(
                "Document %s: transition to %s skipped (not in an allowed state)",
                document_id,
                new_status.value,
            )
        return changed

    async def delete(self, document_id: str) -> None:
        async with self._sessions() as session:
            await session.execute(
                delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
            )
            await session.execute(delete(Document).where(Document.id == document_id))
            await session.commit()


# ---------------------------------------------------------------------------
# Chunks
# ---------------------------------------------------------------------------

class ChunkRepository:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._sessions = session_factory

    async def replace_for_document(
        self, document_id: str, chunks: Sequence[TextChunk]
    ) -> int:
        """Delete every chunk of *document_id* and insert *chunks*, in one transaction."""
        async with self._sessions() as session:
            async with session.begin():
                await session.execute(
                    delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
                )
                session.add_all(
                    DocumentChunk(
                        document_id=document_id,
                        chunk_index=chunk.chunk_index,
                        content=chunk.content,
                        token_count=chunk.token_count,
                    )
                    for chunk in chunks
                )
        return len(chunks)

    async def list_for_documents(
        self, document_ids: Sequence[str], limit: int = 500
    ) -> List[DocumentChunk]:
        """Chunks of *document_ids*, grouped by document then ordered by chunk index."""
        if not document_ids:
            return []
        async with self._sessions() as session:
            result = await session.execute(
                select(DocumentChunk)
                .where(DocumentChunk.document_id.in_(list(document_ids)))
                .order_by(DocumentChunk.document_id, DocumentChunk.chunk_index)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def count_by_document(self, document_ids: Sequence[str]) -> Dict[str, int]:
        if not document_ids:
            return {}
        async with self._sessions() as session:
            result = await session.execute(
                select(DocumentChunk.document_id, func.count(DocumentChunk.id).label("cnt"))
                .where(DocumentChunk.document_id.in_(list(document_ids)))
                .group_by(DocumentChunk.document_id)
            )
            return {row.document_id: row.cnt for row in result}


# ---------------------------------------------------------------------------
# Handbooks
# ---------------------------------------------------------------------------

class HandbookRepository:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._sessions = session_factory

    async def create(
        self,
        owner_id: str,
        title: str,
        prompt: str,
        target_words: int,
        source_document_ids: Sequence[str],
    ) -> Handbook:
        async with self._sessions() as session:
            handbook = Handbook(
                owner_id=owner_id,
                title=title,
                prompt=prompt,
                status=HandbookStatus.QUEUED.value,
                target_words=target_words,
                generated_words=0,
                content=None,
                error_message=None,
                source_document_ids=list(source_document_ids),
            )
            session.add(handbook)
            await session.commit()
            await session.refresh(handbook)
            return handbook

    async def get(self, handbook_id: str) -> Optional[Handbook]:
        async with self._sessions() as session:
            return await session.get(Handbook, handbook_id)

    async def get_for_owner(self, handbook_id: str, owner_id: str) -> Optional[Handbook]:
        async with self._sessions() as session:
            result = await session.execute(
                select(Handbook).where(
                    Handbook.id == handbook_id,
                    Handbook.owner_id == owner_id,
                )
            )
            return result.scalar_one_or_none()

    async def list_for_owner(self, owner_id: str) -> List[Handbook]:
        async with self._sessions() as session:
            result = await session.execute(
                select(Handbook)
                .where(Handbook.owner_id == owner_id)
                .order_by(Handbook.created_at.desc())
            )
            return list(result.scalars().all())

    async def _transition(
        self,
        handbook_id: str,
        allowed_from: Iterable[HandbookStatus],
        **values: object,
    ) -> bool:
        async with self._sessions() as session:
            result = await session.execute(
                update(Handbook)
                .where(
                    Handbook.id == handbook_id,
                    Handbook.status.in_([s.value for s in allowed_from]),
                )
                .values(**values)
            )
            await session.commit()
            changed = result.rowcount > 0
        if not changed:
            logger.warning(
                "Handbook %s: transition to %s skipped (not in an allowed state)",
                handbook_id,
                values.get("status"),
            )
        return changed

    async def mark_processing(self, handbook_id: str) -> bool:
        return await self._transition(
            handbook_id,
            [HandbookStatus.QUEUED],
            status=HandbookStatus.PROCESSING.value,
        )

    async def mark_completed(
        self, handbook_id: str, content: str, generated_words: int
    ) -> bool:
        return await self._transition(
            handbook_id,
            [HandbookStatus.PROCESSING],
            status=HandbookStatus.COMPLETED.value,
            content=content,
            generated_words=generated_words,
            error_message=None,
        )

    async def mark_failed(self, handbook_id: str, error_message: str) -> bool:
        return await self._transition(
            handbook_id,
            [HandbookStatus.QUEUED, HandbookStatus.PROCESSING],
            status=HandbookStatus.FAILED.value,
            content=None,
            error_message=error_message[:ERROR_MESSAGE_LIMIT],
        )
