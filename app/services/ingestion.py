"""
Document ingestion workflow: stored PDF bytes → extracted text → chunk set.

Public API
----------
IngestionService.process(document_id) -> IngestionResult
    uploaded → processing → indexed | failed

Runs detached through the BackgroundTaskRunner.  Any failure marks the
document ``failed`` and is re-raised so the runner logs it.
"""
from __future__ import annotations

import dataclasses
import logging
import time
from typing import Optional

from app.models.database_models import DocumentStatus
from app.services.chunking import ChunkingService
from app.services.document_parser import DocumentParser, ExtractionError
from app.services.object_store import ObjectStore
from app.services.records import ChunkRepository, DocumentRepository

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class IngestionResult:
    """Outcome of one ingestion run."""

    document_id: str
    status: DocumentStatus
    chunk_count: int = 0
    page_count: int = 0
    processing_time_seconds: float = 0.0
    error: Optional[str] = None


class IngestionService:
    def __init__(
        self,
        documents: DocumentRepository,
        chunks: ChunkRepository,
        object_store: ObjectStore,
        parser: Optional[DocumentParser] = None,
        chunker: Optional[ChunkingService] = None,
    ) -> None:
        self._documents = documents
        self._chunks = chunks
        self._store = object_store
        self._parser = parser or DocumentParser()
        self._chunker = chunker or ChunkingService()

    async def process(self, document_id: str) -> IngestionResult:
        """
        Extract, chunk and index one uploaded document.

        Raises:
            ExtractionError: the PDF is unreadable or yields no text.
            ObjectStoreError: the stored bytes could not be downloaded.
        """
        t0 = time.monotonic()

        document = await self._documents.get(document_id)
        if document is None:
            raise LookupError(f"Document {document_id} not found")

        moved = await self._documents.transition(
            document_id,
            DocumentStatus.PROCESSING,
            [DocumentStatus.UPLOADED],
        )
        if not moved:
            logger.info("Document %s is already %s, skipping ingestion", document_id, document.status)
            return IngestionResult(document_id=document_id, status=DocumentStatus(document.status))

        try:
            data = await self._store.download(document.storage_path)
            parsed = await self._parser.parse_pdf(data)
            chunks = self._chunker.chunk_text(parsed.full_text)
            if not chunks:
                raise ExtractionError(
                    "No extractable text found in PDF. Scanned PDFs are not supported."
                )
            await self._chunks.replace_for_document(document_id, chunks)
            await self._documents.transition(
                document_id, DocumentStatus.INDEXED, [DocumentStatus.PROCESSING]
            )
        except Exception as exc:
            logger.error("Ingestion failed for document %s: %s", document_id, exc)
            await self._documents.transition(
                document_id, DocumentStatus.FAILED, [DocumentStatus.PROCESSING]
            )
            raise

        elapsed = round(time.monotonic() - t0, 2)
        logger.info(
            "Indexed document %s (%s): %d chunks from %d pages in %.2fs",
            document_id,
            document.filename,
            len(chunks),
            parsed.metadata.get("page_count", 0),
            elapsed,
        )
        return IngestionResult(
            document_id=document_id,
            status=DocumentStatus.INDEXED,
            chunk_count=len(chunks),
            page_count=parsed.metadata.get("page_count", 0),
            processing_time_seconds=elapsed,
        )
