"""
Document upload and management endpoints.

POST /        — store a PDF and start background ingestion (201, status "uploaded").
GET  /        — list the caller's documents with chunk counts, newest first.
GET  /{id}    — document metadata + chunk count.
DELETE /{id}  — delete the stored object, the document and its chunks.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from app.config import settings
from app.dependencies.auth import get_current_user_id
from app.dependencies.services import ServiceContainer, get_container
from app.models.database_models import Document
from app.models.schemas import (
    DocumentEnvelope,
    DocumentListResponse,
    DocumentResponse,
    DocumentUploadResponse,
    MessageResponse,
)
from app.services.document_parser import is_pdf_bytes
from app.services.object_store import ObjectStoreError
from app.utils.helpers import build_storage_path, sanitize_filename

logger = logging.getLogger(__name__)

router = APIRouter()

PDF_CONTENT_TYPE = "application/pdf"
READ_SLICE = 1024 * 1024


def _to_response(document: Document, chunk_count: Optional[int] = None) -> DocumentResponse:
    response = DocumentResponse.model_validate(document)
    response.chunk_count = chunk_count
    return response


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------

@router.post(
    "/",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_document(
    file: Optional[UploadFile] = File(None),
    user_id: str = Depends(get_current_user_id),
    container: ServiceContainer = Depends(get_container),
) -> DocumentUploadResponse:
    """
    Upload a PDF and queue it for text extraction and chunking.

    - Max file size: 10 MB (configurable via MAX_FILE_SIZE)
    - The file must have a .pdf name or an application/pdf content type,
      and must start with the %PDF signature
    - Ingestion runs in the background; poll GET /{id} for the status
    """
    if file is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='No PDF file uploaded. Use multipart/form-data with field name "file".',
        )

    original_name = file.filename or ""
    if file.content_type != PDF_CONTENT_TYPE and not original_name.lower().endswith(".pdf"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only PDF files are allowed.",
        )

    # Read into memory while enforcing the size limit
    data = bytearray()
    while True:
        piece = await file.read(READ_SLICE)
        if not piece:
            break
        data.extend(piece)
        if len(data) > settings.MAX_FILE_SIZE:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail="PDF exceeds upload size limit.",
            )

    if not is_pdf_bytes(bytes(data[:4])):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded file is not a valid PDF.",
        )

    safe_name = sanitize_filename(original_name)
    storage_path = build_storage_path(user_id, safe_name)

    try:
        await container.object_store.upload(
            storage_path, bytes(data), PDF_CONTENT_TYPE, upsert=False
        )
    except ObjectStoreError as exc:
        logger.error("Upload of %r failed: %s", original_name, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        )

    try:
        document = await container.documents.create(
            owner_id=user_id,
            filename=safe_name,
            storage_path=storage_path,
            size_bytes=len(data),
        )
    except Exception:
        logger.exception("Could not record document for %s, removing stored object", storage_path)
        try:
            await container.object_store.remove([storage_path])
        except ObjectStoreError as exc:
            logger.warning("Could not remove orphaned object %s: %s", storage_path, exc)
        raise

    container.runner.start("ingest", document.id, container.ingestion.process(document.id))

    logger.info(
        "Document %r stored as id=%s (%d bytes), ingestion queued",
        safe_name,
        document.id,
        len(data),
    )
    return DocumentUploadResponse(document=_to_response(document))


# ---------------------------------------------------------------------------
# List
# ---------------------------------------------------------------------------

@router.get("/", response_model=DocumentListResponse)
async def list_documents(
    user_id: str = Depends(get_current_user_id),
    container: ServiceContainer = Depends(get_container),
) -> DocumentListResponse:
    """List the caller's documents, newest first."""
    documents = await container.documents.list_for_owner(user_id)

    # Chunk counts for all documents in a single GROUP BY query
    counts = await container.chunks.count_by_document([d.id for d in documents])

    return DocumentListResponse(
        documents=[_to_response(doc, counts.get(doc.id, 0)) for doc in documents]
    )


# ---------------------------------------------------------------------------
# Get by ID
# ---------------------------------------------------------------------------

@router.get("/{document_id}", response_model=DocumentEnvelope)
async def get_document(
    document_id: str,
    user_id: str = Depends(get_current_user_id),
    container: ServiceContainer = Depends(get_container),
) -> DocumentEnvelope:
    """Return metadata and chunk count for a single document."""
    document = await container.documents.get_for_owner(document_id, user_id)
    if not document:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Document not found.",
        )

    counts = await container.chunks.count_by_document([document.id])
    return DocumentEnvelope(document=_to_response(document, counts.get(document.id, 0)))


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

@router.delete("/{document_id}", response_model=MessageResponse)
async def delete_document(
    document_id: str,
    user_id: str = Depends(get_current_user_id),
    container: ServiceContainer = Depends(get_container),
) -> MessageResponse:
    """
    Delete a document, all its chunks, and its stored file.

    The stored object is removed first; if that fails nothing is deleted.
    """
    document = await container.documents.get_for_owner(document_id, user_id)
    if not document:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Document not found.",
        )

    try:
        await container.object_store.remove([document.storage_path])
    except ObjectStoreError as exc:
        logger.error("Could not remove %s: %s", document.storage_path, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        )

    await container.documents.delete(document.id)

    logger.info("Deleted document id=%s (%r)", document_id, document.filename)
    return MessageResponse(message="Document deleted successfully.")
