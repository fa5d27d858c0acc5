"""Database and schema models for the handbook backend."""
from app.models.database_models import (
    User,
    Document,
    DocumentChunk,
    Handbook,
    DocumentStatus,
    HandbookStatus,
)
from app.models.schemas import (
    DocumentResponse,
    DocumentUploadResponse,
    ChatRequest,
    ChatResponse,
    HandbookCreateRequest,
    HandbookResponse,
    HealthCheckResponse,
)

__all__ = [
    # Database models
    "User",
    "Document",
    "DocumentChunk",
    "Handbook",
    "DocumentStatus",
    "HandbookStatus",
    # Pydantic schemas
    "DocumentResponse",
    "DocumentUploadResponse",
    "ChatRequest",
    "ChatResponse",
    "HandbookCreateRequest",
    "HandbookResponse",
    "HealthCheckResponse",
]
