"""
Pydantic schemas for request/response validation.
"""
from pydantic import AliasChoices, BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List
from datetime import datetime
from enum import Enum


# Enums (matching database enums)
class DocumentStatusSchema(str, Enum):
    """Document status for API responses."""

    UPLOADED = "uploaded"
    PROCESSING = "processing"
    INDEXED = "indexed"
    FAILED = "failed"


class HandbookStatusSchema(str, Enum):
    """Handbook status for API responses."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Auth Schemas
class CredentialsRequest(BaseModel):
    """Username/password pair for sign-up and sign-in."""

    username: Optional[str] = None
    password: Optional[str] = None


class TokenResponse(BaseModel):
    token: str


class UserResponse(BaseModel):
    """Public view of a user (never includes the password hash)."""

    id: str
    username: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UserEnvelope(BaseModel):
    user: UserResponse


class UserSummary(BaseModel):
    """Directory entry: id and username only."""

    id: str
    username: str

    model_config = ConfigDict(from_attributes=True)


# Document Schemas
class DocumentResponse(BaseModel):
    """Schema for document details."""

    id: str
    owner_id: str
    filename: str
    storage_path: str
    size_bytes: int
    status: DocumentStatusSchema
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    chunk_count: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class DocumentUploadResponse(BaseModel):
    message: str = "PDF uploaded successfully."
    document: DocumentResponse


class DocumentEnvelope(BaseModel):
    document: DocumentResponse


class DocumentListResponse(BaseModel):
    documents: List[DocumentResponse]


class MessageResponse(BaseModel):
    message: str


# Chat Schemas
class ChatRequest(BaseModel):
    """Question plus optional document scope; camelCase keys are accepted too."""

    message: Optional[str] = None
    document_ids: Optional[List[str]] = Field(
        None, validation_alias=AliasChoices("document_ids", "documentIds")
    )
    top_k: Optional[float] = Field(None, validation_alias=AliasChoices("top_k", "topK"))


class ChatSource(BaseModel):
    document_id: str
    chunk_index: int
    excerpt: str


class ChatResponse(BaseModel):
    answer: str
    sources: List[ChatSource]
    used_model: str


# Handbook Schemas
class HandbookCreateRequest(BaseModel):
    """Handbook generation request; camelCase keys are accepted too."""

    prompt: Optional[str] = None
    title: Optional[str] = None
    document_ids: Optional[List[str]] = Field(
        None, validation_alias=AliasChoices("document_ids", "documentIds")
    )
    target_words: Optional[float] = Field(
        None, validation_alias=AliasChoices("target_words", "targetWords")
    )

    @field_validator("target_words", mode="before")
    @classmethod
    def _ignore_non_numeric_target(cls, value):
        # Unparseable targets fall back to the default word count.
        if isinstance(value, bool):
            return None
        try:
            return float(value) if value is not None else None
        except (TypeError, ValueError):
            return None


class HandbookResponse(BaseModel):
    """Schema for handbook details."""

    id: str
    owner_id: str
    title: str
    prompt: str
    status: HandbookStatusSchema
    target_words: int
    generated_words: int
    content: Optional[str] = None
    error_message: Optional[str] = None
    source_document_ids: List[str] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class HandbookStartResponse(BaseModel):
    message: str = "Handbook generation started."
    handbook: HandbookResponse


class HandbookEnvelope(BaseModel):
    handbook: HandbookResponse


class HandbookListResponse(BaseModel):
    handbooks: List[HandbookResponse]


# Health Schemas
class HealthCheckResponse(BaseModel):
    """Schema for health check response."""

    status: str
    database: str
    object_store: str
    llm_configured: bool
    timestamp: datetime
