"""Document request/response models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from backend.chatbot.db.repositories import ChunkRecord, DocumentRecord, DocumentStatus


class DocumentOut(BaseModel):
    """Document metadata as returned to clients."""

    id: UUID
    title: str
    source_reference: str
    file_type: str
    size_bytes: int
    status: DocumentStatus
    created_at: datetime

    @classmethod
    def from_record(cls, record: DocumentRecord) -> "DocumentOut":
        return cls(
            id=record.id,
            title=record.title,
            source_reference=record.source_reference,
            file_type=record.file_type,
            size_bytes=record.size_bytes,
            status=record.status,
            created_at=record.created_at,
        )


class UploadResponse(BaseModel):
    """Response to an accepted upload. Ingestion continues in the background."""

    id: UUID
    title: str
    status: DocumentStatus
    message: str = "Document uploaded and processing started"


class DocumentListResponse(BaseModel):
    documents: list[DocumentOut]
    limit: int
    offset: int
    count: int


class ChunkOut(BaseModel):
    """Chunk as returned to clients (embedding omitted)."""

    id: UUID
    document_id: UUID
    chunk_index: int
    content: str
    start_pos: int
    end_pos: int
    token_count: int
    created_at: datetime

    @classmethod
    def from_record(cls, record: ChunkRecord) -> "ChunkOut":
        return cls(
            id=record.id,
            document_id=record.document_id,
            chunk_index=record.chunk_index,
            content=record.content,
            start_pos=record.start_pos,
            end_pos=record.end_pos,
            token_count=record.token_count,
            created_at=record.created_at,
        )


class ChunkListResponse(BaseModel):
    document_id: UUID
    chunks: list[ChunkOut]
    count: int = Field(ge=0)


class DeleteResponse(BaseModel):
    message: str = "Document deleted successfully"
