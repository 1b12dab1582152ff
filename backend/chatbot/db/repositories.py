"""Store protocol interfaces for data access."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol
from uuid import UUID


class DocumentStatus(str, Enum):
    """Document ingestion status."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class DocumentRecord:
    """Document data record."""

    id: UUID
    title: str
    source_reference: str
    file_type: str
    size_bytes: int
    status: DocumentStatus
    created_at: datetime


@dataclass
class NewChunk:
    """Chunk data to be persisted for a document."""

    chunk_index: int
    content: str
    embedding: list[float]
    start_pos: int
    end_pos: int
    token_count: int


@dataclass
class ChunkRecord:
    """Stored chunk data record."""

    id: UUID
    document_id: UUID
    chunk_index: int
    content: str
    embedding: list[float] = field(repr=False)
    start_pos: int
    end_pos: int
    token_count: int
    created_at: datetime


@dataclass
class ChatRecord:
    """Stored question/answer pair."""

    id: str
    question: str
    answer: str
    embedding_question: list[float] = field(repr=False)
    created_at: datetime


class DocumentStore(Protocol):
    """Store for document rows."""

    async def create(
        self, *, title: str, source_reference: str, file_type: str, size_bytes: int
    ) -> DocumentRecord:
        """Create a document in PROCESSING state.

        Args:
            title: Sanitized title
            source_reference: Path of the stored upload
            file_type: Lower-case extension including the dot
            size_bytes: File size

        Returns:
            Created record
        """
        ...

    async def get(self, document_id: UUID) -> DocumentRecord | None:
        """Get document by ID, or None if not found."""
        ...

    async def list(self, *, limit: int, offset: int) -> list[DocumentRecord]:
        """List documents, newest first."""
        ...

    async def update_status(self, document_id: UUID, status: DocumentStatus) -> None:
        """Set the status of a document. Unknown IDs are ignored."""
        ...

    async def delete(self, document_id: UUID) -> bool:
        """Delete a document row.

        Returns:
            True if a row was deleted
        """
        ...


class ChunkStore(Protocol):
    """Store for document chunk rows."""

    async def batch_create(self, document_id: UUID, chunks: list[NewChunk]) -> int:
        """Persist every chunk of a document in one transaction.

        Either all chunks are written or none are.

        Returns:
            Number of chunks written
        """
        ...

    async def list_by_document(self, document_id: UUID) -> list[ChunkRecord]:
        """List chunks of one document ordered by chunk_index."""
        ...

    async def list_embedded(self) -> list[ChunkRecord]:
        """List every chunk that carries a non-empty embedding."""
        ...

    async def delete_by_document(self, document_id: UUID) -> int:
        """Delete every chunk of a document.

        Returns:
            Number of chunks deleted
        """
        ...


class ChatStore(Protocol):
    """Store for answered questions."""

    async def upsert(
        self, *, chat_id: str, question: str, answer: str, embedding_question: list[float]
    ) -> None:
        """Insert a chat, or overwrite answer and embedding if the ID exists."""
        ...

    async def list_with_embeddings(self) -> list[ChatRecord]:
        """List every chat that carries a non-empty question embedding."""
        ...
