"""In-memory implementations of store interfaces."""

import uuid
from dataclasses import replace
from datetime import datetime, timezone

from backend.chatbot.db.repositories import (
    ChatRecord,
    ChunkRecord,
    DocumentRecord,
    DocumentStatus,
    NewChunk,
)


class InMemoryDocumentStore:
    """In-memory implementation of DocumentStore."""

    def __init__(self) -> None:
        self._documents: dict[uuid.UUID, DocumentRecord] = {}

    async def create(
        self, *, title: str, source_reference: str, file_type: str, size_bytes: int
    ) -> DocumentRecord:
        record = DocumentRecord(
            id=uuid.uuid4(),
            title=title,
            source_reference=source_reference,
            file_type=file_type,
            size_bytes=size_bytes,
            status=DocumentStatus.PROCESSING,
            created_at=datetime.now(timezone.utc),
        )
        self._documents[record.id] = record
        return record

    async def get(self, document_id: uuid.UUID) -> DocumentRecord | None:
        return self._documents.get(document_id)

    async def list(self, *, limit: int, offset: int) -> list[DocumentRecord]:
        # Insertion order is creation order; newest first
        records = list(reversed(self._documents.values()))
        return records[offset : offset + limit]

    async def update_status(self, document_id: uuid.UUID, status: DocumentStatus) -> None:
        record = self._documents.get(document_id)
        if record is None:
            return
        self._documents[document_id] = replace(record, status=status)

    async def delete(self, document_id: uuid.UUID) -> bool:
        return self._documents.pop(document_id, None) is not None


class InMemoryChunkStore:
    """In-memory implementation of ChunkStore."""

    def __init__(self) -> None:
        self._chunks: dict[uuid.UUID, list[ChunkRecord]] = {}

    async def batch_create(self, document_id: uuid.UUID, chunks: list[NewChunk]) -> int:
        created_at = datetime.now(timezone.utc)
        records = [
            ChunkRecord(
                id=uuid.uuid4(),
                document_id=document_id,
                chunk_index=chunk.chunk_index,
                content=chunk.content,
                embedding=list(chunk.embedding),
                start_pos=chunk.start_pos,
                end_pos=chunk.end_pos,
                token_count=chunk.token_count,
                created_at=created_at,
            )
            for chunk in chunks
        ]
        # Single assignment keeps the batch all-or-nothing
        self._chunks[document_id] = self._chunks.get(document_id, []) + records
        return len(records)

    async def list_by_document(self, document_id: uuid.UUID) -> list[ChunkRecord]:
        return sorted(self._chunks.get(document_id, []), key=lambda c: c.chunk_index)

    async def list_embedded(self) -> list[ChunkRecord]:
        return [chunk for chunks in self._chunks.values() for chunk in chunks if chunk.embedding]

    async def delete_by_document(self, document_id: uuid.UUID) -> int:
        return len(self._chunks.pop(document_id, []))


class InMemoryChatStore:
    """In-memory implementation of ChatStore."""

    def __init__(self) -> None:
        self._chats: dict[str, ChatRecord] = {}

    async def upsert(
        self, *, chat_id: str, question: str, answer: str, embedding_question: list[float]
    ) -> None:
        existing = self._chats.get(chat_id)
        if existing is not None:
            self._chats[chat_id] = replace(
                existing, answer=answer, embedding_question=list(embedding_question)
            )
            return

        self._chats[chat_id] = ChatRecord(
            id=chat_id,
            question=question,
            answer=answer,
            embedding_question=list(embedding_question),
            created_at=datetime.now(timezone.utc),
        )

    async def list_with_embeddings(self) -> list[ChatRecord]:
        return [chat for chat in self._chats.values() if chat.embedding_question]
