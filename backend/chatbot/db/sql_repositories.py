"""SQL implementations of store interfaces."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.chatbot.db.models import Chat, Document, DocumentChunk
from backend.chatbot.db.repositories import (
    ChatRecord,
    ChunkRecord,
    DocumentRecord,
    DocumentStatus,
    NewChunk,
)
from backend.chatbot.errors import wrap_persistence_error


def _to_document_record(row: Document) -> DocumentRecord:
    return DocumentRecord(
        id=row.id,
        title=row.title,
        source_reference=row.source_reference,
        file_type=row.file_type,
        size_bytes=row.size_bytes,
        status=DocumentStatus(row.status),
        created_at=row.created_at,
    )


def _to_chunk_record(row: DocumentChunk) -> ChunkRecord:
    return ChunkRecord(
        id=row.id,
        document_id=row.document_id,
        chunk_index=row.chunk_index,
        content=row.content,
        embedding=list(row.embedding or []),
        start_pos=row.start_pos,
        end_pos=row.end_pos,
        token_count=row.token_count,
        created_at=row.created_at,
    )


class SqlDocumentStore:
    """SQL implementation of DocumentStore."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(
        self, *, title: str, source_reference: str, file_type: str, size_bytes: int
    ) -> DocumentRecord:
        """Create a document in PROCESSING state."""
        doc = Document(
            id=uuid.uuid4(),
            title=title,
            source_reference=source_reference,
            file_type=file_type,
            size_bytes=size_bytes,
            status=DocumentStatus.PROCESSING.value,
            created_at=datetime.now(timezone.utc),
        )

        try:
            async with self._session_factory() as session:
                session.add(doc)
                await session.commit()
        except SQLAlchemyError as e:
            raise wrap_persistence_error("Error creating document", e) from e

        return _to_document_record(doc)

    async def get(self, document_id: uuid.UUID) -> DocumentRecord | None:
        """Get document by ID."""
        try:
            async with self._session_factory() as session:
                doc = await session.get(Document, document_id)
        except SQLAlchemyError as e:
            raise wrap_persistence_error("Error getting document", e) from e

        if doc is None:
            return None
        return _to_document_record(doc)

    async def list(self, *, limit: int, offset: int) -> list[DocumentRecord]:
        """List documents, newest first."""
        stmt = select(Document).order_by(Document.created_at.desc()).limit(limit).offset(offset)

        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise wrap_persistence_error("Error listing documents", e) from e

        return [_to_document_record(row) for row in rows]

    async def update_status(self, document_id: uuid.UUID, status: DocumentStatus) -> None:
        """Set document status."""
        try:
            async with self._session_factory() as session:
                doc = await session.get(Document, document_id)
                if doc is None:
                    return
                doc.status = status.value
                await session.commit()
        except SQLAlchemyError as e:
            raise wrap_persistence_error("Error updating document status", e) from e

    async def delete(self, document_id: uuid.UUID) -> bool:
        """Delete a document row."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(delete(Document).where(Document.id == document_id))
                await session.commit()
        except SQLAlchemyError as e:
            raise wrap_persistence_error("Error deleting document", e) from e

        return result.rowcount > 0


class SqlChunkStore:
    """SQL implementation of ChunkStore."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def batch_create(self, document_id: uuid.UUID, chunks: list[NewChunk]) -> int:
        """Persist all chunks of a document in a single transaction."""
        created_at = datetime.now(timezone.utc)

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add_all(
                        [
                            DocumentChunk(
                                id=uuid.uuid4(),
                                document_id=document_id,
                                chunk_index=chunk.chunk_index,
                                content=chunk.content,
                                embedding=chunk.embedding,
                                start_pos=chunk.start_pos,
                                end_pos=chunk.end_pos,
                                token_count=chunk.token_count,
                                created_at=created_at,
                            )
                            for chunk in chunks
                        ]
                    )
        except SQLAlchemyError as e:
            raise wrap_persistence_error("Error creating chunks", e) from e

        return len(chunks)

    async def list_by_document(self, document_id: uuid.UUID) -> list[ChunkRecord]:
        """List chunks of a document ordered by chunk_index."""
        stmt = (
            select(DocumentChunk)
            .where(DocumentChunk.document_id == document_id)
            .order_by(DocumentChunk.chunk_index)
        )

        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise wrap_persistence_error("Error getting chunks", e) from e

        return [_to_chunk_record(row) for row in rows]

    async def list_embedded(self) -> list[ChunkRecord]:
        """List every chunk with a non-empty embedding."""
        stmt = select(DocumentChunk).order_by(DocumentChunk.document_id, DocumentChunk.chunk_index)

        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise wrap_persistence_error("Error getting embedded chunks", e) from e

        # JSON null and [] both mean "no embedding"
        return [_to_chunk_record(row) for row in rows if row.embedding]

    async def delete_by_document(self, document_id: uuid.UUID) -> int:
        """Delete every chunk of a document."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise wrap_persistence_error("Error deleting chunks", e) from e

        return result.rowcount


class SqlChatStore:
    """SQL implementation of ChatStore."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def upsert(
        self, *, chat_id: str, question: str, answer: str, embedding_question: list[float]
    ) -> None:
        """Insert a chat or overwrite the stored answer and embedding."""
        try:
            async with self._session_factory() as session:
                chat = await session.get(Chat, chat_id)
                if chat is None:
                    session.add(
                        Chat(
                            id=chat_id,
                            question=question,
                            answer=answer,
                            embedding_question=embedding_question,
                            created_at=datetime.now(timezone.utc),
                        )
                    )
                else:
                    chat.answer = answer
                    chat.embedding_question = embedding_question
                await session.commit()
        except SQLAlchemyError as e:
            raise wrap_persistence_error("Error saving chat", e) from e

    async def list_with_embeddings(self) -> list[ChatRecord]:
        """List every chat with a non-empty question embedding."""
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(select(Chat))).scalars().all()
        except SQLAlchemyError as e:
            raise wrap_persistence_error("Error getting chats", e) from e

        return [
            ChatRecord(
                id=row.id,
                question=row.question,
                answer=row.answer,
                embedding_question=list(row.embedding_question),
                created_at=row.created_at,
            )
            for row in rows
            if row.embedding_question
        ]
