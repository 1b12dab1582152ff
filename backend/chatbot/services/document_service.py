"""Document service - upload validation, background ingestion, CRUD reads."""

import logging
from pathlib import Path
from uuid import UUID

from backend.chatbot.cache.manager import DOCUMENT_CHUNKS_PATTERN, CacheManager
from backend.chatbot.db.repositories import (
    ChunkRecord,
    ChunkStore,
    DocumentRecord,
    DocumentStatus,
    DocumentStore,
    NewChunk,
)
from backend.chatbot.docs.chunker import ChunkConfig, default_chunk_config, split_into_chunks
from backend.chatbot.docs.extractor import TextExtractor
from backend.chatbot.errors import DocumentNotFoundError, ExtractionError, PersistenceError
from backend.chatbot.llm.embeddings import EmbeddingClient
from backend.chatbot.tasks import BackgroundTaskRunner
from backend.chatbot.utils.metrics import documents_ingested_total
from backend.chatbot.validation.validators import validate_title

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 10
MAX_LIST_LIMIT = 100


def clamp_pagination(limit: int | None, offset: int | None) -> tuple[int, int]:
    """Out-of-range limit falls back to the default; negative offset becomes 0."""
    if limit is None or limit < 1 or limit > MAX_LIST_LIMIT:
        limit = DEFAULT_LIST_LIMIT
    if offset is None or offset < 0:
        offset = 0
    return limit, offset


class DocumentService:
    """Owns the document lifecycle: PROCESSING -> COMPLETED | FAILED."""

    def __init__(
        self,
        *,
        documents: DocumentStore,
        chunks: ChunkStore,
        embedder: EmbeddingClient,
        extractor: TextExtractor,
        cache: CacheManager,
        tasks: BackgroundTaskRunner,
        chunk_config: ChunkConfig | None = None,
    ) -> None:
        self._documents = documents
        self._chunks = chunks
        self._embedder = embedder
        self._extractor = extractor
        self._cache = cache
        self._tasks = tasks
        self._chunk_config = chunk_config or default_chunk_config()

    async def process_document(self, path: Path, title: str | None = None) -> DocumentRecord:
        """Validate and extract a stored upload, then ingest it in the background.

        The returned record is in PROCESSING state; chunking and embedding run
        as a detached task that moves the document to COMPLETED or FAILED.

        Args:
            path: Location of the stored upload
            title: Display title; defaults to the file name

        Returns:
            Created document record

        Raises:
            UploadRejectedError: File is missing, too large, or of a disallowed type
            ValidationError: Title is unsafe or too long
            ExtractionError: File could not be parsed or holds no text
            PersistenceError: Document row could not be created
        """
        await self._extractor.validate_file(path)
        safe_title = validate_title(title or path.name)

        text = await self._extractor.extract_text(path)
        if not text.strip():
            raise ExtractionError("Document contains no extractable text")

        info = await self._extractor.get_file_info(path)

        doc = await self._documents.create(
            title=safe_title,
            source_reference=str(path),
            file_type=info.extension,
            size_bytes=info.size,
        )

        logger.info(
            "Document accepted for ingestion",
            extra={"structured": {"document_id": str(doc.id), "size_bytes": info.size, "chars": len(text)}},
        )

        self._tasks.spawn(self._process_chunks(doc.id, text), name=f"ingest:{doc.id}")
        return doc

    async def _process_chunks(self, document_id: UUID, text: str) -> None:
        try:
            pieces = split_into_chunks(text, self._chunk_config)

            new_chunks: list[NewChunk] = []
            # One upstream call at a time per document
            for index, piece in enumerate(pieces):
                embedding = await self._embedder.embed_text(piece.content)
                new_chunks.append(
                    NewChunk(
                        chunk_index=index,
                        content=piece.content,
                        embedding=embedding,
                        start_pos=piece.start_pos,
                        end_pos=piece.end_pos,
                        token_count=piece.token_count,
                    )
                )

            await self._chunks.batch_create(document_id, new_chunks)
            await self._cache.invalidate_pattern(DOCUMENT_CHUNKS_PATTERN)
            await self._documents.update_status(document_id, DocumentStatus.COMPLETED)
        except Exception as e:
            logger.error(
                f"Document ingestion failed: {e}",
                exc_info=True,
                extra={"structured": {"document_id": str(document_id), "error": type(e).__name__}},
            )
            await self._mark_failed(document_id)
            return

        documents_ingested_total.labels(status=DocumentStatus.COMPLETED.value).inc()
        logger.info(
            "Document ingestion completed",
            extra={"structured": {"document_id": str(document_id), "chunks": len(new_chunks)}},
        )

    async def _mark_failed(self, document_id: UUID) -> None:
        documents_ingested_total.labels(status=DocumentStatus.FAILED.value).inc()
        try:
            await self._documents.update_status(document_id, DocumentStatus.FAILED)
        except PersistenceError as e:
            logger.error(
                f"Could not mark document as failed: {e}",
                extra={"structured": {"document_id": str(document_id)}},
            )

    async def get_document(self, document_id: UUID) -> DocumentRecord:
        """Get a document.

        Raises:
            DocumentNotFoundError: Unknown ID
        """
        doc = await self._documents.get(document_id)
        if doc is None:
            raise DocumentNotFoundError(f"Document not found: {document_id}")
        return doc

    async def list_documents(self, limit: int | None = None, offset: int | None = None) -> list[DocumentRecord]:
        """List documents newest first, with limit/offset clamped."""
        limit, offset = clamp_pagination(limit, offset)
        return await self._documents.list(limit=limit, offset=offset)

    async def get_document_chunks(self, document_id: UUID) -> list[ChunkRecord]:
        """List a document's chunks in chunk_index order."""
        return await self._chunks.list_by_document(document_id)

    async def delete_document(self, document_id: UUID) -> None:
        """Delete chunks, then the document row, then invalidate the chunk cache.

        Raises:
            DocumentNotFoundError: Unknown ID
        """
        if await self._documents.get(document_id) is None:
            raise DocumentNotFoundError(f"Document not found: {document_id}")

        deleted_chunks = await self._chunks.delete_by_document(document_id)
        await self._documents.delete(document_id)
        await self._cache.invalidate_pattern(DOCUMENT_CHUNKS_PATTERN)

        logger.info(
            "Document deleted",
            extra={"structured": {"document_id": str(document_id), "chunks": deleted_chunks}},
        )
