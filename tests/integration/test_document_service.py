"""Integration tests for document ingestion: upload -> chunks -> status."""

import uuid
from collections.abc import Callable
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from prometheus_client import REGISTRY
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.chatbot.cache.manager import DOCUMENT_CHUNKS_KEY, CacheManager
from backend.chatbot.db.inmemory import InMemoryChatStore, InMemoryChunkStore, InMemoryDocumentStore
from backend.chatbot.db.repositories import DocumentStatus
from backend.chatbot.db.sql_repositories import SqlChunkStore, SqlDocumentStore
from backend.chatbot.docs.extractor import TextExtractor
from backend.chatbot.errors import (
    DocumentNotFoundError,
    ExtractionError,
    MissingFileError,
    UnsupportedFileTypeError,
    ValidationError,
)
from backend.chatbot.llm.embeddings import EmbeddingService
from backend.chatbot.llm.key_rotator import KeyRotator
from backend.chatbot.services.document_service import (
    DEFAULT_LIST_LIMIT,
    DocumentService,
    clamp_pagination,
)
from backend.chatbot.services.chat_service import NO_CONTEXT_PLACEHOLDER, ChatService
from backend.chatbot.tasks import BackgroundTaskRunner

pytestmark = pytest.mark.integration

VOCABULARY = ["cinema", "ticket", "policy", "weekday", "evening"]


def _policy_text(sentences: int = 30) -> str:
    return " ".join(
        f"Sentence number {i:02d} describes the cinema ticket policy for weekday evening shows."
        for i in range(sentences)
    )


def _write(tmp_path: Path, name: str, content: str) -> Path:
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return path


def _failing_embedder() -> EmbeddingService:
    def factory(api_key: str) -> MagicMock:
        client = MagicMock()
        client.embeddings.create = AsyncMock(side_effect=RuntimeError(f"quota exceeded for {api_key}"))
        return client

    return EmbeddingService(KeyRotator(["k1", "k2"]), model="m", client_factory=factory)


def _failed_count() -> float:
    return REGISTRY.get_sample_value("documents_ingested_total", {"status": "failed"}) or 0.0


@pytest.fixture
def documents() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def chunks() -> InMemoryChunkStore:
    return InMemoryChunkStore()


@pytest.fixture
def service(
    documents: InMemoryDocumentStore,
    chunks: InMemoryChunkStore,
    cache: CacheManager,
    tasks: BackgroundTaskRunner,
    make_embedder: Callable,
) -> DocumentService:
    return DocumentService(
        documents=documents,
        chunks=chunks,
        embedder=make_embedder(VOCABULARY),
        extractor=TextExtractor(),
        cache=cache,
        tasks=tasks,
    )


class TestIngestion:
    @pytest.mark.asyncio
    async def test_upload_is_processing_then_completed(
        self, service: DocumentService, tasks: BackgroundTaskRunner, tmp_path: Path
    ) -> None:
        text = _policy_text()
        path = _write(tmp_path, "policy.txt", text)

        doc = await service.process_document(path, "Ticket policy")

        assert doc.status == DocumentStatus.PROCESSING
        assert doc.title == "Ticket policy"
        assert doc.file_type == ".txt"
        assert doc.size_bytes == len(text.encode("utf-8"))

        await tasks.drain()

        stored = await service.get_document(doc.id)
        assert stored.status == DocumentStatus.COMPLETED

        chunks = await service.get_document_chunks(doc.id)
        assert len(chunks) >= 3
        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
        assert all(len(c.content) <= 800 for c in chunks)
        assert all(text[c.start_pos : c.end_pos] == c.content for c in chunks)
        assert all(c.embedding for c in chunks)
        for previous, current in zip(chunks, chunks[1:]):
            assert current.start_pos < previous.end_pos

    @pytest.mark.asyncio
    async def test_title_defaults_to_file_name(
        self, service: DocumentService, tasks: BackgroundTaskRunner, tmp_path: Path
    ) -> None:
        path = _write(tmp_path, "faq.md", "# FAQ\n\nTickets are sold at the cinema.")

        doc = await service.process_document(path)
        await tasks.drain()

        assert doc.title == "faq.md"

    @pytest.mark.asyncio
    async def test_embedding_failure_marks_document_failed(
        self,
        documents: InMemoryDocumentStore,
        chunks: InMemoryChunkStore,
        cache: CacheManager,
        tasks: BackgroundTaskRunner,
        tmp_path: Path,
    ) -> None:
        service = DocumentService(
            documents=documents,
            chunks=chunks,
            embedder=_failing_embedder(),
            extractor=TextExtractor(),
            cache=cache,
            tasks=tasks,
        )
        path = _write(tmp_path, "policy.txt", _policy_text())
        failed_before = _failed_count()

        doc = await service.process_document(path)
        await tasks.drain()

        assert (await service.get_document(doc.id)).status == DocumentStatus.FAILED
        assert await chunks.list_by_document(doc.id) == []
        assert _failed_count() == failed_before + 1

    @pytest.mark.asyncio
    async def test_completed_ingestion_invalidates_chunk_cache(
        self, service: DocumentService, cache: CacheManager, tasks: BackgroundTaskRunner, tmp_path: Path
    ) -> None:
        await cache.set(DOCUMENT_CHUNKS_KEY, [{"content": "stale"}], 300)

        await service.process_document(_write(tmp_path, "policy.txt", _policy_text()))
        await tasks.drain()

        assert await cache.get(DOCUMENT_CHUNKS_KEY) is None


class TestRejections:
    @pytest.mark.asyncio
    async def test_disallowed_extension(self, service: DocumentService, tmp_path: Path) -> None:
        path = _write(tmp_path, "report.docx", "not really a docx")

        with pytest.raises(UnsupportedFileTypeError):
            await service.process_document(path)

    @pytest.mark.asyncio
    async def test_missing_file(self, service: DocumentService, tmp_path: Path) -> None:
        with pytest.raises(MissingFileError):
            await service.process_document(tmp_path / "gone.txt")

    @pytest.mark.asyncio
    async def test_blank_document(
        self, service: DocumentService, documents: InMemoryDocumentStore, tmp_path: Path
    ) -> None:
        path = _write(tmp_path, "blank.txt", "   \n\n   ")

        with pytest.raises(ExtractionError):
            await service.process_document(path)

        assert await documents.list(limit=10, offset=0) == []

    @pytest.mark.asyncio
    async def test_unsafe_title(self, service: DocumentService, tmp_path: Path) -> None:
        path = _write(tmp_path, "policy.txt", _policy_text(3))

        with pytest.raises(ValidationError):
            await service.process_document(path, "<script>alert(1)</script>")


class TestReadsAndDelete:
    @pytest.mark.asyncio
    async def test_unknown_document(self, service: DocumentService) -> None:
        with pytest.raises(DocumentNotFoundError):
            await service.get_document(uuid.uuid4())

        with pytest.raises(DocumentNotFoundError):
            await service.delete_document(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_delete_removes_document_and_chunks(
        self, service: DocumentService, tasks: BackgroundTaskRunner, tmp_path: Path
    ) -> None:
        doc = await service.process_document(_write(tmp_path, "policy.txt", _policy_text()))
        await tasks.drain()

        await service.delete_document(doc.id)

        with pytest.raises(DocumentNotFoundError):
            await service.get_document(doc.id)
        assert await service.get_document_chunks(doc.id) == []

    @pytest.mark.asyncio
    async def test_deleted_document_no_longer_grounds_answers(
        self,
        service: DocumentService,
        chunks: InMemoryChunkStore,
        cache: CacheManager,
        tasks: BackgroundTaskRunner,
        make_embedder: Callable,
        make_llm: Callable,
        tmp_path: Path,
    ) -> None:
        llm = make_llm()
        chat = ChatService(
            chats=InMemoryChatStore(),
            chunks=chunks,
            embedder=make_embedder(VOCABULARY),
            llm=llm,
            cache=cache,
            tasks=tasks,
        )
        doc = await service.process_document(_write(tmp_path, "policy.txt", _policy_text()))
        await tasks.drain()

        # Chunk list is read and its cache write is still pending
        await chat.process_question("What is the cinema ticket policy?")
        assert "describes the cinema ticket policy" in llm.calls[0][1]

        await service.delete_document(doc.id)
        await tasks.drain()

        await chat.process_question("When are weekday evening shows?")
        assert llm.calls[1][1] == NO_CONTEXT_PLACEHOLDER

    @pytest.mark.asyncio
    async def test_list_newest_first(
        self, service: DocumentService, tasks: BackgroundTaskRunner, tmp_path: Path
    ) -> None:
        first = await service.process_document(_write(tmp_path, "a.txt", "Tickets are sold daily."))
        second = await service.process_document(_write(tmp_path, "b.txt", "Parking is free on weekends."))
        await tasks.drain()

        listed = await service.list_documents()
        assert [d.id for d in listed] == [second.id, first.id]

        assert [d.id for d in await service.list_documents(limit=1, offset=1)] == [first.id]


@pytest.mark.parametrize(
    "limit,offset,expected",
    [
        (None, None, (DEFAULT_LIST_LIMIT, 0)),
        (5, 20, (5, 20)),
        (0, 0, (DEFAULT_LIST_LIMIT, 0)),
        (101, 0, (DEFAULT_LIST_LIMIT, 0)),
        (100, -3, (100, 0)),
    ],
)
def test_clamp_pagination(limit: int | None, offset: int | None, expected: tuple[int, int]) -> None:
    assert clamp_pagination(limit, offset) == expected


@pytest.mark.asyncio
async def test_ingestion_with_sql_stores(
    session_factory: async_sessionmaker[AsyncSession],
    cache: CacheManager,
    tasks: BackgroundTaskRunner,
    make_embedder: Callable,
    tmp_path: Path,
) -> None:
    service = DocumentService(
        documents=SqlDocumentStore(session_factory),
        chunks=SqlChunkStore(session_factory),
        embedder=make_embedder(VOCABULARY),
        extractor=TextExtractor(),
        cache=cache,
        tasks=tasks,
    )

    doc = await service.process_document(_write(tmp_path, "policy.txt", _policy_text()))
    await tasks.drain()

    assert (await service.get_document(doc.id)).status == DocumentStatus.COMPLETED
    chunks = await service.get_document_chunks(doc.id)
    assert len(chunks) >= 3
    # Every sentence mentions each vocabulary word once
    assert len(set(chunks[0].embedding)) == 1
    assert chunks[0].embedding[0] > 0

    await service.delete_document(doc.id)
    assert await service.get_document_chunks(doc.id) == []
