"""Composition root - wires stores, clients and services from settings."""

import logging
from dataclasses import dataclass, field

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from backend.chatbot.cache.manager import CacheManager
from backend.chatbot.cache.stores import CacheStore, InMemoryCacheStore, RedisCacheStore
from backend.chatbot.config import Settings
from backend.chatbot.db.engine import create_async_engine_from_settings, create_session_factory, init_schema
from backend.chatbot.db.inmemory import InMemoryChatStore, InMemoryChunkStore, InMemoryDocumentStore
from backend.chatbot.db.repositories import ChatStore, ChunkStore, DocumentStore
from backend.chatbot.db.sql_repositories import SqlChatStore, SqlChunkStore, SqlDocumentStore
from backend.chatbot.docs.chunker import ChunkConfig, ChunkMethod
from backend.chatbot.docs.extractor import TextExtractor
from backend.chatbot.llm.client import LLMClient, get_llm_client
from backend.chatbot.llm.embeddings import EmbeddingClient, get_embedding_client
from backend.chatbot.llm.key_rotator import KeyRotator
from backend.chatbot.services.chat_service import ChatService
from backend.chatbot.services.document_service import DocumentService
from backend.chatbot.tasks import BackgroundTaskRunner

logger = logging.getLogger(__name__)


@dataclass
class Container:
    """Every long-lived component of the service, built once per process."""

    settings: Settings
    tasks: BackgroundTaskRunner
    cache_store: CacheStore
    cache: CacheManager
    rotator: KeyRotator
    embedder: EmbeddingClient
    llm: LLMClient
    extractor: TextExtractor
    documents: DocumentStore
    chunks: ChunkStore
    chats: ChatStore
    document_service: DocumentService
    chat_service: ChatService
    engine: AsyncEngine | None = field(default=None, repr=False)

    async def startup(self) -> None:
        """Create tables when configured to."""
        if self.engine is not None and self.settings.create_schema_on_startup:
            await init_schema(self.engine)
            logger.info("Database schema ensured")

    async def check_db(self) -> tuple[bool, str]:
        """Check database connectivity.

        Returns:
            (is_ok, status_message)
        """
        if self.engine is None:
            return (True, "in_memory")

        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return (True, "ok")
        except Exception as e:
            return (False, f"error: {type(e).__name__}")

    async def check_redis(self) -> tuple[bool, str]:
        """Check cache store connectivity.

        Returns:
            (is_ok, status_message)
        """
        if not isinstance(self.cache_store, RedisCacheStore):
            return (True, "not_configured")

        try:
            await self.cache_store.ping()
            return (True, "ok")
        except Exception as e:
            return (False, f"error: {type(e).__name__}")

    async def aclose(self) -> None:
        """Finish background work, then release connections."""
        await self.tasks.drain()
        if self.engine is not None:
            await self.engine.dispose()
        await self.cache_store.close()


def chunk_config_from_settings(settings: Settings) -> ChunkConfig:
    return ChunkConfig(
        max_size=settings.chunk_max_size,
        overlap=settings.chunk_overlap,
        method=ChunkMethod(settings.chunk_method),
        min_size=settings.chunk_min_size,
    )


def build_container(
    settings: Settings,
    *,
    embedder: EmbeddingClient | None = None,
    llm: LLMClient | None = None,
    cache_store: CacheStore | None = None,
) -> Container:
    """Build the service graph.

    SQL stores are used when DATABASE_URL is set, in-memory stores otherwise.
    Redis backs the cache when REDIS_URL is set. Without API keys the
    deterministic stub embedder and answer client are wired in.

    Args:
        settings: Application settings
        embedder: Embedding client override
        llm: Answer client override
        cache_store: Cache store override

    Returns:
        Wired container; call startup() before serving
    """
    tasks = BackgroundTaskRunner()

    if cache_store is None:
        cache_store = RedisCacheStore.from_url(settings.redis_url) if settings.redis_url else InMemoryCacheStore()
    cache = CacheManager(cache_store, tasks)

    rotator = KeyRotator(settings.api_keys)
    embedder = embedder or get_embedding_client(settings, rotator)
    llm = llm or get_llm_client(settings, rotator)
    extractor = TextExtractor(
        max_file_size=settings.max_upload_bytes,
        allowed_extensions=settings.allowed_extensions,
    )

    engine: AsyncEngine | None = None
    documents: DocumentStore
    chunks: ChunkStore
    chats: ChatStore
    if settings.database_url:
        engine = create_async_engine_from_settings(settings)
        session_factory = create_session_factory(engine)
        documents = SqlDocumentStore(session_factory)
        chunks = SqlChunkStore(session_factory)
        chats = SqlChatStore(session_factory)
    else:
        logger.warning("DATABASE_URL not set, using in-memory stores")
        documents = InMemoryDocumentStore()
        chunks = InMemoryChunkStore()
        chats = InMemoryChatStore()

    document_service = DocumentService(
        documents=documents,
        chunks=chunks,
        embedder=embedder,
        extractor=extractor,
        cache=cache,
        tasks=tasks,
        chunk_config=chunk_config_from_settings(settings),
    )
    chat_service = ChatService(
        chats=chats,
        chunks=chunks,
        embedder=embedder,
        llm=llm,
        cache=cache,
        tasks=tasks,
        question_threshold=settings.question_similarity_threshold,
        chunk_threshold=settings.chunk_similarity_threshold,
        top_k=settings.chunk_top_k,
        question_ttl_seconds=settings.question_cache_ttl_seconds,
        chunk_ttl_seconds=settings.chunk_cache_ttl_seconds,
    )

    return Container(
        settings=settings,
        tasks=tasks,
        cache_store=cache_store,
        cache=cache,
        rotator=rotator,
        embedder=embedder,
        llm=llm,
        extractor=extractor,
        documents=documents,
        chunks=chunks,
        chats=chats,
        document_service=document_service,
        chat_service=chat_service,
        engine=engine,
    )
