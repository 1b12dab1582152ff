"""Shared pytest fixtures for all test suites."""

import os
from collections.abc import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from backend.chatbot.cache.manager import CacheManager
from backend.chatbot.cache.stores import InMemoryCacheStore
from backend.chatbot.config import Settings
from backend.chatbot.db.models import Base
from backend.chatbot.tasks import BackgroundTaskRunner


class KeywordEmbedder:
    """Test embedder: one dimension per vocabulary word, counts occurrences.

    Texts sharing no vocabulary word get similarity 0; identical word bags
    get similarity 1. Unknown words are ignored.
    """

    def __init__(self, vocabulary: list[str]) -> None:
        self.vocabulary = vocabulary
        self.calls: list[str] = []

    async def embed_text(self, text: str) -> list[float]:
        self.calls.append(text)
        words = [w.strip(".,?!;:").lower() for w in text.split()]
        return [float(words.count(term)) for term in self.vocabulary]


class RecordingLLM:
    """Test answer client recording every call."""

    def __init__(self, answer: str | Callable[[str, str], str] = "Tickets cost 10 dollars.") -> None:
        self._answer = answer
        self.calls: list[tuple[str, str]] = []

    async def generate_answer(self, *, question: str, context: str) -> str:
        self.calls.append((question, context))
        if callable(self._answer):
            return self._answer(question, context)
        return self._answer


@pytest.fixture
def make_embedder() -> Callable[[list[str]], KeywordEmbedder]:
    """Factory for vocabulary-based test embedders."""
    return KeywordEmbedder


@pytest.fixture
def make_llm() -> Callable[..., RecordingLLM]:
    """Factory for recording test answer clients."""
    return RecordingLLM


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        database_url=None,
        redis_url=None,
        llm_api_keys="",
        upload_dir="uploads",
    )


@pytest.fixture
def tasks() -> BackgroundTaskRunner:
    return BackgroundTaskRunner()


@pytest.fixture
def cache_store() -> InMemoryCacheStore:
    return InMemoryCacheStore()


@pytest.fixture
def cache(cache_store: InMemoryCacheStore, tasks: BackgroundTaskRunner) -> CacheManager:
    return CacheManager(cache_store, tasks)


@pytest_asyncio.fixture
async def sqlite_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with all tables created.

    StaticPool keeps every session on the same connection, and so on the
    same in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=sqlite_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def postgres_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine for PostgreSQL integration tests.

    Requires DATABASE_URL to be set to a real PostgreSQL connection string.
    Tests using this fixture should be marked with @pytest.mark.postgres.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set - skipping postgres test")

    if not database_url.startswith(("postgresql://", "postgresql+asyncpg://")):
        pytest.skip(f"DATABASE_URL is not PostgreSQL: {database_url}")

    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine = create_async_engine(database_url, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()
