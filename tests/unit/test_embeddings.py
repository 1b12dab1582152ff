"""Tests for the embedding client and the deterministic stub embedder."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from backend.chatbot.config import Settings
from backend.chatbot.errors import AllKeysExhaustedError, EmbeddingError
from backend.chatbot.llm.embeddings import DeterministicStubEmbedder, EmbeddingService, get_embedding_client
from backend.chatbot.llm.key_rotator import KeyRotator
from backend.chatbot.services.similarity import cosine_similarity


def _client_returning(create: AsyncMock) -> MagicMock:
    client = MagicMock()
    client.embeddings.create = create
    return client


def _embedding_response(vector: list[float]) -> SimpleNamespace:
    return SimpleNamespace(data=[SimpleNamespace(embedding=vector)])


class TestEmbeddingService:
    @pytest.mark.asyncio
    async def test_returns_vector(self) -> None:
        create = AsyncMock(return_value=_embedding_response([0.1, 0.2, 0.3]))
        service = EmbeddingService(KeyRotator(["k1"]), model="embed-model", client_factory=lambda _: _client_returning(create))

        assert await service.embed_text("ticket prices") == [0.1, 0.2, 0.3]
        create.assert_awaited_once_with(model="embed-model", input="ticket prices")

    @pytest.mark.asyncio
    async def test_empty_provider_response_is_empty_vector(self) -> None:
        create = AsyncMock(return_value=SimpleNamespace(data=[]))
        service = EmbeddingService(KeyRotator(["k1"]), model="m", client_factory=lambda _: _client_returning(create))

        assert await service.embed_text("anything") == []

    @pytest.mark.asyncio
    async def test_fails_over_between_keys(self) -> None:
        clients = {
            "bad": _client_returning(AsyncMock(side_effect=RuntimeError("quota exceeded"))),
            "good": _client_returning(AsyncMock(return_value=_embedding_response([1.0]))),
        }
        service = EmbeddingService(KeyRotator(["bad", "good"]), model="m", client_factory=clients.__getitem__)

        assert await service.embed_text("hello") == [1.0]

    @pytest.mark.asyncio
    async def test_every_key_failing_raises_exhausted(self) -> None:
        create = AsyncMock(side_effect=RuntimeError("quota exceeded"))
        service = EmbeddingService(KeyRotator(["k1", "k2"]), model="m", client_factory=lambda _: _client_returning(create))

        with pytest.raises(AllKeysExhaustedError):
            await service.embed_text("hello")

        assert create.await_count == 2

    @pytest.mark.asyncio
    async def test_fatal_provider_error_is_wrapped(self) -> None:
        request = httpx.Request("POST", "https://api.example.test/v1/embeddings")
        error = openai.NotFoundError("no such model", response=httpx.Response(404, request=request), body=None)
        create = AsyncMock(side_effect=error)
        service = EmbeddingService(KeyRotator(["k1", "k2"]), model="m", client_factory=lambda _: _client_returning(create))

        with pytest.raises(EmbeddingError):
            await service.embed_text("hello")

        assert create.await_count == 1

    @pytest.mark.asyncio
    async def test_client_is_built_once_per_key(self) -> None:
        create = AsyncMock(return_value=_embedding_response([1.0]))
        factory = MagicMock(side_effect=lambda _: _client_returning(create))
        service = EmbeddingService(KeyRotator(["k1"]), model="m", client_factory=factory)

        await service.embed_text("a")
        await service.embed_text("b")

        factory.assert_called_once_with("k1")


class TestDeterministicStubEmbedder:
    @pytest.mark.asyncio
    async def test_deterministic_and_normalized(self) -> None:
        embedder = DeterministicStubEmbedder()
        first = await embedder.embed_text("Ticket prices on weekends")
        second = await embedder.embed_text("Ticket prices on weekends")

        assert first == second
        assert len(first) == 256
        assert cosine_similarity(first, second) == pytest.approx(1.0)
        assert sum(v * v for v in first) == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_shared_words_raise_similarity(self) -> None:
        embedder = DeterministicStubEmbedder()
        query = await embedder.embed_text("ticket price")
        related = await embedder.embed_text("the ticket price is ten dollars")
        unrelated = await embedder.embed_text("parking garage opens early")

        assert cosine_similarity(query, related) > cosine_similarity(query, unrelated)

    @pytest.mark.asyncio
    async def test_text_without_words_is_zero_vector(self) -> None:
        vector = await DeterministicStubEmbedder(dimensions=8).embed_text("...")
        assert vector == [0.0] * 8


def test_factory_uses_stub_without_keys() -> None:
    settings = Settings(_env_file=None, llm_api_keys="")
    assert isinstance(get_embedding_client(settings, KeyRotator(settings.api_keys)), DeterministicStubEmbedder)


def test_factory_uses_service_with_keys() -> None:
    settings = Settings(_env_file=None, llm_api_keys="k1,k2")
    assert isinstance(get_embedding_client(settings, KeyRotator(settings.api_keys)), EmbeddingService)
