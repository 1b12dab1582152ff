"""Embedding client backed by an OpenAI-compatible provider.

Security: keys come from the shared KeyRotator and are never logged.
A deterministic stub is available when no key is configured.
"""

import hashlib
import logging
import math
import re
from collections.abc import Callable
from typing import Protocol

import openai
from openai import AsyncOpenAI

from backend.chatbot.config import Settings
from backend.chatbot.errors import EmbeddingError
from backend.chatbot.llm.key_rotator import KeyRotator, retry_with_api_key

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], AsyncOpenAI]


class EmbeddingClient(Protocol):
    """Protocol for embedding implementations."""

    async def embed_text(self, text: str) -> list[float]:
        """Turn text into a fixed-length vector.

        Returns:
            The embedding, or an empty list when the provider returned none
        """
        ...


class EmbeddingService:
    """Embeds text through the key rotator, one upstream call per text."""

    def __init__(
        self,
        rotator: KeyRotator,
        *,
        model: str,
        base_url: str | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        """Initialize embedding service.

        Args:
            rotator: Shared key pool
            model: Embedding model name
            base_url: Optional OpenAI-compatible endpoint
            client_factory: Builds a client for a key (injectable for tests)
        """
        self._rotator = rotator
        self._model = model
        self._base_url = base_url
        self._client_factory = client_factory or self._default_client
        self._clients: dict[str, AsyncOpenAI] = {}

    def _default_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key, base_url=self._base_url)

    def _client_for(self, api_key: str) -> AsyncOpenAI:
        if api_key not in self._clients:
            self._clients[api_key] = self._client_factory(api_key)
        return self._clients[api_key]

    async def embed_text(self, text: str) -> list[float]:
        """Embed a single text.

        Raises:
            NoApiKeyError: The rotator is empty
            AllKeysExhaustedError: Every key failed
            EmbeddingError: The provider rejected the request outright
        """

        async def call(api_key: str) -> list[float]:
            response = await self._client_for(api_key).embeddings.create(model=self._model, input=text)
            if not response.data or not response.data[0].embedding:
                logger.warning("Embedding provider returned no embeddings")
                return []
            return [float(v) for v in response.data[0].embedding]

        try:
            return await retry_with_api_key(self._rotator, call, operation_name="embedding")
        except openai.OpenAIError as e:
            raise EmbeddingError(f"Embedding API error: {e}") from e


_TOKEN = re.compile(r"\w+", re.UNICODE)


class DeterministicStubEmbedder:
    """Hashing bag-of-words embedder for running without credentials.

    Texts sharing words get positive cosine similarity, identical texts get 1.0.
    """

    def __init__(self, dimensions: int = 256) -> None:
        self._dimensions = dimensions

    async def embed_text(self, text: str) -> list[float]:
        """Generate deterministic embedding."""
        vector = [0.0] * self._dimensions

        for token in _TOKEN.findall(text.lower()):
            digest = hashlib.md5(token.encode("utf-8")).digest()
            index = int.from_bytes(digest[:4], "big") % self._dimensions
            vector[index] += 1.0

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]


def get_embedding_client(settings: Settings, rotator: KeyRotator) -> EmbeddingClient:
    """Factory function to get appropriate embedding client based on config.

    Returns:
        EmbeddingService if keys are configured, DeterministicStubEmbedder otherwise
    """
    if rotator.has_keys():
        logger.info(f"Using upstream embeddings ({rotator.get_key_count()} key(s))")
        return EmbeddingService(rotator, model=settings.embedding_model, base_url=settings.llm_base_url)

    logger.warning("No API keys configured, using deterministic stub embedder")
    return DeterministicStubEmbedder()
