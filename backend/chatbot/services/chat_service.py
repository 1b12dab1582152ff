"""Chat service - layered cache lookup, retrieval and answer generation."""

import hashlib
import logging
import secrets
from typing import Any

import pydantic

from backend.chatbot.cache.manager import (
    CACHE_TTL_12_HOUR,
    CACHE_TTL_5_MINS,
    DOCUMENT_CHUNKS_KEY,
    CacheManager,
    question_cache_key,
)
from backend.chatbot.db.repositories import ChatStore, ChunkStore
from backend.chatbot.llm.client import LLMClient
from backend.chatbot.llm.embeddings import EmbeddingClient
from backend.chatbot.models.chat import MessageReply, QuestionResponse
from backend.chatbot.services.similarity import best_match, rank_by_similarity
from backend.chatbot.tasks import BackgroundTaskRunner
from backend.chatbot.utils.metrics import question_cache_total
from backend.chatbot.validation.validators import (
    MAX_CONTEXT_LENGTH,
    validate_and_sanitize_context,
    validate_question,
)

logger = logging.getLogger(__name__)

CONTEXT_HEADER = "Relevant information:\n\n"
NO_CONTEXT_PLACEHOLDER = "No relevant information found."


def hash_question(question: str) -> str:
    """md5 hex digest of the lower-cased, trimmed question."""
    return hashlib.md5(question.lower().strip().encode("utf-8")).hexdigest()


def build_context(contents: list[str]) -> str:
    """Numbered context block, or the placeholder when nothing matched.

    Chunks that would push the block past the context ceiling are left out.
    """
    if not contents:
        return NO_CONTEXT_PLACEHOLDER

    context = CONTEXT_HEADER
    for index, content in enumerate(contents, start=1):
        entry = f"{index}. {content}\n\n"
        if len(context) + len(entry) > MAX_CONTEXT_LENGTH:
            break
        context += entry

    if context == CONTEXT_HEADER:
        return NO_CONTEXT_PLACEHOLDER
    return context


class ChatService:
    """Answers questions from the document corpus.

    Lookup order: exact-match cache, semantic match against earlier
    questions, then retrieval plus generation.
    """

    def __init__(
        self,
        *,
        chats: ChatStore,
        chunks: ChunkStore,
        embedder: EmbeddingClient,
        llm: LLMClient,
        cache: CacheManager,
        tasks: BackgroundTaskRunner,
        question_threshold: float = 0.85,
        chunk_threshold: float = 0.3,
        top_k: int = 5,
        question_ttl_seconds: int = CACHE_TTL_12_HOUR,
        chunk_ttl_seconds: int = CACHE_TTL_5_MINS,
    ) -> None:
        self._chats = chats
        self._chunks = chunks
        self._embedder = embedder
        self._llm = llm
        self._cache = cache
        self._tasks = tasks
        self._question_threshold = question_threshold
        self._chunk_threshold = chunk_threshold
        self._top_k = top_k
        self._question_ttl = question_ttl_seconds
        self._chunk_ttl = chunk_ttl_seconds

    async def process_question(self, question: str) -> QuestionResponse:
        """Answer a question.

        Args:
            question: Raw user question

        Returns:
            Answer with cached=True when served from either cache layer

        Raises:
            ValidationError: Question is empty, out of bounds, or unsafe
            UpstreamError: Embedding or generation failed on every key
            PersistenceError: Stored questions or chunks could not be read
        """
        sanitized = validate_question(question)
        question_hash = hash_question(sanitized)
        cache_key = question_cache_key(question_hash)

        cached = await self._get_cached_response(cache_key)
        if cached is not None:
            question_cache_total.labels(layer="exact", outcome="hit").inc()
            return cached.model_copy(update={"cached": True})
        question_cache_total.labels(layer="exact", outcome="miss").inc()

        embedding = await self._embedder.embed_text(sanitized)

        similar = await self._find_similar_answer(embedding)
        if similar is not None:
            question_cache_total.labels(layer="semantic", outcome="hit").inc()
            response = QuestionResponse(question=sanitized, answer=similar, cached=True)
            self._cache.set_in_background(cache_key, response.model_dump(), self._question_ttl)
            return response
        question_cache_total.labels(layer="semantic", outcome="miss").inc()

        contents = await self._retrieve_chunks(embedding)
        context = validate_and_sanitize_context(build_context(contents))

        answer = await self._llm.generate_answer(question=sanitized, context=context)
        response = QuestionResponse(question=sanitized, answer=answer, cached=False)

        self._tasks.spawn(
            self._chats.upsert(
                chat_id=question_hash,
                question=sanitized,
                answer=answer,
                embedding_question=embedding,
            ),
            name=f"chat-save:{question_hash}",
        )
        self._cache.set_in_background(cache_key, response.model_dump(), self._question_ttl)

        logger.info(
            "Question answered",
            extra={"structured": {"question_hash": question_hash, "chunks": len(contents)}},
        )
        return response

    async def process_message(self, message: str, conversation_id: str | None = None) -> MessageReply:
        """Conversational wrapper; conversation_id is generated when absent."""
        conversation_id = conversation_id or secrets.token_hex(16)
        response = await self.process_question(message)

        return MessageReply(
            response=response.answer,
            message=response.answer,
            conversation_id=conversation_id,
            cached=response.cached,
        )

    async def _get_cached_response(self, cache_key: str) -> QuestionResponse | None:
        raw = await self._cache.get(cache_key)
        if raw is None:
            return None

        try:
            return QuestionResponse.model_validate(raw)
        except pydantic.ValidationError:
            logger.warning("Discarding malformed cached answer", extra={"structured": {"key": cache_key}})
            return None

    async def _find_similar_answer(self, embedding: list[float]) -> str | None:
        if not embedding:
            return None

        chats = await self._chats.list_with_embeddings()
        match = best_match(
            embedding, chats, lambda chat: chat.embedding_question, threshold=self._question_threshold
        )
        if match is None:
            return None

        chat, score = match
        logger.info(
            "Similar question found",
            extra={"structured": {"chat_id": chat.id, "similarity": round(score, 4)}},
        )
        return chat.answer

    async def _retrieve_chunks(self, embedding: list[float]) -> list[str]:
        if not embedding:
            return []

        candidates = await self._cache.get_or_compute(DOCUMENT_CHUNKS_KEY, self._chunk_ttl, self._load_chunks)
        ranked = rank_by_similarity(
            embedding,
            candidates,
            lambda chunk: chunk["embedding"],
            threshold=self._chunk_threshold,
            limit=self._top_k,
        )
        return [chunk["content"] for chunk, _ in ranked]

    async def _load_chunks(self) -> list[dict[str, Any]]:
        records = await self._chunks.list_embedded()
        return [
            {
                "document_id": str(record.document_id),
                "chunk_index": record.chunk_index,
                "content": record.content,
                "embedding": record.embedding,
            }
            for record in records
        ]
