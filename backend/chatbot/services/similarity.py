"""Cosine similarity and top-k ranking over stored embeddings.

Every candidate is compared linearly; there is no vector index.
"""

import math
from collections.abc import Callable, Iterable, Sequence
from typing import TypeVar

T = TypeVar("T")


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two equal-length vectors.

    Returns 0.0 for empty vectors, vectors of different length, or a
    zero-magnitude vector.
    """
    if not a or not b or len(a) != len(b):
        return 0.0

    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))

    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    return dot / (norm_a * norm_b)


def rank_by_similarity(
    query: Sequence[float],
    candidates: Iterable[T],
    embedding_of: Callable[[T], Sequence[float]],
    *,
    threshold: float,
    limit: int | None = None,
) -> list[tuple[T, float]]:
    """Score candidates against a query embedding.

    Args:
        query: Query embedding
        candidates: Items to score
        embedding_of: Extracts the embedding from an item
        threshold: Minimum similarity (inclusive) for an item to be kept
        limit: Maximum number of results, or None for all

    Returns:
        (item, score) pairs sorted by descending score; ties keep input order
    """
    if not query:
        return []

    scored = [(item, cosine_similarity(query, embedding_of(item))) for item in candidates]
    kept = [pair for pair in scored if pair[1] >= threshold]
    kept.sort(key=lambda pair: pair[1], reverse=True)

    if limit is not None:
        return kept[:limit]
    return kept


def best_match(
    query: Sequence[float],
    candidates: Iterable[T],
    embedding_of: Callable[[T], Sequence[float]],
    *,
    threshold: float,
) -> tuple[T, float] | None:
    """Highest-scoring candidate at or above threshold, or None."""
    ranked = rank_by_similarity(query, candidates, embedding_of, threshold=threshold, limit=1)
    return ranked[0] if ranked else None
