"""Brute-force cosine similarity search over an in-memory corpus."""

from __future__ import annotations

import math
from collections.abc import Awaitable, Callable, Sequence

from chatmind.core.domain.errors import RetrievalError
from chatmind.core.interfaces.retrieval import SearchHit

EmbedFn = Callable[[str], Awaitable[list[float]]]


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """1 - cosine similarity. Zero vectors are maximally distant."""
    if len(a) != len(b):
        raise RetrievalError(
            "Embedding dimensions differ", details={"left": len(a), "right": len(b)}
        )
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 2.0
    return 1.0 - dot / norm


class CosineRetrieval:
    """Retrieval adapter with a pluggable embedder and exhaustive search.

    Args:
        embed_fn: Async text -> vector function. Retrieval is disabled
            when it is None.
    """

    def __init__(self, embed_fn: EmbedFn | None = None) -> None:
        self._embed_fn = embed_fn

    @property
    def enabled(self) -> bool:
        return self._embed_fn is not None

    async def embed(self, text: str) -> list[float]:
        if self._embed_fn is None:
            raise RetrievalError("Retrieval is disabled")
        return list(await self._embed_fn(text))

    async def search(
        self,
        query_vector: Sequence[float],
        corpus: Sequence[tuple[str, Sequence[float]]],
        max_results: int,
        distance_cutoff: float,
    ) -> list[SearchHit]:
        if max_results <= 0 or not query_vector:
            return []
        hits = []
        for index, (record_id, vector) in enumerate(corpus):
            if len(vector) != len(query_vector):
                continue
            distance = cosine_distance(query_vector, vector)
            if distance <= distance_cutoff:
                hits.append((distance, index, record_id))
        # Ties keep corpus order.
        hits.sort()
        return [SearchHit(record_id=record_id, distance=d) for d, _, record_id in hits[:max_results]]
