"""
Retrieval Protocol

Boundary to the vector-similarity collaborator. Implementations are treated
as pure: embedding the same text twice yields the same vector and searching
has no side effects.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class SearchHit:
    """A record id with its distance to the query (lower is closer)."""

    record_id: str
    distance: float


class RetrievalProtocol(Protocol):
    """Embedding plus nearest-neighbour search over a supplied corpus."""

    @property
    def enabled(self) -> bool:
        """Whether embeddings can be computed at all."""
        ...

    async def embed(self, text: str) -> list[float]:
        """Return a fixed-length vector for ``text``.

        Raises:
            RetrievalError: The embedding backend failed.
        """
        ...

    async def search(
        self,
        query_vector: Sequence[float],
        corpus: Sequence[tuple[str, Sequence[float]]],
        max_results: int,
        distance_cutoff: float,
    ) -> list[SearchHit]:
        """Rank ``corpus`` entries by distance to ``query_vector``.

        Args:
            query_vector: Embedding of the query text.
            corpus: ``(record_id, vector)`` pairs to search.
            max_results: Maximum number of hits.
            distance_cutoff: Hits farther than this are dropped.

        Returns:
            Hits sorted by ascending distance.
        """
        ...
