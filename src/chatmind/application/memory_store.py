"""
Memory Store

Single source of truth for one persona's long-term memory. Enforces the
insertion-policy transitions (Natural/NaturalForced -> Trigger after first
use), duplicate rejection and decay. All mutations are serialized through
one ``asyncio.Lock`` per store; different personas own different stores and
never contend.
"""

from __future__ import annotations

import asyncio
from collections.abc import Collection, Sequence
from datetime import datetime, timedelta

import structlog

from chatmind.core.domain.config_schema import MemorySettings
from chatmind.core.domain.errors import PersistenceError, RetrievalError
from chatmind.core.domain.memory import InsertionPolicy, MemoryRecord
from chatmind.core.interfaces.persistence import MemoryRepositoryProtocol
from chatmind.core.interfaces.retrieval import RetrievalProtocol
from chatmind.core.utils.time import utc_now

logger = structlog.get_logger(__name__)


class MemoryStore:
    """Durable collection of ``MemoryRecord`` objects for one persona.

    Args:
        owner: Unique name of the owning persona, used as persistence key.
        settings: Insertion, retrieval and decay policy.
        retrieval: Optional embedding/search collaborator. Without it no
            record gets an embedding and similarity paths return nothing.
        repository: Optional persistence backend.
    """

    def __init__(
        self,
        owner: str,
        settings: MemorySettings | None = None,
        retrieval: RetrievalProtocol | None = None,
        repository: MemoryRepositoryProtocol | None = None,
    ) -> None:
        self._owner = owner
        self._settings = settings or MemorySettings()
        self._retrieval = retrieval
        self._repository = repository
        self._records: dict[str, MemoryRecord] = {}
        self._lock = asyncio.Lock()

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def settings(self) -> MemorySettings:
        return self._settings

    @property
    def retrieval_enabled(self) -> bool:
        return self._retrieval is not None and self._retrieval.enabled

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def records(self) -> list[MemoryRecord]:
        """All records in insertion order."""
        return list(self._records.values())

    def get(self, record_id: str) -> MemoryRecord | None:
        return self._records.get(record_id)

    def find_by_source_key(self, source_key: str) -> MemoryRecord | None:
        for record in self._records.values():
            if record.source_key == source_key:
                return record
        return None

    def _find_duplicate(self, record: MemoryRecord) -> MemoryRecord | None:
        key = record.dedup_key()
        for existing in self._records.values():
            if existing.id == record.id or existing.dedup_key() == key:
                return existing
        return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def memorize(self, record: MemoryRecord) -> bool:
        """Insert ``record`` unless an equivalent one already exists.

        When retrieval is enabled and the record has no embedding yet, one is
        computed before insertion. An embedding failure is logged and the
        record is stored without one; it stays invisible to similarity search
        until ``refresh_embeddings`` fills it in.

        Returns:
            True when inserted, False for a duplicate.
        """
        if self._find_duplicate(record) is not None:
            logger.debug("memory_store.duplicate", owner=self._owner, record_id=record.id)
            return False

        if self.retrieval_enabled and not record.has_embedding:
            await self._embed_record(record)

        async with self._lock:
            if self._find_duplicate(record) is not None:
                logger.debug("memory_store.duplicate", owner=self._owner, record_id=record.id)
                return False
            self._records[record.id] = record

        logger.info(
            "memory_store.memorized",
            owner=self._owner,
            record_id=record.id,
            category=record.category.value,
            policy=record.policy.value,
            embedded=record.has_embedding,
        )
        return True

    async def forget(self, record_id: str) -> bool:
        """Remove a record. Returns False when it did not exist."""
        async with self._lock:
            removed = self._records.pop(record_id, None)
        if removed is None:
            return False
        logger.info("memory_store.forgotten", owner=self._owner, record_id=record_id)
        return True

    async def commit(
        self, record: MemoryRecord | str, used: bool = True, now: datetime | None = None
    ) -> MemoryRecord | None:
        """Apply the post-use transition for a record that was placed in a prompt.

        ``Natural`` becomes ``Trigger`` and is deleted right away when its
        priority is 0. ``NaturalForced`` becomes ``Trigger`` and is kept.
        ``Trigger`` records only get their usage stamp updated.

        Returns:
            The record if it is still stored, None otherwise.
        """
        record_id = record if isinstance(record, str) else record.id
        async with self._lock:
            stored = self._records.get(record_id)
            if stored is None or not used or stored.policy == InsertionPolicy.DISABLED:
                return stored
            previous = stored.policy
            stored.touch(now)
            if previous.is_natural:
                stored.policy = InsertionPolicy.TRIGGER
            if previous == InsertionPolicy.NATURAL and stored.priority == 0:
                del self._records[record_id]
                logger.info("memory_store.one_shot_consumed", owner=self._owner, record_id=record_id)
                return None

        if previous != stored.policy:
            logger.info(
                "memory_store.policy_transition",
                owner=self._owner,
                record_id=record_id,
                from_policy=previous.value,
                to_policy=stored.policy.value,
            )
        return stored

    async def decay_sweep(self, now: datetime | None = None) -> list[str]:
        """Remove stale records.

        ``Trigger`` records in a decayable category whose last activity is
        older than the decay threshold and whose priority is at or below the
        floor are removed. Plain ``Natural`` records that never surfaced
        within the natural expiry window are removed as well. Everything else
        stays, however long it has been dormant; a ``NaturalForced`` record
        is always kept until it has surfaced.

        Returns:
            Ids of removed records.
        """
        now = now or utc_now()
        decay_before = now - timedelta(days=self._settings.decay_after_days)
        expire_before = now - timedelta(days=self._settings.natural_expiry_days)
        decayable = set(self._settings.decayable_categories)

        async with self._lock:
            removed = []
            for record in list(self._records.values()):
                if record.policy == InsertionPolicy.DISABLED:
                    continue
                stale = (
                    record.policy == InsertionPolicy.TRIGGER
                    and record.category in decayable
                    and record.priority <= self._settings.decay_priority_floor
                    and record.last_activity_at < decay_before
                )
                expired = (
                    record.policy == InsertionPolicy.NATURAL
                    and record.trigger_count == 0
                    and record.created_at < expire_before
                )
                if stale or expired:
                    del self._records[record.id]
                    removed.append(record.id)

        if removed:
            logger.info("memory_store.decayed", owner=self._owner, removed=len(removed))
        return removed

    async def refresh_embeddings(self, limit: int | None = None) -> int:
        """Compute embeddings for records that lack one.

        Returns:
            Number of records that received an embedding.
        """
        if not self.retrieval_enabled:
            return 0
        pending = self.pending_embeddings()
        if limit is not None:
            pending = pending[:limit]
        done = 0
        for record in pending:
            if await self._embed_record(record):
                done += 1
        return done

    async def _embed_record(self, record: MemoryRecord) -> bool:
        assert self._retrieval is not None
        try:
            vector = await self._retrieval.embed(record.embedding_text())
        except RetrievalError as exc:
            logger.warning(
                "memory_store.embedding_failed",
                owner=self._owner,
                record_id=record.id,
                error=str(exc),
            )
            return False
        record.embedding = list(vector)
        return True

    # ------------------------------------------------------------------
    # Eligibility queries
    # ------------------------------------------------------------------

    def eligible_for_similarity_search(self) -> list[MemoryRecord]:
        """Trigger records with an embedding, the similarity-search corpus."""
        return [
            record
            for record in self._records.values()
            if record.policy == InsertionPolicy.TRIGGER and record.has_embedding
        ]

    def pending_embeddings(self) -> list[MemoryRecord]:
        return [
            record
            for record in self._records.values()
            if record.policy != InsertionPolicy.DISABLED and not record.has_embedding
        ]

    def natural_candidates(self) -> list[MemoryRecord]:
        """Records still waiting for their natural insertion."""
        return [r for r in self._records.values() if r.policy.is_natural]

    def keyword_matches(
        self, text: str, policies: Collection[InsertionPolicy]
    ) -> list[MemoryRecord]:
        """Records with one of ``policies`` whose keywords occur in ``text``.

        Works without embeddings, so records the retrieval collaborator never
        processed can still be recalled.
        """
        if not text.strip():
            return []
        return [
            record
            for record in self._records.values()
            if record.policy in policies and record.matches_keywords(text)
        ]

    async def embed_query(self, text: str) -> list[float] | None:
        """Embed input text for the eligibility queries, None without retrieval.

        Raises:
            RetrievalError: The embedding backend failed.
        """
        if not self.retrieval_enabled or not text.strip():
            return None
        assert self._retrieval is not None
        return list(await self._retrieval.embed(text))

    async def search_triggered(
        self,
        context_text: str,
        *,
        query_vector: Sequence[float] | None = None,
        max_results: int | None = None,
    ) -> list[MemoryRecord]:
        """Trigger records recalled by ``context_text``.

        Keyword matches come first, then similarity hits best first, without
        duplicates and capped at ``max_results``.

        Raises:
            RetrievalError: The embedding or search backend failed.
        """
        limit = self._settings.retrieval_max_results if max_results is None else max_results
        results = self.keyword_matches(context_text, (InsertionPolicy.TRIGGER,))

        corpus = self.eligible_for_similarity_search()
        if corpus and self.retrieval_enabled:
            if query_vector is None:
                query_vector = await self.embed_query(context_text)
            if query_vector is not None:
                assert self._retrieval is not None
                hits = await self._retrieval.search(
                    query_vector,
                    [(record.id, record.embedding) for record in corpus],
                    limit,
                    self._settings.retrieval_distance_cutoff,
                )
                seen = {record.id for record in results}
                for hit in hits:
                    if hit.record_id in self._records and hit.record_id not in seen:
                        results.append(self._records[hit.record_id])
                        seen.add(hit.record_id)
        return results[:limit]

    async def eligible_for_natural_insertion(
        self,
        context_text: str,
        *,
        query_vector: Sequence[float] | None = None,
    ) -> MemoryRecord | None:
        """Pick at most one Natural/NaturalForced record for this turn.

        The closest semantic match within the natural distance cutoff wins,
        then a keyword match (highest priority first). Without either, a
        ``NaturalForced`` record surfaces anyway once it has gone unused for
        ``forced_after_turns`` turns, or right away when the input is an
        open-ended prompt such as "what's new?" (longest waiting first).

        Selection does not touch the unused-turn counters; the caller reports
        the finished turn through ``record_natural_turn``.

        Raises:
            RetrievalError: The embedding or search backend failed.
        """
        candidates = self.natural_candidates()
        if not candidates:
            return None

        winner: MemoryRecord | None = None
        embedded = [r for r in candidates if r.has_embedding]
        if embedded and self.retrieval_enabled:
            if query_vector is None:
                query_vector = await self.embed_query(context_text)
            if query_vector is not None:
                assert self._retrieval is not None
                hits = await self._retrieval.search(
                    query_vector,
                    [(record.id, record.embedding) for record in embedded],
                    1,
                    self._settings.natural_distance_cutoff,
                )
                if hits and hits[0].record_id in self._records:
                    winner = self._records[hits[0].record_id]

        if winner is None:
            matched = [r for r in candidates if r.matches_keywords(context_text)]
            if matched:
                matched.sort(key=lambda r: (-r.priority, r.created_at))
                winner = matched[0]

        if winner is None:
            news = self._settings.is_news_trigger(context_text)
            forced = [
                r
                for r in candidates
                if r.policy == InsertionPolicy.NATURAL_FORCED
                and (news or r.turns_unused >= self._settings.forced_after_turns)
            ]
            if forced:
                forced.sort(key=lambda r: (-r.turns_unused, -r.priority, r.created_at))
                winner = forced[0]

        if winner is not None:
            logger.debug(
                "memory_store.natural_selected",
                owner=self._owner,
                record_id=winner.id,
                policy=winner.policy.value,
            )
        return winner

    async def record_natural_turn(self, candidate_ids: Sequence[str]) -> None:
        """Count a completed turn against the candidates that did not surface.

        Call after the used records were committed: a record placed in the
        prompt has left the natural policies by then and keeps its counter.
        """
        async with self._lock:
            for record_id in candidate_ids:
                record = self._records.get(record_id)
                if record is not None and record.policy.is_natural:
                    record.turns_unused += 1

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load(self) -> int:
        """Replace in-memory records with the persisted ones."""
        if self._repository is None:
            return 0
        records = await self._repository.load(self._owner)
        async with self._lock:
            self._records = {record.id: record for record in records}
        logger.info("memory_store.loaded", owner=self._owner, count=len(records))
        return len(records)

    async def save(self) -> None:
        """Persist all records. Failures are logged and re-raised.

        Raises:
            PersistenceError: The repository could not write the file. The
                in-memory records are unaffected.
        """
        if self._repository is None:
            return
        async with self._lock:
            snapshot = list(self._records.values())
        try:
            await self._repository.save(self._owner, snapshot)
        except PersistenceError as exc:
            logger.error("memory_store.save_failed", owner=self._owner, error=str(exc))
            raise
        logger.debug("memory_store.saved", owner=self._owner, count=len(snapshot))
