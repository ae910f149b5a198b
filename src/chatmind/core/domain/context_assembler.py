"""
Context Assembler

Packs the prompt for one model call under a hard token budget:

    preamble | previous-session summaries | preamble memories |
    history (newest kept first, inline memory slot near the end) | user turn

History is packed greedily from the most recent message backward and the walk
stops at the first message that does not fit, so the packed window never has
gaps. Memory entries compete for the same budget and are simply left out when
they do not fit; leaving one out never consumes it from the Memory Store.

The assembler is synchronous and deterministic: the same inputs always give
the same ordered result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Sequence

from chatmind.core.domain.config_schema import (
    ContextSettings,
    MemoryPlacement,
    SessionHandling,
)
from chatmind.core.domain.errors import BudgetExhaustedError
from chatmind.core.domain.memory import MemoryRecord
from chatmind.core.domain.session import ChatSession, Message, MessageRole
from chatmind.core.interfaces.tokenizer import TokenizerProtocol

SESSION_SOURCE_PREFIX = "session:"


class EntryKind(str, Enum):
    """What a packed prompt entry was built from."""

    PREAMBLE = "preamble"
    SUMMARY = "summary"
    MEMORY = "memory"
    HISTORY = "history"
    USER_TURN = "user_turn"


@dataclass(frozen=True)
class PromptEntry:
    """One (role, text) entry of an assembled prompt."""

    role: str
    text: str
    tokens: int
    kind: EntryKind
    source_id: str | None = None


@dataclass
class AssembledContext:
    """Result of ``ContextAssembler.assemble``.

    Attributes:
        entries: Ordered prompt entries.
        total_tokens: Sum of entry token costs, never above ``budget``.
        budget: Prompt budget the packing ran against.
        message_ids: Ids of history messages that made it in.
        memory_ids: Ids of memory records that made it in.
        dropped_memory_ids: Candidate memories left out for lack of room.
        summary_session_ids: Sessions surfaced as previous-summary lines.
    """

    entries: list[PromptEntry] = field(default_factory=list)
    total_tokens: int = 0
    budget: int = 0
    message_ids: list[str] = field(default_factory=list)
    memory_ids: list[str] = field(default_factory=list)
    dropped_memory_ids: list[str] = field(default_factory=list)
    summary_session_ids: list[str] = field(default_factory=list)

    @property
    def remaining(self) -> int:
        return self.budget - self.total_tokens

    def includes_memory(self, record_id: str) -> bool:
        return record_id in self.memory_ids

    def to_messages(self) -> list[dict[str, str]]:
        """Render as chat-completion messages."""
        return [{"role": entry.role, "content": entry.text} for entry in self.entries]


class _Counter:
    """Per-call token cache so every text is counted exactly once."""

    def __init__(self, tokenizer: TokenizerProtocol) -> None:
        self._tokenizer = tokenizer
        self._cache: dict[str, int] = {}

    def __call__(self, text: str) -> int:
        cost = self._cache.get(text)
        if cost is None:
            cost = max(0, int(self._tokenizer.count(text)))
            self._cache[text] = cost
        return cost


class ContextAssembler:
    """Builds token-budgeted prompts from preamble, memories and history."""

    def __init__(self, tokenizer: TokenizerProtocol, settings: ContextSettings | None = None):
        self._tokenizer = tokenizer
        self._settings = settings or ContextSettings()

    @property
    def settings(self) -> ContextSettings:
        return self._settings

    def assemble(
        self,
        preamble: str,
        sessions: Sequence[ChatSession],
        *,
        user_turn: Message | None = None,
        natural_memory: MemoryRecord | None = None,
        trigger_memories: Iterable[MemoryRecord] = (),
        inline_memories: Iterable[MemoryRecord] = (),
        budget: int | None = None,
    ) -> AssembledContext:
        """Pack one prompt.

        Args:
            preamble: Fully resolved system preamble. Always included.
            sessions: All sessions in order, the last one being current.
            user_turn: Upcoming user message, always included when given.
            natural_memory: The single natural memory chosen for this turn.
            trigger_memories: Similarity-retrieved records, best first.
                Placed in the preamble or the inline slot per settings.
            inline_memories: Extra records always offered to the inline slot
                (e.g. sticky session summaries).
            budget: Override for the prompt budget, defaults to
                window - reply - margin from settings.

        Raises:
            BudgetExhaustedError: The preamble plus user turn do not fit, or
                they leave no room at all.
        """
        settings = self._settings
        count = _Counter(self._tokenizer)
        budget = settings.budget if budget is None else budget

        preamble_entry = PromptEntry(
            role=MessageRole.SYSTEM_PREAMBLE.chat_role,
            text=preamble,
            tokens=count(preamble),
            kind=EntryKind.PREAMBLE,
        )
        user_entry = None
        if user_turn is not None:
            user_entry = self._message_entry(user_turn, count, EntryKind.USER_TURN)

        mandatory = preamble_entry.tokens + (user_entry.tokens if user_entry else 0)
        if mandatory >= budget:
            raise BudgetExhaustedError(
                "Preamble and user turn leave no room in the context budget",
                budget=budget,
                required=mandatory,
            )
        remaining = budget - mandatory

        result = AssembledContext(budget=budget)
        archived = [s for s in sessions[:-1] if s.is_summarized] if sessions else []
        summary_reserve = 0
        if settings.previous_summaries and archived:
            summary_reserve = min(settings.summary_reserved_tokens, remaining)
            remaining -= summary_reserve

        trigger_list = list(trigger_memories)
        preamble_candidates: list[MemoryRecord] = []
        inline_candidates: list[MemoryRecord] = []
        if natural_memory is not None:
            inline_candidates.append(natural_memory)
        if settings.memory_placement == MemoryPlacement.PREAMBLE:
            preamble_candidates.extend(trigger_list)
        else:
            inline_candidates.extend(trigger_list)
        inline_candidates.extend(inline_memories)
        inline_candidates = _unique(inline_candidates, exclude=preamble_candidates)

        preamble_memories: list[PromptEntry] = []
        for record in preamble_candidates:
            entry = self._memory_entry(record, count)
            if entry.tokens <= remaining:
                preamble_memories.append(entry)
                result.memory_ids.append(record.id)
                remaining -= entry.tokens
            else:
                result.dropped_memory_ids.append(record.id)

        history, remaining, included_sessions = self._pack_history(
            sessions, inline_candidates, remaining, count, result
        )

        summaries = self._pack_summaries(
            archived,
            included_sessions,
            trigger_list + inline_candidates,
            summary_reserve,
            count,
            result,
        )

        entries = [preamble_entry, *summaries, *preamble_memories, *history]
        if user_entry is not None:
            entries.append(user_entry)
        result.entries = entries
        result.total_tokens = sum(entry.tokens for entry in entries)
        return result

    def _pack_history(
        self,
        sessions: Sequence[ChatSession],
        inline_candidates: list[MemoryRecord],
        remaining: int,
        count: _Counter,
        result: AssembledContext,
    ) -> tuple[list[PromptEntry], int, set[str]]:
        """Walk history newest-first and stop at the first misfit."""
        settings = self._settings
        if not sessions:
            walk: list[ChatSession] = []
        elif settings.session_handling == SessionHandling.FIT_ALL:
            walk = list(reversed(sessions))
        else:
            walk = [sessions[-1]]

        packed: list[PromptEntry] = []  # newest first
        included_sessions: set[str] = set()
        inline_done = False
        depth = 0
        stopped = False

        def place_inline() -> None:
            nonlocal remaining, inline_done
            inline_done = True
            for record in inline_candidates:
                entry = self._memory_entry(record, count)
                if entry.tokens <= remaining:
                    packed.append(entry)
                    result.memory_ids.append(record.id)
                    remaining -= entry.tokens
                else:
                    result.dropped_memory_ids.append(record.id)

        for session in walk:
            for message in reversed(session.messages):
                if not inline_done and inline_candidates and depth >= settings.inline_depth:
                    place_inline()
                entry = self._message_entry(message, count, EntryKind.HISTORY)
                if entry.tokens > remaining:
                    stopped = True
                    break
                packed.append(entry)
                result.message_ids.append(message.id)
                included_sessions.add(session.id)
                remaining -= entry.tokens
                depth += 1
            if stopped:
                break

        if not inline_done and inline_candidates:
            place_inline()

        packed.reverse()
        result.message_ids.reverse()
        return packed, remaining, included_sessions

    def _pack_summaries(
        self,
        archived: list[ChatSession],
        included_sessions: set[str],
        surfaced: list[MemoryRecord],
        reserve: int,
        count: _Counter,
        result: AssembledContext,
    ) -> list[PromptEntry]:
        """One-line summaries of sessions absent from the live window."""
        if reserve <= 0:
            return []
        surfaced_ids = {
            record.source_key[len(SESSION_SOURCE_PREFIX):]
            for record in surfaced
            if record.source_key and record.source_key.startswith(SESSION_SOURCE_PREFIX)
        }
        lines: list[PromptEntry] = []
        used = 0
        for session in reversed(archived):
            if session.id in included_sessions or session.id in surfaced_ids:
                continue
            text = session.summary_line()
            if not text:
                continue
            cost = count(text)
            if used + cost > reserve:
                break
            lines.append(
                PromptEntry(
                    role=MessageRole.SYSTEM.chat_role,
                    text=text,
                    tokens=cost,
                    kind=EntryKind.SUMMARY,
                    source_id=session.id,
                )
            )
            result.summary_session_ids.append(session.id)
            used += cost
        lines.reverse()
        result.summary_session_ids.reverse()
        return lines

    @staticmethod
    def _message_entry(message: Message, count: _Counter, kind: EntryKind) -> PromptEntry:
        return PromptEntry(
            role=message.role.chat_role,
            text=message.text,
            tokens=count(message.text),
            kind=kind,
            source_id=message.id,
        )

    @staticmethod
    def _memory_entry(record: MemoryRecord, count: _Counter) -> PromptEntry:
        text = record.render_inline()
        return PromptEntry(
            role=MessageRole.SYSTEM.chat_role,
            text=text,
            tokens=count(text),
            kind=EntryKind.MEMORY,
            source_id=record.id,
        )


def _unique(records: list[MemoryRecord], *, exclude: list[MemoryRecord]) -> list[MemoryRecord]:
    seen = {record.id for record in exclude}
    unique = []
    for record in records:
        if record.id in seen:
            continue
        seen.add(record.id)
        unique.append(record)
    return unique
