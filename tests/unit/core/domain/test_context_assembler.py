"""Tests for the ContextAssembler."""

from __future__ import annotations

import pytest

from chatmind.core.domain.config_schema import ContextSettings, MemoryPlacement, SessionHandling
from chatmind.core.domain.context_assembler import ContextAssembler, EntryKind
from chatmind.core.domain.errors import BudgetExhaustedError
from chatmind.core.domain.memory import InsertionPolicy, MemoryRecord
from chatmind.core.domain.session import ChatSession, Message, MessageRole, SessionSummary
from conftest import WordTokenizer, make_messages

PREAMBLE = "You are Aria"  # 3 tokens


def _settings(**overrides) -> ContextSettings:
    values = {
        "context_window": 100,
        "reserved_reply_tokens": 10,
        "safety_margin_tokens": 0,
        "summary_reserved_tokens": 20,
    }
    values.update(overrides)
    return ContextSettings(**values)


def _user(text: str = "hello there") -> Message:
    return Message(role=MessageRole.USER, text=text)


def _archived(title: str, summary: str, count: int = 4) -> ChatSession:
    return ChatSession(
        messages=make_messages(count),
        summary=SessionSummary(title=title, summary=summary),
        archived=True,
    )


class TestBudget:
    def test_empty_history_sends_preamble_and_turn(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(tokenizer, _settings())
        result = assembler.assemble(PREAMBLE, [ChatSession()], user_turn=_user())

        assert [e.kind for e in result.entries] == [EntryKind.PREAMBLE, EntryKind.USER_TURN]
        assert result.total_tokens == 5
        assert result.budget == 90

    def test_preamble_over_budget_raises(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(tokenizer, _settings())
        with pytest.raises(BudgetExhaustedError) as exc_info:
            assembler.assemble("word " * 95, [ChatSession()], user_turn=_user())
        assert exc_info.value.budget == 90
        assert exc_info.value.required == 97
        assert exc_info.value.code == "budget_exhausted"

    def test_zero_remaining_budget_raises(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(tokenizer, _settings())
        with pytest.raises(BudgetExhaustedError):
            assembler.assemble("word " * 88, [ChatSession()], user_turn=_user())

    def test_never_exceeds_budget(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(tokenizer, _settings())
        session = ChatSession(messages=make_messages(30, words=7))
        natural = MemoryRecord(content="remember " * 6, policy=InsertionPolicy.NATURAL)

        result = assembler.assemble(PREAMBLE, [session], user_turn=_user(), natural_memory=natural)

        assert result.total_tokens <= result.budget
        assert result.total_tokens == sum(e.tokens for e in result.entries)

    def test_each_text_counted_once(self) -> None:
        tokenizer = WordTokenizer()
        assembler = ContextAssembler(tokenizer, _settings())
        session = ChatSession(
            messages=[Message(role=MessageRole.USER, text="same text") for _ in range(5)]
        )
        assembler.assemble(PREAMBLE, [session], user_turn=_user())
        # preamble, user turn, and the repeated history text
        assert tokenizer.calls == 3


class TestHistoryPacking:
    def test_keeps_most_recent_messages(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(tokenizer, _settings())
        messages = make_messages(12, words=10)
        result = assembler.assemble(PREAMBLE, [ChatSession(messages=messages)], user_turn=_user())

        # 85 tokens remain: the 8 newest 10-token messages fit
        assert result.message_ids == [m.id for m in messages[4:]]

    def test_no_gaps_in_packed_window(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(tokenizer, _settings())
        messages = make_messages(10, words=5)
        # An oversized message in the middle stops the walk; smaller older ones stay out.
        messages[6] = Message(role=MessageRole.USER, text="big " * 80)
        result = assembler.assemble(PREAMBLE, [ChatSession(messages=messages)], user_turn=_user())

        assert result.message_ids == [m.id for m in messages[7:]]
        positions = [i for i, m in enumerate(messages) if m.id in result.message_ids]
        assert positions == list(range(positions[0], len(messages)))

    def test_oversized_message_excluded_whole(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(tokenizer, _settings())
        huge = Message(role=MessageRole.USER, text="x " * 200)
        result = assembler.assemble(PREAMBLE, [ChatSession(messages=[huge])], user_turn=_user())

        assert result.message_ids == []
        assert all(entry.text != huge.text for entry in result.entries)

    def test_idempotent(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(tokenizer, _settings())
        sessions = [_archived("Old", "first chat"), ChatSession(messages=make_messages(20, words=4))]
        natural = MemoryRecord(content="a fact", policy=InsertionPolicy.NATURAL)
        trigger = MemoryRecord(content="a dormant fact", policy=InsertionPolicy.TRIGGER)

        first = assembler.assemble(
            PREAMBLE, sessions, user_turn=_user(), natural_memory=natural, trigger_memories=[trigger]
        )
        second = assembler.assemble(
            PREAMBLE, sessions, user_turn=_user(), natural_memory=natural, trigger_memories=[trigger]
        )
        assert first.entries == second.entries
        assert first.to_messages() == second.to_messages()

    def test_current_only_ignores_archived_messages(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(tokenizer, _settings(previous_summaries=False))
        old = ChatSession(messages=make_messages(2), archived=True)
        current = ChatSession(messages=make_messages(2))
        result = assembler.assemble(PREAMBLE, [old, current], user_turn=_user())

        assert result.message_ids == [m.id for m in current.messages]

    def test_fit_all_walks_earlier_sessions(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(
            tokenizer,
            _settings(session_handling=SessionHandling.FIT_ALL, previous_summaries=False),
        )
        old = ChatSession(messages=make_messages(3, words=15), archived=True)
        current = ChatSession(messages=make_messages(4, words=15))
        result = assembler.assemble(PREAMBLE, [old, current], user_turn=_user())

        # 85 tokens: all 4 current messages plus the newest old one
        expected = [m.id for m in old.messages[2:]] + [m.id for m in current.messages]
        assert result.message_ids == expected


class TestMemories:
    def test_natural_memory_at_inline_depth(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(tokenizer, _settings(inline_depth=3))
        messages = make_messages(6)
        natural = MemoryRecord(content="cats purr", policy=InsertionPolicy.NATURAL)

        result = assembler.assemble(
            PREAMBLE, [ChatSession(messages=messages)], user_turn=_user(), natural_memory=natural
        )

        kinds = [e.kind for e in result.entries]
        assert kinds == [
            EntryKind.PREAMBLE,
            EntryKind.HISTORY,
            EntryKind.HISTORY,
            EntryKind.HISTORY,
            EntryKind.MEMORY,
            EntryKind.HISTORY,
            EntryKind.HISTORY,
            EntryKind.HISTORY,
            EntryKind.USER_TURN,
        ]
        assert result.entries[4].source_id == natural.id
        assert result.memory_ids == [natural.id]

    def test_short_history_puts_inline_slot_on_top(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(tokenizer, _settings(inline_depth=3))
        natural = MemoryRecord(content="cats purr", policy=InsertionPolicy.NATURAL)
        result = assembler.assemble(
            PREAMBLE,
            [ChatSession(messages=make_messages(2))],
            user_turn=_user(),
            natural_memory=natural,
        )
        assert [e.kind for e in result.entries][:3] == [
            EntryKind.PREAMBLE,
            EntryKind.MEMORY,
            EntryKind.HISTORY,
        ]

    def test_natural_memory_dropped_when_full(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(tokenizer, _settings(inline_depth=2))
        natural = MemoryRecord(content="long " * 70, policy=InsertionPolicy.NATURAL)
        messages = make_messages(4, words=10)

        result = assembler.assemble(
            PREAMBLE,
            [ChatSession(messages=make_messages(4, words=5) + messages)],
            user_turn=_user(),
            natural_memory=natural,
        )

        assert natural.id in result.dropped_memory_ids
        assert natural.id not in result.memory_ids
        assert all(e.kind != EntryKind.MEMORY for e in result.entries)
        assert result.total_tokens <= result.budget

    def test_trigger_memories_in_preamble(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(tokenizer, _settings(memory_placement=MemoryPlacement.PREAMBLE))
        trigger = MemoryRecord(content="dogs bark", policy=InsertionPolicy.TRIGGER)
        result = assembler.assemble(
            PREAMBLE,
            [ChatSession(messages=make_messages(5))],
            user_turn=_user(),
            trigger_memories=[trigger],
        )
        assert result.entries[1].kind == EntryKind.MEMORY
        assert result.entries[1].source_id == trigger.id

    def test_trigger_memories_inline(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(
            tokenizer, _settings(memory_placement=MemoryPlacement.INLINE, inline_depth=1)
        )
        trigger = MemoryRecord(content="dogs bark", policy=InsertionPolicy.TRIGGER)
        result = assembler.assemble(
            PREAMBLE,
            [ChatSession(messages=make_messages(5))],
            user_turn=_user(),
            trigger_memories=[trigger],
        )
        kinds = [e.kind for e in result.entries]
        assert kinds[-3:] == [EntryKind.MEMORY, EntryKind.HISTORY, EntryKind.USER_TURN]

    def test_preamble_memory_that_does_not_fit_is_skipped(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(tokenizer, _settings())
        big = MemoryRecord(content="big " * 100, policy=InsertionPolicy.TRIGGER)
        small = MemoryRecord(content="small", policy=InsertionPolicy.TRIGGER)
        result = assembler.assemble(
            PREAMBLE, [ChatSession()], user_turn=_user(), trigger_memories=[big, small]
        )
        assert result.memory_ids == [small.id]
        assert result.dropped_memory_ids == [big.id]


class TestPreviousSummaries:
    def test_archived_summaries_follow_preamble(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(tokenizer, _settings())
        first = _archived("Old", "first chat")
        second = _archived("Newer", "second chat")
        current = ChatSession(messages=make_messages(3))

        result = assembler.assemble(PREAMBLE, [first, second, current], user_turn=_user())

        assert [e.kind for e in result.entries[:3]] == [
            EntryKind.PREAMBLE,
            EntryKind.SUMMARY,
            EntryKind.SUMMARY,
        ]
        assert result.entries[1].text == "Old: first chat"
        assert result.summary_session_ids == [first.id, second.id]

    def test_reserve_drops_oldest_first(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(tokenizer, _settings(summary_reserved_tokens=5))
        first = _archived("Old", "first chat here")
        second = _archived("Newer", "second chat here")
        result = assembler.assemble(PREAMBLE, [first, second, ChatSession()], user_turn=_user())

        assert result.summary_session_ids == [second.id]

    def test_skips_sessions_surfaced_by_retrieval(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(tokenizer, _settings())
        first = _archived("Old", "first chat")
        second = _archived("Newer", "second chat")
        recalled = MemoryRecord(
            content="first chat",
            policy=InsertionPolicy.TRIGGER,
            source_key=f"session:{first.id}",
        )
        result = assembler.assemble(
            PREAMBLE,
            [first, second, ChatSession()],
            user_turn=_user(),
            trigger_memories=[recalled],
        )
        assert result.summary_session_ids == [second.id]

    def test_fit_all_skips_sessions_already_in_window(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(
            tokenizer, _settings(session_handling=SessionHandling.FIT_ALL)
        )
        first = _archived("Old", "first chat", count=2)
        current = ChatSession(messages=make_messages(2))
        result = assembler.assemble(PREAMBLE, [first, current], user_turn=_user())

        assert first.id not in result.summary_session_ids
        assert set(m.id for m in first.messages) <= set(result.message_ids)

    def test_disabled(self, tokenizer: WordTokenizer) -> None:
        assembler = ContextAssembler(tokenizer, _settings(previous_summaries=False))
        result = assembler.assemble(
            PREAMBLE, [_archived("Old", "first chat"), ChatSession()], user_turn=_user()
        )
        assert result.summary_session_ids == []
