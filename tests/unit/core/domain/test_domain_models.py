"""Tests for memory, session and persona domain models."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from chatmind.core.domain.memory import InsertionPolicy, MemoryCategory, MemoryRecord
from chatmind.core.domain.persona import Persona, PersonaGroup
from chatmind.core.domain.session import (
    ChatSession,
    Message,
    MessageRole,
    SessionSummary,
)
from chatmind.core.domain.task_config import TaskConfig
from conftest import BASE_TIME, make_messages


class TestMemoryRecord:
    def test_dedup_key_prefers_source_key(self) -> None:
        record = MemoryRecord(content="Cats purr", source_key="research:cats")
        assert record.dedup_key() == "source:research:cats"

    def test_dedup_key_normalizes_content(self) -> None:
        first = MemoryRecord(content="Cats   purr\n")
        second = MemoryRecord(content="cats purr")
        assert first.dedup_key() == second.dedup_key()

    def test_touch_resets_unused_turns(self) -> None:
        record = MemoryRecord(content="x", turns_unused=3)
        record.touch(BASE_TIME)
        assert record.trigger_count == 1
        assert record.turns_unused == 0
        assert record.last_triggered_at == BASE_TIME
        assert record.last_activity_at == BASE_TIME

    def test_last_activity_falls_back_to_creation(self) -> None:
        record = MemoryRecord(content="x", created_at=BASE_TIME)
        assert record.last_activity_at == BASE_TIME

    def test_render_inline_uses_category_lead(self) -> None:
        record = MemoryRecord(
            content="Learn to bake bread.",
            name="Baking",
            category=MemoryCategory.GOAL,
            reason="Sam loves bread",
        )
        text = record.render_inline()
        assert text.startswith("You remember you've set this goal for yourself: Baking.")
        assert "Your reason for it was: Sam loves bread." in text
        assert text.endswith("Learn to bake bread.")

    def test_render_inline_without_name(self) -> None:
        record = MemoryRecord(content="  Sky is blue  ")
        assert record.render_inline() == "This is something you remember.\n\nSky is blue"

    def test_embedding_text(self) -> None:
        assert MemoryRecord(content="body", name="title").embedding_text() == "title\nbody"
        assert MemoryRecord(content="body").embedding_text() == "body"

    def test_dict_round_trip(self) -> None:
        record = MemoryRecord(
            content="Cats purr",
            category=MemoryCategory.WORLD_FACT,
            policy=InsertionPolicy.NATURAL_FORCED,
            priority=2,
            embedding=[1.0, 0.0],
            source_key="research:cats",
            created_at=BASE_TIME,
            keywords=["purr"],
            metadata={"topic": "cats"},
        )
        restored = MemoryRecord.from_dict(record.to_dict())
        assert restored == record

    def test_matches_keywords_whole_words(self) -> None:
        record = MemoryRecord(content="x", keywords=["  ", "ice cream", "C++"])
        assert record.matches_keywords("I want ICE CREAM now")
        assert record.matches_keywords("Learning C++.")
        assert not record.matches_keywords("icecream")
        assert not MemoryRecord(content="cat").matches_keywords("cat")

    def test_natural_policies(self) -> None:
        assert InsertionPolicy.NATURAL.is_natural
        assert InsertionPolicy.NATURAL_FORCED.is_natural
        assert not InsertionPolicy.TRIGGER.is_natural
        assert not InsertionPolicy.DISABLED.is_natural


class TestSessionModels:
    def test_message_naive_timestamp_becomes_utc(self) -> None:
        message = Message(role=MessageRole.USER, text="hi", timestamp=datetime(2024, 1, 1, 9, 30))
        assert message.timestamp == datetime(2024, 1, 1, 9, 30, tzinfo=UTC)

    def test_summary_limits_goals_and_importance(self) -> None:
        summary = SessionSummary(
            title="t",
            summary="s",
            goals=["a", "b", " ", "c", "d", "e", "f"],
            importance=9,
        )
        assert summary.goals == ["a", "b", "c", "d", "e"]
        assert summary.importance == 5
        assert SessionSummary(title="t", summary="s", importance=0).importance == 1

    def test_summary_line(self) -> None:
        session = ChatSession(summary=SessionSummary(title="Cats", summary="We  talked\nabout cats."))
        assert session.summary_line() == "Cats: We talked about cats."
        assert ChatSession().summary_line() == ""

    def test_is_summarized(self) -> None:
        assert not ChatSession().is_summarized
        assert not ChatSession(summary=SessionSummary(title="t", summary="  ")).is_summarized
        assert ChatSession(summary=SessionSummary(title="t", summary="s")).is_summarized

    def test_transcript_skips_hidden(self) -> None:
        session = ChatSession(
            messages=[
                Message(role=MessageRole.USER, text="hi", author="sam"),
                Message(role=MessageRole.SYSTEM, text="secret", hidden=True),
                Message(role=MessageRole.ASSISTANT, text="hello", author="aria"),
            ]
        )
        assert session.transcript() == "sam: hi\naria: hello"
        assert "system: secret" in session.transcript(include_hidden=True)

    def test_refresh_bounds(self) -> None:
        session = ChatSession(messages=make_messages(3))
        session.refresh_bounds()
        assert session.started_at == BASE_TIME
        assert session.ended_at == BASE_TIME + timedelta(minutes=2)

    def test_session_round_trip(self) -> None:
        session = ChatSession(
            messages=make_messages(2),
            started_at=BASE_TIME,
            summary=SessionSummary(title="t", summary="s", keywords=["k"]),
            embedding=[0.5],
            archived=True,
            sticky=True,
        )
        restored = ChatSession.from_dict(session.to_dict())
        assert restored == session

    def test_chat_roles(self) -> None:
        assert MessageRole.SYSTEM_PREAMBLE.chat_role == "system"
        assert MessageRole.USER.chat_role == "user"


class TestPersonas:
    def test_group_current_falls_back_to_first(self) -> None:
        group = PersonaGroup(
            unique_name="crew",
            name="Crew",
            members=[Persona("a", "A"), Persona("b", "B")],
        )
        assert group.current.unique_name == "a"
        group.set_current("b")
        assert group.current.unique_name == "b"

    def test_group_rejects_unknown_member(self) -> None:
        group = PersonaGroup(unique_name="crew", name="Crew", members=[Persona("a", "A")])
        with pytest.raises(ValueError):
            group.set_current("zed")

    def test_persona_round_trip(self) -> None:
        persona = Persona("aria", "Aria", bio="bio", agent_mode=True, agent_tasks=["research"])
        assert Persona.from_dict(persona.to_dict()) == persona


class TestTaskConfig:
    def test_datetime_values(self) -> None:
        config = TaskConfig(task_id="research")
        config.set_datetime("last_run", BASE_TIME)
        assert config.get("last_run") == BASE_TIME.isoformat()
        assert config.get_datetime("last_run") == BASE_TIME
        assert config.get_datetime("missing") is None

    def test_round_trip(self) -> None:
        config = TaskConfig(task_id="research", settings={"priority": 2})
        assert TaskConfig.from_dict(config.to_dict()) == config
