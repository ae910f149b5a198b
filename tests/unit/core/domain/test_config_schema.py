"""Tests for runtime settings models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from chatmind.core.domain.config_schema import (
    ContextSettings,
    MemoryPlacement,
    MemorySettings,
    RuntimeSettings,
    SessionHandling,
)
from chatmind.core.domain.memory import MemoryCategory


class TestRuntimeSettings:
    def test_defaults(self) -> None:
        settings = RuntimeSettings()
        assert settings.memory.natural_distance_cutoff == pytest.approx(0.09)
        assert settings.memory.forced_after_turns == 4
        assert settings.memory.decayable_categories == [
            MemoryCategory.WEB_RESEARCH,
            MemoryCategory.GOAL,
        ]
        assert settings.context.session_handling == SessionHandling.CURRENT_ONLY
        assert settings.context.memory_placement == MemoryPlacement.PREAMBLE
        assert settings.session.segment_min_messages == 35
        assert settings.scheduler.initial_delay_seconds == 10.0

    def test_budget(self) -> None:
        context = ContextSettings(context_window=1000, reserved_reply_tokens=200, safety_margin_tokens=10)
        assert context.budget == 790

    def test_reserved_tokens_must_leave_room(self) -> None:
        with pytest.raises(ValidationError):
            ContextSettings(context_window=100, reserved_reply_tokens=90, safety_margin_tokens=10)

    def test_unknown_keys_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RuntimeSettings.model_validate({"memory": {"unknown": 1}})

    def test_nested_values_parsed(self) -> None:
        settings = RuntimeSettings.model_validate(
            {
                "context": {"session_handling": "fit_all", "memory_placement": "inline"},
                "memory": {"decayable_categories": ["goal"]},
            }
        )
        assert settings.context.session_handling == SessionHandling.FIT_ALL
        assert settings.context.memory_placement == MemoryPlacement.INLINE
        assert settings.memory.decayable_categories == [MemoryCategory.GOAL]

    def test_news_trigger_phrases(self) -> None:
        settings = MemorySettings()
        assert settings.is_news_trigger("Hey, WHAT'S NEW today?")
        assert not settings.is_news_trigger("What is a newt?")
        assert not MemorySettings(news_trigger_phrases=[]).is_news_trigger("what's new")
