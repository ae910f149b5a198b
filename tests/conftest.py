"""Test configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta

import pytest

from chatmind.core.domain.errors import SummarizationError
from chatmind.core.domain.persona import Persona
from chatmind.core.domain.session import ChatSession, Message, MessageRole, SessionSummary
from chatmind.core.interfaces.llm import GenerationParams
from chatmind.infrastructure.retrieval.cosine_retrieval import CosineRetrieval

KEYWORDS = ("cat", "dog", "space", "cooking", "music", "python")

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


async def keyword_embed(text: str) -> list[float]:
    """One axis per keyword; texts sharing keywords are close."""
    lowered = text.lower()
    return [float(lowered.count(word)) for word in KEYWORDS]


class WordTokenizer:
    """One token per whitespace-separated word."""

    def __init__(self) -> None:
        self.calls = 0

    def count(self, text: str) -> int:
        self.calls += 1
        return len(text.split())


class ScriptedInference:
    """Inference fake returning queued replies and recording every call."""

    def __init__(self, replies: list[str] | None = None, *, delay: float = 0.0) -> None:
        self.replies = list(replies or [])
        self.delay = delay
        self.calls: list[list[dict[str, str]]] = []
        self.params: list[GenerationParams] = []
        self.error: Exception | None = None
        self.active = 0
        self.max_active = 0

    def _next(self) -> str:
        return self.replies.pop(0) if self.replies else "ok"

    async def complete(self, messages: list[dict[str, str]], params: GenerationParams) -> str:
        self.calls.append(messages)
        self.params.append(params)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return self._next()
        finally:
            self.active -= 1

    async def stream(
        self, messages: list[dict[str, str]], params: GenerationParams
    ) -> AsyncIterator[str]:
        self.calls.append(messages)
        self.params.append(params)
        if self.error is not None:
            raise self.error
        for word in self._next().split(" "):
            yield word + " "


class FakeSummarizer:
    """Summarizer fake with a fixed result."""

    def __init__(
        self,
        *,
        goals: list[str] | None = None,
        research_topics: list[str] | None = None,
        fail: bool = False,
        delay: float = 0.0,
    ) -> None:
        self.goals = goals or []
        self.research_topics = research_topics or []
        self.fail = fail
        self.delay = delay
        self.calls: list[str] = []

    async def summarize(
        self, session: ChatSession, *, char_name: str = "", user_name: str = ""
    ) -> SessionSummary:
        self.calls.append(session.id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise SummarizationError("summarizer down", session_id=session.id)
        return SessionSummary(
            title=f"Talk {len(self.calls)}",
            summary=f"We talked about cats over {len(session.messages)} messages.",
            keywords=["cat", "chat"],
            goals=list(self.goals),
            importance=3,
            research_topics=list(self.research_topics),
        )


def make_messages(
    count: int,
    *,
    start: datetime = BASE_TIME,
    step: timedelta = timedelta(minutes=1),
    words: int = 1,
) -> list[Message]:
    """Alternating user/assistant messages, ``words`` tokens each."""
    messages = []
    for index in range(count):
        role = MessageRole.USER if index % 2 == 0 else MessageRole.ASSISTANT
        text = " ".join([f"m{index}"] * words)
        messages.append(Message(role=role, text=text, timestamp=start + step * index))
    return messages


@pytest.fixture
def tokenizer() -> WordTokenizer:
    return WordTokenizer()


@pytest.fixture
def retrieval() -> CosineRetrieval:
    return CosineRetrieval(keyword_embed)


@pytest.fixture
def inference() -> ScriptedInference:
    return ScriptedInference()


@pytest.fixture
def summarizer() -> FakeSummarizer:
    return FakeSummarizer()


@pytest.fixture
def bot() -> Persona:
    return Persona(
        unique_name="aria",
        name="Aria",
        bio="{{char}} is a curious assistant who likes {{user}}.",
        agent_mode=True,
    )


@pytest.fixture
def user() -> Persona:
    return Persona(unique_name="sam", name="Sam", bio="{{user}} is a programmer.", is_user=True)


