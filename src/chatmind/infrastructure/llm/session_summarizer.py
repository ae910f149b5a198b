"""LLM-backed session summarizer.

Asks the model for a JSON object describing the session and validates it with
pydantic. Unparsable output degrades to a fallback summary built from the raw
reply; only a failed model call raises.
"""

from __future__ import annotations

import json
from typing import Any

import structlog
from pydantic import BaseModel, Field, ValidationError

from chatmind.core.domain.errors import CollaboratorError, SummarizationError
from chatmind.core.domain.session import MAX_SUMMARY_GOALS, ChatSession, SessionSummary
from chatmind.core.interfaces.llm import GenerationParams, InferenceProtocol

logger = structlog.get_logger(__name__)

_SUMMARY_PROMPT = """\
Read the following chat between {char} and {user} and describe it.

Chat:
{transcript}

Output a JSON object with:
- "title": string (a short title, at most 8 words)
- "summary": string (one paragraph summarizing what happened, from {char}'s point of view)
- "keywords": list of 4 to 6 strings
- "goals": list of at most {max_goals} strings ({char}'s goals for future chats)
- "is_roleplay": boolean (true for a fictional roleplay, false for a regular chat)
- "importance": integer from 1 (trivial) to 5 (very important)
- "research_topics": list of strings (topics mentioned that {char} knows little about)

Output JSON only:
"""

_MAX_TRANSCRIPT_CHARS = 24000


class SummaryPayload(BaseModel):
    """Shape expected from the model."""

    title: str = ""
    summary: str
    keywords: list[str] = Field(default_factory=list)
    goals: list[str] = Field(default_factory=list)
    is_roleplay: bool = False
    importance: int = 1
    research_topics: list[str] = Field(default_factory=list)


def parse_json(content: str) -> Any:
    """Parse the first JSON object found in a model reply, {} when none."""
    content = content.strip()
    start = content.find("{")
    end = content.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(content[start : end + 1])
        except json.JSONDecodeError:
            return {}
    return {}


class LLMSessionSummarizer:
    """Summarizes sessions with the inference collaborator."""

    def __init__(
        self,
        inference: InferenceProtocol,
        *,
        max_tokens: int = 768,
        temperature: float = 0.3,
    ) -> None:
        self._inference = inference
        self._params = GenerationParams(max_tokens=max_tokens, temperature=temperature)

    async def summarize(
        self, session: ChatSession, *, char_name: str = "", user_name: str = ""
    ) -> SessionSummary:
        transcript = session.transcript()
        if len(transcript) > _MAX_TRANSCRIPT_CHARS:
            transcript = transcript[-_MAX_TRANSCRIPT_CHARS:]
        prompt = _SUMMARY_PROMPT.format(
            char=char_name or "the assistant",
            user=user_name or "the user",
            transcript=transcript,
            max_goals=MAX_SUMMARY_GOALS,
        )
        try:
            content = await self._inference.complete(
                [{"role": "user", "content": prompt}], self._params
            )
        except CollaboratorError as exc:
            raise SummarizationError(
                f"Summarization call failed: {exc.message}", session_id=session.id
            ) from exc

        parsed = parse_json(content)
        try:
            payload = SummaryPayload.model_validate(parsed)
        except ValidationError as exc:
            logger.warning(
                "session_summarizer.parse_failed",
                session_id=session.id,
                error=str(exc)[:200],
            )
            return self._fallback(session, content)

        if not payload.summary.strip():
            return self._fallback(session, content)
        return SessionSummary(
            title=payload.title.strip() or _default_title(session),
            summary=payload.summary.strip(),
            keywords=[k.strip() for k in payload.keywords if k.strip()],
            goals=[g.strip() for g in payload.goals],
            is_roleplay=payload.is_roleplay,
            importance=payload.importance,
            research_topics=[t.strip() for t in payload.research_topics if t.strip()],
        )

    @staticmethod
    def _fallback(session: ChatSession, content: str) -> SessionSummary:
        text = " ".join(content.split())
        if not text:
            text = " ".join(session.transcript().split())[:1000]
        return SessionSummary(title=_default_title(session), summary=text or "Chat session.")


def _default_title(session: ChatSession) -> str:
    if session.started_at is not None:
        return f"Chat of {session.started_at:%Y-%m-%d}"
    return "Chat session"
