"""Researcher that asks the inference model what it knows about a topic."""

from __future__ import annotations

import structlog

from chatmind.core.interfaces.llm import GenerationParams, InferenceProtocol

logger = structlog.get_logger(__name__)

_RESEARCH_PROMPT = """\
Write a short factual briefing about "{topic}".
{reason_line}
Conversation context:
{context}

Keep it under 200 words. If you know nothing reliable about it, answer with an empty reply.
"""


class LLMResearcher:
    """Condenses model knowledge about a topic into memory text."""

    def __init__(self, inference: InferenceProtocol, *, max_tokens: int = 384) -> None:
        self._inference = inference
        self._params = GenerationParams(max_tokens=max_tokens, temperature=0.2)

    async def research(self, topic: str, *, reason: str = "", context: str = "") -> str:
        prompt = _RESEARCH_PROMPT.format(
            topic=topic,
            reason_line=f"Reason: {reason}\n" if reason else "",
            context=context or "(none)",
        )
        findings = await self._inference.complete([{"role": "user", "content": prompt}], self._params)
        logger.debug("llm_researcher.completed", topic=topic, length=len(findings))
        return findings.strip()
