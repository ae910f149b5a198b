"""Background research on topics the persona did not know about."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from chatmind.core.domain.memory import InsertionPolicy, MemoryCategory, MemoryRecord
from chatmind.core.domain.session import ChatSession
from chatmind.core.domain.task_config import TaskConfig
from chatmind.core.interfaces.research import ResearcherProtocol
from chatmind.core.utils.time import utc_now

if TYPE_CHECKING:
    from chatmind.application.persona_runtime import PersonaRuntime

logger = structlog.get_logger(__name__)

RECENT_TOPICS_LIMIT = 20


def normalize_topic(topic: str) -> str:
    return " ".join(topic.lower().split())


class ResearchTask:
    """Researches the topics flagged in the latest archived session.

    Results are memorized as ``NaturalForced`` web-research records so they
    surface in the next conversation even without a strong semantic match.
    Each archived session is processed once; topics researched recently
    (last 20) are skipped. A failing researcher puts the task on a
    ``retry_minutes`` cooldown.
    """

    task_id = "research"

    def __init__(self, researcher: ResearcherProtocol, *, slot_timeout: float = 0.0) -> None:
        self._researcher = researcher
        self._slot_timeout = slot_timeout

    def default_config(self) -> dict[str, object]:
        return {
            "priority": 1,
            "recent_topics": [],
            "last_session_id": None,
            "retry_minutes": 30,
            "last_failure": None,
        }

    @staticmethod
    def _latest_archived(runtime: PersonaRuntime) -> ChatSession | None:
        archived = runtime.ledger.archived
        return archived[-1] if archived else None

    async def observe(self, runtime: PersonaRuntime, config: TaskConfig) -> bool:
        if runtime.slot.is_busy:
            return False
        if config.within("last_failure", float(config.get("retry_minutes", 30))):
            return False
        session = self._latest_archived(runtime)
        if session is None or session.summary is None:
            return False
        if config.get("last_session_id") == session.id:
            return False
        return bool(session.summary.research_topics)

    async def execute(
        self, runtime: PersonaRuntime, config: TaskConfig, cancel_event: asyncio.Event
    ) -> None:
        session = self._latest_archived(runtime)
        if session is None or session.summary is None:
            return
        recent: list[str] = list(config.get("recent_topics") or [])
        context = session.summary.summary
        reason = f"It came up while talking with {runtime.user.name}"
        if session.title:
            reason += f" about '{session.title}'"

        for topic in session.summary.research_topics:
            if cancel_event.is_set():
                logger.info("research_task.cancelled", persona=runtime.name, session_id=session.id)
                config.set("recent_topics", recent)
                return
            key = normalize_topic(topic)
            if not key or key in recent:
                continue

            async with runtime.slot.try_acquire("research", timeout=self._slot_timeout) as acquired:
                if not acquired:
                    # Foreground took the slot; the remaining topics run next time.
                    config.set("recent_topics", recent)
                    return
                try:
                    findings = await self._researcher.research(
                        topic, reason=reason, context=context
                    )
                except Exception:
                    config.set("recent_topics", recent)
                    config.set_datetime("last_failure", utc_now())
                    raise

            recent = (recent + [key])[-RECENT_TOPICS_LIMIT:]
            if not findings.strip():
                continue
            await runtime.memory.memorize(
                MemoryRecord(
                    content=findings.strip(),
                    name=topic,
                    reason=reason,
                    category=MemoryCategory.WEB_RESEARCH,
                    policy=InsertionPolicy.NATURAL_FORCED,
                    priority=int(config.get("priority", 1)),
                    source_key=f"research:{key}",
                )
            )
            logger.info("research_task.topic_memorized", persona=runtime.name, topic=topic)

        config.set("recent_topics", recent)
        config.set("last_session_id", session.id)
        config.set("last_failure", None)
        config.set_datetime("last_run", utc_now())
