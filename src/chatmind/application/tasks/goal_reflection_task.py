"""Turns the goals of the latest archived session into goal memories."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from chatmind.core.domain.memory import InsertionPolicy, MemoryCategory, MemoryRecord
from chatmind.core.domain.task_config import TaskConfig

if TYPE_CHECKING:
    from chatmind.application.persona_runtime import PersonaRuntime

logger = structlog.get_logger(__name__)


class GoalReflectionTask:
    """Memorizes each future goal of a freshly archived session once.

    Goals become ``Natural`` records: they surface when the conversation
    touches them and are forgotten by the natural expiry otherwise.
    """

    task_id = "goal_reflection"

    def default_config(self) -> dict[str, object]:
        return {"priority": 1, "last_session_id": None}

    async def observe(self, runtime: PersonaRuntime, config: TaskConfig) -> bool:
        archived = runtime.ledger.archived
        if not archived:
            return False
        session = archived[-1]
        if session.summary is None or not session.summary.goals:
            return False
        return config.get("last_session_id") != session.id

    async def execute(
        self, runtime: PersonaRuntime, config: TaskConfig, cancel_event: asyncio.Event
    ) -> None:
        session = runtime.ledger.archived[-1]
        summary = session.summary
        if summary is None:
            return
        added = 0
        for index, goal in enumerate(summary.goals):
            if cancel_event.is_set():
                return
            inserted = await runtime.memory.memorize(
                MemoryRecord(
                    content=goal,
                    name=goal if len(goal) <= 80 else goal[:77] + "...",
                    reason=f"You set it during '{summary.title}'" if summary.title else "",
                    category=MemoryCategory.GOAL,
                    policy=InsertionPolicy.NATURAL,
                    priority=int(config.get("priority", 1)),
                    source_key=f"goal:{session.id}:{index}",
                )
            )
            added += int(inserted)
        config.set("last_session_id", session.id)
        logger.info("goal_reflection_task.goals_memorized", persona=runtime.name, count=added)
