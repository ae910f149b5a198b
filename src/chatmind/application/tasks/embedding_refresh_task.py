"""Fills in embeddings that could not be computed at insertion time."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from chatmind.core.domain.task_config import TaskConfig
from chatmind.core.utils.time import utc_now

if TYPE_CHECKING:
    from chatmind.application.persona_runtime import PersonaRuntime

logger = structlog.get_logger(__name__)


class EmbeddingRefreshTask:
    """Embeds up to ``batch_size`` records per run.

    A run that embeds nothing (backend down) or raises puts the task on a
    ``retry_minutes`` cooldown, so later tasks still get their turn.
    """

    task_id = "embedding_refresh"

    def default_config(self) -> dict[str, object]:
        return {"batch_size": 20, "retry_minutes": 15, "last_failure": None}

    async def observe(self, runtime: PersonaRuntime, config: TaskConfig) -> bool:
        if config.within("last_failure", float(config.get("retry_minutes", 15))):
            return False
        return runtime.memory.retrieval_enabled and bool(runtime.memory.pending_embeddings())

    async def execute(
        self, runtime: PersonaRuntime, config: TaskConfig, cancel_event: asyncio.Event
    ) -> None:
        if cancel_event.is_set():
            return
        try:
            done = await runtime.memory.refresh_embeddings(limit=int(config.get("batch_size", 20)))
        except Exception:
            config.set_datetime("last_failure", utc_now())
            raise
        if done == 0:
            config.set_datetime("last_failure", utc_now())
            logger.warning(
                "embedding_refresh_task.no_progress",
                persona=runtime.name,
                pending=len(runtime.memory.pending_embeddings()),
            )
            return
        config.set("last_failure", None)
        logger.info("embedding_refresh_task.completed", persona=runtime.name, embedded=done)
