"""Periodic decay sweep of the Memory Store."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import TYPE_CHECKING

from chatmind.core.domain.task_config import TaskConfig
from chatmind.core.utils.time import utc_now

if TYPE_CHECKING:
    from chatmind.application.persona_runtime import PersonaRuntime


class MemoryDecayTask:
    """Runs ``MemoryStore.decay_sweep`` at most every ``interval_minutes``."""

    task_id = "memory_decay"

    def default_config(self) -> dict[str, object]:
        return {"interval_minutes": 60, "removed_total": 0}

    async def observe(self, runtime: PersonaRuntime, config: TaskConfig) -> bool:
        last_run = config.get_datetime("last_run")
        if last_run is None:
            return True
        interval = timedelta(minutes=float(config.get("interval_minutes", 60)))
        return utc_now() - last_run >= interval

    async def execute(
        self, runtime: PersonaRuntime, config: TaskConfig, cancel_event: asyncio.Event
    ) -> None:
        now = utc_now()
        removed = await runtime.memory.decay_sweep(now)
        config.set("removed_total", int(config.get("removed_total", 0)) + len(removed))
        config.set_datetime("last_run", now)
