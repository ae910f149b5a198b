"""Agent Task Protocol for background work run by the Agent Scheduler."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Protocol

from chatmind.core.domain.task_config import TaskConfig

if TYPE_CHECKING:
    from chatmind.application.persona_runtime import PersonaRuntime


class AgentTaskProtocol(Protocol):
    """A named background behavior.

    Tasks keep their own cooldown bookkeeping in ``config``; the scheduler
    persists it across restarts.
    """

    @property
    def task_id(self) -> str:
        """Stable id used for registration and config persistence."""
        ...

    def default_config(self) -> dict[str, object]:
        """Settings used when the task's config is created on first use."""
        ...

    async def observe(self, runtime: PersonaRuntime, config: TaskConfig) -> bool:
        """Return True when the task should run now. Must not mutate state."""
        ...

    async def execute(
        self,
        runtime: PersonaRuntime,
        config: TaskConfig,
        cancel_event: asyncio.Event,
    ) -> None:
        """Do the work.

        Long-running steps should check ``cancel_event`` between mutations
        and return early once it is set.
        """
        ...
