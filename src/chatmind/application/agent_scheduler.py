"""
Agent Scheduler

Per-persona background loop that runs pluggable agent tasks while the user is
away. Each tick asks the registered tasks, in registration order, whether
they want to run and executes the first one that does. Task failures are
logged and contained; they never stop the loop.

The loop is a plain asyncio task, started with ``start()`` and stopped with
``stop()``, which signals cancellation to the running task, waits for it to
wind down and persists every task configuration.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from chatmind.core.domain.config_schema import SchedulerSettings
from chatmind.core.domain.errors import PersistenceError, TaskRegistrationError
from chatmind.core.domain.task_config import TaskConfig
from chatmind.core.interfaces.agent_task import AgentTaskProtocol
from chatmind.core.interfaces.persistence import TaskConfigRepositoryProtocol
from chatmind.core.utils.time import utc_now

if TYPE_CHECKING:
    from chatmind.application.persona_runtime import PersonaRuntime

logger = structlog.get_logger(__name__)

TaskFactory = Callable[[], AgentTaskProtocol]


@dataclass(frozen=True)
class TaskOutcome:
    """Result of one scheduler tick.

    Attributes:
        task_id: Task that was executed, None when nothing ran.
        executed: Whether a task's ``execute`` was entered.
        error: Error message when the task failed.
        cancelled: Whether the task aborted through cancellation.
    """

    task_id: str | None = None
    executed: bool = False
    error: str | None = None
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return self.executed and self.error is None and not self.cancelled


IDLE = TaskOutcome()


class AgentScheduler:
    """Background task loop bound to one persona runtime."""

    def __init__(
        self,
        runtime: PersonaRuntime,
        settings: SchedulerSettings | None = None,
        repository: TaskConfigRepositoryProtocol | None = None,
    ) -> None:
        self._runtime = runtime
        self._settings = settings or SchedulerSettings()
        self._repository = repository
        self._tasks: dict[str, AgentTaskProtocol] = {}
        self._factories: dict[str, TaskFactory] = {}
        self._configs: dict[str, TaskConfig] = {}
        self._execute_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._cancel_event = asyncio.Event()
        self._loop_task: asyncio.Task[None] | None = None
        self._last_user_activity: datetime | None = None
        self._executions = 0
        self._failures = 0

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def task_ids(self) -> list[str]:
        """Registered task ids in registration order."""
        return list(self._tasks)

    @property
    def executions(self) -> int:
        return self._executions

    @property
    def failures(self) -> int:
        return self._failures

    @property
    def cancel_event(self) -> asyncio.Event:
        """Set while the scheduler is shutting down."""
        return self._cancel_event

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_task(self, task: AgentTaskProtocol) -> None:
        """Register a task instance. Ids must be unique."""
        task_id = task.task_id
        if not task_id:
            raise TaskRegistrationError("Agent task has an empty id")
        if task_id in self._tasks:
            raise TaskRegistrationError(f"Agent task '{task_id}' is already registered", task_id=task_id)
        self._tasks[task_id] = task
        logger.debug("agent_scheduler.task_registered", owner=self._runtime.name, task_id=task_id)

    def register_factory(self, task_id: str, factory: TaskFactory) -> None:
        """Make a task available by id without instantiating it yet."""
        if not task_id:
            raise TaskRegistrationError("Agent task factory has an empty id")
        self._factories[task_id] = factory

    def enable(self, task_id: str) -> AgentTaskProtocol:
        """Instantiate a task from its factory and register it."""
        if task_id in self._tasks:
            return self._tasks[task_id]
        factory = self._factories.get(task_id)
        if factory is None:
            raise TaskRegistrationError(f"Unknown agent task '{task_id}'", task_id=task_id)
        task = factory()
        if task.task_id != task_id:
            raise TaskRegistrationError(
                f"Factory for '{task_id}' produced task '{task.task_id}'", task_id=task_id
            )
        self.register_task(task)
        return task

    def enable_all(self, task_ids: list[str]) -> None:
        for task_id in task_ids:
            self.enable(task_id)

    def unregister(self, task_id: str) -> bool:
        return self._tasks.pop(task_id, None) is not None

    def config_for(self, task_id: str) -> TaskConfig:
        """Task configuration, created from the task's defaults on first use."""
        config = self._configs.get(task_id)
        if config is None:
            task = self._tasks.get(task_id)
            defaults = dict(task.default_config()) if task is not None else {}
            config = TaskConfig(task_id=task_id, settings=defaults)
            self._configs[task_id] = config
        return config

    # ------------------------------------------------------------------
    # Activity gate
    # ------------------------------------------------------------------

    def notify_user_activity(self, now: datetime | None = None) -> None:
        """Record foreground activity; background work waits for inactivity."""
        self._last_user_activity = now or utc_now()

    def is_user_idle(self, now: datetime | None = None) -> bool:
        if self._last_user_activity is None:
            return True
        window = timedelta(minutes=self._settings.min_inactivity_minutes)
        return (now or utc_now()) - self._last_user_activity >= window

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def tick(self) -> TaskOutcome:
        """Run one scheduler iteration.

        Executes at most one task. Ticks never overlap: a concurrent call
        waits for the running one to finish.
        """
        async with self._execute_lock:
            if not self._runtime.agent_mode:
                return IDLE
            for task_id, task in list(self._tasks.items()):
                config = self.config_for(task_id)
                try:
                    runnable = await task.observe(self._runtime, config)
                except Exception as exc:
                    logger.warning(
                        "agent_scheduler.observe_failed",
                        owner=self._runtime.name,
                        task_id=task_id,
                        error=str(exc),
                    )
                    continue
                if runnable:
                    return await self._execute(task_id, task, config)
            return IDLE

    async def _execute(self, task_id: str, task: AgentTaskProtocol, config: TaskConfig) -> TaskOutcome:
        logger.info("agent_scheduler.task_started", owner=self._runtime.name, task_id=task_id)
        self._executions += 1
        try:
            await task.execute(self._runtime, config, self._cancel_event)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            self._failures += 1
            logger.warning("agent_scheduler.task_cancelled", owner=self._runtime.name, task_id=task_id)
            return TaskOutcome(task_id=task_id, executed=True, cancelled=True)
        except Exception as exc:
            self._failures += 1
            logger.error(
                "agent_scheduler.task_failed",
                owner=self._runtime.name,
                task_id=task_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return TaskOutcome(task_id=task_id, executed=True, error=str(exc))
        logger.info("agent_scheduler.task_completed", owner=self._runtime.name, task_id=task_id)
        return TaskOutcome(task_id=task_id, executed=True)

    async def start(self) -> None:
        """Load task configs and start the background loop."""
        if self.is_running:
            return
        await self.load_configs()
        self._stop_event = asyncio.Event()
        self._cancel_event = asyncio.Event()
        self._loop_task = asyncio.create_task(self._run(), name=f"agent-scheduler:{self._runtime.name}")
        logger.info(
            "agent_scheduler.started", owner=self._runtime.name, task_count=len(self._tasks)
        )

    async def stop(self) -> None:
        """Stop the loop, let the running task wind down, persist configs."""
        self._stop_event.set()
        self._cancel_event.set()
        task = self._loop_task
        if task is not None and not task.done():
            done, _ = await asyncio.wait({task}, timeout=self._settings.shutdown_timeout_seconds)
            if not done:
                logger.warning("agent_scheduler.shutdown_timeout", owner=self._runtime.name)
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        self._loop_task = None
        await self.save_configs()
        logger.info("agent_scheduler.stopped", owner=self._runtime.name)

    async def _sleep(self, seconds: float) -> bool:
        """Sleep unless stopped first. Returns True when a stop was requested."""
        if self._stop_event.is_set():
            return True
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except TimeoutError:
            return False
        return True

    async def _run(self) -> None:
        if await self._sleep(self._settings.initial_delay_seconds):
            return
        while not self._stop_event.is_set():
            if not self._runtime.agent_mode or not self.is_user_idle():
                if await self._sleep(self._settings.idle_poll_seconds):
                    return
                continue
            outcome = await self.tick()
            delay = (
                self._settings.task_interval_seconds
                if outcome.executed
                else self._settings.idle_poll_seconds
            )
            if await self._sleep(delay):
                return

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load_configs(self) -> int:
        if self._repository is None:
            return 0
        loaded = await self._repository.load(self._runtime.name)
        self._configs.update(loaded)
        return len(loaded)

    async def save_configs(self) -> None:
        """Persist every task config. Failures are logged and re-raised."""
        if self._repository is None:
            return
        try:
            await self._repository.save(self._runtime.name, dict(self._configs))
        except PersistenceError as exc:
            logger.error("agent_scheduler.save_failed", owner=self._runtime.name, error=str(exc))
            raise
