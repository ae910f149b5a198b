"""
Built-in agent tasks.

``builtin_task_factories`` maps task ids to factories so a persona's
``agent_tasks`` list can be resolved by the Agent Scheduler.
"""

from chatmind.application.agent_scheduler import TaskFactory
from chatmind.application.tasks.embedding_refresh_task import EmbeddingRefreshTask
from chatmind.application.tasks.goal_reflection_task import GoalReflectionTask
from chatmind.application.tasks.memory_decay_task import MemoryDecayTask
from chatmind.application.tasks.research_task import ResearchTask
from chatmind.core.interfaces.research import ResearcherProtocol


def builtin_task_factories(researcher: ResearcherProtocol | None = None) -> dict[str, TaskFactory]:
    """Factories for the built-in tasks. ``research`` needs a researcher."""
    factories: dict[str, TaskFactory] = {
        GoalReflectionTask.task_id: GoalReflectionTask,
        MemoryDecayTask.task_id: MemoryDecayTask,
        EmbeddingRefreshTask.task_id: EmbeddingRefreshTask,
    }
    if researcher is not None:
        factories[ResearchTask.task_id] = lambda: ResearchTask(researcher)
    return factories


__all__ = [
    "EmbeddingRefreshTask",
    "GoalReflectionTask",
    "MemoryDecayTask",
    "ResearchTask",
    "builtin_task_factories",
]
