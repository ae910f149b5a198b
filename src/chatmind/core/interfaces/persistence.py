"""
Persistence Protocols

Per-persona repositories for memories, session logs and agent task
configurations. Every repository is keyed by the persona's unique name and
loads independently: a missing file yields an empty result, a corrupt one
logs a warning and yields an empty result.
"""

from __future__ import annotations

from typing import Protocol

from chatmind.core.domain.memory import MemoryRecord
from chatmind.core.domain.session import ChatSession
from chatmind.core.domain.task_config import TaskConfig


class MemoryRepositoryProtocol(Protocol):
    """Stores all memory records of a persona."""

    async def load(self, owner: str) -> list[MemoryRecord]:
        """Load every record owned by ``owner``."""
        ...

    async def save(self, owner: str, records: list[MemoryRecord]) -> None:
        """Replace the stored records of ``owner``.

        Raises:
            PersistenceError: The file could not be written.
        """
        ...


class SessionLogRepositoryProtocol(Protocol):
    """Stores the ordered chat sessions of a persona."""

    async def load(self, owner: str) -> list[ChatSession]:
        """Load all sessions of ``owner`` in order."""
        ...

    async def save(self, owner: str, sessions: list[ChatSession]) -> None:
        """Replace the stored sessions of ``owner``.

        Raises:
            PersistenceError: The file could not be written.
        """
        ...


class TaskConfigRepositoryProtocol(Protocol):
    """Stores agent task configurations of a persona."""

    async def load(self, owner: str) -> dict[str, TaskConfig]:
        """Load task configs of ``owner`` keyed by task id."""
        ...

    async def save(self, owner: str, configs: dict[str, TaskConfig]) -> None:
        """Replace the stored task configs of ``owner``.

        Raises:
            PersistenceError: The file could not be written.
        """
        ...
