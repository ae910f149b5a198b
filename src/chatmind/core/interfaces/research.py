"""Researcher Protocol used by the background research task."""

from __future__ import annotations

from typing import Protocol


class ResearcherProtocol(Protocol):
    """Looks up a topic and condenses what it found into memory text."""

    async def research(self, topic: str, *, reason: str = "", context: str = "") -> str:
        """Return condensed findings about ``topic``, or an empty string.

        Args:
            topic: What to look up.
            reason: Why the persona wants to know.
            context: Text of the conversation the topic came from.

        Raises:
            CollaboratorError: The backend failed.
        """
        ...
