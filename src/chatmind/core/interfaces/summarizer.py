"""Session Summarizer Protocol."""

from __future__ import annotations

from typing import Protocol

from chatmind.core.domain.session import ChatSession, SessionSummary


class SessionSummarizerProtocol(Protocol):
    """Produces the metadata stored when a session is archived."""

    async def summarize(
        self, session: ChatSession, *, char_name: str = "", user_name: str = ""
    ) -> SessionSummary:
        """Summarize ``session``.

        Returns:
            Title, summary, keywords, up to five goals, roleplay flag,
            importance and research topics.

        Raises:
            SummarizationError: The summary could not be produced.
        """
        ...
