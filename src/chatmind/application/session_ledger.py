"""
Session Ledger

Owns the ordered chat sessions of one persona. The last session is always the
current one; every earlier session is archived and read-only. Archiving runs
the (expensive) summarizer, so it only happens on an explicit
``start_new_session`` call.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime

import structlog

from chatmind.core.domain.config_schema import SessionSettings
from chatmind.core.domain.errors import PersistenceError, SummarizationError
from chatmind.core.domain.macros import format_date, format_time
from chatmind.core.domain.segmentation import segment_raw_log
from chatmind.core.domain.session import ChatSession, Message, MessageRole, SessionSummary
from chatmind.core.interfaces.persistence import SessionLogRepositoryProtocol
from chatmind.core.interfaces.retrieval import RetrievalProtocol
from chatmind.core.interfaces.summarizer import SessionSummarizerProtocol
from chatmind.core.utils.time import utc_now

logger = structlog.get_logger(__name__)

ArchiveHook = Callable[[ChatSession], Awaitable[None]]


def describe_elapsed(now: datetime, since: datetime) -> str:
    """Human wording for the time since the previous chat."""
    elapsed = now - since
    if elapsed.days > 1:
        return f"The last chat was {elapsed.days} days ago."
    if elapsed.days == 1:
        return "The last chat was yesterday."
    hours = int(elapsed.total_seconds() // 3600)
    if hours > 1:
        return f"The last chat was {hours} hours ago."
    return f"The last chat was {int(elapsed.total_seconds() // 60)} minutes ago."


class SessionLedger:
    """Ordered chat sessions of one persona plus the archive lifecycle.

    Args:
        owner: Unique name of the owning persona.
        settings: Archive threshold and segmentation parameters.
        summarizer: Produces the summary metadata of archived sessions.
        retrieval: Optional embedder for session summaries.
        repository: Optional persistence backend.
        on_archived: Awaited with each newly summarized session, e.g. to
            memorize it as a long-range memory.
    """

    def __init__(
        self,
        owner: str,
        settings: SessionSettings | None = None,
        summarizer: SessionSummarizerProtocol | None = None,
        retrieval: RetrievalProtocol | None = None,
        repository: SessionLogRepositoryProtocol | None = None,
        on_archived: ArchiveHook | None = None,
    ) -> None:
        self._owner = owner
        self._settings = settings or SessionSettings()
        self._summarizer = summarizer
        self._retrieval = retrieval
        self._repository = repository
        self._on_archived = on_archived
        self._sessions: list[ChatSession] = [ChatSession()]
        self._archive_lock = asyncio.Lock()

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def sessions(self) -> list[ChatSession]:
        """All sessions, oldest first. The last one is current."""
        return list(self._sessions)

    @property
    def current(self) -> ChatSession:
        return self._sessions[-1]

    @property
    def archived(self) -> list[ChatSession]:
        return self._sessions[:-1]

    def set_archive_hook(self, hook: ArchiveHook | None) -> None:
        self._on_archived = hook

    def get_session(self, session_id: str) -> ChatSession | None:
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def log(self, message: Message) -> Message:
        """Append ``message`` to the current session.

        Messages are always appended at the end regardless of their
        timestamp; list order is the conversation order.
        """
        session = self.current
        session.messages.append(message)
        if session.started_at is None:
            session.started_at = message.timestamp
        if message.timestamp is not None:
            session.ended_at = message.timestamp
        return message

    def log_message(
        self,
        role: MessageRole,
        text: str,
        author: str = "",
        *,
        hidden: bool = False,
        note: str = "",
        timestamp: datetime | None = None,
    ) -> Message:
        return self.log(
            Message(
                role=role,
                text=text,
                author=author,
                hidden=hidden,
                note=note,
                timestamp=timestamp or utc_now(),
            )
        )

    def remove_last(self) -> Message | None:
        """Delete the most recent message of the current session (reroll)."""
        session = self.current
        if not session.messages:
            return None
        removed = session.messages.pop()
        session.ended_at = session.messages[-1].timestamp if session.messages else None
        logger.debug("session_ledger.message_removed", owner=self._owner, message_id=removed.id)
        return removed

    def last_message(self, role: MessageRole | None = None) -> Message | None:
        for message in reversed(self.current.messages):
            if role is None or message.role == role:
                return message
        return None

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start_new_session(
        self,
        archive_previous: bool = True,
        *,
        char_name: str = "",
        user_name: str = "",
    ) -> ChatSession | None:
        """Close the current session and open a new one.

        A current session with more than ``min_messages_to_archive`` messages
        is summarized, embedded and sealed, and a new empty session becomes
        current. A trivial session (or ``archive_previous=False``) is cleared
        in place instead, without archival or summarization.

        Summary and embedding are computed before anything is mutated, so a
        failure or cancellation leaves the session current and unsealed.

        Returns:
            The newly archived session, or None when the session was cleared.

        Raises:
            SummarizationError: The session could not be summarized.
            RetrievalError: The summary could not be embedded.
        """
        async with self._archive_lock:
            session = self.current
            if not archive_previous or len(session.messages) <= self._settings.min_messages_to_archive:
                cleared = len(session.messages)
                session.messages.clear()
                session.started_at = None
                session.ended_at = None
                logger.info("session_ledger.session_cleared", owner=self._owner, messages=cleared)
                return None

            summary, embedding = await self._summarize(
                session, char_name=char_name, user_name=user_name
            )
            self._seal(session, summary, embedding)
            self._sessions.append(ChatSession())

        logger.info(
            "session_ledger.session_archived",
            owner=self._owner,
            session_id=session.id,
            messages=len(session.messages),
            title=summary.title,
        )
        if self._on_archived is not None:
            await self._on_archived(session)
        return session

    async def summarize_archived(
        self,
        *,
        char_name: str = "",
        user_name: str = "",
        cancel_event: asyncio.Event | None = None,
    ) -> list[ChatSession]:
        """Summarize archived sessions that have no summary yet.

        Used after importing a raw log. Stops early when ``cancel_event`` is
        set; sessions processed so far stay summarized.
        """
        done: list[ChatSession] = []
        for session in self.archived:
            if cancel_event is not None and cancel_event.is_set():
                break
            if session.is_summarized or len(session.messages) <= self._settings.min_messages_to_archive:
                continue
            summary, embedding = await self._summarize(
                session, char_name=char_name, user_name=user_name
            )
            self._seal(session, summary, embedding)
            done.append(session)
            if self._on_archived is not None:
                await self._on_archived(session)
        if done:
            logger.info("session_ledger.archive_summarized", owner=self._owner, count=len(done))
        return done

    async def _summarize(
        self, session: ChatSession, *, char_name: str, user_name: str
    ) -> tuple[SessionSummary, list[float]]:
        if self._summarizer is None:
            raise SummarizationError("No session summarizer configured", session_id=session.id)
        summary = await self._summarizer.summarize(
            session, char_name=char_name, user_name=user_name
        )
        embedding: list[float] = []
        if self._retrieval is not None and self._retrieval.enabled and summary.summary.strip():
            embedding = list(await self._retrieval.embed(f"{summary.title}\n{summary.summary}"))
        return summary, embedding

    @staticmethod
    def _seal(session: ChatSession, summary: SessionSummary, embedding: list[float]) -> None:
        session.summary = summary
        session.embedding = embedding
        session.archived = True
        session.refresh_bounds()

    def set_sticky(self, session_id: str, sticky: bool = True) -> bool:
        """Mark an archived session so its summary is always offered inline."""
        session = self.get_session(session_id)
        if session is None or session is self.current:
            return False
        session.sticky = sticky
        return True

    def sticky_sessions(self) -> list[ChatSession]:
        return [s for s in self.archived if s.sticky and s.is_summarized]

    def import_raw_log(self, messages: Iterable[Message], *, user_name: str = "") -> list[ChatSession]:
        """Replace the history with a segmented raw log.

        The last segment becomes the current session, all earlier ones are
        archived without summaries (see ``summarize_archived``).
        """
        segments = segment_raw_log(messages, self._settings, user_name=user_name)
        if not segments:
            segments = [ChatSession()]
        segments[-1].archived = False
        self._sessions = segments
        logger.info("session_ledger.raw_log_imported", owner=self._owner, sessions=len(segments))
        return list(segments)

    def new_session_announcement(self, now: datetime | None = None) -> str:
        """Time announcement logged at the start of a session."""
        now = now or utc_now()
        text = f"*We're {now:%A} the {format_date(now)} at {format_time(now)}."
        previous = self.archived[-1] if self.archived else None
        if previous is not None and previous.ended_at is not None:
            text += " " + describe_elapsed(now, previous.ended_at)
        return text + "*"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load(self) -> int:
        if self._repository is None:
            return 0
        sessions = await self._repository.load(self._owner)
        if not sessions:
            sessions = [ChatSession()]
        for session in sessions[:-1]:
            session.archived = True
        sessions[-1].archived = False
        self._sessions = sessions
        logger.info("session_ledger.loaded", owner=self._owner, sessions=len(sessions))
        return len(sessions)

    async def save(self) -> None:
        """Persist all sessions. Failures are logged and re-raised."""
        if self._repository is None:
            return
        try:
            await self._repository.save(self._owner, list(self._sessions))
        except PersistenceError as exc:
            logger.error("session_ledger.save_failed", owner=self._owner, error=str(exc))
            raise
