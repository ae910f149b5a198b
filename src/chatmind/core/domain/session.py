"""Chat session domain models.

A persona's history is an ordered list of ``ChatSession`` objects. The last
one is the current session (open for new messages); all earlier ones are
archived, read-only and usually summarized.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from chatmind.core.utils.time import ensure_utc, parse_timestamp, utc_now

MAX_SUMMARY_GOALS = 5


class MessageRole(str, Enum):
    """Role of a logged message."""

    SYSTEM_PREAMBLE = "system_preamble"
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"

    @property
    def chat_role(self) -> str:
        """Role name understood by chat-completion backends."""
        if self in (MessageRole.SYSTEM_PREAMBLE, MessageRole.SYSTEM):
            return "system"
        return self.value


@dataclass
class Message:
    """A single logged message.

    Attributes:
        role: Author role.
        text: Message body.
        author: Unique name of the persona that wrote it.
        timestamp: Advisory time stamp. Ordering is the list order.
        hidden: Present in context but not meant for display.
        note: Optional annotation.
    """

    role: MessageRole
    text: str
    author: str = ""
    timestamp: datetime | None = field(default_factory=utc_now)
    hidden: bool = False
    note: str = ""
    id: str = field(default_factory=lambda: uuid4().hex)

    def __post_init__(self) -> None:
        if self.timestamp is not None:
            self.timestamp = ensure_utc(self.timestamp)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for storage."""
        return {
            "id": self.id,
            "role": self.role.value,
            "text": self.text,
            "author": self.author,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "hidden": self.hidden,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        """Deserialize from stored dict."""
        return cls(
            id=str(data.get("id") or uuid4().hex),
            role=MessageRole(data["role"]),
            text=str(data.get("text", "")),
            author=str(data.get("author", "")),
            timestamp=parse_timestamp(data.get("timestamp")),
            hidden=bool(data.get("hidden", False)),
            note=str(data.get("note", "")),
        )


@dataclass
class SessionSummary:
    """Metadata generated when a session is archived."""

    title: str
    summary: str
    keywords: list[str] = field(default_factory=list)
    goals: list[str] = field(default_factory=list)
    is_roleplay: bool = False
    importance: int = 1
    research_topics: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.goals = [g for g in self.goals if g.strip()][:MAX_SUMMARY_GOALS]
        self.importance = min(5, max(1, int(self.importance)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "summary": self.summary,
            "keywords": list(self.keywords),
            "goals": list(self.goals),
            "is_roleplay": self.is_roleplay,
            "importance": self.importance,
            "research_topics": list(self.research_topics),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionSummary:
        return cls(
            title=str(data.get("title", "")),
            summary=str(data.get("summary", "")),
            keywords=list(data.get("keywords") or []),
            goals=list(data.get("goals") or []),
            is_roleplay=bool(data.get("is_roleplay", False)),
            importance=int(data.get("importance", 1)),
            research_topics=list(data.get("research_topics") or []),
        )


@dataclass
class ChatSession:
    """A bounded run of conversation turns."""

    id: str = field(default_factory=lambda: uuid4().hex)
    messages: list[Message] = field(default_factory=list)
    started_at: datetime | None = None
    ended_at: datetime | None = None
    summary: SessionSummary | None = None
    embedding: list[float] = field(default_factory=list)
    archived: bool = False
    sticky: bool = False

    @property
    def is_summarized(self) -> bool:
        return self.summary is not None and bool(self.summary.summary.strip())

    @property
    def title(self) -> str:
        return self.summary.title if self.summary else ""

    def refresh_bounds(self) -> None:
        """Derive start/end times from the first and last dated messages."""
        dated = [m.timestamp for m in self.messages if m.timestamp is not None]
        if not dated:
            return
        if self.started_at is None:
            self.started_at = dated[0]
        self.ended_at = dated[-1]

    def summary_line(self) -> str:
        """One-line rendering used for the previous-summaries block."""
        if not self.summary:
            return ""
        summary = " ".join(self.summary.summary.split())
        if self.summary.title:
            return f"{self.summary.title}: {summary}"
        return summary

    def transcript(self, *, include_hidden: bool = False) -> str:
        """Plain text transcript of the session."""
        lines = []
        for message in self.messages:
            if message.hidden and not include_hidden:
                continue
            speaker = message.author or message.role.value
            lines.append(f"{speaker}: {message.text}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for storage."""
        return {
            "id": self.id,
            "messages": [m.to_dict() for m in self.messages],
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "summary": self.summary.to_dict() if self.summary else None,
            "embedding": list(self.embedding),
            "archived": self.archived,
            "sticky": self.sticky,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatSession:
        """Deserialize from stored dict."""
        summary_raw = data.get("summary")
        return cls(
            id=str(data.get("id") or uuid4().hex),
            messages=[Message.from_dict(m) for m in data.get("messages") or []],
            started_at=parse_timestamp(data.get("started_at")),
            ended_at=parse_timestamp(data.get("ended_at")),
            summary=SessionSummary.from_dict(summary_raw) if summary_raw else None,
            embedding=[float(v) for v in data.get("embedding") or []],
            archived=bool(data.get("archived", False)),
            sticky=bool(data.get("sticky", False)),
        )
