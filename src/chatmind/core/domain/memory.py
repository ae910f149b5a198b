"""Memory domain models and enums."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from chatmind.core.utils.time import parse_timestamp, utc_now


class MemoryCategory(str, Enum):
    """Informational tag for memory records. Does not affect mechanics."""

    GENERAL = "general"
    WORLD_FACT = "world_fact"
    WEB_RESEARCH = "web_research"
    SESSION_SUMMARY = "session_summary"
    JOURNAL = "journal"
    PERSON = "person"
    LOCATION = "location"
    EVENT = "event"
    GOAL = "goal"


class InsertionPolicy(str, Enum):
    """How a memory record enters a prompt.

    ``TRIGGER`` records stay dormant until similarity search recalls them.
    ``NATURAL`` records are fresh and surface once when relevant.
    ``NATURAL_FORCED`` records surface once even without a semantic match.
    ``DISABLED`` records never participate in any selection path.
    """

    TRIGGER = "trigger"
    NATURAL = "natural"
    NATURAL_FORCED = "natural_forced"
    DISABLED = "disabled"

    @property
    def is_natural(self) -> bool:
        return self in (InsertionPolicy.NATURAL, InsertionPolicy.NATURAL_FORCED)


_INLINE_LEADS: dict[MemoryCategory, str] = {
    MemoryCategory.PERSON: "Here's the information you remember about {name}.",
    MemoryCategory.LOCATION: "You remember something about this location: {name}.",
    MemoryCategory.GOAL: "You remember you've set this goal for yourself: {name}.",
    MemoryCategory.WEB_RESEARCH: (
        "You remember something you've found on the web recently about '{name}'."
    ),
}


@dataclass
class MemoryRecord:
    """A single unit of long-term knowledge owned by one persona.

    Attributes:
        content: Free text body of the memory.
        category: Informational tag.
        policy: Insertion policy, see ``InsertionPolicy``.
        name: Short title, used for inline rendering and embeddings.
        reason: Why the persona cares about this memory.
        priority: Importance. ``0`` on a ``NATURAL`` record means one-shot.
        embedding: Vector from the retrieval collaborator, empty when absent.
        source_key: Optional key identifying where the record came from,
            used for duplicate detection (e.g. ``session:<id>``).
        last_triggered_at: Last time the record was used in a prompt.
        trigger_count: How many times the record was used in a prompt.
        turns_unused: Turns evaluated for natural insertion without being used.
        keywords: Words or phrases that recall the record by plain text match,
            with or without an embedding.
    """

    content: str
    category: MemoryCategory = MemoryCategory.GENERAL
    policy: InsertionPolicy = InsertionPolicy.TRIGGER
    id: str = field(default_factory=lambda: uuid4().hex)
    name: str = ""
    reason: str = ""
    priority: int = 1
    embedding: list[float] = field(default_factory=list)
    source_key: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    last_triggered_at: datetime | None = None
    trigger_count: int = 0
    turns_unused: int = 0
    keywords: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def has_embedding(self) -> bool:
        return len(self.embedding) > 0

    @property
    def last_activity_at(self) -> datetime:
        """Reference time for decay: last trigger, or creation if never used."""
        if self.trigger_count == 0 or self.last_triggered_at is None:
            return self.created_at
        return self.last_triggered_at

    def dedup_key(self) -> str:
        """Key used to reject equivalent records on insertion."""
        if self.source_key:
            return f"source:{self.source_key}"
        return "content:" + " ".join(self.content.lower().split())

    def matches_keywords(self, text: str) -> bool:
        """Whether any keyword occurs in ``text`` as a whole word, ignoring case."""
        for keyword in self.keywords:
            keyword = keyword.strip()
            if keyword and re.search(rf"(?<!\w){re.escape(keyword)}(?!\w)", text, re.IGNORECASE):
                return True
        return False

    def touch(self, now: datetime | None = None) -> None:
        """Record a use of this memory in a prompt."""
        self.last_triggered_at = now or utc_now()
        self.trigger_count += 1
        self.turns_unused = 0

    def embedding_text(self) -> str:
        """Text handed to the embedder for this record."""
        if self.name:
            return f"{self.name}\n{self.content}"
        return self.content

    def render_inline(self) -> str:
        """Render the record as an inline system entry for a prompt."""
        lead = _INLINE_LEADS.get(self.category)
        if lead and self.name:
            text = lead.format(name=self.name)
        elif self.name:
            text = f"This is some information regarding '{self.name}'."
        else:
            text = "This is something you remember."
        if self.reason:
            text += f" Your reason for it was: {self.reason}."
        return f"{text}\n\n{self.content.strip()}"

    def to_dict(self) -> dict[str, Any]:
        """Serialize for storage."""
        return {
            "id": self.id,
            "category": self.category.value,
            "policy": self.policy.value,
            "name": self.name,
            "content": self.content,
            "reason": self.reason,
            "priority": self.priority,
            "embedding": list(self.embedding),
            "source_key": self.source_key,
            "created_at": self.created_at.isoformat(),
            "last_triggered_at": (
                self.last_triggered_at.isoformat() if self.last_triggered_at else None
            ),
            "trigger_count": self.trigger_count,
            "turns_unused": self.turns_unused,
            "keywords": list(self.keywords),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MemoryRecord:
        """Deserialize from stored dict."""
        return cls(
            id=str(data["id"]),
            content=str(data["content"]),
            category=MemoryCategory(data.get("category", MemoryCategory.GENERAL.value)),
            policy=InsertionPolicy(data.get("policy", InsertionPolicy.TRIGGER.value)),
            name=str(data.get("name", "")),
            reason=str(data.get("reason", "")),
            priority=int(data.get("priority", 1)),
            embedding=[float(v) for v in data.get("embedding") or []],
            source_key=data.get("source_key"),
            created_at=parse_timestamp(data.get("created_at")) or utc_now(),
            last_triggered_at=parse_timestamp(data.get("last_triggered_at")),
            trigger_count=int(data.get("trigger_count", 0)),
            turns_unused=int(data.get("turns_unused", 0)),
            keywords=[str(k) for k in data.get("keywords") or []],
            metadata=dict(data.get("metadata") or {}),
        )
