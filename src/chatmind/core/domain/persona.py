"""Persona domain models.

A conversation participant is either a single ``Persona`` or a
``PersonaGroup`` of bot personas speaking in turn. Both are plain data;
code that composes text for them branches on the variant explicitly
(see ``chatmind.core.domain.macros``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

DEFAULT_SYSTEM_PROMPT = (
    "You are {{char}}, chatting with {{user}}.\n\n"
    "## {{char}}\n\n{{charbio}}\n\n"
    "## {{user}}\n\n{{userbio}}"
)


@dataclass
class Persona:
    """A single participant (user or bot).

    Attributes:
        unique_name: Stable key used for persisted state.
        name: Display name substituted for ``{{char}}`` / ``{{user}}``.
        bio: Biography, may itself contain macros.
        is_user: Whether this persona is the human side.
        scenario: Optional scenario text for ``{{scenario}}``.
        system_prompt: Preamble template resolved at assembly time.
        agent_mode: Whether the background scheduler may run tasks.
        agent_tasks: Ids of the agent tasks this persona runs.
    """

    unique_name: str
    name: str
    bio: str = ""
    is_user: bool = False
    scenario: str = ""
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    agent_mode: bool = False
    agent_tasks: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "unique_name": self.unique_name,
            "name": self.name,
            "bio": self.bio,
            "is_user": self.is_user,
            "scenario": self.scenario,
            "system_prompt": self.system_prompt,
            "agent_mode": self.agent_mode,
            "agent_tasks": list(self.agent_tasks),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Persona:
        return cls(
            unique_name=str(data["unique_name"]),
            name=str(data.get("name", data["unique_name"])),
            bio=str(data.get("bio", "")),
            is_user=bool(data.get("is_user", False)),
            scenario=str(data.get("scenario", "")),
            system_prompt=str(data.get("system_prompt", DEFAULT_SYSTEM_PROMPT)),
            agent_mode=bool(data.get("agent_mode", False)),
            agent_tasks=list(data.get("agent_tasks") or []),
        )


@dataclass
class PersonaGroup:
    """Several bot personas sharing one history, memory and scheduler."""

    unique_name: str
    name: str
    members: list[Persona] = field(default_factory=list)
    current_member: str | None = None
    bio: str = ""
    scenario: str = ""
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    agent_mode: bool = False
    agent_tasks: list[str] = field(default_factory=list)

    @property
    def current(self) -> Persona | None:
        """Member currently speaking, falling back to the first member."""
        for member in self.members:
            if member.unique_name == self.current_member:
                return member
        return self.members[0] if self.members else None

    def set_current(self, unique_name: str) -> None:
        if not any(m.unique_name == unique_name for m in self.members):
            raise ValueError(f"'{unique_name}' is not a member of group '{self.unique_name}'")
        self.current_member = unique_name


Participant = Union[Persona, PersonaGroup]
