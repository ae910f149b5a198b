"""Placeholder substitution for prompt text.

All ``{{macro}}`` resolution goes through ``resolve_macros`` with a typed
``MacroContext``. Group personas are handled in exactly one place,
``MacroContext.for_participants``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from chatmind.core.domain.persona import Participant, Persona, PersonaGroup
from chatmind.core.utils.time import utc_now


def _bio_for(persona: Persona, other_name: str) -> str:
    """Bio of ``persona`` with its own name and the counterpart's filled in."""
    if persona.is_user:
        return persona.bio.replace("{{user}}", persona.name).replace("{{char}}", other_name)
    return persona.bio.replace("{{char}}", persona.name).replace("{{user}}", other_name)


def _group_listing(group: PersonaGroup, user_name: str) -> str:
    if not group.members:
        return ""
    lines = ["=== Group Chat Participants ==="]
    for member in group.members:
        lines.append(f"**{member.name}**")
        bio = _bio_for(member, user_name)
        if bio.strip():
            lines.append(bio)
        lines.append("")
    return "\n".join(lines).strip()


def format_date(value: datetime) -> str:
    return f"{value:%B} {value.day}, {value.year}"


def format_time(value: datetime) -> str:
    return value.strftime("%I:%M %p")


@dataclass
class MacroContext:
    """Values available to ``resolve_macros``."""

    char_name: str
    user_name: str
    char_bio: str = ""
    user_bio: str = ""
    scenario: str = ""
    group: str = ""
    current_char: str = ""
    now: datetime = field(default_factory=utc_now)

    @classmethod
    def for_participants(
        cls,
        bot: Participant,
        user: Persona,
        *,
        now: datetime | None = None,
        scenario_override: str = "",
    ) -> MacroContext:
        """Build the macro context for a bot (single or group) and a user."""
        user_bio = _bio_for(user, bot.name)
        if isinstance(bot, PersonaGroup):
            speaker = bot.current
            listing = _group_listing(bot, user.name)
            if speaker is not None:
                char_name = speaker.name
                char_bio = _bio_for(speaker, user.name)
                current_char = speaker.name
            else:
                char_name = bot.name
                char_bio = bot.bio.replace("{{char}}", bot.name).replace("{{user}}", user.name)
                if listing:
                    char_bio = f"{char_bio}\n\n{listing}".strip()
                current_char = "[No character selected]"
            group = listing
        else:
            char_name = bot.name
            char_bio = _bio_for(bot, user.name)
            current_char = bot.name
            group = ""
        scenario = scenario_override or bot.scenario.replace("{{char}}", char_name).replace(
            "{{user}}", user.name
        )
        return cls(
            char_name=char_name,
            user_name=user.name,
            char_bio=char_bio,
            user_bio=user_bio,
            scenario=scenario,
            group=group,
            current_char=current_char,
            now=now or utc_now(),
        )

    def values(self) -> dict[str, str]:
        # Bios first: they may contain {{char}}/{{user}} themselves.
        return {
            "{{charbio}}": self.char_bio,
            "{{userbio}}": self.user_bio,
            "{{scenario}}": self.scenario,
            "{{group}}": self.group,
            "{{currentchar}}": self.current_char,
            "{{char}}": self.char_name,
            "{{user}}": self.user_name,
            "{{date}}": format_date(self.now),
            "{{time}}": format_time(self.now),
            "{{day}}": self.now.strftime("%A"),
        }


def resolve_macros(text: str, context: MacroContext) -> str:
    """Replace every known ``{{macro}}`` in ``text``. Unknown ones are kept."""
    if not text or "{{" not in text:
        return text
    for placeholder, value in context.values().items():
        text = text.replace(placeholder, value)
    return text
