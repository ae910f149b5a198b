"""
Configuration Schema Validation

Pydantic models for the runtime settings of a persona: memory policy,
context budgeting, session handling, scheduler timing and persistence.
Every section has working defaults so an empty settings file is valid.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from chatmind.core.domain.memory import MemoryCategory

DEFAULT_NEWS_TRIGGER_PHRASES = (
    "any updates",
    "any news",
    "anything interesting",
    "anything new",
    "pick a topic",
    "something new",
    "something interesting",
    "share something",
    "what have you learned",
    "what's going on",
    "what's happening",
    "what's the latest",
    "what's up",
    "what's new",
)


class SessionHandling(str, Enum):
    """Which sessions the history walk may pull messages from."""

    CURRENT_ONLY = "current_only"
    FIT_ALL = "fit_all"


class MemoryPlacement(str, Enum):
    """Where similarity-retrieved memories are inserted."""

    PREAMBLE = "preamble"
    INLINE = "inline"


class MemorySettings(BaseModel):
    """Insertion, retrieval and decay policy for the Memory Store."""

    model_config = ConfigDict(extra="forbid")

    natural_distance_cutoff: float = Field(
        0.09, ge=0.0, le=2.0, description="Max cosine distance for a natural memory match"
    )
    forced_after_turns: int = Field(
        4, ge=0, description="Unused turns after which a NaturalForced record surfaces anyway"
    )
    natural_expiry_days: float = Field(
        15.0, gt=0, description="Unsurfaced Natural records older than this are dropped"
    )
    decayable_categories: list[MemoryCategory] = Field(
        default_factory=lambda: [MemoryCategory.WEB_RESEARCH, MemoryCategory.GOAL],
        description="Categories subject to the decay sweep",
    )
    decay_after_days: float = Field(
        10.0, gt=0, description="Staleness threshold for decayable records"
    )
    decay_priority_floor: int = Field(
        1, description="Only records with priority at or below this decay"
    )
    retrieval_max_results: int = Field(5, ge=0)
    retrieval_distance_cutoff: float = Field(0.2, ge=0.0, le=2.0)
    news_trigger_phrases: list[str] = Field(
        default_factory=lambda: list(DEFAULT_NEWS_TRIGGER_PHRASES),
        description="Open-ended prompts that surface a waiting NaturalForced record at once",
    )

    def is_news_trigger(self, text: str) -> bool:
        lowered = text.lower()
        return any(phrase.lower() in lowered for phrase in self.news_trigger_phrases if phrase)


class ContextSettings(BaseModel):
    """Token budgeting for the Context Assembler."""

    model_config = ConfigDict(extra="forbid")

    context_window: int = Field(8192, gt=0)
    reserved_reply_tokens: int = Field(512, ge=0)
    safety_margin_tokens: int = Field(32, ge=0)
    session_handling: SessionHandling = SessionHandling.CURRENT_ONLY
    inline_depth: int = Field(
        3, ge=0, description="Number of most recent history entries placed after the inline slot"
    )
    memory_placement: MemoryPlacement = MemoryPlacement.PREAMBLE
    previous_summaries: bool = True
    summary_reserved_tokens: int = Field(512, ge=0)

    @model_validator(mode="after")
    def validate_budget(self) -> ContextSettings:
        """The reserved parts must leave room for a prompt."""
        if self.reserved_reply_tokens + self.safety_margin_tokens >= self.context_window:
            raise ValueError("reserved_reply_tokens + safety_margin_tokens must be below context_window")
        return self

    @property
    def budget(self) -> int:
        return self.context_window - self.reserved_reply_tokens - self.safety_margin_tokens


class SessionSettings(BaseModel):
    """Session archival and raw-log segmentation."""

    model_config = ConfigDict(extra="forbid")

    min_messages_to_archive: int = Field(
        2, ge=0, description="Sessions with more messages than this are summarized on archive"
    )
    segment_min_messages: int = Field(35, ge=1)
    segment_gap_days: float = Field(1.0, gt=0)
    segment_long_span_days: float = Field(3.0, gt=0)
    segment_long_count: int = Field(120, ge=1)
    timestamp_repair_seconds: int = Field(15, gt=0)
    announce_new_session: bool = False


class SchedulerSettings(BaseModel):
    """Timing of the background agent loop."""

    model_config = ConfigDict(extra="forbid")

    initial_delay_seconds: float = Field(10.0, ge=0)
    task_interval_seconds: float = Field(1.0, ge=0)
    idle_poll_seconds: float = Field(1.0, gt=0)
    min_inactivity_minutes: float = Field(15.0, ge=0)
    shutdown_timeout_seconds: float = Field(30.0, gt=0)


class PersistenceSettings(BaseModel):
    """Where persona state lives on disk."""

    model_config = ConfigDict(extra="forbid")

    data_dir: str = ".chatmind"
    backups: bool = True


class LLMSettings(BaseModel):
    """Backend models and retry policy for the LiteLLM adapters."""

    model_config = ConfigDict(extra="forbid")

    model: str = "gpt-4.1-mini"
    embedding_model: str | None = "text-embedding-3-small"
    api_base: str | None = None
    timeout: int = Field(60, gt=0)
    max_attempts: int = Field(3, ge=1)
    backoff_multiplier: float = Field(2.0, ge=1.0)


class RuntimeSettings(BaseModel):
    """Top-level settings for one persona runtime."""

    model_config = ConfigDict(extra="forbid")

    llm: LLMSettings = Field(default_factory=LLMSettings)

    memory: MemorySettings = Field(default_factory=MemorySettings)
    context: ContextSettings = Field(default_factory=ContextSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    persistence: PersistenceSettings = Field(default_factory=PersistenceSettings)
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    stop_sequences: list[str] = Field(default_factory=list)
    scenario_override: str = ""
