"""
Persona Runtime

The explicit per-persona context object. It carries the persona references,
settings, the shared inference slot and the persona's Memory Store, Session
Ledger and Agent Scheduler, and it runs the foreground pipeline:

    eligible memories -> budgeted assembly -> inference (under the slot)
    -> commit used memories -> log user turn and reply

Every service receives what it needs from here; nothing is looked up through
process-wide globals.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from chatmind.application.agent_scheduler import AgentScheduler
from chatmind.application.inference_slot import InferenceSlot
from chatmind.application.memory_store import MemoryStore
from chatmind.application.session_ledger import SessionLedger
from chatmind.core.domain.config_schema import RuntimeSettings
from chatmind.core.domain.context_assembler import (
    SESSION_SOURCE_PREFIX,
    AssembledContext,
    ContextAssembler,
)
from chatmind.core.domain.macros import MacroContext, resolve_macros
from chatmind.core.domain.memory import InsertionPolicy, MemoryCategory, MemoryRecord
from chatmind.core.domain.persona import Participant, Persona, PersonaGroup
from chatmind.core.domain.session import ChatSession, Message, MessageRole
from chatmind.core.interfaces.llm import GenerationParams, InferenceProtocol
from chatmind.core.interfaces.persistence import TaskConfigRepositoryProtocol
from chatmind.core.interfaces.tokenizer import TokenizerProtocol
from chatmind.core.utils.time import utc_now

logger = structlog.get_logger(__name__)


@dataclass
class TurnPlan:
    """Everything selected for one foreground turn before inference."""

    user_message: Message
    context: AssembledContext
    natural_memory: MemoryRecord | None = None
    trigger_memories: list[MemoryRecord] = field(default_factory=list)
    natural_candidate_ids: list[str] = field(default_factory=list)


class PersonaRuntime:
    """Owns one bot persona's state and runs its foreground turns.

    Args:
        bot: Single persona or persona group answering the user.
        user: The human side of the conversation.
        inference: Text generation collaborator.
        tokenizer: Token counter matching the inference backend.
        memory: The persona's Memory Store.
        ledger: The persona's Session Ledger.
        settings: Runtime settings; defaults are used when omitted.
        slot: Inference slot, created when omitted.
        task_configs: Persistence for agent task configurations.
    """

    def __init__(
        self,
        bot: Participant,
        user: Persona,
        inference: InferenceProtocol,
        tokenizer: TokenizerProtocol,
        memory: MemoryStore,
        ledger: SessionLedger,
        settings: RuntimeSettings | None = None,
        slot: InferenceSlot | None = None,
        task_configs: TaskConfigRepositoryProtocol | None = None,
    ) -> None:
        self.bot = bot
        self.user = user
        self.settings = settings or RuntimeSettings()
        self.inference = inference
        self.tokenizer = tokenizer
        self.memory = memory
        self.ledger = ledger
        self.slot = slot or InferenceSlot(bot.unique_name)
        self.assembler = ContextAssembler(tokenizer, self.settings.context)
        self.scheduler = AgentScheduler(self, self.settings.scheduler, task_configs)
        self.notifications: list[Message] = []
        self.ledger.set_archive_hook(self._memorize_session)

    @property
    def name(self) -> str:
        """Persistence key of the persona."""
        return self.bot.unique_name

    @property
    def agent_mode(self) -> bool:
        return self.bot.agent_mode

    @property
    def speaker(self) -> Persona | PersonaGroup:
        """Persona writing the next reply (current group member for groups)."""
        if isinstance(self.bot, PersonaGroup):
            return self.bot.current or self.bot
        return self.bot

    def macro_context(self, now: datetime | None = None) -> MacroContext:
        return MacroContext.for_participants(
            self.bot,
            self.user,
            now=now,
            scenario_override=self.settings.scenario_override,
        )

    def resolve(self, text: str, now: datetime | None = None) -> str:
        return resolve_macros(text, self.macro_context(now))

    def build_preamble(self, now: datetime | None = None) -> str:
        return self.resolve(self.bot.system_prompt, now)

    def generation_params(self) -> GenerationParams:
        return GenerationParams(
            max_tokens=self.settings.context.reserved_reply_tokens,
            temperature=self.settings.temperature,
            stop=list(self.settings.stop_sequences),
        )

    # ------------------------------------------------------------------
    # Foreground pipeline
    # ------------------------------------------------------------------

    async def plan_turn(self, user_text: str) -> TurnPlan:
        """Select memories and assemble the prompt for ``user_text``.

        Raises:
            BudgetExhaustedError: Preamble and user turn do not fit.
            RetrievalError: The embedding or search backend failed.
        """
        now = utc_now()
        user_message = Message(
            role=MessageRole.USER,
            text=self.resolve(user_text, now),
            author=self.user.unique_name,
            timestamp=now,
        )
        query_vector = await self.memory.embed_query(user_message.text)
        candidate_ids = [record.id for record in self.memory.natural_candidates()]
        natural = await self.memory.eligible_for_natural_insertion(
            user_message.text, query_vector=query_vector
        )
        triggered = await self.memory.search_triggered(
            user_message.text, query_vector=query_vector
        )
        sticky = [
            record
            for session in self.ledger.sticky_sessions()
            if (record := self.memory.find_by_source_key(f"{SESSION_SOURCE_PREFIX}{session.id}"))
            is not None
        ]
        context = self.assembler.assemble(
            self.build_preamble(now),
            self.ledger.sessions,
            user_turn=user_message,
            natural_memory=natural,
            trigger_memories=triggered,
            inline_memories=sticky,
        )
        logger.debug(
            "persona_runtime.turn_planned",
            persona=self.name,
            total_tokens=context.total_tokens,
            budget=context.budget,
            messages=len(context.message_ids),
            memories=len(context.memory_ids),
            dropped=len(context.dropped_memory_ids),
        )
        return TurnPlan(
            user_message=user_message,
            context=context,
            natural_memory=natural,
            trigger_memories=triggered,
            natural_candidate_ids=candidate_ids,
        )

    async def respond(self, user_text: str) -> str:
        """Answer ``user_text`` and log both sides of the turn.

        Nothing is logged, committed or counted against waiting memories
        when planning or inference fails or is cancelled, so the turn can
        simply be retried.

        Raises:
            BudgetExhaustedError: The prompt cannot be built.
            CollaboratorError: Inference or retrieval failed.
        """
        self.scheduler.notify_user_activity()
        async with self.slot.acquire("foreground"):
            plan = await self.plan_turn(user_text)
            reply = await self.inference.complete(plan.context.to_messages(), self.generation_params())
        await self._finish_turn(plan, reply)
        return reply

    async def respond_stream(self, user_text: str) -> AsyncIterator[str]:
        """Stream the reply to ``user_text``; the turn is logged once complete.

        The inference slot is held while chunks are produced. Consumers that
        may stop early must close the generator, e.g. with
        ``contextlib.aclosing``, so the slot is released right away; an
        abandoned stream logs nothing.
        """
        self.scheduler.notify_user_activity()
        async with self.slot.acquire("foreground"):
            plan = await self.plan_turn(user_text)
            parts: list[str] = []
            async for chunk in self.inference.stream(
                plan.context.to_messages(), self.generation_params()
            ):
                parts.append(chunk)
                yield chunk
        await self._finish_turn(plan, "".join(parts))

    async def reroll(self) -> str | None:
        """Answer the last user message again, replacing the previous reply.

        The previous reply and user turn are put back when the new answer
        fails or is cancelled, so a reroll never loses history.
        """
        last = self.ledger.last_message()
        if last is None:
            return None
        removed: list[Message] = []
        if last.role == MessageRole.ASSISTANT:
            removed.append(self.ledger.remove_last())
            last = self.ledger.last_message()
        if last is None or last.role != MessageRole.USER:
            self._restore(removed)
            return None
        removed.append(self.ledger.remove_last())
        try:
            return await self.respond(last.text)
        except BaseException:
            self._restore(removed)
            raise

    def _restore(self, removed: list[Message]) -> None:
        for message in reversed(removed):
            self.ledger.log(message)

    async def _finish_turn(self, plan: TurnPlan, reply: str) -> None:
        self.ledger.log(plan.user_message)
        self.ledger.log(
            Message(
                role=MessageRole.ASSISTANT,
                text=reply.strip(),
                author=self.speaker.unique_name,
            )
        )
        for record_id in plan.context.memory_ids:
            await self.memory.commit(record_id, used=True)
        await self.memory.record_natural_turn(plan.natural_candidate_ids)
        self.scheduler.notify_user_activity()

    async def end_session(self, archive: bool = True) -> ChatSession | None:
        """Archive (or clear) the current session and run a decay sweep.

        Raises:
            SummarizationError: The session could not be summarized; it
                stays current.
        """
        async with self.slot.acquire("end_session"):
            archived = await self.ledger.start_new_session(
                archive,
                char_name=self.speaker.name,
                user_name=self.user.name,
            )
        await self.memory.decay_sweep()
        if self.settings.session.announce_new_session:
            self.ledger.log_message(
                MessageRole.SYSTEM,
                self.resolve(self.ledger.new_session_announcement()),
                self.user.unique_name,
            )
        return archived

    async def _memorize_session(self, session: ChatSession) -> None:
        """Turn an archived session's summary into a long-range memory."""
        summary = session.summary
        if summary is None or not summary.summary.strip():
            return
        record = MemoryRecord(
            content=summary.summary,
            name=summary.title,
            category=MemoryCategory.SESSION_SUMMARY,
            policy=InsertionPolicy.TRIGGER,
            priority=summary.importance,
            embedding=list(session.embedding),
            source_key=f"{SESSION_SOURCE_PREFIX}{session.id}",
            metadata={"session_id": session.id, "keywords": list(summary.keywords)},
        )
        await self.memory.memorize(record)

    def stage_notification(self, text: str) -> Message:
        """Queue a user-facing message produced by a background task."""
        message = Message(role=MessageRole.ASSISTANT, text=text, author=self.speaker.unique_name)
        self.notifications.append(message)
        return message

    def pop_notifications(self) -> list[Message]:
        staged, self.notifications = self.notifications, []
        return staged

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def load(self) -> None:
        await self.memory.load()
        await self.ledger.load()

    async def save(self) -> None:
        await self.memory.save()
        await self.ledger.save()

    async def start(self) -> None:
        await self.scheduler.start()

    async def shutdown(self) -> None:
        """Stop background work, then persist everything."""
        await self.scheduler.stop()
        await self.save()
        logger.info("persona_runtime.shutdown", persona=self.name)
