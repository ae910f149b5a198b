"""Application Layer - Runtime Factory.

Wires a ``PersonaRuntime`` from settings: file repositories under the data
dir, LiteLLM collaborators, the LLM summarizer and researcher, and the
built-in agent tasks listed in the persona's ``agent_tasks``. Any
collaborator can be passed in explicitly to override the default.
"""

from __future__ import annotations

from pathlib import Path

import structlog

from chatmind.application.inference_slot import InferenceSlot
from chatmind.application.memory_store import MemoryStore
from chatmind.application.persona_runtime import PersonaRuntime
from chatmind.application.session_ledger import SessionLedger
from chatmind.application.settings_loader import load_runtime_settings
from chatmind.application.tasks import builtin_task_factories
from chatmind.core.domain.config_schema import RuntimeSettings
from chatmind.core.domain.persona import Participant, Persona
from chatmind.core.interfaces.llm import InferenceProtocol
from chatmind.core.interfaces.research import ResearcherProtocol
from chatmind.core.interfaces.retrieval import RetrievalProtocol
from chatmind.core.interfaces.summarizer import SessionSummarizerProtocol
from chatmind.core.interfaces.tokenizer import TokenizerProtocol
from chatmind.infrastructure.llm import (
    LiteLLMEmbedder,
    LiteLLMInference,
    LiteLLMTokenizer,
    LLMResearcher,
    LLMSessionSummarizer,
)
from chatmind.infrastructure.persistence import (
    FileMemoryRepository,
    FileSessionLogRepository,
    FileTaskConfigStore,
)
from chatmind.infrastructure.retrieval import CosineRetrieval

logger = structlog.get_logger(__name__)


def build_retrieval(settings: RuntimeSettings) -> RetrievalProtocol:
    """Cosine search over LiteLLM embeddings, disabled without an embedding model."""
    embedder = LiteLLMEmbedder(settings.llm)
    return CosineRetrieval(embedder.embed if embedder.enabled else None)


def build_runtime(
    bot: Participant,
    user: Persona,
    settings: RuntimeSettings | str | Path | None = None,
    *,
    inference: InferenceProtocol | None = None,
    tokenizer: TokenizerProtocol | None = None,
    retrieval: RetrievalProtocol | None = None,
    summarizer: SessionSummarizerProtocol | None = None,
    researcher: ResearcherProtocol | None = None,
    slot: InferenceSlot | None = None,
) -> PersonaRuntime:
    """Create a fully wired runtime for ``bot``.

    Args:
        bot: Persona or persona group to run.
        user: The user persona.
        settings: Settings object, or a path to a YAML settings file.

    Raises:
        ConfigError: Settings file invalid.
        TaskRegistrationError: The persona lists an unknown agent task.
    """
    if not isinstance(settings, RuntimeSettings):
        settings = load_runtime_settings(settings)

    data_dir = Path(settings.persistence.data_dir)
    backup = settings.persistence.backups

    inference = inference or LiteLLMInference(settings.llm)
    tokenizer = tokenizer or LiteLLMTokenizer(settings.llm.model)
    retrieval = retrieval or build_retrieval(settings)
    summarizer = summarizer or LLMSessionSummarizer(inference)
    researcher = researcher or LLMResearcher(inference)

    memory = MemoryStore(
        bot.unique_name,
        settings.memory,
        retrieval=retrieval,
        repository=FileMemoryRepository(data_dir, backup=backup),
    )
    ledger = SessionLedger(
        bot.unique_name,
        settings.session,
        summarizer=summarizer,
        retrieval=retrieval,
        repository=FileSessionLogRepository(data_dir, backup=backup),
    )
    runtime = PersonaRuntime(
        bot,
        user,
        inference,
        tokenizer,
        memory,
        ledger,
        settings=settings,
        slot=slot,
        task_configs=FileTaskConfigStore(data_dir, backup=backup),
    )
    for task_id, factory in builtin_task_factories(researcher).items():
        runtime.scheduler.register_factory(task_id, factory)
    runtime.scheduler.enable_all(list(bot.agent_tasks))

    logger.info(
        "factory.runtime_built",
        persona=bot.unique_name,
        data_dir=str(data_dir),
        tasks=runtime.scheduler.task_ids,
        retrieval=retrieval.enabled,
    )
    return runtime
