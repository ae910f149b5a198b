"""
Core Protocol Interfaces

Contracts for every collaborator the engine talks to: inference, tokenizer,
retrieval, session summarizer, persistence repositories and agent tasks.
Application services depend on these protocols only.
"""

from chatmind.core.interfaces.agent_task import AgentTaskProtocol
from chatmind.core.interfaces.llm import GenerationParams, InferenceProtocol
from chatmind.core.interfaces.persistence import (
    MemoryRepositoryProtocol,
    SessionLogRepositoryProtocol,
    TaskConfigRepositoryProtocol,
)
from chatmind.core.interfaces.research import ResearcherProtocol
from chatmind.core.interfaces.retrieval import RetrievalProtocol, SearchHit
from chatmind.core.interfaces.summarizer import SessionSummarizerProtocol
from chatmind.core.interfaces.tokenizer import TokenizerProtocol

__all__ = [
    "AgentTaskProtocol",
    "GenerationParams",
    "InferenceProtocol",
    "MemoryRepositoryProtocol",
    "SessionLogRepositoryProtocol",
    "TaskConfigRepositoryProtocol",
    "ResearcherProtocol",
    "RetrievalProtocol",
    "SearchHit",
    "SessionSummarizerProtocol",
    "TokenizerProtocol",
]
