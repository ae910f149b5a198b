"""LLM collaborator implementations."""

from chatmind.infrastructure.llm.litellm_inference import (
    LiteLLMEmbedder,
    LiteLLMInference,
    LiteLLMTokenizer,
)
from chatmind.infrastructure.llm.llm_researcher import LLMResearcher
from chatmind.infrastructure.llm.session_summarizer import LLMSessionSummarizer

__all__ = [
    "LiteLLMEmbedder",
    "LiteLLMInference",
    "LiteLLMTokenizer",
    "LLMResearcher",
    "LLMSessionSummarizer",
]
