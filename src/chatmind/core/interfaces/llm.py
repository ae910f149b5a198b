"""
Inference Protocol

Boundary to the text-generation collaborator. The runtime hands it the
ordered ``{"role", "content"}`` messages produced by the Context Assembler
plus generation parameters; wire formats are the adapter's concern.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass
class GenerationParams:
    """Sampling parameters for one model call."""

    max_tokens: int = 512
    temperature: float = 0.7
    stop: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)


class InferenceProtocol(Protocol):
    """Generates replies from an ordered message list."""

    async def complete(
        self, messages: list[dict[str, str]], params: GenerationParams
    ) -> str:
        """Generate a full reply.

        Raises:
            InferenceError: The backend was unreachable or returned an error.
        """
        ...

    def stream(
        self, messages: list[dict[str, str]], params: GenerationParams
    ) -> AsyncIterator[str]:
        """Yield reply fragments as they arrive; exhaustion marks the end.

        Raises:
            InferenceError: The backend was unreachable or returned an error.
        """
        ...
