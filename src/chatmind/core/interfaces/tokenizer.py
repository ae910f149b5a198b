"""Tokenizer Protocol.

The token count returned by the tokenizer is authoritative: the Context
Assembler counts each candidate text once and never re-estimates.
"""

from typing import Protocol


class TokenizerProtocol(Protocol):
    """Counts tokens exactly as the inference backend would."""

    def count(self, text: str) -> int:
        """Return the number of tokens in ``text``."""
        ...
