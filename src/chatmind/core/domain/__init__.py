"""
Domain Models and Business Logic

This package contains the core domain of the chatmind engine:
- Memory records and insertion policies
- Chat sessions and messages
- Persona variants and macro resolution
- Configuration schemas
- Context assembly and raw-log segmentation
"""

from chatmind.core.domain.memory import InsertionPolicy, MemoryCategory, MemoryRecord
from chatmind.core.domain.persona import Persona, PersonaGroup
from chatmind.core.domain.session import ChatSession, Message, MessageRole, SessionSummary

__all__ = [
    "InsertionPolicy",
    "MemoryCategory",
    "MemoryRecord",
    "Persona",
    "PersonaGroup",
    "ChatSession",
    "Message",
    "MessageRole",
    "SessionSummary",
]
