"""Domain-specific exception types for chatmind."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class ChatmindError(Exception):
    """Base exception for chatmind domain errors."""

    message: str
    code: str = "chatmind_error"
    details: Dict[str, Any] | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)
        if self.details is None:
            self.details = {}


class BudgetExhaustedError(ChatmindError):
    """The mandatory prompt parts do not fit the token budget."""

    def __init__(
        self,
        message: str,
        *,
        budget: int,
        required: int,
        details: Dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        details.setdefault("budget", budget)
        details.setdefault("required", required)
        self.budget = budget
        self.required = required
        super().__init__(message=message, code="budget_exhausted", details=details)


class CollaboratorError(ChatmindError):
    """An external collaborator (inference, embedding, search) failed."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "collaborator_error",
        details: Dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message=message, code=code, details=details)


class InferenceError(CollaboratorError):
    """Error raised for inference backend failures."""

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        super().__init__(message, code="inference_error", details=details)


class RetrievalError(CollaboratorError):
    """Error raised for embedding or similarity search failures."""

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        super().__init__(message, code="retrieval_error", details=details)


class SummarizationError(CollaboratorError):
    """Error raised when a session could not be summarized."""

    def __init__(
        self,
        message: str,
        *,
        session_id: str | None = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        if session_id:
            details.setdefault("session_id", session_id)
        self.session_id = session_id
        super().__init__(message, code="summarization_error", details=details)


class PersistenceError(ChatmindError):
    """Error raised when persisted state could not be written."""

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        if path:
            details.setdefault("path", path)
        self.path = path
        super().__init__(message=message, code="persistence_error", details=details)


class ConfigError(ChatmindError):
    """Error raised for configuration failures."""

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="config_error", details=details)


class TaskRegistrationError(ChatmindError):
    """Error raised when an agent task cannot be registered or created."""

    def __init__(
        self,
        message: str,
        *,
        task_id: str | None = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        if task_id:
            details.setdefault("task_id", task_id)
        self.task_id = task_id
        super().__init__(message=message, code="task_registration_error", details=details)
