"""Memory, session log and task config persistence implementations."""

from chatmind.infrastructure.persistence.file_memory_repository import FileMemoryRepository
from chatmind.infrastructure.persistence.file_session_log import FileSessionLogRepository
from chatmind.infrastructure.persistence.file_task_config_store import FileTaskConfigStore

__all__ = ["FileMemoryRepository", "FileSessionLogRepository", "FileTaskConfigStore"]
