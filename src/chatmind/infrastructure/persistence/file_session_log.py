"""File-backed session log repository (JSON, one file per persona)."""

from __future__ import annotations

import json
from pathlib import Path

import structlog

from chatmind.core.domain.session import ChatSession
from chatmind.infrastructure.persistence.file_io import atomic_write_text, read_text

logger = structlog.get_logger(__name__)


class FileSessionLogRepository:
    """Persist chat sessions as ``{data_dir}/{owner}.sessions.json``.

    The file holds ``{"sessions": [...]}`` in ledger order.
    """

    def __init__(self, data_dir: str | Path = ".chatmind", *, backup: bool = True) -> None:
        self._dir = Path(data_dir)
        self._backup = backup

    def path_for(self, owner: str) -> Path:
        return self._dir / f"{owner}.sessions.json"

    async def load(self, owner: str) -> list[ChatSession]:
        path = self.path_for(owner)
        try:
            raw = await read_text(path)
            if raw is None or not raw.strip():
                return []
            data = json.loads(raw)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("session_log.load_failed", path=str(path), error=str(exc))
            return []

        items = data.get("sessions", []) if isinstance(data, dict) else []
        sessions: list[ChatSession] = []
        for item in items:
            try:
                sessions.append(ChatSession.from_dict(item))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("session_log.session_skipped", path=str(path), error=str(exc))
        return sessions

    async def save(self, owner: str, sessions: list[ChatSession]) -> None:
        data = json.dumps(
            {"owner": owner, "sessions": [s.to_dict() for s in sessions]},
            indent=2,
            ensure_ascii=False,
        )
        await atomic_write_text(self.path_for(owner), data, backup=self._backup)
        logger.debug("session_log.saved", owner=owner, sessions=len(sessions))
