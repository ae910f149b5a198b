"""File-based store for agent task configurations."""

from __future__ import annotations

import json
from pathlib import Path

import structlog

from chatmind.core.domain.task_config import TaskConfig
from chatmind.infrastructure.persistence.file_io import atomic_write_text, read_text

logger = structlog.get_logger(__name__)


class FileTaskConfigStore:
    """Persist task configs as ``{data_dir}/{owner}.agent.json``."""

    def __init__(self, data_dir: str | Path = ".chatmind", *, backup: bool = True) -> None:
        self._dir = Path(data_dir)
        self._backup = backup

    def path_for(self, owner: str) -> Path:
        return self._dir / f"{owner}.agent.json"

    async def load(self, owner: str) -> dict[str, TaskConfig]:
        path = self.path_for(owner)
        try:
            raw = await read_text(path)
            if raw is None or not raw.strip():
                return {}
            data = json.loads(raw)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("task_config_store.load_failed", path=str(path), error=str(exc))
            return {}

        configs: dict[str, TaskConfig] = {}
        for item in data.get("tasks", []) if isinstance(data, dict) else []:
            try:
                config = TaskConfig.from_dict(item)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("task_config_store.config_skipped", path=str(path), error=str(exc))
                continue
            configs[config.task_id] = config
        return configs

    async def save(self, owner: str, configs: dict[str, TaskConfig]) -> None:
        data = json.dumps(
            {"owner": owner, "tasks": [c.to_dict() for c in configs.values()]},
            indent=2,
            default=str,
        )
        await atomic_write_text(self.path_for(owner), data, backup=self._backup)
        logger.debug("task_config_store.saved", owner=owner, count=len(configs))
