"""File-backed memory repository using one YAML multi-document file per persona."""

from __future__ import annotations

from pathlib import Path

import structlog
import yaml

from chatmind.core.domain.memory import MemoryRecord
from chatmind.infrastructure.persistence.file_io import atomic_write_text, read_text

logger = structlog.get_logger(__name__)


class FileMemoryRepository:
    """Persist memory records as YAML documents separated by ``---``.

    Storage layout::

        {data_dir}/
        └── {owner}.memories.yaml

    Args:
        data_dir: Directory holding the persona files.
        backup: Rotate the previous file to ``.bak`` before each write.
    """

    def __init__(self, data_dir: str | Path = ".chatmind", *, backup: bool = True) -> None:
        self._dir = Path(data_dir)
        self._backup = backup

    def path_for(self, owner: str) -> Path:
        return self._dir / f"{owner}.memories.yaml"

    async def load(self, owner: str) -> list[MemoryRecord]:
        path = self.path_for(owner)
        try:
            text = await read_text(path)
            if text is None or not text.strip():
                return []
            docs = list(yaml.safe_load_all(text))
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
            logger.warning("memory_repository.load_failed", path=str(path), error=str(exc))
            return []

        records: list[MemoryRecord] = []
        for doc in docs:
            if not isinstance(doc, dict):
                continue
            try:
                records.append(MemoryRecord.from_dict(doc))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("memory_repository.record_skipped", path=str(path), error=str(exc))
        return records

    async def save(self, owner: str, records: list[MemoryRecord]) -> None:
        docs = [record.to_dict() for record in records]
        text = yaml.safe_dump_all(docs, sort_keys=False, allow_unicode=True)
        await atomic_write_text(self.path_for(owner), text, backup=self._backup)
        logger.debug("memory_repository.saved", owner=owner, count=len(records))
