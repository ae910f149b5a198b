"""
Atomic File I/O
===============

Async text read/write helpers shared by the file repositories.

Writes go to a temporary file in the target directory and are renamed over
the target, so a crash never leaves a half-written file behind. With
``backup=True`` the previous file is first rotated to ``<name>.bak``.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import aiofiles
import structlog

from chatmind.core.domain.errors import PersistenceError

logger = structlog.get_logger(__name__)


def backup_path(path: Path) -> Path:
    return path.with_name(path.name + ".bak")


async def atomic_write_text(path: Path, text: str, *, backup: bool = False) -> None:
    """Write ``text`` to ``path`` atomically.

    Raises:
        PersistenceError: Any file operation failed. The previous file (or
            its backup) is left in place.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_fd, temp_name = tempfile.mkstemp(
            dir=path.parent, suffix=".tmp", prefix=f".{path.name}."
        )
        os.close(temp_fd)
    except OSError as exc:
        raise PersistenceError(f"Cannot create {path}: {exc}", path=str(path)) from exc

    temp_path = Path(temp_name)
    try:
        async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
            await f.write(text)
        if backup and path.exists():
            os.replace(path, backup_path(path))
        os.replace(temp_path, path)
    except OSError as exc:
        if temp_path.exists():
            temp_path.unlink()
        raise PersistenceError(f"Cannot write {path}: {exc}", path=str(path)) from exc
    logger.debug("file_io.written", path=str(path), backup=backup)


async def read_text(path: Path) -> str | None:
    """Return the file contents, or None when it does not exist."""
    if not path.exists():
        return None
    async with aiofiles.open(path, encoding="utf-8") as f:
        return await f.read()
