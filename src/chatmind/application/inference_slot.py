"""Single-flight guard for model inference shared by foreground and background."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog

logger = structlog.get_logger(__name__)


class InferenceSlot:
    """Mutual-exclusion slot around model calls for one persona.

    The foreground pipeline waits for the slot; background tasks should use
    ``try_acquire`` or check ``is_busy`` so they never queue behind the user.
    The slot is released on completion, failure and cancellation alike.
    """

    def __init__(self, name: str = "") -> None:
        self._lock = asyncio.Lock()
        self._name = name
        self._holder: str | None = None

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    @property
    def holder(self) -> str | None:
        """Label passed by the current owner, for logging."""
        return self._holder

    @asynccontextmanager
    async def acquire(self, holder: str = "foreground") -> AsyncIterator[None]:
        """Wait for the slot and hold it for the duration of the block."""
        await self._lock.acquire()
        self._holder = holder
        try:
            yield
        finally:
            self._holder = None
            self._lock.release()

    @asynccontextmanager
    async def try_acquire(
        self, holder: str = "background", timeout: float = 0.0
    ) -> AsyncIterator[bool]:
        """Acquire the slot within ``timeout`` seconds.

        Yields True when the slot is held for the block, False otherwise.
        The caller must skip its model call on False.
        """
        acquired = False
        if timeout <= 0:
            if not self._lock.locked():
                await self._lock.acquire()
                acquired = True
        else:
            try:
                await asyncio.wait_for(self._lock.acquire(), timeout=timeout)
                acquired = True
            except TimeoutError:
                acquired = False
        if not acquired:
            logger.debug(
                "inference_slot.busy", slot=self._name, requested_by=holder, holder=self._holder
            )
        else:
            self._holder = holder
        try:
            yield acquired
        finally:
            if acquired:
                self._holder = None
                self._lock.release()
