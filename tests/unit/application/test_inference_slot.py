"""Tests for the InferenceSlot."""

from __future__ import annotations

import asyncio

import pytest

from chatmind.application.inference_slot import InferenceSlot


class TestInferenceSlot:
    async def test_acquire_is_exclusive(self) -> None:
        slot = InferenceSlot("aria")
        active = 0
        peak = 0

        async def worker() -> None:
            nonlocal active, peak
            async with slot.acquire():
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1

        await asyncio.gather(*(worker() for _ in range(4)))
        assert peak == 1
        assert not slot.is_busy

    async def test_holder_label(self) -> None:
        slot = InferenceSlot()
        async with slot.acquire("end_session"):
            assert slot.holder == "end_session"
        assert slot.holder is None

    async def test_try_acquire_when_busy(self) -> None:
        slot = InferenceSlot()
        async with slot.acquire():
            async with slot.try_acquire("research") as acquired:
                assert acquired is False
        async with slot.try_acquire("research") as acquired:
            assert acquired is True
            assert slot.holder == "research"
        assert not slot.is_busy

    async def test_try_acquire_with_timeout(self) -> None:
        slot = InferenceSlot()

        async def hold() -> None:
            async with slot.acquire():
                await asyncio.sleep(0.02)

        holder = asyncio.create_task(hold())
        await asyncio.sleep(0)
        async with slot.try_acquire(timeout=0.001) as acquired:
            assert acquired is False
        async with slot.try_acquire(timeout=1.0) as acquired:
            assert acquired is True
        await holder

    async def test_released_on_error(self) -> None:
        slot = InferenceSlot()
        with pytest.raises(RuntimeError):
            async with slot.acquire():
                raise RuntimeError("boom")
        assert not slot.is_busy

    async def test_released_on_cancel(self) -> None:
        slot = InferenceSlot()

        async def hold() -> None:
            async with slot.acquire():
                await asyncio.sleep(10)

        task = asyncio.create_task(hold())
        await asyncio.sleep(0.01)
        assert slot.is_busy
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert not slot.is_busy
