"""Tests for the asyncio timer scheduler."""

from __future__ import annotations

import asyncio
import logging

import pytest

from pysolarmodbus.host import AsyncioScheduler


class TestAsyncioScheduler:
    """Tests for AsyncioScheduler."""

    @pytest.mark.asyncio
    async def test_runs_callback_once(self) -> None:
        """Test that a timer fires its coroutine once."""
        scheduler = AsyncioScheduler()
        calls: list[str] = []

        async def callback() -> None:
            calls.append("fired")

        scheduler.call_later(0, callback)
        await asyncio.sleep(0.05)
        await scheduler.shutdown()

        assert calls == ["fired"]

    @pytest.mark.asyncio
    async def test_cancel_before_firing(self) -> None:
        """Test that a cancelled timer never runs."""
        scheduler = AsyncioScheduler()
        calls: list[str] = []

        async def callback() -> None:
            calls.append("fired")

        handle = scheduler.call_later(0.01, callback)
        scheduler.cancel(handle)
        await asyncio.sleep(0.05)

        assert calls == []

    @pytest.mark.asyncio
    async def test_cancel_does_not_interrupt_running_callback(self) -> None:
        """Test that cancelling after the timer fired lets the callback finish."""
        scheduler = AsyncioScheduler()
        started = asyncio.Event()
        release = asyncio.Event()
        calls: list[str] = []

        async def callback() -> None:
            started.set()
            await release.wait()
            calls.append("done")

        handle = scheduler.call_later(0, callback)
        await started.wait()
        scheduler.cancel(handle)
        release.set()
        await scheduler.shutdown()

        assert calls == ["done"]

    @pytest.mark.asyncio
    async def test_failing_callback_is_logged(self, caplog) -> None:
        """Test that an exception in a timer callback is logged."""
        scheduler = AsyncioScheduler()

        async def callback() -> None:
            raise RuntimeError("boom")

        with caplog.at_level(logging.ERROR, logger="pysolarmodbus.host"):
            scheduler.call_later(0, callback)
            await asyncio.sleep(0.05)
            await scheduler.shutdown()

        assert "Timer callback failed: boom" in caplog.text
