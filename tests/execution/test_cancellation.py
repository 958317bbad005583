"""Tests for CancellationToken."""

import asyncio

import pytest

from coursegrab.execution.cancellation import CancellationToken


class TestCancellationToken:
    def test_initial_state(self):
        token = CancellationToken()
        assert not token.cancelled
        assert token.reason is None

    def test_cancel_is_idempotent_and_keeps_first_reason(self):
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")
        assert token.cancelled
        assert token.reason == "first"

    @pytest.mark.asyncio
    async def test_sleep_runs_full_duration_when_not_cancelled(self):
        token = CancellationToken()
        assert await token.sleep(0.01) is False

    @pytest.mark.asyncio
    async def test_sleep_wakes_early_on_cancel(self):
        token = CancellationToken()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, token.cancel)
        started = loop.time()
        assert await token.sleep(5.0) is True
        assert loop.time() - started < 1.0

    @pytest.mark.asyncio
    async def test_sleep_after_cancel_returns_immediately(self):
        token = CancellationToken()
        token.cancel()
        assert await token.sleep(5.0) is True

    @pytest.mark.asyncio
    async def test_zero_sleep_yields(self):
        token = CancellationToken()
        assert await token.sleep(0) is False

    @pytest.mark.asyncio
    async def test_wait(self):
        token = CancellationToken()
        waiter = asyncio.create_task(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()
        token.cancel()
        await asyncio.wait_for(waiter, 1.0)
