"""Tests for the bounded task manager."""

from __future__ import annotations

import asyncio

import pytest

from coursegrab.core.errors import TaskNotFoundError, ValidationError
from coursegrab.execution.models import AttemptOutcome, TaskState
from coursegrab.execution.task_manager import BoundedTaskManager
from tests._support.adapters import wait_until


def gated(gate: asyncio.Event, result=True):
    async def work(handle):
        await gate.wait()
        return result
    return work


class TestConstruction:
    @pytest.mark.parametrize("value", [0, -1, 1.5, True, "3"])
    def test_rejects_bad_concurrency(self, value):
        with pytest.raises(ValidationError):
            BoundedTaskManager(max_concurrency=value)

    @pytest.mark.asyncio
    async def test_set_max_concurrency_rejects_zero(self):
        manager = BoundedTaskManager(2)
        with pytest.raises(ValidationError):
            manager.set_max_concurrency(0)
        assert manager.max_concurrency == 2


class TestAdmission:
    @pytest.mark.asyncio
    async def test_single_slot_queues_the_rest(self):
        manager = BoundedTaskManager(max_concurrency=1)
        gate = asyncio.Event()
        ids = [manager.submit(gated(gate), name=f"t{i}") for i in range(3)]

        stats = manager.stats()
        assert stats.active == 1
        assert stats.queued == 2
        assert manager.status(ids[0]).state is TaskState.RUNNING
        assert manager.status(ids[1]).state is TaskState.QUEUED

        gate.set()
        for task_id in ids:
            assert (await manager.wait(task_id, timeout=1)).state is TaskState.SUCCEEDED

    @pytest.mark.asyncio
    async def test_fifo_start_order(self):
        manager = BoundedTaskManager(max_concurrency=1)
        started = []

        def work_for(label):
            async def work(handle):
                started.append(label)
                await asyncio.sleep(0)
                return True
            return work

        ids = [manager.submit(work_for(label)) for label in "abc"]
        await manager.wait(ids[-1], timeout=1)
        assert started == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_growing_admits_queued_work(self):
        manager = BoundedTaskManager(max_concurrency=1)
        gate = asyncio.Event()
        ids = [manager.submit(gated(gate)) for _ in range(3)]

        manager.set_max_concurrency(3)
        assert manager.stats().active == 3
        assert all(manager.status(i).state is TaskState.RUNNING for i in ids)
        gate.set()
        await manager.wait(ids[-1], timeout=1)

    @pytest.mark.asyncio
    async def test_shrinking_does_not_preempt(self):
        manager = BoundedTaskManager(max_concurrency=2)
        gate = asyncio.Event()
        ids = [manager.submit(gated(gate)) for _ in range(3)]

        manager.set_max_concurrency(1)
        assert manager.stats().active == 2
        assert manager.status(ids[2]).state is TaskState.QUEUED
        gate.set()
        assert (await manager.wait(ids[2], timeout=1)).state is TaskState.SUCCEEDED


class TestOutcomes:
    @pytest.mark.asyncio
    async def test_false_result_fails(self):
        manager = BoundedTaskManager()
        task_id = manager.submit(_returns(False))
        assert (await manager.wait(task_id, timeout=1)).state is TaskState.FAILED

    @pytest.mark.asyncio
    async def test_result_is_kept(self):
        manager = BoundedTaskManager()
        task_id = manager.submit(_returns({"reserved": 2}))
        await manager.wait(task_id, timeout=1)
        assert manager.result(task_id) == {"reserved": 2}
        assert manager.status(task_id).state is TaskState.SUCCEEDED

    @pytest.mark.asyncio
    async def test_raising_work_fails_with_classified_outcome(self):
        manager = BoundedTaskManager()

        async def work(handle):
            raise ConnectionResetError("connection reset by peer")

        task_id = manager.submit(work)
        status = await manager.wait(task_id, timeout=1)
        assert status.state is TaskState.FAILED
        assert status.last_outcome is not None
        assert status.last_outcome.kind.value == "NETWORK_ERROR"
        assert manager.stats().active == 0

    @pytest.mark.asyncio
    async def test_record_attempt_updates_status(self):
        manager = BoundedTaskManager()
        gate = asyncio.Event()

        async def work(handle):
            handle.record_attempt(AttemptOutcome.failure("已满", 1, None))
            handle.record_attempt(AttemptOutcome.success("ok", 2))
            await gate.wait()
            return True

        task_id = manager.submit(work)
        await wait_until(lambda: manager.status(task_id).attempt_count == 2)
        status = manager.status(task_id)
        assert status.last_outcome.succeeded
        assert status.last_attempt_at is not None
        gate.set()
        await manager.wait(task_id, timeout=1)


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_queued_never_runs(self):
        manager = BoundedTaskManager(max_concurrency=1)
        gate = asyncio.Event()
        ran = []

        async def never(handle):
            ran.append(True)
            return True

        first = manager.submit(gated(gate))
        second = manager.submit(never)
        assert manager.cancel(second) is True
        assert manager.status(second).state is TaskState.STOPPED

        gate.set()
        await manager.wait(first, timeout=1)
        await asyncio.sleep(0)
        assert ran == []

    @pytest.mark.asyncio
    async def test_cancel_running_signals_token(self):
        manager = BoundedTaskManager()

        async def work(handle):
            await handle.token.wait()
            return True

        task_id = manager.submit(work)
        await asyncio.sleep(0)
        assert manager.cancel(task_id, reason="user") is True
        status = await manager.wait(task_id, timeout=1)
        assert status.state is TaskState.STOPPED

    @pytest.mark.asyncio
    async def test_cancel_finished_returns_false(self):
        manager = BoundedTaskManager()
        task_id = manager.submit(_returns(True))
        await manager.wait(task_id, timeout=1)
        assert manager.cancel(task_id) is False

    @pytest.mark.asyncio
    async def test_unknown_task(self):
        manager = BoundedTaskManager()
        with pytest.raises(TaskNotFoundError):
            manager.cancel("nope")
        with pytest.raises(TaskNotFoundError):
            manager.status("nope")


class TestHousekeeping:
    @pytest.mark.asyncio
    async def test_cleanup_keeps_most_recent(self):
        manager = BoundedTaskManager()
        ids = []
        for _ in range(4):
            ids.append(manager.submit(_returns(True)))
            await manager.wait(ids[-1], timeout=1)

        removed = manager.cleanup_finished(keep=1)
        assert removed == 3
        assert manager.status(ids[-1]).state is TaskState.SUCCEEDED
        with pytest.raises(TaskNotFoundError):
            manager.status(ids[0])

    @pytest.mark.asyncio
    async def test_retention_applied_on_finish(self):
        manager = BoundedTaskManager(retention=2)
        for _ in range(5):
            await manager.wait(manager.submit(_returns(True)), timeout=1)
        assert len(manager.list_tasks()) == 2

    @pytest.mark.asyncio
    async def test_list_tasks_filters_by_state(self):
        manager = BoundedTaskManager(max_concurrency=1)
        gate = asyncio.Event()
        manager.submit(gated(gate))
        manager.submit(gated(gate))
        assert len(manager.list_tasks(TaskState.QUEUED)) == 1
        assert len(manager.list_tasks()) == 2
        gate.set()
        await manager.shutdown(timeout=1)

    @pytest.mark.asyncio
    async def test_shutdown_stops_everything(self):
        manager = BoundedTaskManager(max_concurrency=1)

        async def forever(handle):
            await asyncio.Event().wait()

        running = manager.submit(forever)
        queued = manager.submit(forever)
        await manager.shutdown(timeout=0.1)

        assert manager.status(running).state is TaskState.STOPPED
        assert manager.status(queued).state is TaskState.STOPPED
        stats = manager.stats()
        assert stats.active == 0
        assert stats.stopped == 2
        assert stats.to_dict()["total"] == 2


def _returns(value):
    async def work(handle):
        return value
    return work
