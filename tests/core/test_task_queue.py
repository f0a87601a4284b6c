"""Unit tests for TaskQueue."""
import asyncio

import pytest

from genbot.core.exceptions import OverloadedError
from genbot.core.task_queue import Task, TaskQueue


def make_task(n: int) -> Task:
    return Task(session_key=n, message_id=n, text=f"prompt {n}")


class TestTaskQueue:

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            TaskQueue(0)

    @pytest.mark.asyncio
    async def test_full_queue_refuses(self):
        queue = TaskQueue(2)
        await queue.try_put(make_task(1))
        await queue.try_put(make_task(2))

        with pytest.raises(OverloadedError):
            await queue.try_put(make_task(3))

        assert queue.size() == 2
        assert queue.get_metrics().total_rejected == 1

    @pytest.mark.asyncio
    async def test_fifo_order(self):
        queue = TaskQueue(5)
        for n in range(3):
            await queue.try_put(make_task(n))

        received = [(await queue.get()).message_id for _ in range(3)]

        assert received == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_get_blocks_until_put(self):
        queue = TaskQueue(1)
        getter = asyncio.create_task(queue.get())
        await asyncio.sleep(0.01)
        assert not getter.done()

        await queue.try_put(make_task(7))
        task = await asyncio.wait_for(getter, 1)

        assert task.message_id == 7

    @pytest.mark.asyncio
    async def test_close_releases_waiting_workers(self):
        queue = TaskQueue(1)
        getters = [asyncio.create_task(queue.get()) for _ in range(3)]
        await asyncio.sleep(0.01)

        await queue.close()
        results = await asyncio.wait_for(asyncio.gather(*getters), 1)

        assert results == [None, None, None]

    @pytest.mark.asyncio
    async def test_closed_queue_refuses_and_drops_pending(self):
        queue = TaskQueue(3)
        await queue.try_put(make_task(1))

        assert await queue.close() == 1
        assert queue.closed
        with pytest.raises(OverloadedError):
            await queue.try_put(make_task(2))
        assert await queue.get() is None

    @pytest.mark.asyncio
    async def test_is_overloaded_threshold(self):
        queue = TaskQueue(10)
        for n in range(3):
            await queue.try_put(make_task(n))

        assert queue.is_overloaded(3)
        assert not queue.is_overloaded(4)
        assert not queue.is_overloaded()

    @pytest.mark.asyncio
    async def test_metrics(self):
        queue = TaskQueue(4)
        await queue.try_put(make_task(1))
        await queue.try_put(make_task(2))
        await queue.get()

        metrics = queue.get_metrics()
        assert metrics.queue_depth == 1
        assert metrics.capacity == 4
        assert metrics.total_enqueued == 2
        assert metrics.total_dequeued == 1
        assert metrics.avg_wait_time_ms >= 0
