import asyncio

import pytest
from unittest.mock import AsyncMock

from link_analyzer.core.models import LinkTask, PlatformTag
from link_analyzer.services.scheduler import SequentialWorkQueue


def task(n: int) -> LinkTask:
    return LinkTask(url=f"https://example.com/{n}", platform=PlatformTag.GENERIC, sender_id="me", chat_id="chat")


class TestSequentialWorkQueue:
    """FIFO order, single flight and failure isolation."""

    @pytest.mark.asyncio
    async def test_fifo_order(self):
        handled = []

        async def handler(t: LinkTask):
            handled.append(t.url)

        queue = SequentialWorkQueue(handler, inter_task_delay=0, sleep=AsyncMock())
        for n in range(3):
            queue.enqueue(task(n))

        await queue.drain()

        assert handled == [f"https://example.com/{n}" for n in range(3)]
        assert len(queue) == 0
        assert not queue.is_processing

    @pytest.mark.asyncio
    async def test_pause_after_each_task(self):
        sleep = AsyncMock()
        queue = SequentialWorkQueue(AsyncMock(), inter_task_delay=2.0, sleep=sleep)
        queue.enqueue(task(1))
        queue.enqueue(task(2))

        await queue.drain()

        assert sleep.await_count == 2
        sleep.assert_awaited_with(2.0)

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_the_queue(self):
        handled = []

        async def handler(t: LinkTask):
            handled.append(t.url)
            if t.url.endswith("/1"):
                raise RuntimeError("boom")

        queue = SequentialWorkQueue(handler, inter_task_delay=0, sleep=AsyncMock())
        for n in range(3):
            queue.enqueue(task(n))

        await queue.drain()

        assert len(handled) == 3
        assert not queue.is_processing

    @pytest.mark.asyncio
    async def test_single_flight(self):
        active = 0
        max_active = 0
        release = asyncio.Event()

        async def handler(t: LinkTask):
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            await release.wait()
            active -= 1

        queue = SequentialWorkQueue(handler, inter_task_delay=0)
        queue.enqueue(task(1))
        first = queue.start()
        await asyncio.sleep(0)

        # A second start while draining reuses the running drain
        queue.enqueue(task(2))
        assert queue.start() is first
        await queue.drain()

        release.set()
        await queue.join()

        assert max_active == 1
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_join_picks_up_late_tasks(self):
        handled = []

        async def handler(t: LinkTask):
            handled.append(t.url)

        queue = SequentialWorkQueue(handler, inter_task_delay=0)
        queue.enqueue(task(1))
        queue.start()
        await queue.join()

        queue.enqueue(task(2))
        queue.start()
        await queue.join()

        assert handled == ["https://example.com/1", "https://example.com/2"]
