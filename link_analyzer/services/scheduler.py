"""Single-flight FIFO queue for link tasks."""

import asyncio
from collections import deque
from typing import Awaitable, Callable, Deque, Optional

from link_analyzer.core.config import settings
from link_analyzer.core.logging import get_logger
from link_analyzer.core.models import LinkTask

logger = get_logger(__name__)

TaskHandler = Callable[[LinkTask], Awaitable[object]]
Sleep = Callable[[float], Awaitable[None]]


class SequentialWorkQueue:
    """Runs one task at a time, in arrival order, pausing between tasks.

    Failures are logged and never stop the drain loop.
    """

    def __init__(
        self,
        handler: TaskHandler,
        inter_task_delay: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.handler = handler
        self.inter_task_delay = settings.queue_delay_seconds if inter_task_delay is None else inter_task_delay
        self._sleep = sleep
        self._pending: Deque[LinkTask] = deque()
        self._processing = False
        self._drain_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def is_processing(self) -> bool:
        return self._processing

    def enqueue(self, task: LinkTask) -> None:
        self._pending.append(task)
        logger.info(f"Added to queue: {task.url}", queue_size=len(self._pending))

    async def drain(self) -> None:
        """Process tasks until the queue is empty. No-op if already draining."""
        if self._processing:
            return

        self._processing = True
        try:
            while self._pending:
                task = self._pending.popleft()
                logger.info(f"Processing: {task.url}", remaining=len(self._pending))

                try:
                    await self.handler(task)
                except Exception as e:
                    logger.error(f"Unhandled error processing {task.url}: {e}", exc_info=True)

                await self._sleep(self.inter_task_delay)
        finally:
            self._processing = False

    def start(self) -> Optional[asyncio.Task]:
        """Schedule a drain unless one is already in flight."""
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.create_task(self.drain())
        return self._drain_task

    async def join(self) -> None:
        """Wait until every queued task has been handled."""
        while self._drain_task is not None and not self._drain_task.done():
            await self._drain_task
            # Tasks enqueued after the loop saw an empty deque
            if self._pending:
                self.start()
