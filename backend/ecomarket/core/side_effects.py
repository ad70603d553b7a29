"""
Bounded dispatcher for best-effort side effects.

Notifications and background enrichment (environmental-savings estimates) are
enqueued here instead of being awaited by the request that triggered them.
A fixed pool of worker tasks drains the queue; each job gets its own timeout
so a slow collaborator cannot stall anything else.

Usage:
    dispatcher = SideEffectDispatcher(workers=2, max_queue=1000)
    await dispatcher.start()

    dispatcher.submit("notify", lambda: create_row(...), timeout=2.0)

    await dispatcher.drain()   # tests: wait until the queue is empty
    await dispatcher.stop()
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger()

JobFactory = Callable[[], Awaitable[Any]]


@dataclass
class _Job:
    name: str
    factory: JobFactory
    timeout: float
    context: dict[str, Any] = field(default_factory=dict)


@dataclass
class DispatcherStats:
    submitted: int = 0
    completed: int = 0
    failed: int = 0
    timed_out: int = 0
    dropped: int = 0


class SideEffectDispatcher:
    """
    Enqueue-don't-await executor for best-effort jobs.

    Jobs never propagate failures: errors and timeouts are logged and counted.
    When the queue is full the job is dropped with a warning.
    """

    def __init__(
        self,
        workers: int = 2,
        max_queue: int = 1000,
        default_timeout: float = 2.0,
    ):
        self.workers = max(1, workers)
        self.default_timeout = default_timeout
        self._queue: asyncio.Queue[_Job] = asyncio.Queue(maxsize=max_queue)
        self._tasks: list[asyncio.Task] = []
        self.stats = DispatcherStats()

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        """Spawn the worker pool. Calling twice is a no-op."""
        if self._tasks:
            return
        for index in range(self.workers):
            self._tasks.append(
                asyncio.create_task(self._worker(index), name=f"side-effects-{index}")
            )
        logger.info("side_effect_dispatcher_started", workers=self.workers)

    async def stop(self, drain_timeout: float = 5.0) -> None:
        """Let queued jobs finish (bounded by drain_timeout), then stop workers."""
        if not self._tasks:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "side_effect_dispatcher_drain_timeout",
                pending=self._queue.qsize(),
            )
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info(
            "side_effect_dispatcher_stopped",
            completed=self.stats.completed,
            failed=self.stats.failed,
            dropped=self.stats.dropped,
        )

    def submit(
        self,
        name: str,
        factory: JobFactory,
        timeout: Optional[float] = None,
    ) -> bool:
        """
        Enqueue a job without waiting for it.

        Args:
            name: Short job label used in logs
            factory: Zero-argument callable returning the coroutine to run
            timeout: Per-job timeout in seconds (defaults to default_timeout)

        Returns:
            True if the job was queued, False if it was dropped
        """
        job = _Job(
            name=name,
            factory=factory,
            timeout=timeout if timeout is not None else self.default_timeout,
            context=structlog.contextvars.get_contextvars(),
        )
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            self.stats.dropped += 1
            logger.warning("side_effect_dropped", job=name, reason="queue_full")
            return False
        self.stats.submitted += 1
        return True

    async def drain(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def _worker(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._run(job)
            finally:
                self._queue.task_done()

    async def _run(self, job: _Job) -> None:
        with structlog.contextvars.bound_contextvars(**job.context):
            try:
                await asyncio.wait_for(job.factory(), timeout=job.timeout)
            except asyncio.TimeoutError:
                self.stats.timed_out += 1
                logger.warning("side_effect_timeout", job=job.name, timeout=job.timeout)
            except Exception as e:
                self.stats.failed += 1
                logger.error(
                    "side_effect_failed",
                    job=job.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            else:
                self.stats.completed += 1
