"""
Keyed event dispatcher.

Events that share a key (the guild id) are handled strictly in submission
order by one worker per key; different keys run in parallel, bounded by a
global semaphore. Nothing is handled until ``open()`` is called, which lets
startup reconciliation finish before live events are applied.
"""

import asyncio
from collections.abc import Awaitable, Callable, Hashable
from typing import Any

from utils.logging import get_logger

logger = get_logger(__name__)

Handler = Callable[[Any], Awaitable[Any]]

_STOP = object()


class KeyedDispatcher:
    """Per-key FIFO queues with bounded overall concurrency."""

    def __init__(self, handler: Handler, max_concurrency: int = 8) -> None:
        self._handler = handler
        self._semaphore = asyncio.Semaphore(max(1, int(max_concurrency)))
        self._queues: dict[Hashable, asyncio.Queue] = {}
        self._workers: dict[Hashable, asyncio.Task] = {}
        self._gate = asyncio.Event()
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._gate.is_set()

    def open(self) -> None:
        """Release the startup gate; queued events start flowing."""
        if not self._gate.is_set():
            logger.info(
                "Dispatcher opened with %d pending key(s)",
                sum(1 for q in self._queues.values() if not q.empty()),
            )
        self._gate.set()

    def submit(self, key: Hashable, event: Any) -> None:
        """Queue ``event`` behind every earlier event with the same key."""
        if self._closed:
            logger.warning("Dropping event submitted after stop: %r", event)
            return
        queue = self._queues.get(key)
        if queue is None:
            queue = self._queues[key] = asyncio.Queue()
        queue.put_nowait(event)
        worker = self._workers.get(key)
        if worker is None or worker.done():
            self._workers[key] = asyncio.create_task(
                self._worker(key, queue), name=f"dispatch_worker_{key}"
            )

    async def _worker(self, key: Hashable, queue: asyncio.Queue) -> None:
        await self._gate.wait()
        while True:
            event = await queue.get()
            try:
                if event is _STOP:
                    return
                async with self._semaphore:
                    await self._handler(event)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Error handling event for key %s: %r", key, event)
            finally:
                queue.task_done()

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        for queue in list(self._queues.values()):
            await queue.join()

    async def stop(self, timeout: float = 5.0) -> None:
        """Drain queued events (up to ``timeout``) and stop every worker."""
        self._closed = True
        self._gate.set()
        for queue in self._queues.values():
            queue.put_nowait(_STOP)
        workers = list(self._workers.values())
        if workers:
            _, pending = await asyncio.wait(workers, timeout=timeout)
            for task in pending:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
        self._workers.clear()
        self._queues.clear()
        logger.info("Dispatcher stopped")


__all__ = ["KeyedDispatcher"]
