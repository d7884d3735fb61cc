"""
Task utilities for managing asyncio tasks and background operations.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

from utils.logging import get_logger

logger = get_logger(__name__)


def spawn(
    coro: Coroutine[Any, Any, Any],
    *,
    name: str | None = None,
    registry: set[asyncio.Task] | None = None,
) -> asyncio.Task[Any]:
    """
    Spawn a coroutine as a background task.

    The task's exception (if any) is logged when it finishes. When a
    ``registry`` set is given the task is kept in it until done so the caller
    can cancel outstanding work on shutdown.

    Args:
        coro: The coroutine to spawn as a task
        name: Optional task name used in logs
        registry: Optional set tracking live tasks

    Returns:
        The created asyncio task
    """
    task = asyncio.create_task(coro, name=name)
    if registry is not None:
        registry.add(task)
        task.add_done_callback(registry.discard)
    task.add_done_callback(_log_task_exception)
    return task


def _log_task_exception(task: asyncio.Task[Any]) -> None:
    """Log exceptions from completed tasks."""
    if task.cancelled():
        logger.debug("Task %s cancelled", task.get_name())
        return
    exc = task.exception()
    if exc:
        logger.error(
            "Task %s failed with exception", task.get_name(), exc_info=exc
        )


async def cancel_all(tasks: set[asyncio.Task]) -> None:
    """Cancel every task in ``tasks`` and wait for them to settle."""
    pending = list(tasks)
    for task in pending:
        task.cancel()
    for task in pending:
        try:
            await task
        except asyncio.CancelledError:
            continue
        except Exception as exc:  # pragma: no cover - logged by done callback
            logger.warning("Task %s raised during shutdown: %s", task.get_name(), exc)
    tasks.clear()
