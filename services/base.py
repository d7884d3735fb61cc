"""
Shared lifecycle for long-lived bot services.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Coroutine
from typing import Any

from utils.errors import ServiceError
from utils.logging import get_logger
from utils.tasks import cancel_all, spawn


class BaseService(ABC):
    """
    A service that is initialized once, owns its background tasks and is
    shut down by the ``ServiceContainer``.

    Subclasses implement ``_initialize_impl`` and may override
    ``_shutdown_impl``. Tasks started through ``_spawn`` are cancelled after
    ``_shutdown_impl`` returns, so delayed cleanups never outlive the service.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.logger = get_logger(f"services.{name}")
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._background_tasks: set[asyncio.Task] = set()

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Run ``_initialize_impl`` once; concurrent callers wait for the first."""
        async with self._init_lock:
            if self._initialized:
                return
            try:
                await self._initialize_impl()
            except Exception as e:
                self.logger.exception(
                    "Failed to initialize %s service", self.name, exc_info=e
                )
                await cancel_all(self._background_tasks)
                raise
            self._initialized = True
            self.logger.info(f"{self.name} service ready")

    async def shutdown(self) -> None:
        if not self._initialized:
            return

        self._initialized = False
        try:
            await self._shutdown_impl()
        except Exception as e:
            self.logger.exception(
                "Error during %s service shutdown", self.name, exc_info=e
            )
        pending = len(self._background_tasks)
        await cancel_all(self._background_tasks)
        self.logger.info(
            f"{self.name} service stopped ({pending} background tasks cancelled)"
        )

    @abstractmethod
    async def _initialize_impl(self) -> None:
        """Load settings and start background work."""

    async def _shutdown_impl(self) -> None:
        """Release service-specific state before background tasks are cancelled."""

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        """Start a background task owned by this service."""
        return spawn(
            coro, name=f"{self.name}.{name}", registry=self._background_tasks
        )

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise ServiceError(f"{self.name} service is not initialized")

    async def health_check(self) -> dict[str, Any]:
        """Lifecycle state shared by every service; subclasses add their counters."""
        return {
            "service": self.name,
            "status": "healthy" if self._initialized else "not_initialized",
            "background_tasks": len(self._background_tasks),
        }
