"""Task tracking service for freight-watch."""

import asyncio
from functools import partial
import logging
from typing import Any, Coroutine
from abc import ABC, abstractmethod

_LOGGER = logging.getLogger(__name__)

__all__: list[str] = []


class TaskService(ABC):
    """Service for tracking and waiting for asynchronous tasks."""

    @abstractmethod
    def create_task(
        self, coro: Coroutine[None, None, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create and track a short lived task, such as a refetch."""

    @abstractmethod
    def create_background_task(
        self, coro: Coroutine[None, None, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create and track a long running task, such as a stream consumer.

        Background tasks are not waited on by `block_till_done`.
        """

    @abstractmethod
    async def block_till_done(self) -> None:
        """Wait for all short lived tasks, including ones created while waiting."""

    @abstractmethod
    def get_num_active_tasks(self) -> int:
        """Get the number of active short lived tasks."""


class TaskServiceImpl(TaskService):
    """Task service backed by the running event loop."""

    def __init__(self) -> None:
        """Initialize the task service."""
        self._active_tasks: set[asyncio.Task[Any]] = set()
        self._background_tasks: set[asyncio.Task[Any]] = set()

    def create_task(
        self, coro: Coroutine[None, None, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        return self._track(self._active_tasks, coro, name)

    def create_background_task(
        self, coro: Coroutine[None, None, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        return self._track(self._background_tasks, coro, name)

    def _track(
        self,
        task_set: set[asyncio.Task[Any]],
        coro: Coroutine[None, None, Any],
        name: str | None,
    ) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        task_set.add(task)
        task.add_done_callback(partial(self._task_done, task_set))
        return task

    def _task_done(
        self, task_set: set[asyncio.Task[Any]], task: asyncio.Task[Any]
    ) -> None:
        task_set.discard(task)
        if task.cancelled():
            _LOGGER.debug("Task %s cancelled", task.get_name())
            return
        if (err := task.exception()) is not None:
            _LOGGER.debug("Task %s failed: %s", task.get_name(), err)

    async def block_till_done(self) -> None:
        while self._active_tasks:
            active_tasks = list(self._active_tasks)
            _LOGGER.debug("Waiting for %d tasks to complete", len(active_tasks))
            await asyncio.gather(*active_tasks, return_exceptions=True)
        await asyncio.sleep(0)

    def get_num_active_tasks(self) -> int:
        return len(self._active_tasks)
