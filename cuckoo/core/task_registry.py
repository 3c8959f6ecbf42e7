"""Live handles for pending one-shot tasks.

Maps task IDs to the cancellation token and timer task of each armed
DeferredTask. The registry holds no durable state; the task store is
the source of truth across restarts.
"""

import asyncio
import logging
from collections.abc import Iterator
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class TaskHandle:
    """Cancellation token and timer unit for one armed task."""

    token: asyncio.Event
    timer: asyncio.Task[None] | None = None

    def signal(self) -> None:
        self.token.set()


class TaskRegistry:
    """In-memory map from task ID to live handle.

    Entries are only created by DeferredScheduler when arming a freshly
    generated (or restored) ID and only removed by the firing unit or a
    cancel call. Whoever pops the handle owns the decision: a popped
    handle can never be popped twice.
    """

    def __init__(self) -> None:
        self._handles: dict[str, TaskHandle] = {}

    def register(self, task_id: str, handle: TaskHandle) -> None:
        """Register a live handle.

        Raises:
            ValueError: If a live handle already exists for task_id.
        """
        if task_id in self._handles:
            raise ValueError(f"Task {task_id} already has a live handle")
        self._handles[task_id] = handle

    def pop(self, task_id: str) -> TaskHandle | None:
        """Remove and return the handle for task_id, or None if absent."""
        return self._handles.pop(task_id, None)

    def get(self, task_id: str) -> TaskHandle | None:
        return self._handles.get(task_id)

    def drain(self) -> list[TaskHandle]:
        """Remove and return every live handle."""
        handles = list(self._handles.values())
        self._handles.clear()
        return handles

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._handles))
