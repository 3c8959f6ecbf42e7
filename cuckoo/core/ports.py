"""Port interfaces for the Cuckoo scheduling core.

These abstract base classes define the boundaries between core
domain logic and external adapters. Implementations live in the
adapters/ package.

Port Interface Categories:

1. **Driven Ports** (core calls out to adapters)
   - TaskStorePort: Persist pending one-shot tasks
   - NotifierPort: Deliver a rendered message to a target
   - StatusSourcePort: Query the upstream state of an external entity

2. **Driving Ports** (adapters/external systems call into core)
   - ReminderPort: Schedule and cancel one-shot deliveries
   - TrackingPort: Start and stop tracking external entities
   - PollablePort: Recurring task driven by the pollable registry
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime

from .models import (
    DeferredTask,
    Delivery,
    EntityKey,
    LiveContext,
    PollCycleResult,
    StatusReport,
    TrackedEntity,
)


# ============================================================================
# DRIVEN PORTS (Core calls out to adapters)
# ============================================================================


class TaskStorePort(ABC):
    """Port for durable storage of pending one-shot tasks.

    Implementations must wrap backend failures in PersistenceError so
    the scheduler can surface them to whoever asked for the task.
    """

    @abstractmethod
    async def insert(self, task: DeferredTask) -> None:
        """Persist a new task.

        Args:
            task: Task to persist. Its id is generated by the caller.

        Raises:
            PersistenceError: If the task could not be written.
        """

    @abstractmethod
    async def remove_by_id(self, task_id: str) -> bool:
        """Remove a task's durable record.

        Args:
            task_id: ID of the task to remove.

        Returns:
            True if a record was removed, False if none existed.

        Raises:
            PersistenceError: If the backend is unavailable.
        """

    @abstractmethod
    async def list_by_owner(self, owner: str) -> list[DeferredTask]:
        """Return pending tasks requested by an owner, soonest first.

        Raises:
            PersistenceError: If the backend is unavailable.
        """

    @abstractmethod
    async def list_all(self) -> list[DeferredTask]:
        """Return every pending task, soonest first.

        Used to re-arm timers after a restart.

        Raises:
            PersistenceError: If the backend is unavailable.
        """

    async def close(self) -> None:
        """Release backend resources. Default is a no-op."""


class NotifierPort(ABC):
    """Port for delivering a rendered message.

    Delivery is fire-and-forget from the core's point of view: the core
    logs failures and never retries them.
    """

    @abstractmethod
    async def deliver(self, connection: str, target: str, text: str) -> None:
        """Send text to target on the given connection.

        Raises:
            Exception: If the transport is unavailable.
        """


class StatusSourcePort(ABC):
    """Port for querying the current state of an external entity."""

    @abstractmethod
    async def lookup(self, external_id: str) -> StatusReport:
        """Look up an external identifier.

        Implementations try their secondary identifier form once when
        the primary form has no match.

        Raises:
            NoDataError: If no identifier form matched.
            UpstreamLookupError: If the upstream could not be queried.
        """


# ============================================================================
# DRIVING PORTS (Adapters/external systems call into core)
# ============================================================================


class ReminderPort(ABC):
    """Port for scheduling one-shot deliveries.

    Implemented in the core by DeferredScheduler.
    """

    @abstractmethod
    async def schedule(
        self, delivery: Delivery, fire_at: datetime, owner: str = ""
    ) -> str:
        """Schedule delivery for fire_at and return the new task ID.

        Raises:
            PastDeadlineError: If fire_at is not strictly in the future.
            PersistenceError: If the task could not be recorded.
        """

    @abstractmethod
    def cancel(self, task_id: str) -> bool:
        """Stop a pending task's timer. Does not touch the store.

        Returns:
            True if a live timer was stopped, False otherwise.
        """

    @abstractmethod
    async def forget(self, task_id: str) -> bool:
        """Cancel a task and remove its durable record.

        Raises:
            PersistenceError: If the record could not be removed.
        """

    @abstractmethod
    async def pending_for(self, owner: str) -> list[DeferredTask]:
        """List the pending tasks an owner has requested.

        Raises:
            PersistenceError: If the store is unavailable.
        """


class TrackingPort(ABC):
    """Port for managing the set of tracked external entities."""

    @abstractmethod
    async def track(
        self, connection: str, target: str, external_id: str
    ) -> TrackedEntity:
        """Start (or restart) tracking an entity for a target."""

    @abstractmethod
    async def untrack(self, connection: str, target: str, external_id: str) -> bool:
        """Stop tracking an entity. Returns whether it was tracked."""

    @abstractmethod
    async def get(self, key: EntityKey) -> TrackedEntity | None:
        """Return a copy of a tracked entity, or None."""

    @abstractmethod
    async def tracked(
        self, connection: str | None = None, target: str | None = None
    ) -> list[TrackedEntity]:
        """Return copies of tracked entities, optionally filtered."""


class PollablePort(ABC):
    """A recurring task driven by the pollable registry.

    The registry calls start() on registration, poll() once per tick and
    stop() on shutdown. poll() is never invoked concurrently with itself.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Name used in operator logs."""

    @property
    @abstractmethod
    def tick_seconds(self) -> float:
        """Fixed interval between poll cycles."""

    def start(self) -> None:
        """Hook invoked at registration. Default is a no-op."""

    def stop(self) -> None:
        """Hook invoked at shutdown. Default is a no-op."""

    @abstractmethod
    async def poll(self, contexts: Sequence[LiveContext]) -> PollCycleResult:
        """Execute one poll cycle against the given live contexts.

        Should handle per-entity errors gracefully and only raise for
        failures that make the whole cycle meaningless.
        """
