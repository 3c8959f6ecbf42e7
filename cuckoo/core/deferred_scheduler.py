"""One-shot deferred delivery.

DeferredScheduler records a delivery in the task store, arms an asyncio
timer for it and delivers it exactly once when the timer expires, unless
the task is cancelled first.

Each armed task owns a TaskHandle in the TaskRegistry. The timer unit
waits for the earlier of its deadline or its cancellation token, then
claims the handle by popping it. Cancel claims it the same way, so the
pop decides whether delivery happens: exactly one side ever gets the
handle.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import TypeVar

from .errors import PastDeadlineError, PersistenceError
from .models import DeferredTask, Delivery, RestoreResult
from .ports import NotifierPort, ReminderPort, TaskStorePort
from .task_registry import TaskHandle, TaskRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeferredScheduler(ReminderPort):
    """Schedules one-shot deliveries with at-most-once firing.

    Delivery then retirement: when a timer fires the notifier is called
    before the durable record is removed, so a crash in between can
    redeliver after restore() on the next start.
    """

    def __init__(
        self,
        store: TaskStorePort,
        notifier: NotifierPort,
        registry: TaskRegistry | None = None,
        deliver_overdue: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the scheduler.

        Args:
            store: TaskStorePort implementation for durable records.
            notifier: NotifierPort implementation used when a task fires.
            registry: TaskRegistry holding live handles (a fresh one if None).
            deliver_overdue: What restore() does with tasks whose deadline
                passed while the process was down. False discards them,
                True delivers them immediately.
            clock: Returns the current timezone-aware time.
        """
        self.store = store
        self.notifier = notifier
        self.registry = registry if registry is not None else TaskRegistry()
        self.deliver_overdue = deliver_overdue
        self._clock = clock
        self._timers: set[asyncio.Task[None]] = set()
        self._firing: set[str] = set()

    @property
    def live_count(self) -> int:
        """Number of tasks with an armed timer."""
        return len(self.registry)

    def is_armed(self, task_id: str) -> bool:
        return task_id in self.registry

    async def schedule(
        self, delivery: Delivery, fire_at: datetime, owner: str = ""
    ) -> str:
        """Persist a delivery and arm its timer.

        Args:
            delivery: What to send, and where.
            fire_at: Timezone-aware instant to send it at.
            owner: Who requested it, for pending_for().

        Returns:
            The new task ID.

        Raises:
            ValueError: If fire_at is naive.
            PastDeadlineError: If fire_at is not strictly in the future.
                Nothing is persisted and no timer is started.
            PersistenceError: If the store rejected the task. No timer
                is started.
        """
        if fire_at.tzinfo is None:
            raise ValueError("fire_at must be timezone-aware")

        now = self._clock()
        if fire_at <= now:
            raise PastDeadlineError(fire_at, now)

        task = DeferredTask(
            id=uuid.uuid4().hex,
            owner=owner,
            delivery=delivery,
            fire_at=fire_at,
            created_at=now,
        )
        await self._persist("insert", lambda: self.store.insert(task))
        self._arm(task)

        logger.info(
            f"Scheduled task {task.id} for {task.fire_at.isoformat()} "
            f"({task.remaining(now).total_seconds():.0f}s from now)",
            extra={"task_id": task.id, "owner": owner},
        )
        return task.id

    def cancel(self, task_id: str) -> bool:
        """Stop a task's timer without touching its durable record.

        Returns:
            True if a live handle was found and signalled. False if the
            task never existed, already fired or was already cancelled.
        """
        handle = self.registry.pop(task_id)
        if handle is None:
            return False
        handle.signal()
        logger.info(f"Cancelled task {task_id}")
        return True

    async def forget(self, task_id: str) -> bool:
        """Cancel a task, then remove its durable record.

        A task that is being delivered right now cannot be forgotten: its
        record is still removed, but the call reports False.

        Returns:
            True if a live handle or a durable record existed and the
            task was not already firing.

        Raises:
            PersistenceError: If the record could not be removed. The
                timer has already been stopped at that point.
        """
        cancelled = self.cancel(task_id)
        firing = task_id in self._firing
        removed = await self._persist(
            "remove", lambda: self.store.remove_by_id(task_id)
        )
        if firing:
            logger.info(f"Task {task_id} is already being delivered")
            return False
        return cancelled or removed

    async def pending_for(self, owner: str) -> list[DeferredTask]:
        """Return the owner's pending tasks, soonest first.

        Raises:
            PersistenceError: If the store is unavailable.
        """
        tasks = await self._persist("list", lambda: self.store.list_by_owner(owner))
        return sorted(tasks, key=lambda t: t.fire_at)

    async def restore(self) -> RestoreResult:
        """Re-arm persisted tasks after a restart.

        Future tasks get a timer again. Overdue tasks are either discarded
        or delivered immediately, depending on deliver_overdue. Tasks that
        already have a live handle in this process are left alone, so
        calling restore() twice is harmless.

        Raises:
            PersistenceError: If the store could not be listed.
        """
        tasks = await self._persist("list", self.store.list_all)
        now = self._clock()

        rearmed = discarded = delivered_late = skipped = 0
        for task in tasks:
            if task.id in self.registry:
                skipped += 1
                continue

            if not task.is_due(now):
                self._arm(task)
                rearmed += 1
            elif self.deliver_overdue:
                logger.info(
                    f"Delivering task {task.id} late "
                    f"(was due {task.fire_at.isoformat()})"
                )
                await self._fire(task)
                delivered_late += 1
            else:
                logger.warning(
                    f"Discarding task {task.id}: deadline "
                    f"{task.fire_at.isoformat()} passed while offline"
                )
                await self._retire(task)
                discarded += 1

        result = RestoreResult(
            rearmed=rearmed,
            discarded=discarded,
            delivered_late=delivered_late,
            skipped=skipped,
        )
        logger.info(
            f"Restored {rearmed} tasks ({discarded} discarded, "
            f"{delivered_late} delivered late, {skipped} already armed)"
        )
        return result

    async def shutdown(self) -> None:
        """Stop every armed timer, keeping durable records for restore().

        Timers that already claimed their handle finish delivering.
        """
        handles = self.registry.drain()
        for handle in handles:
            handle.signal()
        if self._timers:
            await asyncio.gather(*self._timers, return_exceptions=True)
        if handles:
            logger.info(f"Stopped {len(handles)} pending timers")

    def _arm(self, task: DeferredTask) -> None:
        """Register a handle for task and start its timer unit."""
        handle = TaskHandle(token=asyncio.Event())
        self.registry.register(task.id, handle)
        timer = asyncio.create_task(
            self._run_timer(task, handle), name=f"deferred-{task.id}"
        )
        handle.timer = timer
        self._timers.add(timer)
        timer.add_done_callback(self._timers.discard)

    async def _run_timer(self, task: DeferredTask, handle: TaskHandle) -> None:
        delay = max(0.0, task.remaining(self._clock()).total_seconds())
        try:
            await asyncio.wait_for(handle.token.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
        else:
            logger.debug(f"Timer for task {task.id} stopped before firing")
            return

        # Claim the handle; if cancel() got there first the task is dead.
        if self.registry.get(task.id) is not handle:
            logger.debug(f"Task {task.id} was cancelled as it fired")
            return
        self.registry.pop(task.id)

        await self._fire(task)

    async def _fire(self, task: DeferredTask) -> None:
        """Deliver, then retire the durable record."""
        delivery = task.delivery
        self._firing.add(task.id)
        try:
            try:
                await self.notifier.deliver(
                    delivery.connection, delivery.target, delivery.text
                )
                logger.info(
                    f"Delivered task {task.id} to {delivery.target} "
                    f"on {delivery.connection}"
                )
            except Exception as e:
                logger.error(f"Failed to deliver task {task.id}: {e}", exc_info=True)

            await self._retire(task)
        finally:
            self._firing.discard(task.id)

    async def _retire(self, task: DeferredTask) -> None:
        try:
            await self._persist("remove", lambda: self.store.remove_by_id(task.id))
        except PersistenceError as e:
            logger.error(f"Failure removing task {task.id}: {e}")

    @staticmethod
    async def _persist(operation: str, call: Callable[[], Awaitable[T]]) -> T:
        """Run a store call, surfacing any failure as PersistenceError."""
        try:
            return await call()
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(
                f"Task store {operation} failed: {e}", operation=operation
            ) from e
