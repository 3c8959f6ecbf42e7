"""Recurring state-diff polling of tracked external entities.

A StateDiffPoller holds a map of tracked entities, re-queries each one
on every poll cycle and notifies the entity's target when the upstream
status changes. Entities are dropped when they get too old, when their
raw status becomes terminal, or when they are explicitly untracked.

Locking discipline: the entity map is guarded by a single asyncio.Lock.
A cycle copies the entities under the lock, releases it for all upstream
lookups and deliveries, then re-acquires it per entity and re-validates
that the entity is still tracked before updating it.
"""

import asyncio
import logging
from collections.abc import Callable, Collection, Sequence
from datetime import datetime, timedelta, timezone

from .errors import NoDataError, UpstreamLookupError
from .models import (
    EntityKey,
    LiveContext,
    PollCycleResult,
    StatusReport,
    TrackedEntity,
)
from .ports import NotifierPort, PollablePort, StatusSourcePort, TrackingPort

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StateDiffPoller(PollablePort, TrackingPort):
    """Tracks external entities and reports their status transitions."""

    def __init__(
        self,
        source: StatusSourcePort,
        notifier: NotifierPort,
        tick_seconds: float,
        max_age: timedelta,
        terminal_statuses: Collection[str] = (),
        name: str = "state-diff",
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the poller.

        Args:
            source: StatusSourcePort queried once per identifier per cycle.
            notifier: NotifierPort used to announce status changes.
            tick_seconds: Interval the registry should poll at.
            max_age: Entities tracked for longer than this are evicted
                silently on the next cycle.
            terminal_statuses: Raw statuses that end tracking.
            name: Name used in operator logs.
            clock: Returns the current timezone-aware time.
        """
        if tick_seconds <= 0:
            raise ValueError("tick_seconds must be positive")
        if max_age <= timedelta(0):
            raise ValueError("max_age must be positive")

        self.source = source
        self.notifier = notifier
        self.max_age = max_age
        self.terminal_statuses = frozenset(terminal_statuses)
        self._tick_seconds = tick_seconds
        self._name = name
        self._clock = clock
        self._lock = asyncio.Lock()
        self._entities: dict[EntityKey, TrackedEntity] = {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def tick_seconds(self) -> float:
        return self._tick_seconds

    def normalize(self, external_id: str) -> str:
        """Canonical form of an external identifier."""
        return external_id.strip()

    def render(self, entity: TrackedEntity, report: StatusReport) -> str:
        """Notification text for a status change."""
        return f"{entity.external_id} update: {report.status}"

    def make_key(self, connection: str, target: str, external_id: str) -> EntityKey:
        """Build the composite key, normalizing the external identifier.

        Raises:
            ValueError: If the identifier is empty after normalization.
        """
        normalized = self.normalize(external_id)
        if not normalized:
            raise ValueError("external_id must be a non-empty string")
        return EntityKey(connection=connection, target=target, external_id=normalized)

    async def track(
        self, connection: str, target: str, external_id: str
    ) -> TrackedEntity:
        """Start tracking an entity; re-tracking resets its start time.

        Returns:
            A copy of the tracked entity.
        """
        key = self.make_key(connection, target, external_id)
        async with self._lock:
            entity = TrackedEntity(key=key, started_at=self._clock())
            self._entities[key] = entity
            snapshot = entity.copy()
        logger.info(f"Now tracking {key}")
        return snapshot

    async def untrack(self, connection: str, target: str, external_id: str) -> bool:
        """Stop tracking an entity.

        Returns:
            True if the entity was being tracked.
        """
        key = self.make_key(connection, target, external_id)
        async with self._lock:
            removed = self._entities.pop(key, None) is not None
        if removed:
            logger.info(f"Stopped tracking {key}")
        return removed

    async def get(self, key: EntityKey) -> TrackedEntity | None:
        async with self._lock:
            entity = self._entities.get(key)
            return entity.copy() if entity is not None else None

    async def tracked(
        self, connection: str | None = None, target: str | None = None
    ) -> list[TrackedEntity]:
        async with self._lock:
            entities = [
                entity.copy()
                for entity in self._entities.values()
                if (connection is None or entity.key.connection == connection)
                and (target is None or entity.key.target == target)
            ]
        return sorted(entities, key=lambda e: e.started_at)

    async def poll(self, contexts: Sequence[LiveContext]) -> PollCycleResult:
        """Run one check-and-notify cycle over all tracked entities.

        Without any live context nothing can be delivered, so the cycle
        is skipped entirely, eviction included.
        """
        now = self._clock()
        if not contexts:
            logger.debug(f"{self.name}: no live contexts, skipping poll")
            return PollCycleResult(
                entities_checked=0,
                lookups=0,
                notifications=0,
                evicted=0,
                completed=0,
                failures=0,
                timestamp=now,
            )

        snapshot, evicted = await self._snapshot(now)

        live = {ctx.connection: ctx for ctx in contexts}
        cache: dict[str, StatusReport | None] = {}
        lookups = notifications = completed = failures = 0

        for entity in snapshot:
            external_id = entity.external_id
            if external_id not in cache:
                lookups += 1
                report, failed = await self._lookup(external_id)
                cache[external_id] = report
                failures += failed

            report = cache[external_id]
            if report is None or not report.status:
                continue
            if report.status == entity.last_status:
                continue

            ctx = live.get(entity.key.connection)
            if ctx is None:
                logger.debug(
                    f"{self.name}: connection {entity.key.connection} not live, "
                    f"holding update for {entity.key}"
                )
                continue

            try:
                await self.notifier.deliver(
                    ctx.connection, entity.key.target, self.render(entity, report)
                )
                notifications += 1
            except Exception as e:
                logger.error(
                    f"Failed to notify {entity.key.target} about {external_id}: {e}",
                    exc_info=True,
                )

            if await self._apply(entity.key, report):
                completed += 1

        return PollCycleResult(
            entities_checked=len(snapshot),
            lookups=lookups,
            notifications=notifications,
            evicted=evicted,
            completed=completed,
            failures=failures,
            timestamp=now,
        )

    async def _snapshot(self, now: datetime) -> tuple[list[TrackedEntity], int]:
        """Copy live entities, evicting expired ones, under the lock."""
        snapshot: list[TrackedEntity] = []
        evicted = 0
        async with self._lock:
            for key, entity in list(self._entities.items()):
                if entity.age(now) > self.max_age:
                    del self._entities[key]
                    evicted += 1
                    logger.info(f"{self.name}: {key} expired after {self.max_age}")
                    continue
                snapshot.append(entity.copy())
        return snapshot, evicted

    async def _lookup(self, external_id: str) -> tuple[StatusReport | None, int]:
        """Query the source, returning (report or None, failure count)."""
        try:
            return await self.source.lookup(external_id), 0
        except NoDataError:
            logger.debug(f"{self.name}: no data for {external_id}")
            return None, 0
        except UpstreamLookupError as e:
            logger.error(f"Error getting status for {external_id}: {e}")
            return None, 1
        except Exception as e:
            logger.error(
                f"Unexpected error getting status for {external_id}: {e}",
                exc_info=True,
            )
            return None, 1

    async def _apply(self, key: EntityKey, report: StatusReport) -> bool:
        """Record a delivered update. Returns True if tracking ended."""
        async with self._lock:
            entity = self._entities.get(key)
            if entity is None:
                return False
            entity.last_status = report.status
            entity.last_raw_status = report.raw_status
            if report.raw_status in self.terminal_statuses:
                del self._entities[key]
                logger.info(
                    f"{self.name}: {key} reached {report.raw_status}, "
                    f"tracking finished"
                )
                return True
        return False


class FlightTracker(StateDiffPoller):
    """StateDiffPoller for airline flights.

    Flight numbers are compared upper-cased, and a flight stops being
    tracked once it has landed or been cancelled.
    """

    TERMINAL_STATUSES = frozenset({"landed", "cancelled"})

    def __init__(
        self,
        source: StatusSourcePort,
        notifier: NotifierPort,
        tick_seconds: float = 600.0,
        max_age: timedelta = timedelta(hours=24),
        terminal_statuses: Collection[str] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        super().__init__(
            source=source,
            notifier=notifier,
            tick_seconds=tick_seconds,
            max_age=max_age,
            terminal_statuses=(
                self.TERMINAL_STATUSES
                if terminal_statuses is None
                else terminal_statuses
            ),
            name="flights",
            clock=clock,
        )

    def normalize(self, external_id: str) -> str:
        return external_id.strip().upper()

    def render(self, entity: TrackedEntity, report: StatusReport) -> str:
        return f"Flight {entity.external_id} update: {report.status}"
