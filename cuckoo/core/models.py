"""Domain models for the Cuckoo scheduling core.

All models in this module use only Python standard library types,
ensuring zero external dependencies in the core domain.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta


@dataclass(frozen=True)
class Delivery:
    """A rendered message and where it must be sent.

    The connection identity names which live connection (server) the
    message goes out on; the target is the routing destination on it
    (a channel or a nick).
    """

    connection: str
    target: str
    text: str

    def __post_init__(self) -> None:
        """Validate delivery invariants on creation."""
        if not self.connection or not self.connection.strip():
            raise ValueError("connection must be a non-empty string")
        if not self.target or not self.target.strip():
            raise ValueError("target must be a non-empty string")


@dataclass(frozen=True)
class DeferredTask:
    """A one-shot delivery scheduled for a future instant.

    The durable record lives in the task store; the live cancellation
    handle lives in the TaskRegistry. Both are dropped when the task
    fires or is cancelled.
    """

    id: str  # UUID hex
    owner: str  # who asked for it, used for lookup-by-owner
    delivery: Delivery
    fire_at: datetime
    created_at: datetime

    def __post_init__(self) -> None:
        """Validate task invariants on creation or deserialization."""
        if not self.id:
            raise ValueError("id must be a non-empty string")
        if self.fire_at.tzinfo is None:
            raise ValueError("fire_at must be timezone-aware")
        if self.created_at.tzinfo is None:
            raise ValueError("created_at must be timezone-aware")

    def remaining(self, now: datetime) -> timedelta:
        """Time left until the task is due (negative when overdue)."""
        return self.fire_at - now

    def is_due(self, now: datetime) -> bool:
        return self.fire_at <= now


@dataclass(frozen=True)
class EntityKey:
    """Composite key of a tracked entity."""

    connection: str
    target: str
    external_id: str

    def __str__(self) -> str:
        return f"{self.connection}:{self.target}:{self.external_id}"


@dataclass
class TrackedEntity:
    """A unit of external state re-queried every poll cycle.

    Intentionally mutable: the poll cycle updates last_status and
    last_raw_status in place while holding the poller's lock.
    """

    key: EntityKey
    started_at: datetime
    last_status: str = ""
    last_raw_status: str = ""

    @property
    def external_id(self) -> str:
        return self.key.external_id

    def age(self, now: datetime) -> timedelta:
        return now - self.started_at

    def copy(self) -> "TrackedEntity":
        """Detached copy for callers outside the poller's lock."""
        return replace(self)


@dataclass(frozen=True)
class StatusReport:
    """What the upstream source said about an external identifier.

    status is the human-readable rendering that is compared between
    cycles; raw_status is the machine value used for terminal checks.
    """

    status: str
    raw_status: str


@dataclass(frozen=True)
class LiveContext:
    """A currently-active connection a notification can be sent on."""

    connection: str


@dataclass(frozen=True)
class PollCycleResult:
    """Summary of one poll cycle execution."""

    entities_checked: int
    lookups: int
    notifications: int
    evicted: int
    completed: int  # entities removed after reaching a terminal status
    failures: int
    timestamp: datetime


@dataclass(frozen=True)
class RestoreResult:
    """Summary of re-arming persisted tasks after a restart."""

    rearmed: int
    discarded: int
    delivered_late: int
    skipped: int = 0  # already armed in this process
