"""Core domain logic for the Cuckoo scheduling system.

This package contains zero external dependencies and represents
the pure scheduling logic of the application. All adapters and
external integrations are handled by the adapters package.
"""

from .errors import (
    CuckooError,
    NoDataError,
    PastDeadlineError,
    PersistenceError,
    UpstreamLookupError,
)
from .models import (
    DeferredTask,
    Delivery,
    EntityKey,
    LiveContext,
    PollCycleResult,
    RestoreResult,
    StatusReport,
    TrackedEntity,
)

__all__ = [
    "CuckooError",
    "DeferredTask",
    "Delivery",
    "EntityKey",
    "LiveContext",
    "NoDataError",
    "PastDeadlineError",
    "PersistenceError",
    "PollCycleResult",
    "RestoreResult",
    "StatusReport",
    "TrackedEntity",
    "UpstreamLookupError",
]
