"""Exception hierarchy for the Cuckoo scheduling core.

Adapters translate library-specific failures (aiosqlite, asyncpg, httpx)
into these types at the port boundary so the core never has to know
which backend raised.
"""

from datetime import datetime


class CuckooError(Exception):
    """Base exception for all Cuckoo errors."""


class PastDeadlineError(CuckooError):
    """A one-shot task was scheduled for a time that is not in the future."""

    def __init__(self, fire_at: datetime, now: datetime) -> None:
        self.fire_at = fire_at
        self.now = now
        super().__init__(f"Time {fire_at.isoformat()} is in the past.")


class PersistenceError(CuckooError):
    """A task store operation failed."""

    def __init__(self, message: str, *, operation: str = "") -> None:
        self.operation = operation
        super().__init__(message)


class UpstreamLookupError(CuckooError):
    """The upstream status source could not be queried.

    Transient: the poller logs it and retries the identifier next cycle.
    """

    def __init__(
        self,
        message: str,
        *,
        external_id: str = "",
        status_code: int | None = None,
    ) -> None:
        self.external_id = external_id
        self.status_code = status_code
        super().__init__(message)


class NoDataError(CuckooError):
    """The upstream source had nothing for any identifier form."""

    def __init__(self, external_id: str) -> None:
        self.external_id = external_id
        super().__init__(f"No upstream data for {external_id}")


__all__ = [
    "CuckooError",
    "NoDataError",
    "PastDeadlineError",
    "PersistenceError",
    "UpstreamLookupError",
]
