"""Fake implementations of core ports for testing.

These in-memory implementations allow core scheduling logic to be
tested without external dependencies:

- FakeTaskStorePort: In-memory pending-task persistence
- FakeNotifierPort: Captured deliveries for assertion
- FakeStatusSourcePort: Canned upstream status responses
- FakePollable: Recorded poll cycles for driver tests
"""

from .notification import FakeNotifierPort
from .pollable import FakePollable
from .store import FakeTaskStorePort
from .upstream import FakeStatusSourcePort

__all__ = [
    "FakeNotifierPort",
    "FakePollable",
    "FakeStatusSourcePort",
    "FakeTaskStorePort",
]
