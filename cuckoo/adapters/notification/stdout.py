"""Stdout notification adapter.

Implements NotifierPort by printing each delivery to the terminal,
prefixed with its connection and target.
"""

import asyncio
import logging
from datetime import datetime, timezone

from cuckoo.core.ports import NotifierPort

logger = logging.getLogger(__name__)


class StdoutNotifier(NotifierPort):
    """Prints deliveries to stdout in a human-readable line format."""

    def __init__(self, timestamps: bool = False):
        """Initialize stdout notifier.

        Args:
            timestamps: If True, prefix each line with the UTC send time.
        """
        self.timestamps = timestamps

    async def deliver(self, connection: str, target: str, text: str) -> None:
        """Print a delivery to stdout."""
        await asyncio.to_thread(print, self._format_line(connection, target, text))

    def _format_line(self, connection: str, target: str, text: str) -> str:
        line = f"[{connection}] {target}: {text}"
        if self.timestamps:
            sent_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
            line = f"{sent_at} {line}"
        return line
