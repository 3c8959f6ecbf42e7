"""CLI command implementations for Cuckoo.

Provides human-initiated actions through a command-line interface.

This adapter maps CLI commands (remind, forget, track, untrack, apikey
and the listing commands) to ReminderPort and TrackingPort operations. It handles
CLI-specific formatting and error reporting. Times are accepted as ISO
8601 timestamps or as a number of seconds from now.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from cuckoo.core.errors import CuckooError
from cuckoo.core.models import DeferredTask, Delivery, TrackedEntity
from cuckoo.core.ports import ReminderPort, TrackingPort

logger = logging.getLogger(__name__)


def _task_to_dict(task: DeferredTask) -> dict[str, Any]:
    return {
        "id": task.id,
        "owner": task.owner,
        "connection": task.delivery.connection,
        "target": task.delivery.target,
        "text": task.delivery.text,
        "fire_at": task.fire_at.isoformat(),
    }


def _entity_to_dict(entity: TrackedEntity) -> dict[str, Any]:
    return {
        "connection": entity.key.connection,
        "target": entity.key.target,
        "external_id": entity.external_id,
        "status": entity.last_status,
        "raw_status": entity.last_raw_status,
        "started_at": entity.started_at.isoformat(),
    }


class CLICommandHandler:
    """Handles CLI commands by delegating to the driving ports."""

    def __init__(
        self,
        reminders: ReminderPort,
        tracking: TrackingPort,
        set_api_key: Callable[[str], None] | None = None,
    ):
        """Initialize the CLI command handler.

        Args:
            reminders: ReminderPort implementation for one-shot deliveries.
            tracking: TrackingPort implementation for tracked entities.
            set_api_key: Replaces the upstream status source's access key.
                The apikey command is unavailable when None.
        """
        self.reminders = reminders
        self.tracking = tracking
        self.set_api_key = set_api_key

    async def remind(
        self,
        connection: str,
        target: str,
        text: str,
        at: str | None = None,
        in_seconds: float | None = None,
        owner: str = "",
    ) -> dict[str, Any]:
        """Schedule a reminder via CLI.

        Exactly one of at (ISO 8601, naive values are taken as UTC) or
        in_seconds must be given.

        Returns:
            Dictionary with status, task_id and fire_at on success.
        """
        try:
            fire_at = self._resolve_time(at, in_seconds)
            task_id = await self.reminders.schedule(
                Delivery(connection=connection, target=target, text=text),
                fire_at,
                owner=owner or target,
            )
            return {
                "status": "success",
                "operation": "remind",
                "task_id": task_id,
                "fire_at": fire_at.isoformat(),
                "message": f"Okay, I'll remind {target} at {fire_at.isoformat()}",
            }
        except (CuckooError, ValueError) as e:
            logger.error(f"Failed to schedule reminder: {e}")
            return {"status": "error", "operation": "remind", "message": str(e)}

    async def forget(self, task_id: str) -> dict[str, Any]:
        """Cancel a reminder and delete its record."""
        try:
            found = await self.reminders.forget(task_id)
        except CuckooError as e:
            logger.error(f"Failed to forget reminder {task_id}: {e}")
            return {
                "status": "error",
                "operation": "forget",
                "task_id": task_id,
                "message": str(e),
            }

        if not found:
            return {
                "status": "error",
                "operation": "forget",
                "task_id": task_id,
                "message": f"No pending reminder {task_id}",
            }
        return {
            "status": "success",
            "operation": "forget",
            "task_id": task_id,
            "message": "I'll forget that one, then...",
        }

    async def list_reminders(self, owner: str) -> dict[str, Any]:
        """List pending reminders requested by owner."""
        try:
            tasks = await self.reminders.pending_for(owner)
        except CuckooError as e:
            logger.error(f"Failed to list reminders for {owner}: {e}")
            return {"status": "error", "operation": "reminders", "message": str(e)}

        return {
            "status": "success",
            "operation": "reminders",
            "owner": owner,
            "count": len(tasks),
            "reminders": [_task_to_dict(task) for task in tasks],
        }

    async def track(
        self, connection: str, target: str, external_id: str
    ) -> dict[str, Any]:
        """Start tracking an entity for target."""
        try:
            entity = await self.tracking.track(connection, target, external_id)
        except ValueError as e:
            return {"status": "error", "operation": "track", "message": str(e)}

        return {
            "status": "success",
            "operation": "track",
            "entity": _entity_to_dict(entity),
            "message": f"Now tracking {entity.external_id}",
        }

    async def untrack(
        self, connection: str, target: str, external_id: str
    ) -> dict[str, Any]:
        """Stop tracking an entity for target."""
        try:
            removed = await self.tracking.untrack(connection, target, external_id)
        except ValueError as e:
            return {"status": "error", "operation": "untrack", "message": str(e)}

        if not removed:
            return {
                "status": "error",
                "operation": "untrack",
                "message": f"{external_id} was not being tracked for {target}",
            }
        return {
            "status": "success",
            "operation": "untrack",
            "message": f"Stopped tracking {external_id}",
        }

    async def list_tracked(
        self, connection: str | None = None, target: str | None = None
    ) -> dict[str, Any]:
        """List tracked entities and their last known status."""
        entities = await self.tracking.tracked(connection=connection, target=target)
        return {
            "status": "success",
            "operation": "tracked",
            "count": len(entities),
            "entities": [_entity_to_dict(entity) for entity in entities],
        }

    def api_key(self, key: str) -> dict[str, Any]:
        """Set the upstream API key used by later flight lookups."""
        if self.set_api_key is None:
            return {
                "status": "error",
                "operation": "apikey",
                "message": "No upstream status source accepts an API key",
            }

        key = key.strip()
        if not key:
            return {
                "status": "error",
                "operation": "apikey",
                "message": "Please provide an API key.",
            }

        self.set_api_key(key)
        return {
            "status": "success",
            "operation": "apikey",
            "message": "AviationStack API key updated.",
        }

    @staticmethod
    def _resolve_time(at: str | None, in_seconds: float | None) -> datetime:
        """Turn CLI time arguments into an aware datetime.

        Raises:
            ValueError: If neither or both are given, or at is malformed.
        """
        if (at is None) == (in_seconds is None):
            raise ValueError("Provide exactly one of 'at' or 'in_seconds'")

        if in_seconds is not None:
            return datetime.now(timezone.utc) + timedelta(seconds=float(in_seconds))

        fire_at = datetime.fromisoformat(at)  # type: ignore[arg-type]
        if fire_at.tzinfo is None:
            fire_at = fire_at.replace(tzinfo=timezone.utc)
        return fire_at
