"""SQLite task store adapter.

Implements TaskStorePort using SQLite with aiosqlite for async access.
Keeps pending one-shot tasks durable across restarts with zero
operational overhead.
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from cuckoo.core.errors import PersistenceError
from cuckoo.core.models import DeferredTask, Delivery
from cuckoo.core.ports import TaskStorePort

logger = logging.getLogger(__name__)

_COLUMNS = "id, owner, connection, target, text, fire_at, created_at"


class SQLiteTaskStore(TaskStorePort):
    """SQLite-backed task store with connection pooling and async access."""

    def __init__(self, db_path: str, pool_size: int = 5):
        """Initialize SQLite store with connection pooling.

        Args:
            db_path: Path to SQLite database file.
            pool_size: Number of connections to maintain in the pool.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._pool: list[aiosqlite.Connection] = []
        self._pool_lock = asyncio.Lock()
        self._schema_lock = asyncio.Lock()
        self._pool_size = pool_size
        self._schema_initialized = False

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get a connection from the pool or create a new one."""
        async with self._pool_lock:
            if self._pool:
                return self._pool.pop()
        return await aiosqlite.connect(str(self.db_path))

    async def _return_connection(self, conn: aiosqlite.Connection) -> None:
        """Return a connection to the pool."""
        async with self._pool_lock:
            if len(self._pool) < self._pool_size:
                self._pool.append(conn)
                return
        await conn.close()

    async def close(self) -> None:
        """Close all pooled connections."""
        async with self._pool_lock:
            for conn in self._pool:
                await conn.close()
            self._pool.clear()

    async def _init_schema(self) -> None:
        """Initialize database schema on first use.

        Only runs once per instance. Subsequent calls are no-ops.
        """
        if self._schema_initialized:
            return

        async with self._schema_lock:
            # Check again after acquiring lock to prevent race
            if self._schema_initialized:
                return

            conn = await self._get_connection()
            try:
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS deferred_tasks (
                        id TEXT PRIMARY KEY,
                        owner TEXT NOT NULL DEFAULT '',
                        connection TEXT NOT NULL,
                        target TEXT NOT NULL,
                        text TEXT NOT NULL,
                        fire_at TIMESTAMP NOT NULL,
                        created_at TIMESTAMP NOT NULL
                    )
                    """
                )
                await conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_owner ON deferred_tasks(owner)"
                )
                await conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_fire_at ON deferred_tasks(fire_at)"
                )
                await conn.commit()
                self._schema_initialized = True
            finally:
                await self._return_connection(conn)

    async def insert(self, task: DeferredTask) -> None:
        """Persist a new task."""
        try:
            await self._init_schema()
            conn = await self._get_connection()
            try:
                await conn.execute(
                    f"INSERT INTO deferred_tasks ({_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        task.id,
                        task.owner,
                        task.delivery.connection,
                        task.delivery.target,
                        task.delivery.text,
                        task.fire_at.astimezone(timezone.utc).isoformat(),
                        task.created_at.astimezone(timezone.utc).isoformat(),
                    ),
                )
                await conn.commit()
            finally:
                await self._return_connection(conn)
        except aiosqlite.Error as e:
            logger.error(f"Failed to insert task {task.id}: {e}", exc_info=True)
            raise PersistenceError(
                f"Error saving task {task.id}: {e}", operation="insert"
            ) from e

    async def remove_by_id(self, task_id: str) -> bool:
        """Remove a task's durable record."""
        try:
            await self._init_schema()
            conn = await self._get_connection()
            try:
                cursor = await conn.execute(
                    "DELETE FROM deferred_tasks WHERE id = ?", (task_id,)
                )
                await conn.commit()
                return cursor.rowcount > 0
            finally:
                await self._return_connection(conn)
        except aiosqlite.Error as e:
            logger.error(f"Failed to remove task {task_id}: {e}", exc_info=True)
            raise PersistenceError(
                f"Error removing task {task_id}: {e}", operation="remove"
            ) from e

    async def list_by_owner(self, owner: str) -> list[DeferredTask]:
        """Return pending tasks requested by owner, soonest first."""
        return await self._select(
            f"SELECT {_COLUMNS} FROM deferred_tasks WHERE owner = ? "
            "ORDER BY fire_at ASC",
            (owner,),
        )

    async def list_all(self) -> list[DeferredTask]:
        """Return every pending task, soonest first."""
        return await self._select(
            f"SELECT {_COLUMNS} FROM deferred_tasks ORDER BY fire_at ASC", ()
        )

    async def _select(self, sql: str, params: tuple[Any, ...]) -> list[DeferredTask]:
        try:
            await self._init_schema()
            conn = await self._get_connection()
            try:
                cursor = await conn.execute(sql, params)
                rows = await cursor.fetchall()
            finally:
                await self._return_connection(conn)
        except aiosqlite.Error as e:
            logger.error(f"Failed to list tasks: {e}", exc_info=True)
            raise PersistenceError(f"Error listing tasks: {e}", operation="list") from e

        tasks = []
        for row in rows:
            try:
                tasks.append(self._row_to_task(row))
            except ValueError as e:
                # One corrupt row must not hide every other pending task
                logger.error(f"Skipping unreadable task row: {e}")
        return tasks

    @staticmethod
    def _row_to_task(row: tuple[Any, ...]) -> DeferredTask:
        """Convert a database row to a DeferredTask.

        Raises:
            ValueError: If row is malformed or contains invalid data.
        """
        if not row or len(row) != 7:
            raise ValueError(
                f"Invalid row length: expected 7, got {len(row) if row else 0}"
            )

        task_id, owner, connection, target, text, fire_at, created_at = row

        try:
            fire_at_dt = datetime.fromisoformat(fire_at)
            created_at_dt = datetime.fromisoformat(created_at)
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid date format for task {task_id}: {e}") from e

        return DeferredTask(
            id=task_id,
            owner=owner,
            delivery=Delivery(connection=connection, target=target, text=text),
            fire_at=fire_at_dt,
            created_at=created_at_dt,
        )
