"""PostgreSQL task store adapter.

Implements TaskStorePort using PostgreSQL with asyncpg for async access.
Suitable when several bot processes share one pending-task table.
"""

import asyncio
import logging
from typing import Any

import asyncpg

from cuckoo.core.errors import PersistenceError
from cuckoo.core.models import DeferredTask, Delivery
from cuckoo.core.ports import TaskStorePort

logger = logging.getLogger(__name__)

_COLUMNS = "id, owner, connection, target, text, fire_at, created_at"

# asyncpg raises OSError subclasses when the server is unreachable
_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class PostgreSQLTaskStore(TaskStorePort):
    """PostgreSQL-backed task store with connection pooling and async access."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 5432,
        database: str = "cuckoo",
        user: str = "cuckoo",
        password: str = "",
        pool_size: int = 10,
    ):
        """Initialize PostgreSQL store with connection pooling.

        Args:
            host: PostgreSQL server hostname.
            port: PostgreSQL server port.
            database: Database name.
            user: Database user.
            password: Database password.
            pool_size: Number of connections to maintain in the pool.
        """
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self._pool: asyncpg.Pool | None = None
        self._pool_size = pool_size
        self._schema_lock = asyncio.Lock()
        self._schema_initialized = False

    async def _init_pool(self) -> asyncpg.Pool:
        """Initialize the connection pool on first use."""
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.user,
                password=self.password,
                min_size=1,
                max_size=self._pool_size,
            )
        return self._pool

    async def close(self) -> None:
        """Close all pooled connections."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def _init_schema(self) -> asyncpg.Pool:
        """Initialize database schema on first use and return the pool."""
        async with self._schema_lock:
            pool = await self._init_pool()
            if self._schema_initialized:
                return pool

            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS deferred_tasks (
                        id TEXT PRIMARY KEY,
                        owner TEXT NOT NULL DEFAULT '',
                        connection TEXT NOT NULL,
                        target TEXT NOT NULL,
                        text TEXT NOT NULL,
                        fire_at TIMESTAMPTZ NOT NULL,
                        created_at TIMESTAMPTZ NOT NULL
                    )
                    """
                )
                await conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_owner ON deferred_tasks(owner)"
                )
                await conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_fire_at ON deferred_tasks(fire_at)"
                )

            self._schema_initialized = True
            return pool

    async def insert(self, task: DeferredTask) -> None:
        """Persist a new task."""
        try:
            pool = await self._init_schema()
            async with pool.acquire() as conn:
                await conn.execute(
                    f"INSERT INTO deferred_tasks ({_COLUMNS}) "
                    "VALUES ($1, $2, $3, $4, $5, $6, $7)",
                    task.id,
                    task.owner,
                    task.delivery.connection,
                    task.delivery.target,
                    task.delivery.text,
                    task.fire_at,
                    task.created_at,
                )
        except _DB_ERRORS as e:
            logger.error(f"Failed to insert task {task.id}: {e}", exc_info=True)
            raise PersistenceError(
                f"Error saving task {task.id}: {e}", operation="insert"
            ) from e

    async def remove_by_id(self, task_id: str) -> bool:
        """Remove a task's durable record."""
        try:
            pool = await self._init_schema()
            async with pool.acquire() as conn:
                status = await conn.execute(
                    "DELETE FROM deferred_tasks WHERE id = $1", task_id
                )
        except _DB_ERRORS as e:
            logger.error(f"Failed to remove task {task_id}: {e}", exc_info=True)
            raise PersistenceError(
                f"Error removing task {task_id}: {e}", operation="remove"
            ) from e
        # asyncpg returns the command tag, e.g. "DELETE 1"
        return status.split()[-1] != "0"

    async def list_by_owner(self, owner: str) -> list[DeferredTask]:
        """Return pending tasks requested by owner, soonest first."""
        return await self._select(
            f"SELECT {_COLUMNS} FROM deferred_tasks WHERE owner = $1 "
            "ORDER BY fire_at ASC",
            owner,
        )

    async def list_all(self) -> list[DeferredTask]:
        """Return every pending task, soonest first."""
        return await self._select(
            f"SELECT {_COLUMNS} FROM deferred_tasks ORDER BY fire_at ASC"
        )

    async def _select(self, sql: str, *args: Any) -> list[DeferredTask]:
        try:
            pool = await self._init_schema()
            async with pool.acquire() as conn:
                rows = await conn.fetch(sql, *args)
        except _DB_ERRORS as e:
            logger.error(f"Failed to list tasks: {e}", exc_info=True)
            raise PersistenceError(f"Error listing tasks: {e}", operation="list") from e

        tasks = []
        for row in rows:
            try:
                tasks.append(self._row_to_task(row))
            except (KeyError, ValueError) as e:
                logger.error(f"Skipping unreadable task row: {e}")
        return tasks

    @staticmethod
    def _row_to_task(row: asyncpg.Record) -> DeferredTask:
        """Convert a database record to a DeferredTask."""
        return DeferredTask(
            id=row["id"],
            owner=row["owner"],
            delivery=Delivery(
                connection=row["connection"],
                target=row["target"],
                text=row["text"],
            ),
            fire_at=row["fire_at"],
            created_at=row["created_at"],
        )
