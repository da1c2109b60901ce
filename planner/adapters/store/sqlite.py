"""SQLite entity store adapter.

Implements EntityStorePort using SQLite with aiosqlite for async access.
Provides the embedded single-file store with zero operational overhead.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Iterator, Mapping
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from planner.adapters.store.schema import (
    MIGRATIONS,
    MIGRATIONS_TABLE,
    check_update_columns,
    select_columns,
)
from planner.core.errors import StoreError
from planner.core.models import Entity, EntitySchema
from planner.core.ports import EntityStorePort

logger = logging.getLogger(__name__)


class SQLiteEntityStore(EntityStorePort):
    """SQLite-backed entity store with connection pooling and async access."""

    def __init__(self, db_path: str, pool_size: int = 5, busy_timeout: float = 5.0):
        """Initialize SQLite store with connection pooling.

        Args:
            db_path: Path to SQLite database file.
            pool_size: Number of idle connections to keep in the pool.
            busy_timeout: Seconds a connection waits on a locked database.
        """
        self.db_path = Path(db_path)
        self._pool: list[aiosqlite.Connection] = []
        self._pool_lock = asyncio.Lock()
        self._schema_lock = asyncio.Lock()
        self._pool_size = pool_size
        self._busy_timeout = busy_timeout
        self._schema_initialized = False
        self._closed = False

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get a connection from the pool or create a new one."""
        async with self._pool_lock:
            if self._pool:
                return self._pool.pop()
        conn = await aiosqlite.connect(str(self.db_path), timeout=self._busy_timeout)
        await conn.execute("PRAGMA journal_mode = WAL")
        return conn

    async def _return_connection(self, conn: aiosqlite.Connection) -> None:
        """Return a connection to the pool."""
        async with self._pool_lock:
            if not self._closed and len(self._pool) < self._pool_size:
                self._pool.append(conn)
                return
        await conn.close()

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = await self._get_connection()
        try:
            yield conn
        except BaseException:
            await conn.rollback()
            raise
        finally:
            await self._return_connection(conn)

    @contextmanager
    def _errors(self, operation: str, kind: str) -> Iterator[None]:
        """Wrap driver failures in StoreError."""
        try:
            yield
        except (aiosqlite.Error, OSError) as e:
            raise StoreError(operation, kind, str(e)) from e

    async def initialize(self) -> None:
        """Create the database file if needed and apply pending migrations.

        Only runs once per instance. Subsequent calls are no-ops.
        """
        if self._schema_initialized:
            return

        async with self._schema_lock:
            # Check again after acquiring lock to prevent race
            if self._schema_initialized:
                return

            with self._errors("migrate", "schema"):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                async with self._connection() as conn:
                    await conn.execute(
                        f"CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} ("
                        "version INTEGER PRIMARY KEY, "
                        "description TEXT NOT NULL, "
                        "applied_at TEXT NOT NULL)"
                    )
                    cursor = await conn.execute(f"SELECT version FROM {MIGRATIONS_TABLE}")
                    applied = {row[0] for row in await cursor.fetchall()}

                    for migration in MIGRATIONS:
                        if migration.version in applied:
                            continue
                        for statement in migration.statements("TEXT"):
                            await conn.execute(statement)
                        await conn.execute(
                            f"INSERT INTO {MIGRATIONS_TABLE} "
                            "(version, description, applied_at) VALUES (?, ?, ?)",
                            (
                                migration.version,
                                migration.description,
                                datetime.now(timezone.utc).isoformat(),
                            ),
                        )
                        logger.info(
                            f"Applied migration {migration.version}: {migration.description}"
                        )
                    await conn.commit()

            self._schema_initialized = True
            logger.info(f"SQLite store ready at {self.db_path}")

    async def close(self) -> None:
        """Close all pooled connections."""
        async with self._pool_lock:
            self._closed = True
            pool, self._pool = self._pool, []
        for conn in pool:
            await conn.close()

    async def create(self, schema: EntitySchema, entity: Entity) -> Entity:
        """Insert a new row."""
        await self.initialize()
        values = self._entity_to_row(schema, entity)
        placeholders = ", ".join("?" for _ in schema.columns)

        with self._errors("create", schema.kind):
            async with self._connection() as conn:
                await conn.execute(
                    f"INSERT INTO {schema.table} ({select_columns(schema)}) "
                    f"VALUES ({placeholders})",
                    values,
                )
                await conn.commit()
        return entity

    async def get(self, schema: EntitySchema, entity_id: str) -> Entity | None:
        """Look up a row by its id."""
        await self.initialize()

        with self._errors("get", schema.kind):
            async with self._connection() as conn:
                return await self._fetch_one(conn, schema, entity_id)

    async def list(
        self, schema: EntitySchema, parent_id: str | None = None
    ) -> list[Entity]:
        """Return rows in insertion order, optionally filtered by parent."""
        await self.initialize()

        query = f"SELECT {select_columns(schema)} FROM {schema.table}"
        params: tuple[Any, ...] = ()
        if parent_id is not None and schema.parent_field:
            query += f" WHERE {schema.parent_field} = ?"
            params = (parent_id,)
        query += " ORDER BY rowid"

        with self._errors("list", schema.kind):
            async with self._connection() as conn:
                cursor = await conn.execute(query, params)
                rows = await cursor.fetchall()
        return [self._row_to_entity(schema, row) for row in rows]

    async def exists(self, schema: EntitySchema, entity_id: str) -> bool:
        """Check whether a row with this id is present."""
        await self.initialize()

        with self._errors("exists", schema.kind):
            async with self._connection() as conn:
                cursor = await conn.execute(
                    f"SELECT 1 FROM {schema.table} WHERE id = ? LIMIT 1", (entity_id,)
                )
                return await cursor.fetchone() is not None

    async def update(
        self,
        schema: EntitySchema,
        entity_id: str,
        changes: Mapping[str, str],
        updated_at: datetime,
    ) -> Entity | None:
        """Write the supplied columns and updated_at, then re-read the row."""
        await self.initialize()
        columns = list(changes)
        check_update_columns(schema, columns)

        assignments = [f"{column} = ?" for column in columns] + ["updated_at = ?"]
        params = [changes[column] for column in columns]
        params += [updated_at.isoformat(), entity_id]

        with self._errors("update", schema.kind):
            async with self._connection() as conn:
                cursor = await conn.execute(
                    f"UPDATE {schema.table} SET {', '.join(assignments)} WHERE id = ?",
                    params,
                )
                if cursor.rowcount == 0:
                    await conn.rollback()
                    return None
                await conn.commit()
                return await self._fetch_one(conn, schema, entity_id)

    async def delete(self, schema: EntitySchema, entity_id: str) -> bool:
        """Remove a row; children are left untouched."""
        await self.initialize()

        with self._errors("delete", schema.kind):
            async with self._connection() as conn:
                cursor = await conn.execute(
                    f"DELETE FROM {schema.table} WHERE id = ?", (entity_id,)
                )
                await conn.commit()
                return cursor.rowcount > 0

    async def _fetch_one(
        self, conn: aiosqlite.Connection, schema: EntitySchema, entity_id: str
    ) -> Entity | None:
        cursor = await conn.execute(
            f"SELECT {select_columns(schema)} FROM {schema.table} WHERE id = ?",
            (entity_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_entity(schema, row)

    @staticmethod
    def _entity_to_row(schema: EntitySchema, entity: Entity) -> tuple[Any, ...]:
        values = []
        for column in schema.columns:
            value = getattr(entity, column)
            if isinstance(value, datetime):
                value = value.isoformat()
            values.append(value)
        return tuple(values)

    def _row_to_entity(self, schema: EntitySchema, row: Any) -> Entity:
        """Convert a database row to an entity.

        Raises:
            ValueError: If row is malformed or contains invalid data.
        """
        if not row or len(row) != len(schema.columns):
            raise ValueError(
                f"Invalid {schema.kind} row length: expected {len(schema.columns)}, "
                f"got {len(row) if row else 0}"
            )
        values = dict(zip(schema.columns, row))
        try:
            for column in ("created_at", "updated_at"):
                parsed = datetime.fromisoformat(values[column])
                if parsed.tzinfo is None:
                    parsed = parsed.replace(tzinfo=timezone.utc)
                values[column] = parsed
        except (ValueError, TypeError) as e:
            logger.error(f"Invalid timestamp in {schema.kind} {values.get('id')}: {e}")
            raise ValueError(f"Invalid date format: {e}") from e
        return schema.build(values)
