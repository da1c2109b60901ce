"""Port interfaces for the Planner backend.

These abstract base classes define the boundaries between core
domain logic and external adapters. Implementations live in the
adapters/ package.

Port Interface Categories:

1. **Driven Ports** (core calls out to adapters)
   - EntityStorePort: Persist and query areas, projects and tasks

2. **Driving Ports** (adapters/external systems call into core)
   - EntityServicePort: CRUD entry point used by the RPC dispatcher
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import datetime

from .models import Entity, EntitySchema, FieldUpdate


# ============================================================================
# DRIVEN PORTS (Core calls out to adapters)
# ============================================================================


class EntityStorePort(ABC):
    """Port for persisting entity rows.

    One store holds all three entity kinds; every operation names the kind
    through its EntitySchema. This is a pure persistence boundary: no
    business validation happens here, and parent references are not
    enforced.

    Implementations must handle:
    - Safe concurrent access from many in-flight calls
    - Applying schema migrations once, in initialize()
    - Wrapping driver failures in StoreError
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Open connections and bring the schema up to date.

        Raises:
            StoreError: If the database is unreachable or migration fails.
        """

    @abstractmethod
    async def close(self) -> None:
        """Release all connections. Safe to call more than once."""

    @abstractmethod
    async def create(self, schema: EntitySchema, entity: Entity) -> Entity:
        """Insert a new row.

        Args:
            schema: Kind of the entity.
            entity: Fully populated entity, including id and timestamps.

        Returns:
            The stored entity.

        Raises:
            StoreError: On constraint violation (e.g. duplicate id) or
                database failure.
        """

    @abstractmethod
    async def get(self, schema: EntitySchema, entity_id: str) -> Entity | None:
        """Retrieve a row by id.

        Returns:
            The entity, or None if no row matches.

        Raises:
            StoreError: If the database is unavailable.
        """

    @abstractmethod
    async def list(
        self, schema: EntitySchema, parent_id: str | None = None
    ) -> list[Entity]:
        """List rows of one kind.

        Args:
            schema: Kind to list.
            parent_id: When given, only rows whose parent field equals it.

        Returns:
            Entities in insertion order. Empty list if none match.

        Raises:
            StoreError: If the database is unavailable.
        """

    @abstractmethod
    async def exists(self, schema: EntitySchema, entity_id: str) -> bool:
        """Return True iff a row with this id is present.

        Raises:
            StoreError: If the database is unavailable.
        """

    @abstractmethod
    async def update(
        self,
        schema: EntitySchema,
        entity_id: str,
        changes: Mapping[str, str],
        updated_at: datetime,
    ) -> Entity | None:
        """Apply a sparse update.

        Columns absent from ``changes`` are left untouched; present ones
        (including empty strings) overwrite. ``updated_at`` is always written.

        Returns:
            The updated entity, or None if no row matches.

        Raises:
            StoreError: If the database is unavailable.
        """

    @abstractmethod
    async def delete(self, schema: EntitySchema, entity_id: str) -> bool:
        """Remove a row. Children are never touched.

        Returns:
            True if a row was removed, False if none matched.

        Raises:
            StoreError: If the database is unavailable.
        """


# ============================================================================
# DRIVING PORTS (Adapters/external systems call into core)
# ============================================================================


class EntityServicePort(ABC):
    """Port for CRUD operations on one entity kind.

    Driving port: the RPC dispatcher invokes these methods. Every failure
    is raised as a PlannerError subclass.
    """

    schema: EntitySchema

    @abstractmethod
    async def create(
        self, name: str, parent_id: str | None = None, **text_fields: str
    ) -> Entity:
        """Create an entity under an existing parent (if the kind has one).

        Raises:
            InvalidArgumentError: Empty name or parent id, unknown field.
            NotFoundError: The parent does not exist.
            InternalError: The store failed.
        """

    @abstractmethod
    async def get(self, entity_id: str) -> Entity:
        """Retrieve one entity.

        Raises:
            InvalidArgumentError: Empty id.
            NotFoundError: No such entity.
            InternalError: The store failed.
        """

    @abstractmethod
    async def list(self, parent_id: str | None = None) -> list[Entity]:
        """List entities, optionally only those under one parent.

        Raises:
            InvalidArgumentError: Parent filter on a parentless kind.
            InternalError: The store failed.
        """

    @abstractmethod
    async def update(
        self, entity_id: str, changes: Mapping[str, FieldUpdate]
    ) -> Entity:
        """Apply explicitly set fields and refresh updated_at.

        Raises:
            InvalidArgumentError: Empty id, immutable field, empty name.
            NotFoundError: No such entity.
            InternalError: The store failed.
        """

    @abstractmethod
    async def delete(self, entity_id: str) -> bool:
        """Delete one entity.

        Returns:
            True on success.

        Raises:
            InvalidArgumentError: Empty id.
            NotFoundError: No such entity.
            InternalError: The store failed.
        """
