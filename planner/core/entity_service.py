"""Entity service: implements EntityServicePort once for every entity kind.

Areas, projects and tasks share the same protocol: validate the request,
check that referenced rows exist, mutate through the store, return the
entity. The differences between kinds (parent reference, optional text
fields, which fields Update may touch) live in their EntitySchema, so one
class serves all three.

Validation always happens before any store mutation, so invalid input
never produces a partial write.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

from .errors import InternalError, InvalidArgumentError, NotFoundError, StoreError
from .models import (
    AREA,
    PROJECT,
    TASK,
    DeletePolicy,
    Entity,
    EntitySchema,
    FieldUpdate,
    SetTo,
    Unchanged,
    utc_now,
)
from .ports import EntityServicePort, EntityStorePort

logger = logging.getLogger(__name__)

R = TypeVar("R")


def new_entity_id() -> str:
    """Random unique identifier for a new entity."""
    return str(uuid.uuid4())


class HierarchicalEntityService(EntityServicePort):
    """CRUD service for one entity kind, parameterized by its schema.

    Deleting a parent follows ``delete_policy``. With ORPHAN (the default)
    children are kept and keep pointing at the deleted parent id; with
    CASCADE every descendant is deleted first, deepest level first. Cascade
    is a sequence of single-row deletes, not a transaction.
    """

    def __init__(
        self,
        schema: EntitySchema,
        store: EntityStorePort,
        clock: Callable[[], datetime] = utc_now,
        delete_policy: DeletePolicy = DeletePolicy.ORPHAN,
        id_factory: Callable[[], str] = new_entity_id,
    ):
        """Initialize the service.

        Args:
            schema: Entity kind served.
            store: EntityStorePort implementation for persistence.
            clock: Source of created_at/updated_at timestamps.
            delete_policy: Behavior for children when deleting.
            id_factory: Source of new entity ids.
        """
        self.schema = schema
        self.store = store
        self.clock = clock
        self.delete_policy = delete_policy
        self.id_factory = id_factory
        self.children: list[HierarchicalEntityService] = []

    async def create(
        self, name: str, parent_id: str | None = None, **text_fields: str
    ) -> Entity:
        """Create a new entity with a fresh id and timestamps."""
        schema = self.schema
        if not name:
            raise InvalidArgumentError("name is required")

        unknown = sorted(set(text_fields) - set(schema.text_fields))
        if unknown:
            raise InvalidArgumentError(
                f"unknown {schema.kind} field: {', '.join(unknown)}"
            )

        values: dict[str, Any] = {"name": name}
        for field_name in schema.text_fields:
            value = text_fields.get(field_name)
            if value is not None and not isinstance(value, str):
                raise InvalidArgumentError(f"{field_name} must be a string")
            values[field_name] = value or ""

        parent = schema.parent
        if parent is not None and schema.parent_field is not None:
            if not parent_id:
                raise InvalidArgumentError(f"{schema.parent_field} is required")
            parent_exists = await self._call(
                f"check {parent.kind} existence",
                lambda: self.store.exists(parent, parent_id),
            )
            if not parent_exists:
                raise NotFoundError(f"{parent.kind} not found: {parent_id}")
            values[schema.parent_field] = parent_id
        elif parent_id:
            raise InvalidArgumentError(f"{schema.kind} has no parent")

        now = self.clock()
        values["id"] = self.id_factory()
        values["created_at"] = now
        values["updated_at"] = now
        entity = schema.build(values)

        created = await self._call(
            f"create {schema.kind}", lambda: self.store.create(schema, entity)
        )
        logger.info(
            f"Created {schema.kind} {created.id}",
            extra={"entity_kind": schema.kind, "entity_id": created.id},
        )
        return created

    async def get(self, entity_id: str) -> Entity:
        """Look up one entity by id."""
        self._require_id(entity_id)
        entity = await self._call(
            f"get {self.schema.kind}",
            lambda: self.store.get(self.schema, entity_id),
        )
        if entity is None:
            raise NotFoundError(f"{self.schema.kind} not found: {entity_id}")
        return entity

    async def list(self, parent_id: str | None = None) -> list[Entity]:
        """List entities; an empty parent filter means no filter."""
        if parent_id and self.schema.parent_field is None:
            raise InvalidArgumentError(
                f"{self.schema.kind} cannot be filtered by parent"
            )
        return await self._call(
            f"list {self.schema.plural}",
            lambda: self.store.list(self.schema, parent_id or None),
        )

    async def update(
        self, entity_id: str, changes: Mapping[str, FieldUpdate]
    ) -> Entity:
        """Apply the explicitly set fields of ``changes``."""
        schema = self.schema
        self._require_id(entity_id)
        updates = self._collect_updates(changes)

        await self._require_exists(entity_id)

        updated = await self._call(
            f"update {schema.kind}",
            lambda: self.store.update(schema, entity_id, updates, self.clock()),
        )
        if updated is None:
            # Row vanished between the existence check and the write.
            raise NotFoundError(f"{schema.kind} not found: {entity_id}")

        logger.info(
            f"Updated {schema.kind} {entity_id}",
            extra={
                "entity_kind": schema.kind,
                "entity_id": entity_id,
                "fields": sorted(updates),
            },
        )
        return updated

    async def delete(self, entity_id: str) -> bool:
        """Delete one entity, applying the configured delete policy."""
        self._require_id(entity_id)
        await self._require_exists(entity_id)

        if self.delete_policy is DeletePolicy.CASCADE:
            for child in self.children:
                await child._delete_descendants_of(entity_id)

        await self._delete_row(entity_id)
        return True

    async def _delete_descendants_of(self, parent_id: str) -> None:
        """Delete every row of this kind under parent_id, and their children."""
        rows = await self._call(
            f"list {self.schema.plural}",
            lambda: self.store.list(self.schema, parent_id),
        )
        for row in rows:
            for child in self.children:
                await child._delete_descendants_of(row.id)
            await self._delete_row(row.id)

    async def _delete_row(self, entity_id: str) -> None:
        deleted = await self._call(
            f"delete {self.schema.kind}",
            lambda: self.store.delete(self.schema, entity_id),
        )
        if not deleted:
            raise NotFoundError(f"{self.schema.kind} not found: {entity_id}")

        if self.children and self.delete_policy is DeletePolicy.ORPHAN:
            logger.info(
                f"Deleted {self.schema.kind} {entity_id}; "
                f"children left in place (delete policy: orphan)",
                extra={"entity_kind": self.schema.kind, "entity_id": entity_id},
            )
        else:
            logger.info(
                f"Deleted {self.schema.kind} {entity_id}",
                extra={"entity_kind": self.schema.kind, "entity_id": entity_id},
            )

    def _collect_updates(self, changes: Mapping[str, FieldUpdate]) -> dict[str, str]:
        """Validate an update request and keep only the explicitly set fields."""
        updates: dict[str, str] = {}
        for field_name, change in changes.items():
            if field_name not in self.schema.mutable_fields:
                raise InvalidArgumentError(
                    f"{self.schema.kind} field cannot be updated: {field_name}"
                )
            if isinstance(change, Unchanged):
                continue
            if not isinstance(change, SetTo):
                raise InvalidArgumentError(
                    f"{field_name} must be UNCHANGED or SetTo(value)"
                )
            if not isinstance(change.value, str):
                raise InvalidArgumentError(f"{field_name} must be a string")
            if field_name == "name" and not change.value:
                raise InvalidArgumentError("name cannot be empty")
            updates[field_name] = change.value
        return updates

    @staticmethod
    def _require_id(entity_id: str) -> None:
        if not entity_id:
            raise InvalidArgumentError("id is required")

    async def _require_exists(self, entity_id: str) -> None:
        exists = await self._call(
            f"check {self.schema.kind} existence",
            lambda: self.store.exists(self.schema, entity_id),
        )
        if not exists:
            raise NotFoundError(f"{self.schema.kind} not found: {entity_id}")

    async def _call(self, operation: str, action: Callable[[], Awaitable[R]]) -> R:
        """Run one store round-trip, translating StoreError into InternalError."""
        try:
            return await action()
        except StoreError as e:
            logger.error(
                f"Failed to {operation}: {e}",
                exc_info=True,
                extra={"entity_kind": self.schema.kind, "operation": operation},
            )
            raise InternalError(f"failed to {operation}") from e


@dataclass(frozen=True)
class Services:
    """The three entity services sharing one store."""

    areas: HierarchicalEntityService
    projects: HierarchicalEntityService
    tasks: HierarchicalEntityService

    def by_kind(self) -> dict[str, HierarchicalEntityService]:
        return {
            "area": self.areas,
            "project": self.projects,
            "task": self.tasks,
        }


def build_services(
    store: EntityStorePort,
    clock: Callable[[], datetime] = utc_now,
    delete_policy: DeletePolicy = DeletePolicy.ORPHAN,
) -> Services:
    """Instantiate the area, project and task services over one store."""
    areas = HierarchicalEntityService(AREA, store, clock, delete_policy)
    projects = HierarchicalEntityService(PROJECT, store, clock, delete_policy)
    tasks = HierarchicalEntityService(TASK, store, clock, delete_policy)
    areas.children.append(projects)
    projects.children.append(tasks)
    return Services(areas=areas, projects=projects, tasks=tasks)
