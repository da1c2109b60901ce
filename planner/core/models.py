"""Domain models for the Planner backend.

All models in this module use only Python standard library types,
ensuring zero external dependencies in the core domain.

The hierarchy is Area -> Project -> Task. Each kind is described once by an
EntitySchema so that a single service implementation can serve all three.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, TypeAlias, TypeVar


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Area:
    """Top-level grouping of projects (e.g. "Home", "Work")."""

    id: str
    name: str
    created_at: datetime
    updated_at: datetime
    description: str = ""

    def __post_init__(self) -> None:
        """Validate area invariants on creation."""
        if not self.id:
            raise ValueError("id must be a non-empty string")
        if not self.name:
            raise ValueError("name must be a non-empty string")


@dataclass(frozen=True)
class Project:
    """A project belonging to exactly one area."""

    id: str
    name: str
    area_id: str
    created_at: datetime
    updated_at: datetime

    def __post_init__(self) -> None:
        """Validate project invariants on creation."""
        if not self.id:
            raise ValueError("id must be a non-empty string")
        if not self.name:
            raise ValueError("name must be a non-empty string")
        if not self.area_id:
            raise ValueError("area_id must be a non-empty string")


@dataclass(frozen=True)
class Task:
    """A task belonging to exactly one project. Notes may be empty."""

    id: str
    name: str
    project_id: str
    created_at: datetime
    updated_at: datetime
    notes: str = ""

    def __post_init__(self) -> None:
        """Validate task invariants on creation."""
        if not self.id:
            raise ValueError("id must be a non-empty string")
        if not self.name:
            raise ValueError("name must be a non-empty string")
        if not self.project_id:
            raise ValueError("project_id must be a non-empty string")


Entity: TypeAlias = Area | Project | Task

T = TypeVar("T")


class Unchanged:
    """Marker for an update field the caller did not supply.

    Use the module-level UNCHANGED instance rather than constructing new ones.
    """

    _instance: "Unchanged | None" = None

    def __new__(cls) -> "Unchanged":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNCHANGED"

    def __bool__(self) -> bool:
        return False


UNCHANGED = Unchanged()


@dataclass(frozen=True)
class SetTo(Generic[T]):
    """An update field the caller explicitly supplied, possibly as ""."""

    value: T


FieldUpdate: TypeAlias = Unchanged | SetTo[str]


class DeletePolicy(Enum):
    """What deleting a parent does to its children.

    - ORPHAN: children are left in place, referencing a missing parent
    - CASCADE: all descendants are deleted before the parent
    """

    ORPHAN = "orphan"
    CASCADE = "cascade"


@dataclass(frozen=True)
class EntitySchema:
    """Describes one entity kind for the generic service and the stores.

    Attributes:
        kind: Singular lowercase name used in messages ("area").
        table: Table name in the relational store.
        entity_type: Dataclass used for the outward representation.
        text_fields: Optional free-text fields accepted on create, with the
            value used when the caller omits them.
        mutable_fields: Fields Update may change.
        parent_field: Column referencing the parent row, if any.
        parent: Schema of the parent kind, if any.
    """

    kind: str
    table: str
    entity_type: type
    text_fields: tuple[str, ...] = ()
    mutable_fields: tuple[str, ...] = ("name",)
    parent_field: str | None = None
    parent: "EntitySchema | None" = field(default=None, repr=False)

    def __post_init__(self) -> None:
        """Parent field and parent schema are set together or not at all."""
        if (self.parent_field is None) != (self.parent is None):
            raise ValueError(f"{self.kind}: parent_field and parent must be set together")

    @property
    def plural(self) -> str:
        return self.table

    @property
    def columns(self) -> tuple[str, ...]:
        """All persisted columns in table order."""
        cols = ["id", "name"]
        if self.parent_field:
            cols.append(self.parent_field)
        cols.extend(self.text_fields)
        cols.extend(["created_at", "updated_at"])
        return tuple(cols)

    def build(self, values: dict[str, Any]) -> Entity:
        """Construct the entity dataclass from a column -> value mapping."""
        entity: Entity = self.entity_type(**{col: values[col] for col in self.columns})
        return entity


AREA = EntitySchema(
    kind="area",
    table="areas",
    entity_type=Area,
    text_fields=("description",),
    mutable_fields=("name", "description"),
)

PROJECT = EntitySchema(
    kind="project",
    table="projects",
    entity_type=Project,
    mutable_fields=("name",),
    parent_field="area_id",
    parent=AREA,
)

TASK = EntitySchema(
    kind="task",
    table="tasks",
    entity_type=Task,
    text_fields=("notes",),
    mutable_fields=("name", "notes"),
    parent_field="project_id",
    parent=PROJECT,
)

SCHEMAS: tuple[EntitySchema, ...] = (AREA, PROJECT, TASK)
