"""Tests for domain models, entity schemas and the error taxonomy."""

from datetime import datetime, timezone

import pytest

from planner.core.errors import (
    DeadlineExceededError,
    ErrorKind,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    PlannerError,
    StoreError,
)
from planner.core.models import (
    AREA,
    PROJECT,
    SCHEMAS,
    TASK,
    UNCHANGED,
    Area,
    EntitySchema,
    Project,
    SetTo,
    Task,
    Unchanged,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestEntities:
    """Entity dataclass invariants."""

    def test_area_requires_name(self) -> None:
        with pytest.raises(ValueError, match="name"):
            Area(id="a1", name="", created_at=NOW, updated_at=NOW)

    def test_project_requires_area(self) -> None:
        with pytest.raises(ValueError, match="area_id"):
            Project(id="p1", name="Renovation", area_id="", created_at=NOW, updated_at=NOW)

    def test_task_notes_default_empty(self) -> None:
        task = Task(id="t1", name="Buy paint", project_id="p1", created_at=NOW, updated_at=NOW)

        assert task.notes == ""

    def test_entities_are_immutable(self) -> None:
        area = Area(id="a1", name="Home", created_at=NOW, updated_at=NOW)

        with pytest.raises(AttributeError):
            area.name = "House"  # type: ignore[misc]


class TestFieldUpdates:
    """The tagged Unchanged / SetTo update values."""

    def test_unchanged_is_a_singleton(self) -> None:
        assert Unchanged() is UNCHANGED
        assert repr(UNCHANGED) == "UNCHANGED"

    def test_set_to_empty_is_distinct_from_unchanged(self) -> None:
        assert SetTo("") != UNCHANGED
        assert SetTo("").value == ""
        assert SetTo("x") == SetTo("x")


class TestSchemas:
    """EntitySchema descriptors."""

    def test_hierarchy(self) -> None:
        assert AREA.parent is None
        assert PROJECT.parent is AREA
        assert TASK.parent is PROJECT
        assert SCHEMAS == (AREA, PROJECT, TASK)

    def test_columns(self) -> None:
        assert AREA.columns == ("id", "name", "description", "created_at", "updated_at")
        assert PROJECT.columns == ("id", "name", "area_id", "created_at", "updated_at")
        assert TASK.columns == (
            "id",
            "name",
            "project_id",
            "notes",
            "created_at",
            "updated_at",
        )

    def test_parent_field_requires_parent_schema(self) -> None:
        with pytest.raises(ValueError, match="set together"):
            EntitySchema(kind="note", table="notes", entity_type=Task, parent_field="project_id")
        with pytest.raises(ValueError, match="set together"):
            EntitySchema(kind="note", table="notes", entity_type=Task, parent=PROJECT)

    def test_parent_is_never_mutable(self) -> None:
        for schema in SCHEMAS:
            assert schema.parent_field not in schema.mutable_fields
            assert "name" in schema.mutable_fields

    def test_build(self) -> None:
        task = TASK.build(
            {
                "id": "t1",
                "name": "Buy paint",
                "project_id": "p1",
                "notes": "white",
                "created_at": NOW,
                "updated_at": NOW,
            }
        )

        assert task == Task(
            id="t1",
            name="Buy paint",
            project_id="p1",
            notes="white",
            created_at=NOW,
            updated_at=NOW,
        )


class TestErrors:
    """Error envelopes and kinds."""

    @pytest.mark.parametrize(
        ("error_class", "kind", "status"),
        [
            (InvalidArgumentError, ErrorKind.INVALID_ARGUMENT, 400),
            (NotFoundError, ErrorKind.NOT_FOUND, 404),
            (InternalError, ErrorKind.INTERNAL, 500),
            (DeadlineExceededError, ErrorKind.DEADLINE_EXCEEDED, 504),
        ],
    )
    def test_envelope_round_trip(self, error_class, kind, status) -> None:
        error = error_class("something happened")

        assert error.kind is kind
        assert error.http_status == status
        rebuilt = PlannerError.from_response(error.to_response())
        assert type(rebuilt) is error_class
        assert rebuilt.message == "something happened"

    def test_unknown_kind_becomes_internal(self) -> None:
        rebuilt = PlannerError.from_response({"error": {"kind": "teapot", "message": "hi"}})

        assert isinstance(rebuilt, InternalError)

    def test_malformed_envelope_becomes_internal(self) -> None:
        assert isinstance(PlannerError.from_response(["nope"]), InternalError)
        assert isinstance(PlannerError.from_response({"detail": "x"}), InternalError)

    def test_store_error_carries_context(self) -> None:
        error = StoreError("update", "task", "disk I/O error")

        assert error.operation == "update"
        assert error.kind == "task"
        assert str(error) == "update task failed: disk I/O error"
