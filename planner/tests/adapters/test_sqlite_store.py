"""Integration tests for the SQLite entity store adapter."""

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path

import aiosqlite
import pytest

from planner.adapters.store.sqlite import SQLiteEntityStore
from planner.core.entity_service import build_services
from planner.core.errors import NotFoundError, StoreError
from planner.core.models import AREA, PROJECT, TASK, Area, Project, Task

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "planner.db"


@pytest.fixture
async def store(db_path: Path) -> SQLiteEntityStore:
    """Create a SQLite store with a temporary database."""
    adapter = SQLiteEntityStore(db_path=str(db_path))
    await adapter.initialize()
    yield adapter
    await adapter.close()


def _area(area_id: str = "a1", name: str = "Home") -> Area:
    return Area(id=area_id, name=name, description="", created_at=NOW, updated_at=NOW)


def _project(project_id: str, area_id: str) -> Project:
    return Project(
        id=project_id, name=f"Project {project_id}", area_id=area_id,
        created_at=NOW, updated_at=NOW,
    )


@pytest.mark.asyncio
async def test_initialize_creates_file_and_tables(db_path: Path) -> None:
    adapter = SQLiteEntityStore(db_path=str(db_path))
    await adapter.initialize()
    await adapter.initialize()
    await adapter.close()

    assert db_path.exists()
    async with aiosqlite.connect(str(db_path)) as conn:
        cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        tables = {row[0] for row in await cursor.fetchall()}
        cursor = await conn.execute("SELECT version FROM schema_migrations")
        versions = [row[0] for row in await cursor.fetchall()]

    assert {"areas", "projects", "tasks", "schema_migrations"} <= tables
    assert versions == [1]


@pytest.mark.asyncio
async def test_migrations_are_not_reapplied(db_path: Path) -> None:
    for _ in range(2):
        adapter = SQLiteEntityStore(db_path=str(db_path))
        await adapter.initialize()
        await adapter.close()

    async with aiosqlite.connect(str(db_path)) as conn:
        cursor = await conn.execute("SELECT COUNT(*) FROM schema_migrations")
        assert (await cursor.fetchone())[0] == 1


@pytest.mark.asyncio
async def test_create_and_get(store: SQLiteEntityStore) -> None:
    area = Area(
        id="a1", name="Home", description="Around the house",
        created_at=NOW, updated_at=NOW,
    )

    await store.create(AREA, area)

    assert await store.get(AREA, "a1") == area
    assert await store.get(AREA, "missing") is None


@pytest.mark.asyncio
async def test_duplicate_id_raises_store_error(store: SQLiteEntityStore) -> None:
    await store.create(AREA, _area())

    with pytest.raises(StoreError) as exc_info:
        await store.create(AREA, _area())

    assert exc_info.value.operation == "create"
    assert exc_info.value.kind == "area"


@pytest.mark.asyncio
async def test_list_in_insertion_order_with_filter(store: SQLiteEntityStore) -> None:
    await store.create(AREA, _area("a1"))
    await store.create(AREA, _area("a2", "Work"))
    for project_id, area_id in [("p3", "a1"), ("p1", "a2"), ("p2", "a1")]:
        await store.create(PROJECT, _project(project_id, area_id))

    all_projects = await store.list(PROJECT)
    home_projects = await store.list(PROJECT, "a1")

    assert [p.id for p in all_projects] == ["p3", "p1", "p2"]
    assert [p.id for p in home_projects] == ["p3", "p2"]
    assert await store.list(PROJECT, "nobody") == []


@pytest.mark.asyncio
async def test_exists(store: SQLiteEntityStore) -> None:
    await store.create(AREA, _area())

    assert await store.exists(AREA, "a1") is True
    assert await store.exists(AREA, "a2") is False
    # Same id in another table is a different row.
    assert await store.exists(PROJECT, "a1") is False


@pytest.mark.asyncio
async def test_sparse_update(store: SQLiteEntityStore) -> None:
    task = Task(
        id="t1", name="Buy paint", project_id="p1", notes="white",
        created_at=NOW, updated_at=NOW,
    )
    await store.create(TASK, task)
    later = NOW + timedelta(minutes=5)

    renamed = await store.update(TASK, "t1", {"name": "Buy primer"}, later)
    cleared = await store.update(TASK, "t1", {"notes": ""}, later)
    touched = await store.update(TASK, "t1", {}, later + timedelta(minutes=1))

    assert renamed is not None and renamed.name == "Buy primer"
    assert renamed.notes == "white"
    assert cleared is not None and cleared.notes == ""
    assert touched is not None
    assert touched.updated_at == later + timedelta(minutes=1)
    assert touched.created_at == NOW
    assert touched.name == "Buy primer"


@pytest.mark.asyncio
async def test_update_missing_row_returns_none(store: SQLiteEntityStore) -> None:
    assert await store.update(AREA, "missing", {"name": "x"}, NOW) is None


@pytest.mark.asyncio
async def test_update_rejects_non_mutable_columns(store: SQLiteEntityStore) -> None:
    await store.create(PROJECT, _project("p1", "a1"))

    with pytest.raises(ValueError, match="not updatable"):
        await store.update(PROJECT, "p1", {"area_id": "a2"}, NOW)


@pytest.mark.asyncio
async def test_delete_does_not_touch_children(store: SQLiteEntityStore) -> None:
    await store.create(AREA, _area())
    await store.create(PROJECT, _project("p1", "a1"))

    assert await store.delete(AREA, "a1") is True
    assert await store.delete(AREA, "a1") is False
    assert await store.get(PROJECT, "p1") is not None


@pytest.mark.asyncio
async def test_timestamps_round_trip_as_utc(store: SQLiteEntityStore) -> None:
    stamp = datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)
    await store.create(AREA, Area(id="a1", name="Home", created_at=stamp, updated_at=stamp))

    area = await store.get(AREA, "a1")

    assert area is not None
    assert area.created_at == stamp
    assert area.created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_concurrent_writers(store: SQLiteEntityStore) -> None:
    await asyncio.gather(*(store.create(AREA, _area(f"a{i}", f"Area {i}")) for i in range(25)))

    assert len(await store.list(AREA)) == 25


@pytest.mark.asyncio
async def test_data_survives_reopen(db_path: Path) -> None:
    first = SQLiteEntityStore(db_path=str(db_path))
    await first.create(AREA, _area())
    await first.close()

    second = SQLiteEntityStore(db_path=str(db_path))
    try:
        assert await second.get(AREA, "a1") == _area()
    finally:
        await second.close()


@pytest.mark.asyncio
async def test_services_over_sqlite(store: SQLiteEntityStore) -> None:
    services = build_services(store)
    area = await services.areas.create("Home")
    project = await services.projects.create("Renovation", area.id)
    task = await services.tasks.create("Buy paint", project.id)

    assert await services.tasks.get(task.id) == task
    assert await services.tasks.list(project.id) == [task]

    await services.areas.delete(area.id)

    assert await services.projects.get(project.id) == project
    with pytest.raises(NotFoundError):
        await services.areas.delete(area.id)
