"""Relational schema shared by the SQLite and PostgreSQL stores.

One table per entity kind. Parent columns are indexed but carry no
FOREIGN KEY constraint: referential checks belong to the service layer.

Migrations are applied in version order at store-open time and recorded
in ``schema_migrations``; each adapter supplies its own timestamp column
type.
"""

from dataclasses import dataclass

from planner.core.models import SCHEMAS, EntitySchema

MIGRATIONS_TABLE = "schema_migrations"


@dataclass(frozen=True)
class Migration:
    """One schema step, rendered per dialect."""

    version: int
    description: str

    def statements(self, timestamp_type: str) -> list[str]:
        if self.version == 1:
            return _initial_statements(timestamp_type)
        raise ValueError(f"Unknown migration version: {self.version}")


MIGRATIONS: tuple[Migration, ...] = (
    Migration(version=1, description="create areas, projects and tasks"),
)


def create_table_sql(schema: EntitySchema, timestamp_type: str) -> str:
    """CREATE TABLE statement for one entity kind."""
    column_defs = ["id TEXT PRIMARY KEY", "name TEXT NOT NULL"]
    if schema.parent_field:
        column_defs.append(f"{schema.parent_field} TEXT NOT NULL")
    for field_name in schema.text_fields:
        column_defs.append(f"{field_name} TEXT NOT NULL DEFAULT ''")
    column_defs.append(f"created_at {timestamp_type} NOT NULL")
    column_defs.append(f"updated_at {timestamp_type} NOT NULL")
    body = ",\n    ".join(column_defs)
    return f"CREATE TABLE IF NOT EXISTS {schema.table} (\n    {body}\n)"


def _initial_statements(timestamp_type: str) -> list[str]:
    statements = [create_table_sql(schema, timestamp_type) for schema in SCHEMAS]
    for schema in SCHEMAS:
        if schema.parent_field:
            statements.append(
                f"CREATE INDEX IF NOT EXISTS idx_{schema.table}_{schema.parent_field} "
                f"ON {schema.table}({schema.parent_field})"
            )
    return statements


def select_columns(schema: EntitySchema) -> str:
    """Comma-separated column list in EntitySchema.columns order."""
    return ", ".join(schema.columns)


def check_update_columns(schema: EntitySchema, columns: list[str]) -> None:
    """Reject column names that Update may not write.

    Column names are interpolated into SQL, so only schema-declared
    mutable fields are accepted.
    """
    for column in columns:
        if column not in schema.mutable_fields:
            raise ValueError(f"{schema.kind} column is not updatable: {column}")
