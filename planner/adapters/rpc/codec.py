"""JSON marshalling of entities for the RPC transport.

Timestamps travel as ISO-8601 strings with a UTC offset.
"""

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from planner.core.models import Entity, EntitySchema


def entity_to_dict(entity: Entity) -> dict[str, Any]:
    """Outward representation of an entity."""
    data = asdict(entity)
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = value.astimezone(timezone.utc).isoformat()
    return data


def entity_from_dict(schema: EntitySchema, data: dict[str, Any]) -> Entity:
    """Rebuild an entity from its outward representation.

    Raises:
        ValueError: If fields are missing or timestamps are malformed.
    """
    try:
        values = {column: data[column] for column in schema.columns}
        values["created_at"] = datetime.fromisoformat(values["created_at"])
        values["updated_at"] = datetime.fromisoformat(values["updated_at"])
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed {schema.kind} payload: {e}") from e
    return schema.build(values)
