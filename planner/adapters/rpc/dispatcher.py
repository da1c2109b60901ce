"""RPC operation dispatcher.

Maps the transport's operation names (CreateArea, GetArea, ListAreas,
UpdateArea, DeleteArea, and the same for Project and Task) onto the
entity services, unmarshalling request objects and marshalling replies.

Request shapes:
    Create<Kind>   {"name", parent field (Project/Task), text fields (optional)}
    Get<Kind>      {"id"}
    List<Kinds>    {parent field (optional)}
    Update<Kind>   {"id", any updatable field}; a present key is set, even
                   to "", while an absent or null key is left unchanged
    Delete<Kind>   {"id"}

Replies are {"<kind>": {...}}, {"<kinds>": [...]} or {"success": true}.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from planner.adapters.rpc.codec import entity_to_dict
from planner.core.entity_service import HierarchicalEntityService, Services
from planner.core.errors import InvalidArgumentError
from planner.core.models import UNCHANGED, FieldUpdate, SetTo

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


class UnknownOperationError(LookupError):
    """Raised for an operation name the dispatcher does not serve."""


class RPCDispatcher:
    """Routes named operations to the entity services."""

    def __init__(self, services: Services):
        """Initialize the dispatcher.

        Args:
            services: Area, project and task services to expose.
        """
        self.services = services
        self._operations: dict[str, Handler] = {}
        for service in services.by_kind().values():
            self._register(service)

    @property
    def operations(self) -> list[str]:
        return sorted(self._operations)

    def has_operation(self, operation: str) -> bool:
        return operation in self._operations

    async def dispatch(self, operation: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Run one operation.

        Raises:
            UnknownOperationError: If the operation is not served.
            InvalidArgumentError: If the payload is not a JSON object.
            PlannerError: Whatever the service raises.
        """
        handler = self._operations.get(operation)
        if handler is None:
            raise UnknownOperationError(operation)
        if not isinstance(payload, dict):
            raise InvalidArgumentError("request body must be a JSON object")
        logger.debug(f"Dispatching {operation}")
        return await handler(payload)

    def _register(self, service: HierarchicalEntityService) -> None:
        schema = service.schema
        name = schema.kind.capitalize()
        plural = schema.plural.capitalize()

        async def create(payload: dict[str, Any]) -> dict[str, Any]:
            allowed = {"name", *schema.text_fields}
            if schema.parent_field:
                allowed.add(schema.parent_field)
            _reject_unknown(payload, allowed)
            text_fields = {
                field_name: _optional_str(payload, field_name)
                for field_name in schema.text_fields
                if payload.get(field_name) is not None
            }
            parent_id = (
                _optional_str(payload, schema.parent_field)
                if schema.parent_field
                else None
            )
            entity = await service.create(
                _optional_str(payload, "name") or "", parent_id, **text_fields
            )
            return {schema.kind: entity_to_dict(entity)}

        async def get(payload: dict[str, Any]) -> dict[str, Any]:
            _reject_unknown(payload, {"id"})
            entity = await service.get(_optional_str(payload, "id") or "")
            return {schema.kind: entity_to_dict(entity)}

        async def list_(payload: dict[str, Any]) -> dict[str, Any]:
            allowed = {schema.parent_field} if schema.parent_field else set()
            _reject_unknown(payload, allowed)
            parent_id = (
                _optional_str(payload, schema.parent_field)
                if schema.parent_field
                else None
            )
            entities = await service.list(parent_id)
            return {schema.plural: [entity_to_dict(entity) for entity in entities]}

        async def update(payload: dict[str, Any]) -> dict[str, Any]:
            _reject_unknown(payload, {"id", *schema.mutable_fields})
            changes: dict[str, FieldUpdate] = {}
            for field_name in schema.mutable_fields:
                value = _optional_str(payload, field_name)
                changes[field_name] = UNCHANGED if value is None else SetTo(value)
            entity = await service.update(_optional_str(payload, "id") or "", changes)
            return {schema.kind: entity_to_dict(entity)}

        async def delete(payload: dict[str, Any]) -> dict[str, Any]:
            _reject_unknown(payload, {"id"})
            success = await service.delete(_optional_str(payload, "id") or "")
            return {"success": success}

        self._operations[f"Create{name}"] = create
        self._operations[f"Get{name}"] = get
        self._operations[f"List{plural}"] = list_
        self._operations[f"Update{name}"] = update
        self._operations[f"Delete{name}"] = delete


def _optional_str(payload: dict[str, Any], key: str) -> str | None:
    """Fetch a string field; None when absent or null."""
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidArgumentError(f"{key} must be a string")
    return value


def _reject_unknown(payload: dict[str, Any], allowed: set[str]) -> None:
    unknown = sorted(set(payload) - allowed)
    if unknown:
        raise InvalidArgumentError(f"unknown field: {', '.join(unknown)}")
