"""Planner RPC client.

Thin call-through over httpx: one method per service operation, no
business logic. Error envelopes are re-raised as the same PlannerError
subclasses the services raise; entities come back as core dataclasses.

Update methods take ``None`` to mean "leave unchanged". Any string,
including "", is sent and overwrites the stored value.
"""

import logging
from typing import Any

import httpx

from planner.adapters.rpc.codec import entity_from_dict
from planner.adapters.rpc.http_server import RPC_PREFIX, TIMEOUT_HEADER
from planner.core.errors import DeadlineExceededError, InternalError, PlannerError
from planner.core.models import AREA, PROJECT, TASK, Area, EntitySchema, Project, Task

logger = logging.getLogger(__name__)


class PlannerClient:
    """Async client for the Planner RPC server."""

    def __init__(self, base_url: str, timeout: float = 30.0):
        """Initialize the client.

        Args:
            base_url: Server root, e.g. http://localhost:50051
            timeout: Per-call deadline in seconds, also sent to the server.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Content-Type": "application/json",
                TIMEOUT_HEADER: f"{timeout:g}",
            },
            timeout=timeout,
        )

    async def __aenter__(self) -> "PlannerClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self.client.aclose()

    # Areas

    async def create_area(self, name: str, description: str = "") -> Area:
        return await self._entity(AREA, "CreateArea", {"name": name, "description": description})

    async def get_area(self, area_id: str) -> Area:
        return await self._entity(AREA, "GetArea", {"id": area_id})

    async def list_areas(self) -> list[Area]:
        return await self._entities(AREA, "ListAreas", {})

    async def update_area(
        self, area_id: str, name: str | None = None, description: str | None = None
    ) -> Area:
        payload = _sparse({"id": area_id, "name": name, "description": description})
        return await self._entity(AREA, "UpdateArea", payload)

    async def delete_area(self, area_id: str) -> bool:
        return await self._delete("DeleteArea", area_id)

    # Projects

    async def create_project(self, name: str, area_id: str) -> Project:
        return await self._entity(
            PROJECT, "CreateProject", {"name": name, "area_id": area_id}
        )

    async def get_project(self, project_id: str) -> Project:
        return await self._entity(PROJECT, "GetProject", {"id": project_id})

    async def list_projects(self, area_id: str | None = None) -> list[Project]:
        return await self._entities(PROJECT, "ListProjects", _sparse({"area_id": area_id}))

    async def update_project(self, project_id: str, name: str | None = None) -> Project:
        payload = _sparse({"id": project_id, "name": name})
        return await self._entity(PROJECT, "UpdateProject", payload)

    async def delete_project(self, project_id: str) -> bool:
        return await self._delete("DeleteProject", project_id)

    # Tasks

    async def create_task(self, name: str, project_id: str, notes: str = "") -> Task:
        return await self._entity(
            TASK, "CreateTask", {"name": name, "project_id": project_id, "notes": notes}
        )

    async def get_task(self, task_id: str) -> Task:
        return await self._entity(TASK, "GetTask", {"id": task_id})

    async def list_tasks(self, project_id: str | None = None) -> list[Task]:
        return await self._entities(TASK, "ListTasks", _sparse({"project_id": project_id}))

    async def update_task(
        self, task_id: str, name: str | None = None, notes: str | None = None
    ) -> Task:
        payload = _sparse({"id": task_id, "name": name, "notes": notes})
        return await self._entity(TASK, "UpdateTask", payload)

    async def delete_task(self, task_id: str) -> bool:
        return await self._delete("DeleteTask", task_id)

    async def _entity(self, schema: EntitySchema, operation: str, payload: dict[str, Any]) -> Any:
        data = await self._call(operation, payload)
        return self._decode(schema, data.get(schema.kind))

    async def _entities(
        self, schema: EntitySchema, operation: str, payload: dict[str, Any]
    ) -> list[Any]:
        data = await self._call(operation, payload)
        return [self._decode(schema, item) for item in data.get(schema.plural, [])]

    async def _delete(self, operation: str, entity_id: str) -> bool:
        data = await self._call(operation, {"id": entity_id})
        return bool(data.get("success"))

    @staticmethod
    def _decode(schema: EntitySchema, item: Any) -> Any:
        if not isinstance(item, dict):
            raise InternalError(f"malformed {schema.kind} in response")
        try:
            return entity_from_dict(schema, item)
        except ValueError as e:
            raise InternalError(f"malformed {schema.kind} in response") from e

    async def _call(self, operation: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST one operation and return the decoded reply.

        Raises:
            PlannerError: The server's classified failure, DeadlineExceededError
                when the client-side deadline passes, or InternalError on
                transport failure.
        """
        try:
            response = await self.client.post(f"{RPC_PREFIX}{operation}", json=payload)
        except httpx.TimeoutException as e:
            raise DeadlineExceededError(
                f"{operation} did not complete within {self.timeout:g}s"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Transport error calling {operation}: {e}")
            raise InternalError(f"transport failure calling {operation}") from e

        try:
            data = response.json()
        except ValueError:
            raise InternalError(
                f"{operation} returned non-JSON response (HTTP {response.status_code})"
            ) from None

        if response.status_code != 200:
            raise PlannerError.from_response(data)
        if not isinstance(data, dict):
            raise InternalError(f"{operation} returned malformed response")
        return data


def _sparse(payload: dict[str, Any]) -> dict[str, Any]:
    """Drop keys whose value is None so the server leaves them unchanged."""
    return {key: value for key, value in payload.items() if value is not None}
