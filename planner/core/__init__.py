"""Core domain logic for the Planner backend.

This package contains zero external dependencies and represents
the pure business logic of the application. All adapters and
external integrations are handled by the adapters package.
"""

from .errors import (
    DeadlineExceededError,
    ErrorKind,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    PlannerError,
    StoreError,
)
from .models import (
    AREA,
    PROJECT,
    TASK,
    UNCHANGED,
    Area,
    DeletePolicy,
    EntitySchema,
    Project,
    SetTo,
    Task,
    Unchanged,
)

__all__ = [
    "AREA",
    "PROJECT",
    "TASK",
    "UNCHANGED",
    "Area",
    "DeadlineExceededError",
    "DeletePolicy",
    "EntitySchema",
    "ErrorKind",
    "InternalError",
    "InvalidArgumentError",
    "NotFoundError",
    "PlannerError",
    "Project",
    "SetTo",
    "StoreError",
    "Task",
    "Unchanged",
]
