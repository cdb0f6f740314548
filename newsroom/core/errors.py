"""
Typed failures raised by the services and the storage layer.

The API layer maps each one to an HTTP status via a single exception handler;
in-process callers catch them directly.
"""

from __future__ import annotations


class NewsroomError(Exception):
    """Base exception for rundown and show operations."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(NewsroomError):
    """Referenced rundown, item, show or story does not exist."""

    status_code = 404
    code = "not_found"

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class ValidationError(NewsroomError):
    """Malformed input, rejected before any storage mutation."""

    status_code = 422
    code = "validation_error"


class ConflictError(NewsroomError):
    """
    Concurrent write collided at the storage layer.

    Typically a unique-constraint violation on (rundown_id, position). Callers
    should re-fetch the rundown and retry.
    """

    status_code = 409
    code = "conflict"


class StorageUnavailableError(NewsroomError):
    """Transient backend failure. Safe to retry once the backend recovers."""

    status_code = 503
    code = "storage_unavailable"
