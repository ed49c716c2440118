"""
Exceptions raised by the service layer.

Blueprints translate them with utils.errors.register_service_error_handlers:

    NotFoundError     404
    ValidationError   422  nothing was written
    ConflictError     409  unique-key collision that outlived its retries
    PendingDaysError  409  person must regularize earlier days first
    UnavailableError  503  store unreachable, safe to retry
"""

from __future__ import annotations


class NotFoundError(Exception):
    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        where = f" id={resource_id}" if resource_id is not None else ""
        super().__init__(f"{resource}{where} not found")


class ValidationError(Exception):
    """A rejected request. ``details`` maps a field or task id to its problem."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    def __init__(self, resource: str, key: str, value: str | None = None) -> None:
        self.resource = resource
        self.key = key
        self.value = value
        super().__init__(f"{resource} ({key})={value} collided with a concurrent write")


class PendingDaysError(Exception):
    def __init__(self, person_id: int, pending_dates: list[str]) -> None:
        self.person_id = person_id
        self.pending_dates = pending_dates
        super().__init__(
            f"Person id={person_id} must first resolve {len(pending_dates)} earlier day(s): "
            + ", ".join(pending_dates)
        )


class UnavailableError(Exception):
    pass
