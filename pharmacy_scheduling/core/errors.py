"""Scheduling error taxonomy.

Every error is a per-request outcome: the domain layer raises, the service
rolls the session back, and the HTTP layer renders ``{code, message, details}``
with the status code declared on the class.
"""
import uuid
from typing import Any


class SchedulingError(Exception):
    """Base class for all domain rejections."""
    code = "scheduling_error"
    http_status = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(SchedulingError):
    """Malformed input. Never retried automatically."""
    code = "validation_error"
    http_status = 422

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details)
        self.field = field


class SlotConflict(SchedulingError):
    """The requested time range overlaps active bookings."""
    code = "slot_conflict"
    http_status = 409

    def __init__(self, conflicting_ids: list[uuid.UUID], message: str | None = None):
        super().__init__(
            message or "Requested slot overlaps an existing appointment",
            {"conflicting_appointment_ids": [str(i) for i in conflicting_ids]},
        )
        self.conflicting_ids = list(conflicting_ids)


class OutsideBusinessHours(SchedulingError):
    code = "outside_business_hours"
    http_status = 409


class InvalidTransition(SchedulingError):
    code = "invalid_transition"
    http_status = 409

    def __init__(self, current: str, target: str, message: str | None = None):
        super().__init__(
            message or f"Invalid status transition from {current} to {target}",
            {"from": current, "to": target},
        )
        self.current = current
        self.target = target


class StaleState(SchedulingError):
    """Caller's expected version is behind; re-fetch and retry."""
    code = "stale_state"
    http_status = 412

    def __init__(self, expected: int | None, actual: int | None):
        super().__init__(
            f"Appointment version mismatch (expected {expected}, found {actual})",
            {"expected_version": expected, "actual_version": actual},
        )


class NotFound(SchedulingError):
    code = "not_found"
    http_status = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found", {"entity": entity, "id": str(entity_id)})


class ResourceBusy(SchedulingError):
    """The per-resource lock was not acquired in time. Nothing was written."""
    code = "resource_busy"
    http_status = 503

    def __init__(self, resource_id: Any):
        super().__init__(f"Resource {resource_id} is busy, retry shortly", {"resource_id": str(resource_id)})
