"""Appointment status transitions.

Pure functions over an ``Appointment`` row: they validate the requested edge,
apply the status and its audit timestamp in place, and never touch the
database. Persistence and version bumps are the service's job.
"""
from dataclasses import dataclass, field
from datetime import datetime
from zoneinfo import ZoneInfo

from pydantic import ValidationError as PydanticValidationError

from pharmacy_scheduling.core.errors import InvalidTransition, StaleState, ValidationError
from pharmacy_scheduling.modules.appointments.enums import AppointmentStatus, ConfirmationStatus
from pharmacy_scheduling.modules.appointments.models import Appointment
from pharmacy_scheduling.modules.appointments.schemas import Outcome

S = AppointmentStatus

TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    S.SCHEDULED: frozenset({S.CONFIRMED, S.CANCELLED, S.NO_SHOW, S.RESCHEDULED}),
    S.CONFIRMED: frozenset({S.IN_PROGRESS, S.CANCELLED, S.NO_SHOW, S.RESCHEDULED}),
    S.IN_PROGRESS: frozenset({S.COMPLETED, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.NO_SHOW: frozenset(),
    S.RESCHEDULED: frozenset(),
}

TERMINAL = frozenset(s for s, nxt in TRANSITIONS.items() if not nxt)

# Completing a scheduled or confirmed visit walks the remaining edges of the happy path
COMPLETION_PATH = (S.CONFIRMED, S.IN_PROGRESS, S.COMPLETED)

AUDIT_FIELDS = {
    S.CONFIRMED: "confirmed_at",
    S.IN_PROGRESS: "in_progress_at",
    S.COMPLETED: "completed_at",
    S.CANCELLED: "cancelled_at",
    S.NO_SHOW: "no_show_at",
    S.RESCHEDULED: "rescheduled_at",
}


@dataclass
class TransitionPayload:
    reason: str | None = None
    outcome: Outcome | dict | None = None
    notify_patient: bool = False


@dataclass
class TransitionResult:
    appointment: Appointment
    previous_status: AppointmentStatus
    audit_field: str
    audit_value: datetime
    path: list[AppointmentStatus] = field(default_factory=list)


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def local_now(tz_name: str, now: datetime) -> datetime:
    """``now`` (aware) as naive wall-clock time in ``tz_name``."""
    return now.astimezone(ZoneInfo(tz_name)).replace(tzinfo=None)


def ensure_version(appt: Appointment, expected_version: int | None) -> None:
    if expected_version is not None and appt.version != expected_version:
        raise StaleState(expected_version, appt.version)


def _parse_outcome(raw: Outcome | dict | None) -> Outcome:
    if raw is None:
        raise ValidationError("Outcome is required when completing an appointment", field="outcome")
    if isinstance(raw, Outcome):
        return raw
    try:
        return Outcome.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid outcome: {e.errors()[0]['msg']}", field="outcome")


def _path(current: AppointmentStatus, target: AppointmentStatus) -> list[AppointmentStatus]:
    if can_transition(current, target):
        return [target]
    if target == S.COMPLETED and current in (S.SCHEDULED, S.CONFIRMED):
        skip = 0 if current == S.SCHEDULED else 1
        return list(COMPLETION_PATH[skip:])
    raise InvalidTransition(current.value, target.value)


def transition(
    appt: Appointment,
    target: AppointmentStatus,
    payload: TransitionPayload | None = None,
    *,
    now: datetime,
    expected_version: int | None = None,
) -> TransitionResult:
    """Validate and apply ``appt.status -> target``.

    Raises ``StaleState`` on a version mismatch, ``ValidationError`` when the
    payload lacks what the target needs, and ``InvalidTransition`` when the edge
    is not allowed.
    """
    payload = payload or TransitionPayload()
    current = AppointmentStatus(appt.status)
    target = AppointmentStatus(target)
    ensure_version(appt, expected_version)

    outcome: Outcome | None = None
    if target == S.RESCHEDULED:
        raise ValidationError("Use reschedule to move an appointment to a new slot", field="status", value=target.value)
    if target == S.COMPLETED:
        outcome = _parse_outcome(payload.outcome)
    if target == S.CANCELLED and payload.notify_patient and not (payload.reason or "").strip():
        raise ValidationError("A cancellation reason is required when notifying the patient", field="reason")

    path = _path(current, target)

    if target == S.NO_SHOW and local_now(appt.timezone, now) < appt.start:
        raise InvalidTransition(current.value, target.value, "Cannot mark no-show before the scheduled time has elapsed")

    for step in path:
        _apply(appt, step, now, payload, outcome)

    audit_field = AUDIT_FIELDS[target]
    return TransitionResult(appt, current, audit_field, getattr(appt, audit_field), path)


def mark_rescheduled(appt: Appointment, reason: str, *, now: datetime, expected_version: int | None = None) -> TransitionResult:
    """Close the old record of a reschedule. The replacement is created by the caller."""
    current = AppointmentStatus(appt.status)
    ensure_version(appt, expected_version)
    if not can_transition(current, S.RESCHEDULED):
        raise InvalidTransition(current.value, S.RESCHEDULED.value, f"Cannot reschedule appointment with status: {current.value}")
    _apply(appt, S.RESCHEDULED, now, TransitionPayload(reason=reason), None)
    return TransitionResult(appt, current, "rescheduled_at", appt.rescheduled_at, [S.RESCHEDULED])


def _apply(appt: Appointment, step: AppointmentStatus, now: datetime, payload: TransitionPayload, outcome: Outcome | None) -> None:
    appt.status = step
    setattr(appt, AUDIT_FIELDS[step], now)
    if step == S.CONFIRMED:
        appt.confirmation_status = ConfirmationStatus.CONFIRMED
    elif step == S.COMPLETED:
        appt.outcome = {**outcome.model_dump(mode="json", exclude_unset=True), **(outcome.model_extra or {})}
    elif step == S.CANCELLED:
        appt.cancellation_reason = payload.reason
    elif step == S.RESCHEDULED:
        appt.rescheduled_reason = payload.reason
