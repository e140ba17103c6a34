from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pharmacy_scheduling.core.errors import ValidationError
from pharmacy_scheduling.modules.appointments.enums import AppointmentType, MIN_DURATION, MAX_DURATION


def resolve_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown timezone: {name}", field="timezone", value=name)


def to_wall_clock(start: datetime, tz_name: str) -> datetime:
    """Naive local time for ``start``. Aware values are converted into ``tz_name`` first."""
    if start.tzinfo is not None:
        start = start.astimezone(resolve_timezone(tz_name))
    return start.replace(tzinfo=None, second=0, microsecond=0)


def validate_duration(appointment_type: AppointmentType, duration: int) -> None:
    if duration < MIN_DURATION or duration > MAX_DURATION:
        raise ValidationError(
            f"Duration must be between {MIN_DURATION} and {MAX_DURATION} minutes",
            field="duration", value=duration,
        )
    minimum = AppointmentType(appointment_type).min_duration
    if duration < minimum:
        raise ValidationError(
            f"{AppointmentType(appointment_type).label} requires at least {minimum} minutes",
            field="duration", value=duration,
        )


def validate_slot(start: datetime, duration: int, tz_name: str, now: datetime) -> datetime:
    """Check a wall-clock start and return its end."""
    end = start + timedelta(minutes=duration)
    if end.date() != start.date() and end.time() != datetime.min.time():
        raise ValidationError("Appointment must end on the day it starts", field="duration", value=duration)
    local_now = now.astimezone(resolve_timezone(tz_name)).replace(tzinfo=None)
    if start < local_now:
        raise ValidationError("Appointment cannot be scheduled in the past", field="start", value=start.isoformat())
    return end


def as_instant(wall: datetime, tz_name: str) -> datetime:
    """Aware UTC instant of a naive wall-clock time in ``tz_name``."""
    return wall.replace(tzinfo=resolve_timezone(tz_name)).astimezone(timezone.utc)
