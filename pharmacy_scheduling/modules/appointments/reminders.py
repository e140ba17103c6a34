from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from pharmacy_scheduling.core.errors import ValidationError
from pharmacy_scheduling.modules.appointments.enums import ReminderChannel, DeliveryStatus
from pharmacy_scheduling.modules.appointments.schemas import Reminder

DEFAULT_OFFSETS = [
    (ReminderChannel.EMAIL, timedelta(hours=24)),
    (ReminderChannel.SMS, timedelta(hours=24)),
    (ReminderChannel.PUSH, timedelta(hours=2)),
    (ReminderChannel.PUSH, timedelta(minutes=15)),
]


def default_reminders(start: datetime, tz_name: str, now: datetime) -> list[dict]:
    """Reminders for a wall-clock ``start``, dropping those already due."""
    start_at = start.replace(tzinfo=ZoneInfo(tz_name))
    out = []
    for channel, offset in DEFAULT_OFFSETS:
        when = start_at - offset
        if when > now:
            out.append(Reminder(channel=channel, scheduled_for=when).model_dump(mode="json"))
    return out


def record_delivery(
    reminders: list[dict],
    index: int,
    delivery_status: DeliveryStatus,
    failure_reason: str | None,
    now: datetime,
) -> list[dict]:
    """Return a new reminder list with entry ``index`` updated.

    Entries are never removed and a sent reminder never goes back to pending.
    """
    if index < 0 or index >= len(reminders):
        raise ValidationError(f"No reminder at index {index}", field="index", value=index)
    current = Reminder.model_validate(reminders[index])
    status = DeliveryStatus(delivery_status)

    if current.sent and status == DeliveryStatus.PENDING:
        raise ValidationError("A sent reminder cannot be marked pending again", field="delivery_status", value=status.value)

    updated = current.model_copy(update={"delivery_status": status})
    if status in (DeliveryStatus.SENT, DeliveryStatus.DELIVERED):
        updated.sent = True
        updated.sent_at = current.sent_at or now
        updated.failure_reason = None
    elif status == DeliveryStatus.FAILED:
        updated.failure_reason = failure_reason or "unknown"

    out = list(reminders)
    out[index] = updated.model_dump(mode="json")
    return out
