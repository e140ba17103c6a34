import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from pharmacy_scheduling.modules.appointments.enums import ACTIVE_STATUSES
from pharmacy_scheduling.modules.appointments.validation import as_instant


@dataclass(frozen=True)
class Slot:
    """A candidate range for one resource.

    ``start``/``end`` are wall-clock in ``timezone``. With a timezone the slot is
    compared with bookings as UTC instants, so bookings kept in other zones
    still collide; without one, wall clocks are compared as given.
    """
    resource_id: uuid.UUID
    start: datetime
    end: datetime
    timezone: str | None = None

    def overlaps(self, start: datetime, end: datetime) -> bool:
        # half-open ranges: back-to-back slots do not overlap
        return self.start < end and start < self.end

    def collides_with(self, booking) -> bool:
        if self.timezone is None:
            return self.overlaps(booking.start, booking.end)
        booking_tz = getattr(booking, "timezone", None) or self.timezone
        start, end = as_instant(self.start, self.timezone), as_instant(self.end, self.timezone)
        return start < as_instant(booking.end, booking_tz) and as_instant(booking.start, booking_tz) < end


@dataclass
class Available:
    slot: Slot
    ok: bool = True


@dataclass
class Conflict:
    slot: Slot
    conflicting_ids: list[uuid.UUID] = field(default_factory=list)
    ok: bool = False


def occupies(booking) -> bool:
    return booking.status in ACTIVE_STATUSES and booking.deleted_at is None


def find_conflicts(slot: Slot, bookings: Iterable, exclude_id: uuid.UUID | None = None) -> list[uuid.UUID]:
    """Ids of active bookings overlapping ``slot``, in start order.

    ``bookings`` may span resources; callers that check a patient rather than
    a resource pass that patient's bookings.
    """
    hits = [
        b for b in bookings
        if b.id != exclude_id and occupies(b) and slot.collides_with(b)
    ]
    hits.sort(key=lambda b: (b.start, str(b.id)))
    return [b.id for b in hits]


def check_slot(slot: Slot, bookings: Iterable, exclude_id: uuid.UUID | None = None) -> Available | Conflict:
    ids = find_conflicts(slot, bookings, exclude_id)
    if ids:
        return Conflict(slot, ids)
    return Available(slot)
