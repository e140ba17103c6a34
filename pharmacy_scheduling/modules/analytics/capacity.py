"""Capacity and utilization over a snapshot of appointments.

Everything here is a pure function of its inputs: the same appointments,
shifts and range always yield the same buckets and recommendations.
"""
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Iterable, Iterator, Mapping, Sequence

from pharmacy_scheduling.core.config import settings, OverbookingThreshold
from pharmacy_scheduling.modules.appointments.enums import AppointmentStatus, BOOKED_STATUSES
from pharmacy_scheduling.modules.availability.business_hours import Shift, shifts_on

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


class Granularity(str, Enum):
    BY_RESOURCE = "by_resource"
    BY_DAY_OF_WEEK = "by_day_of_week"
    BY_HOUR_OF_DAY = "by_hour_of_day"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class Overbooking:
    excess: int
    severity: Severity


@dataclass
class UtilizationBucket:
    total_slots: int
    booked_slots: int
    utilization_rate: float
    raw_ratio: float
    resource_id: uuid.UUID | None = None
    day_of_week: int | None = None
    hour_of_day: int | None = None
    overbooking: Overbooking | None = None

    @property
    def is_overbooked(self) -> bool:
        return self.overbooking is not None


def utilization(booked: int, total: int) -> tuple[float, float]:
    """``(rate clamped to 0..100, unclamped booked/total)``; an empty capacity reads as 0."""
    if total <= 0:
        return 0.0, 0.0
    raw = booked / total
    return max(0.0, min(100.0, raw * 100)), raw


def overbooking(booked: int, total: int, threshold: OverbookingThreshold) -> Overbooking | None:
    if booked <= total:
        return None
    excess = booked - total
    if excess > threshold.high:
        severity = Severity.HIGH
    elif excess > threshold.medium:
        severity = Severity.MEDIUM
    else:
        severity = Severity.LOW
    return Overbooking(excess, severity)


def days(date_from: date, date_to: date) -> Iterator[date]:
    d = date_from
    while d <= date_to:
        yield d
        d += timedelta(days=1)


def counts_as_booked(appt) -> bool:
    return appt.status in BOOKED_STATUSES and appt.deleted_at is None


def day_utilization(shifts: Sequence[Shift], bookings: Iterable, day: date) -> float:
    total = sum(s.capacity() for s in shifts_on(shifts, day))
    booked = sum(1 for b in bookings if b.scheduled_date == day and counts_as_booked(b))
    return utilization(booked, total)[0]


def _capacity(shifts_by_resource: Mapping[uuid.UUID, Sequence[Shift]], date_from: date, date_to: date, granularity: Granularity) -> Counter:
    totals: Counter = Counter()
    for resource_id, shifts in shifts_by_resource.items():
        for d in days(date_from, date_to):
            for shift in shifts_on(shifts, d):
                if granularity == Granularity.BY_HOUR_OF_DAY:
                    for start in shift.capacity_starts(d):
                        totals[start.hour] += 1
                elif granularity == Granularity.BY_DAY_OF_WEEK:
                    totals[d.weekday()] += shift.capacity()
                else:
                    totals[resource_id] += shift.capacity()
    return totals


def _bucket_key(appt, granularity: Granularity):
    if granularity == Granularity.BY_HOUR_OF_DAY:
        return appt.scheduled_time.hour
    if granularity == Granularity.BY_DAY_OF_WEEK:
        return appt.scheduled_date.weekday()
    return appt.assigned_to


def aggregate(
    appointments: Iterable,
    shifts_by_resource: Mapping[uuid.UUID, Sequence[Shift]],
    date_from: date,
    date_to: date,
    granularity: Granularity,
    thresholds: Mapping[str, OverbookingThreshold] | None = None,
) -> list[UtilizationBucket]:
    granularity = Granularity(granularity)
    threshold = (thresholds or settings.OVERBOOKING_THRESHOLDS)[granularity.value]
    totals = _capacity(shifts_by_resource, date_from, date_to, granularity)
    booked: Counter = Counter(
        _bucket_key(a, granularity)
        for a in appointments
        if counts_as_booked(a) and date_from <= a.scheduled_date <= date_to
    )

    buckets = []
    for key in sorted(set(totals) | set(booked), key=str if granularity == Granularity.BY_RESOURCE else None):
        total, count = totals.get(key, 0), booked.get(key, 0)
        rate, raw = utilization(count, total)
        b = UtilizationBucket(
            total_slots=total,
            booked_slots=count,
            utilization_rate=rate,
            raw_ratio=raw,
            overbooking=overbooking(count, total, threshold),
        )
        if granularity == Granularity.BY_RESOURCE:
            b.resource_id = key
        elif granularity == Granularity.BY_DAY_OF_WEEK:
            b.day_of_week = key
        else:
            b.hour_of_day = key
        buckets.append(b)
    return buckets


def bucket_label(b: UtilizationBucket, names: Mapping[uuid.UUID, str] | None = None) -> str:
    if b.day_of_week is not None:
        return DAY_NAMES[b.day_of_week]
    if b.hour_of_day is not None:
        return f"{b.hour_of_day:02d}:00-{(b.hour_of_day + 1) % 24:02d}:00"
    return (names or {}).get(b.resource_id) or f"Pharmacist {b.resource_id}"


def overall_utilization(buckets: Sequence[UtilizationBucket]) -> float:
    return utilization(sum(b.booked_slots for b in buckets), sum(b.total_slots for b in buckets))[0]


def recommendations(buckets: Sequence[UtilizationBucket], names: Mapping[uuid.UUID, str] | None = None) -> list[str]:
    high, low = settings.HIGH_UTILIZATION_PERCENT, settings.LOW_UTILIZATION_PERCENT
    out = []
    for b in buckets:
        label = bucket_label(b, names)
        if b.overbooking and b.overbooking.severity == Severity.HIGH:
            out.append(f"{label} is overbooked by {b.overbooking.excess} appointments; move bookings or add a shift")
        elif b.total_slots and b.utilization_rate >= high:
            out.append(f"{label} is at {b.utilization_rate:.0f}% utilization; consider adding capacity")
        elif b.total_slots and b.utilization_rate <= low:
            out.append(f"{label} is under-utilized at {b.utilization_rate:.0f}%; consider reducing hours or promoting these slots")

    if any(b.total_slots for b in buckets):
        overall = overall_utilization(buckets)
        if overall > 85:
            out.append(f"Overall utilization is {overall:.0f}%; consider extending working hours")
        elif overall < 50:
            out.append(f"Overall utilization is {overall:.0f}%; consider targeted outreach to fill open slots")
    return out


def summarize(appointments: Iterable) -> dict:
    statuses = Counter(
        AppointmentStatus(a.status) for a in appointments if a.deleted_at is None
    )
    booked = sum(statuses[s] for s in BOOKED_STATUSES)
    no_show = statuses[AppointmentStatus.NO_SHOW]
    return {
        "total": sum(statuses.values()),
        "booked": booked,
        "completed": statuses[AppointmentStatus.COMPLETED],
        "cancelled": statuses[AppointmentStatus.CANCELLED],
        "rescheduled": statuses[AppointmentStatus.RESCHEDULED],
        "no_show": no_show,
        "no_show_rate": round(no_show / (booked + no_show) * 100, 2) if booked + no_show else 0.0,
    }
