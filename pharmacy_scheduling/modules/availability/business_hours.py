"""Working-hours policy.

A pharmacist's week is a set of shifts. A slot is bookable only when it sits
entirely inside one shift of its weekday and stays clear of that shift's break.
Pharmacists without any schedule rows get the configured default window.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Iterator, Sequence

from pharmacy_scheduling.core.config import settings
from pharmacy_scheduling.core.errors import OutsideBusinessHours


@dataclass(frozen=True)
class Shift:
    day_of_week: int
    start_minute: int
    end_minute: int
    break_start_minute: int | None = None
    break_end_minute: int | None = None
    slot_minutes: int = 30

    @classmethod
    def from_schedule(cls, row) -> "Shift":
        return cls(
            day_of_week=row.day_of_week,
            start_minute=row.start_minute,
            end_minute=row.end_minute,
            break_start_minute=row.break_start_minute,
            break_end_minute=row.break_end_minute,
            slot_minutes=row.slot_minutes or settings.DEFAULT_SLOT_MINUTES,
        )

    @property
    def has_break(self) -> bool:
        return self.break_start_minute is not None and self.break_end_minute is not None

    @property
    def working_minutes(self) -> int:
        total = self.end_minute - self.start_minute
        if self.has_break:
            lo = max(self.break_start_minute, self.start_minute)
            hi = min(self.break_end_minute, self.end_minute)
            total -= max(0, hi - lo)
        return max(0, total)

    def capacity(self) -> int:
        """Whole slots this shift offers on one day."""
        return self.working_minutes // self.slot_minutes if self.slot_minutes > 0 else 0

    def window(self, day: date) -> tuple[datetime, datetime]:
        midnight = datetime.combine(day, datetime.min.time())
        return midnight + timedelta(minutes=self.start_minute), midnight + timedelta(minutes=self.end_minute)

    def break_window(self, day: date) -> tuple[datetime, datetime] | None:
        if not self.has_break:
            return None
        midnight = datetime.combine(day, datetime.min.time())
        return midnight + timedelta(minutes=self.break_start_minute), midnight + timedelta(minutes=self.break_end_minute)

    def contains(self, start: datetime, end: datetime) -> bool:
        if start.weekday() != self.day_of_week:
            return False
        w_start, w_end = self.window(start.date())
        if start < w_start or end > w_end:
            return False
        brk = self.break_window(start.date())
        if brk and start < brk[1] and brk[0] < end:
            return False
        return True

    def capacity_starts(self, day: date) -> Iterator[datetime]:
        """Start of every whole capacity slot on ``day``, skipping the break."""
        w_start, w_end = self.window(day)
        brk = self.break_window(day)
        step = timedelta(minutes=self.slot_minutes)
        segments = [(w_start, w_end)]
        if brk:
            segments = [(w_start, min(brk[0], w_end)), (max(brk[1], w_start), w_end)]
        for seg_start, seg_end in segments:
            cur = seg_start
            while cur + step <= seg_end:
                yield cur
                cur += step


def default_shifts() -> list[Shift]:
    return [
        Shift(
            day_of_week=d,
            start_minute=settings.DEFAULT_BUSINESS_START_MINUTE,
            end_minute=settings.DEFAULT_BUSINESS_END_MINUTE,
            slot_minutes=settings.DEFAULT_SLOT_MINUTES,
        )
        for d in settings.DEFAULT_BUSINESS_DAYS
    ]


def shifts_from_schedules(rows: Iterable) -> list[Shift]:
    shifts = [Shift.from_schedule(r) for r in rows if getattr(r, "active", True)]
    return shifts or default_shifts()


def shifts_on(shifts: Sequence[Shift], day: date) -> list[Shift]:
    return [s for s in shifts if s.day_of_week == day.weekday()]


def within_business_hours(shifts: Sequence[Shift], start: datetime, end: datetime) -> bool:
    return any(s.contains(start, end) for s in shifts_on(shifts, start.date()))


def ensure_business_hours(shifts: Sequence[Shift], start: datetime, end: datetime) -> None:
    if not within_business_hours(shifts, start, end):
        raise OutsideBusinessHours(
            f"{start:%A %H:%M}-{end:%H:%M} is outside working hours",
            {"start": start.isoformat(), "end": end.isoformat()},
        )
