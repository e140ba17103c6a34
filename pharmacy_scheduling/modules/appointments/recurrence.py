import calendar
from datetime import date, timedelta

from pharmacy_scheduling.core.errors import ValidationError
from pharmacy_scheduling.modules.appointments.schemas import RecurrencePattern

MAX_OCCURRENCES = 52
MAX_SPAN = timedelta(days=5 * 366)

_PERIOD_DAYS = {"daily": 1, "weekly": 7, "biweekly": 14}
_PERIOD_MONTHS = {"monthly": 1, "quarterly": 3}


def add_months(day: date, months: int) -> date:
    """Same day-of-month ``months`` later, clamped to the month's last day."""
    index = day.month - 1 + months
    year, month = day.year + index // 12, index % 12 + 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def occurrence_dates(first: date, pattern: RecurrencePattern) -> list[date]:
    """Dates of a series whose first instance is on ``first``.

    The first date is always part of the series. ``days_of_week`` narrows daily
    and weekly patterns to those weekdays; weekly patterns then run on those
    days of every ``interval``-th week counted from the first week. Monthly
    dates are computed from ``first`` so a 31st does not drift after February.
    """
    if pattern.end_date is not None and pattern.end_date < first:
        raise ValidationError(
            "Recurrence must not end before the first appointment",
            field="recurrence.end_date", value=pattern.end_date.isoformat(),
        )
    limit = min(pattern.end_after_occurrences or MAX_OCCURRENCES, MAX_OCCURRENCES)
    last = first + MAX_SPAN
    if pattern.end_date is not None:
        last = min(last, pattern.end_date)

    out = [first]
    if pattern.frequency in _PERIOD_MONTHS:
        step = _PERIOD_MONTHS[pattern.frequency] * pattern.interval
        n = 1
        while len(out) < limit:
            day = add_months(first, step * n)
            if day > last:
                break
            out.append(day)
            n += 1
        return out

    period = _PERIOD_DAYS[pattern.frequency] * pattern.interval
    weekdays = set(pattern.days_of_week)
    first_week = first - timedelta(days=first.weekday())
    day = first
    while len(out) < limit:
        day += timedelta(days=1)
        if day > last:
            break
        if weekdays and pattern.frequency != "daily":
            on = day.weekday() in weekdays and ((day - first_week).days // 7) % (period // 7) == 0
        else:
            on = (day - first).days % period == 0 and (not weekdays or day.weekday() in weekdays)
        if on:
            out.append(day)
    return out
