"""Ranked slot suggestions.

Candidate slots are generated from each pharmacist's shifts, filtered
(past, outside working hours, conflicting) and only then scored. Scoring
weights come from ``settings.SCORING`` so deployments can tune them.
"""
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Iterator, Sequence
from zoneinfo import ZoneInfo

from pharmacy_scheduling.core.config import settings, ScoringWeights
from pharmacy_scheduling.modules.analytics.capacity import day_utilization
from pharmacy_scheduling.modules.appointments.enums import AppointmentType, Urgency
from pharmacy_scheduling.modules.availability.business_hours import Shift, shifts_on
from pharmacy_scheduling.modules.availability.conflicts import Slot, find_conflicts

MORNING = (time(8), time(12))
LUNCH = (time(12), time(13))
AFTERNOON = (time(13), time(17))


@dataclass
class PatientPreferences:
    prefer_morning: bool = False
    prefer_afternoon: bool = False
    avoid_lunch: bool = False
    preferred_times: list[str] = field(default_factory=list)  # "HH:MM"
    preferred_days: list[int] = field(default_factory=list)   # 0=Mon..6=Sun
    preferred_resource_id: uuid.UUID | None = None


@dataclass
class Candidate:
    """A pharmacist that may take the appointment, with the data needed to score it."""
    resource_id: uuid.UUID
    timezone: str
    shifts: list[Shift]
    bookings: list = field(default_factory=list)
    specialties: list[str] = field(default_factory=list)
    name: str | None = None


@dataclass
class Suggestion:
    resource_id: uuid.UUID
    start: datetime
    end: datetime
    score: float
    reasons: list[str] = field(default_factory=list)
    resource_name: str | None = None


def _in(t: time, window: tuple[time, time]) -> bool:
    return window[0] <= t < window[1]


def urgency_bonus(weights: ScoringWeights, urgency: Urgency, hours_ahead: float) -> float:
    points, window = weights.urgency.get(Urgency(urgency).value, (0, 0))
    if points <= 0 or window <= 0:
        return 0.0
    return points * max(0.0, 1 - hours_ahead / window)


def score_slot(
    start: datetime,
    candidate: Candidate,
    preferences: PatientPreferences,
    appointment_type: AppointmentType,
    urgency: Urgency,
    hours_ahead: float,
    utilization: float,
    weights: ScoringWeights,
) -> tuple[float, list[str]]:
    score = weights.base
    reasons = []
    t = start.time()

    if preferences.prefer_morning and _in(t, MORNING):
        score += weights.morning_match
        reasons.append("Morning slot as preferred")
    if preferences.prefer_afternoon and _in(t, AFTERNOON):
        score += weights.afternoon_match
        reasons.append("Afternoon slot as preferred")
    if preferences.avoid_lunch and _in(t, LUNCH):
        score -= weights.lunch_penalty
        reasons.append("Falls in lunch hour")
    if start.strftime("%H:%M") in preferences.preferred_times:
        score += weights.preferred_time
        reasons.append("Matches a preferred time")
    if start.weekday() in preferences.preferred_days:
        score += weights.preferred_day
        reasons.append("Matches a preferred day")
    if preferences.preferred_resource_id and preferences.preferred_resource_id == candidate.resource_id:
        score += weights.preferred_resource
        reasons.append("Preferred pharmacist")
    if AppointmentType(appointment_type).value in candidate.specialties:
        score += weights.specialization
        reasons.append(f"Pharmacist specializes in {AppointmentType(appointment_type).label}")
    if utilization < weights.low_utilization_below:
        score += weights.low_utilization
        reasons.append("Pharmacist has availability that day")
    elif utilization > weights.high_utilization_above:
        score -= weights.high_utilization_penalty
        reasons.append("Pharmacist is busy that day")

    bonus = urgency_bonus(weights, urgency, hours_ahead)
    if bonus > 0:
        score += bonus
        reasons.append(f"Soonest availability for {Urgency(urgency).value} need")

    return round(max(0.0, min(100.0, score)), 2), reasons


def candidate_starts(shifts: Sequence[Shift], day: date, duration: int, step: int) -> Iterator[tuple[datetime, datetime]]:
    seen = set()
    for shift in shifts_on(shifts, day):
        w_start, w_end = shift.window(day)
        cur = w_start
        while cur + timedelta(minutes=duration) <= w_end:
            end = cur + timedelta(minutes=duration)
            if cur not in seen and shift.contains(cur, end):
                seen.add(cur)
                yield cur, end
            cur += timedelta(minutes=step)


def suggest(
    preferences: PatientPreferences,
    appointment_type: AppointmentType,
    duration: int,
    urgency: Urgency,
    candidates: Sequence[Candidate],
    horizon_days: int,
    now: datetime,
    *,
    weights: ScoringWeights | None = None,
    slot_interval: int | None = None,
    max_results: int | None = None,
    patient_bookings: Sequence = (),
) -> list[Suggestion]:
    """Best slots first: score descending, then earliest start, then resource id.

    ``patient_bookings`` removes slots the patient is already booked into elsewhere.
    """
    weights = weights or settings.SCORING
    step = slot_interval or settings.SLOT_INTERVAL_MINUTES
    limit = max_results or settings.SUGGESTION_MAX_RESULTS

    out: list[Suggestion] = []
    for c in candidates:
        local_now = now.astimezone(ZoneInfo(c.timezone)).replace(tzinfo=None)
        today = local_now.date()
        for offset in range(horizon_days):
            day = today + timedelta(days=offset)
            utilization = day_utilization(c.shifts, c.bookings, day)
            for start, end in candidate_starts(c.shifts, day, duration, step):
                if start <= local_now:
                    continue
                slot = Slot(c.resource_id, start, end, c.timezone)
                if find_conflicts(slot, c.bookings) or find_conflicts(slot, patient_bookings):
                    continue
                hours_ahead = (start - local_now).total_seconds() / 3600
                score, reasons = score_slot(start, c, preferences, appointment_type, urgency, hours_ahead, utilization, weights)
                out.append(Suggestion(c.resource_id, start, end, score, reasons, c.name))

    out.sort(key=lambda s: (-s.score, s.start, str(s.resource_id)))
    return out[:limit]
