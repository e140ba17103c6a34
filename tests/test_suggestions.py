import uuid
from datetime import date, datetime, time, timedelta, timezone

import pytest

from pharmacy_scheduling.core.config import ScoringWeights
from pharmacy_scheduling.modules.appointments.enums import AppointmentType, Urgency
from pharmacy_scheduling.modules.availability.business_hours import Shift
from pharmacy_scheduling.modules.scheduling.suggestions import (
    Candidate, PatientPreferences, suggest, urgency_bonus,
)

TZ = "Africa/Lagos"
NOW = datetime(2025, 6, 2, 6, 0, tzinfo=timezone.utc)  # Monday 07:00 local
MONDAY = date(2025, 6, 2)
SATURDAY = date(2025, 6, 7)
R1 = uuid.UUID(int=21)
R2 = uuid.UUID(int=22)
WEIGHTS = ScoringWeights()


def at(hh, mm=0, day=MONDAY):
    return datetime.combine(day, time(hh, mm))


def shift(dow, start_h, end_h, **kw):
    return Shift(day_of_week=dow, start_minute=start_h * 60, end_minute=end_h * 60, **kw)


def run(candidates, *, prefs=None, type=AppointmentType.GENERAL_FOLLOWUP, duration=30, urgency=Urgency.LOW,
        horizon=7, interval=30, max_results=50, **kw):
    return suggest(
        prefs or PatientPreferences(), type, duration, urgency, candidates, horizon, NOW,
        weights=kw.pop("weights", WEIGHTS), slot_interval=interval, max_results=max_results, **kw,
    )


class TestUrgency:
    def test_sooner_slot_wins_for_urgent_need(self):
        c = Candidate(R1, TZ, [shift(0, 9, 10), shift(5, 9, 10)])
        result = run([c], urgency=Urgency.URGENT)
        assert result[0].start == at(9)
        saturday = next(s for s in result if s.start == at(9, day=SATURDAY))
        assert result[0].score > saturday.score
        assert "Soonest availability for urgent need" in result[0].reasons
        assert "Soonest availability for urgent need" not in saturday.reasons

    def test_bonus_decays_over_window(self):
        assert urgency_bonus(WEIGHTS, Urgency.URGENT, 0) == 30
        assert urgency_bonus(WEIGHTS, Urgency.URGENT, 36) == pytest.approx(15)
        assert urgency_bonus(WEIGHTS, Urgency.URGENT, 100) == 0
        assert urgency_bonus(WEIGHTS, Urgency.LOW, 0) == 0

    def test_low_urgency_ties_break_on_earliest_start(self):
        c = Candidate(R1, TZ, [shift(0, 9, 10), shift(5, 9, 10)])
        result = run([c])
        assert [s.start for s in result] == [at(9), at(9, 30), at(9, day=SATURDAY), at(9, 30, day=SATURDAY)]
        assert len({s.score for s in result}) == 1


class TestExclusion:
    def test_past_slots_are_skipped(self):
        c = Candidate(R1, TZ, [shift(0, 6, 8)])
        result = run([c], horizon=1)
        assert [s.start for s in result] == [at(7, 30)]

    def test_break_is_never_offered(self):
        c = Candidate(R1, TZ, [shift(0, 11, 14, break_start_minute=12 * 60, break_end_minute=13 * 60)])
        result = run([c], horizon=1, interval=15)
        starts = [s.start for s in result]
        assert at(11, 30) in starts
        assert at(11, 45) not in starts
        assert not any(at(12) <= s < at(13) for s in starts)
        assert at(13) in starts

    def test_booked_time_is_skipped(self, make_appt):
        booked = make_appt(at(9), 30, resource_id=R1)
        c = Candidate(R1, TZ, [shift(0, 8, 11)], bookings=[booked])
        starts = [s.start for s in run([c], horizon=1, interval=15)]
        assert at(8, 30) in starts
        assert at(8, 45) not in starts and at(9) not in starts and at(9, 15) not in starts
        assert at(9, 30) in starts

    def test_patient_clash_on_another_pharmacist(self, make_appt):
        elsewhere = make_appt(at(10), 30, resource_id=R2)
        c = Candidate(R1, TZ, [shift(0, 9, 11)])
        starts = [s.start for s in run([c], horizon=1, patient_bookings=[elsewhere])]
        assert starts == [at(9), at(9, 30), at(10, 30)]

    def test_nothing_to_offer(self):
        c = Candidate(R1, TZ, [shift(6, 9, 10)])  # Sundays only
        assert run([c], horizon=6) == []


class TestScoring:
    def test_ties_break_on_resource_id(self):
        a = Candidate(R2, TZ, [shift(0, 9, 10)])
        b = Candidate(R1, TZ, [shift(0, 9, 10)])
        result = run([a, b], horizon=1)
        assert [(s.start, s.resource_id) for s in result[:2]] == [(at(9), R1), (at(9), R2)]

    def test_preferences_and_specialization(self):
        c = Candidate(R1, TZ, [shift(0, 9, 15)], specialties=[AppointmentType.MTM_SESSION.value], name="Ada Obi")
        prefs = PatientPreferences(prefer_afternoon=True, preferred_times=["14:00"], preferred_resource_id=R1)
        [best] = run([c], prefs=prefs, type=AppointmentType.MTM_SESSION, horizon=1, max_results=1, weights=ScoringWeights(base=0))
        assert best.start == at(14)
        assert best.resource_name == "Ada Obi"
        assert best.score == 85.0
        assert "Pharmacist specializes in MTM Session" in best.reasons
        assert "Preferred pharmacist" in best.reasons

    def test_lunch_is_penalized(self):
        c = Candidate(R1, TZ, [shift(0, 11, 14)])
        result = run([c], prefs=PatientPreferences(avoid_lunch=True), horizon=1, interval=60)
        by_start = {s.start: s for s in result}
        assert by_start[at(12)].score == by_start[at(11)].score - WEIGHTS.lunch_penalty
        assert "Falls in lunch hour" in by_start[at(12)].reasons
        assert result[-1].start == at(12)

    def test_busy_day_scores_lower(self, make_appt):
        # five of six Monday slots taken
        day = [make_appt(at(9) + timedelta(minutes=30 * i), 30, resource_id=R1) for i in range(5)]
        c = Candidate(R1, TZ, [shift(0, 9, 12), shift(1, 9, 12)], bookings=day)
        result = run([c], horizon=2)
        monday = next(s for s in result if s.start.date() == MONDAY)
        tuesday = next(s for s in result if s.start.date() == MONDAY + timedelta(days=1))
        assert monday.start == at(11, 30)
        assert "Pharmacist is busy that day" in monday.reasons
        assert "Pharmacist has availability that day" in tuesday.reasons
        assert tuesday.score - monday.score == WEIGHTS.low_utilization + WEIGHTS.high_utilization_penalty

    def test_scores_are_clamped(self):
        weights = ScoringWeights(base=-20)
        [s] = run([Candidate(R1, TZ, [shift(0, 9, 10)])], horizon=1, max_results=1, weights=weights)
        assert s.score == 0.0

    def test_max_results(self):
        c = Candidate(R1, TZ, [shift(d, 8, 17) for d in range(6)])
        assert len(run([c], max_results=3)) == 3
