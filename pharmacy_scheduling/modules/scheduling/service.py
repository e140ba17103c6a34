import uuid
import logging
from datetime import datetime, timedelta
from typing import Callable
from zoneinfo import ZoneInfo
from sqlalchemy.ext.asyncio import AsyncSession
from pharmacy_scheduling.core.base import utcnow
from pharmacy_scheduling.core.config import settings
from pharmacy_scheduling.modules.appointments.repository import AppointmentRepository
from pharmacy_scheduling.modules.appointments.validation import validate_duration
from pharmacy_scheduling.modules.availability.service import AvailabilityService
from pharmacy_scheduling.modules.directory.repository import DirectoryRepository
from pharmacy_scheduling.modules.scheduling.schemas import SuggestionRequest
from pharmacy_scheduling.modules.scheduling.suggestions import Candidate, PatientPreferences, Suggestion, suggest

log = logging.getLogger(__name__)

class SchedulingService:
    """Read-only: suggestions are advisory and booking re-validates the slot."""

    def __init__(self, s: AsyncSession, clock: Callable[[], datetime] | None = None):
        self.s = s
        self.appts = AppointmentRepository(s)
        self.availability = AvailabilityService(s)
        self.directory = DirectoryRepository(s)
        self.clock = clock or utcnow

    async def suggest_slots(self, org: uuid.UUID, req: SuggestionRequest) -> list[Suggestion]:
        validate_duration(req.type, req.duration)
        now = self.clock()
        horizon = req.horizon_days or settings.SUGGESTION_HORIZON_DAYS

        pharmacists = await self.directory.list_pharmacists(org, ids=req.resource_ids, location_id=req.location_id)
        if not pharmacists:
            return []
        ids = [p.id for p in pharmacists]
        shifts = await self.availability.shifts_for(org, ids)

        # one day of slack either side covers timezone differences between pharmacists
        first = now.astimezone(ZoneInfo(settings.DEFAULT_TIMEZONE)).date() - timedelta(days=1)
        last = first + timedelta(days=horizon + 2)
        bookings = await self.appts.list_for_report(org, date_from=first, date_to=last, resource_ids=ids)
        by_resource: dict[uuid.UUID, list] = {pid: [] for pid in ids}
        for b in bookings:
            by_resource[b.assigned_to].append(b)
        patient_bookings = []
        if req.patient_id:
            patient_bookings = await self.appts.list_active(org, date_from=first, date_to=last, patient_id=req.patient_id)

        candidates = [
            Candidate(
                resource_id=p.id,
                timezone=p.timezone or settings.DEFAULT_TIMEZONE,
                shifts=shifts[p.id],
                bookings=by_resource[p.id],
                specialties=list(p.specialties or []),
                name=p.name,
            )
            for p in pharmacists
        ]
        prefs = PatientPreferences(**req.preferences.model_dump())
        out = suggest(
            prefs, req.type, req.duration, req.urgency, candidates, horizon, now,
            max_results=req.max_results, patient_bookings=patient_bookings,
        )
        log.info(f"Suggested {len(out)} slots for {req.type.value} ({req.duration}m, {req.urgency.value}) across {len(candidates)} pharmacists")
        return out
