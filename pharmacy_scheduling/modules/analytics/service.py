import uuid
import logging
from datetime import date
from sqlalchemy.ext.asyncio import AsyncSession
from pharmacy_scheduling.core.errors import NotFound, ValidationError
from pharmacy_scheduling.modules.analytics import capacity
from pharmacy_scheduling.modules.analytics.capacity import Granularity
from pharmacy_scheduling.modules.appointments.repository import AppointmentRepository
from pharmacy_scheduling.modules.availability.service import AvailabilityService
from pharmacy_scheduling.modules.directory.repository import DirectoryRepository

log = logging.getLogger(__name__)

MAX_REPORT_DAYS = 366

class AnalyticsService:
    def __init__(self, s: AsyncSession):
        self.s = s
        self.appts = AppointmentRepository(s)
        self.availability = AvailabilityService(s)
        self.directory = DirectoryRepository(s)

    async def utilization_report(
        self,
        org: uuid.UUID,
        *,
        granularity: Granularity,
        date_from: date,
        date_to: date,
        resource_id: uuid.UUID | None = None,
        location_id: uuid.UUID | None = None,
    ) -> dict:
        if date_to < date_from:
            raise ValidationError("date_to must not be before date_from", field="date_to", value=date_to.isoformat())
        if (date_to - date_from).days >= MAX_REPORT_DAYS:
            raise ValidationError(f"Report range is limited to {MAX_REPORT_DAYS} days", field="date_to", value=date_to.isoformat())

        if resource_id:
            p = await self.directory.get_pharmacist(org, resource_id)
            if not p:
                raise NotFound("Pharmacist", resource_id)
            pharmacists = [p]
        else:
            pharmacists = list(await self.directory.list_pharmacists(org, location_id=location_id))
        ids = [p.id for p in pharmacists]

        shifts = await self.availability.shifts_for(org, ids) if ids else {}
        appts = await self.appts.list_for_report(org, date_from=date_from, date_to=date_to, resource_ids=ids) if ids else []

        buckets = capacity.aggregate(appts, shifts, date_from, date_to, granularity)
        names = {p.id: p.name for p in pharmacists}
        log.debug(f"Utilization {granularity.value} {date_from}..{date_to}: {len(buckets)} buckets over {len(appts)} appointments")
        return {
            "granularity": granularity,
            "date_from": date_from,
            "date_to": date_to,
            "buckets": buckets,
            "overall_utilization": capacity.overall_utilization(buckets),
            "summary": capacity.summarize(appts),
            "recommendations": capacity.recommendations(buckets, names),
        }
