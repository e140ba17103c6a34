import uuid
import logging
from datetime import datetime, timedelta
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from pharmacy_scheduling.core.config import settings
from pharmacy_scheduling.core.errors import NotFound, SlotConflict, ValidationError
from pharmacy_scheduling.modules.availability.business_hours import (
    Shift, shifts_from_schedules, within_business_hours, ensure_business_hours,
)
from pharmacy_scheduling.modules.availability.conflicts import Slot, Available, Conflict, check_slot, find_conflicts
from pharmacy_scheduling.modules.availability.repository import AvailabilityRepository
from pharmacy_scheduling.modules.appointments.repository import AppointmentRepository
from pharmacy_scheduling.modules.directory.repository import DirectoryRepository
from pharmacy_scheduling.modules.events.outbox import OutboxService, SCHEDULE_CREATED

log = logging.getLogger(__name__)

class AvailabilityService:
    """Working hours and slot conflict checks for pharmacists."""

    def __init__(self, s: AsyncSession):
        self.s = s
        self.repo = AvailabilityRepository(s)
        self.appts = AppointmentRepository(s)
        self.directory = DirectoryRepository(s)

    # ---- schedules ----
    async def create_schedule(self, org: uuid.UUID, **data):
        if data["end_minute"] <= data["start_minute"]:
            raise ValidationError("Shift must end after it starts", field="end_minute", value=data["end_minute"])
        b_start, b_end = data.get("break_start_minute"), data.get("break_end_minute")
        if (b_start is None) != (b_end is None):
            raise ValidationError("Break needs both a start and an end", field="break_start_minute")
        if b_start is not None and not (data["start_minute"] <= b_start < b_end <= data["end_minute"]):
            raise ValidationError("Break must sit inside the shift", field="break_start_minute", value=b_start)
        if not await self.directory.get_pharmacist(org, data["pharmacist_id"]):
            raise NotFound("Pharmacist", data["pharmacist_id"])

        obj = await self.repo.create_schedule(org, **data)
        await OutboxService(self.s).enqueue(org, SCHEDULE_CREATED, "schedule", obj.id, {
            "pharmacist_id": str(obj.pharmacist_id), "day_of_week": obj.day_of_week,
        })
        await self.s.commit()
        log.info(f"Created shift {obj.id} for pharmacist {obj.pharmacist_id} day={obj.day_of_week}")
        return obj

    async def list_schedules(self, org: uuid.UUID, pharmacist_id: uuid.UUID, location_id: uuid.UUID | None = None):
        return await self.repo.list_schedules(org, [pharmacist_id], location_id)

    async def shifts_for(self, org: uuid.UUID, pharmacist_ids: Sequence[uuid.UUID]) -> dict[uuid.UUID, list[Shift]]:
        rows = await self.repo.list_schedules(org, pharmacist_ids)
        by_resource: dict[uuid.UUID, list] = {pid: [] for pid in pharmacist_ids}
        for r in rows:
            by_resource.setdefault(r.pharmacist_id, []).append(r)
        return {pid: shifts_from_schedules(rs) for pid, rs in by_resource.items()}

    # ---- conflicts ----
    async def check(
        self, org: uuid.UUID, resource_id: uuid.UUID, start: datetime, end: datetime,
        exclude_id: uuid.UUID | None = None, timezone: str | None = None,
    ) -> Available | Conflict:
        bookings = await self.appts.list_active(org, date_from=start.date(), resource_ids=[resource_id])
        return check_slot(Slot(resource_id, start, end, timezone), bookings, exclude_id)

    async def check_availability(self, org: uuid.UUID, resource_id: uuid.UUID, start: datetime, duration: int, exclude_id: uuid.UUID | None = None) -> dict:
        pharmacist = await self.directory.get_pharmacist(org, resource_id)
        if not pharmacist:
            raise NotFound("Pharmacist", resource_id)
        end = start + timedelta(minutes=duration)
        result = await self.check(org, resource_id, start, end, exclude_id, pharmacist.timezone or settings.DEFAULT_TIMEZONE)
        shifts = (await self.shifts_for(org, [resource_id]))[resource_id]
        return {
            "resource_id": resource_id,
            "start": start,
            "end": end,
            "available": result.ok,
            "conflicting_appointment_ids": [] if result.ok else result.conflicting_ids,
            "within_business_hours": within_business_hours(shifts, start, end),
        }

    async def ensure_slot(
        self,
        org: uuid.UUID,
        *,
        resource_id: uuid.UUID,
        patient_id: uuid.UUID,
        start: datetime,
        end: datetime,
        timezone: str,
        exclude_id: uuid.UUID | None = None,
        override_business_hours: bool = False,
        allow_double_booking: bool = False,
    ) -> bool:
        """Raise unless the slot can be booked. Returns True when it only passes by override.

        ``start``/``end`` are wall-clock in ``timezone``, the pharmacist's zone.
        Must run under the resource lock; nothing here writes.
        """
        if not override_business_hours:
            shifts = (await self.shifts_for(org, [resource_id]))[resource_id]
            ensure_business_hours(shifts, start, end)

        is_override = False
        result = await self.check(org, resource_id, start, end, exclude_id, timezone)
        if not result.ok:
            if not allow_double_booking:
                log.warning(f"Slot conflict for resource {resource_id} {start:%Y-%m-%d %H:%M}: {result.conflicting_ids}")
                raise SlotConflict(result.conflicting_ids)
            is_override = True
            log.info(f"Double booking allowed for resource {resource_id} over {result.conflicting_ids}")

        patient_bookings = await self.appts.list_active(org, date_from=start.date(), patient_id=patient_id)
        clash = find_conflicts(Slot(resource_id, start, end, timezone), patient_bookings, exclude_id)
        if clash:
            raise SlotConflict(clash, "Patient already has an appointment at this time")
        return is_override
