import uuid
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pharmacy_scheduling.modules.availability.models import PharmacistSchedule

class AvailabilityRepository:
    def __init__(self, s: AsyncSession): self.s = s

    async def create_schedule(self, org: uuid.UUID, **data) -> PharmacistSchedule:
        obj = PharmacistSchedule(org_id=org, **data); self.s.add(obj); await self.s.flush(); return obj

    async def list_schedules(self, org: uuid.UUID, pharmacist_ids: Sequence[uuid.UUID], location_id: uuid.UUID | None = None) -> Sequence[PharmacistSchedule]:
        cond = [
            PharmacistSchedule.org_id==org,
            PharmacistSchedule.pharmacist_id.in_(list(pharmacist_ids)),
            PharmacistSchedule.active.is_(True),
            PharmacistSchedule.deleted_at.is_(None),
        ]
        if location_id:
            cond.append(PharmacistSchedule.location_id==location_id)
        res = await self.s.execute(select(PharmacistSchedule).where(*cond).order_by(
            PharmacistSchedule.day_of_week, PharmacistSchedule.start_minute
        ))
        return res.scalars().all()
