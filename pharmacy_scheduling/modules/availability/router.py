from datetime import datetime
import uuid
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from pharmacy_scheduling.core.db import get_session
from pharmacy_scheduling.core.security import get_principal, require_scopes, Principal
from pharmacy_scheduling.modules.availability.service import AvailabilityService
from pharmacy_scheduling.modules.availability.schemas import ScheduleCreate, ScheduleOut, AvailabilityOut

router = APIRouter()

def svc(s: AsyncSession = Depends(get_session)) -> AvailabilityService:
    return AvailabilityService(s)

# Admin schedules
@router.post("/availability/schedules", response_model=ScheduleOut, dependencies=[Depends(require_scopes("availability:write"))])
async def create_schedule(payload: ScheduleCreate, principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    return await service.create_schedule(principal.org_id, **payload.model_dump())

@router.get("/availability/schedules", response_model=list[ScheduleOut], dependencies=[Depends(require_scopes("availability:read"))])
async def list_schedules(pharmacist_id: uuid.UUID, location_id: uuid.UUID | None = None, principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    return await service.list_schedules(principal.org_id, pharmacist_id, location_id)

# Slot check; start is wall-clock in the pharmacist's timezone
@router.get("/availability/check", response_model=AvailabilityOut, dependencies=[Depends(require_scopes("availability:read"))])
async def check_availability(
    resource_id: uuid.UUID,
    start: datetime,
    duration: int = Query(30, ge=1, le=24*60),
    exclude_appointment_id: uuid.UUID | None = None,
    principal: Principal = Depends(get_principal),
    service: AvailabilityService = Depends(svc),
):
    return await service.check_availability(principal.org_id, resource_id, start.replace(tzinfo=None), duration, exclude_appointment_id)
