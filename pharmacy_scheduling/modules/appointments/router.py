import uuid
from datetime import date
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from pharmacy_scheduling.core.db import get_session
from pharmacy_scheduling.core.security import get_principal, Principal, require_scopes
from pharmacy_scheduling.modules.appointments.schemas import (
    AppointmentCreate, RescheduleRequest, StatusChange, CancelRequest, ReminderDelivery, AppointmentOut,
)
from pharmacy_scheduling.modules.appointments.service import AppointmentService

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session)) -> AppointmentService:
    return AppointmentService(session)

# ---- Booking ----

@router.post("/appointments", response_model=AppointmentOut, status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_scopes("appointments:write"))])
async def create_appointment(
    payload: AppointmentCreate,
    principal: Principal = Depends(get_principal),
    service: AppointmentService = Depends(svc),
):
    return await service.create(principal.org_id, payload, created_by=principal.user_id)

@router.post("/appointments/{appt_id}/reschedule", response_model=AppointmentOut, dependencies=[Depends(require_scopes("appointments:write"))])
async def reschedule_appointment(
    appt_id: uuid.UUID,
    payload: RescheduleRequest,
    principal: Principal = Depends(get_principal),
    service: AppointmentService = Depends(svc),
):
    return await service.reschedule(principal.org_id, appt_id, payload)

# ---- Lifecycle ----

@router.post("/appointments/{appt_id}/status", response_model=AppointmentOut, dependencies=[Depends(require_scopes("appointments:write"))])
async def change_status(
    appt_id: uuid.UUID,
    payload: StatusChange,
    principal: Principal = Depends(get_principal),
    service: AppointmentService = Depends(svc),
):
    return await service.transition_status(principal.org_id, appt_id, payload)

@router.post("/appointments/{appt_id}/cancel", response_model=AppointmentOut, dependencies=[Depends(require_scopes("appointments:write"))])
async def cancel_appointment(
    appt_id: uuid.UUID,
    payload: CancelRequest,
    principal: Principal = Depends(get_principal),
    service: AppointmentService = Depends(svc),
):
    return await service.cancel(principal.org_id, appt_id, payload)

@router.post("/appointments/{appt_id}/reminders/{index}", response_model=AppointmentOut, dependencies=[Depends(require_scopes("appointments:write"))])
async def record_reminder_delivery(
    appt_id: uuid.UUID,
    index: int,
    payload: ReminderDelivery,
    principal: Principal = Depends(get_principal),
    service: AppointmentService = Depends(svc),
):
    return await service.record_reminder_delivery(principal.org_id, appt_id, index, payload)

@router.delete("/appointments/{appt_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(require_scopes("appointments:write"))])
async def delete_appointment(
    appt_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: AppointmentService = Depends(svc),
):
    await service.soft_delete(principal.org_id, appt_id)

# ---- Reads ----

@router.get("/appointments/calendar", response_model=list[AppointmentOut], dependencies=[Depends(require_scopes("appointments:read"))])
async def get_calendar(
    date_from: date,
    date_to: date,
    resource_id: uuid.UUID | None = None,
    location_id: uuid.UUID | None = None,
    principal: Principal = Depends(get_principal),
    service: AppointmentService = Depends(svc),
):
    return await service.get_calendar(principal.org_id, date_from=date_from, date_to=date_to, resource_id=resource_id, location_id=location_id)

@router.get("/appointments/series/{series_id}", response_model=list[AppointmentOut], dependencies=[Depends(require_scopes("appointments:read"))])
async def get_series(
    series_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: AppointmentService = Depends(svc),
):
    return await service.list_series(principal.org_id, series_id)

@router.get("/appointments/{appt_id}", response_model=AppointmentOut, dependencies=[Depends(require_scopes("appointments:read"))])
async def get_appointment(
    appt_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: AppointmentService = Depends(svc),
):
    return await service.get(principal.org_id, appt_id)
