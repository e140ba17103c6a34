import uuid
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from pharmacy_scheduling.core.db import get_session
from pharmacy_scheduling.core.security import get_principal, require_scopes, Principal
from pharmacy_scheduling.modules.notifications.schemas import TemplateCreate, TemplateOut, PatientMessageOut
from pharmacy_scheduling.modules.notifications.service import NotificationsService

router = APIRouter()

def svc(s: AsyncSession = Depends(get_session)) -> NotificationsService:
    return NotificationsService(s)

# Workplace wording for patient messages
@router.post("/notifications/templates", response_model=TemplateOut, dependencies=[Depends(require_scopes("notifications:write"))])
async def create_template(payload: TemplateCreate, principal: Principal = Depends(get_principal), service: NotificationsService = Depends(svc)):
    return await service.create_template(principal.org_id, **payload.model_dump())

@router.get("/appointments/{appointment_id}/messages", response_model=list[PatientMessageOut], dependencies=[Depends(require_scopes("appointments:read"))])
async def list_appointment_messages(appointment_id: uuid.UUID, principal: Principal = Depends(get_principal), service: NotificationsService = Depends(svc)):
    return await service.list_for_appointment(principal.org_id, appointment_id)
