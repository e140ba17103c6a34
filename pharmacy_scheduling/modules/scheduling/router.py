from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from pharmacy_scheduling.core.db import get_session
from pharmacy_scheduling.core.security import get_principal, require_scopes, Principal
from pharmacy_scheduling.modules.scheduling.schemas import SuggestionRequest, SuggestionOut
from pharmacy_scheduling.modules.scheduling.service import SchedulingService

router = APIRouter()

def svc(s: AsyncSession = Depends(get_session)) -> SchedulingService:
    return SchedulingService(s)

@router.post("/scheduling/suggestions", response_model=list[SuggestionOut], dependencies=[Depends(require_scopes("appointments:read"))])
async def suggest_slots(payload: SuggestionRequest, principal: Principal = Depends(get_principal), service: SchedulingService = Depends(svc)):
    return await service.suggest_slots(principal.org_id, payload)
