import uuid
from datetime import date
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from pharmacy_scheduling.core.db import get_session
from pharmacy_scheduling.core.security import get_principal, require_scopes, Principal
from pharmacy_scheduling.modules.analytics.capacity import Granularity
from pharmacy_scheduling.modules.analytics.schemas import UtilizationReport
from pharmacy_scheduling.modules.analytics.service import AnalyticsService

router = APIRouter()

def svc(s: AsyncSession = Depends(get_session)) -> AnalyticsService:
    return AnalyticsService(s)

@router.get("/analytics/utilization", response_model=UtilizationReport, dependencies=[Depends(require_scopes("analytics:read"))])
async def get_utilization(
    date_from: date,
    date_to: date,
    granularity: Granularity = Granularity.BY_RESOURCE,
    resource_id: uuid.UUID | None = None,
    location_id: uuid.UUID | None = None,
    principal: Principal = Depends(get_principal),
    service: AnalyticsService = Depends(svc),
):
    return await service.utilization_report(
        principal.org_id, granularity=granularity, date_from=date_from, date_to=date_to,
        resource_id=resource_id, location_id=location_id,
    )
