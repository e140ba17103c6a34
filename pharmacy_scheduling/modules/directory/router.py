import uuid
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from pharmacy_scheduling.core.db import get_session
from pharmacy_scheduling.core.security import get_principal, require_scopes, Principal
from pharmacy_scheduling.modules.directory.repository import DirectoryRepository
from pharmacy_scheduling.modules.directory.schemas import PharmacistCreate, PharmacistOut, LocationCreate, LocationOut

router = APIRouter()

@router.post("/directory/locations", response_model=LocationOut, dependencies=[Depends(require_scopes("directory:write"))])
async def create_location(payload: LocationCreate, principal: Principal = Depends(get_principal), session: AsyncSession = Depends(get_session)):
    obj = await DirectoryRepository(session).create_location(principal.org_id, **payload.model_dump())
    await session.commit()
    return obj

@router.post("/directory/pharmacists", response_model=PharmacistOut, dependencies=[Depends(require_scopes("directory:write"))])
async def create_pharmacist(payload: PharmacistCreate, principal: Principal = Depends(get_principal), session: AsyncSession = Depends(get_session)):
    data = payload.model_dump()
    data["specialties"] = [t.value for t in payload.specialties]
    obj = await DirectoryRepository(session).create_pharmacist(principal.org_id, **data)
    await session.commit()
    return obj

@router.get("/directory/pharmacists", response_model=list[PharmacistOut], dependencies=[Depends(require_scopes("directory:read"))])
async def list_pharmacists(location_id: uuid.UUID | None = None, principal: Principal = Depends(get_principal), session: AsyncSession = Depends(get_session)):
    return await DirectoryRepository(session).list_pharmacists(principal.org_id, location_id=location_id)

@router.get("/directory/pharmacists/{pharmacist_id}", response_model=PharmacistOut, dependencies=[Depends(require_scopes("directory:read"))])
async def get_pharmacist(pharmacist_id: uuid.UUID, principal: Principal = Depends(get_principal), session: AsyncSession = Depends(get_session)):
    obj = await DirectoryRepository(session).get_pharmacist(principal.org_id, pharmacist_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Pharmacist not found")
    return obj
