import uuid
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from pharmacy_scheduling.modules.directory.models import Pharmacist, Location

class DirectoryRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_pharmacist(self, org_id: uuid.UUID, **data) -> Pharmacist:
        obj = Pharmacist(org_id=org_id, **data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def create_location(self, org_id: uuid.UUID, **data) -> Location:
        obj = Location(org_id=org_id, **data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get_pharmacist(self, org_id: uuid.UUID, pharmacist_id: uuid.UUID) -> Pharmacist | None:
        q = select(Pharmacist).where(
            and_(Pharmacist.id == pharmacist_id,
                 Pharmacist.org_id == org_id,
                 Pharmacist.deleted_at.is_(None))
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list_pharmacists(self, org_id: uuid.UUID, *, ids: Sequence[uuid.UUID] | None = None, location_id: uuid.UUID | None = None) -> Sequence[Pharmacist]:
        cond = [Pharmacist.org_id == org_id, Pharmacist.deleted_at.is_(None), Pharmacist.active.is_(True)]
        if ids:
            cond.append(Pharmacist.id.in_(list(ids)))
        if location_id:
            cond.append(Pharmacist.location_id == location_id)
        res = await self.session.execute(select(Pharmacist).where(and_(*cond)).order_by(Pharmacist.name.asc()))
        return res.scalars().all()
