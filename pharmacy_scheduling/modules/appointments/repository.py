import uuid
from datetime import date, datetime, timedelta
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_
from pharmacy_scheduling.core.base import utcnow
from pharmacy_scheduling.core.errors import StaleState
from pharmacy_scheduling.modules.appointments.enums import ACTIVE_STATUSES
from pharmacy_scheduling.modules.appointments.models import Appointment

class AppointmentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, org_id: uuid.UUID, **data) -> Appointment:
        obj = Appointment(org_id=org_id, **data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get(self, org_id: uuid.UUID, appt_id: uuid.UUID, *, include_deleted: bool = False) -> Appointment | None:
        cond = [Appointment.id == appt_id, Appointment.org_id == org_id]
        if not include_deleted:
            cond.append(Appointment.deleted_at.is_(None))
        res = await self.session.execute(select(Appointment).where(and_(*cond)))
        return res.scalar_one_or_none()

    async def list_calendar(
        self,
        org_id: uuid.UUID,
        *,
        date_from: date,
        date_to: date,
        resource_id: uuid.UUID | None = None,
        location_id: uuid.UUID | None = None,
    ) -> Sequence[Appointment]:
        """Appointments of every status whose date is in ``[date_from, date_to]``."""
        cond = [
            Appointment.org_id == org_id,
            Appointment.deleted_at.is_(None),
            Appointment.scheduled_date >= date_from,
            Appointment.scheduled_date <= date_to,
        ]
        if resource_id:
            cond.append(Appointment.assigned_to == resource_id)
        if location_id:
            cond.append(Appointment.location_id == location_id)
        q = select(Appointment).where(and_(*cond)).order_by(
            Appointment.scheduled_date.asc(), Appointment.scheduled_time.asc(), Appointment.assigned_to.asc()
        )
        res = await self.session.execute(q)
        return res.scalars().all()

    async def list_active(
        self,
        org_id: uuid.UUID,
        *,
        date_from: date,
        date_to: date | None = None,
        resource_ids: Sequence[uuid.UUID] | None = None,
        patient_id: uuid.UUID | None = None,
    ) -> Sequence[Appointment]:
        # appointments never cross midnight, but a booking kept in another zone
        # can sit on the neighbouring local date
        cond = [
            Appointment.org_id == org_id,
            Appointment.deleted_at.is_(None),
            Appointment.status.in_(list(ACTIVE_STATUSES)),
            Appointment.scheduled_date >= date_from - timedelta(days=1),
            Appointment.scheduled_date <= (date_to or date_from) + timedelta(days=1),
        ]
        if resource_ids:
            cond.append(Appointment.assigned_to.in_(list(resource_ids)))
        if patient_id:
            cond.append(Appointment.patient_id == patient_id)
        res = await self.session.execute(select(Appointment).where(and_(*cond)))
        return res.scalars().all()

    async def list_series(
        self,
        org_id: uuid.UUID,
        series_id: uuid.UUID,
        *,
        date_from: date | None = None,
        active_only: bool = False,
    ) -> Sequence[Appointment]:
        cond = [
            Appointment.org_id == org_id,
            Appointment.deleted_at.is_(None),
            Appointment.recurring_series_id == series_id,
        ]
        if date_from:
            cond.append(Appointment.scheduled_date >= date_from)
        if active_only:
            cond.append(Appointment.status.in_(list(ACTIVE_STATUSES)))
        q = select(Appointment).where(and_(*cond)).order_by(Appointment.scheduled_date.asc(), Appointment.scheduled_time.asc())
        res = await self.session.execute(q)
        return res.scalars().all()

    async def list_for_report(
        self,
        org_id: uuid.UUID,
        *,
        date_from: date,
        date_to: date,
        resource_ids: Sequence[uuid.UUID] | None = None,
    ) -> Sequence[Appointment]:
        cond = [
            Appointment.org_id == org_id,
            Appointment.deleted_at.is_(None),
            Appointment.scheduled_date >= date_from,
            Appointment.scheduled_date <= date_to,
        ]
        if resource_ids:
            cond.append(Appointment.assigned_to.in_(list(resource_ids)))
        res = await self.session.execute(select(Appointment).where(and_(*cond)))
        return res.scalars().all()

    async def bump_version(self, appt: Appointment, read_version: int) -> int:
        """Compare-and-set the version read at the start of the operation.

        Pending attribute changes on ``appt`` are flushed first; a concurrent
        writer that already moved the version makes this match no row.
        """
        res = await self.session.execute(
            update(Appointment)
            .where(Appointment.id == appt.id, Appointment.version == read_version)
            .values(version=read_version + 1, updated_at=utcnow())
        )
        if res.rowcount == 0:
            raise StaleState(read_version, None)
        appt.version = read_version + 1
        return appt.version

    async def soft_delete(self, appt: Appointment, at: datetime) -> None:
        appt.retire(at)
        await self.session.flush()
