import os

# settings are read at import time
os.environ.setdefault("POSTGRES_DSN", "sqlite+aiosqlite:///./.pytest-scheduling.db")
os.environ.setdefault("ENV", "local")
os.environ.setdefault("EVENT_BUS_PROVIDER", "noop")
os.environ.setdefault("LOCK_PROVIDER", "local")

import uuid
from datetime import date, datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from pharmacy_scheduling.core.base import Base
from pharmacy_scheduling.modules.appointments import models as _appointments  # noqa: F401
from pharmacy_scheduling.modules.appointments.enums import AppointmentStatus, AppointmentType
from pharmacy_scheduling.modules.appointments.models import Appointment
from pharmacy_scheduling.modules.appointments.service import AppointmentService
from pharmacy_scheduling.modules.availability import models as _availability  # noqa: F401
from pharmacy_scheduling.modules.availability.repository import AvailabilityRepository
from pharmacy_scheduling.modules.directory.repository import DirectoryRepository
from pharmacy_scheduling.modules.events import outbox as _outbox  # noqa: F401
from pharmacy_scheduling.modules.notifications import models as _notifications  # noqa: F401
from pharmacy_scheduling.platform.adapters.lock_local import LocalResourceLocks

ORG = uuid.UUID(int=1)
TZ = "Africa/Lagos"  # UTC+1 all year
# Monday 2 June 2025, 07:00 in Lagos
NOW = datetime(2025, 6, 2, 6, 0, tzinfo=timezone.utc)
MONDAY = date(2025, 6, 2)


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'scheduling.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def locks():
    return LocalResourceLocks()


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
async def pharmacist(session):
    """Pharmacist working 08:00-17:00 Monday to Saturday."""
    p = await DirectoryRepository(session).create_pharmacist(
        ORG, name="Ada Obi", timezone=TZ, specialties=[AppointmentType.MTM_SESSION.value],
    )
    repo = AvailabilityRepository(session)
    for dow in range(6):
        await repo.create_schedule(ORG, pharmacist_id=p.id, day_of_week=dow, start_minute=8 * 60, end_minute=17 * 60, slot_minutes=30)
    await session.commit()
    return p


@pytest.fixture
def service(session, locks, clock):
    return AppointmentService(session, locks=locks, clock=clock)


@pytest.fixture
def make_appt():
    """Unsaved appointment for pure-function tests."""
    def _make(start: datetime, duration: int = 30, *, resource_id=None, status=AppointmentStatus.SCHEDULED, **kw):
        data = dict(
            id=uuid.uuid4(),
            org_id=ORG,
            patient_id=uuid.uuid4(),
            assigned_to=resource_id or uuid.UUID(int=7),
            type=AppointmentType.GENERAL_FOLLOWUP,
            title="General Follow-up - test",
            scheduled_date=start.date(),
            scheduled_time=start.time(),
            duration=duration,
            timezone=TZ,
            status=status,
            reminders=[],
            version=1,
            deleted_at=None,
        )
        data.update(kw)
        return Appointment(**data)
    return _make
