from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from .config import settings
from .base import Base

engine = create_async_engine(settings.POSTGRES_DSN, pool_pre_ping=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

async def get_session():
    async with SessionLocal() as session:
        yield session

async def init_models():
    # In dev-only "create_all" mode, build tables directly; otherwise, migrations own the schema.
    if settings.DB_MANAGE == "create_all":
        # register every mapped table on Base.metadata
        from pharmacy_scheduling.modules.appointments import models as _appointments  # noqa: F401
        from pharmacy_scheduling.modules.availability import models as _availability  # noqa: F401
        from pharmacy_scheduling.modules.directory import models as _directory  # noqa: F401
        from pharmacy_scheduling.modules.events import outbox as _outbox  # noqa: F401
        from pharmacy_scheduling.modules.notifications import models as _notifications  # noqa: F401
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
