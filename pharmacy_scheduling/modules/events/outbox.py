import uuid
import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import TIMESTAMP, text, String, Integer, Text, JSON, select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from pharmacy_scheduling.core.base import Base, WorkplaceRecordMixin
from pharmacy_scheduling.core.db import SessionLocal
from pharmacy_scheduling.platform.ports.event_bus import DomainEvent, EventBusPort
from pharmacy_scheduling.platform.provider_registry import registry

log = logging.getLogger("scheduling.outbox")

# event types
APPT_CREATED = "APPT_CREATED"
APPT_STATUS_CHANGED = "APPT_STATUS_CHANGED"
APPT_RESCHEDULED = "APPT_RESCHEDULED"
APPT_CANCELLED = "APPT_CANCELLED"
APPT_REMINDER_UPDATED = "APPT_REMINDER_UPDATED"
APPT_DELETED = "APPT_DELETED"
SCHEDULE_CREATED = "SCHEDULE_CREATED"

MAX_ATTEMPTS = 10

class EventOutbox(Base, WorkplaceRecordMixin):
    event_type: Mapped[str] = mapped_column(String(64))
    subject_type: Mapped[str] = mapped_column(String(32))
    subject_id: Mapped[str] = mapped_column(String(64), index=True)
    payload: Mapped[dict] = mapped_column(JSON)

    occurred_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), server_default=text("CURRENT_TIMESTAMP"))

    status: Mapped[str] = mapped_column(String(16), default="pending")  # pending | processing | sent | dead
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    next_attempt_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), server_default=text("CURRENT_TIMESTAMP"))
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

class OutboxRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, org_id: uuid.UUID, *, event_type: str, subject_type: str, subject_id: str, payload: dict, occurred_at: datetime) -> EventOutbox:
        obj = EventOutbox(
            org_id=org_id,
            event_type=event_type,
            subject_type=subject_type,
            subject_id=subject_id,
            payload=payload,
            occurred_at=occurred_at,
            status="pending",
            attempts=0,
            next_attempt_at=occurred_at,
        )
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def list_for_subject(self, subject_id: str) -> list[EventOutbox]:
        res = await self.session.execute(
            select(EventOutbox).where(EventOutbox.subject_id == subject_id).order_by(EventOutbox.occurred_at.asc())
        )
        return list(res.scalars().all())

    async def claim_batch(self, limit: int = 50) -> list[EventOutbox]:
        # SELECT ... FOR UPDATE SKIP LOCKED; ignored by backends without row locks
        q = (
            select(EventOutbox)
            .where(
                and_(
                    EventOutbox.deleted_at.is_(None),
                    EventOutbox.status == "pending",
                    EventOutbox.next_attempt_at <= datetime.now(timezone.utc),
                )
            )
            .order_by(EventOutbox.occurred_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        rows = list((await self.session.execute(q)).scalars().all())
        for r in rows:
            r.status = "processing"
        await self.session.flush()
        return rows

    async def mark_sent(self, obj: EventOutbox):
        obj.status = "sent"
        obj.last_error = None
        await self.session.flush()

    async def mark_failed(self, obj: EventOutbox, error: str):
        obj.attempts = (obj.attempts or 0) + 1
        # give up after MAX_ATTEMPTS; the row stays for inspection
        obj.status = "dead" if obj.attempts >= MAX_ATTEMPTS else "pending"
        backoff = min(60, 2 ** min(obj.attempts, 6))
        obj.next_attempt_at = datetime.now(timezone.utc) + timedelta(seconds=backoff)
        obj.last_error = error[:2000]
        await self.session.flush()

class OutboxService:
    """Enqueue domain events inside the caller's transaction."""
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = OutboxRepository(session)

    async def enqueue(self, org_id: uuid.UUID, event_type: str, subject_type: str, subject_id: str | uuid.UUID, payload: dict, occurred_at: datetime | None = None) -> EventOutbox:
        return await self.repo.add(
            org_id,
            event_type=event_type,
            subject_type=subject_type,
            subject_id=str(subject_id),
            payload=payload,
            occurred_at=occurred_at or datetime.now(timezone.utc),
        )

    async def appointment_event(self, appt, event_type: str, **extra) -> EventOutbox:
        payload = {
            "resource_id": str(appt.assigned_to),
            "patient_id": str(appt.patient_id),
            "status": getattr(appt.status, "value", appt.status),
            "start": appt.start.isoformat(),
            "duration": appt.duration,
            "timezone": appt.timezone,
            "version": appt.version,
        }
        if appt.recurring_series_id is not None:
            payload["recurring_series_id"] = str(appt.recurring_series_id)
        payload.update({k: (str(v) if isinstance(v, uuid.UUID) else v) for k, v in extra.items()})
        return await self.enqueue(appt.org_id, event_type, "appointment", appt.id, payload)

# ---- Background relay ----

def to_domain_event(ev: EventOutbox) -> DomainEvent:
    return DomainEvent(
        event_id=str(ev.id),
        org_id=str(ev.org_id),
        event_type=ev.event_type,
        subject_type=ev.subject_type,
        subject_id=ev.subject_id,
        occurred_at=ev.occurred_at,
        payload=ev.payload or {},
    )

async def relay_once(session: AsyncSession, bus: EventBusPort, limit: int = 50) -> int:
    """Publish one batch; returns how many rows were claimed."""
    repo = OutboxRepository(session)
    batch = await repo.claim_batch(limit=limit)
    for ev in batch:
        try:
            await bus.publish(to_domain_event(ev))
            await repo.mark_sent(ev)
        except Exception as ex:
            log.exception(f"Publish failed for outbox {ev.id} ({ev.event_type})")
            await repo.mark_failed(ev, error=str(ex))
    await session.commit()
    return len(batch)

async def run_outbox_relay(poll_interval_seconds: float = 1.0):
    bus = registry.event_bus()
    log.info("Outbox relay started with bus=%s", bus.__class__.__name__)
    try:
        while True:
            async with SessionLocal() as session:
                try:
                    claimed = await relay_once(session, bus)
                except Exception:
                    log.exception("Outbox relay iteration failed")
                    await session.rollback()
                    claimed = 0
            await asyncio.sleep(0 if claimed else poll_interval_seconds)
    except asyncio.CancelledError:
        log.info("Outbox relay cancelled; shutting down")
        raise
