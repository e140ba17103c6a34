import uuid
import logging
from contextlib import asynccontextmanager, nullcontext
from datetime import date, datetime, timedelta
from typing import Callable
from sqlalchemy.ext.asyncio import AsyncSession

from pharmacy_scheduling.core.base import utcnow
from pharmacy_scheduling.core.config import settings
from pharmacy_scheduling.core.errors import InvalidTransition, NotFound, ValidationError
from pharmacy_scheduling.modules.appointments import state_machine
from pharmacy_scheduling.modules.appointments.enums import AppointmentStatus, AppointmentType, ConfirmationStatus
from pharmacy_scheduling.modules.appointments.models import Appointment
from pharmacy_scheduling.modules.appointments.recurrence import occurrence_dates
from pharmacy_scheduling.modules.appointments.reminders import default_reminders, record_delivery
from pharmacy_scheduling.modules.appointments.repository import AppointmentRepository
from pharmacy_scheduling.modules.appointments.schemas import (
    AppointmentCreate, RescheduleRequest, StatusChange, CancelRequest, ReminderDelivery,
)
from pharmacy_scheduling.modules.appointments.validation import (
    resolve_timezone, to_wall_clock, validate_duration, validate_slot,
)
from pharmacy_scheduling.modules.availability.service import AvailabilityService
from pharmacy_scheduling.modules.directory.repository import DirectoryRepository
from pharmacy_scheduling.modules.events.outbox import (
    OutboxService, APPT_CREATED, APPT_STATUS_CHANGED, APPT_RESCHEDULED, APPT_CANCELLED,
    APPT_REMINDER_UPDATED, APPT_DELETED,
)
from pharmacy_scheduling.modules.notifications.service import NotificationsService
from pharmacy_scheduling.platform.ports.locks import ResourceLockPort
from pharmacy_scheduling.platform.provider_registry import registry

logger = logging.getLogger(__name__)

NOTIFY_EVENTS = {
    AppointmentStatus.CONFIRMED: "appointment_confirmed",
    AppointmentStatus.CANCELLED: "appointment_cancelled",
}

def generate_title(appointment_type: AppointmentType, patient_name: str | None, patient_id: uuid.UUID) -> str:
    return f"{AppointmentType(appointment_type).label} - {patient_name or patient_id}"

class AppointmentService:
    def __init__(self, session: AsyncSession, locks: ResourceLockPort | None = None, clock: Callable[[], datetime] | None = None):
        self.session = session
        self.appts = AppointmentRepository(session)
        self.availability = AvailabilityService(session)
        self.directory = DirectoryRepository(session)
        self.outbox = OutboxService(session)
        self.locks = locks or registry.resource_locks()
        self.clock = clock or utcnow

    @asynccontextmanager
    async def _write(self, resource_id: uuid.UUID | None = None):
        """Commit on success, roll back on any error. Holds the resource lock when given one."""
        lock = self.locks.hold(str(resource_id), settings.LOCK_TIMEOUT_SECONDS) if resource_id else nullcontext()
        async with lock:
            try:
                yield
                await self.session.commit()
            except Exception:
                await self.session.rollback()
                raise

    async def _get(self, org_id: uuid.UUID, appt_id: uuid.UUID) -> Appointment:
        appt = await self.appts.get(org_id, appt_id)
        if not appt:
            raise NotFound("Appointment", appt_id)
        return appt

    async def _notify(self, appt: Appointment, event: str, **variables):
        try:
            await NotificationsService(self.session).notify_patient(
                appt, event=event, channel=settings.NOTIFY_DEFAULT_CHANNEL, variables=variables,
            )
        except Exception:
            # the appointment write is already committed
            logger.exception(f"Patient notification {event} failed for appointment {appt.id}")
            await self.session.rollback()
            await self.session.refresh(appt)

    # ---- Booking ----
    async def create(self, org_id: uuid.UUID, payload: AppointmentCreate, *, created_by: uuid.UUID | None = None) -> Appointment:
        """Book one appointment, or every instance of a recurring series.

        A series is all-or-nothing: one conflicting instance rejects the whole
        booking. The first instance is returned.
        """
        pharmacist = await self.directory.get_pharmacist(org_id, payload.resource_id)
        if not pharmacist:
            raise NotFound("Pharmacist", payload.resource_id)

        # bookings live in the pharmacist's zone so one resource never mixes clocks
        home_tz = pharmacist.timezone or settings.DEFAULT_TIMEZONE
        tz = payload.timezone or home_tz
        resolve_timezone(tz)
        if tz != home_tz:
            raise ValidationError(
                f"Appointments with this pharmacist are kept in {home_tz}; send an aware start instead",
                field="timezone", value=tz,
            )
        start = to_wall_clock(payload.start, tz)
        validate_duration(payload.type, payload.duration)
        now = self.clock()
        validate_slot(start, payload.duration, tz, now)

        days = [start.date()]
        series_id = pattern = None
        if payload.recurrence:
            days = occurrence_dates(start.date(), payload.recurrence)
            series_id = uuid.uuid4()
            pattern = payload.recurrence.model_dump(mode="json")

        booked: list[Appointment] = []
        async with self._write(payload.resource_id):
            for day in days:
                slot_start = datetime.combine(day, start.time())
                slot_end = slot_start + timedelta(minutes=payload.duration)
                is_override = await self.availability.ensure_slot(
                    org_id,
                    resource_id=payload.resource_id,
                    patient_id=payload.patient_id,
                    start=slot_start,
                    end=slot_end,
                    timezone=tz,
                    override_business_hours=payload.override_business_hours,
                    allow_double_booking=payload.allow_double_booking,
                )
                appt = await self.appts.create(
                    org_id,
                    patient_id=payload.patient_id,
                    assigned_to=payload.resource_id,
                    location_id=payload.location_id or pharmacist.location_id,
                    type=payload.type,
                    title=payload.title or generate_title(payload.type, payload.patient_name, payload.patient_id),
                    description=payload.description,
                    scheduled_date=slot_start.date(),
                    scheduled_time=slot_start.time(),
                    duration=payload.duration,
                    timezone=tz,
                    status=AppointmentStatus.SCHEDULED,
                    confirmation_status=ConfirmationStatus.PENDING,
                    reminders=default_reminders(slot_start, tz, now),
                    is_override=is_override,
                    is_recurring=series_id is not None,
                    recurring_series_id=series_id,
                    recurrence_pattern=pattern,
                    created_by=created_by,
                )
                await self.outbox.appointment_event(appt, APPT_CREATED, is_override=is_override)
                booked.append(appt)

        first = booked[0]
        if series_id:
            logger.info(f"Booked series {series_id} of {len(booked)} appointments for pharmacist {first.assigned_to} from {first.start:%Y-%m-%d %H:%M}")
        else:
            logger.info(f"Booked appointment {first.id} for pharmacist {first.assigned_to} at {first.start:%Y-%m-%d %H:%M} ({first.duration}m)")
        return first

    async def reschedule(self, org_id: uuid.UUID, appt_id: uuid.UUID, payload: RescheduleRequest) -> Appointment:
        """Move an appointment to a new slot.

        The old record becomes ``rescheduled`` and a fresh ``scheduled`` record
        takes the new slot, both in one transaction. On any failure nothing is
        written and the old record keeps its status, time and version.
        """
        appt = await self._get(org_id, appt_id)
        duration = payload.new_duration or appt.duration
        start = to_wall_clock(payload.new_start, appt.timezone)
        validate_duration(appt.type, duration)
        now = self.clock()
        end = validate_slot(start, duration, appt.timezone, now)

        async with self._write(appt.assigned_to):
            # another writer may have moved it while we waited for the lock
            await self.session.refresh(appt)
            if appt.deleted_at is not None:
                raise NotFound("Appointment", appt_id)
            read_version = appt.version
            state_machine.ensure_version(appt, payload.expected_version)
            current = AppointmentStatus(appt.status)
            if not state_machine.can_transition(current, AppointmentStatus.RESCHEDULED):
                raise InvalidTransition(current.value, AppointmentStatus.RESCHEDULED.value, f"Cannot reschedule appointment with status: {current.value}")

            is_override = await self.availability.ensure_slot(
                org_id,
                resource_id=appt.assigned_to,
                patient_id=appt.patient_id,
                start=start,
                end=end,
                timezone=appt.timezone,
                exclude_id=appt.id,
                override_business_hours=payload.override_business_hours,
                allow_double_booking=payload.allow_double_booking,
            )
            new = await self.appts.create(
                org_id,
                patient_id=appt.patient_id,
                assigned_to=appt.assigned_to,
                location_id=appt.location_id,
                type=appt.type,
                title=appt.title,
                description=appt.description,
                scheduled_date=start.date(),
                scheduled_time=start.time(),
                duration=duration,
                timezone=appt.timezone,
                status=AppointmentStatus.SCHEDULED,
                confirmation_status=ConfirmationStatus.PENDING,
                reminders=default_reminders(start, appt.timezone, now),
                related_records=appt.related_records,
                rescheduled_from_id=appt.id,
                is_override=is_override,
                created_by=appt.created_by,
            )
            state_machine.mark_rescheduled(appt, payload.reason, now=now)
            appt.rescheduled_to_id = new.id
            await self.appts.bump_version(appt, read_version)
            await self.outbox.appointment_event(
                new, APPT_RESCHEDULED, rescheduled_from_id=appt.id,
                previous_start=appt.start.isoformat(), reason=payload.reason,
            )

        logger.info(f"Rescheduled appointment {appt.id} -> {new.id} at {new.start:%Y-%m-%d %H:%M}")
        if payload.notify_patient:
            await self._notify(new, "appointment_rescheduled", reason=payload.reason)
        return new

    # ---- Lifecycle ----
    async def transition_status(self, org_id: uuid.UUID, appt_id: uuid.UUID, payload: StatusChange) -> Appointment:
        appt = await self._get(org_id, appt_id)
        read_version = appt.version
        now = self.clock()
        async with self._write():
            result = state_machine.transition(
                appt,
                payload.status,
                state_machine.TransitionPayload(reason=payload.reason, outcome=payload.outcome, notify_patient=payload.notify_patient),
                now=now,
                expected_version=payload.expected_version,
            )
            await self.appts.bump_version(appt, read_version)
            event = APPT_CANCELLED if result.appointment.status == AppointmentStatus.CANCELLED else APPT_STATUS_CHANGED
            await self.outbox.appointment_event(
                appt, event,
                previous_status=result.previous_status.value,
                path=[s.value for s in result.path],
                reason=payload.reason,
            )

        logger.info(f"Appointment {appt.id} {result.previous_status.value} -> {AppointmentStatus(appt.status).value} (v{appt.version})")
        if payload.notify_patient:
            await self._notify(appt, NOTIFY_EVENTS.get(AppointmentStatus(appt.status), "appointment_status_changed"), reason=payload.reason or "")
        return appt

    async def cancel(self, org_id: uuid.UUID, appt_id: uuid.UUID, payload: CancelRequest) -> Appointment:
        """Cancel one appointment, or it and every later active instance of its series."""
        change = StatusChange(
            status=AppointmentStatus.CANCELLED,
            reason=payload.reason,
            notify_patient=payload.notify_patient,
            expected_version=payload.expected_version,
        )
        if payload.cancel_type != "all_future":
            return await self.transition_status(org_id, appt_id, change)
        appt = await self._get(org_id, appt_id)
        if appt.recurring_series_id is None:
            return await self.transition_status(org_id, appt_id, change)

        now = self.clock()
        async with self._write():
            state_machine.ensure_version(appt, payload.expected_version)
            targets = list(await self.appts.list_series(
                org_id, appt.recurring_series_id, date_from=appt.scheduled_date, active_only=True,
            ))
            if appt not in targets:
                # a terminal instance still reports its own transition error
                targets.insert(0, appt)
            for target in targets:
                read_version = target.version
                result = state_machine.transition(
                    target, AppointmentStatus.CANCELLED,
                    state_machine.TransitionPayload(reason=payload.reason, notify_patient=payload.notify_patient),
                    now=now,
                )
                await self.appts.bump_version(target, read_version)
                await self.outbox.appointment_event(
                    target, APPT_CANCELLED,
                    previous_status=result.previous_status.value,
                    path=[s.value for s in result.path],
                    reason=payload.reason,
                    cancel_type=payload.cancel_type,
                )

        logger.info(f"Cancelled {len(targets)} appointments of series {appt.recurring_series_id} from {appt.scheduled_date}")
        if payload.notify_patient:
            await self._notify(appt, "appointment_cancelled", reason=payload.reason or "")
        return appt

    async def list_series(self, org_id: uuid.UUID, series_id: uuid.UUID):
        items = await self.appts.list_series(org_id, series_id)
        if not items:
            raise NotFound("Appointment series", series_id)
        return items

    async def record_reminder_delivery(self, org_id: uuid.UUID, appt_id: uuid.UUID, index: int, payload: ReminderDelivery) -> Appointment:
        appt = await self._get(org_id, appt_id)
        read_version = appt.version
        async with self._write():
            appt.reminders = record_delivery(list(appt.reminders or []), index, payload.delivery_status, payload.failure_reason, self.clock())
            await self.appts.bump_version(appt, read_version)
            await self.outbox.appointment_event(appt, APPT_REMINDER_UPDATED, index=index, delivery_status=payload.delivery_status.value)
        return appt

    async def soft_delete(self, org_id: uuid.UUID, appt_id: uuid.UUID) -> Appointment:
        appt = await self._get(org_id, appt_id)
        read_version = appt.version
        async with self._write():
            await self.appts.soft_delete(appt, self.clock())
            await self.appts.bump_version(appt, read_version)
            await self.outbox.appointment_event(appt, APPT_DELETED)
        logger.info(f"Soft-deleted appointment {appt.id}")
        return appt

    # ---- Reads ----
    async def get(self, org_id: uuid.UUID, appt_id: uuid.UUID) -> Appointment:
        return await self._get(org_id, appt_id)

    async def get_calendar(self, org_id: uuid.UUID, *, date_from: date, date_to: date, resource_id: uuid.UUID | None = None, location_id: uuid.UUID | None = None):
        if date_to < date_from:
            raise ValidationError("date_to must not be before date_from", field="date_to", value=date_to.isoformat())
        return await self.appts.list_calendar(org_id, date_from=date_from, date_to=date_to, resource_id=resource_id, location_id=location_id)
