import uuid
from datetime import date, datetime, time, timezone

import pytest

from pharmacy_scheduling.core.config import settings
from pharmacy_scheduling.core.errors import (
    InvalidTransition, NotFound, OutsideBusinessHours, ResourceBusy, SlotConflict, StaleState, ValidationError,
)
from pharmacy_scheduling.modules.appointments.enums import (
    AppointmentStatus as S, AppointmentType, ConfirmationStatus, DeliveryStatus,
)
from pharmacy_scheduling.modules.appointments.schemas import (
    AppointmentCreate, CancelRequest, ReminderDelivery, RescheduleRequest, StatusChange,
)
from pharmacy_scheduling.modules.appointments.service import AppointmentService
from pharmacy_scheduling.modules.directory.repository import DirectoryRepository
from pharmacy_scheduling.modules.events.outbox import OutboxRepository
from pharmacy_scheduling.modules.notifications.service import NotificationsService

ORG = uuid.UUID(int=1)
TZ = "Africa/Lagos"
MONDAY = date(2025, 6, 2)
TUESDAY = date(2025, 6, 3)
OUTCOME = {"status": "successful", "notes": "Adherence reviewed"}


def at(hh, mm=0, day=MONDAY):
    return datetime.combine(day, time(hh, mm))


def booking(resource_id, start, duration=30, *, patient_id=None, type=AppointmentType.GENERAL_FOLLOWUP, **kw):
    return AppointmentCreate(
        resource_id=resource_id, patient_id=patient_id or uuid.uuid4(), type=type,
        start=start, duration=duration, **kw,
    )


async def event_types(session, appt_id):
    return [e.event_type for e in await OutboxRepository(session).list_for_subject(str(appt_id))]


class TestBooking:
    @pytest.mark.asyncio
    async def test_overlap_is_rejected_and_back_to_back_is_fine(self, service, pharmacist):
        # a failed write rolls back and expires loaded rows, so keep plain ids
        pid = pharmacist.id
        first = await service.create(ORG, booking(pid, at(9)))
        first_id = first.id
        assert first.status == S.SCHEDULED
        assert first.version == 1

        with pytest.raises(SlotConflict) as exc:
            await service.create(ORG, booking(pid, at(9, 15)))
        assert exc.value.conflicting_ids == [first_id]

        second = await service.create(ORG, booking(pid, at(9, 30)))
        assert second.start == at(9, 30)
        assert second.end == at(10)

    @pytest.mark.asyncio
    async def test_created_fields(self, service, pharmacist):
        appt = await service.create(ORG, booking(pharmacist.id, at(10, day=TUESDAY), patient_name="Jane Doe"), created_by=uuid.UUID(int=99))
        assert appt.title == "General Follow-up - Jane Doe"
        assert appt.timezone == TZ
        assert appt.confirmation_status == ConfirmationStatus.PENDING
        assert appt.created_by == uuid.UUID(int=99)
        assert appt.is_override is False
        assert [r["channel"] for r in appt.reminders] == ["email", "sms", "push", "push"]
        assert all(not r["sent"] and r["delivery_status"] == "pending" for r in appt.reminders)
        assert await event_types(service.session, appt.id) == ["APPT_CREATED"]

    @pytest.mark.asyncio
    async def test_reminders_already_due_are_dropped(self, service, pharmacist):
        # 09:00 today with "now" at 07:00: only the 15 minute push is still ahead
        appt = await service.create(ORG, booking(pharmacist.id, at(9)))
        assert len(appt.reminders) == 1
        assert appt.reminders[0]["channel"] == "push"

    @pytest.mark.asyncio
    async def test_aware_start_is_converted_to_local_time(self, service, pharmacist):
        appt = await service.create(ORG, booking(pharmacist.id, datetime(2025, 6, 2, 9, 0, tzinfo=timezone.utc)))
        assert appt.scheduled_time == time(10, 0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("type,duration", [
        (AppointmentType.MTM_SESSION, 20),
        (AppointmentType.SMOKING_CESSATION, 25),
        (AppointmentType.GENERAL_FOLLOWUP, 4),
        (AppointmentType.GENERAL_FOLLOWUP, 121),
    ])
    async def test_duration_limits(self, service, pharmacist, type, duration):
        with pytest.raises(ValidationError) as exc:
            await service.create(ORG, booking(pharmacist.id, at(10), duration, type=type))
        assert exc.value.field == "duration"

    @pytest.mark.asyncio
    async def test_past_start(self, service, pharmacist):
        with pytest.raises(ValidationError) as exc:
            await service.create(ORG, booking(pharmacist.id, at(6, 30)))
        assert exc.value.field == "start"

    @pytest.mark.asyncio
    async def test_cannot_cross_midnight(self, service, pharmacist):
        with pytest.raises(ValidationError):
            await service.create(ORG, booking(pharmacist.id, at(23, 45), 30, override_business_hours=True))

    @pytest.mark.asyncio
    async def test_unknown_timezone(self, service, pharmacist):
        with pytest.raises(ValidationError) as exc:
            await service.create(ORG, booking(pharmacist.id, at(10), timezone="Mars/Olympus"))
        assert exc.value.field == "timezone"

    @pytest.mark.asyncio
    async def test_unknown_pharmacist(self, service, pharmacist):
        with pytest.raises(NotFound):
            await service.create(ORG, booking(uuid.uuid4(), at(10)))

    @pytest.mark.asyncio
    async def test_outside_working_hours(self, service, pharmacist):
        pid = pharmacist.id
        with pytest.raises(OutsideBusinessHours):
            await service.create(ORG, booking(pid, at(16, 45)))
        sunday = date(2025, 6, 8)
        with pytest.raises(OutsideBusinessHours):
            await service.create(ORG, booking(pid, at(10, day=sunday)))

    @pytest.mark.asyncio
    async def test_business_hours_override(self, service, pharmacist):
        appt = await service.create(ORG, booking(pharmacist.id, at(17, 30), override_business_hours=True))
        assert appt.status == S.SCHEDULED

    @pytest.mark.asyncio
    async def test_double_booking_override(self, service, pharmacist):
        first = await service.create(ORG, booking(pharmacist.id, at(11)))
        second = await service.create(ORG, booking(pharmacist.id, at(11), allow_double_booking=True))
        assert second.is_override is True
        assert first.is_override is False

    @pytest.mark.asyncio
    async def test_patient_cannot_be_in_two_places(self, service, session, pharmacist):
        other = await DirectoryRepository(session).create_pharmacist(ORG, name="Bola Ade", timezone=TZ)
        await session.commit()
        patient = uuid.uuid4()
        first = await service.create(ORG, booking(pharmacist.id, at(9), patient_id=patient))
        first_id, other_id = first.id, other.id

        with pytest.raises(SlotConflict) as exc:
            await service.create(ORG, booking(other_id, at(9, 15), patient_id=patient, allow_double_booking=True))
        assert exc.value.conflicting_ids == [first_id]
        assert "Patient" in exc.value.message

    @pytest.mark.asyncio
    async def test_foreign_timezone_is_rejected(self, service, pharmacist):
        with pytest.raises(ValidationError) as exc:
            await service.create(ORG, booking(pharmacist.id, at(10), timezone="UTC"))
        assert exc.value.field == "timezone"

    @pytest.mark.asyncio
    async def test_patient_clash_across_zones(self, service, session, pharmacist):
        accra = await DirectoryRepository(session).create_pharmacist(ORG, name="Kofi Mensah", timezone="Africa/Accra")
        await session.commit()
        accra_id, patient = accra.id, uuid.uuid4()
        first = await service.create(ORG, booking(pharmacist.id, at(10), patient_id=patient))
        first_id = first.id

        # 09:15 in Accra is 10:15 in Lagos
        with pytest.raises(SlotConflict) as exc:
            await service.create(ORG, booking(accra_id, at(9, 15), patient_id=patient))
        assert exc.value.conflicting_ids == [first_id]

        later = await service.create(ORG, booking(accra_id, at(10), patient_id=patient))
        assert later.timezone == "Africa/Accra"
        assert later.starts_at == datetime(2025, 6, 2, 10, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_lock_timeout(self, service, pharmacist, locks, monkeypatch):
        monkeypatch.setattr(settings, "LOCK_TIMEOUT_SECONDS", 0.05)
        async with locks.hold(str(pharmacist.id), 1):
            with pytest.raises(ResourceBusy):
                await service.create(ORG, booking(pharmacist.id, at(10)))
        assert await service.get_calendar(ORG, date_from=MONDAY, date_to=MONDAY) == []


class TestReschedule:
    @pytest.mark.asyncio
    async def test_moves_to_a_new_record(self, service, pharmacist):
        old = await service.create(ORG, booking(pharmacist.id, at(9)))
        new = await service.reschedule(ORG, old.id, RescheduleRequest(new_start=at(11), reason="Pharmacist in training"))

        assert new.id != old.id
        assert new.status == S.SCHEDULED
        assert new.start == at(11)
        assert new.rescheduled_from_id == old.id

        old = await service.get(ORG, old.id)
        assert old.status == S.RESCHEDULED
        assert old.rescheduled_to_id == new.id
        assert old.rescheduled_reason == "Pharmacist in training"
        assert old.version == 2
        assert await event_types(service.session, new.id) == ["APPT_RESCHEDULED"]

        # the old slot is free again
        await service.create(ORG, booking(pharmacist.id, at(9)))

    @pytest.mark.asyncio
    async def test_may_overlap_its_own_old_slot(self, service, pharmacist):
        old = await service.create(ORG, booking(pharmacist.id, at(9)))
        new = await service.reschedule(ORG, old.id, RescheduleRequest(new_start=at(9, 15), new_duration=45, reason="Longer review"))
        assert new.start == at(9, 15)
        assert new.duration == 45

    @pytest.mark.asyncio
    async def test_failed_reschedule_changes_nothing(self, service, pharmacist):
        a = await service.create(ORG, booking(pharmacist.id, at(9)))
        b = await service.create(ORG, booking(pharmacist.id, at(10)))
        a_id, b_id = a.id, b.id

        with pytest.raises(SlotConflict) as exc:
            await service.reschedule(ORG, a_id, RescheduleRequest(new_start=at(10, 15), reason="Clash"))
        assert exc.value.conflicting_ids == [b_id]

        a = await service.get(ORG, a_id)
        assert a.status == S.SCHEDULED
        assert a.start == at(9)
        assert a.version == 1
        assert a.rescheduled_to_id is None
        assert len(await service.get_calendar(ORG, date_from=MONDAY, date_to=MONDAY)) == 2

    @pytest.mark.asyncio
    async def test_terminal_appointment_cannot_move(self, service, pharmacist):
        appt = await service.create(ORG, booking(pharmacist.id, at(9)))
        await service.cancel(ORG, appt.id, CancelRequest())
        with pytest.raises(InvalidTransition):
            await service.reschedule(ORG, appt.id, RescheduleRequest(new_start=at(11), reason="Too late"))

    @pytest.mark.asyncio
    async def test_stale_version(self, service, pharmacist):
        appt_id = (await service.create(ORG, booking(pharmacist.id, at(9)))).id
        with pytest.raises(StaleState):
            await service.reschedule(ORG, appt_id, RescheduleRequest(new_start=at(11), reason="x", expected_version=4))
        assert (await service.get(ORG, appt_id)).status == S.SCHEDULED

    @pytest.mark.asyncio
    async def test_notifies_patient(self, service, session, pharmacist):
        appt = await service.create(ORG, booking(pharmacist.id, at(9)))
        new = await service.reschedule(ORG, appt.id, RescheduleRequest(new_start=at(14), reason="Clinic closed early", notify_patient=True))
        [msg] = await NotificationsService(session).list_for_appointment(ORG, new.id)
        assert msg.recipient == f"patient:{appt.patient_id}"
        assert msg.event == "appointment_rescheduled"
        assert "14:00" in msg.body
        assert "Clinic closed early" in msg.body


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_confirm_bumps_version(self, service, pharmacist):
        appt = await service.create(ORG, booking(pharmacist.id, at(9)))
        appt = await service.transition_status(ORG, appt.id, StatusChange(status=S.CONFIRMED, expected_version=1))
        assert appt.status == S.CONFIRMED
        assert appt.confirmation_status == ConfirmationStatus.CONFIRMED
        assert appt.version == 2
        assert await event_types(service.session, appt.id) == ["APPT_CREATED", "APPT_STATUS_CHANGED"]

    @pytest.mark.asyncio
    async def test_complete_with_outcome(self, service, pharmacist):
        appt = await service.create(ORG, booking(pharmacist.id, at(9)))
        appt = await service.transition_status(ORG, appt.id, StatusChange(status=S.COMPLETED, outcome=OUTCOME))
        assert appt.status == S.COMPLETED
        assert appt.outcome["notes"] == "Adherence reviewed"
        assert appt.version == 2

    @pytest.mark.asyncio
    async def test_complete_without_outcome(self, service, pharmacist):
        appt_id = (await service.create(ORG, booking(pharmacist.id, at(9)))).id
        with pytest.raises(ValidationError):
            await service.transition_status(ORG, appt_id, StatusChange(status=S.COMPLETED))
        appt = await service.get(ORG, appt_id)
        assert appt.status == S.SCHEDULED
        assert appt.version == 1

    @pytest.mark.asyncio
    async def test_stale_expected_version(self, service, pharmacist):
        appt_id = (await service.create(ORG, booking(pharmacist.id, at(9)))).id
        await service.transition_status(ORG, appt_id, StatusChange(status=S.CONFIRMED))
        with pytest.raises(StaleState):
            await service.transition_status(ORG, appt_id, StatusChange(status=S.CANCELLED, expected_version=1))
        assert (await service.get(ORG, appt_id)).status == S.CONFIRMED

    @pytest.mark.asyncio
    async def test_concurrent_writer_loses_on_version(self, service, session_factory, pharmacist):
        appt = await service.create(ORG, booking(pharmacist.id, at(9)))
        async with session_factory() as other:
            await AppointmentService(other, locks=service.locks, clock=service.clock).transition_status(
                ORG, appt.id, StatusChange(status=S.CANCELLED),
            )
        # our copy still says version 1
        with pytest.raises((StaleState, InvalidTransition)):
            await service.transition_status(ORG, appt.id, StatusChange(status=S.CONFIRMED, expected_version=1))

    @pytest.mark.asyncio
    async def test_cancel_with_notification(self, service, session, pharmacist):
        appt_id = (await service.create(ORG, booking(pharmacist.id, at(9)))).id
        with pytest.raises(ValidationError):
            await service.cancel(ORG, appt_id, CancelRequest(notify_patient=True))

        appt = await service.cancel(ORG, appt_id, CancelRequest(reason="Pharmacy closed", notify_patient=True))
        assert appt.status == S.CANCELLED
        assert appt.cancellation_reason == "Pharmacy closed"
        [msg] = await NotificationsService(session).list_for_appointment(ORG, appt.id)
        assert msg.channel == settings.NOTIFY_DEFAULT_CHANNEL
        assert msg.subject == "Appointment cancelled"
        assert "Pharmacy closed" in msg.body
        assert "APPT_CANCELLED" in await event_types(session, appt.id)

    @pytest.mark.asyncio
    async def test_workplace_wording_wins(self, service, session, pharmacist):
        await NotificationsService(session).create_template(
            ORG, event="appointment_cancelled", channel=settings.NOTIFY_DEFAULT_CHANNEL,
            subject=None, body="Sorry, your ${type_label} on ${date} is off: ${reason}",
        )
        appt = await service.create(ORG, booking(pharmacist.id, at(9)))
        await service.cancel(ORG, appt.id, CancelRequest(reason="Flooding", notify_patient=True))
        [msg] = await NotificationsService(session).list_for_appointment(ORG, appt.id)
        assert msg.body == "Sorry, your General Follow-up on 2025-06-02 is off: Flooding"
        assert msg.subject is None

    @pytest.mark.asyncio
    async def test_cancelled_slot_is_free(self, service, pharmacist):
        appt = await service.create(ORG, booking(pharmacist.id, at(9)))
        await service.cancel(ORG, appt.id, CancelRequest())
        again = await service.create(ORG, booking(pharmacist.id, at(9)))
        assert again.status == S.SCHEDULED

    @pytest.mark.asyncio
    async def test_no_show_too_early(self, service, pharmacist):
        appt = await service.create(ORG, booking(pharmacist.id, at(9)))
        with pytest.raises(InvalidTransition):
            await service.transition_status(ORG, appt.id, StatusChange(status=S.NO_SHOW))

    @pytest.mark.asyncio
    async def test_missing_appointment(self, service, pharmacist):
        with pytest.raises(NotFound):
            await service.transition_status(ORG, uuid.uuid4(), StatusChange(status=S.CONFIRMED))


class TestRemindersAndDeletion:
    @pytest.mark.asyncio
    async def test_delivery_updates(self, service, pharmacist):
        appt = await service.create(ORG, booking(pharmacist.id, at(10, day=TUESDAY)))
        appt = await service.record_reminder_delivery(ORG, appt.id, 1, ReminderDelivery(delivery_status=DeliveryStatus.SENT))
        assert appt.reminders[1]["sent"] is True
        assert appt.reminders[1]["sent_at"] is not None
        assert appt.version == 2

        appt = await service.record_reminder_delivery(ORG, appt.id, 2, ReminderDelivery(delivery_status=DeliveryStatus.FAILED, failure_reason="No device"))
        assert appt.reminders[2]["failure_reason"] == "No device"
        assert len(appt.reminders) == 4

    @pytest.mark.asyncio
    async def test_sent_reminder_cannot_be_unsent(self, service, pharmacist):
        appt_id = (await service.create(ORG, booking(pharmacist.id, at(10, day=TUESDAY)))).id
        await service.record_reminder_delivery(ORG, appt_id, 0, ReminderDelivery(delivery_status=DeliveryStatus.DELIVERED))
        with pytest.raises(ValidationError):
            await service.record_reminder_delivery(ORG, appt_id, 0, ReminderDelivery(delivery_status=DeliveryStatus.PENDING))
        with pytest.raises(ValidationError):
            await service.record_reminder_delivery(ORG, appt_id, 9, ReminderDelivery(delivery_status=DeliveryStatus.SENT))
        appt = await service.get(ORG, appt_id)
        assert appt.reminders[0]["delivery_status"] == "delivered"

    @pytest.mark.asyncio
    async def test_soft_delete_frees_slot_and_hides_record(self, service, pharmacist):
        appt = await service.create(ORG, booking(pharmacist.id, at(9)))
        await service.soft_delete(ORG, appt.id)
        with pytest.raises(NotFound):
            await service.get(ORG, appt.id)
        assert await service.get_calendar(ORG, date_from=MONDAY, date_to=MONDAY) == []
        await service.create(ORG, booking(pharmacist.id, at(9)))


class TestCalendar:
    @pytest.mark.asyncio
    async def test_range_and_order(self, service, pharmacist):
        late = await service.create(ORG, booking(pharmacist.id, at(15)))
        early = await service.create(ORG, booking(pharmacist.id, at(9)))
        tuesday = await service.create(ORG, booking(pharmacist.id, at(9, day=TUESDAY)))
        await service.cancel(ORG, late.id, CancelRequest())

        monday = await service.get_calendar(ORG, date_from=MONDAY, date_to=MONDAY)
        assert [a.id for a in monday] == [early.id, late.id]
        both = await service.get_calendar(ORG, date_from=MONDAY, date_to=TUESDAY, resource_id=pharmacist.id)
        assert [a.id for a in both] == [early.id, late.id, tuesday.id]

    @pytest.mark.asyncio
    async def test_inverted_range(self, service, pharmacist):
        with pytest.raises(ValidationError):
            await service.get_calendar(ORG, date_from=TUESDAY, date_to=MONDAY)

    @pytest.mark.asyncio
    async def test_other_workplace_is_invisible(self, service, pharmacist):
        appt = await service.create(ORG, booking(pharmacist.id, at(9)))
        with pytest.raises(NotFound):
            await service.get(uuid.UUID(int=2), appt.id)


class TestRecurringSeries:
    WEEKLY = {"frequency": "weekly", "end_after_occurrences": 4}

    @pytest.mark.asyncio
    async def test_books_every_instance(self, service, pharmacist):
        first = await service.create(ORG, booking(pharmacist.id, at(10), recurrence=self.WEEKLY))
        series = await service.list_series(ORG, first.recurring_series_id)
        assert [a.scheduled_date for a in series] == [date(2025, 6, d) for d in (2, 9, 16, 23)]
        assert all(a.is_recurring and a.scheduled_time == time(10) for a in series)
        assert series[0].id == first.id
        assert series[0].recurrence_pattern["frequency"] == "weekly"
        assert await event_types(service.session, series[3].id) == ["APPT_CREATED"]

    @pytest.mark.asyncio
    async def test_one_clash_books_nothing(self, service, pharmacist):
        pid = pharmacist.id
        blocker_id = (await service.create(ORG, booking(pid, at(10, day=date(2025, 6, 16))))).id
        with pytest.raises(SlotConflict) as exc:
            await service.create(ORG, booking(pid, at(10), recurrence=self.WEEKLY))
        assert exc.value.conflicting_ids == [blocker_id]
        calendar = await service.get_calendar(ORG, date_from=MONDAY, date_to=date(2025, 6, 30))
        assert [a.id for a in calendar] == [blocker_id]

    @pytest.mark.asyncio
    async def test_cancel_all_future(self, service, pharmacist):
        first = await service.create(ORG, booking(pharmacist.id, at(10), recurrence=self.WEEKLY))
        series_id = first.recurring_series_id
        second = (await service.list_series(ORG, series_id))[1]

        await service.cancel(ORG, second.id, CancelRequest(reason="Moving away", cancel_type="all_future"))
        series = await service.list_series(ORG, series_id)
        assert [a.status for a in series] == [S.SCHEDULED, S.CANCELLED, S.CANCELLED, S.CANCELLED]
        assert all(a.version == 2 for a in series[1:])
        assert "APPT_CANCELLED" in await event_types(service.session, series[3].id)

    @pytest.mark.asyncio
    async def test_cancel_this_only(self, service, pharmacist):
        first = await service.create(ORG, booking(pharmacist.id, at(10), recurrence=self.WEEKLY))
        await service.cancel(ORG, first.id, CancelRequest())
        series = await service.list_series(ORG, first.recurring_series_id)
        assert [a.status for a in series] == [S.CANCELLED, S.SCHEDULED, S.SCHEDULED, S.SCHEDULED]

    @pytest.mark.asyncio
    async def test_unknown_series(self, service, pharmacist):
        with pytest.raises(NotFound):
            await service.list_series(ORG, uuid.uuid4())
