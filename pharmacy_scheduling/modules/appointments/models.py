import uuid
from datetime import date, datetime, time, timedelta
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, TIMESTAMP, ForeignKey, JSON, Boolean, Date, Time, Index, Enum as SAEnum
from pharmacy_scheduling.core.base import Base, WorkplaceRecordMixin
from pharmacy_scheduling.modules.appointments.enums import (
    AppointmentType, AppointmentStatus, ConfirmationStatus, ACTIVE_STATUSES,
)
from pharmacy_scheduling.modules.appointments.validation import as_instant

def _enum(enum_cls):
    # stored as plain strings; unknown values fail when the row is built or loaded
    return SAEnum(enum_cls, native_enum=False, length=32, values_callable=lambda e: [m.value for m in e])

class Appointment(Base, WorkplaceRecordMixin):
    __table_args__ = (
        Index("ix_appointment_resource_day", "assigned_to", "scheduled_date"),
    )

    patient_id: Mapped[uuid.UUID] = mapped_column(index=True)
    assigned_to: Mapped[uuid.UUID] = mapped_column(ForeignKey("pharmacist.id"))
    location_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("location.id"), nullable=True)

    type: Mapped[AppointmentType] = mapped_column(_enum(AppointmentType))
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Wall-clock slot in ``timezone``
    scheduled_date: Mapped[date] = mapped_column(Date)
    scheduled_time: Mapped[time] = mapped_column(Time)
    duration: Mapped[int] = mapped_column()  # minutes
    timezone: Mapped[str] = mapped_column(String(64))

    status: Mapped[AppointmentStatus] = mapped_column(_enum(AppointmentStatus), default=AppointmentStatus.SCHEDULED)
    confirmation_status: Mapped[ConfirmationStatus] = mapped_column(_enum(ConfirmationStatus), default=ConfirmationStatus.PENDING)

    outcome: Mapped[dict | None] = mapped_column(JSON, nullable=True)  # {status, notes, next_actions, visit_created}
    reminders: Mapped[list] = mapped_column(JSON, default=list)
    related_records: Mapped[dict | None] = mapped_column(JSON, nullable=True)  # owned by other services

    rescheduled_from_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    rescheduled_to_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    is_override: Mapped[bool] = mapped_column(Boolean, default=False)

    # Recurring series; every instance carries the pattern it was generated from
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False)
    recurring_series_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)
    recurrence_pattern: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Audit
    created_by: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    in_progress_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    no_show_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    rescheduled_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    rescheduled_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def start(self) -> datetime:
        return datetime.combine(self.scheduled_date, self.scheduled_time)

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration)

    @property
    def starts_at(self) -> datetime:
        """Aware UTC instant of the start; conflicts compare these across zones."""
        return as_instant(self.start, self.timezone)

    @property
    def ends_at(self) -> datetime:
        return self.starts_at + timedelta(minutes=self.duration)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES and self.deleted_at is None
