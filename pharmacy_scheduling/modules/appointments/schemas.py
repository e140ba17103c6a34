import uuid
from datetime import date, datetime, time
from typing import Annotated, Literal
from pydantic import BaseModel, ConfigDict, Field, model_validator

from pharmacy_scheduling.modules.appointments.enums import (
    AppointmentType, AppointmentStatus, ConfirmationStatus, OutcomeStatus,
    ReminderChannel, DeliveryStatus,
)

# ---- Value objects ----

class Outcome(BaseModel):
    # keys beyond these are kept as sent
    model_config = ConfigDict(extra="allow")

    status: OutcomeStatus
    notes: str = Field(min_length=1, max_length=2000)
    next_actions: list[str] = []
    visit_created: bool = False

class Reminder(BaseModel):
    channel: ReminderChannel
    scheduled_for: datetime
    sent: bool = False
    sent_at: datetime | None = None
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING
    failure_reason: str | None = None

# ---- Requests ----

class RecurrencePattern(BaseModel):
    frequency: Literal["daily", "weekly", "biweekly", "monthly", "quarterly"]
    interval: int = Field(default=1, ge=1, le=12)
    days_of_week: list[Annotated[int, Field(ge=0, le=6)]] = []  # 0=Mon..6=Sun
    end_date: date | None = None
    end_after_occurrences: int | None = Field(default=None, ge=1, le=52)

    @model_validator(mode="after")
    def _needs_an_end(self):
        if self.end_date is None and self.end_after_occurrences is None:
            raise ValueError("Recurrence needs end_date or end_after_occurrences")
        return self

class AppointmentCreate(BaseModel):
    resource_id: uuid.UUID
    patient_id: uuid.UUID
    type: AppointmentType
    start: datetime  # wall-clock in the pharmacist's zone; any tzinfo is converted to it
    duration: int
    timezone: str | None = None
    location_id: uuid.UUID | None = None
    title: str | None = Field(default=None, max_length=200)
    description: str | None = None
    patient_name: str | None = None
    override_business_hours: bool = False
    allow_double_booking: bool = False
    recurrence: RecurrencePattern | None = None

class RescheduleRequest(BaseModel):
    new_start: datetime
    new_duration: int | None = None
    reason: str = Field(min_length=1)
    notify_patient: bool = False
    override_business_hours: bool = False
    allow_double_booking: bool = False
    expected_version: int | None = None

class StatusChange(BaseModel):
    status: AppointmentStatus
    reason: str | None = None
    outcome: dict | None = None
    notify_patient: bool = False
    expected_version: int | None = None

class CancelRequest(BaseModel):
    reason: str | None = None
    # all_future also cancels the later active instances of a recurring series
    cancel_type: Literal["this_only", "all_future"] = "this_only"
    notify_patient: bool = False
    expected_version: int | None = None

class ReminderDelivery(BaseModel):
    delivery_status: DeliveryStatus
    failure_reason: str | None = None

# ---- Responses ----

class AppointmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    org_id: uuid.UUID
    patient_id: uuid.UUID
    assigned_to: uuid.UUID
    location_id: uuid.UUID | None = None
    type: AppointmentType
    title: str
    description: str | None = None
    scheduled_date: date
    scheduled_time: time
    duration: int
    timezone: str
    status: AppointmentStatus
    confirmation_status: ConfirmationStatus
    outcome: dict | None = None
    reminders: list[dict] = []
    related_records: dict | None = None
    rescheduled_from_id: uuid.UUID | None = None
    rescheduled_to_id: uuid.UUID | None = None
    is_override: bool = False
    is_recurring: bool = False
    recurring_series_id: uuid.UUID | None = None
    recurrence_pattern: dict | None = None
    created_by: uuid.UUID | None = None
    confirmed_at: datetime | None = None
    in_progress_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    no_show_at: datetime | None = None
    rescheduled_at: datetime | None = None
    rescheduled_reason: str | None = None
    version: int
    created_at: datetime
    updated_at: datetime
