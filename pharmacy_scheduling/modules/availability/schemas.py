import uuid
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

class ScheduleCreate(BaseModel):
    pharmacist_id: uuid.UUID
    location_id: uuid.UUID | None = None
    day_of_week: int = Field(ge=0, le=6)
    start_minute: int = Field(ge=0, le=24*60-1)
    end_minute: int = Field(ge=1, le=24*60)
    break_start_minute: int | None = Field(default=None, ge=0, le=24*60)
    break_end_minute: int | None = Field(default=None, ge=0, le=24*60)
    slot_minutes: int = Field(default=30, ge=5, le=240)
    active: bool = True

class ScheduleOut(ScheduleCreate):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID
    org_id: uuid.UUID

class AvailabilityOut(BaseModel):
    resource_id: uuid.UUID
    start: datetime
    end: datetime
    available: bool
    within_business_hours: bool
    conflicting_appointment_ids: list[uuid.UUID] = []
