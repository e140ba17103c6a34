import uuid
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pharmacy_scheduling.modules.appointments.enums import AppointmentType, Urgency

class PreferencesIn(BaseModel):
    prefer_morning: bool = False
    prefer_afternoon: bool = False
    avoid_lunch: bool = False
    preferred_times: list[str] = []
    preferred_days: list[int] = []
    preferred_resource_id: uuid.UUID | None = None

    @field_validator("preferred_times")
    @classmethod
    def _hhmm(cls, v: list[str]):
        for t in v:
            h, _, m = t.partition(":")
            if not (h.isdigit() and m.isdigit() and len(m) == 2 and 0 <= int(h) < 24 and 0 <= int(m) < 60):
                raise ValueError(f"preferred time must be HH:MM, got {t!r}")
        return [f"{int(t.split(':')[0]):02d}:{t.split(':')[1]}" for t in v]

    @field_validator("preferred_days")
    @classmethod
    def _weekday(cls, v: list[int]):
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("preferred days are 0 (Monday) to 6 (Sunday)")
        return v

class SuggestionRequest(BaseModel):
    type: AppointmentType
    duration: int
    urgency: Urgency = Urgency.MEDIUM
    patient_id: uuid.UUID | None = None
    horizon_days: int | None = Field(default=None, ge=1, le=90)
    resource_ids: list[uuid.UUID] | None = None
    location_id: uuid.UUID | None = None
    max_results: int | None = Field(default=None, ge=1, le=100)
    preferences: PreferencesIn = PreferencesIn()

class SuggestionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    resource_id: uuid.UUID
    resource_name: str | None = None
    start: datetime  # wall-clock in the pharmacist's timezone
    end: datetime
    score: float
    reasons: list[str]
