import uuid
from datetime import datetime
from typing import Literal
from pydantic import BaseModel, ConfigDict, Field

Event = Literal[
    "appointment_created", "appointment_rescheduled", "appointment_cancelled",
    "appointment_confirmed", "appointment_status_changed",
]

class TemplateCreate(BaseModel):
    event: Event
    channel: str = Field(..., pattern="^(sms|email|whatsapp|push)$")
    subject: str | None = Field(default=None, max_length=120)
    body: str = Field(..., min_length=1)

class TemplateOut(TemplateCreate):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID
    org_id: uuid.UUID

class PatientMessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID
    appointment_id: uuid.UUID
    patient_id: uuid.UUID
    event: str
    channel: str
    recipient: str
    subject: str | None
    body: str
    status: str
    created_at: datetime
