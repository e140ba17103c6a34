import uuid
from pydantic import BaseModel, ConfigDict
from pharmacy_scheduling.modules.appointments.enums import AppointmentType

class LocationCreate(BaseModel):
    name: str
    address: str | None = None

class LocationOut(LocationCreate):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID
    org_id: uuid.UUID

class PharmacistCreate(BaseModel):
    name: str
    email: str | None = None
    location_id: uuid.UUID | None = None
    specialties: list[AppointmentType] = []
    timezone: str | None = None

class PharmacistOut(PharmacistCreate):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID
    org_id: uuid.UUID
    active: bool
