import uuid
from datetime import date
from pydantic import BaseModel, ConfigDict, computed_field
from pharmacy_scheduling.modules.analytics.capacity import Granularity, Severity

class OverbookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    excess: int
    severity: Severity

class BucketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    resource_id: uuid.UUID | None = None
    day_of_week: int | None = None
    hour_of_day: int | None = None
    total_slots: int
    booked_slots: int
    utilization_rate: float
    raw_ratio: float
    overbooking: OverbookingOut | None = None

    @computed_field
    @property
    def is_overbooked(self) -> bool:
        return self.overbooking is not None

class SummaryOut(BaseModel):
    total: int
    booked: int
    completed: int
    cancelled: int
    rescheduled: int
    no_show: int
    no_show_rate: float

class UtilizationReport(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    granularity: Granularity
    date_from: date
    date_to: date
    buckets: list[BucketOut]
    overall_utilization: float
    summary: SummaryOut
    recommendations: list[str]
