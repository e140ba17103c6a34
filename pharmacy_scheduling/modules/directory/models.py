import uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, JSON, ForeignKey
from pharmacy_scheduling.core.base import Base, WorkplaceRecordMixin

class Location(Base, WorkplaceRecordMixin):
    __tablename__ = "location"
    name: Mapped[str] = mapped_column(String(160), index=True)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    active: Mapped[bool] = mapped_column(default=True)

class Pharmacist(Base, WorkplaceRecordMixin):
    """A bookable resource. ``specialties`` lists the appointment types the pharmacist is set up for."""
    __tablename__ = "pharmacist"
    name: Mapped[str] = mapped_column(String(160), index=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    location_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("location.id"), nullable=True)
    specialties: Mapped[list] = mapped_column(JSON, default=list)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    active: Mapped[bool] = mapped_column(default=True)

    def handles(self, appointment_type: str) -> bool:
        return appointment_type in (self.specialties or [])
