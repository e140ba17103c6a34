import uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, ForeignKey
from pharmacy_scheduling.core.base import Base, WorkplaceRecordMixin

# Weekly recurring shift: day_of_week 0=Mon..6=Sun, minutes past midnight in the pharmacist's timezone
class PharmacistSchedule(Base, WorkplaceRecordMixin):
    pharmacist_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("pharmacist.id"), index=True)
    location_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("location.id"), nullable=True)
    day_of_week: Mapped[int] = mapped_column(Integer)  # 0..6
    start_minute: Mapped[int] = mapped_column(Integer)  # e.g., 8*60
    end_minute: Mapped[int] = mapped_column(Integer)    # e.g., 17*60
    break_start_minute: Mapped[int | None] = mapped_column(Integer, nullable=True)
    break_end_minute: Mapped[int | None] = mapped_column(Integer, nullable=True)
    slot_minutes: Mapped[int] = mapped_column(Integer, default=30)
    active: Mapped[bool] = mapped_column(default=True)
