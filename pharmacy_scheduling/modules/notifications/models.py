import uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, JSON, Index
from pharmacy_scheduling.core.base import Base, WorkplaceRecordMixin

class MessageTemplate(Base, WorkplaceRecordMixin):
    """Workplace override of the built-in wording for one appointment event on one channel."""
    __table_args__ = (Index("ix_template_event_channel", "org_id", "event", "channel"),)

    event: Mapped[str] = mapped_column(String(64))  # appointment_cancelled, appointment_rescheduled, ...
    channel: Mapped[str] = mapped_column(String(16))
    subject: Mapped[str | None] = mapped_column(String(120), nullable=True)
    body: Mapped[str] = mapped_column(Text)

class PatientMessage(Base, WorkplaceRecordMixin):
    """A rendered message waiting for the delivery worker."""
    __tablename__ = "patient_message"

    appointment_id: Mapped[uuid.UUID] = mapped_column(index=True)
    patient_id: Mapped[uuid.UUID] = mapped_column()
    event: Mapped[str] = mapped_column(String(64))
    channel: Mapped[str] = mapped_column(String(16))
    recipient: Mapped[str] = mapped_column(String(128))
    subject: Mapped[str | None] = mapped_column(String(120), nullable=True)
    body: Mapped[str] = mapped_column(Text)
    variables: Mapped[dict] = mapped_column(JSON, default=dict)
    status: Mapped[str] = mapped_column(String(16), default="queued")  # queued until a worker sends it
