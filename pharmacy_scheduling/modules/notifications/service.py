import uuid
import logging
from string import Template
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pharmacy_scheduling.core.errors import ValidationError
from pharmacy_scheduling.modules.notifications.models import MessageTemplate, PatientMessage

log = logging.getLogger(__name__)

# (subject, body) per event when the workplace has no template for the channel
DEFAULT_TEMPLATES = {
    "appointment_created": (None, "Your ${type_label} is booked for ${date} at ${time}."),
    "appointment_rescheduled": ("Appointment rescheduled", "Your ${type_label} has moved to ${date} at ${time}. Reason: ${reason}"),
    "appointment_cancelled": ("Appointment cancelled", "Your ${type_label} on ${date} at ${time} was cancelled. Reason: ${reason}"),
    "appointment_confirmed": (None, "Your ${type_label} on ${date} at ${time} is confirmed."),
    "appointment_status_changed": (None, "Your ${type_label} on ${date} is now ${status}."),
}

def appointment_variables(appt) -> dict:
    return {
        "type_label": appt.type.label,
        "date": appt.scheduled_date.isoformat(),
        "time": appt.scheduled_time.strftime("%H:%M"),
        "status": getattr(appt.status, "value", appt.status),
        "reason": "",
    }

class NotificationsService:
    """Patient messages for appointment events. Delivery happens elsewhere; rows are queued here."""

    def __init__(self, s: AsyncSession): self.s = s

    async def create_template(self, org: uuid.UUID, *, event: str, channel: str, subject: str | None, body: str) -> MessageTemplate:
        if event not in DEFAULT_TEMPLATES:
            raise ValidationError(f"Unknown notification event: {event}", field="event", value=event)
        t = MessageTemplate(org_id=org, event=event, channel=channel, subject=subject, body=body)
        self.s.add(t); await self.s.flush(); await self.s.commit()
        log.info(f"Template for {event} on {channel} saved ({t.id})")
        return t

    async def wording(self, org: uuid.UUID, event: str, channel: str) -> tuple[str | None, str]:
        res = await self.s.execute(select(MessageTemplate).where(
            MessageTemplate.org_id==org, MessageTemplate.event==event,
            MessageTemplate.channel==channel, MessageTemplate.deleted_at.is_(None),
        ).order_by(MessageTemplate.created_at.desc()))
        t = res.scalars().first()
        return (t.subject, t.body) if t else DEFAULT_TEMPLATES[event]

    async def notify_patient(self, appt, *, event: str, channel: str, variables: dict | None = None) -> PatientMessage:
        subject, body = await self.wording(appt.org_id, event, channel)
        values = appointment_variables(appt)
        values.update(variables or {})
        m = PatientMessage(
            org_id=appt.org_id,
            appointment_id=appt.id,
            patient_id=appt.patient_id,
            event=event,
            channel=channel,
            recipient=f"patient:{appt.patient_id}",
            subject=Template(subject).safe_substitute(values) if subject else None,
            body=Template(body).safe_substitute(values),
            variables=values,
            status="queued",
        )
        self.s.add(m); await self.s.flush(); await self.s.commit()
        log.info(f"Queued {event} {channel} message {m.id} for appointment {appt.id}")
        return m

    async def list_for_appointment(self, org: uuid.UUID, appointment_id: uuid.UUID) -> list[PatientMessage]:
        res = await self.s.execute(select(PatientMessage).where(
            PatientMessage.org_id==org, PatientMessage.appointment_id==appointment_id,
        ).order_by(PatientMessage.created_at.asc()))
        return list(res.scalars().all())
