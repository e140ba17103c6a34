from enum import Enum


class AppointmentType(str, Enum):
    MTM_SESSION = "mtm_session"
    CHRONIC_DISEASE_REVIEW = "chronic_disease_review"
    NEW_MEDICATION_CONSULTATION = "new_medication_consultation"
    VACCINATION = "vaccination"
    HEALTH_CHECK = "health_check"
    SMOKING_CESSATION = "smoking_cessation"
    GENERAL_FOLLOWUP = "general_followup"

    @property
    def label(self) -> str:
        return TYPE_LABELS[self]

    @property
    def min_duration(self) -> int:
        return MIN_DURATION_MINUTES[self]


TYPE_LABELS = {
    AppointmentType.MTM_SESSION: "MTM Session",
    AppointmentType.CHRONIC_DISEASE_REVIEW: "Chronic Disease Review",
    AppointmentType.NEW_MEDICATION_CONSULTATION: "New Medication Consultation",
    AppointmentType.VACCINATION: "Vaccination",
    AppointmentType.HEALTH_CHECK: "Health Check",
    AppointmentType.SMOKING_CESSATION: "Smoking Cessation",
    AppointmentType.GENERAL_FOLLOWUP: "General Follow-up",
}

MIN_DURATION_MINUTES = {
    AppointmentType.MTM_SESSION: 30,
    AppointmentType.CHRONIC_DISEASE_REVIEW: 20,
    AppointmentType.NEW_MEDICATION_CONSULTATION: 15,
    AppointmentType.VACCINATION: 10,
    AppointmentType.HEALTH_CHECK: 15,
    AppointmentType.SMOKING_CESSATION: 30,
    AppointmentType.GENERAL_FOLLOWUP: 10,
}

MIN_DURATION = 5
MAX_DURATION = 120


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"


# statuses that occupy a slot
ACTIVE_STATUSES = frozenset({
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.IN_PROGRESS,
})

# statuses counted as booked capacity in utilization reports
BOOKED_STATUSES = ACTIVE_STATUSES | {AppointmentStatus.COMPLETED}


class ConfirmationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"


class OutcomeStatus(str, Enum):
    SUCCESSFUL = "successful"
    PARTIALLY_SUCCESSFUL = "partially_successful"
    UNSUCCESSFUL = "unsuccessful"


class ReminderChannel(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    WHATSAPP = "whatsapp"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"
