from events.domain.models import (
    Actor,
    Attendance,
    AttendanceLogEntry,
    EligibilityDecision,
    Event,
    FormField,
    MerchandiseDetails,
    MerchandiseSelection,
    MerchandiseVariant,
    Registration,
    ScanResult,
    Ticket,
)
from events.domain.value_objects import (
    AccountId,
    AttendanceMethod,
    Capacity,
    Eligibility,
    EventId,
    EventStatus,
    EventType,
    FormFieldType,
    Money,
    ParticipantType,
    PaymentProofStatus,
    PaymentStatus,
    RegistrationBlocker,
    RegistrationId,
    RegistrationStatus,
    Role,
    TicketStatus,
)

__all__ = [
    "Actor",
    "Attendance",
    "AttendanceLogEntry",
    "EligibilityDecision",
    "Event",
    "FormField",
    "MerchandiseDetails",
    "MerchandiseSelection",
    "MerchandiseVariant",
    "Registration",
    "ScanResult",
    "Ticket",
    "AccountId",
    "AttendanceMethod",
    "Capacity",
    "Eligibility",
    "EventId",
    "EventStatus",
    "EventType",
    "FormFieldType",
    "Money",
    "ParticipantType",
    "PaymentProofStatus",
    "PaymentStatus",
    "RegistrationBlocker",
    "RegistrationId",
    "RegistrationStatus",
    "Role",
    "TicketStatus",
]
