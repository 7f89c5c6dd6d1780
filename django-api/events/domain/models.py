"""Domain models representing persisted state.

These are pure domain objects with no API input rules.
Django ORM models are in events/models.py (persistence layer).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

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


@dataclass(frozen=True)
class Actor:
    """The authenticated caller: one identity record tagged by role."""

    id: AccountId
    role: Role
    participant_type: ParticipantType | None = None
    email: str = ""
    display_name: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_participant(self) -> bool:
        return self.role is Role.PARTICIPANT

    @property
    def is_organizer(self) -> bool:
        return self.role is Role.ORGANIZER

    def can_manage(self, event: "Event") -> bool:
        """Organizers manage their own events; admins manage every event."""
        if self.is_admin:
            return True
        return self.is_organizer and event.organizer_id == self.id


@dataclass(frozen=True)
class FormField:
    """One entry of an event's custom registration form."""

    name: str
    type: FormFieldType
    required: bool = False
    options: tuple[str, ...] = ()


@dataclass(frozen=True)
class MerchandiseVariant:
    name: str
    options: tuple[str, ...]


@dataclass(frozen=True)
class MerchandiseDetails:
    """Stock-keeping data for Merchandise events."""

    item_type: str
    stock_quantity: Capacity
    purchase_limit: int = 5
    variants: tuple[MerchandiseVariant, ...] = ()

    def __post_init__(self) -> None:
        if self.purchase_limit < 1:
            raise ValueError("Purchase limit must be at least 1")


@dataclass(frozen=True)
class Event:
    """Domain representation of an Event."""

    id: EventId
    organizer_id: AccountId
    name: str
    description: str
    status: EventStatus
    event_type: EventType
    eligibility: Eligibility
    registration_deadline: datetime | None
    start_date: datetime | None
    end_date: datetime | None
    registration_limit: int | None
    current_registrations: int
    registration_fee: Money
    created_at: datetime
    updated_at: datetime
    tags: tuple[str, ...] = ()
    custom_form_fields: tuple[FormField, ...] = ()
    form_locked: bool = False
    merchandise: MerchandiseDetails | None = None
    total_attendance: int = 0
    published_at: datetime | None = None

    @property
    def is_merchandise(self) -> bool:
        return self.event_type is EventType.MERCHANDISE

    @property
    def is_full(self) -> bool:
        if self.registration_limit is None:
            return False
        return self.current_registrations >= self.registration_limit

    @property
    def stock_quantity(self) -> int:
        return self.merchandise.stock_quantity.value if self.merchandise else 0

    @property
    def auto_confirms(self) -> bool:
        """Merchandise purchases and free events confirm without payment review."""
        return self.is_merchandise or self.registration_fee.is_zero


@dataclass(frozen=True)
class EligibilityDecision:
    """Outcome of EventService.can_register."""

    allowed: bool
    reason: str = ""
    blocker: RegistrationBlocker | None = None


@dataclass(frozen=True)
class MerchandiseSelection:
    quantity: int = 1
    variants: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise ValueError("Quantity must be at least 1")


@dataclass(frozen=True)
class AttendanceLogEntry:
    """Append-only record of an attendance change."""

    method: AttendanceMethod
    attended: bool
    marked_by: AccountId
    marked_at: datetime
    note: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method.value,
            "attended": self.attended,
            "marked_by": str(self.marked_by),
            "marked_at": self.marked_at.isoformat(),
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AttendanceLogEntry":
        return cls(
            method=AttendanceMethod(data["method"]),
            attended=bool(data["attended"]),
            marked_by=AccountId.from_string(data["marked_by"]),
            marked_at=datetime.fromisoformat(data["marked_at"]),
            note=data.get("note", ""),
        )


@dataclass(frozen=True)
class Attendance:
    attended: bool = False
    marked_at: datetime | None = None
    marked_by: AccountId | None = None
    audit_log: tuple[AttendanceLogEntry, ...] = ()

    def scan_entries(self) -> tuple[AttendanceLogEntry, ...]:
        return tuple(e for e in self.audit_log if e.method is AttendanceMethod.SCAN)


@dataclass(frozen=True)
class Registration:
    """Domain representation of a Registration.

    ``rejected`` and ``completed`` are not set by RegistrationService; they
    are set out of band (Django admin or a post-event batch). Attendance
    cannot be marked on a rejected registration.
    """

    id: RegistrationId
    event_id: EventId
    participant_id: AccountId
    status: RegistrationStatus
    payment_status: PaymentStatus
    amount_paid: Money
    created_at: datetime
    updated_at: datetime
    form_data: dict[str, Any] = field(default_factory=dict)
    merchandise_selection: MerchandiseSelection | None = None
    payment_proof: str | None = None
    payment_proof_status: PaymentProofStatus | None = None
    attendance: Attendance = field(default_factory=Attendance)

    @property
    def is_active(self) -> bool:
        """Counts toward the event's current_registrations."""
        return self.status is not RegistrationStatus.CANCELLED

    @property
    def merchandise_quantity(self) -> int:
        return self.merchandise_selection.quantity if self.merchandise_selection else 0

    @property
    def holds_stock(self) -> bool:
        """Confirmed merchandise purchases are the only ones that took stock."""
        return (
            self.status in (RegistrationStatus.CONFIRMED, RegistrationStatus.COMPLETED)
            and self.merchandise_quantity > 0
        )


@dataclass(frozen=True)
class Ticket:
    """Domain representation of a Ticket."""

    ticket_id: str
    registration_id: RegistrationId
    event_id: EventId
    participant_id: AccountId
    status: TicketStatus
    qr_payload: str
    issued_at: datetime
    expires_at: datetime
    scanned_at: datetime | None = None
    scanned_by: AccountId | None = None


@dataclass(frozen=True)
class ScanResult:
    """Successful scan outcome returned to the scanning organizer."""

    ticket: Ticket
    registration: Registration
    participant_name: str = ""
