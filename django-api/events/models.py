"""Django ORM models (persistence layer).

These models handle database concerns. Domain logic lives in domain/models.py.
"""

import uuid

from django.db import models
from django.db.models import F, Q

from events.domain.value_objects import (
    Eligibility,
    EventStatus,
    EventType,
    ParticipantType,
    PaymentProofStatus,
    PaymentStatus,
    RegistrationStatus,
    Role,
    TicketStatus,
)


def _choices(enum_cls) -> list[tuple[str, str]]:
    return [(member.value, member.value) for member in enum_cls]


class Account(models.Model):
    """Identity record owned by the external auth service.

    One row per person; role-specific fields are only meaningful for
    the matching role.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True)
    first_name = models.CharField(max_length=100, blank=True)
    last_name = models.CharField(max_length=100, blank=True)
    role = models.CharField(max_length=20, choices=_choices(Role))
    participant_type = models.CharField(
        max_length=20, choices=_choices(ParticipantType), blank=True, null=True
    )
    organizer_name = models.CharField(max_length=255, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    # Lets DRF's IsAuthenticated accept an Account as request.user.
    is_authenticated = True
    is_anonymous = False

    class Meta:
        indexes = [
            models.Index(fields=["role"]),
        ]

    def __str__(self) -> str:
        if self.role == Role.ORGANIZER.value and self.organizer_name:
            return self.organizer_name
        return f"{self.first_name} {self.last_name}".strip() or self.email


class Event(models.Model):
    """Persistence model for events."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organizer = models.ForeignKey(Account, on_delete=models.PROTECT, related_name="events")
    name = models.CharField(max_length=100)
    description = models.TextField(max_length=2000, blank=True)
    event_type = models.CharField(
        max_length=20, choices=_choices(EventType), default=EventType.NORMAL.value
    )
    status = models.CharField(
        max_length=20, choices=_choices(EventStatus), default=EventStatus.DRAFT.value
    )
    eligibility = models.CharField(
        max_length=20, choices=_choices(Eligibility), default=Eligibility.ALL.value
    )
    registration_deadline = models.DateTimeField(null=True, blank=True)
    start_date = models.DateTimeField(null=True, blank=True)
    end_date = models.DateTimeField(null=True, blank=True)
    registration_limit = models.PositiveIntegerField(null=True, blank=True)
    current_registrations = models.PositiveIntegerField(default=0)
    registration_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    tags = models.JSONField(default=list, blank=True)
    custom_form_fields = models.JSONField(default=list, blank=True)
    form_locked = models.BooleanField(default=False)
    item_type = models.CharField(max_length=100, blank=True)
    variants = models.JSONField(default=list, blank=True)
    stock_quantity = models.PositiveIntegerField(default=0)
    purchase_limit = models.PositiveIntegerField(default=5)
    total_attendance = models.PositiveIntegerField(default=0)
    published_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["-created_at"]),
            models.Index(fields=["organizer", "status"]),
            models.Index(fields=["event_type", "status"]),
            models.Index(fields=["start_date"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(registration_limit__isnull=True)
                | Q(current_registrations__lte=F("registration_limit")),
                name="event_registrations_within_limit",
            ),
            models.CheckConstraint(
                condition=Q(end_date__isnull=True)
                | Q(start_date__isnull=True)
                | Q(end_date__gte=F("start_date")),
                name="event_ends_after_start",
            ),
            models.CheckConstraint(
                condition=Q(registration_fee__gte=0),
                name="event_fee_not_negative",
            ),
        ]

    def __str__(self) -> str:
        return self.name


class Registration(models.Model):
    """Persistence model for registrations and merchandise purchases."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event = models.ForeignKey(Event, on_delete=models.PROTECT, related_name="registrations")
    participant = models.ForeignKey(
        Account, on_delete=models.PROTECT, related_name="registrations"
    )
    status = models.CharField(
        max_length=20,
        choices=_choices(RegistrationStatus),
        default=RegistrationStatus.PENDING.value,
    )
    payment_status = models.CharField(
        max_length=20, choices=_choices(PaymentStatus), default=PaymentStatus.PENDING.value
    )
    amount_paid = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    payment_proof = models.CharField(max_length=500, null=True, blank=True)
    payment_proof_status = models.CharField(
        max_length=20, choices=_choices(PaymentProofStatus), null=True, blank=True
    )
    form_data = models.JSONField(default=dict, blank=True)
    merchandise_quantity = models.PositiveIntegerField(default=0)
    merchandise_variants = models.JSONField(default=dict, blank=True)
    attended = models.BooleanField(default=False)
    attendance_marked_at = models.DateTimeField(null=True, blank=True)
    attendance_marked_by = models.ForeignKey(
        Account, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    attendance_log = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["event", "status"]),
            models.Index(fields=["participant", "status"]),
            models.Index(fields=["-created_at"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["event", "participant"], name="unique_registration_per_participant"
            ),
        ]

    def __str__(self) -> str:
        return f"{self.participant_id} - {self.event_id}"


class Ticket(models.Model):
    """Persistence model for issued tickets."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    ticket_id = models.CharField(max_length=64, unique=True)
    registration = models.OneToOneField(
        Registration, on_delete=models.PROTECT, related_name="ticket"
    )
    event = models.ForeignKey(Event, on_delete=models.PROTECT, related_name="tickets")
    participant = models.ForeignKey(Account, on_delete=models.PROTECT, related_name="tickets")
    status = models.CharField(
        max_length=20, choices=_choices(TicketStatus), default=TicketStatus.VALID.value
    )
    qr_payload = models.TextField()
    issued_at = models.DateTimeField()
    expires_at = models.DateTimeField()
    scanned_at = models.DateTimeField(null=True, blank=True)
    scanned_by = models.ForeignKey(
        Account, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )

    class Meta:
        ordering = ["-issued_at"]
        indexes = [
            models.Index(fields=["participant"]),
            models.Index(fields=["event", "status"]),
        ]

    def __str__(self) -> str:
        return self.ticket_id
