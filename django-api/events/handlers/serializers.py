"""Serializers for request parsing and domain model responses.

Output serializers read frozen domain dataclasses, never ORM rows.
"""

from decimal import Decimal
from enum import Enum

from rest_framework import serializers

from events.domain import Eligibility, EventStatus, EventType, FormFieldType


def _values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class DomainValueField(serializers.Field):
    """Read-only field rendering enums by value and identifiers as strings."""

    def __init__(self, **kwargs):
        kwargs["read_only"] = True
        super().__init__(**kwargs)

    def to_representation(self, value):
        if isinstance(value, Enum):
            return value.value
        return str(value)


class FormFieldSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    type = serializers.ChoiceField(choices=_values(FormFieldType), default=FormFieldType.TEXT.value)
    required = serializers.BooleanField(default=False)
    options = serializers.ListField(child=serializers.CharField(), required=False, default=list)

    def to_representation(self, instance):
        return {
            "name": instance.name,
            "type": instance.type.value,
            "required": instance.required,
            "options": list(instance.options),
        }


class MerchandiseVariantSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    options = serializers.ListField(child=serializers.CharField(), required=False, default=list)


class MerchandiseInputSerializer(serializers.Serializer):
    item_type = serializers.CharField(max_length=100, required=False, allow_blank=True)
    stock_quantity = serializers.IntegerField()
    purchase_limit = serializers.IntegerField(required=False, default=5)
    variants = MerchandiseVariantSerializer(many=True, required=False, default=list)


class MerchandiseSerializer(serializers.Serializer):
    item_type = serializers.CharField(read_only=True)
    stock_quantity = serializers.IntegerField(source="stock_quantity.value", read_only=True)
    purchase_limit = serializers.IntegerField(read_only=True)
    variants = MerchandiseVariantSerializer(many=True, read_only=True)


class EventWriteSerializer(serializers.Serializer):
    """Input for creating (full) and updating (partial) events."""

    name = serializers.CharField(max_length=100)
    description = serializers.CharField(max_length=2000, required=False, allow_blank=True)
    event_type = serializers.ChoiceField(choices=_values(EventType), required=False)
    eligibility = serializers.ChoiceField(choices=_values(Eligibility), required=False)
    status = serializers.ChoiceField(choices=_values(EventStatus), required=False)
    registration_deadline = serializers.DateTimeField(required=False, allow_null=True)
    start_date = serializers.DateTimeField(required=False, allow_null=True)
    end_date = serializers.DateTimeField(required=False, allow_null=True)
    registration_limit = serializers.IntegerField(required=False, allow_null=True)
    registration_fee = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=Decimal("0"), required=False
    )
    tags = serializers.ListField(child=serializers.CharField(max_length=50), required=False)
    custom_form_fields = FormFieldSerializer(many=True, required=False)
    merchandise = MerchandiseInputSerializer(required=False, allow_null=True)


class EventSerializer(serializers.Serializer):
    """Serializer for Event domain model."""

    id = DomainValueField()
    organizer_id = DomainValueField()
    name = serializers.CharField(read_only=True)
    description = serializers.CharField(read_only=True)
    status = DomainValueField()
    event_type = DomainValueField()
    eligibility = DomainValueField()
    registration_deadline = serializers.DateTimeField(read_only=True)
    start_date = serializers.DateTimeField(read_only=True)
    end_date = serializers.DateTimeField(read_only=True)
    registration_limit = serializers.IntegerField(read_only=True)
    current_registrations = serializers.IntegerField(read_only=True)
    registration_fee = serializers.DecimalField(
        source="registration_fee.amount", max_digits=10, decimal_places=2, read_only=True
    )
    tags = serializers.ListField(child=serializers.CharField(), read_only=True)
    custom_form_fields = FormFieldSerializer(many=True, read_only=True)
    form_locked = serializers.BooleanField(read_only=True)
    merchandise = MerchandiseSerializer(read_only=True, allow_null=True)
    total_attendance = serializers.IntegerField(read_only=True)
    published_at = serializers.DateTimeField(read_only=True)
    created_at = serializers.DateTimeField(read_only=True)
    updated_at = serializers.DateTimeField(read_only=True)


class AttendanceLogEntrySerializer(serializers.Serializer):
    method = DomainValueField()
    attended = serializers.BooleanField(read_only=True)
    marked_by = DomainValueField()
    marked_at = serializers.DateTimeField(read_only=True)
    note = serializers.CharField(read_only=True)


class AttendanceSerializer(serializers.Serializer):
    attended = serializers.BooleanField(read_only=True)
    marked_at = serializers.DateTimeField(read_only=True)
    marked_by = DomainValueField()
    audit_log = AttendanceLogEntrySerializer(many=True, read_only=True)


class MerchandiseSelectionSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(default=1)
    variants = serializers.DictField(child=serializers.CharField(), required=False, default=dict)


class RegistrationSerializer(serializers.Serializer):
    """Serializer for Registration domain model."""

    id = DomainValueField()
    event_id = DomainValueField()
    participant_id = DomainValueField()
    status = DomainValueField()
    payment_status = DomainValueField()
    amount_paid = serializers.DecimalField(
        source="amount_paid.amount", max_digits=10, decimal_places=2, read_only=True
    )
    form_data = serializers.DictField(read_only=True)
    merchandise_selection = MerchandiseSelectionSerializer(read_only=True, allow_null=True)
    payment_proof = serializers.CharField(read_only=True)
    payment_proof_status = DomainValueField()
    attendance = AttendanceSerializer(read_only=True)
    created_at = serializers.DateTimeField(read_only=True)
    updated_at = serializers.DateTimeField(read_only=True)


class TicketSerializer(serializers.Serializer):
    """Serializer for Ticket domain model."""

    ticket_id = serializers.CharField(read_only=True)
    registration_id = DomainValueField()
    event_id = DomainValueField()
    participant_id = DomainValueField()
    status = DomainValueField()
    qr_payload = serializers.CharField(read_only=True)
    issued_at = serializers.DateTimeField(read_only=True)
    expires_at = serializers.DateTimeField(read_only=True)
    scanned_at = serializers.DateTimeField(read_only=True)
    scanned_by = DomainValueField()


class RegisterSerializer(serializers.Serializer):
    form_data = serializers.DictField(required=False, default=dict)
    merchandise_selection = MerchandiseSelectionSerializer(required=False, allow_null=True)


class PaymentProofSerializer(serializers.Serializer):
    payment_proof = serializers.CharField(allow_blank=True, max_length=500)


class VerifyPaymentSerializer(serializers.Serializer):
    approved = serializers.BooleanField()


class MarkAttendanceSerializer(serializers.Serializer):
    attended = serializers.BooleanField()
    note = serializers.CharField(required=False, allow_blank=True, default="", max_length=500)


class ScanSerializer(serializers.Serializer):
    ticket_id = serializers.CharField(required=False, allow_blank=True)
    qr_payload = serializers.CharField(required=False, allow_blank=True)


class EventListQuerySerializer(serializers.Serializer):
    """Query parameters accepted by the event listing."""

    status = serializers.ChoiceField(choices=_values(EventStatus), required=False)
    event_type = serializers.ChoiceField(choices=_values(EventType), required=False)
    eligibility = serializers.ChoiceField(choices=_values(Eligibility), required=False)
    organizer = serializers.CharField(required=False)
    tags = serializers.CharField(required=False, allow_blank=True)
    search = serializers.CharField(required=False, allow_blank=True, max_length=100)
    starts_after = serializers.DateTimeField(required=False)
    starts_before = serializers.DateTimeField(required=False)
    page = serializers.IntegerField(required=False, default=1, min_value=1)
    page_size = serializers.IntegerField(required=False, default=20, min_value=1, max_value=100)


class TrendingEventSerializer(serializers.Serializer):
    event = EventSerializer(read_only=True)
    recent_registrations = serializers.IntegerField(read_only=True)

    def to_representation(self, instance):
        data = super().to_representation(instance)
        return {**data.pop("event"), **data}


class BulkDeleteRegistrationsSerializer(serializers.Serializer):
    registration_ids = serializers.ListField(child=serializers.CharField(), allow_empty=False)
