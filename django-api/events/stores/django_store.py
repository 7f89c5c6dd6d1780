"""Django ORM implementation of the stores.

Every counter or status change that races with concurrent requests is a
single filtered UPDATE; the affected row count says whether it happened.
"""

import dataclasses
import functools
from collections.abc import Callable, Iterable, Mapping
from contextlib import AbstractContextManager
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ParamSpec, TypeVar

import structlog
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Count, F, Q
from django.utils import timezone

from events import models as orm
from events.cache import invalidate_event_cache
from events.domain import (
    AccountId,
    Actor,
    Attendance,
    AttendanceLogEntry,
    Capacity,
    Eligibility,
    Event,
    EventId,
    EventStatus,
    EventType,
    FormField,
    FormFieldType,
    MerchandiseDetails,
    MerchandiseSelection,
    MerchandiseVariant,
    Money,
    ParticipantType,
    PaymentProofStatus,
    PaymentStatus,
    Registration,
    RegistrationId,
    RegistrationStatus,
    Role,
    Ticket,
    TicketStatus,
)
from events.domain.errors import DuplicateRegistrationError, StorageError
from events.stores.interfaces import (
    AccountStore,
    EventFilters,
    EventStore,
    RegistrationStore,
    TicketStore,
    TransactionManager,
)

logger = structlog.get_logger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def storage_operation(func: Callable[P, R]) -> Callable[P, R]:
    """Re-raise database failures as StorageError."""

    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return func(*args, **kwargs)
        except DatabaseError as exc:
            logger.exception("storage_operation_failed", operation=func.__qualname__)
            raise StorageError(func.__qualname__) from exc

    return wrapper


def _column_value(value: Any) -> Any:
    """Convert a domain value into something a model field accepts."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Money):
        return value.amount
    if isinstance(value, Capacity):
        return value.value
    if isinstance(value, (AccountId, EventId, RegistrationId)):
        return value.value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _column_value(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, (list, tuple)):
        return [_column_value(item) for item in value]
    if isinstance(value, dict):
        return {key: _column_value(item) for key, item in value.items()}
    return value


def _columns(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {name: _column_value(value) for name, value in fields.items()}


def _to_actor(row: orm.Account) -> Actor:
    return Actor(
        id=AccountId(row.id),
        role=Role(row.role),
        participant_type=ParticipantType(row.participant_type) if row.participant_type else None,
        email=row.email,
        display_name=str(row),
    )


def _to_event(row: orm.Event) -> Event:
    event_type = EventType(row.event_type)
    merchandise = None
    if event_type is EventType.MERCHANDISE:
        merchandise = MerchandiseDetails(
            item_type=row.item_type,
            stock_quantity=Capacity(row.stock_quantity),
            purchase_limit=row.purchase_limit,
            variants=tuple(
                MerchandiseVariant(name=v["name"], options=tuple(v.get("options", [])))
                for v in row.variants
            ),
        )
    return Event(
        id=EventId(row.id),
        organizer_id=AccountId(row.organizer_id),
        name=row.name,
        description=row.description,
        status=EventStatus(row.status),
        event_type=event_type,
        eligibility=Eligibility(row.eligibility),
        registration_deadline=row.registration_deadline,
        start_date=row.start_date,
        end_date=row.end_date,
        registration_limit=row.registration_limit,
        current_registrations=row.current_registrations,
        registration_fee=Money(Decimal(row.registration_fee)),
        created_at=row.created_at,
        updated_at=row.updated_at,
        tags=tuple(row.tags),
        custom_form_fields=tuple(
            FormField(
                name=f["name"],
                type=FormFieldType(f["type"]),
                required=bool(f.get("required", False)),
                options=tuple(f.get("options", [])),
            )
            for f in row.custom_form_fields
        ),
        form_locked=row.form_locked,
        merchandise=merchandise,
        total_attendance=row.total_attendance,
        published_at=row.published_at,
    )


def _to_registration(row: orm.Registration) -> Registration:
    selection = None
    if row.merchandise_quantity:
        selection = MerchandiseSelection(
            quantity=row.merchandise_quantity, variants=dict(row.merchandise_variants)
        )
    return Registration(
        id=RegistrationId(row.id),
        event_id=EventId(row.event_id),
        participant_id=AccountId(row.participant_id),
        status=RegistrationStatus(row.status),
        payment_status=PaymentStatus(row.payment_status),
        amount_paid=Money(Decimal(row.amount_paid)),
        created_at=row.created_at,
        updated_at=row.updated_at,
        form_data=dict(row.form_data),
        merchandise_selection=selection,
        payment_proof=row.payment_proof,
        payment_proof_status=(
            PaymentProofStatus(row.payment_proof_status) if row.payment_proof_status else None
        ),
        attendance=Attendance(
            attended=row.attended,
            marked_at=row.attendance_marked_at,
            marked_by=(
                AccountId(row.attendance_marked_by_id) if row.attendance_marked_by_id else None
            ),
            audit_log=tuple(AttendanceLogEntry.from_dict(e) for e in row.attendance_log),
        ),
    )


def _to_ticket(row: orm.Ticket) -> Ticket:
    return Ticket(
        ticket_id=row.ticket_id,
        registration_id=RegistrationId(row.registration_id),
        event_id=EventId(row.event_id),
        participant_id=AccountId(row.participant_id),
        status=TicketStatus(row.status),
        qr_payload=row.qr_payload,
        issued_at=row.issued_at,
        expires_at=row.expires_at,
        scanned_at=row.scanned_at,
        scanned_by=AccountId(row.scanned_by_id) if row.scanned_by_id else None,
    )


class DjangoTransactionManager(TransactionManager):
    """Units of work backed by django.db.transaction."""

    def atomic(self) -> AbstractContextManager[Any]:
        return transaction.atomic()

    def on_commit(self, callback: Callable[[], None]) -> None:
        transaction.on_commit(callback)


class DjangoAccountStore(AccountStore):
    @staticmethod
    def to_actor(row: orm.Account) -> Actor:
        return _to_actor(row)

    @storage_operation
    def get_actor(self, account_id: AccountId) -> Actor | None:
        row = orm.Account.objects.filter(pk=account_id.value).first()
        return _to_actor(row) if row else None

    @storage_operation
    def delete_account(self, account_id: AccountId) -> None:
        orm.Account.objects.filter(pk=account_id.value).delete()


class DjangoEventStore(EventStore):
    """Relational event store using Django ORM."""

    @storage_operation
    def list_events(self, filters: EventFilters) -> list[Event]:
        qs = orm.Event.objects.all()
        if not filters.include_all:
            visible = ~Q(status=EventStatus.DRAFT.value)
            if filters.visible_drafts_of is not None:
                visible |= Q(
                    status=EventStatus.DRAFT.value, organizer_id=filters.visible_drafts_of.value
                )
            qs = qs.filter(visible)
        if filters.status is not None:
            qs = qs.filter(status=filters.status.value)
        if filters.event_type:
            qs = qs.filter(event_type=filters.event_type)
        if filters.eligibility is not None:
            qs = qs.filter(eligibility=filters.eligibility.value)
        if filters.organizer_id is not None:
            qs = qs.filter(organizer_id=filters.organizer_id.value)
        if filters.search:
            qs = qs.filter(
                Q(name__icontains=filters.search)
                | Q(description__icontains=filters.search)
                | Q(organizer__organizer_name__icontains=filters.search)
            )
        if filters.starts_after is not None:
            qs = qs.filter(start_date__gte=filters.starts_after)
        if filters.starts_before is not None:
            qs = qs.filter(start_date__lte=filters.starts_before)
        rows = list(qs.order_by(F("start_date").asc(nulls_last=True), "-created_at"))
        if filters.tags:
            # JSON containment lookups are not portable to SQLite.
            wanted = set(filters.tags)
            rows = [row for row in rows if wanted.intersection(row.tags)]
        return [_to_event(row) for row in rows]

    @storage_operation
    def get_event(self, event_id: EventId) -> Event | None:
        row = orm.Event.objects.filter(pk=event_id.value).first()
        return _to_event(row) if row else None

    @storage_operation
    def create_event(self, organizer_id: AccountId, fields: Mapping[str, Any]) -> Event:
        row = orm.Event.objects.create(
            organizer_id=organizer_id.value,
            status=EventStatus.DRAFT.value,
            **_columns(fields),
        )
        return _to_event(row)

    @storage_operation
    def update_event(self, event_id: EventId, fields: Mapping[str, Any]) -> Event:
        row = orm.Event.objects.get(pk=event_id.value)
        columns = _columns(fields)
        for name, value in columns.items():
            setattr(row, name, value)
        row.save(update_fields=[*columns.keys(), "updated_at"])
        return _to_event(row)

    @storage_operation
    def transition_status(
        self,
        event_id: EventId,
        from_status: EventStatus,
        to_status: EventStatus,
        published_at: datetime | None = None,
    ) -> bool:
        changes: dict[str, Any] = {"status": to_status.value, "updated_at": timezone.now()}
        if published_at is not None:
            changes["published_at"] = published_at
        updated = orm.Event.objects.filter(
            pk=event_id.value, status=from_status.value
        ).update(**changes)
        invalidate_event_cache(event_id)
        return updated == 1

    @storage_operation
    def set_registration_limit(self, event_id: EventId, limit: int | None) -> bool:
        qs = orm.Event.objects.filter(pk=event_id.value)
        if limit is not None:
            qs = qs.filter(current_registrations__lte=limit)
        updated = qs.update(registration_limit=limit, updated_at=timezone.now())
        invalidate_event_cache(event_id)
        return updated == 1

    @storage_operation
    def lock_form(self, event_id: EventId) -> None:
        orm.Event.objects.filter(pk=event_id.value, form_locked=False).update(form_locked=True)

    @storage_operation
    def try_increment_registrations(self, event_id: EventId) -> bool:
        updated = (
            orm.Event.objects.filter(pk=event_id.value)
            .filter(
                Q(registration_limit__isnull=True)
                | Q(current_registrations__lt=F("registration_limit"))
            )
            .update(current_registrations=F("current_registrations") + 1)
        )
        invalidate_event_cache(event_id)
        return updated == 1

    @storage_operation
    def decrement_registrations(self, event_id: EventId, by: int = 1) -> bool:
        updated = orm.Event.objects.filter(
            pk=event_id.value, current_registrations__gte=by
        ).update(current_registrations=F("current_registrations") - by)
        invalidate_event_cache(event_id)
        return updated == 1

    @storage_operation
    def try_decrement_stock(self, event_id: EventId, quantity: int) -> bool:
        updated = orm.Event.objects.filter(
            pk=event_id.value, stock_quantity__gte=quantity
        ).update(stock_quantity=F("stock_quantity") - quantity)
        invalidate_event_cache(event_id)
        return updated == 1

    @storage_operation
    def restore_stock(self, event_id: EventId, quantity: int) -> None:
        orm.Event.objects.filter(pk=event_id.value).update(
            stock_quantity=F("stock_quantity") + quantity
        )
        invalidate_event_cache(event_id)

    @storage_operation
    def adjust_attendance(self, event_id: EventId, delta: int) -> bool:
        qs = orm.Event.objects.filter(pk=event_id.value)
        if delta < 0:
            qs = qs.filter(total_attendance__gte=-delta)
        updated = qs.update(total_attendance=F("total_attendance") + delta)
        invalidate_event_cache(event_id)
        return updated == 1

    @storage_operation
    def trending_events(self, since: datetime, limit: int) -> list[tuple[Event, int]]:
        counts = list(
            orm.Registration.objects.filter(
                created_at__gte=since, event__status=EventStatus.PUBLISHED.value
            )
            .values("event_id")
            .annotate(recent=Count("id"))
            .order_by("-recent", "event_id")[:limit]
        )
        rows = orm.Event.objects.in_bulk([entry["event_id"] for entry in counts])
        return [(_to_event(rows[entry["event_id"]]), entry["recent"]) for entry in counts]

    @storage_operation
    def event_ids_for_organizer(self, organizer_id: AccountId) -> list[EventId]:
        ids = orm.Event.objects.filter(organizer_id=organizer_id.value).values_list("id", flat=True)
        return [EventId(value) for value in ids]

    @storage_operation
    def delete_events(self, event_ids: Iterable[EventId]) -> int:
        ids = [event_id.value for event_id in event_ids]
        deleted, _ = orm.Event.objects.filter(pk__in=ids).delete()
        for event_id in ids:
            invalidate_event_cache(EventId(event_id))
        return deleted


class DjangoRegistrationStore(RegistrationStore):
    @storage_operation
    def get_registration(self, registration_id: RegistrationId) -> Registration | None:
        row = orm.Registration.objects.filter(pk=registration_id.value).first()
        return _to_registration(row) if row else None

    @storage_operation
    def find_registration(
        self, event_id: EventId, participant_id: AccountId
    ) -> Registration | None:
        row = orm.Registration.objects.filter(
            event_id=event_id.value, participant_id=participant_id.value
        ).first()
        return _to_registration(row) if row else None

    @storage_operation
    def create_registration(
        self,
        event_id: EventId,
        participant_id: AccountId,
        form_data: Mapping[str, Any],
        merchandise_quantity: int,
        merchandise_variants: Mapping[str, str],
    ) -> Registration:
        try:
            # Savepoint so a unique violation leaves the outer transaction usable.
            with transaction.atomic():
                row = orm.Registration.objects.create(
                    event_id=event_id.value,
                    participant_id=participant_id.value,
                    form_data=dict(form_data),
                    merchandise_quantity=merchandise_quantity,
                    merchandise_variants=dict(merchandise_variants),
                )
        except IntegrityError as exc:
            raise DuplicateRegistrationError() from exc
        return _to_registration(row)

    @storage_operation
    def transition(
        self,
        registration_id: RegistrationId,
        from_statuses: Iterable[RegistrationStatus],
        changes: Mapping[str, Any],
        from_payment: Iterable[PaymentStatus] | None = None,
    ) -> Registration | None:
        qs = orm.Registration.objects.filter(
            pk=registration_id.value,
            status__in=[status.value for status in from_statuses],
        )
        if from_payment is not None:
            qs = qs.filter(payment_status__in=[status.value for status in from_payment])
        updated = qs.update(**_columns(changes), updated_at=timezone.now())
        if updated != 1:
            return None
        return _to_registration(orm.Registration.objects.get(pk=registration_id.value))

    @storage_operation
    def append_attendance(
        self,
        registration_id: RegistrationId,
        entry: AttendanceLogEntry,
    ) -> tuple[Registration, bool]:
        with transaction.atomic():
            row = orm.Registration.objects.select_for_update().get(pk=registration_id.value)
            previous = row.attended
            row.attendance_log = [*row.attendance_log, entry.to_dict()]
            row.attended = entry.attended
            row.attendance_marked_at = entry.marked_at
            row.attendance_marked_by_id = entry.marked_by.value
            row.save(
                update_fields=[
                    "attendance_log",
                    "attended",
                    "attendance_marked_at",
                    "attendance_marked_by",
                    "updated_at",
                ]
            )
        return _to_registration(row), previous

    @storage_operation
    def list_for_participant(self, participant_id: AccountId) -> list[Registration]:
        rows = orm.Registration.objects.filter(participant_id=participant_id.value)
        return [_to_registration(row) for row in rows]

    @storage_operation
    def list_for_event(self, event_id: EventId) -> list[Registration]:
        rows = orm.Registration.objects.filter(event_id=event_id.value)
        return [_to_registration(row) for row in rows]

    @storage_operation
    def list_by_ids(self, registration_ids: Iterable[RegistrationId]) -> list[Registration]:
        rows = orm.Registration.objects.filter(pk__in=[r.value for r in registration_ids])
        return [_to_registration(row) for row in rows]

    @storage_operation
    def list_for_events(self, event_ids: Iterable[EventId]) -> list[Registration]:
        rows = orm.Registration.objects.filter(event_id__in=[e.value for e in event_ids])
        return [_to_registration(row) for row in rows]

    @storage_operation
    def delete_registrations(self, registration_ids: Iterable[RegistrationId]) -> int:
        ids = [r.value for r in registration_ids]
        deleted, _ = orm.Registration.objects.filter(pk__in=ids).delete()
        return deleted


class DjangoTicketStore(TicketStore):
    @storage_operation
    def ticket_id_exists(self, ticket_id: str) -> bool:
        return orm.Ticket.objects.filter(ticket_id=ticket_id).exists()

    @storage_operation
    def get_ticket(self, ticket_id: str) -> Ticket | None:
        row = orm.Ticket.objects.filter(ticket_id=ticket_id).first()
        return _to_ticket(row) if row else None

    @storage_operation
    def get_ticket_for_registration(self, registration_id: RegistrationId) -> Ticket | None:
        row = orm.Ticket.objects.filter(registration_id=registration_id.value).first()
        return _to_ticket(row) if row else None

    @storage_operation
    def create_ticket(self, ticket: Ticket) -> Ticket:
        try:
            with transaction.atomic():
                row = orm.Ticket.objects.create(
                    ticket_id=ticket.ticket_id,
                    registration_id=ticket.registration_id.value,
                    event_id=ticket.event_id.value,
                    participant_id=ticket.participant_id.value,
                    status=ticket.status.value,
                    qr_payload=ticket.qr_payload,
                    issued_at=ticket.issued_at,
                    expires_at=ticket.expires_at,
                )
        except IntegrityError:
            existing = orm.Ticket.objects.filter(
                registration_id=ticket.registration_id.value
            ).first()
            if existing is None:
                raise
            return _to_ticket(existing)
        return _to_ticket(row)

    @storage_operation
    def mark_used_if_valid(self, ticket_id: str, scanned_by: AccountId, at: datetime) -> bool:
        updated = orm.Ticket.objects.filter(
            ticket_id=ticket_id,
            status=TicketStatus.VALID.value,
            expires_at__gt=at,
        ).update(status=TicketStatus.USED.value, scanned_at=at, scanned_by_id=scanned_by.value)
        return updated == 1

    @storage_operation
    def list_for_participant(self, participant_id: AccountId) -> list[Ticket]:
        rows = orm.Ticket.objects.filter(participant_id=participant_id.value)
        return [_to_ticket(row) for row in rows]

    @storage_operation
    def set_status_for_event(
        self, event_id: EventId, from_status: TicketStatus, to_status: TicketStatus
    ) -> int:
        return orm.Ticket.objects.filter(
            event_id=event_id.value, status=from_status.value
        ).update(status=to_status.value)

    @storage_operation
    def delete_for_registrations(self, registration_ids: Iterable[RegistrationId]) -> int:
        ids = [r.value for r in registration_ids]
        deleted, _ = orm.Ticket.objects.filter(registration_id__in=ids).delete()
        return deleted
