"""Ticket issuance, scanning and attendance.

A ticket moves valid -> used exactly once. Attendance is an append-only
audit log on the registration; total_attendance on the event tracks how
many registrations are currently flagged as attended.
"""

from collections.abc import Callable
from datetime import datetime, timedelta

import structlog
from django.conf import settings

from events.domain import (
    Actor,
    AttendanceLogEntry,
    AttendanceMethod,
    Event,
    EventId,
    Registration,
    RegistrationId,
    RegistrationStatus,
    ScanResult,
    Ticket,
    TicketStatus,
)
from events.domain.errors import (
    AlreadyUsedError,
    ConflictError,
    EventNotFoundError,
    ExpiredError,
    ForbiddenError,
    InvalidTransitionError,
    PolicyViolationError,
    RegistrationNotFoundError,
    TicketCancelledError,
    TicketNotFoundError,
    ValidationFailedError,
    WrongEventError,
)
from events.services import ticket_codec
from events.services.clock import utcnow
from events.services.event_service import parse_event_id
from events.stores.interfaces import (
    AccountStore,
    EventStore,
    RegistrationStore,
    TicketStore,
    TransactionManager,
)

logger = structlog.get_logger(__name__)

UNMARKABLE = (RegistrationStatus.CANCELLED, RegistrationStatus.REJECTED)


class TicketService:
    """Issues tickets for confirmed registrations and validates them at the door."""

    def __init__(
        self,
        tickets: TicketStore,
        registrations: RegistrationStore,
        event_store: EventStore,
        accounts: AccountStore,
        transactions: TransactionManager,
        clock: Callable[[], datetime] = utcnow,
        prefix: str | None = None,
        validity_days: int | None = None,
        max_attempts: int = 5,
    ) -> None:
        self._store = tickets
        self._registrations = registrations
        self._event_store = event_store
        self._accounts = accounts
        self._tx = transactions
        self._now = clock
        self._prefix = prefix or settings.FEST_TICKET_PREFIX
        self._validity = timedelta(
            days=validity_days if validity_days is not None else settings.FEST_TICKET_VALIDITY_DAYS
        )
        self._max_attempts = max_attempts

    def issue(self, registration: Registration, event: Event) -> Ticket:
        """Issue the ticket for a confirmed registration.

        Idempotent: a registration that already has a ticket gets it back.
        The ticket stays valid for a grace period after the event ends.
        """
        existing = self._store.get_ticket_for_registration(registration.id)
        if existing is not None:
            return existing
        if registration.status is not RegistrationStatus.CONFIRMED:
            raise PolicyViolationError("Tickets are only issued for confirmed registrations")
        if event.end_date is None:
            raise ValidationFailedError("Event end date is required to issue tickets", ["end_date"])

        issued_at = self._now()
        ticket_id = self._unique_ticket_id()
        payload = ticket_codec.TicketPayload(
            ticket_id=ticket_id,
            registration_id=str(registration.id),
            event_id=str(event.id),
            participant_id=str(registration.participant_id),
            issued_at=issued_at,
        )
        ticket = self._store.create_ticket(
            Ticket(
                ticket_id=ticket_id,
                registration_id=registration.id,
                event_id=event.id,
                participant_id=registration.participant_id,
                status=TicketStatus.VALID,
                qr_payload=ticket_codec.encode(payload),
                issued_at=issued_at,
                expires_at=event.end_date + self._validity,
            )
        )
        logger.info(
            "ticket_issued",
            ticket_id=ticket.ticket_id,
            registration_id=str(registration.id),
            event_id=str(event.id),
        )
        return ticket

    def scan(
        self,
        event_id: EventId | str,
        actor: Actor,
        ticket_id: str | None = None,
        qr_payload: str | None = None,
    ) -> ScanResult:
        """Validate a ticket at the door and record attendance.

        Exactly one of concurrent scans of the same ticket succeeds; the
        others see AlreadyUsedError and leave no attendance entry behind.

        Raises:
            ForbiddenError: If the caller cannot manage the event.
            ValidationFailedError: If neither identifier is given or the QR
                payload does not verify.
            TicketNotFoundError: If no such ticket exists.
            WrongEventError: If the ticket belongs to another event.
            AlreadyUsedError: If the ticket was scanned before.
            TicketCancelledError: If the ticket was cancelled.
            ExpiredError: If the ticket is past its expiry.
        """
        event = self._require_event(event_id)
        if not actor.can_manage(event):
            raise ForbiddenError("You can only scan tickets for your own events")
        if qr_payload:
            ticket_id = ticket_codec.decode(qr_payload).ticket_id
        if not ticket_id:
            raise ValidationFailedError(
                "Ticket ID or QR data is required", ["ticket_id", "qr_payload"]
            )

        ticket = self._store.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(ticket_id)
        now = self._now()
        self._check_scannable(ticket, event, now)

        with self._tx.atomic():
            if not self._store.mark_used_if_valid(ticket.ticket_id, actor.id, now):
                current = self._store.get_ticket(ticket.ticket_id) or ticket
                if current.status is TicketStatus.USED:
                    raise AlreadyUsedError(current.scanned_at)
                self._check_scannable(current, event, now)
                raise ConflictError("Ticket changed concurrently")
            registration, previous = self._registrations.append_attendance(
                ticket.registration_id,
                AttendanceLogEntry(
                    method=AttendanceMethod.SCAN,
                    attended=True,
                    marked_by=actor.id,
                    marked_at=now,
                ),
            )
            if not previous:
                self._event_store.adjust_attendance(event.id, 1)
            scanned = self._store.get_ticket(ticket.ticket_id) or ticket

        participant = self._accounts.get_actor(ticket.participant_id)
        logger.info(
            "ticket_scanned",
            ticket_id=ticket.ticket_id,
            event_id=str(event.id),
            scanned_by=str(actor.id),
        )
        return ScanResult(
            ticket=scanned,
            registration=registration,
            participant_name=participant.display_name if participant else "",
        )

    def mark_attendance(
        self,
        registration_id: RegistrationId | str,
        actor: Actor,
        attended: bool,
        note: str = "",
    ) -> Registration:
        """Manual attendance override by the organizer; always audited."""
        registration = self._require_registration(registration_id)
        event = self._require_event(registration.event_id)
        if not actor.can_manage(event):
            raise ForbiddenError("You can only mark attendance for your own events")
        if registration.status in UNMARKABLE:
            raise InvalidTransitionError(
                f"Cannot mark attendance for a {registration.status.value} registration",
                current=registration.status.value,
            )

        with self._tx.atomic():
            updated, previous = self._registrations.append_attendance(
                registration.id,
                AttendanceLogEntry(
                    method=AttendanceMethod.MANUAL,
                    attended=attended,
                    marked_by=actor.id,
                    marked_at=self._now(),
                    note=note,
                ),
            )
            if previous != attended:
                self._event_store.adjust_attendance(event.id, 1 if attended else -1)

        logger.info(
            "attendance_marked",
            registration_id=str(registration.id),
            attended=attended,
            marked_by=str(actor.id),
        )
        return updated

    def get(self, ticket_id: str, actor: Actor) -> Ticket:
        ticket = self._store.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(ticket_id)
        if ticket.participant_id == actor.id:
            return ticket
        if not actor.can_manage(self._require_event(ticket.event_id)):
            raise ForbiddenError("You can only view your own tickets")
        return ticket

    def list_own(self, actor: Actor) -> list[Ticket]:
        return self._store.list_for_participant(actor.id)

    def _check_scannable(self, ticket: Ticket, event: Event, now: datetime) -> None:
        if ticket.event_id != event.id:
            raise WrongEventError()
        match ticket.status:
            case TicketStatus.USED:
                raise AlreadyUsedError(ticket.scanned_at)
            case TicketStatus.CANCELLED:
                raise TicketCancelledError()
            case TicketStatus.EXPIRED:
                raise ExpiredError()
        if now >= ticket.expires_at:
            raise ExpiredError()

    def _unique_ticket_id(self) -> str:
        for _ in range(self._max_attempts):
            candidate = ticket_codec.generate_ticket_id(self._prefix)
            if not self._store.ticket_id_exists(candidate):
                return candidate
            logger.warning("ticket_id_collision", ticket_id=candidate)
        raise ConflictError("Could not generate a unique ticket ID")

    def _require_event(self, event_id: EventId | str) -> Event:
        parsed = parse_event_id(event_id)
        event = self._event_store.get_event(parsed)
        if event is None:
            raise EventNotFoundError(str(parsed))
        return event

    def _require_registration(self, registration_id: RegistrationId | str) -> Registration:
        if not isinstance(registration_id, RegistrationId):
            try:
                registration_id = RegistrationId.from_string(str(registration_id))
            except ValueError as exc:
                raise RegistrationNotFoundError(str(registration_id)) from exc
        registration = self._registrations.get_registration(registration_id)
        if registration is None:
            raise RegistrationNotFoundError(str(registration_id))
        return registration
