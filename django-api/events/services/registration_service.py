"""Registration and payment workflow.

Registration status: pending -> {confirmed, cancelled, rejected};
confirmed -> {cancelled, completed}.
Payment status: pending -> {paid, failed}; failed -> pending when a new
proof is uploaded; paid -> refunded as an explicit organizer action.
"""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from events.domain import (
    Actor,
    Event,
    EventId,
    MerchandiseSelection,
    Money,
    PaymentProofStatus,
    PaymentStatus,
    Registration,
    RegistrationBlocker,
    RegistrationId,
    RegistrationStatus,
    Ticket,
)
from events.domain.errors import (
    CapacityExceededError,
    DuplicateRegistrationError,
    ForbiddenError,
    InvalidTransitionError,
    OutOfStockError,
    PolicyViolationError,
    RegistrationNotFoundError,
    ValidationFailedError,
)
from events.services.cascade_service import CascadeCoordinator
from events.services.clock import utcnow
from events.services.event_service import EventService
from events.services.notifier import Notifier, dispatch_best_effort
from events.services.ticket_service import TicketService
from events.stores.interfaces import (
    AccountStore,
    EventStore,
    RegistrationStore,
    TransactionManager,
)

logger = structlog.get_logger(__name__)

CANCELLABLE = (RegistrationStatus.PENDING, RegistrationStatus.CONFIRMED)


@dataclass(frozen=True)
class RegistrationResult:
    registration: Registration
    ticket: Ticket | None = None


class RegistrationService:
    """Creates registrations and drives their status and payment transitions."""

    def __init__(
        self,
        events: EventService,
        event_store: EventStore,
        registrations: RegistrationStore,
        accounts: AccountStore,
        tickets: TicketService,
        cascade: CascadeCoordinator,
        notifier: Notifier,
        transactions: TransactionManager,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._events = events
        self._event_store = event_store
        self._store = registrations
        self._accounts = accounts
        self._tickets = tickets
        self._cascade = cascade
        self._notifier = notifier
        self._tx = transactions
        self._now = clock

    def register(
        self,
        event_id: EventId | str,
        participant: Actor,
        form_data: Mapping[str, Any] | None = None,
        merchandise_selection: Mapping[str, Any] | None = None,
    ) -> RegistrationResult:
        """Register a participant for an event (or purchase merchandise).

        Raises:
            ForbiddenError: If the caller is not a participant.
            PolicyViolationError: If the event is closed or the caller ineligible.
            CapacityExceededError: If the event is full, including when a
                concurrent registration took the last place.
            DuplicateRegistrationError: If the participant already registered.
            ValidationFailedError: Naming the first missing or invalid field.
            OutOfStockError: If the requested quantity is not available.
        """
        if not participant.is_participant:
            raise ForbiddenError("Only participants can register for events")
        event = self._events.require_event(event_id)
        decision = self._events.can_register(event, participant)
        if not decision.allowed:
            match decision.blocker:
                case RegistrationBlocker.FULL:
                    raise CapacityExceededError(decision.reason)
                case RegistrationBlocker.OUT_OF_STOCK:
                    raise OutOfStockError(decision.reason)
                case _:
                    raise PolicyViolationError(decision.reason)
        if self._store.find_registration(event.id, participant.id) is not None:
            raise DuplicateRegistrationError()

        form_data = dict(form_data or {})
        self._validate_form(event, form_data)
        selection = self._validate_selection(event, merchandise_selection)

        ticket = None
        with self._tx.atomic():
            registration = self._store.create_registration(
                event.id,
                participant.id,
                form_data,
                merchandise_quantity=selection.quantity if selection else 0,
                merchandise_variants=selection.variants if selection else {},
            )
            if event.custom_form_fields and not event.form_locked:
                self._event_store.lock_form(event.id)
            if not self._event_store.try_increment_registrations(event.id):
                raise CapacityExceededError()

            if event.auto_confirms:
                if selection is not None and not self._event_store.try_decrement_stock(
                    event.id, selection.quantity
                ):
                    raise OutOfStockError()
                quantity = selection.quantity if selection else 1
                registration = self._confirm(
                    registration,
                    amount=Money(event.registration_fee.amount * quantity),
                    from_payment=(PaymentStatus.PENDING,),
                )
                ticket = self._tickets.issue(registration, event)
                self._notify_ticket(participant, event, ticket)
            else:
                self._tx.on_commit(
                    lambda: dispatch_best_effort(
                        "payment_pending",
                        lambda: self._notifier.send_payment_pending(
                            participant, event, event.registration_fee
                        ),
                        registration_id=str(registration.id),
                    )
                )

        logger.info(
            "registration_created",
            registration_id=str(registration.id),
            event_id=str(event.id),
            participant_id=str(participant.id),
            status=registration.status.value,
        )
        return RegistrationResult(registration=registration, ticket=ticket)

    def upload_payment_proof(
        self, registration_id: RegistrationId | str, actor: Actor, proof: str
    ) -> Registration:
        registration = self.require(registration_id)
        if registration.participant_id != actor.id:
            raise ForbiddenError("You can only update your own registrations")
        if registration.payment_status is PaymentStatus.PAID:
            raise InvalidTransitionError("Payment already completed", current="paid")
        if registration.status is not RegistrationStatus.PENDING:
            raise InvalidTransitionError(
                "Only pending registrations accept payment proof",
                current=registration.status.value,
            )
        if not proof or not proof.strip():
            raise ValidationFailedError("Payment proof is required", ["payment_proof"])
        updated = self._store.transition(
            registration.id,
            (RegistrationStatus.PENDING,),
            {
                "payment_proof": proof.strip(),
                "payment_proof_status": PaymentProofStatus.PENDING,
                "payment_status": PaymentStatus.PENDING,
            },
            from_payment=(PaymentStatus.PENDING, PaymentStatus.FAILED),
        )
        if updated is None:
            raise InvalidTransitionError("Registration changed concurrently")
        logger.info("payment_proof_uploaded", registration_id=str(registration.id))
        return updated

    def verify_payment(
        self, registration_id: RegistrationId | str, approved: bool, actor: Actor
    ) -> RegistrationResult:
        """Approve or reject a manual payment.

        Approval confirms the registration and issues its ticket; rejection
        only marks the payment failed so the participant can resubmit.
        """
        registration = self.require(registration_id)
        event = self._events.require_event(registration.event_id)
        if not actor.can_manage(event):
            raise ForbiddenError("You can only verify payments for your own events")
        if registration.payment_status is PaymentStatus.PAID:
            raise InvalidTransitionError("Payment already completed", current="paid")
        if registration.status is not RegistrationStatus.PENDING:
            raise InvalidTransitionError(
                "Only pending registrations can be verified",
                current=registration.status.value,
            )

        ticket = None
        with self._tx.atomic():
            if approved:
                registration = self._confirm(
                    registration,
                    amount=event.registration_fee,
                    from_payment=(PaymentStatus.PENDING, PaymentStatus.FAILED),
                    proof_status=PaymentProofStatus.APPROVED,
                )
                ticket = self._tickets.issue(registration, event)
                participant = self._accounts.get_actor(registration.participant_id)
                if participant is not None:
                    self._notify_ticket(participant, event, ticket)
            else:
                updated = self._store.transition(
                    registration.id,
                    (RegistrationStatus.PENDING,),
                    {
                        "payment_status": PaymentStatus.FAILED,
                        "payment_proof_status": PaymentProofStatus.REJECTED,
                    },
                    from_payment=(PaymentStatus.PENDING, PaymentStatus.FAILED),
                )
                if updated is None:
                    raise InvalidTransitionError("Registration changed concurrently")
                registration = updated

        logger.info(
            "payment_verified",
            registration_id=str(registration.id),
            approved=approved,
            verified_by=str(actor.id),
        )
        return RegistrationResult(registration=registration, ticket=ticket)

    def refund(self, registration_id: RegistrationId | str, actor: Actor) -> Registration:
        registration = self.require(registration_id)
        event = self._events.require_event(registration.event_id)
        if not actor.can_manage(event):
            raise ForbiddenError("You can only refund payments for your own events")
        if registration.payment_status is not PaymentStatus.PAID:
            raise InvalidTransitionError(
                "Only paid registrations can be refunded",
                current=registration.payment_status.value,
                target=PaymentStatus.REFUNDED.value,
            )
        updated = self._store.transition(
            registration.id,
            tuple(RegistrationStatus),
            {"payment_status": PaymentStatus.REFUNDED},
            from_payment=(PaymentStatus.PAID,),
        )
        if updated is None:
            raise InvalidTransitionError("Registration changed concurrently")
        logger.info("payment_refunded", registration_id=str(registration.id))
        return updated

    def cancel(self, registration_id: RegistrationId | str, actor: Actor) -> Registration:
        """Cancel the caller's own registration before the event starts.

        Removes the ticket, frees the place and returns merchandise stock.
        """
        registration = self.require(registration_id)
        if registration.participant_id != actor.id:
            raise ForbiddenError("You can only cancel your own registrations")
        if registration.status not in CANCELLABLE:
            raise InvalidTransitionError(
                f"Cannot cancel a {registration.status.value} registration",
                current=registration.status.value,
                target=RegistrationStatus.CANCELLED.value,
            )
        event = self._events.require_event(registration.event_id)
        if event.start_date is not None and self._now() >= event.start_date:
            raise PolicyViolationError("Cannot cancel registration after event has started")

        with self._tx.atomic():
            updated = self._store.transition(
                registration.id, CANCELLABLE, {"status": RegistrationStatus.CANCELLED}
            )
            if updated is None:
                raise InvalidTransitionError("Registration changed concurrently")
            self._cascade.release_registration(registration)

        logger.info("registration_cancelled", registration_id=str(registration.id))
        return updated

    def require(self, registration_id: RegistrationId | str) -> Registration:
        parsed = self._parse_id(registration_id)
        registration = self._store.get_registration(parsed)
        if registration is None:
            raise RegistrationNotFoundError(str(parsed))
        return registration

    def get(self, registration_id: RegistrationId | str, actor: Actor) -> Registration:
        registration = self.require(registration_id)
        if registration.participant_id == actor.id:
            return registration
        event = self._events.require_event(registration.event_id)
        if not actor.can_manage(event):
            raise ForbiddenError("You can only view your own registrations")
        return registration

    def list_own(self, actor: Actor) -> list[Registration]:
        if not actor.is_participant:
            raise ForbiddenError("Only participants have registrations")
        return self._store.list_for_participant(actor.id)

    def list_for_event(self, event_id: EventId | str, actor: Actor) -> list[Registration]:
        event = self._events.get_managed_event(event_id, actor)
        return self._store.list_for_event(event.id)

    def delete(
        self, event_id: EventId | str, registration_id: RegistrationId | str, actor: Actor
    ) -> None:
        """Remove one registration of a managed event, with its ticket."""
        event = self._events.get_managed_event(event_id, actor)
        registration = self.require(registration_id)
        if registration.event_id != event.id:
            raise RegistrationNotFoundError(str(registration.id))
        self._cascade.delete_registration(registration)
        logger.info(
            "registration_deleted",
            registration_id=str(registration.id),
            deleted_by=str(actor.id),
        )

    def delete_for_event(self, event_id: EventId | str, actor: Actor) -> int:
        event = self._events.get_managed_event(event_id, actor)
        return self._cascade.delete_registrations_for_event(event.id)

    def delete_many(self, registration_ids: Iterable[str], actor: Actor) -> int:
        """Admin bulk removal by id; unknown ids are skipped."""
        if not actor.is_admin:
            raise ForbiddenError("Only admins can bulk delete registrations")
        parsed = []
        for raw in registration_ids:
            try:
                parsed.append(RegistrationId.from_string(str(raw)))
            except ValueError as exc:
                raise ValidationFailedError(
                    f"Invalid registration id: {raw}", ["registration_ids"]
                ) from exc
        return self._cascade.delete_registrations_by_ids(parsed)

    def _confirm(
        self,
        registration: Registration,
        amount: Money,
        from_payment: tuple[PaymentStatus, ...],
        proof_status: PaymentProofStatus | None = None,
    ) -> Registration:
        changes: dict[str, Any] = {
            "status": RegistrationStatus.CONFIRMED,
            "payment_status": PaymentStatus.PAID,
            "amount_paid": amount,
        }
        if proof_status is not None:
            changes["payment_proof_status"] = proof_status
        updated = self._store.transition(
            registration.id, (RegistrationStatus.PENDING,), changes, from_payment=from_payment
        )
        if updated is None:
            raise InvalidTransitionError("Registration changed concurrently")
        return updated

    def _notify_ticket(self, recipient: Actor, event: Event, ticket: Ticket) -> None:
        self._tx.on_commit(
            lambda: dispatch_best_effort(
                "send_ticket",
                lambda: self._notifier.send_ticket(recipient, event, ticket),
                ticket_id=ticket.ticket_id,
            )
        )

    def _validate_form(self, event: Event, form_data: Mapping[str, Any]) -> None:
        for field in event.custom_form_fields:
            if field.required and form_data.get(field.name) in (None, "", [], {}):
                raise ValidationFailedError(f'Field "{field.name}" is required', [field.name])

    def _validate_selection(
        self, event: Event, raw: Mapping[str, Any] | None
    ) -> MerchandiseSelection | None:
        if not event.is_merchandise or event.merchandise is None:
            return None
        if not raw:
            raise ValidationFailedError(
                "Merchandise details are required for merchandise events",
                ["merchandise_selection"],
            )
        try:
            selection = MerchandiseSelection(
                quantity=int(raw.get("quantity", 1)),
                variants={str(k): str(v) for k, v in (raw.get("variants") or {}).items()},
            )
        except (TypeError, ValueError) as exc:
            raise ValidationFailedError(
                "Quantity must be at least 1", ["merchandise_selection.quantity"]
            ) from exc
        if selection.quantity > event.merchandise.purchase_limit:
            raise ValidationFailedError(
                f"Cannot buy more than {event.merchandise.purchase_limit} per order",
                ["merchandise_selection.quantity"],
            )
        if selection.quantity > event.stock_quantity:
            raise OutOfStockError()
        declared = {variant.name: variant.options for variant in event.merchandise.variants}
        for name, choice in selection.variants.items():
            if name not in declared or (declared[name] and choice not in declared[name]):
                raise ValidationFailedError(
                    f'Invalid choice for variant "{name}"',
                    [f"merchandise_selection.variants.{name}"],
                )
        return selection

    def _parse_id(self, registration_id: RegistrationId | str) -> RegistrationId:
        if isinstance(registration_id, RegistrationId):
            return registration_id
        try:
            return RegistrationId.from_string(str(registration_id))
        except ValueError as exc:
            raise RegistrationNotFoundError(str(registration_id)) from exc
