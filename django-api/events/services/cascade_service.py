"""Referential integrity on deletion.

Every deletion entry point (cancel, registration delete, event delete,
organizer and participant removal) goes through the CascadeCoordinator.
A unit of work is all-or-nothing: a failing stage aborts the surrounding
transaction and is reported as CascadeFailedError.
"""

from collections import Counter
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

import structlog

from events.domain import AccountId, Actor, EventId, Registration, RegistrationId, Role
from events.domain.errors import (
    AccountNotFoundError,
    CascadeFailedError,
    ForbiddenError,
    StorageError,
)
from events.stores.interfaces import (
    AccountStore,
    EventStore,
    RegistrationStore,
    TicketStore,
    TransactionManager,
)

logger = structlog.get_logger(__name__)


@contextmanager
def _stage(name: str, **context: str) -> Iterator[None]:
    try:
        yield
    except StorageError as exc:
        logger.error("cascade_failed", stage=name, operation=exc.operation, **context)
        raise CascadeFailedError(name) from exc


class CascadeCoordinator:
    """Removes dependents and fixes counters when entities go away."""

    def __init__(
        self,
        event_store: EventStore,
        registrations: RegistrationStore,
        tickets: TicketStore,
        accounts: AccountStore,
        transactions: TransactionManager,
    ) -> None:
        self._event_store = event_store
        self._registrations = registrations
        self._tickets = tickets
        self._accounts = accounts
        self._tx = transactions

    def release_registration(self, registration: Registration) -> None:
        """Undo the side effects of a registration that is being cancelled.

        ``registration`` is the state before cancellation; the row itself
        is kept.
        """
        with self._tx.atomic():
            with _stage("tickets", registration_id=str(registration.id)):
                self._tickets.delete_for_registrations([registration.id])
            self._release_counters([registration])
        logger.info("registration_released", registration_id=str(registration.id))

    def delete_registration(self, registration: Registration) -> None:
        self.delete_registrations([registration])

    def delete_registrations(self, registrations: Iterable[Registration]) -> int:
        """Bulk delete registrations with their tickets in one unit of work.

        Per-event counter and stock totals are computed up front so each
        event gets a single conditional update.
        """
        registrations = list(registrations)
        if not registrations:
            return 0
        ids = [registration.id for registration in registrations]
        with self._tx.atomic():
            with _stage("tickets"):
                tickets_deleted = self._tickets.delete_for_registrations(ids)
            with _stage("registrations"):
                deleted = self._registrations.delete_registrations(ids)
            self._release_counters(registrations)
        logger.info(
            "registrations_deleted",
            registrations=len(ids),
            tickets=tickets_deleted,
        )
        return deleted

    def delete_registrations_by_ids(self, registration_ids: Iterable[RegistrationId]) -> int:
        return self.delete_registrations(self._registrations.list_by_ids(registration_ids))

    def delete_registrations_for_event(self, event_id: EventId) -> int:
        return self.delete_registrations(self._registrations.list_for_event(event_id))

    def delete_event(self, event_id: EventId) -> None:
        """Delete an event with all of its registrations and tickets.

        Callers are responsible for the single-event delete guard.
        """
        with self._tx.atomic():
            self._delete_events([event_id])
        logger.info("event_deleted", event_id=str(event_id))

    def delete_organizer(self, organizer_id: AccountId, actor: Actor) -> int:
        """Administrative removal of an organizer and everything they own.

        The single-event delete guard does not apply here.
        """
        if not actor.is_admin:
            raise ForbiddenError("Only admins can remove organizers")
        organizer = self._accounts.get_actor(organizer_id)
        if organizer is None or organizer.role is not Role.ORGANIZER:
            raise AccountNotFoundError(str(organizer_id))
        with self._tx.atomic():
            with _stage("events", organizer_id=str(organizer_id)):
                event_ids = self._event_store.event_ids_for_organizer(organizer_id)
            self._delete_events(event_ids)
            with _stage("account", organizer_id=str(organizer_id)):
                self._accounts.delete_account(organizer_id)
        logger.info("organizer_deleted", organizer_id=str(organizer_id), events=len(event_ids))
        return len(event_ids)

    def delete_participant(self, participant_id: AccountId, actor: Actor) -> int:
        """Administrative removal of a participant and their registrations."""
        if not actor.is_admin:
            raise ForbiddenError("Only admins can remove participants")
        participant = self._accounts.get_actor(participant_id)
        if participant is None or participant.role is not Role.PARTICIPANT:
            raise AccountNotFoundError(str(participant_id))
        with self._tx.atomic():
            with _stage("registrations", participant_id=str(participant_id)):
                registrations = self._registrations.list_for_participant(participant_id)
            deleted = self.delete_registrations(registrations)
            with _stage("account", participant_id=str(participant_id)):
                self._accounts.delete_account(participant_id)
        logger.info("participant_deleted", participant_id=str(participant_id))
        return deleted

    def _delete_events(self, event_ids: list[EventId]) -> None:
        if not event_ids:
            return
        with _stage("registrations"):
            registrations = self._registrations.list_for_events(event_ids)
        ids = [registration.id for registration in registrations]
        with _stage("tickets"):
            self._tickets.delete_for_registrations(ids)
        with _stage("registrations"):
            self._registrations.delete_registrations(ids)
        # Counters die with their events; no decrements needed.
        with _stage("events"):
            self._event_store.delete_events(event_ids)

    def _release_counters(self, registrations: list[Registration]) -> None:
        decrements: Counter[EventId] = Counter()
        restocks: Counter[EventId] = Counter()
        for registration in registrations:
            if registration.is_active:
                decrements[registration.event_id] += 1
            if registration.holds_stock:
                restocks[registration.event_id] += registration.merchandise_quantity

        with _stage("counters"):
            for event_id, count in decrements.items():
                if not self._event_store.decrement_registrations(event_id, count):
                    logger.warning(
                        "registration_counter_underflow", event_id=str(event_id), by=count
                    )
        with _stage("stock"):
            for event_id, quantity in restocks.items():
                self._event_store.restore_stock(event_id, quantity)
