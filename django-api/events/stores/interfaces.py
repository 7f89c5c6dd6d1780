"""Store interfaces (repository pattern).

Stores must be swappable and return domain models.
Counter and status writes that race with other requests are exposed as
conditional operations returning whether the write happened.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from events.domain import (
    AccountId,
    Actor,
    AttendanceLogEntry,
    Eligibility,
    Event,
    EventId,
    EventStatus,
    PaymentStatus,
    Registration,
    RegistrationId,
    RegistrationStatus,
    Ticket,
    TicketStatus,
)


@dataclass(frozen=True)
class EventFilters:
    """Optional filters for listing events."""

    status: EventStatus | None = None
    event_type: str | None = None
    eligibility: Eligibility | None = None
    organizer_id: AccountId | None = None
    # Matches events carrying any of these tags.
    tags: tuple[str, ...] = ()
    # Case-insensitive substring of name, description or organizer name.
    search: str | None = None
    starts_after: datetime | None = None
    starts_before: datetime | None = None
    # Drafts owned by this account are included alongside published events.
    visible_drafts_of: AccountId | None = None
    include_all: bool = False


class TransactionManager(ABC):
    """Unit-of-work boundary used by services."""

    @abstractmethod
    def atomic(self) -> AbstractContextManager[Any]:
        """Return a context manager wrapping one all-or-nothing unit of work."""
        ...

    @abstractmethod
    def on_commit(self, callback: Callable[[], None]) -> None:
        """Run callback after the surrounding unit of work commits."""
        ...


class AccountStore(ABC):
    """Interface for identity lookups owned by the auth collaborator."""

    @abstractmethod
    def get_actor(self, account_id: AccountId) -> Actor | None:
        """Return the account as an Actor, or None if not found."""
        ...

    @abstractmethod
    def delete_account(self, account_id: AccountId) -> None:
        """Delete the account row. Dependents must already be gone."""
        ...


class EventStore(ABC):
    """Interface for event persistence operations.

    The only writer of current_registrations, stock_quantity and
    total_attendance.
    """

    @abstractmethod
    def list_events(self, filters: EventFilters) -> list[Event]:
        """Return matching events ordered by start date ascending."""
        ...

    @abstractmethod
    def get_event(self, event_id: EventId) -> Event | None:
        """Return an event by ID, or None if not found."""
        ...

    @abstractmethod
    def create_event(self, organizer_id: AccountId, fields: Mapping[str, Any]) -> Event:
        """Persist a new draft event."""
        ...

    @abstractmethod
    def update_event(self, event_id: EventId, fields: Mapping[str, Any]) -> Event:
        """Overwrite plain (non-counter) fields and return the fresh event."""
        ...

    @abstractmethod
    def transition_status(
        self,
        event_id: EventId,
        from_status: EventStatus,
        to_status: EventStatus,
        published_at: datetime | None = None,
    ) -> bool:
        """Change status only if it still equals from_status."""
        ...

    @abstractmethod
    def set_registration_limit(self, event_id: EventId, limit: int | None) -> bool:
        """Set the limit only if current_registrations still fits under it."""
        ...

    @abstractmethod
    def lock_form(self, event_id: EventId) -> None:
        """Mark the custom form as locked."""
        ...

    @abstractmethod
    def try_increment_registrations(self, event_id: EventId) -> bool:
        """Add one registration only if the limit has not been reached."""
        ...

    @abstractmethod
    def decrement_registrations(self, event_id: EventId, by: int = 1) -> bool:
        """Remove registrations only if the counter stays non-negative."""
        ...

    @abstractmethod
    def try_decrement_stock(self, event_id: EventId, quantity: int) -> bool:
        """Take stock only if at least quantity is available."""
        ...

    @abstractmethod
    def restore_stock(self, event_id: EventId, quantity: int) -> None:
        """Return previously taken stock."""
        ...

    @abstractmethod
    def adjust_attendance(self, event_id: EventId, delta: int) -> bool:
        """Move total_attendance by delta without going negative."""
        ...

    @abstractmethod
    def trending_events(self, since: datetime, limit: int) -> list[tuple[Event, int]]:
        """Return published events ranked by registrations created since ``since``."""
        ...

    @abstractmethod
    def event_ids_for_organizer(self, organizer_id: AccountId) -> list[EventId]:
        """Return ids of every event the organizer owns."""
        ...

    @abstractmethod
    def delete_events(self, event_ids: Iterable[EventId]) -> int:
        """Delete event rows. Dependents must already be gone."""
        ...


class RegistrationStore(ABC):
    """Interface for registration persistence operations."""

    @abstractmethod
    def get_registration(self, registration_id: RegistrationId) -> Registration | None:
        ...

    @abstractmethod
    def find_registration(
        self, event_id: EventId, participant_id: AccountId
    ) -> Registration | None:
        """Return the participant's registration for the event, if any."""
        ...

    @abstractmethod
    def create_registration(
        self,
        event_id: EventId,
        participant_id: AccountId,
        form_data: Mapping[str, Any],
        merchandise_quantity: int,
        merchandise_variants: Mapping[str, str],
    ) -> Registration:
        """Insert a pending registration.

        Raises:
            DuplicateRegistrationError: If (event, participant) already exists.
        """
        ...

    @abstractmethod
    def transition(
        self,
        registration_id: RegistrationId,
        from_statuses: Iterable[RegistrationStatus],
        changes: Mapping[str, Any],
        from_payment: Iterable[PaymentStatus] | None = None,
    ) -> Registration | None:
        """Apply changes only if status is one of from_statuses
        (and payment_status one of from_payment, when given).

        Returns the updated registration, or None if the guard failed.
        """
        ...

    @abstractmethod
    def append_attendance(
        self,
        registration_id: RegistrationId,
        entry: AttendanceLogEntry,
    ) -> tuple[Registration, bool]:
        """Append an audit entry and set the attended flag under a row lock.

        Returns the updated registration and the previous attended flag.
        """
        ...

    @abstractmethod
    def list_for_participant(self, participant_id: AccountId) -> list[Registration]:
        ...

    @abstractmethod
    def list_for_event(self, event_id: EventId) -> list[Registration]:
        ...

    @abstractmethod
    def list_by_ids(self, registration_ids: Iterable[RegistrationId]) -> list[Registration]:
        ...

    @abstractmethod
    def list_for_events(self, event_ids: Iterable[EventId]) -> list[Registration]:
        ...

    @abstractmethod
    def delete_registrations(self, registration_ids: Iterable[RegistrationId]) -> int:
        """Delete registration rows. Tickets must already be gone."""
        ...


class TicketStore(ABC):
    """Interface for ticket persistence operations."""

    @abstractmethod
    def ticket_id_exists(self, ticket_id: str) -> bool:
        ...

    @abstractmethod
    def get_ticket(self, ticket_id: str) -> Ticket | None:
        ...

    @abstractmethod
    def get_ticket_for_registration(self, registration_id: RegistrationId) -> Ticket | None:
        ...

    @abstractmethod
    def create_ticket(self, ticket: Ticket) -> Ticket:
        """Persist a ticket; returns the existing one if the registration already has one."""
        ...

    @abstractmethod
    def mark_used_if_valid(self, ticket_id: str, scanned_by: AccountId, at: datetime) -> bool:
        """Transition valid -> used only if the ticket is still valid."""
        ...

    @abstractmethod
    def list_for_participant(self, participant_id: AccountId) -> list[Ticket]:
        ...

    @abstractmethod
    def set_status_for_event(
        self, event_id: EventId, from_status: TicketStatus, to_status: TicketStatus
    ) -> int:
        ...

    @abstractmethod
    def delete_for_registrations(self, registration_ids: Iterable[RegistrationId]) -> int:
        ...
