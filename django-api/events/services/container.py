"""Wires services to their Django-backed stores."""

import functools
from dataclasses import dataclass

from events.services.cascade_service import CascadeCoordinator
from events.services.event_service import EventService
from events.services.notifier import Notifier, get_notifier
from events.services.registration_service import RegistrationService
from events.services.ticket_service import TicketService
from events.stores.django_store import (
    DjangoAccountStore,
    DjangoEventStore,
    DjangoRegistrationStore,
    DjangoTicketStore,
    DjangoTransactionManager,
)


@dataclass(frozen=True)
class Services:
    events: EventService
    registrations: RegistrationService
    tickets: TicketService
    cascade: CascadeCoordinator


def build_services(notifier: Notifier | None = None) -> Services:
    event_store = DjangoEventStore()
    registration_store = DjangoRegistrationStore()
    ticket_store = DjangoTicketStore()
    accounts = DjangoAccountStore()
    transactions = DjangoTransactionManager()

    cascade = CascadeCoordinator(
        event_store, registration_store, ticket_store, accounts, transactions
    )
    events = EventService(event_store, ticket_store, cascade, transactions)
    tickets = TicketService(ticket_store, registration_store, event_store, accounts, transactions)
    registrations = RegistrationService(
        events=events,
        event_store=event_store,
        registrations=registration_store,
        accounts=accounts,
        tickets=tickets,
        cascade=cascade,
        notifier=notifier or get_notifier(),
        transactions=transactions,
    )
    return Services(
        events=events, registrations=registrations, tickets=tickets, cascade=cascade
    )


@functools.cache
def get_services() -> Services:
    return build_services()
