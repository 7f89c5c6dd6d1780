"""Outbound notification collaborator.

Delivery (email, QR image rendering, chat webhooks) lives outside this
service. The core only asks for a notification to be sent and never lets a
delivery failure undo the operation that triggered it.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable

import structlog
from django.conf import settings
from django.utils.module_loading import import_string

from events.domain import Actor, Event, Money, Ticket

logger = structlog.get_logger(__name__)


class Notifier(ABC):
    """Interface for notification delivery."""

    @abstractmethod
    def send_ticket(self, recipient: Actor, event: Event, ticket: Ticket) -> None:
        """Deliver a freshly issued ticket to its holder."""
        ...

    @abstractmethod
    def send_payment_pending(self, recipient: Actor, event: Event, amount: Money) -> None:
        """Tell a participant that their registration awaits payment."""
        ...


class LoggingNotifier(Notifier):
    """Default notifier; records the request and delivers nothing."""

    def send_ticket(self, recipient: Actor, event: Event, ticket: Ticket) -> None:
        logger.info(
            "ticket_notification_requested",
            recipient=str(recipient.id),
            event_id=str(event.id),
            ticket_id=ticket.ticket_id,
        )

    def send_payment_pending(self, recipient: Actor, event: Event, amount: Money) -> None:
        logger.info(
            "payment_pending_notification_requested",
            recipient=str(recipient.id),
            event_id=str(event.id),
            amount=str(amount),
        )


def get_notifier() -> Notifier:
    """Instantiate the notifier named by the FEST_NOTIFIER setting."""
    notifier_class = import_string(
        getattr(settings, "FEST_NOTIFIER", "events.services.notifier.LoggingNotifier")
    )
    return notifier_class()


def dispatch_best_effort(action: str, send: Callable[[], None], **context: str) -> None:
    """Run a notification; log and drop any failure."""
    try:
        send()
    except Exception:
        logger.exception("notification_failed", action=action, **context)
