"""Ticket identifiers and QR payload encoding.

The payload is signed with Django's signing framework so a scanner can trust
the identifiers it carries without a second lookup key.
"""

import secrets
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Self

from django.conf import settings
from django.core import signing

from events.domain.errors import ValidationFailedError

REQUIRED_KEYS = ("ticketId", "registrationId", "eventId", "participantId", "issuedAt")

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_ticket_id(prefix: str | None = None) -> str:
    """Return ``<PREFIX>-<base36 ms timestamp>-<8 hex chars>``."""
    prefix = prefix or getattr(settings, "FEST_TICKET_PREFIX", "FEL")
    timestamp = _base36(time.time_ns() // 1_000_000)
    return f"{prefix}-{timestamp}-{secrets.token_hex(4).upper()}"


@dataclass(frozen=True)
class TicketPayload:
    """The identity bundle carried by a ticket's QR code."""

    ticket_id: str
    registration_id: str
    event_id: str
    participant_id: str
    issued_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticketId": self.ticket_id,
            "registrationId": self.registration_id,
            "eventId": self.event_id,
            "participantId": self.participant_id,
            "issuedAt": self.issued_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            ticket_id=data["ticketId"],
            registration_id=data["registrationId"],
            event_id=data["eventId"],
            participant_id=data["participantId"],
            issued_at=datetime.fromisoformat(data["issuedAt"]),
        )


def _salt() -> str:
    return getattr(settings, "FEST_TICKET_SIGNING_SALT", "fest.tickets")


def encode(payload: TicketPayload) -> str:
    return signing.dumps(payload.to_dict(), salt=_salt(), compress=True)


def decode(raw: str) -> TicketPayload:
    """Verify and unpack a scanned payload.

    Raises:
        ValidationFailedError: If the signature is bad or keys are missing.
    """
    try:
        data = signing.loads(raw, salt=_salt())
    except signing.BadSignature as exc:
        raise ValidationFailedError("Invalid QR code", ["qr_payload"]) from exc
    if not isinstance(data, dict) or any(not data.get(key) for key in REQUIRED_KEYS):
        raise ValidationFailedError("Invalid QR code data", ["qr_payload"])
    try:
        return TicketPayload.from_dict(data)
    except ValueError as exc:
        raise ValidationFailedError("Invalid QR code data", ["qr_payload"]) from exc
