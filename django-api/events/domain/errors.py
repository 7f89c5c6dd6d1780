"""Domain error codes for the events module."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Domain error codes."""

    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    REGISTRATION_NOT_FOUND = "REGISTRATION_NOT_FOUND"
    TICKET_NOT_FOUND = "TICKET_NOT_FOUND"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    INVALID_EVENT_ID = "INVALID_EVENT_ID"
    FORBIDDEN = "FORBIDDEN"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    IMMUTABLE = "IMMUTABLE"
    POLICY_VIOLATION = "POLICY_VIOLATION"
    CONFLICT = "CONFLICT"
    DUPLICATE_REGISTRATION = "DUPLICATE_REGISTRATION"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    ALREADY_USED = "ALREADY_USED"
    EXPIRED = "EXPIRED"
    WRONG_EVENT = "WRONG_EVENT"
    TICKET_CANCELLED = "TICKET_CANCELLED"
    STORAGE_ERROR = "STORAGE_ERROR"
    CASCADE_FAILED = "CASCADE_FAILED"


@dataclass(eq=False)
class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode
    message: str
    extra: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class NotFoundError(DomainError):
    """Raised when an entity is absent."""

    def __init__(self, message: str = "Not found", code: ErrorCode = ErrorCode.EVENT_NOT_FOUND) -> None:
        super().__init__(code=code, message=message)


class EventNotFoundError(NotFoundError):
    """Raised when an event is not found."""

    def __init__(self, event_id: str) -> None:
        super().__init__(message="Event not found", code=ErrorCode.EVENT_NOT_FOUND)
        self.event_id = event_id


class RegistrationNotFoundError(NotFoundError):
    def __init__(self, registration_id: str) -> None:
        super().__init__(message="Registration not found", code=ErrorCode.REGISTRATION_NOT_FOUND)
        self.registration_id = registration_id


class TicketNotFoundError(NotFoundError):
    def __init__(self, ticket_id: str) -> None:
        super().__init__(message="Ticket not found", code=ErrorCode.TICKET_NOT_FOUND)
        self.ticket_id = ticket_id


class AccountNotFoundError(NotFoundError):
    def __init__(self, account_id: str) -> None:
        super().__init__(message="Account not found", code=ErrorCode.ACCOUNT_NOT_FOUND)
        self.account_id = account_id


class InvalidEventIdError(DomainError):
    """Raised when an event ID is invalid."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_EVENT_ID,
            message="Invalid event ID format",
        )


class ForbiddenError(DomainError):
    """Raised on a role or ownership mismatch."""

    def __init__(self, message: str = "You are not allowed to perform this action") -> None:
        super().__init__(code=ErrorCode.FORBIDDEN, message=message)


class InvalidTransitionError(DomainError):
    """Raised when a state machine does not allow the requested change."""

    def __init__(self, message: str, current: str | None = None, target: str | None = None) -> None:
        super().__init__(
            code=ErrorCode.INVALID_TRANSITION,
            message=message,
            extra={"current": current, "target": target},
        )


class ImmutableError(DomainError):
    """Raised when fields are edited in a state that forbids it."""

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        super().__init__(code=ErrorCode.IMMUTABLE, message=message, extra={"fields": fields or []})
        self.fields = fields or []


class PolicyViolationError(DomainError):
    """Raised when a business rule forbids the operation."""

    def __init__(self, message: str) -> None:
        super().__init__(code=ErrorCode.POLICY_VIOLATION, message=message)


class ConflictError(DomainError):
    """Raised when the operation collides with existing or concurrent state."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.CONFLICT) -> None:
        super().__init__(code=code, message=message)


class DuplicateRegistrationError(ConflictError):
    def __init__(self) -> None:
        super().__init__(
            message="You have already registered for this event",
            code=ErrorCode.DUPLICATE_REGISTRATION,
        )


class CapacityExceededError(ConflictError):
    def __init__(self, message: str = "Event has reached maximum registrations") -> None:
        super().__init__(message=message, code=ErrorCode.CAPACITY_EXCEEDED)


class ValidationFailedError(DomainError):
    """Raised when a required field is missing or malformed."""

    def __init__(self, message: str, fields: list[str]) -> None:
        super().__init__(code=ErrorCode.VALIDATION_FAILED, message=message, extra={"fields": fields})
        self.fields = fields


class OutOfStockError(DomainError):
    def __init__(self, message: str = "Not enough stock available") -> None:
        super().__init__(code=ErrorCode.OUT_OF_STOCK, message=message)


class AlreadyUsedError(DomainError):
    """Raised when a ticket has already been scanned."""

    def __init__(self, scanned_at: datetime | None) -> None:
        super().__init__(
            code=ErrorCode.ALREADY_USED,
            message="Ticket already scanned",
            extra={"scanned_at": scanned_at.isoformat() if scanned_at else None},
        )
        self.scanned_at = scanned_at


class ExpiredError(DomainError):
    def __init__(self) -> None:
        super().__init__(code=ErrorCode.EXPIRED, message="Ticket has expired")


class WrongEventError(DomainError):
    def __init__(self) -> None:
        super().__init__(code=ErrorCode.WRONG_EVENT, message="Ticket is not for this event")


class TicketCancelledError(DomainError):
    def __init__(self) -> None:
        super().__init__(code=ErrorCode.TICKET_CANCELLED, message="Ticket has been cancelled")


class StorageError(DomainError):
    """Raised when the persistence layer fails; distinct from business failures."""

    def __init__(self, operation: str) -> None:
        super().__init__(code=ErrorCode.STORAGE_ERROR, message="Storage operation failed")
        self.operation = operation


class CascadeFailedError(DomainError):
    """Raised when a cascading deletion fails; nothing from the unit of work is kept."""

    def __init__(self, stage: str) -> None:
        super().__init__(
            code=ErrorCode.CASCADE_FAILED,
            message=f"Cascade failed at stage: {stage}",
            extra={"stage": stage},
        )
        self.stage = stage
