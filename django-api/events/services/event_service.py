"""Event service - all business logic lives here.

Services:
- Depend only on interfaces (stores)
- Validate domain invariants
- Perform orchestration and error mapping
- Return domain models or domain errors

Lifecycle: draft -> published -> {ongoing, cancelled, completed};
ongoing -> {completed, cancelled}. Completed and cancelled are terminal.
"""

import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

import structlog

from events.domain import (
    AccountId,
    Actor,
    Capacity,
    Eligibility,
    EligibilityDecision,
    Event,
    EventId,
    EventStatus,
    EventType,
    FormField,
    FormFieldType,
    MerchandiseVariant,
    Money,
    ParticipantType,
    RegistrationBlocker,
    TicketStatus,
)
from events.domain.errors import (
    ConflictError,
    EventNotFoundError,
    ForbiddenError,
    ImmutableError,
    InvalidEventIdError,
    InvalidTransitionError,
    PolicyViolationError,
    ValidationFailedError,
)
from events.domain.value_objects import EVENT_TRANSITIONS
from events.services.cascade_service import CascadeCoordinator
from events.services.clock import utcnow
from events.stores.interfaces import EventFilters, EventStore, TicketStore, TransactionManager

logger = structlog.get_logger(__name__)

DRAFT_FIELDS = frozenset(
    {
        "name",
        "description",
        "event_type",
        "eligibility",
        "registration_deadline",
        "start_date",
        "end_date",
        "registration_limit",
        "registration_fee",
        "tags",
        "custom_form_fields",
        "merchandise",
    }
)
PUBLISHED_FIELDS = frozenset({"description", "registration_deadline", "registration_limit", "tags"})
PUBLISH_REQUIRED = ("name", "description", "registration_deadline", "start_date", "end_date")
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
TRENDING_WINDOW = timedelta(hours=24)
TRENDING_LIMIT = 5


@dataclass(frozen=True)
class EventPage:
    results: list[Event]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.page_size)


@dataclass(frozen=True)
class TrendingEvent:
    event: Event
    recent_registrations: int


def parse_event_id(event_id: EventId | str) -> EventId:
    if isinstance(event_id, EventId):
        return event_id
    try:
        return EventId.from_string(str(event_id))
    except ValueError as exc:
        raise InvalidEventIdError() from exc


class EventService:
    """Service for event lifecycle, eligibility and catalog operations."""

    def __init__(
        self,
        store: EventStore,
        tickets: TicketStore,
        cascade: CascadeCoordinator,
        transactions: TransactionManager,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._tickets = tickets
        self._cascade = cascade
        self._tx = transactions
        self._now = clock

    def list_events(
        self,
        actor: Actor | None = None,
        *,
        status: EventStatus | None = None,
        event_type: str | None = None,
        eligibility: Eligibility | None = None,
        organizer_id: str | None = None,
        tags: str | None = None,
        search: str | None = None,
        starts_after: datetime | None = None,
        starts_before: datetime | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> EventPage:
        """Return one page of the events visible to the caller.

        Drafts are only listed for their owner; admins see everything.
        ``tags`` is a comma-separated list; an event matches if it has any.
        """
        if page < 1 or not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValidationFailedError("Invalid page", ["page"])
        filters = EventFilters(
            status=status,
            event_type=event_type,
            eligibility=eligibility,
            organizer_id=self._parse_account(organizer_id) if organizer_id else None,
            tags=tuple(tag.strip() for tag in (tags or "").split(",") if tag.strip()),
            search=search.strip() if search and search.strip() else None,
            starts_after=starts_after,
            starts_before=starts_before,
            visible_drafts_of=actor.id if actor and actor.is_organizer else None,
            include_all=bool(actor and actor.is_admin),
        )
        events = self._store.list_events(filters)
        start = (page - 1) * page_size
        return EventPage(
            results=events[start : start + page_size],
            total=len(events),
            page=page,
            page_size=page_size,
        )

    def trending(self, limit: int = TRENDING_LIMIT) -> list[TrendingEvent]:
        """Published events with the most registrations in the trending window."""
        since = self._now() - TRENDING_WINDOW
        return [
            TrendingEvent(event=event, recent_registrations=count)
            for event, count in self._store.trending_events(since, limit)
        ]

    def get_event(self, event_id: EventId | str, actor: Actor | None = None) -> Event:
        """Return an event by ID.

        Raises:
            InvalidEventIdError: If the event_id is not a valid UUID.
            EventNotFoundError: If the event does not exist.
            ForbiddenError: If the event is a draft the caller does not own.
        """
        event = self.require_event(event_id)
        if event.status is EventStatus.DRAFT and not (actor and actor.can_manage(event)):
            raise ForbiddenError("Draft events are not public")
        return event

    def require_event(self, event_id: EventId | str) -> Event:
        """Return an event by ID without visibility checks."""
        parsed = parse_event_id(event_id)
        event = self._store.get_event(parsed)
        if event is None:
            raise EventNotFoundError(str(parsed))
        return event

    def get_managed_event(self, event_id: EventId | str, actor: Actor) -> Event:
        """Return an event the caller may manage, or raise ForbiddenError."""
        event = self.require_event(event_id)
        if not actor.can_manage(event):
            raise ForbiddenError("You can only manage your own events")
        return event

    def create(self, actor: Actor, data: Mapping[str, Any]) -> Event:
        if not (actor.is_organizer or actor.is_admin):
            raise ForbiddenError("Only organizers can create events")
        unknown = sorted(set(data) - DRAFT_FIELDS)
        if unknown:
            raise ValidationFailedError(f"Unknown fields: {', '.join(unknown)}", unknown)
        if not data.get("name"):
            raise ValidationFailedError("Event name is required", ["name"])
        fields = self._normalize(data)
        event_type = fields.get("event_type", EventType.NORMAL)
        self._validate_dates(fields)
        self._validate_merchandise(event_type, fields)
        event = self._store.create_event(actor.id, fields)
        logger.info("event_created", event_id=str(event.id), organizer_id=str(actor.id))
        return event

    def publish(self, event_id: EventId | str, actor: Actor) -> Event:
        """Move a draft to published.

        Raises:
            InvalidTransitionError: If the event is not a draft.
            ValidationFailedError: Listing every missing required field.
        """
        event = self.get_managed_event(event_id, actor)
        if event.status is not EventStatus.DRAFT:
            raise InvalidTransitionError(
                "Only draft events can be published",
                current=event.status.value,
                target=EventStatus.PUBLISHED.value,
            )
        missing = [name for name in PUBLISH_REQUIRED if not getattr(event, name)]
        if missing:
            raise ValidationFailedError(f"Cannot publish: {', '.join(missing)} required", missing)
        if not self._store.transition_status(
            event.id, EventStatus.DRAFT, EventStatus.PUBLISHED, published_at=self._now()
        ):
            raise ConflictError("Event status changed concurrently")
        logger.info("event_published", event_id=str(event.id))
        return self.require_event(event.id)

    def update(self, event_id: EventId | str, patch: Mapping[str, Any], actor: Actor) -> Event:
        """Apply a partial update allowed by the event's current status."""
        event = self.get_managed_event(event_id, actor)
        unknown = sorted(set(patch) - DRAFT_FIELDS - {"status"})
        if unknown:
            raise ValidationFailedError(f"Unknown fields: {', '.join(unknown)}", unknown)
        fields = {name: value for name, value in patch.items() if name != "status"}
        target = self._parse_status(patch["status"]) if "status" in patch else None

        with self._tx.atomic():
            match event.status:
                case EventStatus.DRAFT:
                    self._update_draft(event, fields)
                case EventStatus.PUBLISHED:
                    self._update_published(event, fields)
                case _:
                    if fields:
                        raise ImmutableError(
                            "Cannot edit ongoing, completed or cancelled events", sorted(fields)
                        )
            if target is not None and target is not event.status:
                self._change_status(self.require_event(event.id), target, actor)
        logger.info("event_updated", event_id=str(event.id), fields=sorted(patch))
        return self.require_event(event.id)

    def can_register(self, event: Event, participant: Actor) -> EligibilityDecision:
        """Evaluate registration eligibility; the first failing check wins."""
        if event.status is not EventStatus.PUBLISHED:
            return self._blocked(RegistrationBlocker.NOT_PUBLISHED, "Event is not published yet")
        if event.registration_deadline is not None and self._now() > event.registration_deadline:
            return self._blocked(
                RegistrationBlocker.DEADLINE_PASSED, "Registration deadline has passed"
            )
        if event.is_full:
            return self._blocked(RegistrationBlocker.FULL, "Event has reached maximum registrations")
        if event.eligibility is not Eligibility.ALL:
            if not participant.is_participant or participant.participant_type is None:
                return self._blocked(
                    RegistrationBlocker.INELIGIBLE, "Only participants can register for events"
                )
            if (
                event.eligibility is Eligibility.IIIT_ONLY
                and participant.participant_type is not ParticipantType.IIIT
            ):
                return self._blocked(
                    RegistrationBlocker.INELIGIBLE, "This event is only for IIIT students"
                )
            if (
                event.eligibility is Eligibility.NON_IIIT_ONLY
                and participant.participant_type is not ParticipantType.NON_IIIT
            ):
                return self._blocked(
                    RegistrationBlocker.INELIGIBLE, "This event is only for Non-IIIT students"
                )
        if event.is_merchandise and event.stock_quantity <= 0:
            return self._blocked(RegistrationBlocker.OUT_OF_STOCK, "Item is out of stock")
        return EligibilityDecision(allowed=True)

    def check_deletable(self, event: Event) -> None:
        if event.status is not EventStatus.DRAFT and event.current_registrations > 0:
            raise ConflictError(
                "Cannot delete event with existing registrations. Cancel it instead."
            )

    def delete(self, event_id: EventId | str, actor: Actor) -> None:
        """Delete an event and cascade to its registrations and tickets.

        Raises:
            ConflictError: If the event is not a draft and has registrations.
        """
        event = self.get_managed_event(event_id, actor)
        self.check_deletable(event)
        self._cascade.delete_event(event.id)

    def _blocked(self, blocker: RegistrationBlocker, reason: str) -> EligibilityDecision:
        return EligibilityDecision(allowed=False, reason=reason, blocker=blocker)

    def _update_draft(self, event: Event, fields: dict[str, Any]) -> None:
        if not fields:
            return
        if "custom_form_fields" in fields and event.form_locked:
            raise ImmutableError(
                "Custom form is locked once registrations exist", ["custom_form_fields"]
            )
        normalized = self._normalize(fields)
        merged = {
            "start_date": event.start_date,
            "end_date": event.end_date,
            "registration_deadline": event.registration_deadline,
            **normalized,
        }
        self._validate_dates(merged)
        event_type = normalized.get("event_type", event.event_type)
        if event_type is EventType.MERCHANDISE and "merchandise" not in fields:
            if event.merchandise is None:
                raise ValidationFailedError(
                    "Merchandise events require merchandise details", ["merchandise"]
                )
        else:
            self._validate_merchandise(event_type, normalized)
        self._store.update_event(event.id, normalized)

    def _update_published(self, event: Event, fields: dict[str, Any]) -> None:
        disallowed = sorted(set(fields) - PUBLISHED_FIELDS)
        if disallowed:
            raise ImmutableError(
                f"Published events cannot change: {', '.join(disallowed)}", disallowed
            )
        normalized = self._normalize(fields)
        new_deadline = normalized.get("registration_deadline")
        if "registration_deadline" in normalized:
            if new_deadline is None or (
                event.registration_deadline is not None
                and new_deadline < event.registration_deadline
            ):
                raise PolicyViolationError(
                    "Cannot shorten registration deadline for published events"
                )
            self._validate_dates({**self._dates_of(event), "registration_deadline": new_deadline})
        if "registration_limit" in normalized:
            limit = normalized.pop("registration_limit")
            if not self._store.set_registration_limit(event.id, limit):
                raise PolicyViolationError(
                    "Registration limit cannot be lower than current registrations"
                )
        if normalized:
            self._store.update_event(event.id, normalized)

    def _change_status(self, event: Event, target: EventStatus, actor: Actor) -> None:
        if target not in EVENT_TRANSITIONS[event.status]:
            raise InvalidTransitionError(
                f"Cannot move event from {event.status.value} to {target.value}",
                current=event.status.value,
                target=target.value,
            )
        if target is EventStatus.PUBLISHED:
            self.publish(event.id, actor)
            return
        if not self._store.transition_status(event.id, event.status, target):
            raise ConflictError("Event status changed concurrently")
        if target is EventStatus.CANCELLED:
            cancelled = self._tickets.set_status_for_event(
                event.id, TicketStatus.VALID, TicketStatus.CANCELLED
            )
            logger.info("event_tickets_cancelled", event_id=str(event.id), tickets=cancelled)
        logger.info(
            "event_status_changed",
            event_id=str(event.id),
            from_status=event.status.value,
            to_status=target.value,
        )

    def _dates_of(self, event: Event) -> dict[str, datetime | None]:
        return {
            "start_date": event.start_date,
            "end_date": event.end_date,
            "registration_deadline": event.registration_deadline,
        }

    def _validate_dates(self, fields: Mapping[str, Any]) -> None:
        start, end = fields.get("start_date"), fields.get("end_date")
        if start is not None and end is not None and end < start:
            raise ValidationFailedError("End date must be after or equal to start date", ["end_date"])

    def _validate_merchandise(self, event_type: EventType, fields: Mapping[str, Any]) -> None:
        if event_type is not EventType.MERCHANDISE:
            return
        if "stock_quantity" not in fields:
            raise ValidationFailedError(
                "Merchandise events require merchandise details", ["merchandise"]
            )
        if fields["stock_quantity"].value <= 0:
            raise ValidationFailedError(
                "Merchandise events require a stock quantity greater than 0",
                ["merchandise.stock_quantity"],
            )

    def _normalize(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Turn API-shaped values into domain values keyed by store field name."""
        fields: dict[str, Any] = {}
        for name, value in data.items():
            match name:
                case "event_type":
                    fields[name] = self._enum(EventType, value, name)
                case "eligibility":
                    fields[name] = self._enum(Eligibility, value, name)
                case "registration_fee":
                    fields[name] = self._money(value)
                case "registration_limit":
                    if value is not None and int(value) < 1:
                        raise ValidationFailedError(
                            "Registration limit must be at least 1", ["registration_limit"]
                        )
                    fields[name] = None if value is None else int(value)
                case "tags":
                    fields[name] = tuple(str(tag).strip() for tag in value or ())
                case "custom_form_fields":
                    fields[name] = tuple(self._form_field(raw) for raw in value or ())
                case "merchandise":
                    fields.update(self._merchandise(value or {}))
                case _:
                    fields[name] = value
        return fields

    def _form_field(self, raw: Mapping[str, Any] | FormField) -> FormField:
        if isinstance(raw, FormField):
            return raw
        name = str(raw.get("name", "")).strip()
        if not name:
            raise ValidationFailedError("Form fields need a name", ["custom_form_fields"])
        return FormField(
            name=name,
            type=self._enum(FormFieldType, raw.get("type", "text"), "custom_form_fields"),
            required=bool(raw.get("required", False)),
            options=tuple(raw.get("options", ())),
        )

    def _merchandise(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        try:
            stock = Capacity(int(raw.get("stock_quantity", 0)))
        except ValueError as exc:
            raise ValidationFailedError(
                "Stock quantity cannot be negative", ["merchandise.stock_quantity"]
            ) from exc
        purchase_limit = int(raw.get("purchase_limit", 5))
        if purchase_limit < 1:
            raise ValidationFailedError(
                "Purchase limit must be at least 1", ["merchandise.purchase_limit"]
            )
        return {
            "item_type": str(raw.get("item_type", "")),
            "stock_quantity": stock,
            "purchase_limit": purchase_limit,
            "variants": tuple(
                MerchandiseVariant(name=v["name"], options=tuple(v.get("options", ())))
                for v in raw.get("variants", ())
            ),
        }

    def _money(self, value: Any) -> Money:
        try:
            return Money(Decimal(str(value)))
        except (InvalidOperation, ValueError) as exc:
            raise ValidationFailedError("Invalid registration fee", ["registration_fee"]) from exc

    def _enum(self, enum_cls: type, value: Any, field: str) -> Any:
        try:
            return enum_cls(value)
        except ValueError as exc:
            raise ValidationFailedError(f"Invalid value for {field}", [field]) from exc

    def _parse_status(self, value: Any) -> EventStatus:
        return self._enum(EventStatus, value, "status")

    def _parse_account(self, value: str) -> AccountId:
        try:
            return AccountId(UUID(str(value)))
        except ValueError as exc:
            raise ValidationFailedError("Invalid organizer id", ["organizer"]) from exc
