"""Unit tests for domain primitives.

These test invariants that must hold at construction time.
Run with: pytest tests/test_domain.py -v
"""

import uuid
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from events.domain import (
    AccountId,
    Actor,
    AttendanceLogEntry,
    AttendanceMethod,
    Capacity,
    Eligibility,
    Event,
    EventId,
    EventStatus,
    EventType,
    MerchandiseDetails,
    MerchandiseSelection,
    Money,
    PaymentStatus,
    Registration,
    RegistrationId,
    RegistrationStatus,
    Role,
)
from events.domain.value_objects import EVENT_TRANSITIONS

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def build_event(**overrides) -> Event:
    fields = {
        "id": EventId(uuid.uuid4()),
        "organizer_id": AccountId(uuid.uuid4()),
        "name": "Hackathon",
        "description": "24h build",
        "status": EventStatus.PUBLISHED,
        "event_type": EventType.NORMAL,
        "eligibility": Eligibility.ALL,
        "registration_deadline": NOW,
        "start_date": NOW,
        "end_date": NOW,
        "registration_limit": None,
        "current_registrations": 0,
        "registration_fee": Money(Decimal("0")),
        "created_at": NOW,
        "updated_at": NOW,
    }
    fields.update(overrides)
    return Event(**fields)


class TestMoney:
    """Tests for Money value object."""

    def test_money_accepts_positive_amount(self):
        """Money can be created with positive amount."""
        assert Money(Decimal("10.50")).amount == Decimal("10.50")

    def test_money_accepts_zero(self):
        """Money can be created with zero."""
        assert Money(Decimal("0")).is_zero

    def test_money_rejects_negative_amount(self):
        """Money raises ValueError for negative amount."""
        with pytest.raises(ValueError):
            Money(Decimal("-1"))

    def test_money_str_format(self):
        """Money string representation is formatted to 2 decimal places."""
        assert str(Money(Decimal("5"))) == "5.00"


class TestCapacity:
    """Tests for Capacity value object."""

    def test_capacity_accepts_zero(self):
        """Capacity can be created with zero."""
        assert Capacity(0).value == 0

    def test_capacity_rejects_negative_value(self):
        """Capacity raises ValueError for negative value."""
        with pytest.raises(ValueError):
            Capacity(-1)


class TestEventId:
    """Tests for EventId value object."""

    def test_from_string_valid_uuid(self):
        """EventId.from_string parses valid UUID."""
        raw = str(uuid.uuid4())
        assert str(EventId.from_string(raw)) == raw

    def test_from_string_invalid_uuid(self):
        """EventId.from_string raises ValueError for invalid UUID."""
        with pytest.raises(ValueError):
            EventId.from_string("not-a-uuid")


class TestEventTransitions:
    """Tests for the event status graph."""

    @pytest.mark.parametrize("terminal", [EventStatus.COMPLETED, EventStatus.CANCELLED])
    def test_terminal_states_have_no_exits(self, terminal):
        assert EVENT_TRANSITIONS[terminal] == frozenset()

    def test_draft_only_publishes(self):
        assert set(EVENT_TRANSITIONS[EventStatus.DRAFT]) == {EventStatus.PUBLISHED}

    def test_ongoing_cannot_return_to_published(self):
        assert EventStatus.PUBLISHED not in EVENT_TRANSITIONS[EventStatus.ONGOING]


class TestEvent:
    """Tests for derived Event properties."""

    def test_unlimited_event_is_never_full(self):
        assert not build_event(current_registrations=10_000).is_full

    def test_event_full_at_limit(self):
        assert build_event(registration_limit=2, current_registrations=2).is_full

    def test_free_events_auto_confirm(self):
        assert build_event().auto_confirms

    def test_paid_normal_events_need_payment_review(self):
        assert not build_event(registration_fee=Money(Decimal("100"))).auto_confirms

    def test_merchandise_always_auto_confirms(self):
        event = build_event(
            event_type=EventType.MERCHANDISE,
            registration_fee=Money(Decimal("250")),
            merchandise=MerchandiseDetails(item_type="Hoodie", stock_quantity=Capacity(3)),
        )
        assert event.auto_confirms
        assert event.stock_quantity == 3

    def test_purchase_limit_must_be_positive(self):
        with pytest.raises(ValueError):
            MerchandiseDetails(item_type="Cap", stock_quantity=Capacity(1), purchase_limit=0)


class TestMerchandiseSelection:
    def test_rejects_zero_quantity(self):
        with pytest.raises(ValueError):
            MerchandiseSelection(quantity=0)


class TestActor:
    """Tests for role dispatch on Actor."""

    def test_organizer_manages_own_event_only(self):
        organizer = Actor(id=AccountId(uuid.uuid4()), role=Role.ORGANIZER)
        assert organizer.can_manage(build_event(organizer_id=organizer.id))
        assert not organizer.can_manage(build_event())

    def test_admin_manages_every_event(self):
        admin = Actor(id=AccountId(uuid.uuid4()), role=Role.ADMIN)
        assert admin.can_manage(build_event())

    def test_participant_manages_nothing(self):
        participant = Actor(id=AccountId(uuid.uuid4()), role=Role.PARTICIPANT)
        assert not participant.can_manage(build_event(organizer_id=participant.id))


class TestRegistration:
    """Tests for the counter and stock bookkeeping flags."""

    def _registration(self, status: RegistrationStatus, quantity: int = 0) -> Registration:
        return Registration(
            id=RegistrationId(uuid.uuid4()),
            event_id=EventId(uuid.uuid4()),
            participant_id=AccountId(uuid.uuid4()),
            status=status,
            payment_status=PaymentStatus.PENDING,
            amount_paid=Money(Decimal("0")),
            created_at=NOW,
            updated_at=NOW,
            merchandise_selection=MerchandiseSelection(quantity=quantity) if quantity else None,
        )

    def test_cancelled_registration_is_not_active(self):
        assert not self._registration(RegistrationStatus.CANCELLED).is_active

    def test_pending_registration_counts(self):
        assert self._registration(RegistrationStatus.PENDING).is_active

    def test_only_confirmed_merchandise_holds_stock(self):
        assert self._registration(RegistrationStatus.CONFIRMED, quantity=2).holds_stock
        assert not self._registration(RegistrationStatus.PENDING, quantity=2).holds_stock
        assert not self._registration(RegistrationStatus.CONFIRMED).holds_stock


class TestAttendanceLogEntry:
    def test_dict_round_trip(self):
        entry = AttendanceLogEntry(
            method=AttendanceMethod.MANUAL,
            attended=False,
            marked_by=AccountId(uuid.uuid4()),
            marked_at=NOW,
            note="left early",
        )
        assert AttendanceLogEntry.from_dict(entry.to_dict()) == entry
