"""Pytest configuration and shared fixtures."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import create_autospec

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from events.domain import EventStatus, EventType, ParticipantType, Role
from events.models import Account, Event
from events.services.container import Services, build_services
from events.services.notifier import Notifier


@pytest.fixture
def api_client() -> APIClient:
    return APIClient()


@pytest.fixture(autouse=True)
def clear_cache():
    from django.core.cache import cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def make_account(db):
    counter = iter(range(1, 10_000))

    def _make(role: Role = Role.PARTICIPANT, **overrides) -> Account:
        n = next(counter)
        fields = {
            "email": f"{role.value}{n}@fest.test",
            "first_name": role.value.title(),
            "last_name": str(n),
            "role": role.value,
        }
        if role is Role.PARTICIPANT:
            fields["participant_type"] = ParticipantType.IIIT.value
        if role is Role.ORGANIZER:
            fields["organizer_name"] = f"Club {n}"
        fields.update(overrides)
        return Account.objects.create(**fields)

    return _make


@pytest.fixture
def participant(make_account) -> Account:
    return make_account(Role.PARTICIPANT)


@pytest.fixture
def organizer(make_account) -> Account:
    return make_account(Role.ORGANIZER)


@pytest.fixture
def admin_account(make_account) -> Account:
    return make_account(Role.ADMIN)


@pytest.fixture
def make_event(db, organizer):
    """Create events directly in the database, published and open by default."""

    def _make(**overrides) -> Event:
        now = timezone.now()
        fields = {
            "organizer": organizer,
            "name": "Battle of Bands",
            "description": "Annual music contest",
            "status": EventStatus.PUBLISHED.value,
            "event_type": EventType.NORMAL.value,
            "registration_deadline": now + timedelta(days=5),
            "start_date": now + timedelta(days=7),
            "end_date": now + timedelta(days=8),
            "registration_fee": Decimal("0"),
        }
        fields.update(overrides)
        return Event.objects.create(**fields)

    return _make


@pytest.fixture
def make_merchandise(make_event):
    def _make(**overrides) -> Event:
        fields = {
            "name": "Fest T-Shirt",
            "event_type": EventType.MERCHANDISE.value,
            "registration_fee": Decimal("300"),
            "item_type": "T-Shirt",
            "stock_quantity": 10,
            "purchase_limit": 5,
            "variants": [{"name": "size", "options": ["S", "M", "L"]}],
        }
        fields.update(overrides)
        return make_event(**fields)

    return _make


@pytest.fixture
def notifier():
    return create_autospec(Notifier, instance=True)


@pytest.fixture
def services(db, notifier) -> Services:
    return build_services(notifier=notifier)


@pytest.fixture
def authenticate(api_client):
    def _authenticate(account: Account) -> APIClient:
        api_client.credentials(HTTP_X_ACCOUNT_ID=str(account.id))
        return api_client

    return _authenticate
