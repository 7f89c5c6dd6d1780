"""Tests for cache behavior.

Run with: pytest tests/test_cache.py -v
"""

import pytest
from django.core.cache import cache

from events.cache import EVENT_LIST_KEY, event_detail_key
from events.domain import EventId
from events.models import Registration
from events.stores.django_store import DjangoAccountStore, DjangoEventStore


def prime(event_id) -> None:
    cache.set(EVENT_LIST_KEY, {"results": []})
    cache.set(event_detail_key(event_id), {"id": str(event_id)})


@pytest.mark.django_db
class TestCacheInvalidation:
    """Tests for cache invalidation on model changes."""

    def test_event_save_invalidates_list_cache(self, make_event):
        """Saving an event invalidates the events:list cache key."""
        event = make_event()
        prime(event.id)
        event.description = "Changed"
        event.save()
        assert cache.get(EVENT_LIST_KEY) is None

    def test_event_save_invalidates_detail_cache(self, make_event):
        """Saving an event invalidates the events:{id} cache key."""
        event = make_event()
        prime(event.id)
        event.save()
        assert cache.get(event_detail_key(event.id)) is None

    def test_registration_save_invalidates_event_cache(self, make_event, participant):
        """Saving a registration invalidates its event's cache keys."""
        event = make_event()
        prime(event.id)
        Registration.objects.create(event=event, participant=participant)
        assert cache.get(event_detail_key(event.id)) is None

    def test_counter_update_invalidates_detail_cache(self, make_event):
        """Queryset updates bypass signals, so the store invalidates explicitly."""
        event = make_event()
        prime(event.id)
        assert DjangoEventStore().try_increment_registrations(EventId(event.pk))
        assert cache.get(event_detail_key(event.id)) is None
        assert cache.get(EVENT_LIST_KEY) is None


@pytest.mark.django_db
class TestCachedEndpoints:
    def test_detail_reflects_new_registration(self, api_client, services, participant, make_event):
        event = make_event()
        first = api_client.get(f"/api/events/{event.id}")
        assert first.data["current_registrations"] == 0

        services.registrations.register(str(event.id), DjangoAccountStore.to_actor(participant))

        second = api_client.get(f"/api/events/{event.id}")
        assert second.data["current_registrations"] == 1

    def test_drafts_are_not_cached(self, authenticate, organizer, make_event):
        event = make_event(status="draft")
        authenticate(organizer).get(f"/api/events/{event.id}")
        assert cache.get(event_detail_key(event.id)) is None

    def test_uppercase_id_shares_detail_cache(self, api_client, services, participant, make_event):
        """Every spelling of an event id maps to one cache entry."""
        event = make_event()
        url = f"/api/events/{str(event.id).upper()}"
        assert api_client.get(url).data["current_registrations"] == 0

        services.registrations.register(str(event.id), DjangoAccountStore.to_actor(participant))

        assert api_client.get(url).data["current_registrations"] == 1
        assert cache.get(event_detail_key(event.id)) is not None


@pytest.mark.django_db
class TestInvalidationAfterCommit:
    def test_entries_refilled_inside_transaction_are_dropped_on_commit(
        self, make_event, django_capture_on_commit_callbacks
    ):
        event = make_event()
        with django_capture_on_commit_callbacks(execute=True):
            assert DjangoEventStore().try_increment_registrations(EventId(event.pk))
            # A concurrent reader refills the cache before the commit.
            prime(event.id)
            assert cache.get(event_detail_key(event.id)) is not None

        assert cache.get(event_detail_key(event.id)) is None
        assert cache.get(EVENT_LIST_KEY) is None
