"""Cache keys for the public event catalog."""

from uuid import UUID

from django.conf import settings
from django.core.cache import cache
from django.db import transaction

from events.domain import EventId

EVENT_LIST_KEY = "events:list"


def event_detail_key(event_id: EventId | UUID) -> str:
    """Key for one event; ids are canonical UUIDs so every spelling shares it."""
    return f"events:{event_id}"


def cache_timeout() -> int:
    return getattr(settings, "EVENTS_CACHE_TIMEOUT", 60)


def invalidate_event_cache(event_id: EventId | UUID) -> None:
    """Drop the list and detail entries touched by a change to one event.

    The keys are dropped right away and again once the surrounding
    transaction commits, so a read that refilled them from pre-commit rows
    does not outlive the commit.
    """
    keys = [EVENT_LIST_KEY, event_detail_key(event_id)]
    cache.delete_many(keys)
    transaction.on_commit(lambda: cache.delete_many(keys))
