"""Django signals for cache invalidation.

Signals only keep the catalog cache fresh; deletions of dependent rows are
done explicitly by the CascadeCoordinator. Queryset ``update()`` calls do not
fire signals, so the event store invalidates after its counter updates.
"""

from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from events.cache import invalidate_event_cache
from events.models import Event, Registration


@receiver([post_save, post_delete], sender=Event)
def invalidate_event_cache_on_change(sender, instance, **kwargs):
    """Invalidate caches when an event is saved or deleted."""
    invalidate_event_cache(instance.pk)


@receiver([post_save, post_delete], sender=Registration)
def invalidate_event_cache_on_registration_change(sender, instance, **kwargs):
    """Invalidate the owning event's caches when a registration is saved or deleted."""
    invalidate_event_cache(instance.event_id)
