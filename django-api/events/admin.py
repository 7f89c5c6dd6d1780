from django.contrib import admin

from events.models import Account, Event, Registration, Ticket


class RegistrationInline(admin.TabularInline):
    model = Registration
    extra = 0
    fields = ["participant", "status", "payment_status", "attended"]
    readonly_fields = fields
    can_delete = False


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    list_display = ["email", "role", "participant_type", "organizer_name", "created_at"]
    list_filter = ["role", "participant_type"]
    search_fields = ["email", "first_name", "last_name", "organizer_name"]


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = [
        "name",
        "organizer",
        "event_type",
        "status",
        "current_registrations",
        "registration_limit",
        "start_date",
    ]
    list_filter = ["status", "event_type", "eligibility"]
    search_fields = ["name", "description"]
    # Counters are only written through the event store's conditional updates.
    readonly_fields = ["current_registrations", "total_attendance", "published_at"]
    inlines = [RegistrationInline]


@admin.register(Registration)
class RegistrationAdmin(admin.ModelAdmin):
    list_display = ["event", "participant", "status", "payment_status", "attended", "created_at"]
    list_filter = ["status", "payment_status", "event"]
    readonly_fields = ["attendance_log"]


@admin.register(Ticket)
class TicketAdmin(admin.ModelAdmin):
    list_display = ["ticket_id", "event", "participant", "status", "expires_at", "scanned_at"]
    list_filter = ["status", "event"]
    search_fields = ["ticket_id"]
