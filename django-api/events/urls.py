from django.urls import path

from events.handlers import (
    AdminOrganizerView,
    AdminParticipantView,
    AdminRegistrationBulkDeleteView,
    EventDetailView,
    EventListView,
    EventPublishView,
    EventRegisterView,
    EventRegistrationDetailView,
    EventRegistrationsView,
    EventScanView,
    EventTrendingView,
    RegistrationAttendanceView,
    RegistrationDetailView,
    RegistrationListView,
    RegistrationPaymentView,
    RegistrationRefundView,
    RegistrationVerifyPaymentView,
    TicketDetailView,
    TicketListView,
)

urlpatterns = [
    path("events", EventListView.as_view(), name="event-list"),
    path("events/trending", EventTrendingView.as_view(), name="event-trending"),
    path("events/<str:event_id>", EventDetailView.as_view(), name="event-detail"),
    path("events/<str:event_id>/publish", EventPublishView.as_view(), name="event-publish"),
    path("events/<str:event_id>/register", EventRegisterView.as_view(), name="event-register"),
    path(
        "events/<str:event_id>/registrations",
        EventRegistrationsView.as_view(),
        name="event-registrations",
    ),
    path(
        "events/<str:event_id>/registrations/<str:registration_id>",
        EventRegistrationDetailView.as_view(),
        name="event-registration-detail",
    ),
    path("events/<str:event_id>/scan", EventScanView.as_view(), name="event-scan"),
    path("registrations", RegistrationListView.as_view(), name="registration-list"),
    path(
        "registrations/<str:registration_id>",
        RegistrationDetailView.as_view(),
        name="registration-detail",
    ),
    path(
        "registrations/<str:registration_id>/payment",
        RegistrationPaymentView.as_view(),
        name="registration-payment",
    ),
    path(
        "registrations/<str:registration_id>/verify-payment",
        RegistrationVerifyPaymentView.as_view(),
        name="registration-verify-payment",
    ),
    path(
        "registrations/<str:registration_id>/refund",
        RegistrationRefundView.as_view(),
        name="registration-refund",
    ),
    path(
        "registrations/<str:registration_id>/attendance",
        RegistrationAttendanceView.as_view(),
        name="registration-attendance",
    ),
    path("tickets", TicketListView.as_view(), name="ticket-list"),
    path("tickets/<str:ticket_id>", TicketDetailView.as_view(), name="ticket-detail"),
    path(
        "admin/organizers/<str:account_id>",
        AdminOrganizerView.as_view(),
        name="admin-organizer",
    ),
    path(
        "admin/participants/<str:account_id>",
        AdminParticipantView.as_view(),
        name="admin-participant",
    ),
    path(
        "admin/registrations/bulk-delete",
        AdminRegistrationBulkDeleteView.as_view(),
        name="admin-registration-bulk-delete",
    ),
]
