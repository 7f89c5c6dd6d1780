from events.handlers.views import (
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

__all__ = [
    "AdminOrganizerView",
    "AdminParticipantView",
    "AdminRegistrationBulkDeleteView",
    "EventDetailView",
    "EventListView",
    "EventPublishView",
    "EventRegisterView",
    "EventRegistrationDetailView",
    "EventRegistrationsView",
    "EventScanView",
    "EventTrendingView",
    "RegistrationAttendanceView",
    "RegistrationDetailView",
    "RegistrationListView",
    "RegistrationPaymentView",
    "RegistrationRefundView",
    "RegistrationVerifyPaymentView",
    "TicketDetailView",
    "TicketListView",
]
