"""HTTP handlers (views) - handle HTTP concerns only.

Handlers:
- Parse requests and validate input format
- Call services for business logic
- Map domain errors to HTTP responses (via domain_exception_handler)
- Never contain business logic
- Never expose internal error details
"""

from typing import Any
from uuid import UUID

from django.core.cache import cache
from rest_framework import serializers, status
from rest_framework.exceptions import NotAuthenticated
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from events.cache import EVENT_LIST_KEY, cache_timeout, event_detail_key
from events.domain import AccountId, Actor, Eligibility, EventStatus
from events.domain.errors import AccountNotFoundError, ValidationFailedError
from events.handlers.authentication import current_actor
from events.handlers.serializers import (
    BulkDeleteRegistrationsSerializer,
    EventListQuerySerializer,
    EventSerializer,
    EventWriteSerializer,
    MarkAttendanceSerializer,
    PaymentProofSerializer,
    RegisterSerializer,
    RegistrationSerializer,
    ScanSerializer,
    TicketSerializer,
    TrendingEventSerializer,
    VerifyPaymentSerializer,
)
from events.services.container import get_services
from events.services.event_service import parse_event_id
from events.services.registration_service import RegistrationResult


def _validated(
    serializer_class: type[serializers.Serializer], data: Any, partial: bool = False
) -> dict[str, Any]:
    serializer = serializer_class(data=data, partial=partial)
    if not serializer.is_valid():
        fields = sorted(serializer.errors)
        raise ValidationFailedError(f"Invalid input: {', '.join(fields)}", fields)
    return dict(serializer.validated_data)


def _actor(request: Request) -> Actor:
    actor = current_actor(request)
    if actor is None:
        raise NotAuthenticated()
    return actor


def _account_id(raw: str) -> AccountId:
    try:
        return AccountId(UUID(raw))
    except ValueError as exc:
        raise AccountNotFoundError(raw) from exc


def _registration_body(result: RegistrationResult) -> dict[str, Any]:
    return {
        "registration": RegistrationSerializer(result.registration).data,
        "ticket": TicketSerializer(result.ticket).data if result.ticket else None,
    }


class EventListView(APIView):
    """Handler for GET/POST /api/events"""

    def get_permissions(self):
        if self.request.method == "GET":
            return [AllowAny()]
        return [IsAuthenticated()]

    def get(self, request: Request) -> Response:
        actor = current_actor(request)
        # Only the unfiltered public listing is shared between callers.
        cacheable = not request.query_params and (actor is None or actor.is_participant)
        if cacheable:
            cached = cache.get(EVENT_LIST_KEY)
            if cached is not None:
                return Response(cached)

        query = _validated(EventListQuerySerializer, request.query_params)
        page = get_services().events.list_events(
            actor,
            status=EventStatus(query["status"]) if "status" in query else None,
            event_type=query.get("event_type"),
            eligibility=Eligibility(query["eligibility"]) if "eligibility" in query else None,
            organizer_id=query.get("organizer"),
            tags=query.get("tags"),
            search=query.get("search"),
            starts_after=query.get("starts_after"),
            starts_before=query.get("starts_before"),
            page=query["page"],
            page_size=query["page_size"],
        )
        data = {
            "count": page.total,
            "page": page.page,
            "pages": page.pages,
            "results": EventSerializer(page.results, many=True).data,
        }
        if cacheable:
            cache.set(EVENT_LIST_KEY, data, cache_timeout())
        return Response(data)

    def post(self, request: Request) -> Response:
        fields = _validated(EventWriteSerializer, request.data)
        event = get_services().events.create(_actor(request), fields)
        return Response(EventSerializer(event).data, status=status.HTTP_201_CREATED)


class EventTrendingView(APIView):
    """Handler for GET /api/events/trending"""

    permission_classes = [AllowAny]

    def get(self, request: Request) -> Response:
        trending = get_services().events.trending()
        return Response(
            {
                "count": len(trending),
                "results": TrendingEventSerializer(trending, many=True).data,
            }
        )


class EventDetailView(APIView):
    """Handler for GET/PATCH/DELETE /api/events/{event_id}"""

    def get_permissions(self):
        if self.request.method == "GET":
            return [AllowAny()]
        return [IsAuthenticated()]

    def get(self, request: Request, event_id: str) -> Response:
        key = event_detail_key(parse_event_id(event_id))
        cached = cache.get(key)
        if cached is not None:
            return Response(cached)

        event = get_services().events.get_event(event_id, current_actor(request))
        data = EventSerializer(event).data
        if event.status is not EventStatus.DRAFT:
            cache.set(key, data, cache_timeout())
        return Response(data)

    def patch(self, request: Request, event_id: str) -> Response:
        patch = _validated(EventWriteSerializer, request.data, partial=True)
        event = get_services().events.update(event_id, patch, _actor(request))
        return Response(EventSerializer(event).data)

    def delete(self, request: Request, event_id: str) -> Response:
        get_services().events.delete(event_id, _actor(request))
        return Response(status=status.HTTP_204_NO_CONTENT)


class EventPublishView(APIView):
    """Handler for POST /api/events/{event_id}/publish"""

    permission_classes = [IsAuthenticated]

    def post(self, request: Request, event_id: str) -> Response:
        event = get_services().events.publish(event_id, _actor(request))
        return Response(EventSerializer(event).data)


class EventRegisterView(APIView):
    """Handler for POST /api/events/{event_id}/register"""

    permission_classes = [IsAuthenticated]

    def post(self, request: Request, event_id: str) -> Response:
        body = _validated(RegisterSerializer, request.data)
        result = get_services().registrations.register(
            event_id,
            _actor(request),
            form_data=body.get("form_data"),
            merchandise_selection=body.get("merchandise_selection"),
        )
        return Response(_registration_body(result), status=status.HTTP_201_CREATED)


class EventRegistrationsView(APIView):
    """Handler for GET/DELETE /api/events/{event_id}/registrations"""

    permission_classes = [IsAuthenticated]

    def get(self, request: Request, event_id: str) -> Response:
        registrations = get_services().registrations.list_for_event(event_id, _actor(request))
        return Response(RegistrationSerializer(registrations, many=True).data)

    def delete(self, request: Request, event_id: str) -> Response:
        deleted = get_services().registrations.delete_for_event(event_id, _actor(request))
        return Response({"deleted_registrations": deleted})


class EventRegistrationDetailView(APIView):
    """Handler for DELETE /api/events/{event_id}/registrations/{registration_id}"""

    permission_classes = [IsAuthenticated]

    def delete(self, request: Request, event_id: str, registration_id: str) -> Response:
        get_services().registrations.delete(event_id, registration_id, _actor(request))
        return Response(status=status.HTTP_204_NO_CONTENT)


class EventScanView(APIView):
    """Handler for POST /api/events/{event_id}/scan"""

    permission_classes = [IsAuthenticated]

    def post(self, request: Request, event_id: str) -> Response:
        body = _validated(ScanSerializer, request.data)
        result = get_services().tickets.scan(
            event_id,
            _actor(request),
            ticket_id=body.get("ticket_id") or None,
            qr_payload=body.get("qr_payload") or None,
        )
        return Response(
            {
                "ticket": TicketSerializer(result.ticket).data,
                "registration": RegistrationSerializer(result.registration).data,
                "participant_name": result.participant_name,
            }
        )


class RegistrationListView(APIView):
    """Handler for GET /api/registrations"""

    permission_classes = [IsAuthenticated]

    def get(self, request: Request) -> Response:
        registrations = get_services().registrations.list_own(_actor(request))
        return Response(RegistrationSerializer(registrations, many=True).data)


class RegistrationDetailView(APIView):
    """Handler for GET/DELETE /api/registrations/{registration_id}"""

    permission_classes = [IsAuthenticated]

    def get(self, request: Request, registration_id: str) -> Response:
        registration = get_services().registrations.get(registration_id, _actor(request))
        return Response(RegistrationSerializer(registration).data)

    def delete(self, request: Request, registration_id: str) -> Response:
        registration = get_services().registrations.cancel(registration_id, _actor(request))
        return Response(RegistrationSerializer(registration).data)


class RegistrationPaymentView(APIView):
    """Handler for POST /api/registrations/{registration_id}/payment"""

    permission_classes = [IsAuthenticated]

    def post(self, request: Request, registration_id: str) -> Response:
        body = _validated(PaymentProofSerializer, request.data)
        registration = get_services().registrations.upload_payment_proof(
            registration_id, _actor(request), body["payment_proof"]
        )
        return Response(RegistrationSerializer(registration).data)


class RegistrationVerifyPaymentView(APIView):
    """Handler for POST /api/registrations/{registration_id}/verify-payment"""

    permission_classes = [IsAuthenticated]

    def post(self, request: Request, registration_id: str) -> Response:
        body = _validated(VerifyPaymentSerializer, request.data)
        result = get_services().registrations.verify_payment(
            registration_id, body["approved"], _actor(request)
        )
        return Response(_registration_body(result))


class RegistrationRefundView(APIView):
    """Handler for POST /api/registrations/{registration_id}/refund"""

    permission_classes = [IsAuthenticated]

    def post(self, request: Request, registration_id: str) -> Response:
        registration = get_services().registrations.refund(registration_id, _actor(request))
        return Response(RegistrationSerializer(registration).data)


class RegistrationAttendanceView(APIView):
    """Handler for POST /api/registrations/{registration_id}/attendance"""

    permission_classes = [IsAuthenticated]

    def post(self, request: Request, registration_id: str) -> Response:
        body = _validated(MarkAttendanceSerializer, request.data)
        registration = get_services().tickets.mark_attendance(
            registration_id, _actor(request), body["attended"], body.get("note", "")
        )
        return Response(RegistrationSerializer(registration).data)


class TicketListView(APIView):
    """Handler for GET /api/tickets"""

    permission_classes = [IsAuthenticated]

    def get(self, request: Request) -> Response:
        tickets = get_services().tickets.list_own(_actor(request))
        return Response(TicketSerializer(tickets, many=True).data)


class TicketDetailView(APIView):
    """Handler for GET /api/tickets/{ticket_id}"""

    permission_classes = [IsAuthenticated]

    def get(self, request: Request, ticket_id: str) -> Response:
        ticket = get_services().tickets.get(ticket_id, _actor(request))
        return Response(TicketSerializer(ticket).data)


class AdminOrganizerView(APIView):
    """Handler for DELETE /api/admin/organizers/{account_id}"""

    permission_classes = [IsAuthenticated]

    def delete(self, request: Request, account_id: str) -> Response:
        deleted = get_services().cascade.delete_organizer(
            _account_id(account_id), _actor(request)
        )
        return Response({"deleted_events": deleted})


class AdminParticipantView(APIView):
    """Handler for DELETE /api/admin/participants/{account_id}"""

    permission_classes = [IsAuthenticated]

    def delete(self, request: Request, account_id: str) -> Response:
        deleted = get_services().cascade.delete_participant(
            _account_id(account_id), _actor(request)
        )
        return Response({"deleted_registrations": deleted})


class AdminRegistrationBulkDeleteView(APIView):
    """Handler for POST /api/admin/registrations/bulk-delete"""

    permission_classes = [IsAuthenticated]

    def post(self, request: Request) -> Response:
        body = _validated(BulkDeleteRegistrationsSerializer, request.data)
        deleted = get_services().registrations.delete_many(
            body["registration_ids"], _actor(request)
        )
        return Response({"deleted_registrations": deleted})
