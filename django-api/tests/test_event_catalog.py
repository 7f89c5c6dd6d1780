"""Integration tests for the event catalog and lifecycle endpoints.

Run with: pytest tests/test_event_catalog.py -v
"""

import uuid
from datetime import timedelta

import pytest
from django.core.cache import cache
from django.utils import timezone
from freezegun import freeze_time
from rest_framework.exceptions import NotAuthenticated
from rest_framework.request import Request
from rest_framework.test import APIClient, APIRequestFactory

from events.cache import EVENT_LIST_KEY, event_detail_key
from events.domain import EventStatus, Role
from events.handlers.views import _actor
from events.models import Event, Registration


def event_payload(**overrides):
    now = timezone.now()
    payload = {
        "name": "Robo Wars",
        "description": "Bring your bot",
        "registration_deadline": (now + timedelta(days=3)).isoformat(),
        "start_date": (now + timedelta(days=5)).isoformat(),
        "end_date": (now + timedelta(days=6)).isoformat(),
        "registration_limit": 50,
        "registration_fee": "150.00",
        "tags": ["tech", "robotics"],
    }
    payload.update(overrides)
    return payload


@pytest.mark.django_db
class TestEventList:
    """Tests for GET /api/events"""

    def test_list_events_returns_published_only(self, api_client: APIClient, make_event):
        """Anonymous callers never see drafts."""
        published = make_event()
        make_event(name="Secret", status=EventStatus.DRAFT.value)

        response = api_client.get("/api/events")

        assert response.status_code == 200
        assert response.data["count"] == 1
        assert response.data["results"][0]["id"] == str(published.id)

    def test_list_events_empty_catalog(self, api_client: APIClient):
        """Given no events, returns empty list."""
        response = api_client.get("/api/events")
        assert response.status_code == 200
        assert response.data == {"count": 0, "page": 1, "pages": 0, "results": []}

    def test_organizer_sees_own_drafts(self, authenticate, organizer, make_event):
        make_event(status=EventStatus.DRAFT.value)
        response = authenticate(organizer).get("/api/events")
        assert response.data["count"] == 1
        assert response.data["results"][0]["status"] == "draft"

    def test_filter_by_tag(self, api_client: APIClient, make_event):
        make_event(tags=["music"])
        make_event(name="Code Golf", tags=["tech"])
        response = api_client.get("/api/events", {"tags": "tech"})
        assert [e["name"] for e in response.data["results"]] == ["Code Golf"]

    def test_filter_by_any_of_several_tags(self, api_client: APIClient, make_event):
        make_event(name="Jam", tags=["music"])
        make_event(name="Code Golf", tags=["tech"])
        make_event(name="Quiz", tags=["trivia"])
        response = api_client.get("/api/events", {"tags": "music, tech"})
        assert sorted(e["name"] for e in response.data["results"]) == ["Code Golf", "Jam"]

    def test_search_matches_name_description_and_organizer(
        self, api_client: APIClient, make_event, organizer
    ):
        make_event(name="Robo Wars", description="Bring your bot")
        make_event(name="Open Mic", description="Poetry and ROBOTICS talk")
        make_event(name="Dance Off", description="Crews battle")

        by_text = api_client.get("/api/events", {"search": "robo"})
        by_organizer = api_client.get("/api/events", {"search": organizer.organizer_name})

        assert sorted(e["name"] for e in by_text.data["results"]) == ["Open Mic", "Robo Wars"]
        assert by_organizer.data["count"] == 3

    def test_filter_by_eligibility(self, api_client: APIClient, make_event):
        make_event(name="Insiders", eligibility="IIIT-only")
        make_event(name="Everyone")
        response = api_client.get("/api/events", {"eligibility": "IIIT-only"})
        assert [e["name"] for e in response.data["results"]] == ["Insiders"]

    def test_filter_by_start_date_range(self, api_client: APIClient, make_event):
        now = timezone.now()
        make_event(
            name="Soon",
            registration_deadline=now + timedelta(days=1),
            start_date=now + timedelta(days=2),
            end_date=now + timedelta(days=3),
        )
        make_event(name="Later")
        response = api_client.get(
            "/api/events",
            {
                "starts_after": (now + timedelta(days=1)).isoformat(),
                "starts_before": (now + timedelta(days=4)).isoformat(),
            },
        )
        assert [e["name"] for e in response.data["results"]] == ["Soon"]

    def test_pagination(self, api_client: APIClient, make_event):
        for index in range(5):
            make_event(name=f"Event {index}")
        response = api_client.get("/api/events", {"page": 2, "page_size": 2})
        assert response.data["count"] == 5
        assert response.data["page"] == 2
        assert response.data["pages"] == 3
        assert len(response.data["results"]) == 2

    def test_invalid_query_parameter(self, api_client: APIClient):
        response = api_client.get("/api/events", {"eligibility": "Martians"})
        assert response.status_code == 400
        assert response.data["fields"] == ["eligibility"]

    def test_list_events_cached_response(self, api_client: APIClient, make_event):
        """Given cached data, returns from cache."""
        make_event()
        api_client.get("/api/events")
        assert cache.get(EVENT_LIST_KEY) is not None

        cache.set(EVENT_LIST_KEY, {"count": 0, "results": [], "cached": True})
        response = api_client.get("/api/events")
        assert response.data["cached"] is True


@pytest.mark.django_db
class TestTrending:
    """Tests for GET /api/events/trending"""

    def test_ranks_by_registrations_in_last_day(
        self, api_client: APIClient, make_event, make_account
    ):
        quiet = make_event(name="Quiet")
        busy = make_event(name="Busy")
        stale = make_event(name="Stale")
        for event in (busy, busy, quiet):
            Registration.objects.create(event=event, participant=make_account(Role.PARTICIPANT))
        with freeze_time(timezone.now() - timedelta(days=2)):
            for _ in range(3):
                Registration.objects.create(
                    event=stale, participant=make_account(Role.PARTICIPANT)
                )

        response = api_client.get("/api/events/trending")

        assert response.status_code == 200
        assert [(e["name"], e["recent_registrations"]) for e in response.data["results"]] == [
            ("Busy", 2),
            ("Quiet", 1),
        ]

    def test_drafts_never_trend(self, api_client: APIClient, make_event, participant):
        draft = make_event(status=EventStatus.DRAFT.value)
        Registration.objects.create(event=draft, participant=participant)
        assert api_client.get("/api/events/trending").data == {"count": 0, "results": []}


@pytest.mark.django_db
class TestEventDetail:
    """Tests for GET /api/events/{id}"""

    def test_get_event_returns_details(self, api_client: APIClient, make_event):
        """Given event exists, returns event details."""
        event = make_event(registration_limit=10)
        response = api_client.get(f"/api/events/{event.id}")
        assert response.status_code == 200
        assert response.data["name"] == "Battle of Bands"
        assert response.data["registration_limit"] == 10
        assert response.data["registration_fee"] == "0.00"
        assert cache.get(event_detail_key(event.id)) is not None

    def test_get_event_not_found(self, api_client: APIClient):
        """Given event does not exist, returns 404."""
        response = api_client.get(f"/api/events/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.data["code"] == "EVENT_NOT_FOUND"

    def test_get_event_invalid_id_format(self, api_client: APIClient):
        """Given invalid UUID, returns 400."""
        response = api_client.get("/api/events/not-a-uuid")
        assert response.status_code == 400
        assert response.data["code"] == "INVALID_EVENT_ID"

    def test_draft_is_forbidden_to_public(self, api_client: APIClient, make_event):
        event = make_event(status=EventStatus.DRAFT.value)
        response = api_client.get(f"/api/events/{event.id}")
        assert response.status_code == 403


@pytest.mark.django_db
class TestEventWrite:
    """Tests for creating, publishing and editing events."""

    def test_organizer_creates_draft(self, authenticate, organizer):
        response = authenticate(organizer).post("/api/events", event_payload(), format="json")
        assert response.status_code == 201
        assert response.data["status"] == "draft"
        assert response.data["organizer_id"] == str(organizer.id)
        assert response.data["tags"] == ["tech", "robotics"]

    def test_participant_cannot_create(self, authenticate, participant):
        response = authenticate(participant).post("/api/events", event_payload(), format="json")
        assert response.status_code == 403
        assert response.data["code"] == "FORBIDDEN"

    def test_anonymous_create_is_unauthenticated(self, api_client: APIClient):
        response = api_client.post("/api/events", event_payload(), format="json")
        assert response.status_code == 401

    def test_end_before_start_rejected(self, authenticate, organizer):
        now = timezone.now()
        payload = event_payload(
            start_date=(now + timedelta(days=5)).isoformat(),
            end_date=(now + timedelta(days=4)).isoformat(),
        )
        response = authenticate(organizer).post("/api/events", payload, format="json")
        assert response.status_code == 400
        assert response.data["fields"] == ["end_date"]

    def test_merchandise_requires_stock(self, authenticate, organizer):
        payload = event_payload(
            event_type="Merchandise", merchandise={"item_type": "Hoodie", "stock_quantity": 0}
        )
        response = authenticate(organizer).post("/api/events", payload, format="json")
        assert response.status_code == 400
        assert response.data["code"] == "VALIDATION_FAILED"

    def test_publish_then_edit_rules(self, authenticate, organizer):
        client = authenticate(organizer)
        created = client.post("/api/events", event_payload(), format="json").data

        published = client.post(f"/api/events/{created['id']}/publish")
        assert published.status_code == 200
        assert published.data["status"] == "published"
        assert published.data["published_at"] is not None

        renamed = client.patch(f"/api/events/{created['id']}", {"name": "X"}, format="json")
        assert renamed.status_code == 409
        assert renamed.data["code"] == "IMMUTABLE"

        described = client.patch(
            f"/api/events/{created['id']}", {"description": "Updated"}, format="json"
        )
        assert described.status_code == 200
        assert described.data["description"] == "Updated"

    def test_publish_incomplete_draft_lists_fields(self, authenticate, organizer):
        client = authenticate(organizer)
        created = client.post("/api/events", {"name": "Bare"}, format="json").data
        response = client.post(f"/api/events/{created['id']}/publish")
        assert response.status_code == 400
        assert response.data["fields"] == [
            "description",
            "registration_deadline",
            "start_date",
            "end_date",
        ]

    def test_other_organizer_cannot_edit(self, authenticate, make_account, make_event):
        event = make_event()
        stranger = make_account(Role.ORGANIZER)
        response = authenticate(stranger).patch(
            f"/api/events/{event.id}", {"description": "mine"}, format="json"
        )
        assert response.status_code == 403

    def test_status_walks_forward_only(self, authenticate, organizer, make_event):
        event = make_event()
        client = authenticate(organizer)
        assert (
            client.patch(f"/api/events/{event.id}", {"status": "ongoing"}, format="json").status_code
            == 200
        )
        response = client.patch(f"/api/events/{event.id}", {"status": "published"}, format="json")
        assert response.status_code == 409
        assert response.data["code"] == "INVALID_TRANSITION"

    def test_ongoing_event_rejects_edits(self, authenticate, organizer, make_event):
        event = make_event(status=EventStatus.ONGOING.value)
        response = authenticate(organizer).patch(
            f"/api/events/{event.id}", {"description": "late"}, format="json"
        )
        assert response.status_code == 409


@pytest.mark.django_db
class TestEventDelete:
    def test_delete_draft(self, authenticate, organizer, make_event):
        event = make_event(status=EventStatus.DRAFT.value)
        response = authenticate(organizer).delete(f"/api/events/{event.id}")
        assert response.status_code == 204
        assert not Event.objects.filter(pk=event.pk).exists()

    def test_delete_published_with_registrations_conflicts(
        self, authenticate, organizer, participant, make_event
    ):
        event = make_event()
        authenticate(participant).post(f"/api/events/{event.id}/register", {}, format="json")

        response = authenticate(organizer).delete(f"/api/events/{event.id}")

        assert response.status_code == 409
        assert Event.objects.filter(pk=event.pk).exists()


@pytest.mark.django_db
class TestRegistrationEndpoints:
    """Tests for the registration and ticket routes."""

    def test_register_for_free_event_returns_ticket(self, authenticate, participant, make_event):
        event = make_event()
        response = authenticate(participant).post(
            f"/api/events/{event.id}/register", {}, format="json"
        )
        assert response.status_code == 201
        assert response.data["registration"]["status"] == "confirmed"
        assert response.data["ticket"]["ticket_id"].startswith("FEL-")

        tickets = authenticate(participant).get("/api/tickets")
        assert len(tickets.data) == 1

    def test_register_twice_conflicts(self, authenticate, participant, make_event):
        event = make_event()
        client = authenticate(participant)
        client.post(f"/api/events/{event.id}/register", {}, format="json")
        response = client.post(f"/api/events/{event.id}/register", {}, format="json")
        assert response.status_code == 409
        assert response.data["code"] == "DUPLICATE_REGISTRATION"

    def test_register_after_deadline(self, authenticate, participant, make_event):
        event = make_event(registration_deadline=timezone.now() - timedelta(minutes=1))
        response = authenticate(participant).post(
            f"/api/events/{event.id}/register", {}, format="json"
        )
        assert response.status_code == 422
        assert response.data["message"] == "Registration deadline has passed"

    def test_scan_and_rescan(self, authenticate, organizer, participant, make_event):
        event = make_event()
        ticket = (
            authenticate(participant)
            .post(f"/api/events/{event.id}/register", {}, format="json")
            .data["ticket"]
        )
        client = authenticate(organizer)

        first = client.post(
            f"/api/events/{event.id}/scan", {"qr_payload": ticket["qr_payload"]}, format="json"
        )
        second = client.post(
            f"/api/events/{event.id}/scan", {"ticket_id": ticket["ticket_id"]}, format="json"
        )

        assert first.status_code == 200
        assert first.data["ticket"]["status"] == "used"
        assert first.data["registration"]["attendance"]["attended"] is True
        assert second.status_code == 409
        assert second.data["code"] == "ALREADY_USED"
        assert second.data["scanned_at"] is not None

    def test_payment_flow(self, authenticate, organizer, participant, make_event):
        event = make_event(registration_fee="200.00")
        registration = (
            authenticate(participant)
            .post(f"/api/events/{event.id}/register", {}, format="json")
            .data["registration"]
        )
        assert registration["status"] == "pending"

        uploaded = authenticate(participant).post(
            f"/api/registrations/{registration['id']}/payment",
            {"payment_proof": "https://files.fest.test/proof.png"},
            format="json",
        )
        assert uploaded.data["payment_proof_status"] == "pending"

        verified = authenticate(organizer).post(
            f"/api/registrations/{registration['id']}/verify-payment",
            {"approved": True},
            format="json",
        )
        assert verified.status_code == 200
        assert verified.data["registration"]["payment_status"] == "paid"
        assert verified.data["registration"]["amount_paid"] == "200.00"
        assert verified.data["ticket"] is not None

        listed = authenticate(organizer).get(f"/api/events/{event.id}/registrations")
        assert [r["id"] for r in listed.data] == [registration["id"]]

    def test_cancel_registration(self, authenticate, participant, make_event):
        event = make_event()
        client = authenticate(participant)
        registration = client.post(f"/api/events/{event.id}/register", {}, format="json").data[
            "registration"
        ]

        response = client.delete(f"/api/registrations/{registration['id']}")

        assert response.status_code == 200
        assert response.data["status"] == "cancelled"
        event.refresh_from_db()
        assert event.current_registrations == 0

    def test_admin_removes_participant(self, authenticate, admin_account, participant, make_event):
        event = make_event()
        authenticate(participant).post(f"/api/events/{event.id}/register", {}, format="json")

        response = authenticate(admin_account).delete(f"/api/admin/participants/{participant.id}")

        assert response.status_code == 200
        assert response.data == {"deleted_registrations": 1}
        event.refresh_from_db()
        assert event.current_registrations == 0


class TestActorResolution:
    def test_missing_account_is_not_authenticated(self):
        """Views that need a caller refuse a request without one."""
        request = Request(APIRequestFactory().get("/api/registrations"))
        with pytest.raises(NotAuthenticated):
            _actor(request)
