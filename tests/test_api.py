"""HTTP tests: routing, bearer auth and error mapping."""

import uuid
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from mealticket.api.deps import get_audit_emitter, get_clock, get_ticket_codec
from mealticket.core.security import create_access_token
from mealticket.db.session import get_db
from mealticket.main import app
from tests.conftest import ADMIN, OTHER_STUDENT, STAFF, STUDENT

API = "/api/v1"


def auth(principal):
    token = create_access_token(principal.user_id, principal.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(session_factory, clock, codec, audit):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_ticket_codec] = lambda: codec
    app.dependency_overrides[get_audit_emitter] = lambda: audit
    yield TestClient(app)
    app.dependency_overrides.clear()


def _reserve(client, slot_id, principal=STUDENT, capacity=1):
    return client.post(
        f"{API}/reservations/",
        json={"time_slot_id": str(slot_id), "capacity": capacity, "amount": "8.50"},
        headers=auth(principal),
    )


class TestAuth:
    def test_missing_token(self, client):
        response = client.get(f"{API}/reservations/")
        assert response.status_code == 401

    def test_bad_token(self, client):
        response = client.get(f"{API}/reservations/", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_anonymous_reservation_attempt_is_audited(self, client, make_slot, audit_sink, slot_usage):
        slot_id = make_slot()

        response = client.post(
            f"{API}/reservations/",
            json={"time_slot_id": str(slot_id), "capacity": 1, "amount": "8.50"},
        )

        assert response.status_code == 401
        assert response.json()["error"] == "UNAUTHENTICATED"
        assert response.headers["WWW-Authenticate"] == "Bearer"
        record = audit_sink.records[-1]
        assert record.action == "create_reservation"
        assert record.outcome == "failure"
        assert record.actor_id == "system"
        assert record.error_code == "UNAUTHENTICATED"
        assert slot_usage(slot_id) == 0

    def test_invalid_token_scan_attempt_is_audited(self, client, audit_sink):
        response = client.post(
            f"{API}/staff/tickets/validate",
            json={"qr_token": "whatever"},
            headers={"Authorization": "Bearer forged"},
        )

        assert response.status_code == 401
        assert audit_sink.actions("failure") == ["validate_qr_code"]

    def test_me_requires_token(self, client):
        assert client.get(f"{API}/me/").status_code == 401

    def test_me(self, client):
        response = client.get(f"{API}/me/", headers=auth(STAFF))
        assert response.status_code == 200
        assert response.json() == {"user_id": STAFF.user_id, "role": "staff"}


class TestReservationFlow:
    def test_reserve_pay_issue_and_scan(self, client, make_slot, students):
        slot_id = make_slot(capacity=3)

        created = _reserve(client, slot_id)
        assert created.status_code == 201
        reservation_id = created.json()["reservation_id"]
        assert created.json()["status"] == "pending"

        confirmed = client.post(
            f"{API}/reservations/{reservation_id}/confirm",
            json={"payment_reference": "PAY-1"},
            headers=auth(STUDENT),
        )
        assert confirmed.status_code == 200
        assert confirmed.json()["status"] == "confirmed"

        ticket = client.post(f"{API}/reservations/{reservation_id}/ticket", headers=auth(STUDENT))
        assert ticket.status_code == 200
        token = ticket.json()["qr_token"]

        first = client.post(f"{API}/staff/tickets/validate", json={"qr_token": token}, headers=auth(STAFF))
        assert first.status_code == 200
        body = first.json()
        assert body["success"] is True
        assert body["outcome"] == "used_now"
        assert body["user_info"]["name"] == "Amira Ben Salah"
        assert body["user_info"]["group_name"] == "DSI-21"
        assert body["reservation_info"]["reservation_id"] == reservation_id

        second = client.post(f"{API}/staff/tickets/validate", json={"qr_token": token}, headers=auth(ADMIN))
        assert second.status_code == 200
        assert second.json()["success"] is False
        assert second.json()["outcome"] == "already_used"
        assert second.json()["used_at"] == body["used_at"]

        detail = client.get(f"{API}/reservations/{reservation_id}", headers=auth(STUDENT))
        assert detail.json()["status"] == "used"
        assert detail.json()["has_ticket"] is True

    def test_scan_without_profile_shows_placeholder_name(self, client, make_slot):
        reservation_id = _reserve(client, make_slot()).json()["reservation_id"]
        client.post(
            f"{API}/reservations/{reservation_id}/confirm",
            json={"payment_reference": "PAY-2"},
            headers=auth(STUDENT),
        )
        token = client.post(f"{API}/reservations/{reservation_id}/ticket", headers=auth(STUDENT)).json()["qr_token"]

        body = client.post(f"{API}/staff/tickets/validate", json={"qr_token": token}, headers=auth(STAFF)).json()

        assert body["success"] is True
        assert body["user_info"]["name"] == "Unknown Student"
        assert body["user_info"]["email"] == ""

    def test_list_mine(self, client, make_slot):
        _reserve(client, make_slot())
        _reserve(client, make_slot(starts_in=timedelta(days=2)), principal=OTHER_STUDENT)

        response = client.get(f"{API}/reservations/", headers=auth(STUDENT))

        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["data"][0]["user_id"] == STUDENT.user_id

    def test_cancel_and_modify(self, client, make_slot):
        first_slot = make_slot()
        second_slot = make_slot(starts_in=timedelta(days=2))
        reservation_id = _reserve(client, first_slot).json()["reservation_id"]

        moved = client.patch(
            f"{API}/reservations/{reservation_id}/time-slot",
            json={"new_time_slot_id": str(second_slot)},
            headers=auth(STUDENT),
        )
        assert moved.status_code == 200
        assert moved.json()["new_time_slot"]["id"] == str(second_slot)

        cancelled = client.patch(
            f"{API}/reservations/{reservation_id}/cancel",
            json={"reason": "Exam"},
            headers=auth(STUDENT),
        )
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"

    def test_garbage_ticket_is_a_rejection_not_an_error(self, client):
        response = client.post(f"{API}/staff/tickets/validate", json={"qr_token": "garbage"}, headers=auth(STAFF))

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["outcome"] == "invalid_token"


class TestErrorMapping:
    def test_permission_denied_is_403(self, client):
        response = client.post(f"{API}/staff/tickets/validate", json={"qr_token": "x"}, headers=auth(STUDENT))

        assert response.status_code == 403
        assert response.json()["error"] == "PERMISSION_DENIED"
        assert response.json()["kind"] == "permission_denied"

    def test_not_found_is_404(self, client):
        response = client.get(f"{API}/reservations/{uuid.uuid4()}", headers=auth(STUDENT))

        assert response.status_code == 404
        assert response.json()["error"] == "RESERVATION_NOT_FOUND"

    def test_slot_full_is_409(self, client, make_slot):
        slot_id = make_slot(capacity=1)
        _reserve(client, slot_id)

        response = _reserve(client, slot_id, principal=OTHER_STUDENT)

        assert response.status_code == 409
        assert response.json()["error"] == "SLOT_FULL"
        assert response.json()["kind"] == "conflict"

    def test_too_late_is_409(self, client, make_slot):
        reservation_id = _reserve(client, make_slot(starts_in=timedelta(minutes=90))).json()["reservation_id"]

        response = client.patch(f"{API}/reservations/{reservation_id}/cancel", headers=auth(STUDENT))

        assert response.status_code == 409
        assert response.json()["error"] == "TOO_LATE_TO_CANCEL"
        assert response.json()["kind"] == "invalid_state"

    def test_invalid_argument_is_400(self, client, make_slot):
        response = _reserve(client, make_slot(), capacity=0)

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_ARGUMENT"

    def test_malformed_body_is_422(self, client):
        response = client.post(
            f"{API}/reservations/", json={"time_slot_id": "nope", "amount": "8.50"}, headers=auth(STUDENT)
        )
        assert response.status_code == 422


class TestTimeSlots:
    def test_admin_generates_and_students_list(self, client, clock):
        day = (clock() + timedelta(days=1)).date().isoformat()

        generated = client.post(f"{API}/admin/time-slots/generate", json={"date": day}, headers=auth(ADMIN))
        assert generated.status_code == 201
        assert generated.json()["created"] == 7

        listed = client.get(f"{API}/time-slots/", headers=auth(STUDENT))
        assert listed.status_code == 200
        assert len(listed.json()) == 7
        assert listed.json()[0]["remaining_capacity"] == 30

    def test_students_cannot_generate(self, client):
        response = client.post(
            f"{API}/admin/time-slots/generate", json={"date": "2025-03-11"}, headers=auth(STUDENT)
        )
        assert response.status_code == 403
