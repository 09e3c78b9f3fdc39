"""
Full endpoint test suite for /bookings.

Testing strategy:
  - Identity and admin role are overridden via conftest.build_app()
  - CRUD, workflow and audit singletons are patched per-test with AsyncMock (no DB)
  - Redis invalidation is patched so no real connection is attempted
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from banquet_bookings.deps import get_current_user
from banquet_bookings.exceptions import (
    AuthorizationError,
    ConflictError,
    PersistenceError,
    ValidationError,
)
from banquet_bookings.models import AdminRole
from banquet_bookings.scopes import BookingScope
from banquet_bookings.workflow import STALE_STATE_MESSAGE

from .factories import (
    ADMIN1_ID,
    BOOKING_ID,
    CUSTOMER_ID,
    DOCUMENT_ID,
    HALL_ID,
    audit_response,
    booking_create_payload,
    booking_model,
    booking_response,
    document_response,
    make_admin,
    make_customer,
)

CRUD_PATH = "banquet_bookings.routers.bookings.booking_crud"
WORKFLOW_PATH = "banquet_bookings.routers.bookings.booking_workflow"
AUDIT_PATH = "banquet_bookings.routers.bookings.audit_trail"
INVALIDATE_PATH = "banquet_bookings.routers.bookings.invalidate_slots_cache"


def _result(**overrides) -> MagicMock:
    result = MagicMock()
    result.booking = booking_model(**overrides)
    return result


# ---------------------------------------------------------------------------
# GET /bookings
# ---------------------------------------------------------------------------


class TestListBookings:
    def test_customer_sees_own_bookings(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.list_bookings = AsyncMock(return_value=[booking_response()])
            resp = customer_client.get("/bookings/")
        assert resp.status_code == 200
        data = resp.json()
        assert len(data) == 1
        assert data[0]["id"] == str(BOOKING_ID)
        _, kwargs = mock_crud.list_bookings.call_args
        assert kwargs.get("user_id") == CUSTOMER_ID

    def test_admin_sees_all_bookings(self, client_factory):
        client = client_factory(make_admin(AdminRole.ADMIN2), AdminRole.ADMIN2)
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.list_bookings = AsyncMock(return_value=[booking_response()])
            resp = client.get("/bookings/")
        assert resp.status_code == 200
        _, kwargs = mock_crud.list_bookings.call_args
        assert kwargs.get("user_id") is None

    def test_status_filter_forwarded(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.list_bookings = AsyncMock(return_value=[])
            resp = customer_client.get("/bookings/", params={"status": "payment_pending"})
        assert resp.status_code == 200
        _, kwargs = mock_crud.list_bookings.call_args
        assert kwargs["filters"].status == "payment_pending"

    def test_missing_auth_headers_returns_422(self, anon_app):
        with TestClient(anon_app) as c:
            resp = c.get("/bookings/")
        assert resp.status_code == 422

    def test_no_scope_and_no_role_returns_403(self, client_factory):
        client = client_factory(make_customer(scopes=[]))
        resp = client.get("/bookings/")
        assert resp.status_code == 403


# ---------------------------------------------------------------------------
# POST /bookings
# ---------------------------------------------------------------------------


class TestCreateBooking:
    def test_success_returns_201_and_clears_slots(self, customer_client):
        with (
            patch(CRUD_PATH) as mock_crud,
            patch(INVALIDATE_PATH, new_callable=AsyncMock) as mock_invalidate,
        ):
            mock_crud.create_booking = AsyncMock(return_value=booking_model())
            resp = customer_client.post("/bookings/", json=booking_create_payload())
        assert resp.status_code == 201
        assert resp.json()["status"] == "pending"
        user_id, payload = mock_crud.create_booking.call_args.args
        assert user_id == CUSTOMER_ID
        assert payload.customer_name == "Asha Rao"
        mock_invalidate.assert_awaited_once()
        assert list(mock_invalidate.call_args.args[0]) == [HALL_ID]

    def test_without_write_scope_returns_403(self, client_factory):
        client = client_factory(make_customer(scopes=[BookingScope.READ]))
        resp = client.post("/bookings/", json=booking_create_payload())
        assert resp.status_code == 403
        assert BookingScope.WRITE in resp.json()["detail"]

    def test_end_before_start_returns_422(self, customer_client):
        payload = booking_create_payload(end_datetime="2026-06-01T09:00:00+00:00")
        resp = customer_client.post("/bookings/", json=payload)
        assert resp.status_code == 422

    def test_naive_datetime_returns_422(self, customer_client):
        payload = booking_create_payload(start_datetime="2026-06-01T10:00:00")
        resp = customer_client.post("/bookings/", json=payload)
        assert resp.status_code == 422

    def test_no_halls_returns_422(self, customer_client):
        resp = customer_client.post("/bookings/", json=booking_create_payload(hall_ids=[]))
        assert resp.status_code == 422

    def test_conflict_returns_409_error_body(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.create_booking = AsyncMock(
                side_effect=ConflictError("Booking conflicts with an existing booking.")
            )
            resp = customer_client.post("/bookings/", json=booking_create_payload())
        assert resp.status_code == 409
        assert resp.json() == {"error": "Booking conflicts with an existing booking."}

    def test_too_short_returns_422_error_body(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.create_booking = AsyncMock(
                side_effect=ValidationError("Minimum booking is 4 hours.")
            )
            resp = customer_client.post("/bookings/", json=booking_create_payload())
        assert resp.status_code == 422
        assert resp.json()["error"] == "Minimum booking is 4 hours."


# ---------------------------------------------------------------------------
# GET / PATCH /bookings/{id}
# ---------------------------------------------------------------------------


class TestGetBooking:
    def test_customer_lookup_is_scoped_to_owner(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.get_booking = AsyncMock(return_value=booking_model())
            resp = customer_client.get(f"/bookings/{BOOKING_ID}")
        assert resp.status_code == 200
        _, kwargs = mock_crud.get_booking.call_args
        assert kwargs.get("user_id") == CUSTOMER_ID

    def test_other_customers_booking_is_404(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.get_booking = AsyncMock(return_value=None)
            resp = customer_client.get(f"/bookings/{BOOKING_ID}")
        assert resp.status_code == 404

    def test_admin_lookup_is_unscoped(self, super_admin_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.get_booking = AsyncMock(return_value=booking_model())
            resp = super_admin_client.get(f"/bookings/{BOOKING_ID}")
        assert resp.status_code == 200
        mock_crud.get_booking.assert_awaited_once_with(BOOKING_ID)


class TestUpdateBookingDetails:
    def test_owner_edit(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.update_customer_details = AsyncMock(
                return_value=booking_model(guest_count=120)
            )
            resp = customer_client.patch(
                f"/bookings/{BOOKING_ID}", json={"guest_count": 120}
            )
        assert resp.status_code == 200
        assert resp.json()["guest_count"] == 120

    def test_not_found(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.update_customer_details = AsyncMock(return_value=None)
            resp = customer_client.patch(f"/bookings/{BOOKING_ID}", json={"guest_count": 1})
        assert resp.status_code == 404

    def test_locked_after_review_started(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.update_customer_details = AsyncMock(
                side_effect=ValidationError("Booking details can only be changed ...")
            )
            resp = customer_client.patch(f"/bookings/{BOOKING_ID}", json={"guest_count": 1})
        assert resp.status_code == 422
        assert "error" in resp.json()


# ---------------------------------------------------------------------------
# POST /bookings/{id}/payment
# ---------------------------------------------------------------------------


class TestPayment:
    def test_records_payment(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.record_payment = AsyncMock(
                return_value=booking_model(
                    status="payment_pending", payment_status="paid", advance_amount="5000.00"
                )
            )
            resp = customer_client.post(
                f"/bookings/{BOOKING_ID}/payment", json={"amount": "5000.00"}
            )
        assert resp.status_code == 200
        assert resp.json()["payment_status"] == "paid"
        assert resp.json()["status"] == "payment_pending"

    def test_without_pay_scope_returns_403(self, client_factory):
        client = client_factory(
            make_customer(scopes=[BookingScope.READ, BookingScope.WRITE])
        )
        resp = client.post(f"/bookings/{BOOKING_ID}/payment", json={"amount": "5000"})
        assert resp.status_code == 403

    def test_not_found(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.record_payment = AsyncMock(return_value=None)
            resp = customer_client.post(
                f"/bookings/{BOOKING_ID}/payment", json={"amount": "5000"}
            )
        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class TestDocuments:
    def test_upload(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.add_document = AsyncMock(return_value=document_response())
            resp = customer_client.post(
                f"/bookings/{BOOKING_ID}/documents",
                json={
                    "document_type": "passport",
                    "document_name": "passport.pdf",
                    "file_url": "https://storage.example.com/booking-documents/passport.pdf",
                },
            )
        assert resp.status_code == 201
        assert resp.json()["status"] == "pending"

    def test_unknown_document_type_returns_422(self, customer_client):
        resp = customer_client.post(
            f"/bookings/{BOOKING_ID}/documents",
            json={"document_type": "library_card", "document_name": "x", "file_url": "y"},
        )
        assert resp.status_code == 422

    def test_list_checks_visibility(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.get_booking = AsyncMock(return_value=None)
            resp = customer_client.get(f"/bookings/{BOOKING_ID}/documents")
        assert resp.status_code == 404
        mock_crud.list_documents.assert_not_called()

    def test_admin1_verifies_document(self, client_factory):
        client = client_factory(make_admin(AdminRole.ADMIN1), AdminRole.ADMIN1)
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.review_document = AsyncMock(
                return_value=document_response(status="verified", verified_by=str(ADMIN1_ID))
            )
            resp = client.patch(
                f"/bookings/{BOOKING_ID}/documents/{DOCUMENT_ID}",
                json={"status": "verified"},
            )
        assert resp.status_code == 200
        assert resp.json()["status"] == "verified"
        mock_crud.review_document.assert_awaited_once_with(
            BOOKING_ID, DOCUMENT_ID, "verified", ADMIN1_ID
        )

    def test_admin2_cannot_verify_documents(self, client_factory):
        client = client_factory(make_admin(AdminRole.ADMIN2), AdminRole.ADMIN2)
        resp = client.patch(
            f"/bookings/{BOOKING_ID}/documents/{DOCUMENT_ID}",
            json={"status": "verified"},
        )
        assert resp.status_code == 403
        assert "error" in resp.json()

    def test_customer_cannot_verify_documents(self, customer_client):
        resp = customer_client.patch(
            f"/bookings/{BOOKING_ID}/documents/{DOCUMENT_ID}",
            json={"status": "verified"},
        )
        assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Workflow actions
# ---------------------------------------------------------------------------


class TestAllowedActions:
    def test_customer_gets_empty_list(self, customer_client):
        resp = customer_client.get(f"/bookings/{BOOKING_ID}/actions")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_admin1_on_pending(self, client_factory):
        client = client_factory(make_admin(AdminRole.ADMIN1), AdminRole.ADMIN1)
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.get_booking = AsyncMock(return_value=booking_model())
            resp = client.get(f"/bookings/{BOOKING_ID}/actions")
        assert resp.status_code == 200
        assert set(resp.json()) == {"approve", "request_changes", "reject"}


class TestApplyAction:
    def test_admin1_approves(self, client_factory):
        client = client_factory(make_admin(AdminRole.ADMIN1), AdminRole.ADMIN1)
        with patch(WORKFLOW_PATH) as mock_wf:
            mock_wf.apply_action = AsyncMock(
                return_value=_result(status="document_review", version=2)
            )
            resp = client.post(
                f"/bookings/{BOOKING_ID}/actions",
                json={"action": "approve", "notes": "docs ok", "version": 1},
            )
        assert resp.status_code == 200
        assert resp.json()["status"] == "document_review"
        args, kwargs = mock_wf.apply_action.call_args
        assert args[0] == BOOKING_ID
        assert args[1].action == "approve"
        assert args[1].notes == "docs ok"
        assert kwargs["actor_id"] == ADMIN1_ID
        assert kwargs["acting_role"] == AdminRole.ADMIN1
        assert kwargs["expected_version"] == 1

    def test_request_payment_requires_amount(self, client_factory):
        client = client_factory(make_admin(AdminRole.ADMIN2), AdminRole.ADMIN2)
        resp = client.post(
            f"/bookings/{BOOKING_ID}/actions", json={"action": "request_payment"}
        )
        assert resp.status_code == 422

    def test_sub_cent_amount_returns_422(self, client_factory):
        client = client_factory(make_admin(AdminRole.ADMIN2), AdminRole.ADMIN2)
        with patch(WORKFLOW_PATH) as mock_wf:
            mock_wf.apply_action = AsyncMock()
            resp = client.post(
                f"/bookings/{BOOKING_ID}/actions",
                json={"action": "request_payment", "advance_amount": "0.004"},
            )
        assert resp.status_code == 422
        mock_wf.apply_action.assert_not_awaited()

    def test_unknown_action_returns_422(self, client_factory):
        client = client_factory(make_admin(AdminRole.ADMIN1), AdminRole.ADMIN1)
        resp = client.post(f"/bookings/{BOOKING_ID}/actions", json={"action": "cancel"})
        assert resp.status_code == 422

    def test_extra_fields_rejected(self, client_factory):
        client = client_factory(make_admin(AdminRole.ADMIN1), AdminRole.ADMIN1)
        resp = client.post(
            f"/bookings/{BOOKING_ID}/actions",
            json={"action": "approve", "advance_amount": "100"},
        )
        assert resp.status_code == 422

    def test_wrong_role_returns_403_error_body(self, client_factory):
        client = client_factory(make_admin(AdminRole.ADMIN2), AdminRole.ADMIN2)
        message = "Role 'admin2' cannot approve a booking in status 'pending'."
        with patch(WORKFLOW_PATH) as mock_wf:
            mock_wf.apply_action = AsyncMock(side_effect=AuthorizationError(message))
            resp = client.post(f"/bookings/{BOOKING_ID}/actions", json={"action": "approve"})
        assert resp.status_code == 403
        assert resp.json() == {"error": message}

    def test_customer_is_refused_by_workflow(self, customer_client):
        with patch(WORKFLOW_PATH) as mock_wf:
            mock_wf.apply_action = AsyncMock(
                side_effect=AuthorizationError("An admin role is required to act on bookings.")
            )
            resp = customer_client.post(
                f"/bookings/{BOOKING_ID}/actions", json={"action": "approve"}
            )
        assert resp.status_code == 403
        _, kwargs = mock_wf.apply_action.call_args
        assert kwargs["acting_role"] is None

    def test_stale_state_returns_409(self, client_factory):
        client = client_factory(make_admin(AdminRole.ADMIN1), AdminRole.ADMIN1)
        with patch(WORKFLOW_PATH) as mock_wf:
            mock_wf.apply_action = AsyncMock(side_effect=ConflictError(STALE_STATE_MESSAGE))
            resp = client.post(
                f"/bookings/{BOOKING_ID}/actions",
                json={"action": "reject", "notes": "no", "version": 1},
            )
        assert resp.status_code == 409
        assert resp.json() == {"error": STALE_STATE_MESSAGE}

    def test_persistence_failure_returns_503(self, client_factory):
        client = client_factory(make_admin(AdminRole.ADMIN1), AdminRole.ADMIN1)
        with patch(WORKFLOW_PATH) as mock_wf:
            mock_wf.apply_action = AsyncMock(
                side_effect=PersistenceError("The booking could not be updated.")
            )
            resp = client.post(f"/bookings/{BOOKING_ID}/actions", json={"action": "approve"})
        assert resp.status_code == 503

    def test_reject_frees_hall_slots(self, client_factory):
        client = client_factory(make_admin(AdminRole.ADMIN1), AdminRole.ADMIN1)
        with (
            patch(WORKFLOW_PATH) as mock_wf,
            patch(INVALIDATE_PATH, new_callable=AsyncMock) as mock_invalidate,
        ):
            mock_wf.apply_action = AsyncMock(return_value=_result(status="rejected"))
            resp = client.post(
                f"/bookings/{BOOKING_ID}/actions",
                json={"action": "reject", "notes": "duplicate"},
            )
        assert resp.status_code == 200
        mock_invalidate.assert_awaited_once()

    def test_approve_keeps_slots_cached(self, client_factory):
        client = client_factory(make_admin(AdminRole.ADMIN1), AdminRole.ADMIN1)
        with (
            patch(WORKFLOW_PATH) as mock_wf,
            patch(INVALIDATE_PATH, new_callable=AsyncMock) as mock_invalidate,
        ):
            mock_wf.apply_action = AsyncMock(return_value=_result(status="document_review"))
            client.post(f"/bookings/{BOOKING_ID}/actions", json={"action": "approve"})
        mock_invalidate.assert_not_awaited()


# ---------------------------------------------------------------------------
# GET /bookings/{id}/audit
# ---------------------------------------------------------------------------


class TestAuditTrail:
    def test_admin_reads_history(self, super_admin_client):
        with patch(CRUD_PATH) as mock_crud, patch(AUDIT_PATH) as mock_audit:
            mock_crud.get_booking = AsyncMock(return_value=booking_model())
            mock_audit.list_for = AsyncMock(return_value=[audit_response()])
            resp = super_admin_client.get(f"/bookings/{BOOKING_ID}/audit")
        assert resp.status_code == 200
        data = resp.json()
        assert data[0]["action"] == "Documents approved"
        assert data[0]["performed_by_role"] == "admin1"
        mock_audit.list_for.assert_awaited_once_with(BOOKING_ID)

    def test_customer_cannot_read_someone_elses_history(self, customer_client):
        with patch(CRUD_PATH) as mock_crud, patch(AUDIT_PATH) as mock_audit:
            mock_crud.get_booking = AsyncMock(return_value=None)
            resp = customer_client.get(f"/bookings/{BOOKING_ID}/audit")
        assert resp.status_code == 404
        mock_audit.list_for.assert_not_called()


# ---------------------------------------------------------------------------
# Real role resolution
# ---------------------------------------------------------------------------


class TestActingRoleResolution:
    def test_role_comes_from_directory(self, anon_app):
        async def _admin():
            return make_admin(AdminRole.ADMIN3)

        anon_app.dependency_overrides[get_current_user] = _admin
        with (
            patch("banquet_bookings.deps.role_directory") as mock_dir,
            patch(CRUD_PATH) as mock_crud,
        ):
            mock_dir.role_of = AsyncMock(return_value=AdminRole.ADMIN3)
            mock_crud.get_booking = AsyncMock(
                return_value=booking_model(status="final_approval")
            )
            with TestClient(anon_app) as c:
                resp = c.get(f"/bookings/{BOOKING_ID}/actions")
        assert resp.status_code == 200
        assert set(resp.json()) == {"approve", "reject"}
