"""
HTTP-level tests for the API surface: auth guards, request validation and the
mapping of service errors to status codes. Services are mocked; no MongoDB needed.
"""
import os
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from models import MessageLog
from services.document_generator import DocumentSourceNotFound
from services.translation_pipeline import TranslationFailed, OrderFileNotFound

ORDER = {
    "order_id": "order-1",
    "order_number": "TRANS-1-ABC",
    "user_id": "user-1",
    "clerk_id": "user_customer",
    "status": "paid",
    "amount": 50,
}


# ============================================
# Public
# ============================================

def test_health_and_root(client):
    assert client.get("/api/health").json()["status"] == "healthy"
    assert client.get("/api").json()["service"] == "Translator Axis"


def test_languages_start_with_auto_detect(client):
    languages = client.get("/api/languages").json()["languages"]
    assert languages[0] == {"code": "auto", "name": "Auto-detect"}
    assert len(languages) == 26
    assert {"code": "de", "name": "German"} in languages


def test_clerk_status_reports_key_mismatch(client):
    with patch.dict(os.environ, {"CLERK_PUBLISHABLE_KEY": "pk_live_abc123456789", "CLERK_SECRET_KEY": "sk_test_xyz"}):
        response = client.get("/api/clerk-status")
    body = response.json()
    assert response.headers["cache-control"].startswith("no-store")
    assert body["status"] == "production"
    assert body["publishable_key"]["prefix"] == "pk_live_ab..."
    assert body["secret_key_matches"] is False


def test_clerk_status_not_configured(client):
    with patch.dict(os.environ, {"CLERK_PUBLISHABLE_KEY": "", "CLERK_SECRET_KEY": ""}):
        body = client.get("/api/clerk-status").json()
    assert body["status"] == "not-configured"
    assert body["has_secret_key"] is False


# ============================================
# Auth guards
# ============================================

def test_user_routes_require_session(client):
    assert client.get("/api/orders").status_code == 401
    assert client.post("/api/users/sync", json={"email": "a@example.com"}).status_code == 401


def test_admin_routes_require_session(client):
    assert client.get("/api/admin/orders").status_code == 401


def test_admin_routes_reject_regular_users(client):
    db = MagicMock()
    db.users.find_one = AsyncMock(return_value={"user_id": "user-1", "role": "user"})
    with patch("middleware.verify_session_token", AsyncMock(return_value={"sub": "user_customer"})), \
            patch("middleware.database.get_db", return_value=db):
        response = client.get("/api/admin/orders", headers={"Authorization": "Bearer token"})
    assert response.status_code == 403
    assert response.json()["detail"] == "Admin access required"


def test_admin_guard_allows_admins(client):
    db = MagicMock()
    db.users.find_one = AsyncMock(return_value={"user_id": "admin-1", "role": "admin"})
    with patch("middleware.verify_session_token", AsyncMock(return_value={"sub": "user_admin"})), \
            patch("middleware.database.get_db", return_value=db), \
            patch("routes.admin_orders.get_all_orders", AsyncMock(return_value=[ORDER])):
        response = client.get("/api/admin/orders", headers={"Authorization": "Bearer token"})
    assert response.status_code == 200
    assert response.json()["total"] == 1


# ============================================
# Orders (customer)
# ============================================

ORDER_BODY = {
    "files": [{
        "file_name": "a.pdf", "file_url": "/api/files/1", "storage_id": "1",
        "file_size": 100, "page_count": 1, "file_type": "application/pdf",
    }],
    "total_pages": 1,
    "service_type": "certified",
    "source_language": "auto",
    "target_language": "en",
}


def test_place_order_rejects_unsupported_language(customer_client):
    response = customer_client.post("/api/orders", json={**ORDER_BODY, "target_language": "xx"})
    assert response.status_code == 400


def test_place_order_rejects_auto_target(customer_client):
    response = customer_client.post("/api/orders", json={**ORDER_BODY, "target_language": "auto"})
    assert response.status_code == 400


def test_place_order_ignores_client_amount(customer_client):
    create = AsyncMock(return_value={**ORDER, "status": "pending"})
    with patch("routes.orders.create_order", create):
        response = customer_client.post("/api/orders", json={**ORDER_BODY, "amount": 0.01})
    assert response.status_code == 200
    assert response.json()["order_id"] == "order-1"
    assert "amount" not in create.call_args.kwargs
    assert create.call_args.kwargs["clerk_id"] == "user_customer"


def test_other_users_orders_are_not_found(customer_client):
    with patch("routes.orders.get_order_by_id", AsyncMock(return_value=None)):
        assert customer_client.get("/api/orders/order-9").status_code == 404


def test_customers_cannot_mark_orders_paid(customer_client):
    response = customer_client.post(
        "/api/orders/order-1/payment", json={"payment_id": "P1", "payment_status": "COMPLETED"},
    )
    assert response.status_code == 404


def test_place_order_page_mismatch_is_rejected(customer_client):
    create = AsyncMock(side_effect=ValueError("total_pages (1) does not match the uploaded files (60)"))
    with patch("routes.orders.create_order", create):
        response = customer_client.post("/api/orders", json=ORDER_BODY)
    assert response.status_code == 400
    assert "does not match" in response.json()["detail"]


# ============================================
# Files
# ============================================

def test_upload_rejects_disallowed_type(customer_client):
    response = customer_client.post(
        "/api/files/upload", files={"file": ("notes.txt", b"hello", "text/plain")},
    )
    assert response.status_code == 400


def test_upload_keeps_counted_pages_with_the_file(customer_client):
    stored = MagicMock()
    stored.url = "/api/files/f1"
    stored.file_id = "f1"
    store = AsyncMock(return_value=stored)
    with patch("routes.files.upload_order_file", store):
        response = customer_client.post(
            "/api/files/upload", files={"file": ("scan.png", b"\x89PNG", "image/png")},
        )
    assert response.status_code == 200
    assert response.json()["page_count"] == 1
    assert store.call_args.kwargs["page_count"] == 1
    assert store.call_args.kwargs["uploaded_by"] == "user-1"


def test_count_pages_for_image(customer_client):
    response = customer_client.post(
        "/api/files/count-pages", files={"file": ("scan.png", b"\x89PNG", "image/png")},
    )
    assert response.json() == {"file_name": "scan.png", "page_count": 1}


# ============================================
# Admin orders
# ============================================

def test_status_change_maps_errors(admin_client):
    with patch("routes.admin_orders.update_order_status",
               AsyncMock(side_effect=ValueError("Invalid transition: pending -> completed"))):
        response = admin_client.patch("/api/admin/orders/order-1/status", json={"status": "completed"})
    assert response.status_code == 400

    with patch("routes.admin_orders.update_order_status", AsyncMock(side_effect=ValueError("Order not found"))):
        response = admin_client.patch("/api/admin/orders/order-1/status", json={"status": "completed"})
    assert response.status_code == 404

    assert admin_client.patch("/api/admin/orders/order-1/status", json={"status": "shipped"}).status_code == 422


def test_allowed_transitions(admin_client):
    with patch("routes.admin_orders.get_order", AsyncMock(return_value=ORDER)):
        body = admin_client.get("/api/admin/orders/order-1/allowed-transitions").json()
    assert body == {"current_status": "paid", "allowed_transitions": ["processing", "completed", "cancelled"]}


def test_quote_must_be_positive(admin_client):
    assert admin_client.post("/api/admin/orders/order-1/quote", json={"amount": 0}).status_code == 422


def test_translated_upload_needs_matching_original_names(admin_client):
    response = admin_client.post(
        "/api/admin/orders/order-1/translated-files",
        files=[
            ("files", ("a.pdf", b"%PDF", "application/pdf")),
            ("files", ("b.pdf", b"%PDF", "application/pdf")),
        ],
        data={"original_file_names": ["a-de.pdf"]},
    )
    assert response.status_code == 400


def test_translated_upload_checks_order_status_before_storing(admin_client):
    store = AsyncMock()
    with patch("routes.admin_orders.get_order", AsyncMock(return_value={**ORDER, "status": "pending"})), \
            patch("routes.admin_orders.upload_order_file", store):
        response = admin_client.post(
            "/api/admin/orders/order-1/translated-files",
            files=[("files", ("a.pdf", b"%PDF", "application/pdf"))],
            data={"original_file_names": ["a.pdf"]},
        )
    assert response.status_code == 400
    assert "status pending" in response.json()["detail"]
    store.assert_not_awaited()


def test_admin_places_order_for_client_by_user_id(admin_client):
    create = AsyncMock(return_value={**ORDER, "status": "pending"})
    with patch("routes.admin_orders.get_user_by_id", AsyncMock(return_value={"user_id": "user-7", "clerk_id": "temp_1_abc"})), \
            patch("routes.admin_orders.create_order", create):
        response = admin_client.post("/api/admin/orders", json={**ORDER_BODY, "user_id": "user-7"})
    assert response.status_code == 200
    assert response.json()["order_id"] == "order-1"
    assert create.call_args.kwargs["clerk_id"] == "temp_1_abc"
    assert create.call_args.kwargs["created_by"]["user_id"] == "admin-1"


def test_admin_order_needs_a_client(admin_client):
    response = admin_client.post("/api/admin/orders", json=ORDER_BODY)
    assert response.status_code == 400

    with patch("routes.admin_orders.get_user_by_id", AsyncMock(return_value=None)):
        response = admin_client.post("/api/admin/orders", json={**ORDER_BODY, "user_id": "ghost"})
    assert response.status_code == 404


# ============================================
# Users
# ============================================

def test_user_details_reject_malformed_email(admin_client):
    update = AsyncMock()
    with patch("routes.users.update_user_details", update):
        response = admin_client.patch("/api/admin/users/user-1", json={"email": "not-an-email"})
    assert response.status_code == 422
    update.assert_not_awaited()


def test_user_details_email_in_use(admin_client):
    with patch("routes.users.update_user_details",
               AsyncMock(side_effect=ValueError("Email already in use by another user"))):
        response = admin_client.patch("/api/admin/users/user-1", json={"email": "john@example.com"})
    assert response.status_code == 400


    assert response.status_code == 400


# ============================================
# Translation + documents
# ============================================

def test_translate_failure_returns_details(admin_client):
    with patch("routes.translate.run_translation", AsyncMock(side_effect=TranslationFailed("quota exceeded"))):
        response = admin_client.post("/api/admin/translate", json={"order_id": "order-1", "file_name": "a.pdf"})
    assert response.status_code == 500
    assert response.json()["detail"] == {"error": "Translation failed", "details": "quota exceeded"}


def test_translate_unknown_file(admin_client):
    with patch("routes.translate.run_translation", AsyncMock(side_effect=OrderFileNotFound("Order or file not found"))):
        response = admin_client.post("/api/admin/translate", json={"order_id": "order-1", "file_name": "a.pdf"})
    assert response.status_code == 404


def test_combined_document_without_approved_translations(admin_client):
    with patch("routes.documents.generate_combined_document",
               AsyncMock(side_effect=DocumentSourceNotFound("No approved translations found for the specified files"))):
        response = admin_client.post(
            "/api/admin/documents/combined", json={"order_id": "order-1", "file_names": ["a.pdf"]},
        )
    assert response.status_code == 404


def test_document_format_is_validated(admin_client):
    response = admin_client.post("/api/admin/documents/translated", json={
        "translation_id": "tr-1", "order_id": "order-1", "file_name": "a.pdf", "format": "odt",
    })
    assert response.status_code == 422


# ============================================
# Payments, notifications, jobs, settings
# ============================================

def test_paypal_create_order_for_missing_order(customer_client):
    with patch("routes.paypal.paypal_service.create_order", AsyncMock(side_effect=LookupError("Order not found"))):
        response = customer_client.post("/api/paypal/create-order", json={"order_id": "order-9"})
    assert response.status_code == 404


def test_order_confirmation_email(customer_client):
    send = AsyncMock(return_value=MessageLog(recipient="customer@example.com", subject="s", status="sent"))
    with patch("routes.notifications.get_order", AsyncMock(return_value=ORDER)), \
            patch("routes.notifications.email_service.send_order_email", send):
        response = customer_client.post(
            "/api/notifications/order-confirmation", json={"order_id": "order-1", "kind": "paid_confirmation"},
        )
    assert response.status_code == 200
    assert send.call_args.kwargs["customer_name"] == "Jane Customer"


def test_run_unknown_job(admin_client):
    assert admin_client.post("/api/admin/jobs/nightly-cleanup/run").status_code == 404


def test_run_payment_reminders_now(admin_client):
    runner = AsyncMock(return_value={"message": "Payment reminders sent: 2, final notices sent: 0", "count": 2})
    with patch.dict("job_runner.JOB_RUNNERS", {"payment-reminders": runner}), \
            patch("routes.admin_jobs.create_audit_log", AsyncMock()):
        response = admin_client.post("/api/admin/jobs/payment-reminders/run")
    assert response.status_code == 200
    assert response.json()["count"] == 2


def test_pricing_rejects_negative_rates(admin_client):
    response = admin_client.put("/api/admin/settings/pricing", json={
        "certified": {"base_per_page": -1, "rush_extra_per_page": 25},
        "general": {"base_per_page": 15, "rush_extra_per_page": 15},
    })
    assert response.status_code == 422


def test_order_confirmation_to_invalid_address(customer_client):
    send = AsyncMock(side_effect=ValueError("Invalid recipient email: customer@"))
    with patch("routes.notifications.get_order", AsyncMock(return_value=ORDER)), \
            patch("routes.notifications.email_service.send_order_email", send):
        response = customer_client.post(
            "/api/notifications/order-confirmation", json={"order_id": "order-1", "kind": "payment_required"},
        )
    assert response.status_code == 400
