# tests/test_admin_routes.py
# -*- coding: utf-8 -*-
from datetime import timedelta

from edupay_app.gateways import StandardStatus
from edupay_app.models import RefundRequest
from edupay_app.models.base import utcnow
from edupay_app.services.reconciliation import apply_gateway_status
from edupay_app.services.refunds import request_refund


def test_admin_routes_block_non_admin(logged_client_user, db_session):
    assert logged_client_user.get("/admin/coupons").status_code == 403


def test_admin_routes_require_login(client, db_session):
    assert client.get("/admin/refunds").status_code == 401


def test_admin_creates_and_lists_coupons(logged_client_admin, db_session):
    r = logged_client_admin.post("/admin/coupons", json={"code": "black", "discount_type": "PERCENTAGE", "discount_value": 30})
    assert r.status_code == 201
    assert r.get_json()["code"] == "BLACK"

    r = logged_client_admin.post("/admin/coupons", json={"code": "BLACK", "discount_type": "PERCENTAGE", "discount_value": 10})
    assert r.status_code == 409

    r = logged_client_admin.post("/admin/coupons", json={"code": "X", "discount_type": "PERCENTAGE"})
    assert r.status_code == 400

    codes = [c["code"] for c in logged_client_admin.get("/admin/coupons").get_json()]
    assert codes == ["BLACK"]


def test_admin_refund_queue(logged_client_admin, db_session, pending_payment, fake_gateway):
    apply_gateway_status(pending_payment.id, StandardStatus.APPROVED, source="test")
    refund = request_refund(pending_payment.id, pending_payment.user_id, "Curso incompleto").value

    queue = logged_client_admin.get("/admin/refunds?status=pending").get_json()
    assert [x["id"] for x in queue] == [refund.id]

    r = logged_client_admin.post(f"/admin/refunds/{refund.id}/approve")
    assert r.status_code == 200
    assert r.get_json()["status"] == "APPROVED"

    r = logged_client_admin.post(f"/admin/refunds/{refund.id}/process")
    assert r.get_json()["status"] == "PROCESSED"
    assert len(fake_gateway.refunds) == 1

    assert logged_client_admin.post(f"/admin/refunds/{refund.id}/reject", json={"notes": "tarde"}).status_code == 422


def test_admin_reject_refund(logged_client_admin, db_session, pending_payment):
    apply_gateway_status(pending_payment.id, StandardStatus.APPROVED, source="test")
    refund = request_refund(pending_payment.id, pending_payment.user_id, "Curso incompleto").value
    r = logged_client_admin.post(f"/admin/refunds/{refund.id}/reject", json={"notes": "Fora da política"})
    assert r.get_json()["status"] == "REJECTED"
    db_session.expire_all()
    assert db_session.get(RefundRequest, refund.id).notes == "Fora da política"


def test_admin_payment_override_and_stuck_list(logged_client_admin, db_session, make_payment, student, course):
    p = make_payment(student, course)
    r = logged_client_admin.post(f"/admin/payments/{p.id}/status", json={"status": "COMPLETED", "note": "pix no extrato"})
    assert r.status_code == 200
    assert r.get_json()["status"] == "COMPLETED"

    r = logged_client_admin.post(f"/admin/payments/{p.id}/status", json={"status": "REFUNDED"})
    assert r.status_code == 400

    old = make_payment(student, course, created_at=utcnow() - timedelta(days=5))
    stuck = logged_client_admin.get("/admin/payments/stuck").get_json()
    assert [s["id"] for s in stuck] == [old.id]


def test_admin_verifies_instructor(logged_client_admin, db_session, make_user):
    u = make_user("INSTRUCTOR", full_name="Carlos Dias", document_type="CPF", document_number="39053344705",
                  pix_key="carlos@test.com")
    r = logged_client_admin.post(f"/admin/instructors/{u.id}/verify")
    assert r.status_code == 200
    assert r.get_json()["verified"] is True

    incomplete = make_user("INSTRUCTOR")
    assert logged_client_admin.post(f"/admin/instructors/{incomplete.id}/verify").status_code == 422


def test_admin_releases_balances(logged_client_admin, db_session):
    r = logged_client_admin.post("/admin/ledger/release")
    assert r.get_json() == {"released": 0}


def test_admin_settings(logged_client_admin, db_session):
    r = logged_client_admin.put("/admin/settings", json={"PLATFORM_FEE_PERCENTAGE": "15", "REFUND_DAYS_LIMIT": 10})
    assert r.status_code == 200
    data = r.get_json()
    assert data["PLATFORM_FEE_PERCENTAGE"] == "15"
    assert data["REFUND_DAYS_LIMIT"] == "10"

    assert logged_client_admin.put("/admin/settings", json={"PLATFORM_FEE_PERCENTAGE": "150"}).status_code == 400
    assert logged_client_admin.put("/admin/settings", json={"MIN_PAYOUT_AMOUNT": "abc"}).status_code == 400
    assert logged_client_admin.put("/admin/settings", json={"OUTRA": "1"}).status_code == 400


def test_admin_updates_and_deactivates_coupon(logged_client_admin, db_session, make_coupon):
    c = make_coupon("FERIAS", "PERCENTAGE", "10")
    r = logged_client_admin.put(f"/admin/coupons/{c.id}", json={"discount_type": "FLAT_RATE", "discount_value": "25"})
    assert r.status_code == 200
    assert r.get_json()["discount_type"] == "FLAT_RATE"
    assert r.get_json()["discount_value"] == "25.00"

    assert logged_client_admin.put(f"/admin/coupons/{c.id}", json={"discount_value": "-1"}).status_code == 400
    assert logged_client_admin.put("/admin/coupons/9999", json={"description": "x"}).status_code == 404

    r = logged_client_admin.delete(f"/admin/coupons/{c.id}")
    assert r.get_json()["is_active"] is False
    assert logged_client_admin.get("/admin/coupons").get_json()[0]["is_active"] is False
