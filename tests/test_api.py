"""
HTTP surface tests.

Domain errors map onto status codes in one place (borderdesk.main); these
tests pin that mapping and the shape of the bodies the dashboard relies on.
"""
from datetime import timedelta

from borderdesk.rbac import ADMIN_REQUIRED_MESSAGE, AUTHENTICATION_REQUIRED_MESSAGE
from borderdesk.services.auth import AuthService

from conftest import auth_headers, make_application, make_verification

LONG_JUSTIFICATION = "Customer presented the original passport at the counter"


class TestAuthentication:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_missing_token(self, client):
        response = client.get("/api/applications")
        assert response.status_code == 401
        assert response.json()["detail"] == AUTHENTICATION_REQUIRED_MESSAGE

    def test_garbage_token(self, client):
        response = client.get("/api/applications", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_expired_token(self, client, staff):
        token = AuthService.create_access_token(staff, expires_delta=timedelta(minutes=-5))
        response = client.get("/api/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_me(self, client, staff):
        response = client.get("/api/me", headers=auth_headers(staff))
        assert response.status_code == 200
        assert response.json() == {
            "user_id": "staff-1",
            "user_name": "Sam Staff",
            "role": "staff",
            "is_admin": False,
        }

    def test_permissions(self, client, staff, admin):
        response = client.get("/api/me/permissions", headers=auth_headers(staff))
        permissions = response.json()["permissions"]
        assert permissions["verification"] == ["approve", "reject", "view"]
        assert permissions["audit"] == []

        response = client.get("/api/me/permissions", headers=auth_headers(admin))
        assert "override" in response.json()["permissions"]["verification"]


class TestApplicationsApi:
    def _payload(self, **overrides):
        payload = {
            "customer_name": "Lim Wei Jie",
            "customer_email": "weijie@example.com",
            "route_origin": "Johor Bahru",
            "route_destination": "Singapore",
            "travel_start": "2026-12-01",
            "travel_end": "2026-12-03",
            "total_price_cents": 12000,
        }
        payload.update(overrides)
        return payload

    def test_create_and_get(self, client, admin):
        response = client.post("/api/applications", json=self._payload(), headers=auth_headers(admin))
        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending"
        assert body["status_label"] == "Submitted"
        assert body["workflow_stage"] == 1

        response = client.get(f"/api/applications/{body['id']}", headers=auth_headers(admin))
        assert response.json()["tracking_id"] == body["tracking_id"]

    def test_invalid_payload(self, client, admin):
        response = client.post(
            "/api/applications", json=self._payload(customer_email="nope"), headers=auth_headers(admin)
        )
        assert response.status_code == 422

    def test_travel_dates_out_of_order(self, client, admin):
        response = client.post(
            "/api/applications", json=self._payload(travel_end="2026-11-01"), headers=auth_headers(admin)
        )
        assert response.status_code == 400

    def test_staff_create_is_forbidden(self, client, staff):
        response = client.post("/api/applications", json=self._payload(), headers=auth_headers(staff))
        assert response.status_code == 403

    def test_not_found(self, client, admin):
        response = client.get("/api/applications/9999", headers=auth_headers(admin))
        assert response.status_code == 404

    def test_missing_requirements_are_listed(self, client, db, admin):
        application = make_application(db, status="approved")
        response = client.post(
            f"/api/applications/{application.id}/transition",
            json={"to_status": "completed"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 422
        assert response.json()["missing_requirements"] == [
            "Payment must be confirmed before marking as completed",
            "Delivery must be completed before marking as completed",
        ]

    def test_staff_approval_is_forbidden(self, client, db, staff):
        application = make_application(db, status="verified")
        response = client.post(
            f"/api/applications/{application.id}/transition",
            json={"to_status": "approved"},
            headers=auth_headers(staff),
        )
        assert response.status_code == 403
        assert response.json()["detail"] == ADMIN_REQUIRED_MESSAGE

    def test_unlisted_transition_is_conflict(self, client, db, admin, application):
        response = client.post(
            f"/api/applications/{application.id}/transition",
            json={"to_status": "completed"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 409

    def test_stale_version_is_conflict(self, client, db, admin):
        application = make_application(db, status="verified")
        response = client.post(
            f"/api/applications/{application.id}/transition",
            json={"to_status": "approved", "expected_version": application.version + 3},
            headers=auth_headers(admin),
        )
        assert response.status_code == 409

    def test_transition_and_history(self, client, db, admin):
        application = make_application(db, status="verified")
        response = client.post(
            f"/api/applications/{application.id}/transition",
            json={"to_status": "approved", "expected_version": application.version},
            headers=auth_headers(admin),
        )
        assert response.status_code == 200
        assert response.json()["status"] == "approved"

        history = client.get(f"/api/applications/{application.id}/history", headers=auth_headers(admin)).json()
        assert [h["action"] for h in history] == ["application_approved"]

    def test_validate_is_a_dry_run(self, client, db, admin):
        application = make_application(db, status="approved")
        response = client.post(
            f"/api/applications/{application.id}/transitions/validate",
            json={"to_status": "completed"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 200
        assert response.json()["is_valid"] is False
        assert len(response.json()["missing_requirements"]) == 2

        db.refresh(application)
        assert application.status == "approved"

    def test_allowed_transitions(self, client, db, staff, application):
        response = client.get(f"/api/applications/{application.id}/transitions", headers=auth_headers(staff))
        body = response.json()
        assert body["current_status"] == "pending"
        assert [t["to_status"] for t in body["transitions"]] == ["verified"]


class TestVerificationsApi:
    def _ingest(self, client, actor, application, confidence):
        return client.post(
            "/api/verifications",
            json={
                "application_id": application.id,
                "document_type": "passport",
                "overall_confidence": confidence,
                "extracted_fields": [{"label": "Passport No.", "value": "A1234567", "confidence": confidence}],
            },
            headers=auth_headers(actor),
        )

    def test_ingest_auto_verifies(self, client, staff, application):
        response = self._ingest(client, staff, application, 0.92)
        assert response.status_code == 201
        body = response.json()
        assert body["verification"]["state"] == "auto_verified"
        assert body["verification"]["band_label"] == "Auto Verified"
        assert body["application"]["status"] == "verified"
        assert body["application_transition"]["outcome"] == "applied"

    def test_out_of_range_confidence(self, client, staff, application):
        response = self._ingest(client, staff, application, 1.5)
        assert response.status_code == 400

    def test_staff_approve(self, client, staff, application):
        verification_id = self._ingest(client, staff, application, 0.78).json()["verification"]["id"]

        response = client.post(
            f"/api/verifications/{verification_id}/approve", json={"notes": "ok"}, headers=auth_headers(staff)
        )
        assert response.status_code == 200
        assert response.json()["verification"]["state"] == "approved"

        again = client.post(f"/api/verifications/{verification_id}/approve", json={}, headers=auth_headers(staff))
        assert again.status_code == 400

    def test_staff_reject_reports_deferred_transition(self, client, staff, application):
        verification_id = self._ingest(client, staff, application, 0.78).json()["verification"]["id"]
        response = client.post(
            f"/api/verifications/{verification_id}/reject",
            json={"reason": "mismatch"},
            headers=auth_headers(staff),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["deferred_transition"] is True
        assert body["application"]["status"] == "pending"

    def test_unknown_rejection_reason(self, client, staff, application):
        verification_id = self._ingest(client, staff, application, 0.78).json()["verification"]["id"]
        response = client.post(
            f"/api/verifications/{verification_id}/reject",
            json={"reason": "looks off"},
            headers=auth_headers(staff),
        )
        assert response.status_code == 422

    def test_staff_override_is_forbidden(self, client, staff, application):
        verification_id = self._ingest(client, staff, application, 0.5).json()["verification"]["id"]
        response = client.post(
            f"/api/verifications/{verification_id}/override",
            json={"decision": "approved", "justification": LONG_JUSTIFICATION},
            headers=auth_headers(staff),
        )
        assert response.status_code == 403
        assert response.json()["detail"] == ADMIN_REQUIRED_MESSAGE

    def test_short_justification_writes_nothing(self, client, admin, staff, application):
        verification_id = self._ingest(client, staff, application, 0.5).json()["verification"]["id"]
        trail_before = client.get(f"/api/verifications/{verification_id}/trail", headers=auth_headers(admin)).json()

        response = client.post(
            f"/api/verifications/{verification_id}/override",
            json={"decision": "approved", "justification": "Document looks fine"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 400

        trail_after = client.get(f"/api/verifications/{verification_id}/trail", headers=auth_headers(admin)).json()
        assert trail_after == trail_before

    def test_override_and_trail(self, client, admin, staff, application):
        verification_id = self._ingest(client, staff, application, 0.5).json()["verification"]["id"]
        response = client.post(
            f"/api/verifications/{verification_id}/override",
            json={"decision": "approved", "justification": LONG_JUSTIFICATION},
            headers=auth_headers(admin),
        )
        assert response.status_code == 200
        assert response.json()["application"]["status"] == "verified"

        trail = client.get(f"/api/verifications/{verification_id}/trail", headers=auth_headers(staff)).json()
        assert [t["action"] for t in trail] == ["flagged", "ai_override"]
        assert trail[-1]["metadata"]["original_decision"] == "pending"
        assert trail[-1]["performed_by_role"] == "admin"

    def test_metrics(self, client, db, staff):
        self._ingest(client, staff, make_application(db), 0.9)
        self._ingest(client, staff, make_application(db), 0.6)
        response = client.get("/api/verifications/metrics", headers=auth_headers(staff))
        assert response.status_code == 200
        assert response.json()["total_verifications"] == 2
        assert response.json()["flagged_count"] == 1

    def test_triage_endpoint(self, client, db, staff, application):
        verification = make_verification(db, application, 0.72)
        response = client.post(
            f"/api/verifications/{verification.id}/triage", json={}, headers=auth_headers(staff)
        )
        assert response.status_code == 200
        assert response.json()["verification"]["state"] == "pending_review"

    def test_triage_uses_the_stored_score(self, client, db, staff, application):
        verification = make_verification(db, application, 0.72)
        response = client.post(
            f"/api/verifications/{verification.id}/triage",
            json={"overall_confidence": 0.99},
            headers=auth_headers(staff),
        )
        assert response.status_code == 200
        assert response.json()["verification"]["overall_confidence"] == 0.72
        assert response.json()["verification"]["verified_by_ai"] is False

    def test_resubmitted_document_is_triaged_again(self, client, staff, application):
        verification_id = self._ingest(client, staff, application, 0.74).json()["verification"]["id"]
        client.post(f"/api/verifications/{verification_id}/re-upload", json={}, headers=auth_headers(staff))

        response = client.post(
            f"/api/verifications/{verification_id}/document",
            json={"overall_confidence": 0.91, "document_url": "https://files.example/passport-2.jpg"},
            headers=auth_headers(staff),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["verification"]["state"] == "auto_verified"
        assert body["verification"]["document_url"] == "https://files.example/passport-2.jpg"
        assert body["application"]["status"] == "verified"

        trail = client.get(f"/api/verifications/{verification_id}/trail", headers=auth_headers(staff)).json()
        assert [t["action"] for t in trail] == ["pending_review", "re_upload_requested", "auto_verified"]

    def test_unknown_verification(self, client, staff):
        response = client.get("/api/verifications/4242", headers=auth_headers(staff))
        assert response.status_code == 404


class TestAuditApi:
    def test_staff_cannot_read_audit_log(self, client, staff):
        response = client.get("/api/audit", headers=auth_headers(staff))
        assert response.status_code == 403

    def test_admin_filters_audit_log(self, client, db, admin):
        application = make_application(db, status="verified")
        client.post(
            f"/api/applications/{application.id}/transition",
            json={"to_status": "approved"},
            headers=auth_headers(admin),
        )
        response = client.get(
            "/api/audit",
            params={"module": "application", "user_id": "admin-1"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 200
        assert [e["action"] for e in response.json()] == ["application_approved"]

    def test_resource_audit_is_admin_only(self, client, db, admin, staff):
        application = make_application(db, status="verified")
        client.post(
            f"/api/applications/{application.id}/transition",
            json={"to_status": "approved"},
            headers=auth_headers(admin),
        )

        denied = client.get(f"/api/audit/resource/{application.id}", headers=auth_headers(staff))
        assert denied.status_code == 403

        response = client.get(f"/api/audit/resource/{application.id}", headers=auth_headers(admin))
        assert response.status_code == 200
        assert [e["action"] for e in response.json()] == ["application_approved"]

    def test_unknown_module_is_rejected(self, client, admin):
        response = client.get("/api/audit", params={"module": "billing"}, headers=auth_headers(admin))
        assert response.status_code == 422


class TestDeliveriesApi:
    def test_courier_delivery_flow(self, client, db, staff):
        application = make_application(db, status="approved", payment_status="paid")
        response = client.post(
            "/api/deliveries",
            json={
                "application_id": application.id,
                "delivery_method": "courier",
                "recipient_name": "Test Customer",
                "recipient_address": "8 Jalan Wong Ah Fook, Johor Bahru",
                "courier_provider": "gdex",
            },
            headers=auth_headers(staff),
        )
        assert response.status_code == 201
        delivery = response.json()
        assert delivery["display_status"] == "External Tracking"
        assert delivery["is_priority"] is True

        advance = client.post(f"/api/deliveries/{delivery['id']}/advance", json={}, headers=auth_headers(staff))
        assert advance.status_code == 409

        response = client.post(
            f"/api/deliveries/{delivery['id']}/courier-tracking",
            json={"tracking_number": "GDX998877"},
            headers=auth_headers(staff),
        )
        assert response.status_code == 200
        assert response.json()["courier_tracking_url"] == "https://www.gdexpress.com/mytracking/GDX998877"

        tracked = client.get("/api/deliveries/track/GDX998877", headers=auth_headers(staff))
        assert tracked.json()["id"] == delivery["id"]

        stats = client.get("/api/deliveries/stats", headers=auth_headers(staff)).json()
        assert stats["courier_deliveries"] == 1


class TestPaymentsApi:
    def test_staff_cannot_refund(self, client, db, admin, staff, application):
        payment = client.post(
            "/api/payments",
            json={"application_id": application.id, "method": "cash"},
            headers=auth_headers(admin),
        ).json()
        client.post(f"/api/payments/{payment['id']}/paid", json={}, headers=auth_headers(admin))

        response = client.post(
            f"/api/payments/{payment['id']}/refund",
            json={"reason": "Duplicate"},
            headers=auth_headers(staff),
        )
        assert response.status_code == 403

        response = client.post(
            f"/api/payments/{payment['id']}/refund",
            json={"reason": "Duplicate"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 200
        assert response.json()["status"] == "refunded"
