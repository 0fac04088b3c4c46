"""
Gateway tests through FastAPI's TestClient: authentication, error mapping
and an end-to-end grant flow.
"""

from datetime import date

import pytest

from audit.models import AuditEntry
from auth.auth_manager import get_auth_manager
from records.service import RecordService


# ============================================================================
# Authentication
# ============================================================================

class TestAuthentication:

    def test_missing_token_is_401(self, client):
        response = client.get("/api/actors/me")
        assert response.status_code == 401

    def test_garbage_token_is_401(self, client):
        response = client.get("/api/actors/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_expired_token_is_401(self, client, subject):
        token = get_auth_manager().create_access_token(subject.id, expires_in=-10)
        response = client.get("/api/actors/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_token_for_unknown_actor_is_403(self, client):
        token = get_auth_manager().create_access_token("ghost")
        response = client.get("/api/actors/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 403
        assert response.json()["kind"] == "forbidden_actor"

    def test_me_returns_fresh_actor(self, client, requester, auth_headers):
        response = client.get("/api/actors/me", headers=auth_headers(requester))
        assert response.status_code == 200
        assert response.json()["role"] == "requester"
        assert response.headers["Cache-Control"] == "no-store"


# ============================================================================
# Error mapping
# ============================================================================

class TestErrorMapping:

    def test_validation_error_is_400(self, client, requester, subject, auth_headers):
        response = client.post(
            "/api/grants",
            json={"subject_id": subject.id, "purpose": "care", "requested_duration_days": 0},
            headers=auth_headers(requester)
        )
        assert response.status_code == 400
        assert response.json()["kind"] == "validation_error"

    def test_malformed_body_is_400(self, client, requester, subject, auth_headers):
        response = client.post(
            "/api/grants",
            json={"subject_id": subject.id, "requested_duration_days": 5},
            headers=auth_headers(requester)
        )
        assert response.status_code == 400
        assert response.json()["kind"] == "validation_error"

    def test_forbidden_actor_is_403(self, client, subject, other_subject, auth_headers):
        response = client.post(
            "/api/grants",
            json={"subject_id": other_subject.id, "purpose": "care", "requested_duration_days": 5},
            headers=auth_headers(subject)
        )
        assert response.status_code == 403
        assert response.json() == {"detail": "Only requesters can request access", "kind": "forbidden_actor"}

    def test_invalid_target_is_403(self, client, requester, other_requester, auth_headers):
        response = client.post(
            "/api/grants",
            json={"subject_id": other_requester.id, "purpose": "care", "requested_duration_days": 5},
            headers=auth_headers(requester)
        )
        assert response.status_code == 403
        assert response.json()["kind"] == "invalid_target"

    def test_duplicate_email_is_400(self, client, requester, other_requester, auth_headers):
        response = client.patch(
            f"/api/actors/{requester.id}", json={"email": other_requester.email}, headers=auth_headers(requester)
        )
        assert response.status_code == 400
        assert response.json() == {"detail": "Email already in use", "kind": "validation_error"}

    def test_not_found_is_404(self, client, subject, auth_headers):
        response = client.post("/api/grants/missing/approve", headers=auth_headers(subject))
        assert response.status_code == 404
        assert response.json()["kind"] == "not_found"

    def test_invalid_state_is_400(self, client, subject, pending_grant, auth_headers):
        response = client.post(f"/api/grants/{pending_grant['id']}/revoke", headers=auth_headers(subject))
        assert response.status_code == 400
        assert response.json()["kind"] == "invalid_state"

    def test_storage_failure_is_503(self, client, subject, auth_headers, monkeypatch):
        from sqlalchemy.exc import OperationalError
        from identity.repository import ActorRepository

        def broken(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("database is down"))

        headers = auth_headers(subject)
        monkeypatch.setattr(ActorRepository, "get_by_id", staticmethod(broken))

        response = client.get("/api/actors/me", headers=headers)
        assert response.status_code == 503
        assert response.json()["kind"] == "storage_unavailable"


# ============================================================================
# End to end
# ============================================================================

class TestGrantFlow:

    def test_request_approve_read_revoke(self, client, db, requester, subject, auth_headers):
        as_requester = auth_headers(requester)
        as_subject = auth_headers(subject)

        record = RecordService.create_record(
            db, subject.id, subject.id, "Echocardiogram", "Cardiology", date(2024, 2, 1)
        )

        created = client.post(
            "/api/grants",
            json={
                "subject_id": subject.id,
                "purpose": "Follow-up",
                "requested_duration_days": 30,
                "scope_limited": True
            },
            headers=as_requester
        )
        assert created.status_code == 201
        grant_id = created.json()["id"]

        check = client.get("/api/access/check", params={"subject_id": subject.id}, headers=as_requester)
        assert check.json() == {"allowed": False, "reason": "no active grant", "grant_id": None}

        denied_read = client.get(f"/api/records/{record['id']}", headers=as_requester)
        assert denied_read.status_code == 403

        listed = client.get(f"/api/grants/subject/{subject.id}", headers=as_subject)
        assert listed.status_code == 200
        assert listed.json()[0]["requester"]["full_name"] == requester.full_name

        approved = client.post(
            f"/api/grants/{grant_id}/approve", json={"scope_limited": True}, headers=as_subject
        )
        assert approved.status_code == 200
        assert approved.json()["status"] == "approved"
        assert approved.json()["expires_at"] is not None

        read = client.get(f"/api/records/{record['id']}", headers=as_requester)
        assert read.status_code == 200
        assert read.json()["title"] == "Echocardiogram"

        download = client.get(f"/api/records/{record['id']}/download", headers=as_requester)
        assert download.status_code == 200
        assert "Record: Echocardiogram" in download.text
        assert "attachment" in download.headers["Content-Disposition"]

        accessible = client.get("/api/records/accessible", headers=as_requester)
        assert [r["id"] for r in accessible.json()] == [record["id"]]
        assert accessible.json()[0]["grant_id"] == grant_id

        revoked = client.post(f"/api/grants/{grant_id}/revoke", headers=as_subject)
        assert revoked.json()["status"] == "revoked"

        after = client.get(f"/api/records/{record['id']}", headers=as_requester)
        assert after.status_code == 403

        own_log = client.get("/api/audit", headers=as_requester)
        actions = [e["action"] for e in own_log.json()]
        assert actions.count("access_denied") == 2
        assert "record_accessed" in actions
        assert "record_downloaded" in actions
        assert all(e["actor_id"] == requester.id for e in own_log.json())
        assert all(e["origin_address"] == "testclient" for e in own_log.json())

    def test_audit_of_others_needs_supervisor(self, client, requester, subject, supervisor, pending_grant, auth_headers):
        forbidden = client.get("/api/audit", params={"user_id": requester.id}, headers=auth_headers(subject))
        assert forbidden.status_code == 403

        allowed = client.get("/api/audit", params={"user_id": requester.id}, headers=auth_headers(supervisor))
        assert [e["action"] for e in allowed.json()] == ["requested"]

    def test_role_endpoint_requires_supervisor(self, client, db, requester, supervisor, auth_headers):
        refused = client.put(
            f"/api/actors/{requester.id}/role", json={"role": "subject"}, headers=auth_headers(requester)
        )
        assert refused.status_code == 403

        changed = client.put(
            f"/api/actors/{requester.id}/role", json={"role": "subject"}, headers=auth_headers(supervisor)
        )
        assert changed.status_code == 200
        assert changed.json()["role"] == "subject"
        assert db.query(AuditEntry).filter(AuditEntry.action == "role_changed").count() == 1

    def test_profile_patch(self, client, requester, auth_headers):
        response = client.patch(
            f"/api/actors/{requester.id}", json={"phone": "555-0100"}, headers=auth_headers(requester)
        )
        assert response.status_code == 200
        assert response.json()["phone"] == "555-0100"

    def test_list_actors_by_role(self, client, subject, requester, auth_headers):
        response = client.get("/api/actors", params={"role": "requester"}, headers=auth_headers(subject))
        assert response.status_code == 200
        assert [a["id"] for a in response.json()] == [requester.id]


class TestHealth:

    def test_health(self, client):
        response = client.get("/api/base/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
