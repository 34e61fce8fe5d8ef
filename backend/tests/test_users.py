"""
Staff account management tests.

Verifies:
- Admins can list, read, create and update staff accounts
- Deactivation revokes every session and is written to the audit log
- Admins cannot deactivate themselves or change their own role
"""

import pytest

from trustpos.extensions import db
from trustpos.models import AuditLog, SessionToken

NEW_USER = {"username": "cashier2", "email": "Cashier2@trustpos.test", "password": "Password123!"}


class TestStaffAccounts:
    def test_create_defaults_to_sales_agent(self, client, admin_headers):
        resp = client.post("/api/users", json=NEW_USER, headers=admin_headers)

        assert resp.status_code == 201
        user = resp.json["user"]
        assert user["role"] == "SALES_AGENT"
        assert user["email"] == "cashier2@trustpos.test"
        assert "password_hash" not in user
        assert db.session.query(AuditLog).filter_by(action="USER_CREATE").count() == 1

    def test_create_duplicate_conflicts(self, client, admin_headers):
        client.post("/api/users", json=NEW_USER, headers=admin_headers)
        resp = client.post("/api/users", json=NEW_USER, headers=admin_headers)
        assert resp.status_code == 409

    @pytest.mark.parametrize(
        "payload,field",
        [
            ({**NEW_USER, "role": "OWNER"}, "role"),
            ({**NEW_USER, "email": "not-an-email"}, "email"),
            ({**NEW_USER, "password": "short"}, "password"),
            ({**NEW_USER, "role": None}, "role"),
        ],
    )
    def test_create_rejects_bad_fields(self, client, admin_headers, payload, field):
        resp = client.post("/api/users", json=payload, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json["details"]["field"] == field

    def test_list_and_filter_by_role(self, client, admin_headers, manager, agent):
        everyone = client.get("/api/users", headers=admin_headers).json
        assert everyone["count"] == 3

        agents = client.get("/api/users?role=SALES_AGENT", headers=admin_headers).json["items"]
        assert [u["username"] for u in agents] == ["agent"]

    def test_get_unknown_user(self, client, admin_headers):
        resp = client.get("/api/users/999", headers=admin_headers)
        assert resp.status_code == 404
        assert resp.json["code"] == "USER_NOT_FOUND"

    def test_update_role_is_audited(self, client, admin_headers, agent):
        resp = client.patch(f"/api/users/{agent.id}", json={"role": "MANAGER"}, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["user"]["role"] == "MANAGER"
        entry = db.session.query(AuditLog).filter_by(action="USER_UPDATE").one()
        assert entry.old_value["role"] == "SALES_AGENT"
        assert entry.new_value["role"] == "MANAGER"

    def test_update_email_taken(self, client, admin_headers, agent, manager):
        resp = client.patch(f"/api/users/{agent.id}", json={"email": manager.email}, headers=admin_headers)
        assert resp.status_code == 409

    def test_password_reset_revokes_sessions(self, client, admin_headers, agent, login_headers):
        headers = login_headers(agent.username)

        resp = client.patch(f"/api/users/{agent.id}", json={"password": "NewPassword1!"}, headers=admin_headers)

        assert resp.status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401
        relogin = client.post("/api/auth/login", json={"username": agent.username, "password": "NewPassword1!"})
        assert relogin.status_code == 200
        entry = db.session.query(AuditLog).filter_by(action="USER_UPDATE").one()
        assert entry.new_value["password_changed"] is True
        assert "password_hash" not in entry.new_value

    def test_cannot_change_own_role(self, client, admin_headers, admin):
        resp = client.patch(f"/api/users/{admin.id}", json={"role": "SALES_AGENT"}, headers=admin_headers)
        assert resp.status_code == 400


class TestDeactivation:
    def test_deactivate_revokes_sessions_and_audits(self, client, admin_headers, agent, login_headers):
        first = login_headers(agent.username)
        second = login_headers(agent.username)

        resp = client.delete(f"/api/users/{agent.id}", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["sessions_revoked"] == 2
        assert resp.json["user"]["is_active"] is False
        assert client.get("/api/auth/me", headers=first).status_code == 401
        assert client.get("/api/auth/me", headers=second).status_code == 401
        assert db.session.query(SessionToken).filter_by(user_id=agent.id, is_revoked=False).count() == 0

        entry = db.session.query(AuditLog).filter_by(action="USER_DEACTIVATE").one()
        assert entry.entity_id == str(agent.id)
        assert entry.reason == "Revoked 2 sessions"

        login = client.post("/api/auth/login", json={"username": agent.username, "password": "Password123!"})
        assert login.status_code == 401

    def test_deactivate_twice_conflicts(self, client, admin_headers, agent):
        client.delete(f"/api/users/{agent.id}", headers=admin_headers)
        resp = client.delete(f"/api/users/{agent.id}", headers=admin_headers)
        assert resp.status_code == 409
        assert resp.json["code"] == "INVALID_STATE"

    def test_cannot_deactivate_self(self, client, admin_headers, admin):
        resp = client.delete(f"/api/users/{admin.id}", headers=admin_headers)
        assert resp.status_code == 400
        assert db.session.get(type(admin), admin.id).is_active is True

    def test_reactivate(self, client, admin_headers, agent):
        client.delete(f"/api/users/{agent.id}", headers=admin_headers)

        resp = client.post(f"/api/users/{agent.id}/reactivate", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["user"]["is_active"] is True
        login = client.post("/api/auth/login", json={"username": agent.username, "password": "Password123!"})
        assert login.status_code == 200
