"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- Sales agents are denied catalog, pricing and reversal operations (403)
- Managers can perform privileged operations
- Sessions end on logout, idle timeout and account deactivation
"""

from datetime import timedelta

import pytest

from trustpos.extensions import db
from trustpos.models import SessionToken
from trustpos.services import session_service


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("GET", "/api/customers"),
            ("GET", "/api/discounts/active"),
            ("GET", "/api/tax/active"),
            ("POST", "/api/orders"),
            ("GET", "/api/orders"),
            ("POST", "/api/returns"),
            ("GET", "/api/receipts/1"),
            ("GET", "/api/audit-logs"),
            ("GET", "/api/auth/me"),
            ("GET", "/api/users"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token_rejected(self, client, db_session):
        resp = client.get("/api/products", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401


# =============================================================================
# SALES AGENT DENIED PRIVILEGED OPERATIONS - 403
# =============================================================================


class TestAgentDenied:
    def test_cannot_create_product(self, client, agent_headers):
        resp = client.post(
            "/api/products",
            json={"sku": "X-1", "name": "Thing", "price_cents": 100},
            headers=agent_headers,
        )
        assert resp.status_code == 403

    def test_cannot_adjust_stock(self, client, agent_headers, make_product):
        product = make_product()
        resp = client.post(
            f"/api/products/{product.id}/adjust",
            json={"quantity_delta": 5, "reason": "Found extra"},
            headers=agent_headers,
        )
        assert resp.status_code == 403

    def test_cannot_manage_discounts_or_tax(self, client, agent_headers):
        assert client.get("/api/discounts", headers=agent_headers).status_code == 403
        assert client.post(
            "/api/tax", json={"name": "VAT", "rate_bps": 1800}, headers=agent_headers
        ).status_code == 403

    def test_cannot_process_returns(self, client, agent_headers):
        resp = client.post(
            "/api/returns",
            json={"order_id": 1, "reason": "Broken screen", "items": [{"order_item_id": 1, "quantity": 1}]},
            headers=agent_headers,
        )
        assert resp.status_code == 403

    def test_cannot_read_audit_logs(self, client, agent_headers):
        assert client.get("/api/audit-logs", headers=agent_headers).status_code == 403

    def test_cannot_manage_staff(self, client, agent_headers, manager_headers):
        assert client.get("/api/users", headers=agent_headers).status_code == 403
        assert client.get("/api/users", headers=manager_headers).status_code == 403

    def test_cannot_see_other_agents_orders(self, client, login_headers, make_user, make_product, manager_headers):
        make_user("other")
        other_headers = login_headers("other")
        product = make_product()
        order = client.post(
            "/api/orders",
            json={"items": [{"product_id": product.id, "quantity": 1}]},
            headers=manager_headers,
        ).json["order"]

        resp = client.get(f"/api/orders/{order['id']}", headers=other_headers)
        assert resp.status_code == 403

    def test_cannot_touch_other_agents_receipts(self, client, login_headers, make_user, make_product, manager_headers):
        make_user("other")
        other_headers = login_headers("other")
        product = make_product()
        order = client.post(
            "/api/orders",
            json={"items": [{"product_id": product.id, "quantity": 1}]},
            headers=manager_headers,
        ).json["order"]

        assert client.post(f"/api/receipts/generate/{order['id']}", headers=other_headers).status_code == 403
        receipt = client.post(f"/api/receipts/generate/{order['id']}", headers=manager_headers).json["receipt"]

        assert client.get(f"/api/receipts/order/{order['id']}", headers=other_headers).status_code == 403
        assert client.get(f"/api/receipts/{receipt['id']}", headers=other_headers).status_code == 403
        assert client.post(f"/api/receipts/{receipt['id']}/reprint", headers=other_headers).status_code == 403
        assert client.get(f"/api/receipts/{receipt['id']}", headers=manager_headers).json["receipt"]["reprint_count"] == 0


# =============================================================================
# MANAGER ALLOWED
# =============================================================================


class TestManagerAllowed:
    def test_can_create_product(self, client, manager_headers):
        resp = client.post(
            "/api/products",
            json={"sku": "CAB-01", "name": "Cable", "price_cents": 1500, "stock_quantity": 4},
            headers=manager_headers,
        )
        assert resp.status_code == 201
        assert resp.json["product"]["stock_quantity"] == 4

    def test_can_read_audit_logs(self, client, manager_headers):
        resp = client.get("/api/audit-logs", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["total"] == 0


# =============================================================================
# SESSIONS
# =============================================================================


class TestSessions:
    def test_login_with_bad_password(self, client, agent):
        resp = client.post("/api/auth/login", json={"username": agent.username, "password": "wrong"})
        assert resp.status_code == 401

    def test_login_with_email(self, client, agent):
        resp = client.post("/api/auth/login", json={"username": agent.email, "password": "Password123!"})
        assert resp.status_code == 200
        assert resp.json["expires_at"].endswith("Z")

    def test_logout_revokes_token(self, client, agent, login_headers):
        headers = login_headers(agent.username)
        assert client.get("/api/auth/me", headers=headers).status_code == 200

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_idle_session_expires(self, client, agent, login_headers):
        headers = login_headers(agent.username)
        token = headers["Authorization"].split(" ", 1)[1]
        session = db.session.query(SessionToken).filter_by(token_hash=session_service.hash_token(token)).one()
        session.last_used_at = session.last_used_at - timedelta(hours=3)
        db.session.commit()

        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_deactivated_user_loses_session(self, client, agent, login_headers):
        headers = login_headers(agent.username)
        agent.is_active = False
        db.session.commit()

        assert client.get("/api/auth/me", headers=headers).status_code == 401
