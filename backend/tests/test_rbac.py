"""Authorization tests: role resolution, OR semantics, status-change rules."""

from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import AuthorizationError
from app.core.rbac import load_identity
from app.core.rbac_policy import STAFF_ROLES, USER_MANAGER_ROLES, RBACPolicy
from app.services.user_service import get_role


class TestPolicy:
    def test_any_role_suffices(self):
        assert RBACPolicy.has_any_role(["customer", "support"], STAFF_ROLES)
        assert not RBACPolicy.has_any_role(["customer"], STAFF_ROLES)
        assert not RBACPolicy.has_any_role([], STAFF_ROLES)

    def test_support_is_not_user_manager(self):
        assert not RBACPolicy.has_any_role(["support"], USER_MANAGER_ROLES)
        assert RBACPolicy.has_any_role(["manager"], USER_MANAGER_ROLES)

    def test_self_protection(self):
        with pytest.raises(AuthorizationError):
            RBACPolicy.check_status_change(1, ["admin"], 1, ["admin"])

    def test_peer_protection(self):
        with pytest.raises(AuthorizationError):
            RBACPolicy.check_status_change(1, ["manager"], 2, ["admin"])
        RBACPolicy.check_status_change(1, ["admin"], 2, ["admin"])
        RBACPolicy.check_status_change(1, ["manager"], 2, ["customer"])


class TestLoadIdentity:
    def test_permissions_are_union_of_role_rows(self, db_session, make_user):
        user = make_user(roles=("customer", "support"))
        identity = load_identity(db_session, user)
        assert identity.roles == ["customer", "support"]
        assert "tickets:create" in identity.permissions
        assert "tickets:reply" in identity.permissions
        assert "users:manage" not in identity.permissions
        assert identity.permissions == sorted(set(identity.permissions))

    def test_edited_role_permissions_apply(self, db_session, make_user):
        user = make_user(roles=("support",))
        get_role(db_session, "support").permissions = ["tickets:view_all"]
        db_session.commit()
        assert load_identity(db_session, user).permissions == ["tickets:view_all"]


class TestAuthenticationGate:
    def test_missing_token(self, client):
        resp = client.get("/api/v1/profile")
        assert resp.status_code == 401
        assert resp.json()["success"] is False

    def test_garbage_token(self, client):
        resp = client.get("/api/v1/profile", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401

    def test_expired_token(self, client, codec, customer):
        issued = datetime.now(timezone.utc) - timedelta(hours=2)
        token = codec.issue({"sub": str(customer.id)}, ttl=60, now=issued)
        resp = client.get("/api/v1/profile", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_inactive_user_rejected(self, client, make_user, auth_headers):
        user = make_user(status="inactive")
        assert client.get("/api/v1/profile", headers=auth_headers(user)).status_code == 401

    def test_unknown_subject_rejected(self, client, codec):
        token = codec.issue({"sub": "9999"})
        resp = client.get("/api/v1/profile", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401


class TestRoleGate:
    def test_customer_denied_staff_endpoints(self, client, customer, auth_headers):
        headers = auth_headers(customer)
        assert client.get("/api/v1/admin/stats", headers=headers).status_code == 403
        assert client.get("/api/v1/admin/tickets", headers=headers).status_code == 403
        assert client.post("/api/v1/auth/validate-admin-token", headers=headers).status_code == 403

    def test_support_denied_user_management(self, client, support_agent, auth_headers):
        headers = auth_headers(support_agent)
        assert client.get("/api/v1/admin/tickets", headers=headers).status_code == 200
        assert client.get("/api/v1/admin/users", headers=headers).status_code == 403

    def test_manager_allowed_user_management(self, client, manager, auth_headers):
        assert client.get("/api/v1/admin/users", headers=auth_headers(manager)).status_code == 200

    def test_any_of_several_roles(self, client, make_user, auth_headers):
        user = make_user(("customer", "support"))
        assert client.get("/api/v1/admin/stats", headers=auth_headers(user)).status_code == 200

    def test_roles_resolved_per_request(self, client, db_session, customer, auth_headers):
        headers = auth_headers(customer)
        assert client.get("/api/v1/admin/stats", headers=headers).status_code == 403

        customer.roles.append(get_role(db_session, "support"))
        db_session.commit()

        assert client.get("/api/v1/admin/stats", headers=headers).status_code == 200
