"""Tests for registration, login, logout, token validation and password change."""

from app.models.activity import ActivityLog, LoginAttempt
from app.models.user import User, UserSession

# Password given to every user created by the make_user fixture
DEFAULT_PASSWORD = "Str0ng!Pass"

REGISTER_BODY = {
    "firstName": "Riley",
    "lastName": "Reg",
    "email": "riley@example.com",
    "password": DEFAULT_PASSWORD,
    "confirmPassword": DEFAULT_PASSWORD,
}


def _login(client, email, password=DEFAULT_PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


# ============== Registration ==============

class TestRegister:
    def test_register_creates_verified_customer(self, client, db_session):
        resp = client.post("/api/v1/auth/register", json=REGISTER_BODY)
        assert resp.status_code == 201
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["email"] == "riley@example.com"
        assert body["data"]["name"] == "Riley Reg"
        assert body["data"]["email_verified"] is True
        assert body["data"]["verification_email_sent"] is False

        user = db_session.query(User).filter_by(email="riley@example.com").one()
        assert user.role_names == ["customer"]
        assert user.password_hash != DEFAULT_PASSWORD
        assert db_session.query(ActivityLog).filter_by(action="register", user_id=user.id).count() == 1

    def test_register_then_login(self, client, codec):
        user_id = client.post("/api/v1/auth/register", json=REGISTER_BODY).json()["data"]["user_id"]

        resp = _login(client, "riley@example.com")
        assert resp.status_code == 200
        claims = codec.verify(resp.json()["data"]["token"])
        assert claims["sub"] == str(user_id)
        assert claims["email"] == "riley@example.com"

    def test_passwords_must_match(self, client):
        resp = client.post("/api/v1/auth/register", json={**REGISTER_BODY, "confirmPassword": "Other1!pass"})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Passwords do not match"

    def test_weak_password_rejected(self, client, db_session):
        resp = client.post(
            "/api/v1/auth/register",
            json={**REGISTER_BODY, "password": "password", "confirmPassword": "password"},
        )
        assert resp.status_code == 400
        assert resp.json()["message"].startswith("Password must be at least 8 characters")
        assert db_session.query(User).filter_by(email="riley@example.com").count() == 0

    def test_duplicate_email_rejected(self, client, customer):
        resp = client.post("/api/v1/auth/register", json={**REGISTER_BODY, "email": customer.email})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Email address is already registered"

    def test_missing_field_is_validation_error(self, client):
        body = {k: v for k, v in REGISTER_BODY.items() if k != "lastName"}
        resp = client.post("/api/v1/auth/register", json=body)
        assert resp.status_code == 400
        assert resp.json()["success"] is False
        assert "lastName" in resp.json()["message"]

    def test_invalid_email_rejected(self, client):
        resp = client.post("/api/v1/auth/register", json={**REGISTER_BODY, "email": "not-an-email"})
        assert resp.status_code == 400

    def test_repeated_failures_are_throttled_by_ip(self, client, customer):
        body = {**REGISTER_BODY, "email": customer.email}
        for _ in range(5):
            assert client.post("/api/v1/auth/register", json=body).status_code == 400
        assert client.post("/api/v1/auth/register", json=REGISTER_BODY).status_code == 429

    def test_forwarded_for_header_does_not_reset_throttle(self, client, customer):
        body = {**REGISTER_BODY, "email": customer.email}
        codes = [
            client.post(
                "/api/v1/auth/register", json=body,
                headers={"X-Forwarded-For": f"10.0.0.{i}"},
            ).status_code
            for i in range(7)
        ]
        assert codes[:5] == [400] * 5
        assert codes[5:] == [429, 429]

    def test_escaped_name_longer_than_column_rejected(self, client, db_session):
        resp = client.post("/api/v1/auth/register", json={**REGISTER_BODY, "firstName": "<" * 100})
        assert resp.status_code == 400
        assert resp.json()["message"] == "First name is too long"
        assert db_session.query(User).filter_by(email="riley@example.com").count() == 0

    def test_name_is_html_escaped(self, client, db_session):
        client.post("/api/v1/auth/register", json={**REGISTER_BODY, "firstName": "<b>Riley</b>"})
        user = db_session.query(User).filter_by(email="riley@example.com").one()
        assert user.first_name == "&lt;b&gt;Riley&lt;/b&gt;"


# ============== Login ==============

class TestLogin:
    def test_successful_login(self, client, db_session, customer):
        resp = _login(client, customer.email)
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert len(data["session_token"]) == 64
        assert data["user"]["id"] == customer.id
        assert data["user"]["name"] == "Casey Customer"
        assert data["redirect"] == "index.html"
        assert db_session.query(UserSession).filter_by(user_id=customer.id).count() == 1
        db_session.refresh(customer)
        assert customer.last_login is not None

    def test_staff_redirected_to_admin(self, client, support_agent):
        assert _login(client, support_agent.email).json()["data"]["redirect"] == "admin.html"

    def test_wrong_password(self, client, db_session, customer):
        resp = _login(client, customer.email, "Wrong1!pass")
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid email or password"
        assert db_session.query(LoginAttempt).filter_by(identifier=customer.email).count() == 1

    def test_unknown_email(self, client):
        assert _login(client, "nobody@example.com").status_code == 401

    def test_inactive_account(self, client, make_user):
        user = make_user(status="inactive")
        assert _login(client, user.email).status_code == 401

    def test_unverified_account(self, client, make_user):
        user = make_user(email_verified=False)
        resp = _login(client, user.email)
        assert resp.status_code == 403
        assert "verify your email" in resp.json()["message"]

    def test_lockout_after_five_failures(self, client, customer):
        for _ in range(5):
            assert _login(client, customer.email, "Wrong1!pass").status_code == 401
        resp = _login(client, customer.email)
        assert resp.status_code == 429

    def test_success_resets_failures(self, client, db_session, customer):
        for _ in range(4):
            _login(client, customer.email, "Wrong1!pass")
        assert _login(client, customer.email).status_code == 200
        assert db_session.query(LoginAttempt).filter_by(identifier=customer.email).count() == 0

    def test_concurrent_sessions_allowed(self, client, db_session, customer):
        _login(client, customer.email)
        _login(client, customer.email)
        assert db_session.query(UserSession).filter_by(user_id=customer.id).count() == 2


# ============== Logout ==============

class TestLogout:
    def test_logout_deletes_all_sessions(self, client, db_session, customer):
        token = _login(client, customer.email).json()["data"]["token"]
        _login(client, customer.email)

        resp = client.post("/api/v1/auth/logout", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert db_session.query(UserSession).filter_by(user_id=customer.id).count() == 0

    def test_logout_without_token_succeeds(self, client):
        resp = client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert resp.json()["success"] is True

    def test_logout_with_bad_token_succeeds(self, client):
        resp = client.post("/api/v1/auth/logout", headers={"Authorization": "Bearer x.y.z"})
        assert resp.status_code == 200


# ============== Token validation ==============

class TestValidateToken:
    def test_returns_user_roles_and_permissions(self, client, db_session, customer, auth_headers):
        resp = client.post("/api/v1/auth/validate-token", headers=auth_headers(customer))
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["user"]["roles"] == ["customer"]
        assert "tickets:create" in data["user"]["permissions"]
        assert data["token_expires_at"]
        assert db_session.query(ActivityLog).filter_by(action="token_validation").count() == 1

    def test_admin_token_flags(self, client, make_user, auth_headers):
        user = make_user(("support", "manager"))
        resp = client.post("/api/v1/auth/validate-admin-token", headers=auth_headers(user))
        assert resp.status_code == 200
        data = resp.json()["data"]["user"]
        assert data["is_support"] is True
        assert data["is_manager"] is True
        assert data["is_admin"] is False

    def test_admin_token_requires_staff(self, client, customer, auth_headers):
        resp = client.post("/api/v1/auth/validate-admin-token", headers=auth_headers(customer))
        assert resp.status_code == 403


# ============== Password change ==============

class TestChangePassword:
    URL = "/api/v1/auth/change-password"

    def test_change_password(self, client, customer, auth_headers):
        resp = client.post(self.URL, headers=auth_headers(customer), json={
            "currentPassword": DEFAULT_PASSWORD,
            "newPassword": "N3w!Password",
        })
        assert resp.status_code == 200
        assert _login(client, customer.email, "N3w!Password").status_code == 200

    def test_wrong_current_password(self, client, customer, auth_headers):
        resp = client.post(self.URL, headers=auth_headers(customer), json={
            "currentPassword": "Wrong1!pass",
            "newPassword": "N3w!Password",
        })
        assert resp.status_code == 400
        assert resp.json()["message"] == "Current password is incorrect"

    def test_weak_new_password(self, client, customer, auth_headers):
        resp = client.post(self.URL, headers=auth_headers(customer), json={
            "currentPassword": DEFAULT_PASSWORD,
            "newPassword": "weak",
        })
        assert resp.status_code == 400
        assert resp.json()["message"].startswith("New password must")

    def test_requires_authentication(self, client):
        resp = client.post(self.URL, json={"currentPassword": "a", "newPassword": "b"})
        assert resp.status_code == 401


class TestPasswordStrengthEndpoint:
    def test_scores_password(self, client):
        resp = client.post("/api/v1/auth/password-strength", json={"password": "abcdefgh"})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["score"] == 2
        assert data["acceptable"] is False
        assert data["label"] == "Fair"
        assert "numbers" in data["missing"]
