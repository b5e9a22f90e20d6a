"""
Tests for dashboard authentication.

Tests cover:
- Password hashing
- Access token round trip and rejection of tampered tokens
- POST /auth/login and GET /auth/me
"""

from datetime import timedelta

from sanctuary.core import security
from sanctuary.core.jwt import create_access_token, decode_access_token


class TestPasswordHashing:
    def test_hash_verifies(self):
        hashed = security.get_password_hash("s3cret-pass")
        assert hashed != "s3cret-pass"
        assert security.verify_password("s3cret-pass", hashed)
        assert not security.verify_password("wrong", hashed)


class TestAccessToken:
    def test_round_trip(self):
        assert decode_access_token(create_access_token("admin@example.org")) == "admin@example.org"

    def test_expired_token_rejected(self):
        token = create_access_token("admin@example.org", expires_delta=timedelta(seconds=-5))
        assert decode_access_token(token) is None

    def test_garbage_rejected(self):
        assert decode_access_token("not.a.token") is None


class TestLogin:
    def test_login_returns_bearer_token(self, client, admin_user):
        response = client.post(
            "/api/auth/login", data={"username": "admin@example.org", "password": "adminpassword123"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert decode_access_token(body["access_token"]) == "admin@example.org"

    def test_wrong_password(self, client, admin_user):
        response = client.post("/api/auth/login", data={"username": "admin@example.org", "password": "nope"})
        assert response.status_code == 400

    def test_unknown_email(self, client):
        response = client.post("/api/auth/login", data={"username": "ghost@example.org", "password": "x"})
        assert response.status_code == 400

    def test_inactive_user(self, client, test_session, admin_user):
        admin_user.is_active = False
        test_session.add(admin_user)
        test_session.commit()

        response = client.post(
            "/api/auth/login", data={"username": "admin@example.org", "password": "adminpassword123"}
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Inactive user"

    def test_me(self, client, member_headers):
        body = client.get("/api/auth/me", headers=member_headers).json()
        assert body["email"] == "member@example.org"
        assert body["role"] == "member"

    def test_me_requires_token(self, client):
        assert client.get("/api/auth/me").status_code == 401

    def test_token_login_grants_report_access(self, client, admin_user):
        token = client.post(
            "/api/auth/login", data={"username": "admin@example.org", "password": "adminpassword123"}
        ).json()["access_token"]

        response = client.get("/api/analytics/active-users", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200


class TestRequestContext:
    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"

    def test_unsafe_request_id_replaced(self, client):
        response = client.get("/health", headers={"X-Request-ID": "bad id; drop"})
        assert response.headers["X-Request-ID"] != "bad id; drop"
