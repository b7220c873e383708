"""Login, registration, session check and logout."""

from __future__ import annotations

import bcrypt

from standwithnepal.models.models import User, UserSession

from conftest import login


class TestLogin:
    def test_citizen_login(self, client, citizen):
        resp = client.post(
            "/api/auth/login",
            json={"user_type": "citizen", "email": "Sita@Example.com", "password": "secret123"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["user"]["name"] == "Sita Sharma"
        assert body["user"]["type"] == "citizen"
        assert body["token"]
        assert "swn_session" in resp.cookies

    def test_official_login_reports_area(self, client, official):
        resp = client.post(
            "/api/auth/login",
            json={"user_type": "official", "official_id": "KTM001", "password": "official123"},
        )
        user = resp.json()["user"]
        assert user["jurisdiction"] == "ward"
        assert user["area"] == "Kathmandu Ward-5"

    def test_unverified_official_rejected(self, client, make_user):
        make_user(
            "new.official@ktm.gov.np",
            password="official123",
            user_type="official",
            official_id="KTM002",
            jurisdiction="ward",
            district="Kathmandu",
            ward_no=3,
            verified=False,
        )
        resp = client.post(
            "/api/auth/login",
            json={"user_type": "official", "official_id": "KTM002", "password": "official123"},
        )
        assert resp.status_code == 401
        assert resp.json() == {"success": False, "message": "Invalid credentials"}

    def test_admin_login(self, client, admin):
        resp = client.post(
            "/api/auth/login",
            json={"user_type": "admin", "username": "admin", "password": "admin123", "admin_code": "SWN2025"},
        )
        assert resp.status_code == 200
        assert resp.json()["user"]["type"] == "admin"

    def test_admin_bad_code(self, client, admin):
        resp = client.post(
            "/api/auth/login",
            json={"user_type": "admin", "username": "admin", "password": "admin123", "admin_code": "nope"},
        )
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid admin code"

    def test_admin_bad_password_hides_code_check(self, client, admin):
        resp = client.post(
            "/api/auth/login",
            json={"user_type": "admin", "username": "admin", "password": "wrong", "admin_code": "nope"},
        )
        assert resp.json()["message"] == "Invalid credentials"

    def test_wrong_password(self, client, citizen):
        resp = client.post(
            "/api/auth/login",
            json={"user_type": "citizen", "email": "sita@example.com", "password": "wrong"},
        )
        assert resp.status_code == 401

    def test_admin_username_maps_to_org_domain(self, client, citizen):
        resp = client.post(
            "/api/auth/login",
            json={"user_type": "admin", "username": "sita", "password": "secret123", "admin_code": "SWN2025"},
        )
        assert resp.status_code == 401

    def test_inactive_account(self, client, db, citizen):
        citizen.is_active = False
        db.commit()
        resp = client.post(
            "/api/auth/login",
            json={"user_type": "citizen", "email": "sita@example.com", "password": "secret123"},
        )
        assert resp.status_code == 401

    def test_missing_identifier(self, client):
        resp = client.post("/api/auth/login", json={"user_type": "citizen", "password": "x"})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Missing required field: email"

    def test_migrated_bcrypt_hash(self, client, db):
        hashed = bcrypt.hashpw(b"legacy123", bcrypt.gensalt()).decode()
        db.add(User(
            full_name="Gita Rai",
            email="gita@example.com",
            password_hash="$2y$" + hashed[4:],
            user_type="citizen",
        ))
        db.commit()
        login(client, user_type="citizen", email="gita@example.com", password="legacy123")

    def test_login_records_session_and_timestamp(self, client, db, citizen):
        login(client, user_type="citizen", email="sita@example.com", password="secret123")
        db.refresh(citizen)
        assert citizen.last_login_at is not None
        assert db.query(UserSession).filter(UserSession.user_id == citizen.id).count() == 1


class TestRegister:
    def test_register_then_login(self, client, db, locations):
        resp = client.post(
            "/api/auth/register",
            json={"full_name": "Hari Karki", "email": "Hari@Example.com", "password": "hari1234", "province": 3},
        )
        assert resp.status_code == 201
        user = db.query(User).filter(User.email == "hari@example.com").one()
        assert user.user_type == "citizen"
        assert user.province_id == 3
        login(client, user_type="citizen", email="hari@example.com", password="hari1234")

    def test_unknown_province(self, client, db, locations):
        resp = client.post(
            "/api/auth/register",
            json={"full_name": "Hari Karki", "email": "hari@example.com", "password": "hari1234", "province": 99},
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid province"
        assert db.query(User).filter(User.email == "hari@example.com").first() is None

    def test_duplicate_email(self, client, citizen):
        resp = client.post(
            "/api/auth/register",
            json={"full_name": "Sita Again", "email": "sita@example.com", "password": "secret123"},
        )
        assert resp.status_code == 409
        assert resp.json()["message"] == "Email already registered"

    def test_short_password(self, client):
        resp = client.post(
            "/api/auth/register",
            json={"full_name": "Hari", "email": "hari@example.com", "password": "123"},
        )
        assert resp.status_code == 400
        assert resp.json()["message"].startswith("Invalid password")

    def test_bad_email(self, client):
        resp = client.post(
            "/api/auth/register",
            json={"full_name": "Hari", "email": "not-an-email", "password": "hari1234"},
        )
        assert resp.status_code == 400


class TestSession:
    def test_anonymous_session_check(self, client):
        resp = client.get("/api/auth/session")
        assert resp.status_code == 401
        assert resp.json() == {"success": False, "message": "Not authenticated"}

    def test_cookie_session(self, client, citizen):
        client.post(
            "/api/auth/login",
            json={"user_type": "citizen", "email": "sita@example.com", "password": "secret123"},
        )
        resp = client.get("/api/auth/session")
        assert resp.status_code == 200
        assert resp.json()["user"]["id"] == str(citizen.id)

    def test_bearer_session(self, client, official_headers):
        user = client.get("/api/auth/session", headers=official_headers).json()["user"]
        assert user["type"] == "official"

    def test_unverified_official_session_is_dropped(self, client, db, official, official_headers):
        official.verified = False
        db.commit()
        assert client.get("/api/auth/session", headers=official_headers).status_code == 401

    def test_tampered_token_is_anonymous(self, client):
        resp = client.get("/api/auth/session", headers={"Authorization": "Bearer not.a.token"})
        assert resp.status_code == 401

    def test_logout_revokes_token(self, client, citizen_headers):
        resp = client.post("/api/auth/logout", headers=citizen_headers)
        assert resp.status_code == 200
        assert client.get("/api/auth/session", headers=citizen_headers).status_code == 401

    def test_logout_without_session(self, client):
        assert client.post("/api/auth/logout").json()["success"] is True
